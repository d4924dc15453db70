from fastapi import Depends, Header, HTTPException, status

from .config import Settings, get_settings
from .database import async_session
from .domain.identity import UserIdentity
from .infrastructure.unit_of_work import SqlAlchemyUnitOfWork
from .usecases.reservations import ReservationCoordinator
from .usecases.slots import CapacityReconciler
from .usecases.vouchers import VoucherLedger
from .utils.auth import decode_access_token


def unit_of_work() -> SqlAlchemyUnitOfWork:
    return SqlAlchemyUnitOfWork(async_session)


def get_coordinator(settings: Settings = Depends(get_settings)) -> ReservationCoordinator:
    return ReservationCoordinator.from_settings(unit_of_work, settings)


def get_reconciler(settings: Settings = Depends(get_settings)) -> CapacityReconciler:
    return CapacityReconciler(unit_of_work, attempts=settings.reserve_max_attempts)


def get_voucher_ledger() -> VoucherLedger:
    return VoucherLedger(unit_of_work)


async def get_current_identity(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> UserIdentity:
    if authorization is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def require_admin(identity: UserIdentity = Depends(get_current_identity)) -> UserIdentity:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin role required")
    return identity
