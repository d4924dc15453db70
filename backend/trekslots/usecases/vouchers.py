from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..domain.errors import ValidationError, VoucherExhausted, VoucherNotFound
from ..domain.repositories import UnitOfWork, VoucherRepository
from ..domain.services import VoucherSnapshot, validate_voucher
from ..models import Voucher
from ..utils.time import utc_now_naive
from .transaction import UnitOfWorkFactory, run_in_transaction


@dataclass(frozen=True)
class VoucherRedemption:
    voucher: Voucher
    discount_amount: int


@dataclass(frozen=True)
class VoucherQuote:
    code: str
    discount_percent: int
    discount_amount: int
    final_amount: int


def normalize_code(code: str) -> str:
    cleaned = code.strip().upper()
    if not cleaned:
        raise ValidationError("voucher code must not be blank")
    return cleaned


async def redeem(
    voucher_repo: VoucherRepository,
    *,
    code: str,
    user_id: str,
    amount: int,
    now: datetime,
) -> VoucherRedemption:
    """
    Lock the voucher row, validate it for this user and pre-tax amount, and
    consume one use. Must run inside the reservation transaction so the use
    is rolled back together with the booking.
    """
    voucher = await voucher_repo.get_by_code_for_update(normalize_code(code))
    if voucher is None:
        raise VoucherNotFound("invalid voucher code")
    discount = validate_voucher(VoucherSnapshot.from_model(voucher), user_id=user_id, amount=amount, now=now)
    if not await voucher_repo.increment_uses(voucher):
        raise VoucherExhausted("this voucher has already been used", code=voucher.code)
    return VoucherRedemption(voucher=voucher, discount_amount=discount)


async def check(
    voucher_repo: VoucherRepository,
    *,
    code: str,
    user_id: str,
    amount: int,
    now: datetime,
) -> VoucherQuote:
    """Preview a voucher against an amount without consuming it."""
    if amount <= 0:
        raise ValidationError("amount must be positive", amount=amount)
    voucher = await voucher_repo.get_by_code(normalize_code(code))
    if voucher is None:
        raise VoucherNotFound("invalid voucher code")
    discount = validate_voucher(VoucherSnapshot.from_model(voucher), user_id=user_id, amount=amount, now=now)
    return VoucherQuote(
        code=voucher.code,
        discount_percent=voucher.discount_percent,
        discount_amount=discount,
        final_amount=max(0, amount - discount),
    )


class VoucherLedger:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock

    async def check(self, code: str, *, user_id: str, amount: int) -> VoucherQuote:
        async def work(uow: UnitOfWork) -> VoucherQuote:
            return await check(uow.vouchers, code=code, user_id=user_id, amount=amount, now=self._clock())

        return await run_in_transaction(self._uow_factory, work, name="voucher_check")
