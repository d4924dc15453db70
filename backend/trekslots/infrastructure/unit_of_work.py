from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import PersistenceConflict, PersistenceError
from .repositories import (
    SqlAlchemyBookingRepository,
    SqlAlchemySlotRepository,
    SqlAlchemyTrekRepository,
    SqlAlchemyVoucherRepository,
)

logger = logging.getLogger(__name__)

# Serialization failure and deadlock (SQL standard / PostgreSQL).
_CONFLICT_SQLSTATES = {"40001", "40P01"}
# Lock wait timeout and deadlock (MySQL).
_CONFLICT_MYSQL_CODES = {1205, 1213}


def _driver_error_code(orig: Any) -> Any:
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return value
    args = getattr(orig, "args", ())
    if args:
        return args[0]
    return None


def is_conflict(exc: DBAPIError) -> bool:
    if isinstance(exc, IntegrityError):
        return False
    code = _driver_error_code(exc.orig)
    if code in _CONFLICT_SQLSTATES or code in _CONFLICT_MYSQL_CODES:
        return True
    return "database is locked" in str(exc.orig)


def translate_db_error(exc: SQLAlchemyError) -> PersistenceError:
    if isinstance(exc, DBAPIError) and is_conflict(exc):
        return PersistenceConflict("transaction conflicted with a concurrent update")
    return PersistenceError("storage failure")


class SqlAlchemyUnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self._session_factory()
        self.treks = SqlAlchemyTrekRepository(self.session)
        self.slots = SqlAlchemySlotRepository(self.session)
        self.bookings = SqlAlchemyBookingRepository(self.session)
        self.vouchers = SqlAlchemyVoucherRepository(self.session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        try:
            if exc is None:
                await self.session.commit()
            else:
                await self.session.rollback()
        except SQLAlchemyError as db_exc:
            logger.warning("transaction finalisation failed: %s", db_exc)
            await self.session.rollback()
            raise translate_db_error(db_exc) from db_exc
        finally:
            await self.session.close()

        if isinstance(exc, SQLAlchemyError):
            raise translate_db_error(exc) from exc
        return False
