from __future__ import annotations

from datetime import date
from types import TracebackType
from typing import Iterable, Protocol

from ..models import Booking, BookingStatus, Slot, SlotStatus, Trek, Voucher
from .pricing import PriceBreakdown


class TrekRepository(Protocol):
    async def get(self, slug: str) -> Trek | None: ...


class SlotRepository(Protocol):
    async def get(self, slot_id: int) -> Slot | None: ...

    async def get_for_update(self, slot_id: int) -> Slot | None: ...

    async def get_by_trek_date(self, trek_slug: str, date: date) -> Slot | None: ...

    async def list_for_trek(self, trek_slug: str) -> list[Slot]: ...

    async def list_all(self) -> list[Slot]: ...

    async def create(
        self,
        *,
        trek_slug: str,
        date: date,
        capacity: int,
        status: SlotStatus,
    ) -> Slot: ...

    async def save(self, slot: Slot) -> Slot: ...

    async def set_booked(self, slot: Slot, booked: int) -> Slot: ...


class BookingRepository(Protocol):
    async def get(self, booking_id: int) -> Booking | None: ...

    async def get_for_update(self, booking_id: int) -> Booking | None: ...

    async def sum_live_participants(self, slot_id: int) -> int: ...

    async def sum_live_by_slot(self, slot_ids: Iterable[int]) -> dict[int, int]: ...

    async def create(
        self,
        *,
        slot_id: int,
        trek_slug: str,
        user_id: str,
        participants: int,
        status: BookingStatus,
        price: PriceBreakdown,
        voucher_id: int | None,
    ) -> Booking: ...

    async def save(self, booking: Booking) -> Booking: ...

    async def list_by_user(self, user_id: str) -> list[Booking]: ...

    async def list_all(self) -> list[Booking]: ...


class VoucherRepository(Protocol):
    async def get_by_code(self, code: str) -> Voucher | None: ...

    async def get_by_code_for_update(self, code: str) -> Voucher | None: ...

    async def increment_uses(self, voucher: Voucher) -> bool:
        """Consume one use; return False if the voucher was already exhausted."""
        ...


class UnitOfWork(Protocol):
    """One database transaction: commits on clean exit, rolls back on error."""

    treks: TrekRepository
    slots: SlotRepository
    bookings: BookingRepository
    vouchers: VoucherRepository

    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None: ...
