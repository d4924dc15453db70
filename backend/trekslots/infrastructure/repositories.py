from __future__ import annotations

from datetime import date
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.pricing import PriceBreakdown
from ..domain.repositories import BookingRepository, SlotRepository, TrekRepository, VoucherRepository
from ..models import LIVE_BOOKING_STATUSES, Booking, BookingStatus, Slot, SlotStatus, Trek, Voucher
from ..utils.time import utc_now_naive


class SqlAlchemyTrekRepository(TrekRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, slug: str) -> Trek | None:
        result = await self.session.scalar(select(Trek).where(Trek.slug == slug))
        return result if isinstance(result, Trek) else None


class SqlAlchemySlotRepository(SlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, slot_id: int) -> Slot | None:
        result = await self.session.scalar(select(Slot).where(Slot.id == slot_id))
        return result if isinstance(result, Slot) else None

    async def get_for_update(self, slot_id: int) -> Slot | None:
        # populate_existing so a row read earlier in the session is refreshed once the lock is held
        stmt = (
            select(Slot)
            .where(Slot.id == slot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Slot) else None

    async def get_by_trek_date(self, trek_slug: str, date: date) -> Slot | None:
        result = await self.session.scalar(
            select(Slot).where(Slot.trek_slug == trek_slug, Slot.date == date)
        )
        return result if isinstance(result, Slot) else None

    async def list_for_trek(self, trek_slug: str) -> list[Slot]:
        rows = await self.session.scalars(
            select(Slot).where(Slot.trek_slug == trek_slug).order_by(Slot.date)
        )
        return list(rows.all())

    async def list_all(self) -> list[Slot]:
        rows = await self.session.scalars(select(Slot).order_by(Slot.trek_slug, Slot.date))
        return list(rows.all())

    async def create(
        self,
        *,
        trek_slug: str,
        date: date,
        capacity: int,
        status: SlotStatus,
    ) -> Slot:
        now = utc_now_naive()
        slot = Slot(
            trek_slug=trek_slug,
            date=date,
            capacity=capacity,
            booked=0,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.session.add(slot)
        await self.session.flush()
        return slot

    async def save(self, slot: Slot) -> Slot:
        slot.updated_at = utc_now_naive()
        self.session.add(slot)
        await self.session.flush()
        return slot

    async def set_booked(self, slot: Slot, booked: int) -> Slot:
        slot.booked = booked
        return await self.save(slot)


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, booking_id: int) -> Booking | None:
        result = await self.session.scalar(select(Booking).where(Booking.id == booking_id))
        return result if isinstance(result, Booking) else None

    async def get_for_update(self, booking_id: int) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Booking) else None

    async def sum_live_participants(self, slot_id: int) -> int:
        stmt = select(func.coalesce(func.sum(Booking.participants), 0)).where(
            Booking.slot_id == slot_id,
            Booking.status.in_(LIVE_BOOKING_STATUSES),
        )
        return int(await self.session.scalar(stmt) or 0)

    async def sum_live_by_slot(self, slot_ids: Iterable[int]) -> dict[int, int]:
        ids = list(slot_ids)
        if not ids:
            return {}
        stmt = (
            select(Booking.slot_id, func.coalesce(func.sum(Booking.participants), 0))
            .where(Booking.slot_id.in_(ids), Booking.status.in_(LIVE_BOOKING_STATUSES))
            .group_by(Booking.slot_id)
        )
        rows = await self.session.execute(stmt)
        totals = {slot_id: 0 for slot_id in ids}
        for slot_id, reserved in rows.all():
            totals[slot_id] = int(reserved)
        return totals

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
    ) -> Booking:
        now = utc_now_naive()
        booking = Booking(
            slot_id=slot_id,
            trek_slug=trek_slug,
            user_id=user_id,
            participants=participants,
            status=status,
            base_amount=price.base_amount,
            gst_amount=price.gst_amount,
            discount_amount=price.discount_amount,
            total_amount=price.final_amount,
            voucher_id=voucher_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def save(self, booking: Booking) -> Booking:
        booking.updated_at = utc_now_naive()
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def list_by_user(self, user_id: str) -> list[Booking]:
        rows = await self.session.scalars(
            select(Booking).where(Booking.user_id == user_id).order_by(Booking.created_at.desc())
        )
        return list(rows.all())

    async def list_all(self) -> list[Booking]:
        rows = await self.session.scalars(select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()))
        return list(rows.all())


class SqlAlchemyVoucherRepository(VoucherRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_code(self, code: str) -> Voucher | None:
        result = await self.session.scalar(select(Voucher).where(Voucher.code == code.upper()))
        return result if isinstance(result, Voucher) else None

    async def get_by_code_for_update(self, code: str) -> Voucher | None:
        stmt = (
            select(Voucher)
            .where(Voucher.code == code.upper())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Voucher) else None

    async def increment_uses(self, voucher: Voucher) -> bool:
        seen_uses = voucher.current_uses
        new_uses = seen_uses + 1
        stmt = (
            update(Voucher)
            .where(
                Voucher.id == voucher.id,
                Voucher.current_uses == seen_uses,
                Voucher.current_uses < Voucher.max_uses,
                Voucher.is_used.is_(False),
            )
            .values(
                current_uses=new_uses,
                is_used=new_uses >= voucher.max_uses,
                updated_at=utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self.session.refresh(voucher)
        return True
