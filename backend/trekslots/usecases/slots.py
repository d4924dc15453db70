from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ..domain.errors import InvariantViolation, NotFoundError, ValidationError
from ..domain.repositories import BookingRepository, SlotRepository, TrekRepository, UnitOfWork
from ..domain.services import available_seats
from ..models import Slot, SlotStatus
from ..utils.audit_log import AuditInitiator, emit_audit_log
from .transaction import UnitOfWorkFactory, run_in_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotAvailabilityView:
    slot: Slot
    reserved: int
    available: int


@dataclass(frozen=True)
class ReconcileResult:
    slot_id: int
    trek_slug: str
    date: date
    capacity: int
    old_booked: int
    new_booked: int

    @property
    def drifted(self) -> bool:
        return self.old_booked != self.new_booked

    @property
    def overbooked(self) -> bool:
        return self.new_booked > self.capacity

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.new_booked)


async def get_available_seats(
    slot_repo: SlotRepository,
    booking_repo: BookingRepository,
    *,
    slot_id: int,
) -> int:
    """Seats left on a slot, derived from live bookings rather than the cached count."""
    slot = await slot_repo.get(slot_id)
    if slot is None:
        raise NotFoundError("slot not found", slot_id=slot_id)
    reserved = await booking_repo.sum_live_participants(slot_id)
    return available_seats(slot.capacity, reserved)


async def reconcile(
    slot_repo: SlotRepository,
    booking_repo: BookingRepository,
    *,
    slot_id: int,
) -> ReconcileResult:
    slot = await slot_repo.get_for_update(slot_id)
    if slot is None:
        raise NotFoundError("slot not found", slot_id=slot_id)

    live = await booking_repo.sum_live_participants(slot_id)
    if slot.capacity < 0 or live < 0:
        raise InvariantViolation(
            "slot counts must not be negative", slot_id=slot_id, capacity=slot.capacity, booked=live
        )

    old_booked = slot.booked
    if old_booked != live:
        await slot_repo.set_booked(slot, live)
    return ReconcileResult(
        slot_id=slot.id,
        trek_slug=slot.trek_slug,
        date=slot.date,
        capacity=slot.capacity,
        old_booked=old_booked,
        new_booked=live,
    )


async def list_availability(
    slot_repo: SlotRepository,
    booking_repo: BookingRepository,
    trek_repo: TrekRepository,
    *,
    trek_slug: str,
    only_available: bool = False,
) -> list[SlotAvailabilityView]:
    trek = await trek_repo.get(trek_slug)
    if trek is None:
        raise NotFoundError("trek not found", trek_slug=trek_slug)

    slots = await slot_repo.list_for_trek(trek_slug)
    totals = await booking_repo.sum_live_by_slot(slot.id for slot in slots)
    items: list[SlotAvailabilityView] = []
    for slot in slots:
        reserved = totals.get(slot.id, 0)
        view = SlotAvailabilityView(slot=slot, reserved=reserved, available=max(slot.capacity - reserved, 0))
        if only_available and (slot.status != SlotStatus.OPEN or view.available == 0):
            continue
        items.append(view)
    return items


async def create_slot(
    slot_repo: SlotRepository,
    trek_repo: TrekRepository,
    *,
    trek_slug: str,
    date: date,
    capacity: int,
    status: SlotStatus,
) -> Slot:
    if capacity < 0:
        raise ValidationError("capacity must be >= 0", capacity=capacity)
    if await trek_repo.get(trek_slug) is None:
        raise NotFoundError("trek not found", trek_slug=trek_slug)
    if await slot_repo.get_by_trek_date(trek_slug, date) is not None:
        raise ValidationError("a departure already exists on that date", trek_slug=trek_slug, date=str(date))
    return await slot_repo.create(trek_slug=trek_slug, date=date, capacity=capacity, status=status)


async def update_slot(
    slot_repo: SlotRepository,
    booking_repo: BookingRepository,
    *,
    slot_id: int,
    capacity: Optional[int] = None,
    date: Optional[date] = None,
    status: Optional[SlotStatus] = None,
) -> tuple[Slot, ReconcileResult]:
    """Apply an admin edit to a slot, then re-derive its booked count."""
    if capacity is not None and capacity < 0:
        raise ValidationError("capacity must be >= 0", capacity=capacity)

    slot = await slot_repo.get_for_update(slot_id)
    if slot is None:
        raise NotFoundError("slot not found", slot_id=slot_id)

    if date is not None and date != slot.date:
        clash = await slot_repo.get_by_trek_date(slot.trek_slug, date)
        if clash is not None and clash.id != slot.id:
            raise ValidationError("a departure already exists on that date", trek_slug=slot.trek_slug, date=str(date))
        slot.date = date
    if capacity is not None:
        slot.capacity = capacity
    if status is not None:
        slot.status = status
    await slot_repo.save(slot)

    result = await reconcile(slot_repo, booking_repo, slot_id=slot_id)
    slot.booked = result.new_booked
    if result.overbooked:
        # Tolerated: existing bookings keep their seats, no new ones fit.
        logger.warning(
            "slot %s capacity %s is below %s live participants",
            slot_id,
            result.capacity,
            result.new_booked,
        )
    return slot, result


def report_reconcile(result: ReconcileResult, *, initiator: AuditInitiator) -> None:
    if result.drifted:
        logger.info("slot %s booked count %s -> %s", result.slot_id, result.old_booked, result.new_booked)
        emit_audit_log(
            action="slot.reconciled",
            initiator=initiator,
            slot_id=result.slot_id,
            trek_slug=result.trek_slug,
            extra={"booked_from": result.old_booked, "booked_to": result.new_booked},
        )
    if result.overbooked:
        _alert_overbooked(
            slot_id=result.slot_id,
            trek_slug=result.trek_slug,
            capacity=result.capacity,
            reserved=result.new_booked,
            initiator=initiator,
        )


def report_overbooked(slot: Slot, reserved: int, *, initiator: AuditInitiator) -> None:
    """Alert on a slot whose live bookings already exceed its capacity."""
    _alert_overbooked(
        slot_id=slot.id,
        trek_slug=slot.trek_slug,
        capacity=slot.capacity,
        reserved=reserved,
        initiator=initiator,
    )


def _alert_overbooked(
    *,
    slot_id: int,
    trek_slug: str,
    capacity: int,
    reserved: int,
    initiator: AuditInitiator,
) -> None:
    logger.error("slot %s holds %s live participants for capacity %s", slot_id, reserved, capacity)
    emit_audit_log(
        action="slot.invariant_violation",
        initiator=initiator,
        slot_id=slot_id,
        trek_slug=trek_slug,
        level="error",
        message="booked exceeds capacity",
        extra={"booked": reserved, "capacity": capacity},
    )


class CapacityReconciler:
    """Keeps each slot's cached booked count in line with its live bookings."""

    def __init__(self, uow_factory: UnitOfWorkFactory, *, attempts: int = 3) -> None:
        self._uow_factory = uow_factory
        self._attempts = attempts

    async def _run(self, work, *, name: str):
        return await run_in_transaction(self._uow_factory, work, attempts=self._attempts, name=name)

    async def get_available_seats(self, slot_id: int) -> int:
        async def work(uow: UnitOfWork) -> int:
            return await get_available_seats(uow.slots, uow.bookings, slot_id=slot_id)

        return await self._run(work, name="available_seats")

    async def reconcile(self, slot_id: int, *, initiator: AuditInitiator = "system") -> ReconcileResult:
        async def work(uow: UnitOfWork) -> ReconcileResult:
            return await reconcile(uow.slots, uow.bookings, slot_id=slot_id)

        result = await self._run(work, name="reconcile")
        report_reconcile(result, initiator=initiator)
        return result

    async def reconcile_trek(self, trek_slug: str, *, initiator: AuditInitiator = "system") -> list[ReconcileResult]:
        async def list_ids(uow: UnitOfWork) -> list[int]:
            if await uow.treks.get(trek_slug) is None:
                raise NotFoundError("trek not found", trek_slug=trek_slug)
            return [slot.id for slot in await uow.slots.list_for_trek(trek_slug)]

        slot_ids = await self._run(list_ids, name="reconcile_trek")
        return [await self.reconcile(slot_id, initiator=initiator) for slot_id in slot_ids]

    async def reconcile_all(self, *, initiator: AuditInitiator = "system") -> list[ReconcileResult]:
        async def list_ids(uow: UnitOfWork) -> list[int]:
            return [slot.id for slot in await uow.slots.list_all()]

        slot_ids = await self._run(list_ids, name="reconcile_all")
        return [await self.reconcile(slot_id, initiator=initiator) for slot_id in slot_ids]

    async def list_availability(self, trek_slug: str, *, only_available: bool = False) -> list[SlotAvailabilityView]:
        async def work(uow: UnitOfWork) -> list[SlotAvailabilityView]:
            return await list_availability(
                uow.slots, uow.bookings, uow.treks, trek_slug=trek_slug, only_available=only_available
            )

        return await self._run(work, name="list_availability")

    async def create_slot(
        self,
        *,
        trek_slug: str,
        date: date,
        capacity: int,
        status: SlotStatus = SlotStatus.OPEN,
    ) -> Slot:
        async def work(uow: UnitOfWork) -> Slot:
            return await create_slot(
                uow.slots, uow.treks, trek_slug=trek_slug, date=date, capacity=capacity, status=status
            )

        slot = await self._run(work, name="create_slot")
        emit_audit_log(
            action="slot.created",
            initiator="admin",
            slot_id=slot.id,
            trek_slug=slot.trek_slug,
            extra={"capacity": slot.capacity, "date": slot.date.isoformat()},
        )
        return slot

    async def update_slot(
        self,
        slot_id: int,
        *,
        capacity: Optional[int] = None,
        date: Optional[date] = None,
        status: Optional[SlotStatus] = None,
    ) -> tuple[Slot, ReconcileResult]:
        async def work(uow: UnitOfWork) -> tuple[Slot, ReconcileResult]:
            return await update_slot(
                uow.slots, uow.bookings, slot_id=slot_id, capacity=capacity, date=date, status=status
            )

        slot, result = await self._run(work, name="update_slot")
        emit_audit_log(
            action="slot.updated",
            initiator="admin",
            slot_id=slot.id,
            trek_slug=slot.trek_slug,
            extra={"capacity": slot.capacity, "status": slot.status.value, "date": slot.date.isoformat()},
        )
        report_reconcile(result, initiator="admin")
        return slot, result

    async def close_slot(self, slot_id: int) -> tuple[Slot, ReconcileResult]:
        return await self.update_slot(slot_id, status=SlotStatus.CLOSED)
