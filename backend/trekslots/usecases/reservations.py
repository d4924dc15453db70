from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Awaitable, Callable, Optional

from ..config import Settings
from ..domain import pricing
from ..domain.errors import NotFoundError, PermissionDenied, SlotUnavailable, ValidationError
from ..domain.identity import UserIdentity
from ..domain.repositories import UnitOfWork
from ..domain.services import SlotSnapshot, validate_participants, validate_reservation
from ..models import Booking, BookingStatus, Slot
from ..utils.audit_log import emit_audit_log
from ..utils.time import today_ist, utc_now_naive
from . import slots as slot_usecase
from . import vouchers as voucher_usecase
from .transaction import UnitOfWorkFactory, run_in_transaction


@dataclass(frozen=True)
class ReservationRequest:
    trek_slug: str
    slot_id: int
    user_id: str
    participants: int
    voucher_code: Optional[str] = None


@dataclass(frozen=True)
class ReservationOptions:
    max_participants: int = 20
    gst_percent: int = pricing.GST_PERCENT
    initial_status: BookingStatus = BookingStatus.PENDING

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReservationOptions":
        return cls(
            max_participants=settings.max_participants,
            gst_percent=settings.gst_percent,
            initial_status=BookingStatus(settings.initial_booking_status),
        )


@dataclass(frozen=True)
class StatusChange:
    booking: Booking
    status_from: BookingStatus
    slot: Optional[slot_usecase.ReconcileResult] = None

    @property
    def changed(self) -> bool:
        return self.status_from != self.booking.status


async def create_booking(
    repos: UnitOfWork,
    *,
    request: ReservationRequest,
    options: ReservationOptions,
    now: datetime,
) -> Booking:
    validate_participants(request.participants, max_participants=options.max_participants)

    # The slot lock must be the first statement: every later plain read then
    # sees the bookings committed by whoever held the lock before us.
    locked = await repos.slots.get_for_update(request.slot_id)
    if locked is None:
        raise NotFoundError("slot not found", slot_id=request.slot_id)
    if locked.trek_slug != request.trek_slug:
        raise SlotUnavailable("slot does not belong to this trek", slot_id=locked.id, trek_slug=request.trek_slug)
    trek = await repos.treks.get(locked.trek_slug)
    if trek is None:
        raise NotFoundError("trek not found", trek_slug=locked.trek_slug)

    reserved = await repos.bookings.sum_live_participants(locked.id)
    if reserved > locked.capacity:
        slot_usecase.report_overbooked(locked, reserved, initiator="system")
    snapshot = SlotSnapshot(
        status=locked.status,
        trek_status=trek.status,
        capacity=locked.capacity,
        reserved=reserved,
    )
    validate_reservation(snapshot, participants=request.participants)

    base_amount = trek.base_price * request.participants
    voucher_id: Optional[int] = None
    discount = 0
    if request.voucher_code:
        redemption = await voucher_usecase.redeem(
            repos.vouchers,
            code=request.voucher_code,
            user_id=request.user_id,
            amount=base_amount,
            now=now,
        )
        voucher_id = redemption.voucher.id
        discount = redemption.discount_amount

    price = pricing.compute(
        trek.base_price,
        request.participants,
        discount,
        gst_percent=options.gst_percent,
    )
    booking = await repos.bookings.create(
        slot_id=locked.id,
        trek_slug=trek.slug,
        user_id=request.user_id,
        participants=request.participants,
        status=options.initial_status,
        price=price,
        voucher_id=voucher_id,
    )

    # Write through the live total, which also repairs any drift in the cache.
    await repos.slots.set_booked(locked, reserved + request.participants)
    return booking


async def _get_accessible(repos: UnitOfWork, *, booking_id: int, identity: UserIdentity) -> Booking:
    booking = await repos.bookings.get(booking_id)
    # Bookings owned by someone else are reported as missing.
    if booking is None or not identity.can_access(booking.user_id):
        raise NotFoundError("booking not found", booking_id=booking_id)
    return booking


def _require_admin(identity: UserIdentity, verb: str) -> None:
    if not identity.is_admin:
        raise PermissionDenied(f"only admins can {verb} bookings")


async def _lock_for_transition(
    repos: UnitOfWork,
    *,
    booking_id: int,
    slot_id: int,
    identity: UserIdentity,
) -> tuple[Slot, Booking]:
    """
    Lock the slot, then the booking. ``slot_id`` comes from an earlier
    lookup; a booking never moves between slots, so a mismatch means the
    booking is gone.
    """
    slot = await repos.slots.get_for_update(slot_id)
    if slot is None:
        raise NotFoundError("slot not found", slot_id=slot_id)
    booking = await repos.bookings.get_for_update(booking_id)
    if booking is None or booking.slot_id != slot_id or not identity.can_access(booking.user_id):
        raise NotFoundError("booking not found", booking_id=booking_id)
    return slot, booking


async def cancel_booking(
    repos: UnitOfWork,
    *,
    booking_id: int,
    slot_id: int,
    identity: UserIdentity,
) -> StatusChange:
    _, booking = await _lock_for_transition(repos, booking_id=booking_id, slot_id=slot_id, identity=identity)
    status_from = booking.status
    # Idempotent: already cancelled returns as-is
    if status_from == BookingStatus.CANCELLED:
        return StatusChange(booking=booking, status_from=status_from)
    if status_from == BookingStatus.COMPLETED:
        raise ValidationError("completed bookings cannot be cancelled", booking_id=booking_id)

    booking.status = BookingStatus.CANCELLED
    await repos.bookings.save(booking)
    result = await slot_usecase.reconcile(repos.slots, repos.bookings, slot_id=slot_id)
    return StatusChange(booking=booking, status_from=status_from, slot=result)


async def confirm_booking(
    repos: UnitOfWork,
    *,
    booking_id: int,
    slot_id: int,
    identity: UserIdentity,
) -> StatusChange:
    _require_admin(identity, "confirm")
    _, booking = await _lock_for_transition(repos, booking_id=booking_id, slot_id=slot_id, identity=identity)
    status_from = booking.status
    if status_from == BookingStatus.CONFIRMED:
        return StatusChange(booking=booking, status_from=status_from)
    if status_from != BookingStatus.PENDING:
        raise ValidationError(f"cannot confirm a {status_from.value} booking", booking_id=booking_id)

    booking.status = BookingStatus.CONFIRMED
    await repos.bookings.save(booking)
    return StatusChange(booking=booking, status_from=status_from)


async def complete_booking(
    repos: UnitOfWork,
    *,
    booking_id: int,
    slot_id: int,
    identity: UserIdentity,
    today: date,
) -> StatusChange:
    _require_admin(identity, "complete")
    slot, booking = await _lock_for_transition(repos, booking_id=booking_id, slot_id=slot_id, identity=identity)
    status_from = booking.status
    if status_from == BookingStatus.COMPLETED:
        return StatusChange(booking=booking, status_from=status_from)
    if status_from != BookingStatus.CONFIRMED:
        raise ValidationError("only confirmed bookings can be completed", booking_id=booking_id)
    if slot.date >= today:
        raise ValidationError("the trek date has not passed yet", booking_id=booking_id)

    booking.status = BookingStatus.COMPLETED
    await repos.bookings.save(booking)
    result = await slot_usecase.reconcile(repos.slots, repos.bookings, slot_id=slot_id)
    return StatusChange(booking=booking, status_from=status_from, slot=result)


async def get_booking(repos: UnitOfWork, *, booking_id: int, identity: UserIdentity) -> Booking:
    return await _get_accessible(repos, booking_id=booking_id, identity=identity)


async def list_bookings(
    repos: UnitOfWork,
    *,
    identity: UserIdentity,
    user_id: Optional[str] = None,
) -> list[Booking]:
    """
    Bookings of ``user_id`` (the caller by default), newest first. Admins
    may name any user, or pass ``None`` to list every booking.
    """
    if identity.is_admin:
        if user_id is None:
            return await repos.bookings.list_all()
        return await repos.bookings.list_by_user(user_id)
    if user_id is not None and user_id != identity.id:
        raise PermissionDenied("cannot list another user's bookings")
    return await repos.bookings.list_by_user(identity.id)


class ReservationCoordinator:
    """
    Entry point for every booking state change. Each call runs in its own
    transaction; a PersistenceConflict replays the call from scratch.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        options: ReservationOptions | None = None,
        attempts: int = 3,
        clock: Callable[[], datetime] = utc_now_naive,
        calendar: Callable[[], date] = today_ist,
    ) -> None:
        self._uow_factory = uow_factory
        self._options = options or ReservationOptions()
        self._attempts = attempts
        self._clock = clock
        self._calendar = calendar

    @classmethod
    def from_settings(cls, uow_factory: UnitOfWorkFactory, settings: Settings) -> "ReservationCoordinator":
        return cls(
            uow_factory,
            options=ReservationOptions.from_settings(settings),
            attempts=settings.reserve_max_attempts,
        )

    async def reserve(self, request: ReservationRequest, identity: UserIdentity) -> Booking:
        if request.user_id != identity.id and not identity.is_admin:
            raise PermissionDenied("cannot reserve on behalf of another user")

        async def work(uow: UnitOfWork) -> Booking:
            return await create_booking(uow, request=request, options=self._options, now=self._clock())

        booking = await run_in_transaction(self._uow_factory, work, attempts=self._attempts, name="reserve")
        initiator = "admin" if request.user_id != identity.id else "user"
        emit_audit_log(
            action="booking.created",
            initiator=initiator,
            booking_id=booking.id,
            slot_id=booking.slot_id,
            trek_slug=booking.trek_slug,
            user_id=booking.user_id,
            participants=booking.participants,
            status_to=booking.status,
            extra={"total_amount": booking.total_amount},
        )
        if booking.voucher_id is not None:
            emit_audit_log(
                action="voucher.redeemed",
                initiator=initiator,
                booking_id=booking.id,
                user_id=booking.user_id,
                extra={"voucher_id": booking.voucher_id, "discount_amount": booking.discount_amount},
            )
        return booking

    async def _transition(
        self,
        booking_id: int,
        identity: UserIdentity,
        apply: Callable[[UnitOfWork, int], Awaitable[StatusChange]],
        *,
        name: str,
    ) -> StatusChange:
        # Find the booking's slot in its own short transaction so the
        # transition can take the slot lock before reading anything else.
        located = await self.get_booking(booking_id, identity)

        async def work(uow: UnitOfWork) -> StatusChange:
            return await apply(uow, located.slot_id)

        return await run_in_transaction(self._uow_factory, work, attempts=self._attempts, name=name)

    async def cancel(self, booking_id: int, identity: UserIdentity) -> Booking:
        async def apply(uow: UnitOfWork, slot_id: int) -> StatusChange:
            return await cancel_booking(uow, booking_id=booking_id, slot_id=slot_id, identity=identity)

        change = await self._transition(booking_id, identity, apply, name="cancel")
        self._report(change, action="booking.cancelled", identity=identity)
        return change.booking

    async def confirm(self, booking_id: int, identity: UserIdentity) -> Booking:
        _require_admin(identity, "confirm")

        async def apply(uow: UnitOfWork, slot_id: int) -> StatusChange:
            return await confirm_booking(uow, booking_id=booking_id, slot_id=slot_id, identity=identity)

        change = await self._transition(booking_id, identity, apply, name="confirm")
        self._report(change, action="booking.confirmed", identity=identity)
        return change.booking

    async def complete(self, booking_id: int, identity: UserIdentity) -> Booking:
        _require_admin(identity, "complete")

        async def apply(uow: UnitOfWork, slot_id: int) -> StatusChange:
            return await complete_booking(
                uow, booking_id=booking_id, slot_id=slot_id, identity=identity, today=self._calendar()
            )

        change = await self._transition(booking_id, identity, apply, name="complete")
        self._report(change, action="booking.completed", identity=identity)
        return change.booking

    async def get_booking(self, booking_id: int, identity: UserIdentity) -> Booking:
        async def work(uow: UnitOfWork) -> Booking:
            return await get_booking(uow, booking_id=booking_id, identity=identity)

        return await run_in_transaction(self._uow_factory, work, name="get_booking")

    async def list_bookings(self, identity: UserIdentity, *, user_id: Optional[str] = None) -> list[Booking]:
        async def work(uow: UnitOfWork) -> list[Booking]:
            return await list_bookings(uow, identity=identity, user_id=user_id)

        return await run_in_transaction(self._uow_factory, work, name="list_bookings")

    def _report(self, change: StatusChange, *, action, identity: UserIdentity) -> None:
        if not change.changed:
            return
        booking = change.booking
        emit_audit_log(
            action=action,
            initiator="admin" if identity.is_admin and identity.id != booking.user_id else "user",
            booking_id=booking.id,
            slot_id=booking.slot_id,
            trek_slug=booking.trek_slug,
            user_id=booking.user_id,
            participants=booking.participants,
            status_from=change.status_from,
            status_to=booking.status,
        )
        if change.slot is not None:
            slot_usecase.report_reconcile(change.slot, initiator="system")
