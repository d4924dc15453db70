import logging

import pytest
from fakes import InMemoryStore, make_trek, make_voucher, uow_factory
from trekslots.domain.errors import PersistenceConflict, PersistenceError
from trekslots.domain.identity import UserIdentity
from trekslots.models import BookingStatus
from trekslots.usecases.reservations import ReservationCoordinator, ReservationRequest

USER = UserIdentity(id="user-1")


def _seed() -> tuple[InMemoryStore, int, int]:
    store = InMemoryStore()
    store.add_trek(make_trek("kedarkantha"))
    slot = store.add_slot("kedarkantha", capacity=5, booked=1)
    store.add_booking(slot, participants=1, user_id="user-0")
    voucher = store.add_voucher(make_voucher("ONCE", max_uses=1))
    return store, slot.id, voucher.id


def _request(slot_id: int) -> ReservationRequest:
    return ReservationRequest(
        trek_slug="kedarkantha", slot_id=slot_id, user_id="user-1", participants=2, voucher_code="ONCE"
    )


@pytest.mark.parametrize("point", ["vouchers.increment_uses", "bookings.create", "slots.set_booked", "commit"])
@pytest.mark.asyncio
async def test_failed_reservation_leaves_no_trace(point: str) -> None:
    store, slot_id, voucher_id = _seed()
    store.inject(point, PersistenceError("disk on fire"))
    coordinator = ReservationCoordinator(uow_factory(store))  # type: ignore[arg-type]

    with pytest.raises(PersistenceError):
        await coordinator.reserve(_request(slot_id), USER)

    assert len(store.bookings) == 1
    assert store.slots[slot_id].booked == 1
    assert store.vouchers[voucher_id].current_uses == 0
    assert store.vouchers[voucher_id].is_used is False
    assert store.rollbacks == 1


@pytest.mark.asyncio
async def test_conflict_is_retried_from_scratch(caplog: pytest.LogCaptureFixture) -> None:
    store, slot_id, voucher_id = _seed()
    store.inject("commit", PersistenceConflict("deadlock detected"))
    coordinator = ReservationCoordinator(uow_factory(store), attempts=3)  # type: ignore[arg-type]

    with caplog.at_level(logging.WARNING, logger="trekslots.usecases.transaction"):
        booking = await coordinator.reserve(_request(slot_id), USER)

    assert booking.voucher_id == voucher_id
    assert store.vouchers[voucher_id].current_uses == 1
    assert store.slots[slot_id].booked == 3
    assert store.live_participants(slot_id) == 3
    assert (store.rollbacks, store.commits) == (1, 1)
    assert any("retrying" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_conflicts_exhaust_attempts() -> None:
    store, slot_id, voucher_id = _seed()
    store.inject("bookings.create", PersistenceConflict("lock wait timeout"), times=2)
    coordinator = ReservationCoordinator(uow_factory(store), attempts=2)  # type: ignore[arg-type]

    with pytest.raises(PersistenceConflict) as excinfo:
        await coordinator.reserve(_request(slot_id), USER)

    assert excinfo.value.retryable
    assert len(store.bookings) == 1
    assert store.vouchers[voucher_id].current_uses == 0
    assert store.rollbacks == 2


@pytest.mark.asyncio
async def test_failed_cancel_keeps_booking_live() -> None:
    store = InMemoryStore()
    store.add_trek(make_trek("kedarkantha"))
    slot = store.add_slot("kedarkantha", capacity=5, booked=2)
    booking = store.add_booking(slot, participants=2)
    store.inject("slots.set_booked", PersistenceError("write failed"))
    coordinator = ReservationCoordinator(uow_factory(store))  # type: ignore[arg-type]

    with pytest.raises(PersistenceError):
        await coordinator.cancel(booking.id, USER)

    assert store.bookings[booking.id].status == BookingStatus.CONFIRMED
    assert store.slots[slot.id].booked == 2
