import asyncio

import pytest
from fakes import InMemoryStore, make_trek, make_voucher, uow_factory
from trekslots.domain.errors import InsufficientCapacity, VoucherExhausted
from trekslots.domain.identity import UserIdentity
from trekslots.usecases.reservations import ReservationCoordinator, ReservationRequest
from trekslots.usecases.slots import CapacityReconciler


def _request(slot_id: int, participants: int, user_id: str, voucher_code: str | None = None) -> ReservationRequest:
    return ReservationRequest(
        trek_slug="kedarkantha",
        slot_id=slot_id,
        user_id=user_id,
        participants=participants,
        voucher_code=voucher_code,
    )


async def _reserve_as(coordinator: ReservationCoordinator, request: ReservationRequest):
    return await coordinator.reserve(request, UserIdentity(id=request.user_id))


@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.add_trek(make_trek("kedarkantha"))
    return s


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(store: InMemoryStore) -> None:
    slot = store.add_slot("kedarkantha", capacity=7)
    coordinator = ReservationCoordinator(uow_factory(store))  # type: ignore[arg-type]

    results = await asyncio.gather(
        *(_reserve_as(coordinator, _request(slot.id, 2, f"user-{i}")) for i in range(10)),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 3
    assert all(isinstance(r, InsufficientCapacity) for r in rejected)
    assert store.live_participants(slot.id) == 6
    assert store.slots[slot.id].booked == 6


@pytest.mark.asyncio
async def test_racing_for_the_last_seats(store: InMemoryStore) -> None:
    slot = store.add_slot("kedarkantha", capacity=5, booked=3)
    store.add_booking(slot, participants=3)
    coordinator = ReservationCoordinator(uow_factory(store))  # type: ignore[arg-type]

    results = await asyncio.gather(
        _reserve_as(coordinator, _request(slot.id, 2, "user-a")),
        _reserve_as(coordinator, _request(slot.id, 3, "user-b")),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientCapacity)
    assert store.slots[slot.id].booked == 5
    assert store.live_participants(slot.id) == 5


@pytest.mark.asyncio
async def test_single_use_voucher_is_redeemed_once(store: InMemoryStore) -> None:
    slot = store.add_slot("kedarkantha", capacity=10)
    voucher = store.add_voucher(make_voucher("ONCE", max_uses=1))
    coordinator = ReservationCoordinator(uow_factory(store))  # type: ignore[arg-type]

    results = await asyncio.gather(
        _reserve_as(coordinator, _request(slot.id, 1, "user-a", voucher_code="ONCE")),
        _reserve_as(coordinator, _request(slot.id, 1, "user-b", voucher_code="ONCE")),
        return_exceptions=True,
    )

    bookings = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(bookings) == 1
    assert bookings[0].voucher_id == voucher.id
    assert len(failures) == 1
    assert isinstance(failures[0], VoucherExhausted)
    assert store.vouchers[voucher.id].current_uses == 1
    assert store.vouchers[voucher.id].is_used is True
    assert store.slots[slot.id].booked == 1


@pytest.mark.asyncio
async def test_cancellations_and_reservations_interleave(store: InMemoryStore) -> None:
    slot = store.add_slot("kedarkantha", capacity=4, booked=4)
    held = [store.add_booking(slot, participants=1, user_id=f"user-{i}") for i in range(4)]
    coordinator = ReservationCoordinator(uow_factory(store))  # type: ignore[arg-type]
    reconciler = CapacityReconciler(uow_factory(store))  # type: ignore[arg-type]

    await asyncio.gather(
        *(coordinator.cancel(b.id, UserIdentity(id=b.user_id)) for b in held[:2]),
        reconciler.reconcile(slot.id),
        return_exceptions=True,
    )
    results = await asyncio.gather(
        *(_reserve_as(coordinator, _request(slot.id, 1, f"late-{i}")) for i in range(3)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 2
    assert store.live_participants(slot.id) == 4
    assert store.slots[slot.id].booked == 4
