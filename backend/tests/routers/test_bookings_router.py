from datetime import datetime, timezone
from typing import Any, cast

import pytest
from trekslots.domain.identity import UserIdentity
from trekslots.models import Booking, BookingStatus
from trekslots.routers import reservations as router
from trekslots.schemas import BookingCreate, BookingRead
from trekslots.usecases.reservations import ReservationCoordinator, ReservationRequest


def _booking(status: BookingStatus = BookingStatus.PENDING) -> Booking:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return Booking(
        id=100,
        slot_id=1,
        trek_slug="kedarkantha",
        user_id="user-200",
        participants=2,
        status=status,
        base_amount=2000,
        gst_amount=100,
        discount_amount=0,
        total_amount=2100,
        voucher_id=None,
        created_at=now,
        updated_at=now,
    )


class RecordingCoordinator:
    def __init__(self, booking: Booking) -> None:
        self.booking = booking
        self.calls: list[tuple[str, Any]] = []

    async def reserve(self, request: ReservationRequest, identity: UserIdentity) -> Booking:
        self.calls.append(("reserve", request))
        return self.booking

    async def cancel(self, booking_id: int, identity: UserIdentity) -> Booking:
        self.calls.append(("cancel", booking_id))
        self.booking.status = BookingStatus.CANCELLED
        return self.booking


@pytest.mark.asyncio
async def test_create_booking_reserves_for_the_caller() -> None:
    coordinator = RecordingCoordinator(_booking())
    payload = BookingCreate(trek_slug="kedarkantha", slot_id=1, participants=2, voucher_code="WINTER10")

    result: BookingRead = await router.create_booking(
        payload=payload,
        coordinator=cast(ReservationCoordinator, coordinator),
        identity=UserIdentity(id="user-200"),
    )

    assert result.booking_id == 100
    assert result.total_amount == 2100
    (name, request), = coordinator.calls
    assert name == "reserve"
    assert request.user_id == "user-200"
    assert request.voucher_code == "WINTER10"


@pytest.mark.asyncio
async def test_cancel_booking_returns_new_status() -> None:
    coordinator = RecordingCoordinator(_booking(BookingStatus.CONFIRMED))

    result = await router.cancel_booking(
        booking_id=100,
        coordinator=cast(ReservationCoordinator, coordinator),
        identity=UserIdentity(id="user-200"),
    )

    assert result.status == BookingStatus.CANCELLED
    assert coordinator.calls == [("cancel", 100)]
