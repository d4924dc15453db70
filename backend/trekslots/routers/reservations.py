from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ..deps import get_coordinator, get_current_identity, require_admin
from ..domain.identity import UserIdentity
from ..schemas import BookingCreate, BookingRead
from ..usecases.reservations import ReservationCoordinator, ReservationRequest

router = APIRouter(prefix="", tags=["bookings"])


@router.post("/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    coordinator: ReservationCoordinator = Depends(get_coordinator),
    identity: UserIdentity = Depends(get_current_identity),
) -> BookingRead:
    request = ReservationRequest(
        trek_slug=payload.trek_slug,
        slot_id=payload.slot_id,
        user_id=identity.id,
        participants=payload.participants,
        voucher_code=payload.voucher_code,
    )
    booking = await coordinator.reserve(request, identity)
    return BookingRead.from_db(booking=booking)


@router.get("/me/bookings", response_model=List[BookingRead])
async def list_my_bookings(
    coordinator: ReservationCoordinator = Depends(get_coordinator),
    identity: UserIdentity = Depends(get_current_identity),
) -> list[BookingRead]:
    bookings = await coordinator.list_bookings(identity, user_id=identity.id)
    return [BookingRead.from_db(booking=booking) for booking in bookings]


@router.get("/me/bookings/{booking_id}", response_model=BookingRead)
async def get_my_booking(
    booking_id: int = Path(..., ge=1),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
    identity: UserIdentity = Depends(get_current_identity),
) -> BookingRead:
    booking = await coordinator.get_booking(booking_id, identity)
    return BookingRead.from_db(booking=booking)


@router.post("/me/bookings/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: int = Path(..., ge=1),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
    identity: UserIdentity = Depends(get_current_identity),
) -> BookingRead:
    booking = await coordinator.cancel(booking_id, identity)
    return BookingRead.from_db(booking=booking)


@router.post("/bookings/{booking_id}/confirm", response_model=BookingRead)
async def confirm_booking(
    booking_id: int = Path(..., ge=1),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
    admin: UserIdentity = Depends(require_admin),
) -> BookingRead:
    booking = await coordinator.confirm(booking_id, admin)
    return BookingRead.from_db(booking=booking)


@router.post("/bookings/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    booking_id: int = Path(..., ge=1),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
    admin: UserIdentity = Depends(require_admin),
) -> BookingRead:
    booking = await coordinator.complete(booking_id, admin)
    return BookingRead.from_db(booking=booking)


@router.get("/bookings", response_model=List[BookingRead])
async def list_bookings(
    user_id: Optional[str] = Query(default=None, min_length=1),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
    admin: UserIdentity = Depends(require_admin),
) -> list[BookingRead]:
    bookings = await coordinator.list_bookings(admin, user_id=user_id)
    return [BookingRead.from_db(booking=booking) for booking in bookings]
