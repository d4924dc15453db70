from datetime import date as calendar_date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from .models import Booking, BookingStatus, SlotStatus
from .usecases.slots import ReconcileResult, SlotAvailabilityView
from .usecases.vouchers import VoucherQuote


class SlotAvailability(BaseModel):
    slot_id: int
    trek_slug: str
    date: calendar_date
    capacity: int
    booked: int
    available: int
    status: SlotStatus

    @classmethod
    def from_view(cls, view: SlotAvailabilityView) -> "SlotAvailability":
        return cls(
            slot_id=view.slot.id,
            trek_slug=view.slot.trek_slug,
            date=view.slot.date,
            capacity=view.slot.capacity,
            booked=view.reserved,
            available=view.available,
            status=view.slot.status,
        )


class SlotCreate(BaseModel):
    date: calendar_date
    capacity: int = Field(ge=0)
    status: SlotStatus = SlotStatus.OPEN


class SlotUpdate(BaseModel):
    date: Optional[calendar_date] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    status: Optional[SlotStatus] = None


class SeatCount(BaseModel):
    slot_id: int
    available: int


class ReconcileRead(BaseModel):
    slot_id: int
    trek_slug: str
    date: calendar_date
    capacity: int
    old_booked: int
    new_booked: int
    available: int
    drifted: bool

    @classmethod
    def from_result(cls, result: ReconcileResult) -> "ReconcileRead":
        return cls(
            slot_id=result.slot_id,
            trek_slug=result.trek_slug,
            date=result.date,
            capacity=result.capacity,
            old_booked=result.old_booked,
            new_booked=result.new_booked,
            available=result.available,
            drifted=result.drifted,
        )


class ReconcileRequest(BaseModel):
    trek_slug: Optional[str] = None


class BookingCreate(BaseModel):
    trek_slug: str = Field(min_length=1)
    slot_id: int = Field(ge=1)
    participants: int
    voucher_code: Optional[str] = Field(default=None, max_length=64)


class BookingRead(BaseModel):
    booking_id: int
    slot_id: int
    trek_slug: str
    user_id: str
    participants: int
    status: BookingStatus
    base_amount: int
    gst_amount: int
    discount_amount: int
    total_amount: int
    voucher_id: Optional[int]
    created_at: datetime

    @classmethod
    def from_db(cls, *, booking: Booking) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            slot_id=booking.slot_id,
            trek_slug=booking.trek_slug,
            user_id=booking.user_id,
            participants=booking.participants,
            status=booking.status,
            base_amount=booking.base_amount,
            gst_amount=booking.gst_amount,
            discount_amount=booking.discount_amount,
            total_amount=booking.total_amount,
            voucher_id=booking.voucher_id,
            created_at=booking.created_at,
        )


class VoucherCheck(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    amount: int = Field(gt=0)


class VoucherQuoteRead(BaseModel):
    valid: bool = True
    code: str
    discount_percent: int
    discount_amount: int
    final_amount: int

    @classmethod
    def from_quote(cls, quote: VoucherQuote) -> "VoucherQuoteRead":
        return cls(
            code=quote.code,
            discount_percent=quote.discount_percent,
            discount_amount=quote.discount_amount,
            final_amount=quote.final_amount,
        )
