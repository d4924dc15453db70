from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..models import SlotStatus, TrekStatus, Voucher
from .errors import (
    InsufficientCapacity,
    InvariantViolation,
    SlotUnavailable,
    ValidationError,
    VoucherBelowMinimum,
    VoucherExhausted,
    VoucherExpired,
    VoucherNotFound,
    VoucherUserMismatch,
)
from .pricing import voucher_discount


@dataclass(frozen=True)
class SlotSnapshot:
    status: SlotStatus
    trek_status: TrekStatus
    capacity: int
    reserved: int


@dataclass(frozen=True)
class VoucherSnapshot:
    code: str
    discount_percent: int
    minimum_amount: Optional[int]
    maximum_discount: Optional[int]
    valid_until: datetime
    max_uses: int
    current_uses: int
    is_active: bool
    is_used: bool
    user_id: Optional[str]

    @classmethod
    def from_model(cls, voucher: Voucher) -> "VoucherSnapshot":
        return cls(
            code=voucher.code,
            discount_percent=voucher.discount_percent,
            minimum_amount=voucher.minimum_amount,
            maximum_discount=voucher.maximum_discount,
            valid_until=voucher.valid_until,
            max_uses=voucher.max_uses,
            current_uses=voucher.current_uses,
            is_active=voucher.is_active,
            is_used=voucher.is_used,
            user_id=voucher.user_id,
        )


def validate_participants(participants: int, *, max_participants: int) -> None:
    if participants < 1:
        raise ValidationError("participants must be at least 1", participants=participants)
    if participants > max_participants:
        raise ValidationError(
            f"participants must not exceed {max_participants}", participants=participants
        )


def available_seats(capacity: int, reserved: int) -> int:
    """
    Seats left on a slot. Counts must be non-negative; a capacity shrunk
    below what is already reserved leaves zero seats rather than a negative
    number.
    """
    if capacity < 0 or reserved < 0:
        raise InvariantViolation(
            "slot counts must not be negative", capacity=capacity, reserved=reserved
        )
    return max(0, capacity - reserved)


def validate_reservation(snapshot: SlotSnapshot, *, participants: int) -> int:
    """
    Pure validation: ensures the slot is bookable and has room for the party.
    Returns remaining capacity after booking if OK. Raises domain errors otherwise.
    """
    if snapshot.trek_status != TrekStatus.ACTIVE:
        raise SlotUnavailable("trek is not active")
    if snapshot.status != SlotStatus.OPEN:
        raise SlotUnavailable("slot is not open")

    remaining = available_seats(snapshot.capacity, snapshot.reserved)
    if participants > remaining:
        raise InsufficientCapacity(
            "not enough seats left on this departure",
            requested=participants,
            available=remaining,
        )
    return remaining - participants


def is_exhausted(voucher: VoucherSnapshot) -> bool:
    return voucher.is_used or voucher.current_uses >= voucher.max_uses


def validate_voucher(
    voucher: VoucherSnapshot | None,
    *,
    user_id: str,
    amount: int,
    now: datetime,
) -> int:
    """Check that a voucher applies to this user and pre-tax amount; return the discount."""
    if voucher is None or not voucher.is_active:
        raise VoucherNotFound("invalid voucher code")
    if is_exhausted(voucher):
        raise VoucherExhausted("this voucher has already been used", code=voucher.code)
    if voucher.valid_until < now:
        raise VoucherExpired("this voucher has expired", code=voucher.code)
    if voucher.user_id and voucher.user_id != user_id:
        raise VoucherUserMismatch("this voucher is not valid for your account", code=voucher.code)
    if voucher.minimum_amount and amount < voucher.minimum_amount:
        raise VoucherBelowMinimum(
            f"minimum order amount of {voucher.minimum_amount} required for this voucher",
            code=voucher.code,
        )
    return voucher_discount(
        amount,
        discount_percent=voucher.discount_percent,
        maximum_discount=voucher.maximum_discount,
    )
