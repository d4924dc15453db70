from __future__ import annotations

from datetime import date as calendar_date, datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Integer, String

# SQLite only autoincrements INTEGER primary keys.
PrimaryKey = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


def _enum_column(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda members: [e.value for e in members],
        native_enum=False,
    )


class TrekStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SlotStatus(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Bookings in these states hold seats against their slot's capacity.
LIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Trek(Base):
    __tablename__ = "treks"
    __table_args__ = (CheckConstraint("base_price >= 0", name="chk_treks_price"),)

    slug: Mapped[str] = mapped_column(String(191), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[TrekStatus] = mapped_column(
        _enum_column(TrekStatus), nullable=False, default=TrekStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slots: Mapped[list["Slot"]] = relationship(back_populates="trek")


class Slot(Base):
    __tablename__ = "trek_slots"
    __table_args__ = (
        CheckConstraint("capacity >= 0", name="chk_slots_capacity"),
        CheckConstraint("booked >= 0", name="chk_slots_booked"),
        UniqueConstraint("trek_slug", "date", name="uq_slots_trek_date"),
        Index("idx_slots_trek", "trek_slug"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    trek_slug: Mapped[str] = mapped_column(ForeignKey("treks.slug"), nullable=False)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[SlotStatus] = mapped_column(
        _enum_column(SlotStatus), nullable=False, default=SlotStatus.OPEN
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    trek: Mapped["Trek"] = relationship(back_populates="slots")
    bookings: Mapped[list["Booking"]] = relationship(back_populates="slot")


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint("discount_percent BETWEEN 1 AND 100", name="chk_vouchers_percent"),
        CheckConstraint("max_uses >= 1", name="chk_vouchers_max_uses"),
        CheckConstraint("current_uses >= 0", name="chk_vouchers_uses_floor"),
        CheckConstraint("current_uses <= max_uses", name="chk_vouchers_uses_ceiling"),
        UniqueConstraint("code", name="uq_vouchers_code"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    discount_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    minimum_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    maximum_discount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("participants >= 1", name="chk_bookings_participants"),
        Index("idx_bookings_slot", "slot_id"),
        Index("idx_bookings_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("trek_slots.id"), nullable=False)
    trek_slug: Mapped[str] = mapped_column(String(191), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    participants: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus), nullable=False, default=BookingStatus.PENDING
    )
    base_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    gst_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    voucher_id: Mapped[Optional[int]] = mapped_column(ForeignKey("vouchers.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slot: Mapped["Slot"] = relationship(back_populates="bookings")
