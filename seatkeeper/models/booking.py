"""
Booking model: the durable receipt that a seat was sold to a user.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .seat import Seat


class BookingStatus(str, enum.Enum):
    """Enumeration for booking status."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(Base):
    """One booking per sold seat."""

    __tablename__ = "bookings"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    show_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True
    )

    # 1:1 with the seat; the unique constraint backs the double-sale guard
    seat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("seats.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal('0.00')
    )

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=16),
        default=BookingStatus.CONFIRMED,
        nullable=False,
        index=True
    )

    booking_date: Mapped[datetime] = mapped_column(
        DateTime(),
        server_default=func.now(),
        nullable=False
    )

    seat: Mapped["Seat"] = relationship("Seat", lazy="joined")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_bookings_total_amount_non_negative"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == BookingStatus.CONFIRMED

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, user_id={self.user_id}, "
            f"seat_id={self.seat_id}, status={self.status.value})>"
        )
