"""
Seat model: one bookable position in one show and its hold/booking state.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint, DateTime, Enum, Index, Integer, Numeric, String,
    UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SeatStatus(str, enum.Enum):
    """Enumeration for seat status. Values are the wire-level strings."""
    AVAILABLE = "available"
    RESERVED = "reserved"
    BOOKED = "booked"


class Seat(Base):
    """Seat model for a show's seat map."""

    __tablename__ = "seats"

    # Shows live in an external catalog; only the identifier is stored
    show_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True
    )

    # Seat location information
    section: Mapped[str] = mapped_column(String(50), nullable=False)
    row: Mapped[str] = mapped_column(String(10), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Fixed at creation
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal('0.00')
    )

    status: Mapped[SeatStatus] = mapped_column(
        Enum(SeatStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=16),
        default=SeatStatus.AVAILABLE,
        nullable=False,
        index=True
    )

    holder: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    reserved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    booked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    # Bumped on every state transition
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "show_id", "section", "row", "number",
            name="uq_seats_show_location"
        ),
        CheckConstraint("price >= 0", name="ck_seats_price_non_negative"),
        CheckConstraint("version > 0", name="ck_seats_version_positive"),
        CheckConstraint(
            "(status = 'available' AND holder IS NULL AND reserved_at IS NULL "
            "AND expires_at IS NULL AND booked_at IS NULL) OR "
            "(status = 'reserved' AND holder IS NOT NULL AND reserved_at IS NOT NULL "
            "AND expires_at IS NOT NULL AND booked_at IS NULL) OR "
            "(status = 'booked' AND holder IS NULL AND reserved_at IS NULL "
            "AND expires_at IS NULL AND booked_at IS NOT NULL)",
            name="ck_seats_state_fields"
        ),
        Index("ix_seats_show_status_expires", "show_id", "status", "expires_at"),
    )

    @property
    def is_available(self) -> bool:
        """Check if the seat can be held."""
        return self.status == SeatStatus.AVAILABLE

    def is_held_by(self, user_id: str) -> bool:
        return self.status == SeatStatus.RESERVED and self.holder == user_id

    def hold_expired(self, now: datetime) -> bool:
        return (
            self.status == SeatStatus.RESERVED
            and self.expires_at is not None
            and self.expires_at <= now
        )

    @property
    def seat_identifier(self) -> str:
        """Get a human-readable seat identifier."""
        return f"{self.section}-{self.row}{self.number}"

    def __repr__(self) -> str:
        return (
            f"<Seat(id={self.id}, show_id={self.show_id}, "
            f"location='{self.seat_identifier}', status={self.status.value})>"
        )
