"""
SeatChangeEvent model: transactional outbox for seat-state broadcasts.
"""

import enum
import uuid
from typing import List

from sqlalchemy import JSON, BigInteger, Enum, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SeatChangeAction(str, enum.Enum):
    """What kind of mutation produced the event."""
    INITIALIZE = "initialize"
    HOLD = "hold"
    RELEASE = "release"
    CONFIRM = "confirm"
    EXPIRE = "expire"


class SeatChangeEvent(Base):
    """
    One row per committed seat mutation, written in the same transaction.

    The integer id is the outbox cursor: subscribers read rows with an id
    greater than the last one they delivered.
    """

    __tablename__ = "seat_change_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True
    )

    show_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True
    )

    action: Mapped[SeatChangeAction] = mapped_column(
        Enum(SeatChangeAction, values_callable=lambda e: [m.value for m in e], native_enum=False, length=16),
        nullable=False
    )

    seat_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return (
            f"<SeatChangeEvent(id={self.id}, show_id={self.show_id}, "
            f"action={self.action.value}, seats={len(self.seat_ids or [])})>"
        )
