"""
ShowSeatMap model: one row per show whose seat map has been created.
"""

import uuid

from sqlalchemy import Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ShowSeatMap(Base):
    """
    Guard row inserted before a show's seats.

    The unique show_id makes concurrent initializers of one show queue on the
    same key; the loser gets an IntegrityError and reads the winner's map.
    """

    __tablename__ = "show_seat_maps"

    show_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        unique=True,
        nullable=False
    )

    seat_count: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<ShowSeatMap(show_id={self.show_id}, seats={self.seat_count})>"
