"""Catalog models: cinemas, rooms, seats and showings.

The catalog is read-only from the reservation core's point of view.
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.clock import utcnow
from boxoffice.models.base import Base, new_id

if TYPE_CHECKING:
    from boxoffice.models.price_rule import PriceRule


class SeatType(str, enum.Enum):
    """Seat type enum."""

    STANDARD = "STANDARD"
    VIP = "VIP"
    COUPLE = "COUPLE"
    ACCESSIBLE = "ACCESSIBLE"


class Cinema(Base):
    """A cinema; price rules may be scoped to one."""

    __tablename__ = "cinemas"

    cinema_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    rooms: Mapped[list["Room"]] = relationship("Room", back_populates="cinema")
    price_rules: Mapped[list["PriceRule"]] = relationship(
        "PriceRule", back_populates="cinema"
    )


class Room(Base):
    """A screening room inside a cinema."""

    __tablename__ = "rooms"

    room_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    cinema_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("cinemas.cinema_id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    cinema: Mapped["Cinema"] = relationship("Cinema", back_populates="rooms")
    seats: Mapped[list["Seat"]] = relationship("Seat", back_populates="room")

    __table_args__ = (Index("idx_room_cinema", "cinema_id"),)


class Seat(Base):
    """A physical seat in a room."""

    __tablename__ = "seats"

    seat_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    room_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("rooms.room_id"), nullable=False
    )
    row_label: Mapped[str] = mapped_column(String(5), nullable=False)
    seat_number: Mapped[int] = mapped_column(Integer, nullable=False)
    seat_type: Mapped[SeatType] = mapped_column(Enum(SeatType), default=SeatType.STANDARD)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    room: Mapped["Room"] = relationship("Room", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("room_id", "row_label", "seat_number", name="uk_room_seat"),
    )

    @property
    def label(self) -> str:
        return f"{self.row_label}{self.seat_number}"


class Showing(Base):
    """A scheduled screening of a movie in a room."""

    __tablename__ = "showings"

    showing_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    room_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("rooms.room_id"), nullable=False
    )
    movie_title: Mapped[str] = mapped_column(String(255), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    room: Mapped["Room"] = relationship("Room")

    __table_args__ = (Index("idx_showing_start", "start_at"),)
