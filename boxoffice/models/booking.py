"""Booking models."""

import enum
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.clock import utcnow
from boxoffice.models.base import Base, new_id


class BookingStatus(str, enum.Enum):
    """Booking status enum."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"
    REFUNDING = "REFUNDING"
    REFUNDED = "REFUNDED"


class BookingItemStatus(str, enum.Enum):
    """Booking item status enum."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class TicketStatus(str, enum.Enum):
    """Ticket status enum."""

    ISSUED = "ISSUED"
    VOID = "VOID"


class Booking(Base):
    """Booking model; its id is the reservation draft id."""

    __tablename__ = "bookings"

    booking_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(50))
    lease_owner: Mapped[str] = mapped_column(String(120), nullable=False)
    showing_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("showings.showing_id"), nullable=False
    )
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus), default=BookingStatus.PENDING
    )
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    customer_contact: Mapped[str | None] = mapped_column(Text)
    hold_expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime)

    items: Mapped[list["BookingItem"]] = relationship(
        "BookingItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingItem.position",
    )
    tickets: Mapped[list["Ticket"]] = relationship(
        "Ticket", back_populates="booking", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_booking_user", "user_id"),
        Index("idx_booking_status_hold", "status", "hold_expires_at"),
    )


class BookingItem(Base):
    """One seat of a booking with its snapshot price."""

    __tablename__ = "booking_items"

    item_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.booking_id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    showing_id: Mapped[str] = mapped_column(String(26), nullable=False)
    seat_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("seats.seat_id"), nullable=False
    )
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    price_category: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[BookingItemStatus] = mapped_column(
        Enum(BookingItemStatus), default=BookingItemStatus.PENDING
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="items")

    __table_args__ = (
        UniqueConstraint("booking_id", "seat_id", name="uk_booking_item_seat"),
        Index("idx_item_showing_seat", "showing_id", "seat_id"),
    )


class SeatClaim(Base):
    """Durable claim on a seat for a showing.

    A row exists exactly while the owning item is in a blocking status, so the
    primary key is the conflict arbiter for concurrent bookings.
    """

    __tablename__ = "seat_claims"

    showing_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    seat_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.booking_id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (Index("idx_claim_booking", "booking_id"),)


class Ticket(Base):
    """Ticket issued for a confirmed booking item."""

    __tablename__ = "tickets"

    ticket_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.booking_id"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("booking_items.item_id"), unique=True, nullable=False
    )
    showing_id: Mapped[str] = mapped_column(String(26), nullable=False)
    seat_id: Mapped[str] = mapped_column(String(26), nullable=False)
    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(Enum(TicketStatus), default=TicketStatus.ISSUED)
    issued_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="tickets")
