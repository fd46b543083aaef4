"""Payment models."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.clock import utcnow
from boxoffice.models.base import Base, new_id


class PaymentProvider(str, enum.Enum):
    """Payment provider enum."""

    VNPAY = "VNPAY"
    MOMO = "MOMO"
    STRIPE = "STRIPE"


class PaymentStatus(str, enum.Enum):
    """Payment status enum."""

    INITIATED = "INITIATED"
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class Payment(Base):
    """A payment attempt for a booking."""

    __tablename__ = "payments"

    payment_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.booking_id"), nullable=False
    )
    provider: Mapped[PaymentProvider] = mapped_column(
        Enum(PaymentProvider), default=PaymentProvider.VNPAY
    )
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), default=PaymentStatus.INITIATED
    )
    provider_txn_id: Mapped[str | None] = mapped_column(String(100))
    return_url: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime)

    events: Mapped[list["PaymentEvent"]] = relationship(
        "PaymentEvent", back_populates="payment", order_by="PaymentEvent.created_at"
    )

    __table_args__ = (Index("idx_payment_booking", "booking_id", "status"),)


class PaymentEvent(Base):
    """Append-only audit record of a payment state change or callback."""

    __tablename__ = "payment_events"

    event_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    payment_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("payments.payment_id"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    raw_payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    payment: Mapped["Payment"] = relationship("Payment", back_populates="events")
