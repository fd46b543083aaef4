"""Payment schemas."""

from datetime import datetime

from pydantic import Field

from boxoffice.models.payment import PaymentProvider, PaymentStatus
from boxoffice.schemas.common import BaseSchema


class PaymentCreate(BaseSchema):
    """Schema for starting a payment."""

    booking_id: str
    return_url: str | None = Field(None, max_length=500)


class PaymentEventResponse(BaseSchema):
    event_id: str
    event_type: str
    created_at: datetime


class PaymentResponse(BaseSchema):
    """Schema for payment response."""

    payment_id: str
    booking_id: str
    provider: PaymentProvider
    amount_minor: int
    currency: str
    status: PaymentStatus
    provider_txn_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class PaymentDetailResponse(PaymentResponse):
    events: list[PaymentEventResponse] = []


class PaymentInitiationResponse(BaseSchema):
    """Payment plus the gateway URL to redirect the customer to."""

    payment: PaymentResponse
    payment_url: str


class IpnAcknowledgement(BaseSchema):
    """Reply body VNPay expects from the notification endpoint."""

    RspCode: str
    Message: str
