"""Payments API endpoints."""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from boxoffice.api.v1.dependencies import (
    CurrentOwner,
    OrchestratorDep,
    PaymentReconcilerDep,
    PaymentServiceDep,
    unwrap,
)
from boxoffice.config import get_settings
from boxoffice.errors import ErrorKind
from boxoffice.schemas.payment import (
    IpnAcknowledgement,
    PaymentCreate,
    PaymentDetailResponse,
    PaymentInitiationResponse,
    PaymentResponse,
)
from boxoffice.services.payment_service import (
    AmountMismatchError,
    CallbackChannel,
    InvalidSignatureError,
)

router = APIRouter()
logger = logging.getLogger(__name__)
settings = get_settings()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


@router.post(
    "",
    response_model=PaymentInitiationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start payment",
)
async def create_payment(
    payment_data: PaymentCreate,
    request: Request,
    owner: CurrentOwner,
    payment_service: PaymentServiceDep,
) -> PaymentInitiationResponse:
    """
    Start a VNPay payment for a Pending booking.

    Extends the booking hold to cover the payment and returns the URL to
    redirect the customer to.
    """
    result = await payment_service.create_payment(
        payment_data.booking_id,
        requester=owner,
        client_ip=_client_ip(request),
        return_url=payment_data.return_url,
    )
    initiation = unwrap(result)
    return PaymentInitiationResponse(
        payment=PaymentResponse.model_validate(initiation.payment),
        payment_url=initiation.payment_url,
    )


@router.get(
    "/vnpay-return",
    summary="VNPay return redirect",
    response_class=RedirectResponse,
)
async def vnpay_return(
    request: Request,
    reconciler: PaymentReconcilerDep,
) -> RedirectResponse:
    """Apply the result carried by the customer's redirect and send them on."""
    result = await reconciler.handle_callback(
        dict(request.query_params), CallbackChannel.RETURN
    )
    reference = request.query_params.get("vnp_TxnRef", "")

    if result.is_ok and result.value.confirmed:
        outcome = result.value
        query = urlencode(
            {"paymentId": outcome.payment.payment_id, "bookingId": outcome.booking.booking_id}
        )
        return RedirectResponse(f"{settings.PAYMENT_SUCCESS_URL}?{query}")

    if result.is_ok:
        reason = "payment_failed" if not result.value.succeeded else "booking_not_confirmed"
    else:
        reason = result.kind.value.lower()
    query = urlencode({"paymentId": reference, "reason": reason})
    return RedirectResponse(f"{settings.PAYMENT_FAILURE_URL}?{query}")


@router.api_route(
    "/vnpay-ipn",
    methods=["GET", "POST"],
    response_model=IpnAcknowledgement,
    summary="VNPay server notification",
)
async def vnpay_ipn(
    request: Request,
    reconciler: PaymentReconcilerDep,
) -> IpnAcknowledgement:
    """
    Apply a server-to-server payment notification.

    Always answers 200 with the acknowledgement codes VNPay expects.
    """
    result = await reconciler.handle_callback(
        dict(request.query_params), CallbackChannel.IPN
    )
    if result.is_ok:
        return IpnAcknowledgement(RspCode="00", Message="Confirm Success")
    if isinstance(result.error, InvalidSignatureError):
        return IpnAcknowledgement(RspCode="97", Message="Invalid signature")
    if isinstance(result.error, AmountMismatchError):
        return IpnAcknowledgement(RspCode="04", Message="Invalid amount")
    if result.kind == ErrorKind.NOT_FOUND:
        return IpnAcknowledgement(RspCode="01", Message="Order not found")
    logger.error(f"IPN not applied: {result.error.message}")
    return IpnAcknowledgement(RspCode="99", Message="Unknown error")


@router.get(
    "/{payment_id}",
    response_model=PaymentDetailResponse,
    summary="Get payment",
)
async def get_payment(
    payment_id: str,
    owner: CurrentOwner,
    payment_service: PaymentServiceDep,
    orchestrator: OrchestratorDep,
) -> PaymentDetailResponse:
    """Get a payment of one of the caller's bookings, with its event log."""
    payment = await payment_service.get_payment(payment_id)
    booking = await orchestrator.get_booking(payment.booking_id) if payment else None
    if booking is None or booking.lease_owner != owner:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found",
        )
    return PaymentDetailResponse.model_validate(payment)
