"""Payment initiation and gateway callback reconciliation."""

import enum
import json
import logging
from dataclasses import dataclass
from typing import Mapping

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from boxoffice.clock import Clock, utcnow
from boxoffice.errors import NotFoundError, ValidationError, returns_result
from boxoffice.gateways.vnpay import VnPayClient
from boxoffice.models.booking import Booking
from boxoffice.models.payment import Payment, PaymentEvent, PaymentProvider, PaymentStatus
from boxoffice.services.booking_service import ReservationOrchestrator

logger = logging.getLogger(__name__)


class InvalidSignatureError(ValidationError):
    """Callback signature did not verify."""


class AmountMismatchError(ValidationError):
    """Callback amount differs from the payment amount."""


class CallbackChannel(str, enum.Enum):
    """How a gateway result reached us."""

    RETURN = "return"
    IPN = "ipn"


@dataclass
class PaymentInitiation:
    payment: Payment
    payment_url: str


@dataclass
class CallbackOutcome:
    """Result of applying one gateway callback."""

    payment: Payment
    succeeded: bool
    booking: Booking | None = None

    @property
    def confirmed(self) -> bool:
        return self.booking is not None


def _payload(data: Mapping[str, str]) -> str:
    return json.dumps(dict(data), sort_keys=True, ensure_ascii=False)


async def _load_payment(db: AsyncSession, payment_id: str) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .options(selectinload(Payment.events))
        .where(Payment.payment_id == payment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class PaymentService:
    """Starts payments for Pending bookings."""

    def __init__(
        self,
        db: AsyncSession,
        orchestrator: ReservationOrchestrator,
        gateway: VnPayClient,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.gateway = gateway
        self.clock = clock

    @returns_result
    async def create_payment(
        self,
        booking_id: str,
        *,
        requester: str,
        client_ip: str,
        return_url: str | None = None,
    ) -> PaymentInitiation:
        """
        Open (or reuse) a VNPay payment for a booking.

        Starting a payment extends the booking hold; an existing Pending
        payment for the same booking is reused rather than duplicated.
        """
        paid = await self.orchestrator.begin_payment(booking_id, requester)
        booking = paid.unwrap()

        result = await self.db.execute(
            select(Payment)
            .where(
                and_(
                    Payment.booking_id == booking_id,
                    Payment.status == PaymentStatus.PENDING,
                )
            )
            .order_by(Payment.created_at.desc())
        )
        payment = result.scalars().first()

        now = self.clock()
        if payment is None:
            payment = Payment(
                booking_id=booking_id,
                provider=PaymentProvider.VNPAY,
                amount_minor=booking.total_amount,
                currency=booking.currency,
                status=PaymentStatus.INITIATED,
                return_url=return_url,
                created_at=now,
            )
            self.db.add(payment)
            await self.db.flush()  # Get payment_id
            self.db.add(
                PaymentEvent(
                    payment_id=payment.payment_id,
                    event_type="created",
                    raw_payload=_payload(
                        {"booking_id": booking_id, "amount_minor": str(booking.total_amount)}
                    ),
                    created_at=now,
                )
            )
        else:
            logger.info(f"Reusing pending payment {payment.payment_id} for booking {booking_id}")

        url = self.gateway.build_redirect_url(
            reference=payment.payment_id,
            amount_minor=payment.amount_minor,
            description=f"Payment for booking {booking.code}",
            client_ip=client_ip,
            return_url=return_url or payment.return_url,
            created_at=now,
        )
        payment.status = PaymentStatus.PENDING
        payment.updated_at = now
        await self.db.commit()

        return PaymentInitiation(payment=payment, payment_url=url)

    async def get_payment(self, payment_id: str) -> Payment | None:
        """Get payment by ID with its event log."""
        return await _load_payment(self.db, payment_id)


class PaymentReconciler:
    """
    Applies gateway callbacks to payments and bookings.

    Return redirects and server notifications share ``handle_callback``, so a
    result delivered on both channels, or delivered twice, has one effect.
    """

    def __init__(
        self,
        db: AsyncSession,
        orchestrator: ReservationOrchestrator,
        gateway: VnPayClient,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.gateway = gateway
        self.clock = clock

    @returns_result
    async def handle_callback(
        self,
        params: Mapping[str, str],
        channel: CallbackChannel,
    ) -> CallbackOutcome:
        """
        Verify, record and apply one gateway callback.

        Raises (as a failed Result):
            InvalidSignatureError: Signature missing or wrong
            ValidationError: No transaction reference
            NotFoundError: Unknown payment
            AmountMismatchError: Amount differs from the payment
        """
        if not self.gateway.verify(params):
            logger.warning(f"Rejected {channel.value} callback with a bad signature")
            raise InvalidSignatureError("Invalid payment signature")

        data = self.gateway.response_data(params)
        reference = data.get("vnp_TxnRef")
        if not reference:
            raise ValidationError("Missing transaction reference")

        payment = await _load_payment(self.db, reference)
        if payment is None:
            raise NotFoundError(f"Payment {reference} not found")

        now = self.clock()
        self.db.add(
            PaymentEvent(
                payment_id=payment.payment_id,
                event_type=f"{channel.value}_received",
                raw_payload=_payload(data),
                created_at=now,
            )
        )
        await self.db.commit()

        amount = data.get("vnp_Amount", "")
        if not amount.isdigit() or int(amount) != payment.amount_minor:
            logger.warning(
                f"Payment {reference} callback amount {amount!r} != {payment.amount_minor}"
            )
            raise AmountMismatchError("Payment amount does not match")

        if not self.gateway.is_success(data):
            await self._mark_failed(payment.payment_id, now)
            return CallbackOutcome(
                payment=await _load_payment(self.db, reference), succeeded=False
            )

        await self._mark_succeeded(payment.payment_id, data.get("vnp_TransactionNo"), now)

        confirmed = await self.orchestrator.confirm(payment.booking_id)
        if not confirmed.is_ok:
            # Money was taken but the seats are gone; recorded for manual follow-up
            logger.error(
                f"Payment {reference} succeeded but booking {payment.booking_id} "
                f"was not confirmed: {confirmed.error.message}"
            )
            self.db.add(
                PaymentEvent(
                    payment_id=payment.payment_id,
                    event_type="confirm_rejected",
                    raw_payload=_payload(
                        {"kind": confirmed.kind.value, "message": confirmed.error.message}
                    ),
                    created_at=now,
                )
            )
            await self.db.commit()
            return CallbackOutcome(
                payment=await _load_payment(self.db, reference), succeeded=True
            )

        return CallbackOutcome(
            payment=await _load_payment(self.db, reference),
            succeeded=True,
            booking=confirmed.value,
        )

    async def _mark_succeeded(self, payment_id: str, provider_txn_id: str | None, now) -> None:
        result = await self.db.execute(
            update(Payment)
            .where(
                and_(
                    Payment.payment_id == payment_id,
                    Payment.status != PaymentStatus.SUCCEEDED,
                )
            )
            .values(
                status=PaymentStatus.SUCCEEDED,
                provider_txn_id=provider_txn_id,
                updated_at=now,
            )
        )
        await self.db.commit()
        if result.rowcount:
            logger.info(f"Payment {payment_id} succeeded")

    async def _mark_failed(self, payment_id: str, now) -> None:
        result = await self.db.execute(
            update(Payment)
            .where(
                and_(
                    Payment.payment_id == payment_id,
                    Payment.status == PaymentStatus.PENDING,
                )
            )
            .values(status=PaymentStatus.FAILED, updated_at=now)
        )
        await self.db.commit()
        if result.rowcount:
            logger.info(f"Payment {payment_id} failed")
