"""
Reservation orchestrator.

Drives a booking through Drafted -> PaymentPending -> Confirmed, or to
Canceled / Expired. The ``seat_claims`` primary key on (showing_id, seat_id)
is the single arbiter of who gets a seat; seat leases and drafts in Redis only
shape the user experience around it.
"""

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from boxoffice.clock import Clock, utcnow
from boxoffice.config import get_settings
from boxoffice.drafts import CustomerContact, DraftStore, ReservationDraft
from boxoffice.errors import (
    ConflictError,
    NotFoundError,
    TransientInfrastructureError,
    ValidationError,
    returns_result,
)
from boxoffice.models.booking import (
    Booking,
    BookingItem,
    BookingItemStatus,
    BookingStatus,
    SeatClaim,
    Ticket,
)
from boxoffice.notifications import SeatEventBroadcaster
from boxoffice.services.catalog_service import CatalogService
from boxoffice.services.pricing_service import PriceResolver
from boxoffice.services.seat_lock_service import SeatLockManager

settings = get_settings()
logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
BOOKING_CODE_LENGTH = 8
TICKET_CODE_LENGTH = 10
CODE_ATTEMPTS = 10


def lease_owner_for(user_id: str | None, session_id: str | None) -> str:
    """Lease owner for a caller; anonymous checkouts are keyed by session."""
    if user_id:
        return user_id
    if session_id:
        return f"anon:{session_id}"
    raise ValidationError("A user id or session id is required")


class ReservationOrchestrator:
    """State machine for the reservation lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        seat_locks: SeatLockManager,
        drafts: DraftStore,
        broadcaster: SeatEventBroadcaster | None = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.seat_locks = seat_locks
        self.drafts = drafts
        self.broadcaster = broadcaster
        self.clock = clock
        self.catalog = CatalogService(db)
        self.pricing = PriceResolver(db)

    # ------------------------------------------------------------------
    # Create (Selecting -> Drafted)
    # ------------------------------------------------------------------

    @returns_result
    async def create_reservation(
        self,
        showing_id: str,
        seat_ids: list[str],
        *,
        owner_id: str | None = None,
        session_id: str | None = None,
        customer: CustomerContact | None = None,
    ) -> Booking:
        """
        Price the seats, insert a Pending booking and write the draft.

        Args:
            showing_id: Showing to book
            seat_ids: Seats in display order
            owner_id: Authenticated user, if any
            session_id: Anonymous session, used when there is no user
            customer: Contact details snapshot

        Returns:
            The Pending booking; its id is the draft id
        """
        if not seat_ids:
            raise ValidationError("At least one seat is required")
        if len(set(seat_ids)) != len(seat_ids):
            raise ValidationError("Duplicate seats in request")
        if len(seat_ids) > settings.MAX_SEATS_PER_BOOKING:
            raise ValidationError(
                f"Cannot book more than {settings.MAX_SEATS_PER_BOOKING} seats"
            )
        lease_owner = lease_owner_for(owner_id, session_id)

        now = self.clock()
        showing = await self.catalog.get_showing(showing_id)
        if showing is None:
            raise ValidationError(f"Showing {showing_id} not found")
        if showing.start_at <= now:
            raise ValidationError("Showing has already started")

        found = {seat.seat_id: seat for seat in await self.catalog.get_seats(seat_ids)}
        seats = []
        for seat_id in seat_ids:
            seat = found.get(seat_id)
            if seat is None or seat.room_id != showing.room_id:
                raise ValidationError(f"Seat {seat_id} does not belong to this showing")
            if not seat.is_active:
                raise ValidationError(f"Seat {seat.label} is not available for sale")
            seats.append(seat)

        held = await self.seat_locks.held_by_others(showing_id, lease_owner, seat_ids)
        if held:
            raise ConflictError(f"Seats {held} are held by another customer")

        quote_set = await self.pricing.quote_for(showing, seats)

        await self._release_lapsed_claims(showing_id, seat_ids, now)

        hold_expires_at = now + timedelta(seconds=settings.DRAFT_TTL_SECONDS)
        contact = customer.model_dump_json() if customer else None

        for attempt in range(1, CODE_ATTEMPTS + 1):
            booking = Booking(
                code=await self._generate_code(Booking.code, BOOKING_CODE_LENGTH),
                user_id=owner_id,
                lease_owner=lease_owner,
                showing_id=showing_id,
                status=BookingStatus.PENDING,
                total_amount=quote_set.total,
                currency=settings.CURRENCY,
                customer_contact=contact,
                hold_expires_at=hold_expires_at,
                created_at=now,
                items=[
                    BookingItem(
                        position=position,
                        showing_id=showing_id,
                        seat_id=quote.seat_id,
                        unit_price=quote.unit_price,
                        price_category=quote.seat_type.value,
                        status=BookingItemStatus.PENDING,
                        created_at=now,
                    )
                    for position, quote in enumerate(quote_set.quotes)
                ],
            )
            booking_code = booking.code
            try:
                self.db.add(booking)
                await self.db.flush()  # Get booking_id
                booking_id = booking.booking_id
                for seat_id in seat_ids:
                    self.db.add(
                        SeatClaim(
                            showing_id=showing_id,
                            seat_id=seat_id,
                            booking_id=booking_id,
                            created_at=now,
                        )
                    )
                await self.db.commit()
                break
            except IntegrityError as e:
                await self.db.rollback()
                if await self._claimed_seat_ids(showing_id, seat_ids):
                    logger.info(
                        f"Seat conflict creating booking for showing {showing_id}: {e.orig}"
                    )
                    raise ConflictError(
                        "One or more seats were just booked by someone else"
                    ) from e
                # The seats are free, so the booking code collided
                logger.warning(
                    f"Booking code {booking_code} already taken "
                    f"(attempt {attempt}/{CODE_ATTEMPTS})"
                )
        else:
            raise TransientInfrastructureError("Could not allocate a booking code, retry")

        logger.info(
            f"Booking {booking_id} ({booking_code}) drafted for {lease_owner}: "
            f"{len(seat_ids)} seats, total {quote_set.total}"
        )

        try:
            lock_result = await self.seat_locks.lock_seats(
                showing_id, lease_owner, seat_ids, settings.DRAFT_TTL_SECONDS
            )
            if lock_result.skipped_seat_ids:
                logger.warning(
                    f"Booking {booking_id} holds seats {lock_result.skipped_seat_ids} "
                    f"leased by another owner"
                )
            await self.drafts.create(
                ReservationDraft(
                    draft_id=booking_id,
                    owner_id=owner_id,
                    lease_owner=lease_owner,
                    showing_id=showing_id,
                    seat_ids=list(seat_ids),
                    unit_prices=[q.unit_price for q in quote_set.quotes],
                    total_amount=quote_set.total,
                    currency=settings.CURRENCY,
                    customer_contact=contact,
                    created_at=now,
                ),
                settings.DRAFT_TTL_SECONDS,
            )
        except TransientInfrastructureError as e:
            logger.warning(f"Booking {booking_id} committed without draft: {e}")

        return await self._load_booking(booking_id)

    # ------------------------------------------------------------------
    # Pay (Drafted -> PaymentPending)
    # ------------------------------------------------------------------

    @returns_result
    async def begin_payment(
        self,
        booking_id: str,
        requester: str | None = None,
    ) -> Booking:
        """
        Stretch the hold to cover the payment round trip.

        The durable hold is extended or the call fails; lease and draft
        extensions are best effort.
        """
        booking = await self._load_booking(booking_id)
        if booking is None or (requester is not None and booking.lease_owner != requester):
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status != BookingStatus.PENDING:
            raise ConflictError(f"Booking is {booking.status.value}, not PENDING")

        now = self.clock()
        if booking.hold_expires_at <= now:
            await self._expire(booking_id, now)
            raise ConflictError("Booking hold has expired")

        new_hold = now + timedelta(seconds=settings.PAYMENT_HOLD_TTL_SECONDS)
        result = await self.db.execute(
            update(Booking)
            .where(self._still_pending(booking_id, now))
            .values(hold_expires_at=new_hold, updated_at=now)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise ConflictError("Booking is no longer pending")
        await self.db.commit()

        seat_ids = [item.seat_id for item in booking.items]
        try:
            if not await self.drafts.extend(booking_id, settings.PAYMENT_HOLD_TTL_SECONDS):
                logger.warning(f"Draft {booking_id} is gone; payment continues on the booking hold")
        except TransientInfrastructureError as e:
            logger.warning(f"Could not extend draft {booking_id}: {e}")
        try:
            extended = await self.seat_locks.extend_seats(
                booking.showing_id,
                booking.lease_owner,
                seat_ids,
                settings.PAYMENT_HOLD_TTL_SECONDS,
            )
            if extended.skipped_seat_ids:
                logger.warning(
                    f"Seat leases {extended.skipped_seat_ids} for booking {booking_id} "
                    f"were lost before payment"
                )
        except TransientInfrastructureError as e:
            logger.warning(f"Could not extend seat leases for {booking_id}: {e}")

        return await self._load_booking(booking_id)

    # ------------------------------------------------------------------
    # Confirm (PaymentPending -> Confirmed)
    # ------------------------------------------------------------------

    @returns_result
    async def confirm(self, booking_id: str) -> Booking:
        """
        Promote a Pending booking to Confirmed and issue tickets.

        Confirming an already Confirmed booking returns it unchanged.
        """
        booking = await self._load_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status == BookingStatus.CONFIRMED:
            return booking
        if booking.status != BookingStatus.PENDING:
            raise ConflictError(f"Booking is {booking.status.value}, cannot confirm")

        now = self.clock()
        if booking.hold_expires_at <= now:
            await self._expire(booking_id, now)
            raise ConflictError("Booking hold has expired")

        result = await self.db.execute(
            update(Booking)
            .where(self._still_pending(booking_id, now))
            .values(status=BookingStatus.CONFIRMED, confirmed_at=now, updated_at=now)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            booking = await self._load_booking(booking_id)
            if booking is not None and booking.status == BookingStatus.CONFIRMED:
                return booking
            raise ConflictError("Booking is no longer pending")

        issued: set[str] = set()
        for item in booking.items:
            item.status = BookingItemStatus.CONFIRMED
            code = await self._generate_code(Ticket.code, TICKET_CODE_LENGTH, exclude=issued)
            issued.add(code)
            self.db.add(
                Ticket(
                    booking_id=booking_id,
                    item_id=item.item_id,
                    showing_id=item.showing_id,
                    seat_id=item.seat_id,
                    code=code,
                    issued_at=now,
                )
            )
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            booking = await self._load_booking(booking_id)
            if booking is not None and booking.status == BookingStatus.CONFIRMED:
                return booking
            raise TransientInfrastructureError("Could not issue tickets, retry confirm") from e

        booking = await self._load_booking(booking_id)
        logger.info(f"Booking {booking_id} confirmed with {len(booking.tickets)} tickets")

        seat_ids = [item.seat_id for item in booking.items]
        await self._discard_ephemeral(
            booking_id, booking.showing_id, booking.lease_owner, seat_ids
        )
        if self.broadcaster is not None:
            try:
                self.broadcaster.fire(
                    booking.showing_id,
                    {
                        "action": "booking_confirmed",
                        "showing_id": booking.showing_id,
                        "booking_id": booking_id,
                        "seat_ids": seat_ids,
                    },
                )
            except Exception as e:
                logger.warning(f"Could not schedule booking_confirmed for {booking_id}: {e}")
        return booking

    # ------------------------------------------------------------------
    # Cancel (Drafted/PaymentPending -> Canceled)
    # ------------------------------------------------------------------

    @returns_result
    async def cancel(self, booking_id: str, requester: str) -> Booking:
        """Cancel the requester's Pending booking and free its seats."""
        booking = await self._load_booking(booking_id)
        if booking is None or booking.lease_owner != requester:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status != BookingStatus.PENDING:
            raise ConflictError(f"Booking is {booking.status.value}, cannot cancel")

        now = self.clock()
        if booking.hold_expires_at <= now:
            await self._expire(booking_id, now)
            raise ConflictError("Booking hold has already expired")

        result = await self.db.execute(
            update(Booking)
            .where(self._still_pending(booking_id, now))
            .values(status=BookingStatus.CANCELED, updated_at=now)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise ConflictError("Booking is no longer pending")

        for item in booking.items:
            item.status = BookingItemStatus.CANCELED
        await self.db.execute(delete(SeatClaim).where(SeatClaim.booking_id == booking_id))
        await self.db.commit()

        booking = await self._load_booking(booking_id)
        logger.info(f"Booking {booking_id} canceled by {requester}")
        await self._discard_ephemeral(
            booking_id,
            booking.showing_id,
            booking.lease_owner,
            [item.seat_id for item in booking.items],
        )
        return booking

    # ------------------------------------------------------------------
    # Expire
    # ------------------------------------------------------------------

    async def expire_stale_bookings(self, limit: int = 100) -> int:
        """
        Expire Pending bookings whose hold elapsed.

        Returns:
            Number of bookings expired
        """
        now = self.clock()
        result = await self.db.execute(
            select(Booking.booking_id)
            .where(
                and_(
                    Booking.status == BookingStatus.PENDING,
                    Booking.hold_expires_at <= now,
                )
            )
            .order_by(Booking.hold_expires_at)
            .limit(limit)
        )
        count = 0
        for booking_id in list(result.scalars().all()):
            if await self._expire(booking_id, now):
                count += 1
        return count

    async def _expire(self, booking_id: str, now: datetime) -> bool:
        """Move a lapsed Pending booking to Expired and free its claims."""
        booking = await self._load_booking(booking_id)
        if booking is None:
            return False
        showing_id = booking.showing_id
        lease_owner = booking.lease_owner
        seat_ids = [item.seat_id for item in booking.items]

        result = await self.db.execute(
            update(Booking)
            .where(
                and_(
                    Booking.booking_id == booking_id,
                    Booking.status == BookingStatus.PENDING,
                    Booking.hold_expires_at <= now,
                )
            )
            .values(status=BookingStatus.EXPIRED, updated_at=now)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            return False

        await self.db.execute(
            update(BookingItem)
            .where(BookingItem.booking_id == booking_id)
            .values(status=BookingItemStatus.EXPIRED)
        )
        await self.db.execute(delete(SeatClaim).where(SeatClaim.booking_id == booking_id))
        await self.db.commit()
        logger.info(f"Booking {booking_id} expired")

        await self._discard_ephemeral(booking_id, showing_id, lease_owner, seat_ids)
        return True

    async def _release_lapsed_claims(
        self,
        showing_id: str,
        seat_ids: list[str],
        now: datetime,
    ) -> None:
        """Expire Pending bookings whose elapsed hold still claims any of these seats."""
        result = await self.db.execute(
            select(SeatClaim.booking_id)
            .join(Booking, SeatClaim.booking_id == Booking.booking_id)
            .where(
                and_(
                    SeatClaim.showing_id == showing_id,
                    SeatClaim.seat_id.in_(seat_ids),
                    Booking.status == BookingStatus.PENDING,
                    Booking.hold_expires_at <= now,
                )
            )
            .distinct()
        )
        for booking_id in list(result.scalars().all()):
            await self._expire(booking_id, now)

    async def _claimed_seat_ids(self, showing_id: str, seat_ids: list[str]) -> list[str]:
        result = await self.db.execute(
            select(SeatClaim.seat_id).where(
                and_(SeatClaim.showing_id == showing_id, SeatClaim.seat_id.in_(seat_ids))
            )
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: str) -> Booking | None:
        return await self._load_booking(booking_id)

    async def get_booking_by_code(self, code: str) -> Booking | None:
        """Get booking by its human-readable code."""
        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.items), selectinload(Booking.tickets))
            .where(Booking.code == code.upper())
        )
        return result.scalar_one_or_none()

    async def list_bookings(
        self,
        owner: str,
        status: BookingStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """Get an owner's bookings, newest first."""
        query = select(Booking).where(Booking.lease_owner == owner)
        if status:
            query = query.where(Booking.status == status)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = (
            query.options(selectinload(Booking.items), selectinload(Booking.tickets))
            .order_by(Booking.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_booking(self, booking_id: str) -> Booking | None:
        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.items), selectinload(Booking.tickets))
            .where(Booking.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _still_pending(booking_id: str, now: datetime) -> ColumnElement[bool]:
        return and_(
            Booking.booking_id == booking_id,
            Booking.status == BookingStatus.PENDING,
            Booking.hold_expires_at > now,
        )

    async def _generate_code(
        self,
        column,
        length: int,
        exclude: set[str] | None = None,
    ) -> str:
        """Random code from an unambiguous alphabet, checked against existing rows."""
        for _ in range(CODE_ATTEMPTS):
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
            if exclude and code in exclude:
                continue
            existing = await self.db.execute(select(column).where(column == code))
            if existing.first() is None:
                return code
        raise TransientInfrastructureError("Could not generate a unique code")

    async def _discard_ephemeral(
        self,
        booking_id: str,
        showing_id: str,
        lease_owner: str,
        seat_ids: list[str],
    ) -> None:
        """Drop the booking's leases and draft; failures are logged only."""
        try:
            await self.seat_locks.unlock_seats(showing_id, lease_owner, seat_ids)
        except TransientInfrastructureError as e:
            logger.warning(f"Could not release seat leases for {booking_id}: {e}")
        try:
            await self.drafts.delete(booking_id)
        except TransientInfrastructureError as e:
            logger.warning(f"Could not delete draft {booking_id}: {e}")
