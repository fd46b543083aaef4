"""Tests for the reservation lifecycle."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from boxoffice.config import get_settings
from boxoffice.drafts import CustomerContact
from boxoffice.errors import ErrorKind
from boxoffice.models import (
    Booking,
    BookingItemStatus,
    BookingStatus,
    DayType,
    SeatClaim,
    Showing,
    Ticket,
)
from boxoffice.schemas.booking import BookingDetailResponse
from boxoffice.services.booking_service import ReservationOrchestrator, lease_owner_for
from boxoffice.services.catalog_service import CatalogService
from boxoffice.services.pricing_service import classify_day
from tests.conftest import seed_catalog

settings = get_settings()


@pytest.fixture
async def rival(session_factory, seat_locks, drafts, broadcaster, clock):
    """A second customer's orchestrator on its own database session."""
    async with session_factory() as session:
        yield ReservationOrchestrator(session, seat_locks, drafts, broadcaster, clock)


async def count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


class TestCreateReservation:
    @pytest.mark.asyncio
    async def test_prices_and_holds_seats(self, orchestrator, catalog, drafts, seat_locks, clock):
        seats = catalog.seats
        contact = CustomerContact(full_name="Nguyen Van A", email="a@example.com")

        result = await orchestrator.create_reservation(
            catalog.showing_id, [seats["A1"], seats["A2"]], owner_id="user-x", customer=contact
        )

        assert result.is_ok
        booking = result.value
        assert booking.status == BookingStatus.PENDING
        assert booking.total_amount == 200000
        assert [item.unit_price for item in booking.items] == [80000, 120000]
        assert booking.hold_expires_at == clock() + timedelta(seconds=settings.DRAFT_TTL_SECONDS)

        draft = await drafts.get(booking.booking_id)
        assert draft.seat_ids == [seats["A1"], seats["A2"]]
        assert draft.total_amount == 200000
        assert CustomerContact.model_validate_json(draft.customer_contact) == contact

        leases = await seat_locks.locks_of(catalog.showing_id, "user-x")
        assert set(leases) == {seats["A1"], seats["A2"]}

    @pytest.mark.asyncio
    async def test_anonymous_checkout_is_keyed_by_session(self, orchestrator, catalog):
        result = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], session_id="sess-42"
        )

        assert result.value.lease_owner == "anon:sess-42"
        assert result.value.user_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "labels",
        [[], ["A1", "A1"], ["A4"], ["B1"]],
        ids=["empty", "duplicate", "inactive-seat", "other-room"],
    )
    async def test_rejects_bad_seat_lists(self, orchestrator, catalog, db, labels):
        seat_ids = [catalog.seats[label] for label in labels]

        result = await orchestrator.create_reservation(
            catalog.showing_id, seat_ids, owner_id="user-x"
        )

        assert result.kind == ErrorKind.VALIDATION
        assert await count(db, Booking) == 0

    @pytest.mark.asyncio
    async def test_rejects_unknown_showing(self, orchestrator, catalog):
        result = await orchestrator.create_reservation(
            "missing", [catalog.seats["A1"]], owner_id="user-x"
        )

        assert result.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_rejects_started_showing(self, orchestrator, catalog, db, clock):
        showing = await db.get(Showing, catalog.showing_id)
        clock.now = showing.start_at

        result = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )

        assert result.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_requires_an_identity(self, orchestrator, catalog):
        result = await orchestrator.create_reservation(catalog.showing_id, [catalog.seats["A1"]])

        assert result.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_seat_leased_by_another_customer(self, orchestrator, catalog, seat_locks, db):
        await seat_locks.lock_seats(catalog.showing_id, "user-y", [catalog.seats["A1"]], 180)

        result = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"], catalog.seats["A3"]], owner_id="user-x"
        )

        assert result.kind == ErrorKind.CONFLICT
        assert await count(db, Booking) == 0

    @pytest.mark.asyncio
    async def test_own_lease_does_not_block(self, orchestrator, catalog, seat_locks):
        await seat_locks.lock_seats(catalog.showing_id, "user-x", [catalog.seats["A1"]], 180)

        result = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )

        assert result.is_ok

    @pytest.mark.asyncio
    async def test_booked_seat_cannot_be_sold_twice(
        self, orchestrator, rival, catalog, seat_locks, db
    ):
        seats = catalog.seats
        first = await orchestrator.create_reservation(
            catalog.showing_id, [seats["A1"]], owner_id="user-x"
        )
        assert first.is_ok
        # Lease gone, durable claim still there
        await seat_locks.unlock_seats(catalog.showing_id, "user-x", [seats["A1"]])

        second = await rival.create_reservation(
            catalog.showing_id, [seats["A1"], seats["A3"]], owner_id="user-y"
        )

        assert second.kind == ErrorKind.CONFLICT
        assert await count(db, Booking) == 1
        assert await CatalogService(db).get_booked_seat_ids(catalog.showing_id) == {seats["A1"]}
        assert await seat_locks.locks_of(catalog.showing_id, "user-y") == {}

    @pytest.mark.asyncio
    async def test_new_booking_renders_without_lazy_loads(self, orchestrator, catalog):
        result = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )

        detail = BookingDetailResponse.model_validate(result.value)

        assert detail.tickets == []
        assert [item.seat_id for item in detail.items] == [catalog.seats["A1"]]

    @pytest.mark.asyncio
    async def test_code_collision_retries_with_fresh_code(self, orchestrator, rival, catalog, db):
        first = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        taken = first.value.code

        with patch.object(
            rival, "_generate_code", AsyncMock(side_effect=[taken, "FRESH234"])
        ):
            second = await rival.create_reservation(
                catalog.showing_id, [catalog.seats["A3"]], owner_id="user-y"
            )

        assert second.is_ok
        assert second.value.code == "FRESH234"
        assert await count(db, Booking) == 2

    @pytest.mark.asyncio
    async def test_code_collisions_exhausted_are_transient(self, orchestrator, rival, catalog, db):
        first = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )

        with patch.object(
            rival, "_generate_code", AsyncMock(return_value=first.value.code)
        ):
            second = await rival.create_reservation(
                catalog.showing_id, [catalog.seats["A3"]], owner_id="user-y"
            )

        assert second.kind == ErrorKind.TRANSIENT
        assert await count(db, Booking) == 1
        assert await count(db, SeatClaim) == 1

    @pytest.mark.asyncio
    async def test_lapsed_hold_frees_seat_for_next_customer(
        self, orchestrator, rival, catalog, clock
    ):
        seat = catalog.seats["A1"]
        first = await orchestrator.create_reservation(catalog.showing_id, [seat], owner_id="user-x")
        first_id = first.value.booking_id
        clock.advance(settings.DRAFT_TTL_SECONDS + 1)

        second = await rival.create_reservation(catalog.showing_id, [seat], owner_id="user-y")

        assert second.is_ok
        expired = await orchestrator.get_booking(first_id)
        assert expired.status == BookingStatus.EXPIRED
        assert {item.status for item in expired.items} == {BookingItemStatus.EXPIRED}


class TestBeginPayment:
    @pytest.mark.asyncio
    async def test_extends_hold_draft_and_leases(self, orchestrator, catalog, drafts, seat_locks, clock):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        booking_id = created.value.booking_id
        clock.advance(60)

        result = await orchestrator.begin_payment(booking_id, "user-x")

        assert result.is_ok
        new_hold = clock() + timedelta(seconds=settings.PAYMENT_HOLD_TTL_SECONDS)
        assert result.value.hold_expires_at == new_hold
        assert drafts.expires_at(booking_id) == new_hold
        lease = (await seat_locks.locks_of(catalog.showing_id, "user-x"))[catalog.seats["A1"]]
        assert lease.expires_at == new_hold

    @pytest.mark.asyncio
    async def test_missing_draft_does_not_block_payment(self, orchestrator, catalog, drafts):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        await drafts.delete(created.value.booking_id)

        result = await orchestrator.begin_payment(created.value.booking_id, "user-x")

        assert result.is_ok

    @pytest.mark.asyncio
    async def test_other_customer_sees_not_found(self, orchestrator, catalog):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )

        result = await orchestrator.begin_payment(created.value.booking_id, "user-y")

        assert result.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_elapsed_hold_expires_booking(self, orchestrator, catalog, clock):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        clock.advance(settings.DRAFT_TTL_SECONDS)

        result = await orchestrator.begin_payment(created.value.booking_id, "user-x")

        assert result.kind == ErrorKind.CONFLICT
        booking = await orchestrator.get_booking(created.value.booking_id)
        assert booking.status == BookingStatus.EXPIRED


class TestConfirm:
    @pytest.mark.asyncio
    async def test_confirm_issues_tickets_and_releases_leases(
        self, orchestrator, catalog, seat_locks, drafts, broadcaster
    ):
        seats = catalog.seats
        created = await orchestrator.create_reservation(
            catalog.showing_id, [seats["A1"], seats["A2"]], owner_id="user-x"
        )
        booking_id = created.value.booking_id
        # Another customer cannot grab A1 while it is held
        grab = await seat_locks.lock_seats(catalog.showing_id, "user-y", [seats["A1"]], 180)
        assert grab.seat_ids == []
        await orchestrator.begin_payment(booking_id, "user-x")

        result = await orchestrator.confirm(booking_id)

        assert result.is_ok
        booking = result.value
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.confirmed_at is not None
        assert {item.status for item in booking.items} == {BookingItemStatus.CONFIRMED}
        assert sorted(t.seat_id for t in booking.tickets) == sorted([seats["A1"], seats["A2"]])
        assert len({t.code for t in booking.tickets}) == 2
        assert await seat_locks.list_locked(catalog.showing_id) == set()
        assert await drafts.get(booking_id) is None
        assert broadcaster.actions()[-1] == "booking_confirmed"

    @pytest.mark.asyncio
    async def test_confirm_is_idempotent(self, orchestrator, catalog, db):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"], catalog.seats["A2"]], owner_id="user-x"
        )
        booking_id = created.value.booking_id
        first = await orchestrator.confirm(booking_id)
        codes = {t.code for t in first.value.tickets}

        again = await orchestrator.confirm(booking_id)

        assert again.is_ok
        assert {t.code for t in again.value.tickets} == codes
        assert await count(db, Ticket) == 2

    @pytest.mark.asyncio
    async def test_expired_booking_cannot_be_confirmed(self, orchestrator, catalog, db, clock):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        clock.advance(settings.DRAFT_TTL_SECONDS + 1)

        result = await orchestrator.confirm(created.value.booking_id)

        assert result.kind == ErrorKind.CONFLICT
        booking = await orchestrator.get_booking(created.value.booking_id)
        assert booking.status == BookingStatus.EXPIRED
        assert booking.tickets == []
        assert await count(db, SeatClaim) == 0

    @pytest.mark.asyncio
    async def test_unknown_booking(self, orchestrator, catalog):
        result = await orchestrator.confirm("missing")

        assert result.kind == ErrorKind.NOT_FOUND


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_frees_seats(self, orchestrator, catalog, seat_locks, db):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )

        result = await orchestrator.cancel(created.value.booking_id, "user-x")

        assert result.is_ok
        assert result.value.status == BookingStatus.CANCELED
        assert {item.status for item in result.value.items} == {BookingItemStatus.CANCELED}
        assert await count(db, SeatClaim) == 0
        assert await seat_locks.list_locked(catalog.showing_id) == set()

    @pytest.mark.asyncio
    async def test_cancel_twice_conflicts(self, orchestrator, catalog):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        await orchestrator.cancel(created.value.booking_id, "user-x")

        result = await orchestrator.cancel(created.value.booking_id, "user-x")

        assert result.kind == ErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_confirmed_booking_cannot_be_canceled(self, orchestrator, catalog):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        await orchestrator.confirm(created.value.booking_id)

        result = await orchestrator.cancel(created.value.booking_id, "user-x")

        assert result.kind == ErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_only_owner_can_cancel(self, orchestrator, catalog):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )

        result = await orchestrator.cancel(created.value.booking_id, "user-y")

        assert result.kind == ErrorKind.NOT_FOUND


class TestExpiryAndQueries:
    @pytest.mark.asyncio
    async def test_expire_stale_bookings(self, orchestrator, catalog, db, clock):
        seats = catalog.seats
        await orchestrator.create_reservation(catalog.showing_id, [seats["A1"]], owner_id="user-x")
        clock.advance(settings.DRAFT_TTL_SECONDS + 1)
        await orchestrator.create_reservation(catalog.showing_id, [seats["A2"]], owner_id="user-y")

        assert await orchestrator.expire_stale_bookings() == 1
        assert await CatalogService(db).get_booked_seat_ids(catalog.showing_id) == {seats["A2"]}
        assert await orchestrator.expire_stale_bookings() == 0

    @pytest.mark.asyncio
    async def test_lookup_by_code_and_owner(self, orchestrator, catalog):
        created = await orchestrator.create_reservation(
            catalog.showing_id, [catalog.seats["A1"]], owner_id="user-x"
        )
        booking = created.value

        found = await orchestrator.get_booking_by_code(booking.code.lower())
        mine, total = await orchestrator.list_bookings("user-x")
        theirs, none = await orchestrator.list_bookings("user-y")

        assert found.booking_id == booking.booking_id
        assert total == 1 and mine[0].booking_id == booking.booking_id
        assert none == 0 and theirs == []

    @pytest.mark.asyncio
    async def test_weekend_showing_uses_weekend_prices(self, session_factory, orchestrator, clock):
        start_at = clock().replace(day=5, hour=19)
        weekend = await seed_catalog(session_factory, start_at=start_at)
        assert classify_day(start_at) == DayType.WEEKEND

        result = await orchestrator.create_reservation(
            weekend.showing_id, [weekend.seats["A1"], weekend.seats["A2"]], owner_id="user-x"
        )

        assert result.value.total_amount == 95000 + 140000


def test_lease_owner_prefers_user():
    assert lease_owner_for("user-x", "sess") == "user-x"
    assert lease_owner_for(None, "sess") == "anon:sess"
