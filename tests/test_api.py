"""HTTP tests against the application with in-memory stores."""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qsl, urlsplit

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.api.v1.dependencies import (
    get_broadcaster,
    get_draft_store,
    get_lease_store,
    get_vnpay_client,
)
from boxoffice.clock import utcnow
from boxoffice.config import get_settings
from boxoffice.database import get_db
from boxoffice.gateways.vnpay import VnPayClient
from boxoffice.main import create_app
from tests.doubles import InMemoryDraftStore, InMemoryLeaseStore, RecordingBroadcaster

settings = get_settings()

USER_X = {"X-User-ID": "user-x"}
USER_Y = {"X-User-ID": "user-y"}


def database_down():
    return patch.object(
        AsyncSession,
        "execute",
        AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("server has gone away"))),
    )


@pytest.fixture
def gateway():
    return VnPayClient(
        tmn_code="TESTTMN1",
        hash_secret="test-secret",
        payment_url="https://sandbox.vnpayment.vn/paymentv2/vpcpay.html",
        return_url="http://test/api/v1/payments/vnpay-return",
    )


@pytest.fixture
async def client(session_factory, catalog, gateway):
    app = create_app()
    lease_store = InMemoryLeaseStore(utcnow)
    drafts = InMemoryDraftStore(utcnow)
    broadcaster = RecordingBroadcaster()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lease_store] = lambda: lease_store
    app.dependency_overrides[get_draft_store] = lambda: drafts
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_vnpay_client] = lambda: gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def signed_callback(gateway, payment_url: str, code: str = "00") -> dict[str, str]:
    """Callback VNPay would send for the payment behind ``payment_url``."""
    sent = dict(parse_qsl(urlsplit(payment_url).query))
    params = {
        "vnp_TmnCode": sent["vnp_TmnCode"],
        "vnp_Amount": sent["vnp_Amount"],
        "vnp_TxnRef": sent["vnp_TxnRef"],
        "vnp_OrderInfo": sent["vnp_OrderInfo"],
        "vnp_ResponseCode": code,
        "vnp_TransactionStatus": code,
        "vnp_TransactionNo": "14012345",
        "vnp_BankCode": "NCB",
    }
    params["vnp_SecureHash"] = gateway.sign(params)
    return params


async def create_booking(client, catalog, labels=("A1", "A2"), headers=USER_X):
    return await client.post(
        "/api/v1/bookings",
        json={
            "showing_id": catalog.showing_id,
            "seat_ids": [catalog.seats[label] for label in labels],
            "customer": {"full_name": "Nguyen Van A", "email": "a@example.com"},
        },
        headers=headers,
    )


class TestShowings:
    @pytest.mark.asyncio
    async def test_health(self, client):
        with patch("boxoffice.main.ping_redis", AsyncMock(return_value=True)):
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["redis"] == "ok"

    @pytest.mark.asyncio
    async def test_health_degraded_without_redis(self, client):
        with patch("boxoffice.main.ping_redis", AsyncMock(return_value=False)):
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["redis"] == "unavailable"

    @pytest.mark.asyncio
    async def test_showing_details(self, client, catalog):
        response = await client.get(f"/api/v1/showings/{catalog.showing_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["total_seats"] == 4
        assert data["available_seats"] == 4
        assert data["cinema"]["cinema_id"] == catalog.cinema_id

    @pytest.mark.asyncio
    async def test_unknown_showing(self, client):
        response = await client.get("/api/v1/showings/missing")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_seat_map_states(self, client, catalog):
        await client.post(
            "/api/v1/seat-locks",
            json={"showing_id": catalog.showing_id, "seat_ids": [catalog.seats["A1"]]},
            headers=USER_X,
        )
        await create_booking(client, catalog, labels=("A2",), headers=USER_Y)

        response = await client.get(
            f"/api/v1/showings/{catalog.showing_id}/seats", headers=USER_X
        )

        seats = {seat["label"]: seat for seat in response.json()["seats"]}
        assert seats["A1"]["state"] == "LOCKED"
        assert seats["A1"]["locked_by_me"] is True
        assert seats["A2"]["state"] == "BOOKED"
        assert seats["A3"]["state"] == "AVAILABLE"
        assert seats["A4"]["state"] == "INACTIVE"


class TestSeatLocks:
    @pytest.mark.asyncio
    async def test_identity_required(self, client, catalog):
        response = await client.post(
            "/api/v1/seat-locks",
            json={"showing_id": catalog.showing_id, "seat_ids": [catalog.seats["A1"]]},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_lock_then_conflict(self, client, catalog):
        body = {"showing_id": catalog.showing_id, "seat_ids": [catalog.seats["A1"]]}

        first = await client.post("/api/v1/seat-locks", json=body, headers=USER_X)
        second = await client.post("/api/v1/seat-locks", json=body, headers=USER_Y)

        assert first.status_code == 200
        assert first.json()["success"] is True
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_anonymous_session_can_lock(self, client, catalog):
        body = {"showing_id": catalog.showing_id, "seat_ids": [catalog.seats["A3"]]}

        response = await client.post(
            "/api/v1/seat-locks", json=body, headers={"X-Session-ID": "browser-1"}
        )
        locked = await client.get(
            f"/api/v1/seat-locks/{catalog.showing_id}", headers={"X-Session-ID": "browser-1"}
        )

        assert response.status_code == 200
        assert locked.json()["my_seat_ids"] == [catalog.seats["A3"]]

    @pytest.mark.asyncio
    async def test_seat_of_another_room(self, client, catalog):
        response = await client.post(
            "/api/v1/seat-locks",
            json={"showing_id": catalog.showing_id, "seat_ids": [catalog.seats["B1"]]},
            headers=USER_X,
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unlock(self, client, catalog):
        body = {"showing_id": catalog.showing_id, "seat_ids": [catalog.seats["A1"]]}
        await client.post("/api/v1/seat-locks", json=body, headers=USER_X)

        response = await client.post("/api/v1/seat-locks/unlock", json=body, headers=USER_X)

        assert response.json()["seat_ids"] == [catalog.seats["A1"]]


class TestBookings:
    @pytest.mark.asyncio
    async def test_create_and_get(self, client, catalog):
        response = await create_booking(client, catalog)

        assert response.status_code == 201
        booking = response.json()
        assert booking["status"] == "PENDING"
        assert booking["total_amount"] == 200000
        assert booking["customer_contact"]["email"] == "a@example.com"

        mine = await client.get(f"/api/v1/bookings/{booking['booking_id']}", headers=USER_X)
        theirs = await client.get(f"/api/v1/bookings/{booking['booking_id']}", headers=USER_Y)
        assert mine.status_code == 200
        assert theirs.status_code == 404

    @pytest.mark.asyncio
    async def test_seat_taken_is_conflict(self, client, catalog):
        await create_booking(client, catalog)

        response = await create_booking(client, catalog, labels=("A1",), headers=USER_Y)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_inactive_seat_is_bad_request(self, client, catalog):
        response = await create_booking(client, catalog, labels=("A4",))

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cancel(self, client, catalog):
        booking = (await create_booking(client, catalog)).json()
        url = f"/api/v1/bookings/{booking['booking_id']}/cancel"

        canceled = await client.post(url, headers=USER_X)
        again = await client.post(url, headers=USER_X)

        assert canceled.status_code == 200
        assert canceled.json()["status"] == "CANCELED"
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_list_and_lookup_by_code(self, client, catalog):
        booking = (await create_booking(client, catalog)).json()

        listed = await client.get("/api/v1/bookings", headers=USER_X)
        by_code = await client.get(f"/api/v1/bookings/code/{booking['code']}", headers=USER_X)

        assert listed.json()["total"] == 1
        assert by_code.json()["booking_id"] == booking["booking_id"]


class TestPayments:
    @pytest.mark.asyncio
    async def test_ipn_confirms_booking(self, client, catalog, gateway):
        booking = (await create_booking(client, catalog)).json()
        started = await client.post(
            "/api/v1/payments", json={"booking_id": booking["booking_id"]}, headers=USER_X
        )
        assert started.status_code == 201
        params = signed_callback(gateway, started.json()["payment_url"])

        ack = await client.get("/api/v1/payments/vnpay-ipn", params=params)
        repeat = await client.get("/api/v1/payments/vnpay-ipn", params=params)

        assert ack.json() == {"RspCode": "00", "Message": "Confirm Success"}
        assert repeat.json()["RspCode"] == "00"
        confirmed = (
            await client.get(f"/api/v1/bookings/{booking['booking_id']}", headers=USER_X)
        ).json()
        assert confirmed["status"] == "CONFIRMED"
        assert len(confirmed["tickets"]) == 2

        payment_id = started.json()["payment"]["payment_id"]
        payment = await client.get(f"/api/v1/payments/{payment_id}", headers=USER_X)
        assert payment.json()["status"] == "SUCCEEDED"

    @pytest.mark.asyncio
    async def test_ipn_rejects_bad_signature(self, client, catalog, gateway):
        booking = (await create_booking(client, catalog)).json()
        started = await client.post(
            "/api/v1/payments", json={"booking_id": booking["booking_id"]}, headers=USER_X
        )
        params = signed_callback(gateway, started.json()["payment_url"])
        params["vnp_SecureHash"] = "0" * 128

        ack = await client.post("/api/v1/payments/vnpay-ipn", params=params)

        assert ack.status_code == 200
        assert ack.json()["RspCode"] == "97"

    @pytest.mark.asyncio
    async def test_ipn_during_database_outage_asks_for_retry(self, client, catalog, gateway):
        booking = (await create_booking(client, catalog)).json()
        started = await client.post(
            "/api/v1/payments", json={"booking_id": booking["booking_id"]}, headers=USER_X
        )
        params = signed_callback(gateway, started.json()["payment_url"])

        with database_down():
            ack = await client.get("/api/v1/payments/vnpay-ipn", params=params)

        assert ack.status_code == 200
        assert ack.json()["RspCode"] == "99"

    @pytest.mark.asyncio
    async def test_return_redirects_to_result_page(self, client, catalog, gateway):
        booking = (await create_booking(client, catalog)).json()
        started = await client.post(
            "/api/v1/payments", json={"booking_id": booking["booking_id"]}, headers=USER_X
        )
        url = started.json()["payment_url"]

        failed = await client.get(
            "/api/v1/payments/vnpay-return", params=signed_callback(gateway, url, code="24")
        )
        assert failed.status_code == 307
        assert failed.headers["location"].startswith(settings.PAYMENT_FAILURE_URL)
        assert "reason=payment_failed" in failed.headers["location"]

        # A customer may retry with the same pending booking
        retried = await client.post(
            "/api/v1/payments", json={"booking_id": booking["booking_id"]}, headers=USER_X
        )
        succeeded = await client.get(
            "/api/v1/payments/vnpay-return",
            params=signed_callback(gateway, retried.json()["payment_url"]),
        )
        assert succeeded.status_code == 307
        assert succeeded.headers["location"].startswith(settings.PAYMENT_SUCCESS_URL)


class TestPriceRules:
    @pytest.mark.asyncio
    async def test_quote(self, client, catalog):
        response = await client.post(
            "/api/v1/price-rules/quote",
            json={
                "showing_id": catalog.showing_id,
                "seat_ids": [catalog.seats["A1"], catalog.seats["C1"]],
            },
        )

        assert response.status_code == 200
        assert response.json()["total"] == 80000 + 70000
        assert response.json()["day_type"] == "WEEKDAY"

    @pytest.mark.asyncio
    async def test_duplicate_rule_is_conflict(self, client):
        response = await client.post(
            "/api/v1/price-rules",
            json={"day_type": "WEEKDAY", "seat_type": "VIP", "price": 99000},
        )

        assert response.status_code == 409
        assert response.json()["kind"] == "CONFLICT"

    @pytest.mark.asyncio
    async def test_cinema_rule_lifecycle(self, client, catalog):
        created = await client.post(
            "/api/v1/price-rules",
            json={
                "cinema_id": catalog.cinema_id,
                "day_type": "WEEKDAY",
                "seat_type": "VIP",
                "price": 99000,
            },
        )
        rule_id = created.json()["rule_id"]

        updated = await client.put(f"/api/v1/price-rules/{rule_id}", json={"price": 101000})
        deleted = await client.delete(f"/api/v1/price-rules/{rule_id}")
        missing = await client.get(f"/api/v1/price-rules/{rule_id}")

        assert created.status_code == 201
        assert updated.json()["price"] == 101000
        assert deleted.status_code == 204
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_database_outage_is_service_unavailable(self, client):
        with database_down():
            response = await client.get("/api/v1/price-rules")

        assert response.status_code == 503
        assert response.json()["kind"] == "TRANSIENT"
