"""
Tests for payment initiation, webhook verification and idempotency.
"""

import time
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select, update

from ticketing.db.base import utcnow
from ticketing.models import Booking, BookingSeat, Payment, WebhookEvent
from ticketing.models.enums import BookingStatus, PaymentStatus


@pytest.fixture
def pending_payment(create_booking, initiate_payment, test_show):
    """Factory: a PENDING booking with an INITIATED payment."""

    async def _pending_payment(user_id: str = "user-1", seats: int = 2):
        created = await create_booking(test_show.id, test_show.seat_ids[:seats], user_id=user_id)
        booking = created.json()
        session = await initiate_payment(booking["bookingId"], user_id)
        return booking, session

    return _pending_payment


async def load(session_factory, model, id_):
    async with session_factory() as session:
        return await session.get(model, id_)


@pytest.mark.asyncio
async def test_initiate_payment(pending_payment, session_factory):
    booking, session = await pending_payment()

    assert session["sessionId"].startswith("ps_")
    assert session["paymentUrl"] == f"http://test/api/v1/payments/fake-checkout/{session['sessionId']}"
    assert session["amount"] == booking["totalAmount"]
    assert session["currency"] == "INR"
    assert session["status"] == "INITIATED"

    payment = await load(session_factory, Payment, session["paymentId"])
    assert payment.reference == session["sessionId"]
    assert payment.status == PaymentStatus.INITIATED


@pytest.mark.asyncio
async def test_initiate_payment_for_other_user(client: AsyncClient, create_booking, test_show):
    created = await create_booking(test_show.id, test_show.seat_ids[:1], user_id="alice")

    response = await client.post(
        "/api/v1/payments/initiate",
        json={"bookingId": created.json()["bookingId"], "userId": "mallory"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_initiate_payment_for_expired_booking(client: AsyncClient, create_booking, test_show, db_session):
    created = await create_booking(test_show.id, test_show.seat_ids[:1])
    booking_id = created.json()["bookingId"]
    async with db_session.begin():
        await db_session.execute(
            update(Booking).where(Booking.id == booking_id).values(expires_at=utcnow() - timedelta(minutes=1))
        )

    response = await client.post(
        "/api/v1/payments/initiate",
        json={"bookingId": booking_id, "userId": "user-1"},
    )
    assert response.status_code == 400
    assert "expired" in response.json()["detail"]


@pytest.mark.asyncio
async def test_payment_success_confirms_booking(pending_payment, send_webhook, session_factory):
    booking, session = await pending_payment()

    response = await send_webhook("payment.success", session["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Processed payment.success"}

    confirmed = await load(session_factory, Booking, booking["bookingId"])
    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.expires_at is None
    payment = await load(session_factory, Payment, session["paymentId"])
    assert payment.status == PaymentStatus.SUCCESS
    assert payment.gateway_ref == "gw_test"


@pytest.mark.asyncio
async def test_webhook_replay_is_noop(pending_payment, send_webhook, session_factory):
    """The same (sessionId, eventType) twice: one transition, second call acked."""
    booking, session = await pending_payment()

    first = await send_webhook("payment.success", session["sessionId"], booking["bookingId"])
    second = await send_webhook("payment.success", session["sessionId"], booking["bookingId"])

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["message"] == "Event already processed"

    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.CONFIRMED
    async with session_factory() as session:
        ledger = (await session.execute(select(func.count()).select_from(WebhookEvent))).scalar()
    assert ledger == 1


@pytest.mark.asyncio
async def test_webhook_bad_signature(pending_payment, send_webhook, session_factory):
    booking, session = await pending_payment()

    response = await send_webhook(
        "payment.success",
        session["sessionId"],
        booking["bookingId"],
        signature=f"t={int(time.time())},v1={'0' * 64}",
    )

    assert response.status_code == 403
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_stale_timestamp(pending_payment, send_webhook):
    booking, session = await pending_payment()

    response = await send_webhook(
        "payment.success",
        session["sessionId"],
        booking["bookingId"],
        timestamp=int(time.time()) - 301,
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_webhook_missing_signature(client: AsyncClient):
    response = await client.post(
        "/api/v1/payments/webhook",
        content='{"eventType":"payment.success","sessionId":"ps_x"}',
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_webhook_unknown_session(send_webhook):
    response = await send_webhook("payment.success", "ps_unknown")

    assert response.status_code == 404
    assert response.json()["detail"] == "Payment not found"


@pytest.mark.asyncio
async def test_payment_failed_keeps_booking_pending(pending_payment, send_webhook, session_factory, db_session):
    """A failure leaves the booking PENDING with at least five minutes to retry."""
    booking, session = await pending_payment()
    async with db_session.begin():
        await db_session.execute(
            update(Booking)
            .where(Booking.id == booking["bookingId"])
            .values(expires_at=utcnow() + timedelta(minutes=1))
        )

    response = await send_webhook("payment.failed", session["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    pending = await load(session_factory, Booking, booking["bookingId"])
    assert pending.status == BookingStatus.PENDING
    assert pending.expires_at > utcnow() + timedelta(minutes=4)
    payment = await load(session_factory, Payment, session["paymentId"])
    assert payment.status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_payment_failed_then_retry_succeeds(pending_payment, send_webhook, initiate_payment, session_factory):
    booking, session = await pending_payment()
    await send_webhook("payment.failed", session["sessionId"], booking["bookingId"])

    retry = await initiate_payment(booking["bookingId"])
    response = await send_webhook("payment.success", retry["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_payment_expired_releases_seats(pending_payment, send_webhook, create_booking, test_show, session_factory, db_session):
    booking, session = await pending_payment()

    response = await send_webhook("payment.expired", session["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    expired = await load(session_factory, Booking, booking["bookingId"])
    assert expired.status == BookingStatus.EXPIRED
    assert expired.expires_at is None
    seats = (await db_session.execute(
        select(BookingSeat.id).where(BookingSeat.booking_id == booking["bookingId"])
    )).scalars().all()
    assert seats == []
    await db_session.rollback()

    rebook = await create_booking(test_show.id, booking["seatIds"], user_id="bob")
    assert rebook.status_code == 201


@pytest.mark.asyncio
async def test_payment_expired_after_failure_releases_seats(pending_payment, send_webhook, session_factory):
    booking, session = await pending_payment()
    await send_webhook("payment.failed", session["sessionId"], booking["bookingId"])

    response = await send_webhook("payment.expired", session["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    assert response.json()["message"] == "Processed payment.expired"
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.EXPIRED
    async with session_factory() as db:
        seats = (await db.execute(
            select(BookingSeat.id).where(BookingSeat.booking_id == booking["bookingId"])
        )).scalars().all()
    assert seats == []
    payment = await load(session_factory, Payment, session["paymentId"])
    assert payment.status == PaymentStatus.FAILED
    assert "failedAt" in payment.gateway_data
    assert "expiredAt" in payment.gateway_data


@pytest.mark.asyncio
async def test_success_on_failed_payment_is_ignored(pending_payment, send_webhook, session_factory):
    booking, session = await pending_payment()
    await send_webhook("payment.failed", session["sessionId"], booking["bookingId"])

    response = await send_webhook("payment.success", session["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    assert response.json()["message"] == "Ignored payment.success"
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.PENDING
    payment = await load(session_factory, Payment, session["paymentId"])
    assert payment.status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_webhook_body_not_utf8(client: AsyncClient):
    response = await client.post(
        "/api/v1/payments/webhook",
        content=b"\xff\xfe{",
        headers={"Content-Type": "application/json", "x-payment-signature": f"t={int(time.time())},v1={'0' * 64}"},
    )

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


@pytest.mark.asyncio
async def test_late_success_after_cancel_is_refunded(client: AsyncClient, pending_payment, send_webhook, session_factory):
    """Money captured for a cancelled booking goes back; the booking stays cancelled."""
    booking, session = await pending_payment()
    await client.patch(f"/api/v1/bookings/{booking['bookingId']}/cancel", json={"userId": "user-1"})

    response = await send_webhook("payment.success", session["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.CANCELLED
    payment = await load(session_factory, Payment, session["paymentId"])
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.gateway_data["refundAmount"] == booking["totalAmount"]
    assert payment.gateway_data["refundId"].startswith("rf_")


@pytest.mark.asyncio
async def test_unknown_event_type_is_acknowledged(pending_payment, send_webhook, session_factory):
    booking, session = await pending_payment()

    response = await send_webhook("payment.disputed", session["sessionId"], booking["bookingId"])

    assert response.status_code == 200
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_simulate_payment(client: AsyncClient, pending_payment, session_factory):
    booking, session = await pending_payment()

    response = await client.post(
        f"/api/v1/payments/simulate/{session['sessionId']}",
        json={"result": "success"},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Processed payment.success"
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.CONFIRMED

    again = await client.post(f"/api/v1/payments/simulate/{session['sessionId']}", json={"result": "success"})
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_simulate_failed_payment(client: AsyncClient, pending_payment, session_factory):
    booking, session = await pending_payment()

    response = await client.post(
        f"/api/v1/payments/simulate/{session['sessionId']}",
        json={"result": "failed"},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Processed payment.failed"
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_simulate_lapsed_session_expires_booking(client: AsyncClient, pending_payment, gateway, session_factory):
    booking, session = await pending_payment()
    stored = await gateway.get_session(session["sessionId"])
    stored.expires_at = utcnow() - timedelta(seconds=1)

    response = await client.post(f"/api/v1/payments/simulate/{session['sessionId']}")

    assert response.status_code == 200
    assert response.json()["message"] == "Processed payment.expired"
    assert (await load(session_factory, Booking, booking["bookingId"])).status == BookingStatus.EXPIRED


@pytest.mark.asyncio
async def test_simulate_unknown_session(client: AsyncClient):
    response = await client.post("/api/v1/payments/simulate/ps_missing", json={"result": "success"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_fake_checkout_page(client: AsyncClient, pending_payment):
    booking, session = await pending_payment()

    response = await client.get(f"/api/v1/payments/fake-checkout/{session['sessionId']}")

    assert response.status_code == 200
    data = response.json()
    assert data["bookingId"] == booking["bookingId"]
    assert data["status"] == "pending"
    assert data["completeUrl"] == f"/api/v1/payments/simulate/{session['sessionId']}"


@pytest.mark.asyncio
async def test_payment_status(client: AsyncClient, pending_payment, send_webhook, initiate_payment):
    booking, first = await pending_payment()
    await send_webhook("payment.failed", first["sessionId"], booking["bookingId"])
    await initiate_payment(booking["bookingId"])

    response = await client.get(f"/api/v1/payments/status/{booking['bookingId']}")

    assert response.status_code == 200
    data = response.json()
    assert data["bookingStatus"] == "PENDING"
    assert data["totalAmount"] == booking["totalAmount"]
    assert sorted(payment["status"] for payment in data["payments"]) == ["FAILED", "INITIATED"]


@pytest.mark.asyncio
async def test_payment_status_unknown_booking(client: AsyncClient):
    response = await client.get("/api/v1/payments/status/missing")
    assert response.status_code == 404
