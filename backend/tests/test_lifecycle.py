"""
Unit tests for the booking and payment state machines.
"""

from datetime import timedelta

import pytest

from ticketing.core.exceptions import InvalidStateError
from ticketing.db.base import utcnow
from ticketing.models import Booking, Payment
from ticketing.models.enums import BookingStatus, PaymentStatus
from ticketing.services.lifecycle import (
    can_transition_booking,
    can_transition_payment,
    transition_booking,
    transition_payment,
)


def pending_booking() -> Booking:
    return Booking(
        id="b-1",
        user_id="user-1",
        show_id="s-1",
        status=BookingStatus.PENDING,
        total_amount=500,
        expires_at=utcnow() + timedelta(minutes=15),
    )


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (BookingStatus.PENDING, BookingStatus.CONFIRMED, True),
        (BookingStatus.PENDING, BookingStatus.CANCELLED, True),
        (BookingStatus.PENDING, BookingStatus.EXPIRED, True),
        (BookingStatus.PENDING, BookingStatus.REFUNDED, False),
        (BookingStatus.EXPIRED, BookingStatus.CANCELLED, True),
        (BookingStatus.EXPIRED, BookingStatus.CONFIRMED, False),
        (BookingStatus.CONFIRMED, BookingStatus.REFUNDED, True),
        (BookingStatus.CONFIRMED, BookingStatus.CANCELLED, False),
        (BookingStatus.CANCELLED, BookingStatus.PENDING, False),
        (BookingStatus.REFUNDED, BookingStatus.CONFIRMED, False),
    ],
)
def test_booking_transitions(current, target, allowed):
    assert can_transition_booking(current, target) is allowed


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (PaymentStatus.INITIATED, PaymentStatus.SUCCESS, True),
        (PaymentStatus.INITIATED, PaymentStatus.FAILED, True),
        (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED, True),
        (PaymentStatus.FAILED, PaymentStatus.SUCCESS, False),
        (PaymentStatus.INITIATED, PaymentStatus.REFUNDED, False),
    ],
)
def test_payment_transitions(current, target, allowed):
    assert can_transition_payment(current, target) is allowed


def test_confirm_clears_expiry():
    booking = pending_booking()

    assert transition_booking(booking, BookingStatus.CONFIRMED) is True
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.expires_at is None


def test_same_state_is_noop():
    booking = pending_booking()
    expires_at = booking.expires_at

    assert transition_booking(booking, BookingStatus.PENDING) is False
    assert booking.expires_at == expires_at


def test_illegal_booking_transition_raises():
    booking = pending_booking()
    transition_booking(booking, BookingStatus.CANCELLED)

    with pytest.raises(InvalidStateError):
        transition_booking(booking, BookingStatus.CONFIRMED)
    assert booking.status == BookingStatus.CANCELLED


def test_illegal_payment_transition_raises():
    payment = Payment(id="p-1", status=PaymentStatus.FAILED)

    with pytest.raises(InvalidStateError):
        transition_payment(payment, PaymentStatus.SUCCESS)
