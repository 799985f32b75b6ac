"""
Booking and payment state machines.

All status changes go through transition_booking / transition_payment so an
illegal move fails loudly instead of silently writing a status string.

    PENDING --payment.success--> CONFIRMED --refund--> REFUNDED
       |  \--cancel--> CANCELLED
       |--timeout / payment.expired--> EXPIRED --cancel--> CANCELLED

payment.failed keeps the booking PENDING (expiry pushed forward).
"""

from ticketing.core.exceptions import InvalidStateError
from ticketing.core.metrics import record_transition
from ticketing.models import Booking, Payment
from ticketing.models.enums import BookingStatus, PaymentStatus

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.EXPIRED}
    ),
    # Expired bookings may still be cancelled by their owner
    BookingStatus.EXPIRED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.REFUNDED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.INITIATED: frozenset({PaymentStatus.SUCCESS, PaymentStatus.FAILED}),
    PaymentStatus.SUCCESS: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def can_transition_booking(current: BookingStatus, target: BookingStatus) -> bool:
    return current == target or target in BOOKING_TRANSITIONS[current]


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return current == target or target in PAYMENT_TRANSITIONS[current]


def transition_booking(booking: Booking, target: BookingStatus) -> bool:
    """
    Move a booking to ``target``. Returns False when it is already there.
    Leaving PENDING clears expires_at: only pending bookings time out.
    """
    current = BookingStatus(booking.status)
    if current == target:
        return False
    if target not in BOOKING_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Booking {booking.id} cannot move from {current.value} to {target.value}"
        )
    booking.status = target
    if target != BookingStatus.PENDING:
        booking.expires_at = None
    record_transition(current.value, target.value)
    return True


def transition_payment(payment: Payment, target: PaymentStatus) -> bool:
    current = PaymentStatus(payment.status)
    if current == target:
        return False
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Payment {payment.id} cannot move from {current.value} to {target.value}"
        )
    payment.status = target
    return True
