"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits; ``name`` is the
event name downstream consumers subscribe to.
"""

from dataclasses import dataclass
from datetime import date, time

from shared.domain.base import DomainEvent
from shared.domain.value_objects import Money


@dataclass
class BookingCreated(DomainEvent):
    """
    Event: Holds acquired and booking is waiting for payment

    Triggers:
    - Nothing downstream yet; kept for the audit trail
    """
    name = "booking.created"

    booking_id: int
    reference: str
    user_id: int
    venue_id: int
    date: date
    start_time: time
    end_time: time
    total: Money


@dataclass
class BookingConfirmed(DomainEvent):
    """
    Event: Payment succeeded and every hold is permanent (PENDING_PAYMENT -> CONFIRMED)

    Triggers:
    - Confirmation notification to the user
    - Analytics
    """
    name = "booking.confirmed"

    booking_id: int
    reference: str
    user_id: int
    venue_id: int
    payment_reference: str
    total: Money


@dataclass
class BookingCancelled(DomainEvent):
    """
    Event: Booking was cancelled by the user, the owner or the system

    Triggers:
    - Void the pending payment intent
    - Cancellation notification
    - Analytics
    """
    name = "booking.cancelled"

    booking_id: int
    reference: str
    user_id: int
    venue_id: int
    source: str
    reason: str
    old_status: str


@dataclass
class BookingExpired(DomainEvent):
    """
    Event: Payment never completed before the hold expired (PENDING_PAYMENT -> EXPIRED)

    Triggers:
    - Mark the payment intent expired
    """
    name = "booking.expired"

    booking_id: int
    reference: str
    venue_id: int


@dataclass
class BookingCompleted(DomainEvent):
    """
    Event: The booked slot is over (CONFIRMED -> COMPLETED)

    Triggers:
    - Review eligibility for the user
    """
    name = "booking.completed"

    booking_id: int
    user_id: int
    venue_id: int


@dataclass
class RefundRequested(DomainEvent):
    """
    Event: Money was captured for a booking that cannot be honoured

    Triggers:
    - Refund through the payment broker
    """
    name = "payment.refund_requested"

    booking_id: int
    reference: str
    amount: Money
    reason: str
