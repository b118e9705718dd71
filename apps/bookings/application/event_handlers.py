"""
Booking Event Handlers

Subscribers that react to committed booking events. Slow or external work
(processor calls, HTTP delivery) is handed to Celery tasks so the request
that produced the event is not held up.
"""

import logging

from django.conf import settings

from apps.payments.models import PaymentIntent
from apps.bookings.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingExpired,
    RefundRequested,
)
from apps.bookings.models import Booking

logger = logging.getLogger(__name__)


def void_intent_on_cancel(event: BookingCancelled):
    if event.old_status != Booking.Status.PENDING_PAYMENT:
        return
    from apps.bookings.tasks import void_payment_intent

    void_payment_intent.delay(event.booking_id, PaymentIntent.State.CANCELLED)


def void_intent_on_expiry(event: BookingExpired):
    from apps.bookings.tasks import void_payment_intent

    void_payment_intent.delay(event.booking_id, PaymentIntent.State.EXPIRED)


def request_refund(event: RefundRequested):
    from apps.bookings.tasks import refund_payment

    logger.info(f"Refund of {event.amount} requested for booking {event.reference} ({event.reason})")
    refund_payment.delay(event.booking_id, event.reason)


def notify_user(event):
    """Notification hook: booking confirmations, cancellations and completions"""
    logger.info(
        "Notify user %s: %s for booking %s",
        event.user_id, event.name, getattr(event, 'reference', event.booking_id),
    )


def forward_to_subscribers(event):
    urls = getattr(settings, 'DOMAIN_EVENT_SUBSCRIBERS', {}).get(event.name, [])
    if not urls:
        return
    from apps.bookings.tasks import deliver_domain_event

    payload = event.to_dict()
    for url in urls:
        deliver_domain_event.delay(payload, url)


NOTIFIED_EVENTS = (BookingConfirmed, BookingCancelled, BookingCompleted)
FORWARDED_EVENTS = (BookingCreated, BookingConfirmed, BookingCancelled, BookingCompleted, BookingExpired, RefundRequested)
