"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

import requests
from celery import shared_task  # type: ignore
from apps.payments.broker import payment_broker
from apps.payments.models import PaymentIntent
from shared.application.message_bus import message_bus
from shared.domain.exceptions import PaymentAmbiguous, PaymentFailed

from .application.command_handlers import PaymentSucceededCommand, RefundIssuedCommand
from .models import Booking
from .sweeper import ReconciliationSweeper

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.reconcile_pending_payments")
def reconcile_pending_payments() -> dict[str, int]:
    """
    Resolve bookings stuck in PENDING_PAYMENT past the grace period.

    Runs every SWEEP_INTERVAL_SECONDS through Celery Beat.

    Returns:
        dict: counts per outcome
    """
    return ReconciliationSweeper().run()


@shared_task(name="bookings.complete_finished_bookings")
def complete_finished_bookings() -> dict[str, int]:
    """Move confirmed bookings whose slot has ended to COMPLETED."""
    return {"completed": ReconciliationSweeper().complete_finished()}


# ============================================================================
# EVENT-DRIVEN TASKS
# ============================================================================

@shared_task(name="bookings.void_payment_intent")
def void_payment_intent(booking_id: int, final_state: str = PaymentIntent.State.CANCELLED) -> str:
    """
    Void the payment intent of a cancelled or expired booking.

    If the processor reports the charge as already paid, the late payment
    is handed to the lifecycle, which requests a refund.
    """
    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        return "missing"

    try:
        state = payment_broker.cancel_intent(booking.reference, final_state)
    except PaymentAmbiguous:
        logger.warning(f"Could not void payment for {booking.reference}; reconciliation will retry")
        return "ambiguous"

    if state == PaymentIntent.State.SUCCEEDED:
        intent = payment_broker.get_intent(booking.reference)
        message_bus.handle_command(PaymentSucceededCommand(booking_id=booking.pk, intent_id=intent.intent_id))
    return state


@shared_task(
    bind=True,
    name="bookings.refund_payment",
    max_retries=5,
    default_retry_delay=60,
)
def refund_payment(self, booking_id: int, reason: str = "") -> dict[str, str]:
    """Refund the captured payment of a booking that cannot be honoured."""
    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        return {"status": "missing"}

    try:
        intent = payment_broker.refund(booking.reference, reason)
    except PaymentAmbiguous as exc:
        logger.warning(f"Refund for {booking.reference} is ambiguous, retrying")
        raise self.retry(exc=exc)
    except PaymentFailed as exc:
        logger.error(f"Refund for {booking.reference} failed: {exc.message}")
        return {"status": "failed"}

    message_bus.handle_command(RefundIssuedCommand(booking_id=booking.pk, refund_id=intent.refund_id))
    return {"status": "refunded", "refund_id": intent.refund_id}


@shared_task(
    bind=True,
    name="bookings.deliver_domain_event",
    max_retries=3,
    default_retry_delay=30,
)
def deliver_domain_event(self, event: dict, url: str) -> dict[str, str]:
    """POST a domain event to one subscriber."""
    try:
        response = requests.post(url, json=event, timeout=10)
        response.raise_for_status()
    except requests.exceptions.RequestException as exc:
        logger.error(f"Delivering {event['event_type']} {event['event_id']} to {url} failed: {exc}")
        raise self.retry(exc=exc)
    return {"delivered": url}
