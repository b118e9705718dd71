"""
Reconciliation Sweeper

Safety net for lost or late processor callbacks. Every run looks at
bookings that have been waiting for payment longer than the grace period
and asks the payment broker what really happened:

- SUCCEEDED -> PaymentSucceededCommand
- FAILED / EXPIRED / CANCELLED / not found -> PaymentFailedCommand
- still pending (or processor unreachable) and hold expired -> ExpireBookingCommand

All outcomes go through the lifecycle handlers, which are idempotent, so a
sweep racing a webhook is harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore

from apps.payments.broker import NOT_FOUND, payment_broker
from apps.payments.models import PaymentIntent
from apps.slots.ledger import slot_ledger
from shared.application.message_bus import message_bus
from shared.conf import engine_setting
from shared.domain.exceptions import HoldExpired, PaymentAmbiguous

from .application.command_handlers import (
    CompleteBookingCommand,
    ExpireBookingCommand,
    PaymentFailedCommand,
    PaymentSucceededCommand,
)
from .models import Booking

logger = logging.getLogger(__name__)

FAILED_STATES = {
    PaymentIntent.State.FAILED,
    PaymentIntent.State.EXPIRED,
    PaymentIntent.State.CANCELLED,
    NOT_FOUND,
}


class ReconciliationSweeper:
    def __init__(self, broker=None, ledger=None, bus=None):
        self.broker = broker or payment_broker
        self.ledger = ledger or slot_ledger
        self.bus = bus or message_bus

    def run(self, now: datetime | None = None) -> dict[str, int]:
        now = now or timezone.now()
        grace = timedelta(seconds=engine_setting("PAYMENT_GRACE_SECONDS"))
        counts = {"confirmed": 0, "compensated": 0, "failed": 0, "expired": 0, "pending": 0, "errors": 0}

        stale = Booking.objects.filter(
            status=Booking.Status.PENDING_PAYMENT,
            created_at__lte=now - grace,
        ).order_by("created_at")

        for booking in stale:
            try:
                outcome = self._reconcile(booking, now)
            except Exception as e:
                counts["errors"] += 1
                logger.error(f"Error reconciling booking {booking.reference}: {e}", exc_info=True)
                continue
            counts[outcome] += 1

        active_refs = Booking.objects.filter(
            status__in=[Booking.Status.DRAFT, Booking.Status.PENDING_PAYMENT],
        ).values_list("reference", flat=True)
        counts["orphaned_holds"] = self.ledger.release_orphaned(now, active_refs=list(active_refs))

        if any(counts.values()):
            logger.info(f"Reconciliation sweep finished: {counts}")
        return counts

    def _reconcile(self, booking: Booking, now: datetime) -> str:
        try:
            state = self.broker.refresh_state(booking.reference)
        except PaymentAmbiguous:
            logger.warning(f"Processor unreachable while reconciling {booking.reference}")
            state = None

        if state == PaymentIntent.State.SUCCEEDED:
            intent = self.broker.get_intent(booking.reference)
            try:
                self.bus.handle_command(PaymentSucceededCommand(booking_id=booking.pk, intent_id=intent.intent_id))
            except HoldExpired:
                return "compensated"
            return "confirmed"

        if state in FAILED_STATES:
            self.bus.handle_command(PaymentFailedCommand(booking_id=booking.pk, reason=f"payment {state}"))
            return "failed"

        if booking.hold_expires_at is None or booking.hold_expires_at <= now:
            self.bus.handle_command(ExpireBookingCommand(booking_id=booking.pk, now=now))
            return "expired"
        return "pending"

    def complete_finished(self, now: datetime | None = None) -> int:
        """Complete confirmed bookings whose slot has ended."""
        now = now or timezone.now()
        local_now = timezone.localtime(now)
        finished = Booking.objects.filter(status=Booking.Status.CONFIRMED).filter(
            Q(date__lt=local_now.date()) | Q(date=local_now.date(), end_time__lte=local_now.time())
        )
        completed = 0
        for booking in finished:
            try:
                self.bus.handle_command(CompleteBookingCommand(booking_id=booking.pk, now=now))
                completed += 1
            except Exception as e:
                logger.error(f"Error completing booking {booking.reference}: {e}", exc_info=True)
        if completed:
            logger.info(f"Completed {completed} finished bookings")
        return completed
