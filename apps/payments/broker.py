"""
Payment Intent Broker

Owns ``PaymentIntent`` rows and every conversation with the payment
processor. It reports outcomes (intent states) and never changes booking
state; the booking lifecycle decides what an outcome means.

Idempotency:
- the local row is created (or found) by idempotency key before the
  processor is called, and the same key is forwarded to the processor,
  so retrying ``create_intent`` never produces a second charge
- processor timeouts are retried with exponential backoff; when retries
  run out the outcome is reported as ``PaymentAmbiguous``
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from django.utils import timezone  # type: ignore

from shared.conf import payment_setting
from shared.domain.exceptions import IntentMismatch, PaymentAmbiguous, PaymentFailed
from shared.domain.value_objects import Money

from .models import PaymentIntent
from .processors import (
    CANCELLED,
    FAILED,
    SUCCEEDED,
    ChargeNotFound,
    ChargeResult,
    PaymentProcessor,
    ProcessorDeclined,
    ProcessorTimeout,
    get_payment_processor,
)

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"

# Webhook and processor statuses -> intent state
CALLBACK_STATES = {
    SUCCEEDED: PaymentIntent.State.SUCCEEDED,
    "payment_intent.succeeded": PaymentIntent.State.SUCCEEDED,
    FAILED: PaymentIntent.State.FAILED,
    "payment_failed": PaymentIntent.State.FAILED,
    "payment_intent.payment_failed": PaymentIntent.State.FAILED,
    CANCELLED: PaymentIntent.State.CANCELLED,
    "canceled": PaymentIntent.State.CANCELLED,
    "payment_intent.canceled": PaymentIntent.State.CANCELLED,
}


class PaymentIntentBroker:
    def __init__(self, processor: PaymentProcessor | None = None, sleep: Callable[[float], None] = time.sleep):
        self._processor = processor
        self._sleep = sleep

    @property
    def processor(self) -> PaymentProcessor:
        if self._processor is None:
            return get_payment_processor()
        return self._processor

    def create_intent(self, booking_ref: str, amount: Money, idempotency_key: str) -> PaymentIntent:
        """
        Create (or return the existing) intent for ``idempotency_key``.

        Raises:
            PaymentFailed: the processor refused the charge
            PaymentAmbiguous: the processor could not be reached
        """
        intent, created = PaymentIntent.objects.get_or_create(
            idempotency_key=idempotency_key,
            defaults={
                "booking_ref": booking_ref,
                "amount": amount.quantized(),
                "currency": amount.currency,
            },
        )
        if intent.booking_ref != booking_ref:
            raise IntentMismatch(
                "Idempotency key is already used by another booking.",
                booking_ref=booking_ref,
            )
        if intent.intent_id:
            logger.info("Reusing payment intent %s for %s", intent.intent_id, booking_ref)
            return intent
        if intent.state == PaymentIntent.State.FAILED:
            raise PaymentFailed("Payment could not be started.", booking_ref=booking_ref)

        processor = self.processor
        try:
            result = self._call(
                processor.create_charge,
                amount,
                idempotency_key=idempotency_key,
                metadata={"booking_ref": booking_ref},
            )
        except ProcessorDeclined as e:
            self._settle(intent, PaymentIntent.State.FAILED, error=str(e))
            raise PaymentFailed("Payment could not be started.", booking_ref=booking_ref) from e

        intent.intent_id = result.charge_id
        intent.client_secret = result.client_secret
        intent.provider = processor.name
        intent.save(update_fields=["intent_id", "client_secret", "provider", "updated_at"])
        logger.info("Payment intent %s created for %s (%s)", intent.intent_id, booking_ref, amount)
        return intent

    def get_intent(self, booking_ref: str) -> PaymentIntent | None:
        return PaymentIntent.objects.filter(booking_ref=booking_ref).first()

    def confirm_intent(self, intent_id: str, proof: str) -> str:
        """
        Confirm a charge with the client's proof and return the resulting
        state (``succeeded``, ``failed`` or ``created`` while still pending).

        Raises:
            PaymentAmbiguous: the processor could not be reached
        """
        intent = self._by_intent_id(intent_id)
        if intent is None:
            raise IntentMismatch("Unknown payment intent.", intent_id=intent_id)
        if intent.is_terminal:
            return intent.state

        try:
            result = self._call(
                self.processor.confirm_charge,
                intent_id,
                proof,
                idempotency_key=f"{intent.idempotency_key}-confirm-{proof}"[:255],
            )
        except ProcessorDeclined as e:
            return self._settle(intent, PaymentIntent.State.FAILED, error=str(e))
        except ChargeNotFound:
            return self._settle(intent, PaymentIntent.State.FAILED, error="charge not found")
        return self._apply(intent, result)

    def refresh_state(self, booking_ref: str) -> str:
        """
        Current state of the booking's intent, asking the processor while
        the local row is still undecided. ``NOT_FOUND`` when no charge exists.

        Raises:
            PaymentAmbiguous: the processor could not be reached
        """
        intent = self.get_intent(booking_ref)
        if intent is None or not intent.intent_id:
            return NOT_FOUND
        if intent.is_terminal:
            return intent.state

        try:
            result = self._call(self.processor.get_charge_status, intent.intent_id)
        except ChargeNotFound:
            return NOT_FOUND
        return self._apply(intent, result)

    def record_callback(self, intent_id: str, status: str) -> PaymentIntent | None:
        """Apply a processor callback; unknown intents and statuses are ignored."""
        intent = self._by_intent_id(intent_id)
        if intent is None:
            logger.warning("Callback for unknown payment intent %s", intent_id)
            return None
        state = CALLBACK_STATES.get(status)
        if state is None:
            logger.info("Ignoring callback status %s for %s", status, intent_id)
            return intent
        self._settle(intent, state)
        return intent

    def cancel_intent(self, booking_ref: str, final_state: str = PaymentIntent.State.CANCELLED) -> str:
        """
        Void the booking's charge. Returns the resulting state, which is
        ``succeeded`` when the charge turned out to be paid already.
        """
        intent = self.get_intent(booking_ref)
        if intent is None:
            return NOT_FOUND
        if intent.is_terminal:
            return intent.state
        if not intent.intent_id:
            return self._settle(intent, final_state)

        try:
            self._call(self.processor.cancel_charge, intent.intent_id)
        except ChargeNotFound:
            return self._settle(intent, final_state)
        except ProcessorDeclined:
            # Usually means the charge already succeeded
            result = self._call(self.processor.get_charge_status, intent.intent_id)
            state = self._apply(intent, result)
            if state == PaymentIntent.State.SUCCEEDED:
                logger.warning("Intent %s for %s was paid before it could be voided", intent.intent_id, booking_ref)
            return state
        return self._settle(intent, final_state)

    def refund(self, booking_ref: str, reason: str = "") -> PaymentIntent:
        """
        Refund a paid intent in full. Refunding twice is a no-op.

        Raises:
            PaymentFailed: there is nothing to refund or the processor refused
            PaymentAmbiguous: the processor could not be reached
        """
        intent = self.get_intent(booking_ref)
        if intent is None or not intent.intent_id:
            raise PaymentFailed("No payment to refund.", booking_ref=booking_ref)
        if intent.state == PaymentIntent.State.REFUNDED:
            return intent
        if intent.state != PaymentIntent.State.SUCCEEDED:
            self.refresh_state(booking_ref)
            intent.refresh_from_db()
            if intent.state != PaymentIntent.State.SUCCEEDED:
                raise PaymentFailed("Payment was not captured.", booking_ref=booking_ref, state=intent.state)

        try:
            result = self._call(
                self.processor.refund_charge,
                intent.intent_id,
                idempotency_key=f"{intent.idempotency_key}-refund",
                reason=reason,
            )
        except (ProcessorDeclined, ChargeNotFound) as e:
            intent.last_error = str(e)
            intent.save(update_fields=["last_error", "updated_at"])
            logger.error("Refund for %s refused: %s", booking_ref, e)
            raise PaymentFailed("Refund was refused by the processor.", booking_ref=booking_ref) from e

        intent.state = PaymentIntent.State.REFUNDED
        intent.refund_id = result.refund_id
        intent.refunded_at = timezone.now()
        intent.save(update_fields=["state", "refund_id", "refunded_at", "updated_at"])
        logger.info("Intent %s for %s refunded (%s)", intent.intent_id, booking_ref, reason or "no reason")
        return intent

    # --- internals -------------------------------------------------------

    def _by_intent_id(self, intent_id: str) -> PaymentIntent | None:
        if not intent_id:
            return None
        return PaymentIntent.objects.filter(intent_id=intent_id).first()

    def _apply(self, intent: PaymentIntent, result: ChargeResult) -> str:
        state = CALLBACK_STATES.get(result.status)
        if state is None:
            return intent.state
        return self._settle(intent, state, error=result.error)

    def _settle(self, intent: PaymentIntent, state: str, error: str = "") -> str:
        """
        Record a processor outcome. A success always wins because the money
        was taken; other outcomes only settle an undecided intent.
        """
        if intent.state == state or intent.state == PaymentIntent.State.REFUNDED:
            return intent.state
        if intent.is_terminal and state != PaymentIntent.State.SUCCEEDED:
            return intent.state

        previous = intent.state
        intent.state = state
        fields = ["state", "updated_at"]
        if error:
            intent.last_error = error
            fields.append("last_error")
        if state == PaymentIntent.State.SUCCEEDED:
            intent.succeeded_at = timezone.now()
            fields.append("succeeded_at")
        intent.save(update_fields=fields)
        logger.info("Intent %s for %s: %s -> %s", intent.intent_id, intent.booking_ref, previous, state)
        return state

    def _call(self, operation, *args, **kwargs):
        max_retries = payment_setting("MAX_RETRIES")
        backoff = payment_setting("BACKOFF_SECONDS")
        for attempt in range(max_retries + 1):
            try:
                return operation(*args, **kwargs)
            except ProcessorTimeout as e:
                if attempt >= max_retries:
                    logger.error(
                        "Processor call %s gave no answer after %s attempts: %s",
                        operation.__name__, attempt + 1, e,
                    )
                    raise PaymentAmbiguous("Payment is being processed.") from e
                delay = backoff * 2 ** attempt
                logger.warning(
                    "Processor call %s timed out (attempt %s), retrying in %.2fs",
                    operation.__name__, attempt + 1, delay,
                )
                self._sleep(delay)


payment_broker = PaymentIntentBroker()
