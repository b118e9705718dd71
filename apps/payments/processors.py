"""
Payment processor integrations.

``StripeProcessor`` drives Stripe payment intents through the SDK (amounts
in minor units). ``EmulatedProcessor`` stands in when no secret key is
configured so the whole booking flow can be exercised locally.

Processors translate transport problems into three exceptions the broker
understands:
- ProcessorTimeout: outcome unknown, safe to retry with the same key
- ProcessorDeclined: terminal refusal (card declined, invalid request)
- ChargeNotFound: the processor has no such charge
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.utils.module_loading import import_string  # type: ignore

from shared.conf import payment_setting
from shared.domain.value_objects import Money

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"
PENDING = "pending"
CANCELLED = "cancelled"


class ProcessorError(Exception):
    """Base class for payment processor errors."""


class ProcessorTimeout(ProcessorError):
    """The processor did not answer or answered with a server error."""


class ProcessorDeclined(ProcessorError):
    """The processor refused the request."""

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.code = code


class ChargeNotFound(ProcessorError):
    """The processor does not know the charge."""


@dataclass(frozen=True)
class ChargeResult:
    charge_id: str
    status: str
    client_secret: str = ""
    error: str = ""
    refund_id: str = ""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class PaymentProcessor(ABC):
    name = "abstract"

    @abstractmethod
    def create_charge(self, amount: Money, *, idempotency_key: str, metadata: dict[str, str]) -> ChargeResult:
        """Register a charge the client can pay."""

    @abstractmethod
    def confirm_charge(self, charge_id: str, proof: str, *, idempotency_key: str) -> ChargeResult:
        """Confirm the charge with the client's payment proof."""

    @abstractmethod
    def get_charge_status(self, charge_id: str) -> ChargeResult:
        """Fetch the current processor-side status."""

    @abstractmethod
    def cancel_charge(self, charge_id: str) -> ChargeResult:
        """Void a charge that has not been paid."""

    @abstractmethod
    def refund_charge(self, charge_id: str, *, idempotency_key: str, reason: str = "") -> ChargeResult:
        """Refund a paid charge in full."""


# Stripe payment intent statuses
STRIPE_STATUS_MAP = {
    "succeeded": SUCCEEDED,
    "canceled": CANCELLED,
    "processing": PENDING,
    "requires_action": PENDING,
    "requires_capture": PENDING,
    "requires_confirmation": PENDING,
    "requires_payment_method": PENDING,
}


class StripeProcessor(PaymentProcessor):
    """Stripe payment intents through the ``stripe`` SDK."""

    name = "stripe"

    def __init__(self, secret_key: str | None = None, timeout: float | None = None):
        self.secret_key = secret_key or payment_setting("STRIPE_SECRET_KEY")
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout or payment_setting("REQUEST_TIMEOUT"))
        # The broker retries with its own backoff and idempotency keys
        stripe.max_network_retries = 0

    def create_charge(self, amount: Money, *, idempotency_key: str, metadata: dict[str, str]) -> ChargeResult:
        intent = self._call(
            "PaymentIntent.create",
            stripe.PaymentIntent.create,
            amount=amount.minor_units(),
            currency=amount.currency.lower(),
            payment_method_types=["card"],
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        return self._result(intent)

    def confirm_charge(self, charge_id: str, proof: str, *, idempotency_key: str) -> ChargeResult:
        intent = self._call(
            "PaymentIntent.confirm",
            stripe.PaymentIntent.confirm,
            charge_id,
            payment_method=proof,
            idempotency_key=idempotency_key,
        )
        result = self._result(intent)
        # Stripe leaves a declined intent waiting for another payment method
        if intent.get("status") == "requires_payment_method":
            return ChargeResult(
                charge_id=result.charge_id,
                status=FAILED,
                error=result.error or "requires_payment_method",
                raw=result.raw,
            )
        return result

    def get_charge_status(self, charge_id: str) -> ChargeResult:
        intent = self._call("PaymentIntent.retrieve", stripe.PaymentIntent.retrieve, charge_id)
        result = self._result(intent)
        if intent.get("status") == "requires_payment_method" and intent.get("last_payment_error"):
            return ChargeResult(charge_id=result.charge_id, status=FAILED, error=result.error, raw=result.raw)
        return result

    def cancel_charge(self, charge_id: str) -> ChargeResult:
        return self._result(self._call("PaymentIntent.cancel", stripe.PaymentIntent.cancel, charge_id))

    def refund_charge(self, charge_id: str, *, idempotency_key: str, reason: str = "") -> ChargeResult:
        refund = self._call(
            "Refund.create",
            stripe.Refund.create,
            payment_intent=charge_id,
            reason="requested_by_customer",
            metadata={"reason": reason} if reason else {},
            idempotency_key=idempotency_key,
        )
        return ChargeResult(charge_id=charge_id, status=SUCCEEDED, refund_id=refund.get("id", ""), raw=dict(refund))

    def _result(self, intent) -> ChargeResult:
        error = (intent.get("last_payment_error") or {}).get("message", "")
        return ChargeResult(
            charge_id=intent.get("id", ""),
            status=STRIPE_STATUS_MAP.get(intent.get("status", ""), PENDING),
            client_secret=intent.get("client_secret") or "",
            error=error,
            raw=dict(intent),
        )

    def _call(self, label: str, operation, *args, **kwargs):
        """Run one SDK call, translating Stripe errors for the broker."""
        logger.info("Stripe %s %s", label, args[0] if args else "")
        try:
            return operation(*args, api_key=self.secret_key, **kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.warning(f"Stripe call {label} failed: {e}")
            raise ProcessorTimeout(str(e)) from e
        except stripe.CardError as e:
            logger.error(f"Stripe declined {label}: {e.user_message or e}")
            raise ProcessorDeclined(e.user_message or str(e), code=e.code or "") from e
        except stripe.InvalidRequestError as e:
            if e.http_status == 404:
                raise ChargeNotFound(str(e)) from e
            logger.error(f"Stripe refused {label}: {e}")
            raise ProcessorDeclined(str(e), code=e.code or "") from e
        except stripe.StripeError as e:
            if e.http_status is None or e.http_status >= 500:
                logger.warning(f"Stripe call {label} failed: {e}")
                raise ProcessorTimeout(str(e)) from e
            logger.error(f"Stripe refused {label}: {e}")
            raise ProcessorDeclined(str(e), code=e.code or "") from e


class EmulatedProcessor(PaymentProcessor):
    """
    Local stand-in for the payment processor.

    Confirmation proofs ``pm_card_chargeDeclined``, ``pm_card_declined`` or
    anything starting with ``fail`` are declined; every other proof succeeds.
    Charge state lives in process memory.
    """

    name = "emulated"
    DECLINING_PROOFS = {"pm_card_chargeDeclined", "pm_card_declined"}

    _charges: dict[str, str] = {}
    _keys: dict[str, str] = {}

    def __init__(self) -> None:
        logger.warning("Using the emulated payment processor (no STRIPE_SECRET_KEY configured)")

    def create_charge(self, amount: Money, *, idempotency_key: str, metadata: dict[str, str]) -> ChargeResult:
        charge_id = self._keys.get(idempotency_key)
        if charge_id is None:
            charge_id = f"pi_emulated_{uuid.uuid4().hex[:16]}"
            self._keys[idempotency_key] = charge_id
            self._charges[charge_id] = PENDING
            logger.info(f"Emulated charge {charge_id} created for {amount}")
        return ChargeResult(
            charge_id=charge_id,
            status=self._charges[charge_id],
            client_secret=f"{charge_id}_secret_emulated",
        )

    def confirm_charge(self, charge_id: str, proof: str, *, idempotency_key: str) -> ChargeResult:
        status = self._status(charge_id)
        if status != PENDING:
            return ChargeResult(charge_id=charge_id, status=status)
        if proof in self.DECLINING_PROOFS or proof.startswith("fail"):
            self._charges[charge_id] = FAILED
            raise ProcessorDeclined("Your card was declined.", code="card_declined")
        self._charges[charge_id] = SUCCEEDED
        return ChargeResult(charge_id=charge_id, status=SUCCEEDED)

    def get_charge_status(self, charge_id: str) -> ChargeResult:
        return ChargeResult(charge_id=charge_id, status=self._status(charge_id))

    def cancel_charge(self, charge_id: str) -> ChargeResult:
        if self._status(charge_id) == SUCCEEDED:
            raise ProcessorDeclined("This PaymentIntent has already succeeded.", code="payment_intent_unexpected_state")
        self._charges[charge_id] = CANCELLED
        return ChargeResult(charge_id=charge_id, status=CANCELLED)

    def refund_charge(self, charge_id: str, *, idempotency_key: str, reason: str = "") -> ChargeResult:
        self._status(charge_id)
        return ChargeResult(charge_id=charge_id, status=SUCCEEDED, refund_id=f"re_emulated_{uuid.uuid4().hex[:16]}")

    def _status(self, charge_id: str) -> str:
        try:
            return self._charges[charge_id]
        except KeyError:
            raise ChargeNotFound(charge_id) from None


def get_payment_processor() -> PaymentProcessor:
    """Processor selected by ``PAYMENTS["PROCESSOR"]``, else Stripe when a key is configured."""
    path = payment_setting("PROCESSOR")
    if path:
        return import_string(path)()
    if payment_setting("STRIPE_SECRET_KEY"):
        return StripeProcessor()
    return EmulatedProcessor()
