"""Tests for the payment intent broker."""

from decimal import Decimal

import pytest
from django.test import override_settings

from apps.payments.broker import NOT_FOUND, PaymentIntentBroker
from apps.payments.models import PaymentIntent
from apps.payments.processors import SUCCEEDED, ProcessorDeclined, ProcessorTimeout
from shared.domain.exceptions import IntentMismatch, PaymentAmbiguous, PaymentFailed
from shared.domain.value_objects import Money

AMOUNT = Money(Decimal("800.00"), "INR")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def broker(processor, sleeps):
    return PaymentIntentBroker(sleep=sleeps.append)


@pytest.mark.django_db
def test_create_intent_is_idempotent(broker, processor):
    first = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")
    second = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")

    assert first.pk == second.pk
    assert first.intent_id == second.intent_id
    assert first.client_secret.endswith("_secret")
    assert len(processor.calls_to("create_charge")) == 1
    assert PaymentIntent.objects.count() == 1


@pytest.mark.django_db
def test_reusing_key_for_another_booking_is_rejected(broker):
    broker.create_intent("AB12CD34", AMOUNT, "shared-key")

    with pytest.raises(IntentMismatch):
        broker.create_intent("ZZ99ZZ99", AMOUNT, "shared-key")


@pytest.mark.django_db
@override_settings(PAYMENTS={"MAX_RETRIES": 3, "BACKOFF_SECONDS": 0.5})
def test_timeouts_are_retried_with_backoff(broker, processor, sleeps):
    processor.fail_next("create_charge", ProcessorTimeout("read timed out"), ProcessorTimeout("read timed out"))

    intent = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")

    assert intent.intent_id
    assert sleeps == [0.5, 1.0]
    # every retry carries the same idempotency key
    assert {args[1] for args in processor.calls_to("create_charge")} == {"booking-AB12CD34"}


@pytest.mark.django_db
@override_settings(PAYMENTS={"MAX_RETRIES": 2, "BACKOFF_SECONDS": 0.5})
def test_exhausted_retries_are_ambiguous(broker, processor, sleeps):
    processor.fail_next("create_charge", *[ProcessorTimeout("503") for _ in range(3)])

    with pytest.raises(PaymentAmbiguous):
        broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")

    intent = PaymentIntent.objects.get(booking_ref="AB12CD34")
    assert intent.state == PaymentIntent.State.CREATED
    assert intent.intent_id is None
    assert sleeps == [0.5, 1.0]


@pytest.mark.django_db
def test_declined_charge_fails_the_intent(broker, processor):
    processor.fail_next("create_charge", ProcessorDeclined("amount too small"))

    with pytest.raises(PaymentFailed):
        broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")

    intent = PaymentIntent.objects.get(booking_ref="AB12CD34")
    assert intent.state == PaymentIntent.State.FAILED
    assert intent.last_error == "amount too small"


@pytest.mark.django_db
def test_confirm_intent_reports_outcome(broker):
    paid = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")
    declined = broker.create_intent("EF56GH78", AMOUNT, "booking-EF56GH78")

    assert broker.confirm_intent(paid.intent_id, "pm_card_visa") == PaymentIntent.State.SUCCEEDED
    assert broker.confirm_intent(declined.intent_id, "pm_card_chargeDeclined") == PaymentIntent.State.FAILED

    paid.refresh_from_db()
    assert paid.succeeded_at is not None


@pytest.mark.django_db
def test_refresh_state_without_intent_is_not_found(broker):
    assert broker.refresh_state("NOPE0000") == NOT_FOUND


@pytest.mark.django_db
def test_refresh_state_asks_the_processor(broker, processor):
    intent = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")
    processor.set_status(intent.intent_id, SUCCEEDED)

    assert broker.refresh_state("AB12CD34") == PaymentIntent.State.SUCCEEDED


@pytest.mark.django_db
def test_success_callback_wins_over_cancellation(broker):
    intent = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")
    broker.cancel_intent("AB12CD34")

    recorded = broker.record_callback(intent.intent_id, "payment_intent.succeeded")

    assert recorded.state == PaymentIntent.State.SUCCEEDED
    # a late failure does not undo a success
    broker.record_callback(intent.intent_id, "payment_intent.payment_failed")
    recorded.refresh_from_db()
    assert recorded.state == PaymentIntent.State.SUCCEEDED


@pytest.mark.django_db
def test_callback_for_unknown_intent_is_ignored(broker):
    assert broker.record_callback("pi_unknown", "succeeded") is None


@pytest.mark.django_db
def test_cancel_reveals_a_paid_charge(broker, processor):
    intent = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")
    processor.set_status(intent.intent_id, SUCCEEDED)

    assert broker.cancel_intent("AB12CD34") == PaymentIntent.State.SUCCEEDED


@pytest.mark.django_db
def test_cancel_with_custom_final_state(broker):
    broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")

    assert broker.cancel_intent("AB12CD34", PaymentIntent.State.EXPIRED) == PaymentIntent.State.EXPIRED


@pytest.mark.django_db
def test_refund_is_recorded_once(broker, processor):
    intent = broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")
    broker.confirm_intent(intent.intent_id, "pm_card_visa")

    refunded = broker.refund("AB12CD34", "hold lost")
    again = broker.refund("AB12CD34", "hold lost")

    assert refunded.state == PaymentIntent.State.REFUNDED
    assert refunded.refund_id == f"re_{intent.intent_id}"
    assert again.refund_id == refunded.refund_id
    assert len(processor.calls_to("refund_charge")) == 1


@pytest.mark.django_db
def test_refund_of_unpaid_intent_fails(broker):
    broker.create_intent("AB12CD34", AMOUNT, "booking-AB12CD34")

    with pytest.raises(PaymentFailed):
        broker.refund("AB12CD34")
