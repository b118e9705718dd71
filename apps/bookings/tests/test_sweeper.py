"""Tests for the reconciliation sweeper."""

from datetime import time, timedelta

import pytest
from django.utils import timezone

from apps.bookings.application.command_handlers import ConfirmPaymentCommand, CreateBookingCommand
from apps.bookings.models import Booking
from apps.bookings.sweeper import ReconciliationSweeper
from apps.bookings.tasks import complete_finished_bookings, reconcile_pending_payments
from apps.payments.processors import FAILED, SUCCEEDED, ProcessorTimeout
from apps.slots.ledger import slot_ledger
from apps.slots.models import TimeSlotHold
from shared.application.message_bus import message_bus
from shared.domain.value_objects import TimeRange


@pytest.fixture
def sweeper():
    return ReconciliationSweeper()


@pytest.fixture
def pending(player, venue, play_day, processor):
    return message_bus.handle_command(CreateBookingCommand(
        actor=player.actor,
        venue_id=venue.pk,
        sport="Badminton",
        date=play_day,
        start_time=time(18, 0),
        duration_hours=1,
        component_ids=["court-1"],
    )).booking


def past_grace(seconds=601):
    return timezone.now() + timedelta(seconds=seconds)


@pytest.mark.django_db
def test_fresh_bookings_are_left_alone(sweeper, pending, processor):
    counts = sweeper.run()

    assert counts["confirmed"] == counts["failed"] == counts["expired"] == counts["pending"] == 0
    assert processor.calls_to("get_charge_status") == []


@pytest.mark.django_db
def test_paid_booking_is_confirmed(sweeper, pending, processor, settings):
    settings.BOOKING_ENGINE = {**settings.BOOKING_ENGINE, "PAYMENT_GRACE_SECONDS": 60}
    processor.set_status(pending.payment_reference, SUCCEEDED)

    counts = sweeper.run(now=past_grace(61))

    assert counts["confirmed"] == 1
    pending.refresh_from_db()
    assert pending.status == Booking.Status.CONFIRMED
    assert pending.payment_status == Booking.PaymentStatus.PAID


@pytest.mark.django_db
def test_paid_booking_with_lost_hold_is_compensated(sweeper, pending, processor):
    processor.set_status(pending.payment_reference, SUCCEEDED)
    TimeSlotHold.objects.filter(booking_ref=pending.reference).update(
        expires_at=timezone.now() - timedelta(seconds=1)
    )

    counts = sweeper.run(now=past_grace())

    assert counts["compensated"] == 1
    pending.refresh_from_db()
    assert pending.status == Booking.Status.CANCELLED
    assert pending.payment_status in (Booking.PaymentStatus.REFUND_PENDING, Booking.PaymentStatus.REFUNDED)


@pytest.mark.django_db
def test_failed_payment_cancels(sweeper, pending, processor):
    processor.set_status(pending.payment_reference, FAILED)

    counts = sweeper.run(now=past_grace())

    assert counts["failed"] == 1
    pending.refresh_from_db()
    assert pending.status == Booking.Status.CANCELLED
    assert pending.payment_status == Booking.PaymentStatus.FAILED
    assert not TimeSlotHold.objects.filter(booking_ref=pending.reference, state=TimeSlotHold.State.HELD).exists()


@pytest.mark.django_db
def test_unpaid_booking_expires_with_its_hold(sweeper, pending, processor):
    counts = sweeper.run(now=past_grace())

    assert counts["expired"] == 1
    pending.refresh_from_db()
    assert pending.status == Booking.Status.EXPIRED


@pytest.mark.django_db
def test_unpaid_booking_inside_hold_stays_pending(sweeper, pending, processor, settings):
    settings.BOOKING_ENGINE = {**settings.BOOKING_ENGINE, "PAYMENT_GRACE_SECONDS": 60}

    counts = sweeper.run(now=past_grace(120))

    assert counts["pending"] == 1
    pending.refresh_from_db()
    assert pending.status == Booking.Status.PENDING_PAYMENT


@pytest.mark.django_db
def test_unreachable_processor_still_expires_lapsed_holds(sweeper, pending, processor):
    processor.fail_next("get_charge_status", *[ProcessorTimeout("timeout") for _ in range(4)])

    counts = sweeper.run(now=past_grace())

    assert counts["expired"] == 1
    assert counts["errors"] == 0


@pytest.mark.django_db
def test_sweep_is_idempotent(sweeper, pending, processor):
    processor.set_status(pending.payment_reference, FAILED)
    now = past_grace()

    sweeper.run(now=now)
    counts = sweeper.run(now=now)

    assert counts["failed"] == 0
    pending.refresh_from_db()
    assert pending.status == Booking.Status.CANCELLED


@pytest.mark.django_db
def test_orphaned_holds_are_released(sweeper, play_day):
    token = slot_ledger.acquire("9:court-1", play_day, TimeRange(time(9, 0), time(10, 0)), "ORPHAN01", 60)

    counts = sweeper.run(now=token.expires_at + timedelta(seconds=1))

    assert counts["orphaned_holds"] == 1
    assert TimeSlotHold.objects.get(pk=token.hold_id).state == TimeSlotHold.State.RELEASED


@pytest.mark.django_db
def test_finished_bookings_are_completed(sweeper, player, pending, processor):
    message_bus.handle_command(ConfirmPaymentCommand(booking_id=pending.pk, actor=player.actor, proof="pm_card_visa"))
    pending.refresh_from_db()

    assert sweeper.complete_finished() == 0
    assert sweeper.complete_finished(now=pending.ends_at + timedelta(minutes=1)) == 1

    pending.refresh_from_db()
    assert pending.status == Booking.Status.COMPLETED


@pytest.mark.django_db
def test_periodic_tasks_return_counts(pending):
    assert reconcile_pending_payments.apply().get()["expired"] == 0
    assert complete_finished_bookings.apply().get() == {"completed": 0}
