"""Tests for hold acquisition, confirmation and release."""

from datetime import date, time, timedelta

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.slots.ledger import SlotLedger
from apps.slots.models import SlotCell, TimeSlotHold
from shared.domain.exceptions import HoldExpired, SelectionInvalid, SlotConflict
from shared.domain.value_objects import TimeRange

FACILITY = "1:court-1"
DAY = date(2030, 5, 17)


@pytest.fixture
def ledger():
    return SlotLedger()


def _range(start_hour, start_minute, end_hour, end_minute):
    return TimeRange(time(start_hour, start_minute), time(end_hour, end_minute))


@pytest.mark.django_db
def test_overlapping_acquire_is_rejected(ledger):
    first = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111")

    with pytest.raises(SlotConflict) as exc_info:
        ledger.acquire(FACILITY, DAY, _range(18, 30, 19, 30), "BBB222")

    assert first.state == TimeSlotHold.State.HELD
    assert exc_info.value.conflicts == [
        {
            "facility": FACILITY,
            "date": DAY.isoformat(),
            "start_time": "18:00",
            "end_time": "19:00",
            "state": TimeSlotHold.State.HELD,
        }
    ]
    # the loser leaves nothing behind
    assert TimeSlotHold.objects.filter(booking_ref="BBB222").count() == 0
    assert SlotCell.objects.count() == 4


@pytest.mark.django_db
def test_adjacent_ranges_do_not_conflict(ledger):
    ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111")
    ledger.acquire(FACILITY, DAY, _range(19, 0, 20, 0), "BBB222")
    ledger.acquire(FACILITY, DAY, _range(17, 0, 18, 0), "CCC333")

    assert TimeSlotHold.objects.filter(state=TimeSlotHold.State.HELD).count() == 3


@pytest.mark.django_db
def test_same_range_on_other_facility_or_day_is_free(ledger):
    ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111")
    ledger.acquire("1:court-2", DAY, _range(18, 0, 19, 0), "BBB222")
    ledger.acquire(FACILITY, DAY + timedelta(days=1), _range(18, 0, 19, 0), "CCC333")

    assert TimeSlotHold.objects.count() == 3


@pytest.mark.django_db
def test_unaligned_range_is_invalid(ledger):
    with pytest.raises(SelectionInvalid):
        ledger.acquire(FACILITY, DAY, _range(18, 10, 19, 0), "AAA111")


@pytest.mark.django_db
def test_cell_uniqueness_is_enforced_by_database():
    now = timezone.now()
    hold = TimeSlotHold.objects.create(
        facility=FACILITY,
        date=DAY,
        start_time=time(18),
        end_time=time(18, 15),
        booking_ref="AAA111",
        acquired_at=now,
        expires_at=now + timedelta(minutes=10),
    )
    SlotCell.objects.create(hold=hold, facility=FACILITY, date=DAY, minute=18 * 60)

    with pytest.raises(IntegrityError), transaction.atomic():
        SlotCell.objects.create(hold=hold, facility=FACILITY, date=DAY, minute=18 * 60)


@pytest.mark.django_db
def test_confirm_is_idempotent(ledger):
    token = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111")

    confirmed = ledger.confirm(token)
    again = ledger.confirm(token)

    assert confirmed.state == TimeSlotHold.State.CONFIRMED
    assert again == confirmed


@pytest.mark.django_db
def test_confirm_after_expiry_fails(ledger):
    now = timezone.now()
    token = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111", hold_seconds=60, now=now)

    with pytest.raises(HoldExpired):
        ledger.confirm(token, now=now + timedelta(seconds=61))

    assert TimeSlotHold.objects.get(pk=token.hold_id).state == TimeSlotHold.State.HELD


@pytest.mark.django_db
def test_confirm_released_hold_fails(ledger):
    token = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111")
    ledger.release(token, "payment_failed")

    with pytest.raises(HoldExpired):
        ledger.confirm(token)


@pytest.mark.django_db
def test_release_is_idempotent_and_frees_interval(ledger):
    token = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111")

    assert ledger.release(token, "cancelled") is True
    assert ledger.release(token, "cancelled") is False

    hold = TimeSlotHold.objects.get(pk=token.hold_id)
    assert hold.state == TimeSlotHold.State.RELEASED
    assert hold.release_reason == "cancelled"
    assert not SlotCell.objects.filter(hold=hold).exists()

    ledger.acquire(FACILITY, DAY, _range(18, 30, 19, 30), "BBB222")


@pytest.mark.django_db
def test_expired_hold_is_reclaimed_on_acquire(ledger):
    now = timezone.now()
    stale = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111", hold_seconds=60, now=now)

    fresh = ledger.acquire(
        FACILITY, DAY, _range(18, 30, 19, 30), "BBB222", now=now + timedelta(minutes=2)
    )

    stale_hold = TimeSlotHold.objects.get(pk=stale.hold_id)
    assert stale_hold.state == TimeSlotHold.State.RELEASED
    assert stale_hold.release_reason == "expired"
    assert fresh.state == TimeSlotHold.State.HELD


@pytest.mark.django_db
def test_confirmed_hold_is_never_reclaimed(ledger):
    now = timezone.now()
    token = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111", hold_seconds=60, now=now)
    ledger.confirm(token, now=now)

    with pytest.raises(SlotConflict):
        ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "BBB222", now=now + timedelta(hours=1))


@pytest.mark.django_db
def test_all_live(ledger):
    now = timezone.now()
    first = ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111", hold_seconds=60, now=now)
    second = ledger.acquire("1:court-2", DAY, _range(18, 0, 19, 0), "AAA111", hold_seconds=600, now=now)

    with transaction.atomic():
        assert ledger.all_live([first, second], now=now + timedelta(seconds=30))
        assert not ledger.all_live([first, second], now=now + timedelta(seconds=90))
        assert not ledger.all_live([])


@pytest.mark.django_db
def test_release_all_and_holds_for(ledger):
    ledger.acquire(FACILITY, DAY, _range(18, 0, 19, 0), "AAA111")
    ledger.acquire("1:court-2", DAY, _range(18, 0, 19, 0), "AAA111")

    assert len(ledger.holds_for("AAA111")) == 2
    assert ledger.release_all("AAA111", "cancelled") == 2
    assert ledger.release_all("AAA111", "cancelled") == 0
    assert SlotCell.objects.count() == 0


@pytest.mark.django_db
def test_release_orphaned_skips_active_bookings(ledger):
    now = timezone.now()
    orphan = ledger.acquire(FACILITY, DAY, _range(8, 0, 9, 0), "ORPHAN", hold_seconds=60, now=now)
    pending = ledger.acquire(FACILITY, DAY, _range(10, 0, 11, 0), "PENDING", hold_seconds=60, now=now)

    released = ledger.release_orphaned(now + timedelta(minutes=5), active_refs=["PENDING"])

    assert released == 1
    assert TimeSlotHold.objects.get(pk=orphan.hold_id).state == TimeSlotHold.State.RELEASED
    assert TimeSlotHold.objects.get(pk=pending.hold_id).state == TimeSlotHold.State.HELD
