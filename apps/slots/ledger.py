"""
Slot Ledger

Grants, confirms and releases holds on facility time ranges.

Strategy:
1. Every live hold owns one ``SlotCell`` row per CELL_MINUTES-wide cell
   of its range
2. ``UNIQUE(facility, date, minute)`` on the cells is the only overlap
   check: inserting the cells either succeeds for the whole range or the
   savepoint is rolled back and the caller gets ``SlotConflict``
3. Releasing a hold deletes its cells, so the interval is immediately
   available again

The ledger knows nothing about bookings or payments; ``booking_ref`` is an
opaque holder identifier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from django.db import IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from shared.conf import engine_setting
from shared.domain.exceptions import HoldExpired, SelectionInvalid, SlotConflict
from shared.domain.value_objects import TimeRange

from .models import SlotCell, TimeSlotHold

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HoldToken:
    """Handle returned to the holder of a ledger hold."""

    hold_id: int
    facility: str
    date: date
    start_time: time
    end_time: time
    booking_ref: str
    expires_at: datetime
    state: str

    @classmethod
    def from_model(cls, hold: TimeSlotHold) -> "HoldToken":
        return cls(
            hold_id=hold.pk,
            facility=hold.facility,
            date=hold.date,
            start_time=hold.start_time,
            end_time=hold.end_time,
            booking_ref=hold.booking_ref,
            expires_at=hold.expires_at,
            state=hold.state,
        )

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start_time, self.end_time)


class SlotLedger:
    """Atomic hold bookkeeping for (facility, date, time range)."""

    def acquire(
        self,
        facility: str,
        day: date,
        time_range: TimeRange,
        booking_ref: str,
        hold_seconds: int | None = None,
        *,
        now: datetime | None = None,
    ) -> HoldToken:
        """
        Place a HELD hold on ``time_range``.

        Raises:
            SelectionInvalid: the range does not align to the cell grid
            SlotConflict: another live hold overlaps the range
        """
        cell_minutes = engine_setting("CELL_MINUTES")
        if not time_range.is_aligned(cell_minutes):
            raise SelectionInvalid(
                f"Start and end time must align to {cell_minutes}-minute slots.",
                time_range=str(time_range),
            )

        now = now or timezone.now()
        if hold_seconds is None:
            hold_seconds = engine_setting("HOLD_SECONDS")
        minutes = list(time_range.cells(cell_minutes))

        with transaction.atomic():
            self._reclaim_expired(facility, day, minutes, now)

            hold = TimeSlotHold.objects.create(
                facility=facility,
                date=day,
                start_time=time_range.start,
                end_time=time_range.end,
                booking_ref=booking_ref,
                state=TimeSlotHold.State.HELD,
                acquired_at=now,
                expires_at=now + timedelta(seconds=hold_seconds),
            )
            try:
                with transaction.atomic():
                    SlotCell.objects.bulk_create(
                        [
                            SlotCell(hold=hold, facility=facility, date=day, minute=minute)
                            for minute in minutes
                        ]
                    )
            except IntegrityError:
                conflicts = self._conflicting_holds(facility, day, minutes)
                logger.info(
                    "Hold rejected for %s on %s %s (%s): %s conflicting holds",
                    facility, day, time_range, booking_ref, len(conflicts),
                )
                # Leaving the outer block with an exception drops the hold row too
                raise SlotConflict(
                    "The requested slot is no longer available.",
                    conflicts=conflicts,
                )

        logger.info(
            "Hold %s acquired for %s on %s %s (%s), expires at %s",
            hold.pk, facility, day, time_range, booking_ref, hold.expires_at.isoformat(),
        )
        return HoldToken.from_model(hold)

    def confirm(self, token: HoldToken, *, now: datetime | None = None) -> HoldToken:
        """
        Promote a HELD hold to CONFIRMED.

        Confirming an already confirmed hold returns it unchanged.

        Raises:
            HoldExpired: the hold was released or is past its expiry
        """
        now = now or timezone.now()
        with transaction.atomic():
            hold = TimeSlotHold.objects.select_for_update().filter(pk=token.hold_id).first()
            if hold is None:
                raise HoldExpired(hold_id=token.hold_id)
            if hold.state == TimeSlotHold.State.CONFIRMED:
                return HoldToken.from_model(hold)
            if hold.state == TimeSlotHold.State.RELEASED or hold.expires_at <= now:
                raise HoldExpired(hold_id=hold.pk, state=hold.state)

            hold.state = TimeSlotHold.State.CONFIRMED
            hold.confirmed_at = now
            hold.save(update_fields=["state", "confirmed_at"])

        logger.info("Hold %s confirmed for %s", hold.pk, hold.booking_ref)
        return HoldToken.from_model(hold)

    def release(self, token: HoldToken, reason: str = "") -> bool:
        """Release a hold whatever its state. Returns False if it was already released."""
        with transaction.atomic():
            hold = TimeSlotHold.objects.select_for_update().filter(pk=token.hold_id).first()
            if hold is None or hold.state == TimeSlotHold.State.RELEASED:
                return False
            self._release_locked(hold, reason, timezone.now())
        return True

    def all_live(self, tokens: Iterable[HoldToken], *, now: datetime | None = None) -> bool:
        """
        Lock the holds and report whether every one is still confirmable
        (HELD and unexpired, or already CONFIRMED).

        Must run inside the caller's transaction for the locks to matter.
        """
        now = now or timezone.now()
        hold_ids = [token.hold_id for token in tokens]
        if not hold_ids:
            return False
        holds = list(TimeSlotHold.objects.select_for_update().filter(pk__in=hold_ids))
        if len(holds) != len(set(hold_ids)):
            return False
        for hold in holds:
            if hold.state == TimeSlotHold.State.CONFIRMED:
                continue
            if hold.state != TimeSlotHold.State.HELD or hold.expires_at <= now:
                return False
        return True

    def holds_for(self, booking_ref: str) -> list[HoldToken]:
        return [
            HoldToken.from_model(hold)
            for hold in TimeSlotHold.objects.filter(booking_ref=booking_ref).order_by("pk")
        ]

    def release_all(self, booking_ref: str, reason: str = "") -> int:
        """Release every live hold of ``booking_ref``; returns how many changed."""
        now = timezone.now()
        released = 0
        with transaction.atomic():
            holds = TimeSlotHold.objects.select_for_update().filter(
                booking_ref=booking_ref,
                state__in=[TimeSlotHold.State.HELD, TimeSlotHold.State.CONFIRMED],
            )
            for hold in holds:
                self._release_locked(hold, reason, now)
                released += 1
        return released

    def release_orphaned(self, now: datetime | None = None, *, active_refs: Iterable[str] = ()) -> int:
        """
        Release expired HELD holds whose holder is not in ``active_refs``.

        Holds that belong to a booking still awaiting payment are left to
        the booking lifecycle, which releases them together.
        """
        now = now or timezone.now()
        released = 0
        with transaction.atomic():
            holds = (
                TimeSlotHold.objects.select_for_update()
                .filter(state=TimeSlotHold.State.HELD, expires_at__lte=now)
                .exclude(booking_ref__in=list(active_refs))
            )
            for hold in holds:
                self._release_locked(hold, "orphaned", now)
                released += 1
        if released:
            logger.info("Released %s orphaned holds", released)
        return released

    # --- internals -------------------------------------------------------

    def _release_locked(self, hold: TimeSlotHold, reason: str, now: datetime) -> None:
        SlotCell.objects.filter(hold=hold).delete()
        hold.state = TimeSlotHold.State.RELEASED
        hold.released_at = now
        hold.release_reason = reason[:50]
        hold.save(update_fields=["state", "released_at", "release_reason"])
        logger.info("Hold %s released for %s (%s)", hold.pk, hold.booking_ref, reason or "unspecified")

    def _reclaim_expired(self, facility: str, day: date, minutes: list[int], now: datetime) -> None:
        """Free cells still owned by HELD holds that are past expiry."""
        stale_ids = set(
            SlotCell.objects.filter(
                facility=facility,
                date=day,
                minute__in=minutes,
                hold__state=TimeSlotHold.State.HELD,
                hold__expires_at__lte=now,
            ).values_list("hold_id", flat=True)
        )
        if not stale_ids:
            return
        stale = TimeSlotHold.objects.select_for_update().filter(
            pk__in=stale_ids,
            state=TimeSlotHold.State.HELD,
        )
        for hold in stale:
            self._release_locked(hold, "expired", now)

    def _conflicting_holds(self, facility: str, day: date, minutes: list[int]) -> list[dict]:
        holds = (
            TimeSlotHold.objects.filter(
                cells__facility=facility,
                cells__date=day,
                cells__minute__in=minutes,
            )
            .distinct()
            .order_by("start_time")
        )
        return [
            {
                "facility": hold.facility,
                "date": hold.date.isoformat(),
                "start_time": hold.start_time.strftime("%H:%M"),
                "end_time": hold.end_time.strftime("%H:%M"),
                "state": hold.state,
            }
            for hold in holds
        ]


slot_ledger = SlotLedger()
