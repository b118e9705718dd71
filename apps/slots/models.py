"""Persistence for the slot ledger."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class TimeSlotHold(models.Model):
    """A temporary or permanent claim on a facility time range."""

    class State(models.TextChoices):
        HELD = "held", _("Held")
        CONFIRMED = "confirmed", _("Confirmed")
        RELEASED = "released", _("Released")

    facility = models.CharField(max_length=100, help_text=_("<venue_id>:<component_id>"))
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    booking_ref = models.CharField(max_length=32, db_index=True)
    state = models.CharField(max_length=20, choices=State.choices, default=State.HELD)
    acquired_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    confirmed_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    release_reason = models.CharField(max_length=50, blank=True)

    class Meta:
        verbose_name = _("Time slot hold")
        verbose_name_plural = _("Time slot holds")
        ordering = ["date", "start_time"]
        indexes = [
            models.Index(fields=["facility", "date", "state"]),
            models.Index(fields=["state", "expires_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(start_time__lt=models.F("end_time")),
                name="slot_hold_start_before_end",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.facility} {self.date} {self.start_time:%H:%M}-{self.end_time:%H:%M} ({self.state})"

    @property
    def is_live(self) -> bool:
        return self.state in {self.State.HELD, self.State.CONFIRMED}


class SlotCell(models.Model):
    """One fixed-width minute cell covered by a live hold.

    Cells exist only while their hold is HELD or CONFIRMED; releasing a hold
    deletes its cells and frees the interval.
    """

    hold = models.ForeignKey(TimeSlotHold, on_delete=models.CASCADE, related_name="cells")
    facility = models.CharField(max_length=100)
    date = models.DateField()
    minute = models.PositiveSmallIntegerField(help_text=_("Minute of day the cell starts at"))

    class Meta:
        verbose_name = _("Slot cell")
        verbose_name_plural = _("Slot cells")
        constraints = [
            models.UniqueConstraint(
                fields=["facility", "date", "minute"],
                name="slot_cell_unique_minute",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.facility} {self.date} +{self.minute}m"
