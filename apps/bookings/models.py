"""Booking domain models for QuickCourt."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.base import EventRecorder
from shared.domain.exceptions import InvalidTransition
from shared.domain.value_objects import Money, TimeRange


class Booking(EventRecorder, models.Model):
    """Court reservation for one or more facility components of a venue."""

    class Status(models.TextChoices):
        DRAFT = "draft", _("Draft")
        PENDING_PAYMENT = "pending_payment", _("Pending payment")
        CONFIRMED = "confirmed", _("Confirmed")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")
        EXPIRED = "expired", _("Expired")

    class PaymentStatus(models.TextChoices):
        WAITING = "waiting", _("Waiting for payment")
        PAID = "paid", _("Paid")
        FAILED = "failed", _("Failed")
        VOIDED = "voided", _("Voided")
        REFUND_PENDING = "refund_pending", _("Refund pending")
        REFUNDED = "refunded", _("Refunded")

    class CancellationSource(models.TextChoices):
        USER = "user", _("User")
        OWNER = "owner", _("Facility owner")
        SYSTEM = "system", _("System")

    ALLOWED_TRANSITIONS = {
        Status.DRAFT: {Status.PENDING_PAYMENT, Status.CANCELLED},
        Status.PENDING_PAYMENT: {Status.CONFIRMED, Status.CANCELLED, Status.EXPIRED},
        Status.CONFIRMED: {Status.COMPLETED, Status.CANCELLED},
        Status.COMPLETED: set(),
        Status.CANCELLED: set(),
        Status.EXPIRED: set(),
    }

    TERMINAL_STATUSES = {Status.COMPLETED, Status.CANCELLED, Status.EXPIRED}

    reference = models.CharField(max_length=12, unique=True, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    venue = models.ForeignKey(
        "venues.Venue",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    sport = models.CharField(max_length=50)
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    duration_hours = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(8)],
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="INR")
    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.DRAFT,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.WAITING,
    )
    payment_reference = models.CharField(
        max_length=255,
        blank=True,
        help_text=_("Payment processor intent id."),
    )
    notes = models.TextField(max_length=500, blank=True)
    hold_expires_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_source = models.CharField(
        max_length=20,
        choices=CancellationSource.choices,
        blank=True,
    )
    cancellation_reason = models.CharField(max_length=500, blank=True)
    owner_acknowledged_at = models.DateTimeField(null=True, blank=True)
    last_payment_event_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")),
                name="booking_valid_times",
            ),
        ]
        indexes = [
            models.Index(fields=["venue", "date"]),
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["user", "status"]),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.reference} at {self.venue_id} on {self.date}"

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding and not self.reference:
            self.reference = self.generate_reference()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_reference() -> str:
        return secrets.token_hex(4).upper()

    @property
    def idempotency_key(self) -> str:
        return f"booking-{self.reference}"

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start_time, self.end_time)

    @property
    def total(self) -> Money:
        return Money(self.total_amount, self.currency)

    @property
    def starts_at(self) -> datetime:
        return timezone.make_aware(datetime.combine(self.date, self.start_time))

    @property
    def ends_at(self) -> datetime:
        return timezone.make_aware(datetime.combine(self.date, self.end_time))

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, status: str) -> bool:
        return status in self.ALLOWED_TRANSITIONS.get(self.status, set())

    def transition_to(self, status: str) -> None:
        if not self.can_transition_to(status):
            raise InvalidTransition(
                f"Booking cannot move from {self.status} to {status}.",
                booking=self.reference,
                status=self.status,
            )
        self.status = status

    def is_processing(self, now: datetime | None = None, grace_seconds: int = 0) -> bool:
        """Pending payment for longer than the grace period."""
        if self.status != self.Status.PENDING_PAYMENT or self.created_at is None:
            return False
        now = now or timezone.now()
        return now - self.created_at > timedelta(seconds=grace_seconds)


class BookingComponent(models.Model):
    """Snapshot of one selected facility component and its ledger hold."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="components")
    component_id = models.CharField(max_length=64)
    name = models.CharField(max_length=100)
    kind = models.CharField(max_length=20)
    sport = models.CharField(max_length=50)
    price_per_hour = models.DecimalField(max_digits=10, decimal_places=2)
    facility_key = models.CharField(max_length=100)
    hold = models.ForeignKey(
        "slots.TimeSlotHold",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="booking_components",
    )

    class Meta:
        verbose_name = _("Booked component")
        verbose_name_plural = _("Booked components")
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "component_id"],
                name="booking_component_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.booking_id})"
