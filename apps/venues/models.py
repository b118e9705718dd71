"""Venue domain models for QuickCourt.

Venue management (creation, moderation, search) is handled elsewhere; the
booking engine only reads these rows through ``apps.venues.catalog``.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

DEFAULT_CANCELLATION_POLICY = "Cancellation allowed up to 24 hours before booking time"


class Venue(models.Model):
    """Sports venue published by a facility owner."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")
        REJECTED = "rejected", _("Rejected")

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="venues",
    )
    name = models.CharField(max_length=100)
    description = models.TextField(max_length=500, blank=True)
    city = models.CharField(max_length=100, blank=True)
    address_line = models.CharField(max_length=255, blank=True)
    sports_supported = models.JSONField(default=list, blank=True)
    # {"monday": {"open": "06:00", "close": "22:00", "is_closed": false}, ...}
    operating_hours = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.APPROVED)
    is_active = models.BooleanField(default=True)
    cancellation_policy = models.CharField(
        max_length=255,
        default=DEFAULT_CANCELLATION_POLICY,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Venue")
        verbose_name_plural = _("Venues")
        ordering = ["name"]
        indexes = [
            models.Index(fields=["owner", "status"]),
        ]

    def __str__(self) -> str:
        return self.name

    @property
    def is_bookable(self) -> bool:
        return self.is_active and self.status == self.Status.APPROVED


class FacilityComponent(models.Model):
    """A court, field or lane inside a venue that can be booked by the hour."""

    class Kind(models.TextChoices):
        COURT = "court", _("Court")
        FIELD = "field", _("Field")
        POOL = "pool", _("Pool")
        TABLE = "table", _("Table")
        OTHER = "other", _("Other")

    venue = models.ForeignKey(Venue, on_delete=models.CASCADE, related_name="components")
    component_id = models.CharField(max_length=64)
    name = models.CharField(max_length=100)
    kind = models.CharField(max_length=20, choices=Kind.choices, default=Kind.COURT)
    sport = models.CharField(max_length=50)
    price_per_hour = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    features = models.JSONField(default=list, blank=True)
    is_available = models.BooleanField(default=True)

    class Meta:
        verbose_name = _("Facility component")
        verbose_name_plural = _("Facility components")
        ordering = ["venue", "component_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["venue", "component_id"],
                name="venue_component_unique_id",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.venue} / {self.name}"
