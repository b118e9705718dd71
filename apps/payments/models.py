"""Payment intent persistence, owned by the payment intent broker."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class PaymentIntent(models.Model):
    """One charge attempt for one booking."""

    class State(models.TextChoices):
        CREATED = "created", _("Created")
        SUCCEEDED = "succeeded", _("Succeeded")
        FAILED = "failed", _("Failed")
        EXPIRED = "expired", _("Expired")
        CANCELLED = "cancelled", _("Cancelled")
        REFUNDED = "refunded", _("Refunded")

    TERMINAL_STATES = {
        State.SUCCEEDED,
        State.FAILED,
        State.EXPIRED,
        State.CANCELLED,
        State.REFUNDED,
    }

    intent_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text=_("Identifier assigned by the payment processor"),
    )
    booking_ref = models.CharField(max_length=32, unique=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="INR")
    state = models.CharField(max_length=20, choices=State.choices, default=State.CREATED)
    idempotency_key = models.CharField(max_length=255, unique=True)
    client_secret = models.CharField(max_length=255, blank=True)
    provider = models.CharField(max_length=50, blank=True)
    last_error = models.TextField(blank=True)
    refund_id = models.CharField(max_length=255, blank=True)
    succeeded_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payment intent")
        verbose_name_plural = _("Payment intents")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["state", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"PaymentIntent {self.booking_ref} ({self.state})"

    @property
    def is_terminal(self) -> bool:
        return self.state in self.TERMINAL_STATES
