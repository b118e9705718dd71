"""Admin registrations for payments."""

from __future__ import annotations

from django.contrib import admin

from .models import PaymentIntent


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    list_display = ("booking_ref", "intent_id", "amount", "currency", "state", "provider", "created_at")
    list_filter = ("state", "provider", "currency")
    search_fields = ("booking_ref", "intent_id", "idempotency_key")
    readonly_fields = ("idempotency_key", "client_secret", "created_at", "updated_at", "succeeded_at", "refunded_at")
