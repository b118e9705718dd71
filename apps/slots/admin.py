"""Admin registrations for the slot ledger."""

from __future__ import annotations

from django.contrib import admin

from .models import TimeSlotHold


@admin.register(TimeSlotHold)
class TimeSlotHoldAdmin(admin.ModelAdmin):
    list_display = ("facility", "date", "start_time", "end_time", "booking_ref", "state", "expires_at")
    list_filter = ("state", "date")
    search_fields = ("facility", "booking_ref")
    readonly_fields = ("acquired_at", "confirmed_at", "released_at")
