"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, BookingComponent


class BookingComponentInline(admin.TabularInline):
    model = BookingComponent
    extra = 0
    fields = ("component_id", "name", "sport", "price_per_hour", "hold")
    readonly_fields = fields


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "reference",
        "venue",
        "user",
        "date",
        "start_time",
        "end_time",
        "status",
        "payment_status",
        "total_amount",
        "created_at",
    )
    list_filter = ("status", "payment_status", "date", "cancellation_source")
    search_fields = ("reference", "venue__name", "user__email", "payment_reference")
    readonly_fields = (
        "reference",
        "status",
        "payment_status",
        "payment_reference",
        "total_amount",
        "hold_expires_at",
        "confirmed_at",
        "completed_at",
        "expired_at",
        "cancelled_at",
        "created_at",
        "updated_at",
    )
    inlines = [BookingComponentInline]
