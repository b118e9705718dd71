"""Admin registrations for venues."""

from __future__ import annotations

from django.contrib import admin

from .models import FacilityComponent, Venue


class FacilityComponentInline(admin.TabularInline):
    model = FacilityComponent
    extra = 0
    fields = ("component_id", "name", "kind", "sport", "price_per_hour", "is_available")


@admin.register(Venue)
class VenueAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "city", "status", "is_active", "created_at")
    list_filter = ("status", "is_active", "city")
    search_fields = ("name", "city", "owner__email")
    readonly_fields = ("created_at", "updated_at")
    inlines = [FacilityComponentInline]
