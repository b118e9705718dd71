"""Permissions for the booking API."""

from __future__ import annotations

from rest_framework import permissions  # type: ignore

from .models import Booking


class IsBookingStakeholder(permissions.BasePermission):
    """The player who booked, the venue owner and admins can see a booking."""

    def has_object_permission(self, request, view, obj: Booking):  # type: ignore
        user = request.user
        if not user.is_authenticated:
            return False
        if user.is_platform_admin():
            return True
        return obj.user_id == user.id or obj.venue.owner_id == user.id


class IsFacilityOwner(permissions.BasePermission):
    message = "Only facility owners can access venue bookings."

    def has_permission(self, request, view):  # type: ignore
        user = request.user
        return bool(user.is_authenticated and (user.is_facility_owner() or user.is_platform_admin()))
