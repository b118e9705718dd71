"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from shared.conf import engine_setting

from .models import Booking, BookingComponent


class BookingCreateSerializer(serializers.Serializer):
    """Court reservation request from a player."""

    venue = serializers.IntegerField(min_value=1)
    sport = serializers.CharField(max_length=50)
    date = serializers.DateField()
    start_time = serializers.TimeField()
    duration = serializers.IntegerField()
    selected_components = serializers.ListField(
        child=serializers.CharField(max_length=64),
        min_length=1,
    )
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")

    def validate_duration(self, value: int) -> int:
        min_hours = engine_setting("MIN_DURATION_HOURS")
        max_hours = engine_setting("MAX_DURATION_HOURS")
        if not min_hours <= value <= max_hours:
            raise serializers.ValidationError(f"Duration must be between {min_hours} and {max_hours} hours.")
        return value


class ConfirmPaymentSerializer(serializers.Serializer):
    proof = serializers.CharField(max_length=255)


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class OwnerStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=20)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class BookingComponentSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingComponent
        fields = ["component_id", "name", "kind", "sport", "price_per_hour"]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Detailed booking representation."""

    user_id = serializers.ReadOnlyField(source="user.id")
    venue_id = serializers.ReadOnlyField(source="venue.id")
    venue_name = serializers.ReadOnlyField(source="venue.name")
    components = BookingComponentSerializer(many=True, read_only=True)
    display_status = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "reference",
            "user_id",
            "venue_id",
            "venue_name",
            "sport",
            "date",
            "start_time",
            "end_time",
            "duration_hours",
            "components",
            "total_amount",
            "currency",
            "status",
            "display_status",
            "payment_status",
            "payment_reference",
            "notes",
            "hold_expires_at",
            "confirmed_at",
            "completed_at",
            "expired_at",
            "cancelled_at",
            "cancellation_source",
            "cancellation_reason",
            "owner_acknowledged_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_display_status(self, obj: Booking) -> str:
        # stuck past the grace period: shown as processing until reconciled
        if obj.is_processing(grace_seconds=engine_setting("PAYMENT_GRACE_SECONDS")):
            return "processing"
        return obj.status
