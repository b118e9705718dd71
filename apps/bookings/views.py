"""API views for the booking domain."""

from __future__ import annotations

from django.db.models import Q  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.application.message_bus import message_bus
from shared.domain.exceptions import BookingNotFound

from .application.command_handlers import (
    CancelBookingCommand,
    ConfirmPaymentCommand,
    CreateBookingCommand,
)
from .filters import BookingFilterSet
from .gateway import owner_gateway
from .models import Booking
from .permissions import IsBookingStakeholder, IsFacilityOwner
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    CancelBookingSerializer,
    ConfirmPaymentSerializer,
    OwnerStatusSerializer,
)


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Court bookings: players reserve and pay, facility owners manage."""

    queryset = Booking.objects.select_related("venue", "user").prefetch_related("components")
    permission_classes = [permissions.IsAuthenticated, IsBookingStakeholder]
    filter_backends = [DjangoFilterBackend]
    filterset_class = BookingFilterSet

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        if self.action == "confirm_payment":
            return ConfirmPaymentSerializer
        if self.action == "cancel":
            return CancelBookingSerializer
        if self.action == "update_status":
            return OwnerStatusSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if not user.is_authenticated:
            return qs.none()
        if self.action in ("list", "my_bookings"):
            return qs.filter(user=user)
        if self.action == "venue_bookings":
            if user.is_platform_admin():
                return qs
            return qs.filter(venue__owner=user)
        if user.is_platform_admin():
            return qs
        if user.is_facility_owner():
            return qs.filter(Q(venue__owner=user) | Q(user=user))
        return qs.filter(user=user)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        handle = message_bus.handle_command(CreateBookingCommand(
            actor=request.user.actor,
            venue_id=data["venue"],
            sport=data["sport"],
            date=data["date"],
            start_time=data["start_time"],
            duration_hours=data["duration"],
            component_ids=data["selected_components"],
            notes=data.get("notes", ""),
        ))

        body = BookingSerializer(handle.booking, context=self.get_serializer_context()).data
        body["payment"] = {
            "payment_reference": handle.payment_reference,
            "client_secret": handle.client_secret,
            "amount": str(handle.booking.total_amount),
            "currency": handle.booking.currency,
            "pending": handle.payment_pending,
        }
        return Response(body, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="my-bookings")
    def my_bookings(self, request):  # type: ignore
        return self.list(request)

    @action(
        detail=False,
        methods=["get"],
        url_path="venue-bookings",
        permission_classes=[permissions.IsAuthenticated, IsFacilityOwner],
    )
    def venue_bookings(self, request):  # type: ignore
        return self.list(request)

    @action(detail=True, methods=["post"], url_path="confirm-payment")
    def confirm_payment(self, request, pk=None):  # type: ignore
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = message_bus.handle_command(ConfirmPaymentCommand(
            booking_id=self._booking_id(pk),
            actor=request.user.actor,
            proof=serializer.validated_data["proof"],
        ))
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = message_bus.handle_command(CancelBookingCommand(
            booking_id=self._booking_id(pk),
            actor=request.user.actor,
            reason=serializer.validated_data["reason"],
        ))
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["put"], url_path="status")
    def update_status(self, request, pk=None):  # type: ignore
        serializer = OwnerStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = owner_gateway.update_status(
            request.user.actor,
            self._booking_id(pk),
            serializer.validated_data["status"],
            serializer.validated_data["reason"],
        )
        return Response(BookingSerializer(booking).data)

    def _booking_id(self, pk) -> int:  # type: ignore
        try:
            return int(pk)
        except (TypeError, ValueError):
            raise BookingNotFound(booking_id=pk)
