"""
Facility-Owner Action Gateway

Entry point for owner actions on bookings. It checks that the actor is a
facility owner (or admin) who owns the booking's venue according to the
catalog, validates the request shape and dispatches the lifecycle command.
"""

from __future__ import annotations

import logging

from shared.application.message_bus import message_bus
from shared.domain.exceptions import BookingNotFound, SelectionInvalid, Unauthorized
from shared.domain.value_objects import Actor

from apps.venues.catalog import DjangoVenueCatalog

from .application.command_handlers import (
    AcceptBookingCommand,
    CancelBookingCommand,
    RejectBookingCommand,
)
from .models import Booking

logger = logging.getLogger(__name__)

OWNER_STATUSES = ("confirmed", "cancelled")


class FacilityOwnerActionGateway:
    def __init__(self, catalog=None, bus=None):
        self.catalog = catalog or DjangoVenueCatalog()
        self.bus = bus or message_bus

    def accept(self, actor: Actor, booking_id: int) -> Booking:
        self._authorize(actor, booking_id)
        return self.bus.handle_command(AcceptBookingCommand(booking_id=booking_id, actor=actor))

    def reject(self, actor: Actor, booking_id: int, reason: str = "") -> Booking:
        self._authorize(actor, booking_id)
        return self.bus.handle_command(RejectBookingCommand(booking_id=booking_id, actor=actor, reason=reason))

    def cancel(self, actor: Actor, booking_id: int, reason: str = "") -> Booking:
        self._authorize(actor, booking_id)
        return self.bus.handle_command(CancelBookingCommand(booking_id=booking_id, actor=actor, reason=reason))

    def update_status(self, actor: Actor, booking_id: int, status: str, reason: str = "") -> Booking:
        """Owner status update: ``confirmed`` acknowledges, ``cancelled`` rejects."""
        if status not in OWNER_STATUSES:
            raise SelectionInvalid(
                "Status must be one of: confirmed, cancelled.",
                allowed=list(OWNER_STATUSES),
            )
        if status == "confirmed":
            return self.accept(actor, booking_id)
        return self.reject(actor, booking_id, reason)

    def _authorize(self, actor: Actor, booking_id: int) -> None:
        if not (actor.is_owner or actor.is_admin):
            raise Unauthorized("Only facility owners can manage bookings.")

        venue_id = Booking.objects.filter(pk=booking_id).values_list("venue_id", flat=True).first()
        if venue_id is None:
            raise BookingNotFound(booking_id=booking_id)
        if actor.is_admin:
            return

        if not self.catalog.owns_venue(actor.user_id, venue_id):
            logger.warning(f"User {actor.user_id} tried to manage booking {booking_id} of venue {venue_id}")
            raise Unauthorized("You do not own this venue.", booking_id=booking_id)


owner_gateway = FacilityOwnerActionGateway()
