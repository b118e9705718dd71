"""Tests for facility-owner actions."""

from datetime import time

import pytest

from apps.bookings.application.command_handlers import CreateBookingCommand
from apps.bookings.gateway import FacilityOwnerActionGateway
from apps.bookings.models import Booking
from apps.users.models import User
from shared.application.message_bus import message_bus
from shared.domain.exceptions import BookingNotFound, SelectionInvalid, Unauthorized


@pytest.fixture
def gateway():
    return FacilityOwnerActionGateway()


@pytest.fixture
def booking(player, venue, play_day, processor):
    return message_bus.handle_command(CreateBookingCommand(
        actor=player.actor,
        venue_id=venue.pk,
        sport="Badminton",
        date=play_day,
        start_time=time(7, 0),
        duration_hours=1,
        component_ids=["court-2"],
    )).booking


@pytest.mark.django_db
def test_confirmed_status_acknowledges_only(gateway, owner, booking):
    result = gateway.update_status(owner.actor, booking.pk, "confirmed")

    assert result.status == Booking.Status.PENDING_PAYMENT
    assert result.owner_acknowledged_at is not None


@pytest.mark.django_db
def test_cancelled_status_rejects(gateway, owner, booking):
    result = gateway.update_status(owner.actor, booking.pk, "cancelled", "closed for a tournament")

    assert result.status == Booking.Status.CANCELLED
    assert result.cancellation_source == Booking.CancellationSource.OWNER
    assert result.cancellation_reason == "closed for a tournament"


@pytest.mark.django_db
def test_unknown_status_is_invalid(gateway, owner, booking):
    with pytest.raises(SelectionInvalid):
        gateway.update_status(owner.actor, booking.pk, "completed")


@pytest.mark.django_db
def test_players_cannot_act_as_owners(gateway, player, booking):
    with pytest.raises(Unauthorized):
        gateway.reject(player.actor, booking.pk)


@pytest.mark.django_db
def test_owner_of_another_venue_is_refused(gateway, booking):
    stranger = User.objects.create_user(
        email="other-owner@example.com",
        username="other-owner",
        role=User.RoleChoices.FACILITY_OWNER,
    )

    with pytest.raises(Unauthorized):
        gateway.accept(stranger.actor, booking.pk)


@pytest.mark.django_db
def test_admin_may_cancel(gateway, admin_user, booking):
    result = gateway.cancel(admin_user.actor, booking.pk, "duplicate")

    assert result.status == Booking.Status.CANCELLED
    assert result.cancellation_source == Booking.CancellationSource.SYSTEM


@pytest.mark.django_db
def test_missing_booking(gateway, owner):
    with pytest.raises(BookingNotFound):
        gateway.accept(owner.actor, 999999)


@pytest.mark.django_db
def test_ownership_comes_from_the_catalog(owner, booking):
    class TransferredCatalog:
        def owns_venue(self, owner_id, venue_id):
            return False

    with pytest.raises(Unauthorized):
        FacilityOwnerActionGateway(catalog=TransferredCatalog()).accept(owner.actor, booking.pk)
