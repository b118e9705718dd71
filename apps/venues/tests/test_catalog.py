from datetime import date, time
from decimal import Decimal

import pytest

from apps.users.models import User
from apps.venues.catalog import DjangoVenueCatalog
from apps.venues.models import FacilityComponent, Venue
from shared.domain.exceptions import SelectionInvalid
from shared.domain.value_objects import TimeRange


@pytest.fixture
def venue():
    owner = User.objects.create_user(
        email="owner@example.com",
        username="owner",
        role=User.RoleChoices.FACILITY_OWNER,
    )
    venue = Venue.objects.create(
        owner=owner,
        name="Smash Arena",
        sports_supported=["Badminton"],
        operating_hours={
            "monday": {"open": "06:00", "close": "22:00", "is_closed": False},
            "sunday": {"open": "06:00", "close": "22:00", "is_closed": True},
        },
    )
    FacilityComponent.objects.create(
        venue=venue,
        component_id="court-1",
        name="Court 1",
        sport="Badminton",
        price_per_hour=Decimal("400.00"),
    )
    return venue


@pytest.mark.django_db
def test_snapshot_reflects_current_rows(venue):
    catalog = DjangoVenueCatalog()

    snapshot = catalog.get_venue(venue.pk)
    assert snapshot.owner_id == venue.owner_id
    assert snapshot.sports_supported == ("Badminton",)
    assert snapshot.is_bookable
    assert snapshot.component("court-1").price_per_hour == Decimal("400.00")
    assert snapshot.facility_key("court-1") == f"{venue.pk}:court-1"

    FacilityComponent.objects.filter(venue=venue).update(is_available=False)
    Venue.objects.filter(pk=venue.pk).update(is_active=False)

    refreshed = catalog.get_venue(venue.pk)
    assert not refreshed.is_bookable
    assert not refreshed.component("court-1").is_available


@pytest.mark.django_db
def test_missing_venue_is_invalid_selection():
    with pytest.raises(SelectionInvalid):
        DjangoVenueCatalog().get_venue(999)


@pytest.mark.django_db
def test_operating_hours(venue):
    snapshot = DjangoVenueCatalog().get_venue(venue.pk)
    monday = date(2030, 1, 7)
    sunday = date(2030, 1, 6)
    tuesday = date(2030, 1, 8)

    assert snapshot.is_open_during(monday, TimeRange(time(18), time(19)))
    assert not snapshot.is_open_during(monday, TimeRange(time(21), time(23)))
    assert not snapshot.is_open_during(sunday, TimeRange(time(18), time(19)))
    # days missing from the schedule are closed
    assert not snapshot.is_open_during(tuesday, TimeRange(time(18), time(19)))


@pytest.mark.django_db
def test_venue_without_hours_is_always_open(venue):
    Venue.objects.filter(pk=venue.pk).update(operating_hours={})
    snapshot = DjangoVenueCatalog().get_venue(venue.pk)

    assert snapshot.is_open_during(date(2030, 1, 6), TimeRange(time(5), time(23, 45)))
    assert DjangoVenueCatalog().owns_venue(venue.owner_id, venue.pk)
