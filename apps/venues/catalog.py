"""Read-through venue catalog used by the booking engine.

Every call reads the database: there is no process-wide cache, so an owner
disabling a court is visible to the next booking attempt.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal

from shared.domain.exceptions import SelectionInvalid
from shared.domain.value_objects import TimeRange

from .models import Venue

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class ComponentSnapshot:
    component_id: str
    name: str
    kind: str
    sport: str
    price_per_hour: Decimal
    is_available: bool = True


@dataclass(frozen=True)
class VenueSnapshot:
    venue_id: int
    owner_id: int
    name: str
    sports_supported: tuple[str, ...]
    components: tuple[ComponentSnapshot, ...]
    is_bookable: bool
    operating_hours: dict = field(default_factory=dict)

    def component(self, component_id: str) -> ComponentSnapshot | None:
        for component in self.components:
            if component.component_id == component_id:
                return component
        return None

    def facility_key(self, component_id: str) -> str:
        """Ledger facility identifier of one component."""
        return f"{self.venue_id}:{component_id}"

    def opening_range(self, day: date) -> TimeRange | None:
        """Opening hours on ``day``; ``None`` when the venue is closed."""
        hours = self.operating_hours.get(WEEKDAYS[day.weekday()])
        if not hours or hours.get("is_closed") or hours.get("isClosed"):
            return None
        return TimeRange(
            time.fromisoformat(hours.get("open", "00:00")),
            time.fromisoformat(hours.get("close", "23:59")),
        )

    def is_open_during(self, day: date, time_range: TimeRange) -> bool:
        # no configured hours: open around the clock
        if not self.operating_hours:
            return True
        opening = self.opening_range(day)
        return opening is not None and opening.contains(time_range)


class VenueCatalog(ABC):
    """Venue lookups the booking engine depends on."""

    @abstractmethod
    def get_venue(self, venue_id: int) -> VenueSnapshot:
        """Return the venue snapshot or raise ``SelectionInvalid``."""


class DjangoVenueCatalog(VenueCatalog):
    def get_venue(self, venue_id: int) -> VenueSnapshot:
        try:
            venue = Venue.objects.prefetch_related("components").get(pk=venue_id)
        except (Venue.DoesNotExist, ValueError, TypeError):
            logger.info("Venue %s not found in catalog", venue_id)
            raise SelectionInvalid("Venue not found.", venue_id=venue_id)

        components = tuple(
            ComponentSnapshot(
                component_id=component.component_id,
                name=component.name,
                kind=component.kind,
                sport=component.sport,
                price_per_hour=component.price_per_hour,
                is_available=component.is_available,
            )
            for component in venue.components.all()
        )
        return VenueSnapshot(
            venue_id=venue.pk,
            owner_id=venue.owner_id,
            name=venue.name,
            sports_supported=tuple(venue.sports_supported or ()),
            components=components,
            is_bookable=venue.is_bookable,
            operating_hours=dict(venue.operating_hours or {}),
        )

    def owns_venue(self, owner_id: int, venue_id: int) -> bool:
        return Venue.objects.filter(pk=venue_id, owner_id=owner_id).exists()
