"""
Base Domain Classes

This module provides the foundational building blocks shared by the
booking engine contexts:
- ValueObject: Immutable objects compared by value
- DomainEvent: Events that represent something that happened
- EventRecorder: Mixin that lets a Django model collect domain events
  until the unit of work publishes them
"""

from abc import ABC
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import ClassVar, List
from uuid import UUID, uuid4

from django.utils import timezone


@dataclass(frozen=True)
class ValueObject(ABC):
    """
    Base class for value objects

    Value objects are immutable and have no identity.
    Two value objects are equal if all their attributes are equal.
    """
    pass


def _jsonable(value):
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(kw_only=True)
class DomainEvent:
    """
    Base class for domain events

    Domain events represent something that happened in the domain.
    ``name`` is the public event name used by downstream consumers
    (e.g. ``booking.completed``).
    """
    name: ClassVar[str] = "domain.event"

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=timezone.now)
    aggregate_id: int | None = None

    def payload(self) -> dict:
        data = asdict(self)
        for key in ("event_id", "occurred_at", "aggregate_id"):
            data.pop(key, None)
        return _jsonable(data)

    def to_dict(self) -> dict:
        """Convert event to dictionary for serialization"""
        return {
            'event_id': str(self.event_id),
            'event_type': self.name,
            'occurred_at': self.occurred_at.isoformat(),
            'aggregate_id': self.aggregate_id,
            'payload': self.payload(),
        }


class EventRecorder:
    """
    Collects domain events on an aggregate root.

    Used as a mixin on Django models; events live only on the in-memory
    instance and are drained by ``DjangoUnitOfWork.collect_events``.
    """

    def add_event(self, event: DomainEvent) -> None:
        self.__dict__.setdefault('_pending_events', []).append(event)

    def clear_events(self) -> None:
        self.__dict__.pop('_pending_events', None)

    @property
    def events(self) -> List[DomainEvent]:
        return list(self.__dict__.get('_pending_events', []))
