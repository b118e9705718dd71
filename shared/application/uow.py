"""
Unit of Work Pattern

Wraps a booking engine state change in one database transaction and makes
sure domain events reach the message bus only after the commit succeeded.
"""

from abc import ABC, abstractmethod
from typing import List
import logging

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        """Commit the transaction"""

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""

    @abstractmethod
    def collect_events(self, aggregate):
        """Collect events from aggregate root"""


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
            booking.transition_to(Booking.Status.CONFIRMED)
            booking.add_event(BookingConfirmed(...))
            booking.save()
            uow.collect_events(booking)
        # BookingConfirmed is published here, after commit

    Raising inside the block rolls back every write and drops the
    collected events.
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._transaction = None

    def __enter__(self):
        """Start database transaction"""
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Complete or rollback transaction"""
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            if self._transaction:
                self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def commit(self):
        """
        Schedule event publishing with transaction.on_commit() so
        subscribers never observe a state that was rolled back.
        """
        logger.debug("Committing unit of work with %s events", len(self._events))

        events = self._events.copy()
        self._events.clear()

        if events:
            transaction.on_commit(lambda: self._publish_events(events))

    def rollback(self):
        """Rollback changes and discard events"""
        if self._events:
            logger.warning("Rolling back unit of work, discarding %s events", len(self._events))
        self._events.clear()

    def record(self, event: DomainEvent):
        self._events.append(event)

    def collect_events(self, aggregate):
        """
        Drain the domain events recorded on an aggregate root.
        """
        new_events = getattr(aggregate, 'events', None)
        if new_events:
            self._events.extend(new_events)
            aggregate.clear_events()
            logger.debug(
                "Collected %s events from %s (ID: %s)",
                len(new_events), aggregate.__class__.__name__, aggregate.pk,
            )

    def _publish_events(self, events: List[DomainEvent]):
        from shared.application.message_bus import message_bus

        logger.info("Publishing %s domain events after commit", len(events))

        try:
            message_bus.publish_events(events)
        except Exception as e:
            # State is committed already; a lost event is picked up by monitoring
            logger.error(f"Error publishing events: {e}", exc_info=True)
