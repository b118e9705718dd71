from dataclasses import dataclass

import pytest

from shared.application.message_bus import MessageBus
from shared.application.uow import DjangoUnitOfWork
from shared.domain.base import DomainEvent, EventRecorder
from shared.domain.value_objects import Money


@dataclass
class PingCommand:
    value: int


@dataclass
class Pinged(DomainEvent):
    name = "test.pinged"

    value: int
    price: Money


def test_command_goes_to_its_single_handler():
    bus = MessageBus()
    bus.register_command_handler(PingCommand, lambda command: command.value * 2)

    assert bus.handle_command(PingCommand(value=21)) == 42
    with pytest.raises(ValueError):
        bus.register_command_handler(PingCommand, lambda command: None)


def test_unregistered_command_is_an_error():
    with pytest.raises(ValueError):
        MessageBus().handle_command(PingCommand(value=1))


def test_failing_event_handler_does_not_stop_the_others():
    bus = MessageBus()
    seen = []

    def broken(event):
        raise RuntimeError("subscriber down")

    bus.register_event_handler(Pinged, broken)
    bus.register_event_handler(Pinged, lambda event: seen.append(event.value))

    bus.publish_events([Pinged(value=7, price=Money.zero())])

    assert seen == [7]


def test_event_serialization():
    event = Pinged(aggregate_id=3, value=7, price=Money.zero("INR"))

    data = event.to_dict()

    assert data["event_type"] == "test.pinged"
    assert data["aggregate_id"] == 3
    assert data["payload"] == {"value": 7, "price": {"amount": "0", "currency": "INR"}}


class Aggregate(EventRecorder):
    pk = 1


@pytest.mark.django_db
def test_events_are_published_after_commit(monkeypatch, django_capture_on_commit_callbacks):
    bus = MessageBus()
    seen = []
    bus.register_event_handler(Pinged, lambda event: seen.append(event.value))
    monkeypatch.setattr("shared.application.message_bus.message_bus", bus)
    aggregate = Aggregate()

    with django_capture_on_commit_callbacks(execute=True):
        with DjangoUnitOfWork() as uow:
            aggregate.add_event(Pinged(value=1, price=Money.zero()))
            uow.collect_events(aggregate)
            assert seen == []

    assert seen == [1]
    assert aggregate.events == []


@pytest.mark.django_db
def test_rolled_back_unit_of_work_drops_events(monkeypatch, django_capture_on_commit_callbacks):
    bus = MessageBus()
    seen = []
    bus.register_event_handler(Pinged, lambda event: seen.append(event.value))
    monkeypatch.setattr("shared.application.message_bus.message_bus", bus)

    with django_capture_on_commit_callbacks(execute=True):
        with pytest.raises(RuntimeError):
            with DjangoUnitOfWork() as uow:
                uow.record(Pinged(value=1, price=Money.zero()))
                raise RuntimeError("boom")

    assert seen == []
