"""Wires booking commands and events to the message bus."""

from __future__ import annotations

from shared.application.message_bus import message_bus

from .application import command_handlers as commands
from .application import event_handlers as handlers
from .domain.events import BookingCancelled, BookingExpired, RefundRequested


def bootstrap(bus=message_bus) -> None:
    command_map = {
        commands.CreateBookingCommand: commands.CreateBookingHandler(),
        commands.ConfirmPaymentCommand: commands.ConfirmPaymentHandler(),
        commands.PaymentSucceededCommand: commands.PaymentSucceededHandler(),
        commands.PaymentFailedCommand: commands.PaymentFailedHandler(),
        commands.CancelBookingCommand: commands.CancelBookingHandler(),
        commands.RejectBookingCommand: commands.RejectBookingHandler(),
        commands.AcceptBookingCommand: commands.AcceptBookingHandler(),
        commands.CompleteBookingCommand: commands.CompleteBookingHandler(),
        commands.ExpireBookingCommand: commands.ExpireBookingHandler(),
        commands.RefundIssuedCommand: commands.RefundIssuedHandler(),
    }
    for command_type, handler in command_map.items():
        bus.register_command_handler(command_type, handler.handle, replace=True)

    bus.register_event_handler(BookingCancelled, handlers.void_intent_on_cancel)
    bus.register_event_handler(BookingExpired, handlers.void_intent_on_expiry)
    bus.register_event_handler(RefundRequested, handlers.request_refund)
    for event_type in handlers.NOTIFIED_EVENTS:
        bus.register_event_handler(event_type, handlers.notify_user)
    for event_type in handlers.FORWARDED_EVENTS:
        bus.register_event_handler(event_type, handlers.forward_to_subscribers)
