"""
Booking Command Handlers

These are the use cases for the booking lifecycle. They are the only code
that changes ``Booking.status``; views, the owner gateway, the payment
webhook and the reconciliation sweeper dispatch commands through the
message bus.

Commands:
- CreateBookingCommand: Acquire holds and open a payment intent
- ConfirmPaymentCommand: Client-side payment confirmation
- PaymentSucceededCommand: Payment captured (client, webhook or sweeper)
- PaymentFailedCommand: Payment refused or never started
- CancelBookingCommand: Cancel by the user, the facility owner or an admin
- RejectBookingCommand: Cancel initiated by the facility owner
- AcceptBookingCommand: Owner acknowledgement, no status change
- CompleteBookingCommand: Slot is over (CONFIRMED -> COMPLETED)
- ExpireBookingCommand: Payment never arrived (PENDING_PAYMENT -> EXPIRED)
- RefundIssuedCommand: Compensating refund went through

Every state change runs in a DjangoUnitOfWork; events reach subscribers
only after commit. Errors that follow a compensating change (HoldExpired,
PaymentFailed) are raised after the unit of work has committed it.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
import logging

from django.utils import timezone

from shared.application.message_bus import message_bus
from shared.application.uow import DjangoUnitOfWork
from shared.conf import engine_setting
from shared.domain.exceptions import (
    BookingNotFound,
    HoldExpired,
    IntentMismatch,
    InvalidTransition,
    PaymentAmbiguous,
    PaymentFailed,
    SelectionInvalid,
    SlotConflict,
    Unauthorized,
)
from shared.domain.value_objects import Actor, Money, TimeRange
from apps.bookings.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingExpired,
    RefundRequested,
)
from apps.bookings.models import Booking, BookingComponent
from apps.payments.broker import payment_broker
from apps.payments.models import PaymentIntent
from apps.slots.ledger import HoldToken, slot_ledger
from apps.venues.catalog import DjangoVenueCatalog

logger = logging.getLogger(__name__)

# Payment states that already account for captured money
SETTLED_PAYMENT_STATUSES = (
    Booking.PaymentStatus.PAID,
    Booking.PaymentStatus.REFUND_PENDING,
    Booking.PaymentStatus.REFUNDED,
)


# ===== Commands =====

@dataclass
class CreateBookingCommand:
    """
    Command to create a new booking

    This is the primary entry point for reserving courts.
    """
    actor: Actor
    venue_id: int
    sport: str
    date: date
    start_time: time
    duration_hours: int
    component_ids: list = field(default_factory=list)
    notes: str = ''


@dataclass
class ConfirmPaymentCommand:
    """Command sent by the client after paying out-of-band"""
    booking_id: int
    actor: Actor
    proof: str


@dataclass
class PaymentSucceededCommand:
    """Command to confirm a booking after a successful payment"""
    booking_id: int
    intent_id: str


@dataclass
class PaymentFailedCommand:
    booking_id: int
    reason: str = ''


@dataclass
class CancelBookingCommand:
    """Command to cancel a booking"""
    booking_id: int
    actor: Actor
    reason: str = ''


@dataclass
class RejectBookingCommand:
    booking_id: int
    actor: Actor
    reason: str = ''


@dataclass
class AcceptBookingCommand:
    booking_id: int
    actor: Actor


@dataclass
class CompleteBookingCommand:
    """Command to complete a booking once its slot has ended"""
    booking_id: int
    now: datetime | None = None


@dataclass
class ExpireBookingCommand:
    booking_id: int
    now: datetime | None = None


@dataclass
class RefundIssuedCommand:
    booking_id: int
    refund_id: str = ''


@dataclass
class BookingHandle:
    """Result of a booking creation: the booking plus its payment handle"""
    booking: Booking
    payment_reference: str = ''
    client_secret: str = ''

    @property
    def payment_pending(self) -> bool:
        return not self.payment_reference


# ===== Helpers =====

def _load_booking(booking_id, lock=False) -> Booking:
    queryset = Booking.objects.select_related('venue')
    if lock:
        queryset = queryset.select_for_update(of=('self',))
    try:
        return queryset.get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise BookingNotFound(booking_id=booking_id)


def _hold_tokens(booking: Booking) -> list[HoldToken]:
    return slot_ledger.holds_for(booking.reference)


def _cancel(booking: Booking, source: str, reason: str, now: datetime) -> None:
    """Release holds and move to CANCELLED; caller holds the row lock."""
    old_status = booking.status
    was_paid = booking.payment_status == Booking.PaymentStatus.PAID

    slot_ledger.release_all(booking.reference, reason=f"cancelled_by_{source}")
    booking.transition_to(Booking.Status.CANCELLED)
    booking.cancellation_source = source
    booking.cancellation_reason = reason[:500]
    booking.cancelled_at = now
    if was_paid:
        booking.payment_status = Booking.PaymentStatus.REFUND_PENDING
    elif booking.payment_status == Booking.PaymentStatus.WAITING:
        booking.payment_status = Booking.PaymentStatus.VOIDED
    booking.save()

    booking.add_event(BookingCancelled(
        aggregate_id=booking.pk,
        booking_id=booking.pk,
        reference=booking.reference,
        user_id=booking.user_id,
        venue_id=booking.venue_id,
        source=source,
        reason=reason,
        old_status=old_status,
    ))
    if was_paid:
        booking.add_event(RefundRequested(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            reference=booking.reference,
            amount=booking.total,
            reason=f"cancelled_by_{source}",
        ))
    logger.info(
        f"Booking {booking.reference} cancelled by {source} "
        f"({old_status} -> {booking.status}, payment {booking.payment_status})"
    )


def _check_cancellation_window(booking: Booking, actor: Actor, now: datetime) -> None:
    if booking.status != Booking.Status.CONFIRMED or actor.is_admin:
        return
    hours = engine_setting('CANCELLATION_WINDOW_HOURS')
    if booking.starts_at - now <= timedelta(hours=hours):
        raise InvalidTransition(
            f"Cancellation allowed up to {hours} hours before booking time.",
            booking=booking.reference,
        )


def _cancellation_source(booking: Booking, actor: Actor) -> str:
    if actor.is_admin:
        return Booking.CancellationSource.SYSTEM
    if actor.user_id == booking.venue.owner_id:
        return Booking.CancellationSource.OWNER
    if actor.user_id == booking.user_id:
        return Booking.CancellationSource.USER
    raise Unauthorized("You cannot change this booking.", booking=booking.reference)


# ===== Command Handlers =====

class CreateBookingHandler:
    """
    Handler for CreateBooking command

    Strategy:
    1. Read the venue through the catalog (no cache) and validate the selection
    2. Inside one unit of work acquire one ledger hold per component;
       any conflict rolls back every hold acquired so far
    3. Persist the booking as PENDING_PAYMENT and commit
    4. Outside the transaction, open a payment intent with the
       ``booking-<reference>`` idempotency key
    """

    def __init__(self, catalog=None, ledger=None, broker=None):
        self.catalog = catalog or DjangoVenueCatalog()
        self.ledger = ledger or slot_ledger
        self.broker = broker or payment_broker

    def handle(self, command: CreateBookingCommand) -> BookingHandle:
        now = timezone.now()
        venue = self.catalog.get_venue(command.venue_id)
        time_range, components = self._validate(command, venue, now)

        currency = engine_setting('CURRENCY')
        total = Money.zero(currency)
        for component in components:
            total = total + Money(component.price_per_hour, currency) * command.duration_hours

        reference = Booking.generate_reference()
        hold_seconds = engine_setting('HOLD_SECONDS')

        logger.info(
            f"Creating booking {reference} at venue {venue.venue_id} for user {command.actor.user_id}: "
            f"{command.date} {time_range}, components {[c.component_id for c in components]}"
        )

        with DjangoUnitOfWork() as uow:
            acquired = []
            conflicts = []
            # Facility-key order keeps concurrent multi-court requests from deadlocking
            for component in sorted(components, key=lambda c: venue.facility_key(c.component_id)):
                try:
                    token = self.ledger.acquire(
                        venue.facility_key(component.component_id),
                        command.date,
                        time_range,
                        reference,
                        hold_seconds,
                        now=now,
                    )
                except SlotConflict as e:
                    conflicts.append({
                        'component_id': component.component_id,
                        'component_name': component.name,
                        'start_time': time_range.start.strftime('%H:%M'),
                        'end_time': time_range.end.strftime('%H:%M'),
                        'holds': e.conflicts,
                    })
                else:
                    acquired.append((component, token))

            if conflicts:
                selection_order = [c.component_id for c in components]
                conflicts.sort(key=lambda conflict: selection_order.index(conflict['component_id']))
                # Leaving the unit of work with an error rolls back every acquired hold
                raise SlotConflict(
                    "Some of the selected courts are not available for this time.",
                    conflicts=conflicts,
                )

            booking = Booking(
                reference=reference,
                user_id=command.actor.user_id,
                venue_id=venue.venue_id,
                sport=command.sport,
                date=command.date,
                start_time=time_range.start,
                end_time=time_range.end,
                duration_hours=command.duration_hours,
                total_amount=total.quantized(),
                currency=total.currency,
                notes=command.notes,
                status=Booking.Status.DRAFT,
                hold_expires_at=min(token.expires_at for _, token in acquired),
            )
            booking.transition_to(Booking.Status.PENDING_PAYMENT)
            booking.save()

            BookingComponent.objects.bulk_create([
                BookingComponent(
                    booking=booking,
                    component_id=component.component_id,
                    name=component.name,
                    kind=component.kind,
                    sport=component.sport,
                    price_per_hour=component.price_per_hour,
                    facility_key=token.facility,
                    hold_id=token.hold_id,
                )
                for component, token in acquired
            ])

            booking.add_event(BookingCreated(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                reference=booking.reference,
                user_id=booking.user_id,
                venue_id=booking.venue_id,
                date=booking.date,
                start_time=booking.start_time,
                end_time=booking.end_time,
                total=total,
            ))
            uow.collect_events(booking)

        try:
            intent = self.broker.create_intent(booking.reference, total, booking.idempotency_key)
        except PaymentFailed:
            message_bus.handle_command(PaymentFailedCommand(
                booking_id=booking.pk,
                reason="payment could not be started",
            ))
            raise
        except PaymentAmbiguous:
            logger.warning(f"Payment intent for {booking.reference} is ambiguous; left for reconciliation")
            return BookingHandle(booking=booking)

        booking.payment_reference = intent.intent_id
        booking.save(update_fields=['payment_reference', 'updated_at'])
        logger.info(f"Booking {booking.reference} is pending payment {intent.intent_id}")
        return BookingHandle(
            booking=booking,
            payment_reference=intent.intent_id,
            client_secret=intent.client_secret,
        )

    def _validate(self, command, venue, now):
        if not venue.is_bookable:
            raise SelectionInvalid("This venue is not accepting bookings.", venue_id=venue.venue_id)
        if command.sport not in venue.sports_supported:
            raise SelectionInvalid(
                f"{command.sport} is not offered at this venue.",
                sports_supported=list(venue.sports_supported),
            )

        min_hours = engine_setting('MIN_DURATION_HOURS')
        max_hours = engine_setting('MAX_DURATION_HOURS')
        if not isinstance(command.duration_hours, int) or not min_hours <= command.duration_hours <= max_hours:
            raise SelectionInvalid(f"Duration must be between {min_hours} and {max_hours} hours.")

        try:
            time_range = TimeRange.from_duration(command.start_time, command.duration_hours)
        except ValueError as e:
            raise SelectionInvalid(str(e))

        starts_at = timezone.make_aware(datetime.combine(command.date, command.start_time))
        if starts_at <= now:
            raise SelectionInvalid("Booking time must be in the future.")
        if not venue.is_open_during(command.date, time_range):
            raise SelectionInvalid("The venue is closed at the selected time.", time_range=str(time_range))

        component_ids = list(command.component_ids or [])
        if not component_ids:
            raise SelectionInvalid("Select at least one court.")
        if len(set(component_ids)) != len(component_ids):
            raise SelectionInvalid("A court can only be selected once.")

        components = []
        for component_id in component_ids:
            component = venue.component(component_id)
            if component is None:
                raise SelectionInvalid("Selected court does not belong to this venue.", component_id=component_id)
            if not component.is_available:
                raise SelectionInvalid(f"{component.name} is not available.", component_id=component_id)
            if component.sport != command.sport:
                raise SelectionInvalid(
                    f"{component.name} is not set up for {command.sport}.",
                    component_id=component_id,
                )
            components.append(component)
        return time_range, components


class ConfirmPaymentHandler:
    """
    Handler for the client's explicit payment confirmation

    Asks the broker to confirm the charge, then drives the lifecycle with
    the outcome. An undecided outcome is reported as PaymentAmbiguous and
    left to the sweeper. Past the hold deadline the booking is expired
    instead and nothing is charged.
    """

    def __init__(self, broker=None):
        self.broker = broker or payment_broker

    def handle(self, command: ConfirmPaymentCommand) -> Booking:
        booking = _load_booking(command.booking_id)
        if command.actor.user_id != booking.user_id and not command.actor.is_admin:
            raise Unauthorized("You cannot pay for this booking.", booking=booking.reference)

        if booking.status in (Booking.Status.CONFIRMED, Booking.Status.COMPLETED):
            return booking
        if booking.status != Booking.Status.PENDING_PAYMENT:
            raise HoldExpired("This booking no longer holds the slot.", booking=booking.reference, status=booking.status)

        now = timezone.now()
        if booking.hold_expires_at and booking.hold_expires_at <= now:
            # Never charge for a slot that is no longer held
            booking = message_bus.handle_command(ExpireBookingCommand(booking_id=booking.pk, now=now))
            raise HoldExpired(
                "Your slot hold has expired. Please book again.",
                booking=booking.reference,
                status=booking.status,
            )
        if not booking.payment_reference:
            raise PaymentAmbiguous(booking=booking.reference)

        state = self.broker.confirm_intent(booking.payment_reference, command.proof)
        if state == PaymentIntent.State.SUCCEEDED:
            return message_bus.handle_command(PaymentSucceededCommand(
                booking_id=booking.pk,
                intent_id=booking.payment_reference,
            ))
        if state == PaymentIntent.State.CREATED:
            raise PaymentAmbiguous(booking=booking.reference)

        message_bus.handle_command(PaymentFailedCommand(booking_id=booking.pk, reason=f"payment {state}"))
        raise PaymentFailed("Payment failed. Please try booking again.", booking=booking.reference)


class PaymentSucceededHandler:
    """
    Handler for PaymentSucceeded command

    Idempotent: a confirmed or completed booking is returned unchanged.
    If any hold was lost while payment was in flight, the booking is
    cancelled, every hold released and a refund requested; HoldExpired is
    raised once that compensation is committed.
    """

    def __init__(self, ledger=None, broker=None):
        self.ledger = ledger or slot_ledger
        self.broker = broker or payment_broker

    def handle(self, command: PaymentSucceededCommand) -> Booking:
        now = timezone.now()
        hold_lost = False

        with DjangoUnitOfWork() as uow:
            booking = _load_booking(command.booking_id, lock=True)

            if booking.status in (Booking.Status.CONFIRMED, Booking.Status.COMPLETED):
                logger.info(f"Booking {booking.reference} already {booking.status}; duplicate success ignored")
                return booking

            intent = self.broker.get_intent(booking.reference)
            if intent is None or intent.intent_id != command.intent_id:
                raise IntentMismatch(booking=booking.reference, intent_id=command.intent_id)

            booking.last_payment_event_at = now
            if not booking.payment_reference:
                booking.payment_reference = command.intent_id

            if booking.status in (Booking.Status.CANCELLED, Booking.Status.EXPIRED):
                # Money arrived for a booking that no longer exists; status and holds stay as they are
                if booking.payment_status not in SETTLED_PAYMENT_STATUSES:
                    booking.payment_status = Booking.PaymentStatus.REFUND_PENDING
                    booking.add_event(RefundRequested(
                        aggregate_id=booking.pk,
                        booking_id=booking.pk,
                        reference=booking.reference,
                        amount=booking.total,
                        reason=f"paid_after_{booking.status}",
                    ))
                    logger.warning(f"Late payment for {booking.status} booking {booking.reference}; refund requested")
                booking.save()
                uow.collect_events(booking)
                return booking

            tokens = _hold_tokens(booking)
            if self.ledger.all_live(tokens, now=now):
                for token in tokens:
                    self.ledger.confirm(token, now=now)
                booking.transition_to(Booking.Status.CONFIRMED)
                booking.payment_status = Booking.PaymentStatus.PAID
                booking.confirmed_at = now
                booking.save()
                booking.add_event(BookingConfirmed(
                    aggregate_id=booking.pk,
                    booking_id=booking.pk,
                    reference=booking.reference,
                    user_id=booking.user_id,
                    venue_id=booking.venue_id,
                    payment_reference=booking.payment_reference,
                    total=booking.total,
                ))
                logger.info(f"Booking {booking.reference} confirmed with {len(tokens)} holds")
            else:
                hold_lost = True
                booking.payment_status = Booking.PaymentStatus.PAID
                _cancel(booking, Booking.CancellationSource.SYSTEM, "hold expired before payment", now)

            uow.collect_events(booking)

        if hold_lost:
            raise HoldExpired(
                "Your slot expired before the payment completed. The payment will be refunded.",
                booking=booking.reference,
            )
        return booking


class PaymentFailedHandler:
    """Release holds and cancel a booking whose payment failed; repeats are no-ops"""

    def handle(self, command: PaymentFailedCommand) -> Booking:
        now = timezone.now()
        with DjangoUnitOfWork() as uow:
            booking = _load_booking(command.booking_id, lock=True)
            if booking.status != Booking.Status.PENDING_PAYMENT:
                logger.info(f"Payment failure for {booking.reference} ignored in status {booking.status}")
                return booking

            booking.last_payment_event_at = now
            _cancel(booking, Booking.CancellationSource.SYSTEM, command.reason or "payment failed", now)
            booking.payment_status = Booking.PaymentStatus.FAILED
            booking.save(update_fields=['payment_status', 'last_payment_event_at', 'updated_at'])
            uow.collect_events(booking)
        return booking


class CancelBookingHandler:
    """
    Handler for CancelBooking command

    PENDING_PAYMENT bookings can be cancelled any time; CONFIRMED bookings
    only while the start is more than CANCELLATION_WINDOW_HOURS away.
    Cancelling a paid booking requests a refund.
    """

    owner_only = False

    def handle(self, command) -> Booking:
        now = timezone.now()
        with DjangoUnitOfWork() as uow:
            booking = _load_booking(command.booking_id, lock=True)
            source = _cancellation_source(booking, command.actor)
            if self.owner_only and source == Booking.CancellationSource.USER:
                raise Unauthorized("Only the facility owner can reject a booking.", booking=booking.reference)

            if booking.status not in (Booking.Status.PENDING_PAYMENT, Booking.Status.CONFIRMED):
                raise InvalidTransition(
                    f"A {booking.get_status_display().lower()} booking cannot be cancelled.",
                    booking=booking.reference,
                    status=booking.status,
                )
            _check_cancellation_window(booking, command.actor, now)
            _cancel(booking, source, command.reason, now)
            uow.collect_events(booking)
        return booking


class RejectBookingHandler(CancelBookingHandler):
    """Cancel initiated by the facility owner"""

    owner_only = True


class AcceptBookingHandler:
    """Record the owner's acknowledgement; bookings are approved automatically"""

    def handle(self, command: AcceptBookingCommand) -> Booking:
        with DjangoUnitOfWork():
            booking = _load_booking(command.booking_id, lock=True)
            source = _cancellation_source(booking, command.actor)
            if source == Booking.CancellationSource.USER:
                raise Unauthorized("Only the facility owner can accept a booking.", booking=booking.reference)
            if booking.status not in (Booking.Status.PENDING_PAYMENT, Booking.Status.CONFIRMED):
                raise InvalidTransition(booking=booking.reference, status=booking.status)
            if booking.owner_acknowledged_at is None:
                booking.owner_acknowledged_at = timezone.now()
                booking.save(update_fields=['owner_acknowledged_at', 'updated_at'])
                logger.info(f"Booking {booking.reference} acknowledged by owner {command.actor.user_id}")
        return booking


class CompleteBookingHandler:
    def handle(self, command: CompleteBookingCommand) -> Booking:
        now = command.now or timezone.now()
        with DjangoUnitOfWork() as uow:
            booking = _load_booking(command.booking_id, lock=True)
            if booking.status == Booking.Status.COMPLETED:
                return booking
            if booking.status != Booking.Status.CONFIRMED or booking.ends_at > now:
                raise InvalidTransition(
                    "Only confirmed bookings whose slot has ended can be completed.",
                    booking=booking.reference,
                    status=booking.status,
                )
            booking.transition_to(Booking.Status.COMPLETED)
            booking.completed_at = now
            booking.save()
            booking.add_event(BookingCompleted(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                user_id=booking.user_id,
                venue_id=booking.venue_id,
            ))
            uow.collect_events(booking)
            logger.info(f"Booking {booking.reference} completed")
        return booking


class ExpireBookingHandler:
    """PENDING_PAYMENT -> EXPIRED once the hold deadline has passed; otherwise a no-op"""

    def __init__(self, ledger=None):
        self.ledger = ledger or slot_ledger

    def handle(self, command: ExpireBookingCommand) -> Booking:
        now = command.now or timezone.now()
        with DjangoUnitOfWork() as uow:
            booking = _load_booking(command.booking_id, lock=True)
            if booking.status != Booking.Status.PENDING_PAYMENT:
                return booking
            if booking.hold_expires_at and booking.hold_expires_at > now:
                logger.debug(f"Booking {booking.reference} hold still valid until {booking.hold_expires_at}")
                return booking

            self.ledger.release_all(booking.reference, reason="expired")
            booking.transition_to(Booking.Status.EXPIRED)
            booking.payment_status = Booking.PaymentStatus.VOIDED
            booking.expired_at = now
            booking.save()
            booking.add_event(BookingExpired(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                reference=booking.reference,
                venue_id=booking.venue_id,
            ))
            uow.collect_events(booking)
            logger.info(f"Booking {booking.reference} expired without payment")
        return booking


class RefundIssuedHandler:
    def handle(self, command: RefundIssuedCommand) -> Booking:
        with DjangoUnitOfWork():
            booking = _load_booking(command.booking_id, lock=True)
            if booking.payment_status == Booking.PaymentStatus.REFUND_PENDING:
                booking.payment_status = Booking.PaymentStatus.REFUNDED
                booking.save(update_fields=['payment_status', 'updated_at'])
                logger.info(f"Refund {command.refund_id} recorded for {booking.reference}")
        return booking
