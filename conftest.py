"""Shared pytest fixtures: users, a venue with two courts and a scripted processor."""

from __future__ import annotations

import itertools
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.payments.processors import (
    CANCELLED,
    FAILED,
    PENDING,
    SUCCEEDED,
    ChargeNotFound,
    ChargeResult,
    PaymentProcessor,
    ProcessorDeclined,
)
from apps.users.models import User
from apps.venues.models import FacilityComponent, Venue

WEEK = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class ScriptedProcessor(PaymentProcessor):
    """In-memory processor whose failures are scripted per operation."""

    name = "scripted"
    DECLINING_PROOF = "pm_card_chargeDeclined"

    def __init__(self) -> None:
        self.charges: dict[str, str] = {}
        self.keys: dict[str, str] = {}
        self.calls: list[tuple[str, tuple]] = []
        self._failures: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)

    def fail_next(self, operation: str, *errors: Exception) -> None:
        self._failures.setdefault(operation, []).extend(errors)

    def set_status(self, charge_id: str, status: str) -> None:
        self.charges[charge_id] = status

    def calls_to(self, operation: str) -> list[tuple]:
        return [args for name, args in self.calls if name == operation]

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation, args))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def create_charge(self, amount, *, idempotency_key, metadata):
        self._record("create_charge", amount, idempotency_key)
        charge_id = self.keys.get(idempotency_key)
        if charge_id is None:
            charge_id = f"pi_test_{next(self._ids)}"
            self.keys[idempotency_key] = charge_id
            self.charges[charge_id] = PENDING
        return ChargeResult(charge_id=charge_id, status=self.charges[charge_id], client_secret=f"{charge_id}_secret")

    def confirm_charge(self, charge_id, proof, *, idempotency_key):
        self._record("confirm_charge", charge_id, proof)
        status = self._status(charge_id)
        if status != PENDING:
            return ChargeResult(charge_id=charge_id, status=status)
        if proof == self.DECLINING_PROOF:
            self.charges[charge_id] = FAILED
            raise ProcessorDeclined("Your card was declined.", code="card_declined")
        self.charges[charge_id] = SUCCEEDED
        return ChargeResult(charge_id=charge_id, status=SUCCEEDED)

    def get_charge_status(self, charge_id):
        self._record("get_charge_status", charge_id)
        return ChargeResult(charge_id=charge_id, status=self._status(charge_id))

    def cancel_charge(self, charge_id):
        self._record("cancel_charge", charge_id)
        if self._status(charge_id) == SUCCEEDED:
            raise ProcessorDeclined("This PaymentIntent has already succeeded.")
        self.charges[charge_id] = CANCELLED
        return ChargeResult(charge_id=charge_id, status=CANCELLED)

    def refund_charge(self, charge_id, *, idempotency_key, reason=""):
        self._record("refund_charge", charge_id, idempotency_key)
        self._status(charge_id)
        return ChargeResult(charge_id=charge_id, status=SUCCEEDED, refund_id=f"re_{charge_id}")

    def _status(self, charge_id):
        try:
            return self.charges[charge_id]
        except KeyError:
            raise ChargeNotFound(charge_id) from None


@pytest.fixture
def processor(monkeypatch):
    scripted = ScriptedProcessor()
    monkeypatch.setattr("apps.payments.broker.get_payment_processor", lambda: scripted)
    return scripted


@pytest.fixture
def player(db):
    return User.objects.create_user(email="player@example.com", username="player", password="PlayerPass123")


@pytest.fixture
def other_player(db):
    return User.objects.create_user(email="rival@example.com", username="rival", password="RivalPass123")


@pytest.fixture
def owner(db):
    return User.objects.create_user(
        email="owner@example.com",
        username="owner",
        password="OwnerPass123",
        role=User.RoleChoices.FACILITY_OWNER,
    )


@pytest.fixture
def admin_user(db):
    return User.objects.create_superuser(email="admin@example.com", username="admin", password="AdminPass123")


@pytest.fixture
def venue(owner):
    venue = Venue.objects.create(
        owner=owner,
        name="Smash Arena",
        city="Ahmedabad",
        sports_supported=["Badminton", "Tennis"],
        operating_hours={day: {"open": "06:00", "close": "23:00", "is_closed": False} for day in WEEK},
    )
    for number in (1, 2):
        FacilityComponent.objects.create(
            venue=venue,
            component_id=f"court-{number}",
            name=f"Court {number}",
            kind=FacilityComponent.Kind.COURT,
            sport="Badminton",
            price_per_hour=Decimal("400.00"),
        )
    FacilityComponent.objects.create(
        venue=venue,
        component_id="tennis-1",
        name="Tennis Court",
        kind=FacilityComponent.Kind.COURT,
        sport="Tennis",
        price_per_hour=Decimal("900.00"),
    )
    return venue


@pytest.fixture
def play_day() -> date:
    return timezone.localdate() + timedelta(days=7)
