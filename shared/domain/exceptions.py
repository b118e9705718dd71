"""
Domain error taxonomy for the booking engine.

Every error carries a human readable message plus structured ``details``
that the API layer renders next to the message, so callers can retry with
a different selection.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for expected, business-level failures."""

    code = "domain_error"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        self.details = details

    def as_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.details}


class SlotConflict(DomainError):
    """The requested interval is already held or confirmed."""

    code = "slot_conflict"

    @property
    def conflicts(self) -> list[dict[str, Any]]:
        return list(self.details.get("conflicts", []))


class SelectionInvalid(DomainError):
    """The selection does not match the venue (component, sport or time)."""

    code = "selection_invalid"


class HoldExpired(DomainError):
    """The hold expired before the payment confirmation arrived."""

    code = "hold_expired"


class PaymentFailed(DomainError):
    """The payment processor declined or failed the charge."""

    code = "payment_failed"


class PaymentAmbiguous(DomainError):
    """The processor outcome is unknown; reconciliation will resolve it."""

    code = "payment_processing"


class Unauthorized(DomainError):
    """The actor has no rights over this booking or venue."""

    code = "unauthorized"


class BookingNotFound(DomainError):
    """Booking does not exist."""

    code = "booking_not_found"


class InvalidTransition(DomainError):
    """The booking cannot move to the requested status."""

    code = "invalid_transition"


class IntentMismatch(DomainError):
    """The payment intent does not belong to this booking."""

    code = "intent_mismatch"
