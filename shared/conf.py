"""Runtime access to booking engine settings.

Values are looked up on every call so ``override_settings`` in tests and
per-environment settings modules take effect without reloading anything.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings  # type: ignore

ENGINE_DEFAULTS: dict[str, Any] = {
    "HOLD_SECONDS": 600,
    "CELL_MINUTES": 15,
    "PAYMENT_GRACE_SECONDS": 600,
    "SWEEP_INTERVAL_SECONDS": 45,
    "CANCELLATION_WINDOW_HOURS": 24,
    "MIN_DURATION_HOURS": 1,
    "MAX_DURATION_HOURS": 8,
    "CURRENCY": "INR",
}

PAYMENT_DEFAULTS: dict[str, Any] = {
    "PROCESSOR": "",
    "STRIPE_SECRET_KEY": "",
    "REQUEST_TIMEOUT": 15,
    "MAX_RETRIES": 3,
    "BACKOFF_SECONDS": 0.5,
    "WEBHOOK_SECRET": "",
}


def engine_setting(name: str) -> Any:
    return getattr(settings, "BOOKING_ENGINE", {}).get(name, ENGINE_DEFAULTS[name])


def payment_setting(name: str) -> Any:
    return getattr(settings, "PAYMENTS", {}).get(name, PAYMENT_DEFAULTS[name])
