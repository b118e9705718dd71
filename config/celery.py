import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("quickcourt")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

SWEEP_INTERVAL_SECONDS = float(os.environ.get("BOOKING_SWEEP_INTERVAL_SECONDS", 45))

app.conf.beat_schedule = {
    # Resolve bookings stuck in pending payment and expire lapsed holds
    "reconcile-pending-payments": {
        "task": "bookings.reconcile_pending_payments",
        "schedule": SWEEP_INTERVAL_SECONDS,
        "options": {"expires": SWEEP_INTERVAL_SECONDS - 5},
    },
    # Move finished bookings to completed every 5 minutes
    "complete-finished-bookings": {
        "task": "bookings.complete_finished_bookings",
        "schedule": crontab(minute="*/5"),
    },
}

app.conf.timezone = os.environ.get("DJANGO_TIME_ZONE", "Asia/Kolkata")
