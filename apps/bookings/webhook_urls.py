"""URL routing for payment processor callbacks."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .webhooks import payment_webhook

urlpatterns = [
    path("webhook/", payment_webhook, name="payment_webhook"),
]
