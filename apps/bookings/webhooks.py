"""
Payment processor webhook.

Stripe POSTs charge outcomes here, signed with ``PAYMENTS["WEBHOOK_SECRET"]``
in the ``Stripe-Signature`` header and checked with
``stripe.Webhook.construct_event``. Stripe event bodies
(``{"type": ..., "data": {"object": {"id": ...}}}``) and flat
``{"intent_id": ..., "status": ...}`` bodies signed the same way are accepted.
"""

from __future__ import annotations

import logging

import stripe
from django.http import JsonResponse  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from django.views.decorators.http import require_POST  # type: ignore

from apps.payments.broker import payment_broker
from apps.payments.models import PaymentIntent
from shared.application.message_bus import message_bus
from shared.conf import payment_setting
from shared.domain.exceptions import HoldExpired

from .application.command_handlers import PaymentFailedCommand, PaymentSucceededCommand
from .models import Booking

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"


def _parse_callback(data) -> tuple[str, str]:
    if "type" in data:
        obj = (data.get("data") or {}).get("object") or {}
        return obj.get("id", ""), data["type"]
    return data.get("intent_id", ""), data.get("status", "")


@csrf_exempt
@require_POST
def payment_webhook(request):
    signature = request.headers.get(SIGNATURE_HEADER)
    secret = payment_setting("WEBHOOK_SECRET")
    if not signature or not secret:
        logger.error("Payment webhook rejected: missing signature or webhook secret")
        return JsonResponse({"status": "error", "message": "Invalid signature"}, status=403)

    try:
        data = stripe.Webhook.construct_event(request.body, signature, secret)
    except stripe.SignatureVerificationError:
        logger.error("Payment webhook rejected: invalid signature")
        return JsonResponse({"status": "error", "message": "Invalid signature"}, status=403)
    except (ValueError, AttributeError):
        logger.error("Payment webhook: invalid JSON")
        return JsonResponse({"status": "error", "message": "Invalid JSON"}, status=400)

    intent_id, callback_status = _parse_callback(data)
    if not intent_id or not callback_status:
        logger.error(f"Payment webhook without intent id or status: {data}")
        return JsonResponse({"status": "error", "message": "intent_id and status are required"}, status=400)

    logger.info(f"Payment webhook {callback_status} for {intent_id}")
    intent = payment_broker.record_callback(intent_id, callback_status)
    if intent is None:
        # Acknowledge so the processor stops retrying
        return JsonResponse({"status": "ignored"})

    booking = Booking.objects.filter(reference=intent.booking_ref).first()
    if booking is None:
        logger.warning(f"Payment webhook for intent {intent_id} without a booking")
        return JsonResponse({"status": "ignored"})

    if intent.state == PaymentIntent.State.SUCCEEDED:
        try:
            booking = message_bus.handle_command(PaymentSucceededCommand(
                booking_id=booking.pk,
                intent_id=intent_id,
            ))
        except HoldExpired:
            booking.refresh_from_db()
    elif intent.state == PaymentIntent.State.FAILED:
        booking = message_bus.handle_command(PaymentFailedCommand(
            booking_id=booking.pk,
            reason=intent.last_error or "payment failed",
        ))

    return JsonResponse({"status": "success", "booking_status": booking.status})
