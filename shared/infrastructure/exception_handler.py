"""DRF exception handler translating domain errors into HTTP responses."""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler as drf_exception_handler  # type: ignore

from shared.domain.exceptions import (
    BookingNotFound,
    DomainError,
    HoldExpired,
    IntentMismatch,
    InvalidTransition,
    PaymentAmbiguous,
    PaymentFailed,
    SelectionInvalid,
    SlotConflict,
    Unauthorized,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[DomainError], int] = {
    SlotConflict: status.HTTP_409_CONFLICT,
    SelectionInvalid: status.HTTP_400_BAD_REQUEST,
    HoldExpired: status.HTTP_409_CONFLICT,
    PaymentFailed: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentAmbiguous: status.HTTP_202_ACCEPTED,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    BookingNotFound: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_409_CONFLICT,
    IntentMismatch: status.HTTP_400_BAD_REQUEST,
}


def domain_exception_handler(exc, context):  # type: ignore
    if not isinstance(exc, DomainError):
        return drf_exception_handler(exc, context)

    http_status = status.HTTP_400_BAD_REQUEST
    for error_type in type(exc).__mro__:
        if error_type in STATUS_BY_ERROR:
            http_status = STATUS_BY_ERROR[error_type]
            break

    logger.info("Domain error %s -> HTTP %s: %s", exc.code, http_status, exc.message)
    return Response(exc.as_dict(), status=http_status)
