import pytest
from rest_framework.exceptions import NotFound

from shared.domain.exceptions import (
    HoldExpired,
    PaymentAmbiguous,
    PaymentFailed,
    SelectionInvalid,
    SlotConflict,
    Unauthorized,
)
from shared.infrastructure.exception_handler import domain_exception_handler


@pytest.mark.parametrize(
    "error, status_code",
    [
        (SlotConflict("taken", conflicts=[]), 409),
        (SelectionInvalid("bad court"), 400),
        (HoldExpired(), 409),
        (PaymentFailed("declined"), 402),
        (PaymentAmbiguous(), 202),
        (Unauthorized("not yours"), 403),
    ],
)
def test_domain_errors_map_to_http(error, status_code):
    response = domain_exception_handler(error, {})

    assert response.status_code == status_code
    assert response.data["code"] == error.code
    assert response.data["detail"] == error.message


def test_details_are_rendered_next_to_the_message():
    response = domain_exception_handler(SlotConflict("taken", conflicts=[{"component_id": "court-1"}]), {})

    assert response.data["conflicts"] == [{"component_id": "court-1"}]


def test_other_errors_fall_through_to_drf():
    response = domain_exception_handler(NotFound(), {})

    assert response.status_code == 404
