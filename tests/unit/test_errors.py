"""Unit tests for the error envelope."""

import uuid

from tradiehub.core.errors import (
    FieldError,
    InsufficientCreditsError,
    InternalError,
    InvalidStateTransitionError,
    NotFoundError,
    PaymentFailedError,
    ValidationError,
)


def test_validation_error_lists_fields():
    error = ValidationError("Invalid quote.", errors=[FieldError("items", "Required.")])
    assert error.to_dict() == {
        "success": False,
        "message": "Invalid quote.",
        "code": "VALIDATION_ERROR",
        "errors": [{"field": "items", "message": "Required."}],
    }


def test_errors_key_omitted_when_empty():
    body = InvalidStateTransitionError("accepted", "rejected").to_dict()
    assert "errors" not in body
    assert body["code"] == "INVALID_STATE_TRANSITION"
    assert body["message"] == "Cannot transition from 'accepted' to 'rejected'."


def test_status_codes():
    assert InsufficientCreditsError(5, 3).status_code == 402
    assert NotFoundError("Quote", uuid.uuid4()).status_code == 404
    assert PaymentFailedError("Card declined").status_code == 402
    assert InternalError().status_code == 500


def test_payment_failed_keeps_gateway_message():
    error = PaymentFailedError("Your card has insufficient funds.", decline_code="insufficient_funds")
    assert error.to_dict()["message"] == "Your card has insufficient funds."
    assert error.decline_code == "insufficient_funds"
