"""
Error taxonomy for the TradieHub backend.

Services raise these exceptions; the handlers registered in ``main.py``
render them into the standard response envelope::

    {"success": false, "message": "...", "code": "QUOTE_EXPIRED", "errors": [...]}

Every error carries a stable machine-readable ``code`` and the HTTP status it
maps to. ``ValidationError`` additionally enumerates per-field problems.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class FieldError:
    """A single per-field validation problem."""

    field: str
    message: str


class AppError(Exception):
    """Base class for every error the API reports to callers."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred."

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[list[FieldError]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = list(errors or [])
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message, "code": self.code}
        if self.errors:
            body["errors"] = [asdict(e) for e in self.errors]
        return body

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(AppError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Validation failed."

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[FieldError(field, message)])


class AuthenticationRequiredError(AppError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401
    default_message = "Authentication required."


class UnauthorizedAccessError(AppError):
    """The caller is authenticated but does not own the resource."""

    code = "UNAUTHORIZED_ACCESS"
    status_code = 403
    default_message = "You do not have access to this resource."


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found."

    def __init__(self, resource: str, identifier: object) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' not found.")


class InvalidStateTransitionError(AppError):
    """Raised when a status change is not in the transition table, or when a
    concurrent request changed the status first."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 409
    default_message = "Invalid state transition."

    def __init__(
        self,
        current: str,
        requested: str,
        reason: Optional[str] = None,
    ) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            reason or f"Cannot transition from '{current}' to '{requested}'."
        )


class DuplicateApplicationError(AppError):
    code = "DUPLICATE_APPLICATION"
    status_code = 409
    default_message = "You have already applied to this job."


class InsufficientCreditsError(AppError):
    code = "INSUFFICIENT_CREDITS"
    status_code = 402
    default_message = "Insufficient credits."

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits: {required} required, {available} available."
        )


class QuoteExpiredError(AppError):
    code = "QUOTE_EXPIRED"
    status_code = 409
    default_message = "This quote has expired."


class WithdrawalNotAllowedError(AppError):
    code = "WITHDRAWAL_NOT_ALLOWED"
    status_code = 409
    default_message = "This application can no longer be withdrawn."


class PaymentFailedError(AppError):
    """The payment gateway declined or errored. ``message`` carries the
    gateway-provided reason."""

    code = "PAYMENT_FAILED"
    status_code = 402
    default_message = "Payment failed."

    def __init__(
        self,
        message: Optional[str] = None,
        gateway_code: Optional[str] = None,
        decline_code: Optional[str] = None,
    ) -> None:
        self.gateway_code = gateway_code
        self.decline_code = decline_code
        super().__init__(message)


class PaymentTimeoutError(AppError):
    code = "PAYMENT_TIMEOUT"
    status_code = 504
    default_message = "The payment provider did not respond in time."


class RateLimitExceededError(AppError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    default_message = "Too many requests. Please try again later."


class InternalError(AppError):
    pass
