"""Error taxonomy shared by services and mapped to HTTP responses in main.py."""

from typing import Any


class SaveError(Exception):
    """Base error. `code` is the stable machine-readable identifier."""

    code = "SAVE_ERROR"
    status_code = 500

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(SaveError):
    """A precondition was not met. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 422


class IncompleteSubmission(ValidationError):
    code = "INCOMPLETE_SUBMISSION"


class InvalidMerchantProfile(ValidationError):
    code = "INVALID_MERCHANT_PROFILE"


class ConfirmationRequired(ValidationError):
    code = "CONFIRMATION_REQUIRED"


class InvalidScan(ValidationError):
    code = "INVALID_SCAN"


class AmbiguousPickupCode(ValidationError):
    code = "AMBIGUOUS_PICKUP_CODE"
    status_code = 409


class OutOfStock(ValidationError):
    code = "OUT_OF_STOCK"
    status_code = 409


class InvalidTransition(ValidationError):
    code = "INVALID_TRANSITION"
    status_code = 409


class InvalidOrderState(ValidationError):
    code = "INVALID_ORDER_STATE"
    status_code = 409


class NotFound(ValidationError):
    code = "NOT_FOUND"
    status_code = 404


class RemoteUnavailable(SaveError):
    """Remote store or storage unreachable. Safe to retry."""

    code = "REMOTE_UNAVAILABLE"
    status_code = 503
    retryable = True


class CacheUnavailable(SaveError):
    """Local durable cache could not be written."""

    code = "CACHE_UNAVAILABLE"
    status_code = 503
    retryable = True


class AuthError(SaveError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(SaveError):
    code = "FORBIDDEN"
    status_code = 403
