# Overview: Error taxonomy shared by services and routes, plus the HTTP mapping.

"""
Service-layer errors.

Services raise these; routes turn them into JSON responses through
error_response(). Lower-layer failures (SQLAlchemyError) are wrapped in
StorageFailureError with the operation name so the cause is never lost.

HTTP mapping:
- InvalidArgumentError   -> 400
- TokenError             -> 401 (TokenExpiredError adds a refresh hint)
- AuthenticationFailedError -> 401
- PermissionDeniedError  -> 403
- NotFoundError          -> 404
- InsufficientStockError -> 409
- NotInitializedError, StorageFailureError, anything else -> 500
"""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class MallError(Exception):
    """Base class for every error raised by the service layer."""

    status_code = 500


class InvalidArgumentError(MallError, ValueError):
    """Malformed or out-of-range caller input. Never retried."""

    status_code = 400


class NotFoundError(MallError, LookupError):
    """A referenced entity does not exist (or is soft-deleted)."""

    status_code = 404


class InsufficientStockError(MallError):
    """Conditional stock deduction matched no row."""

    status_code = 409

    def __init__(self, product_id: int, quantity: int, message: str | None = None):
        self.product_id = product_id
        self.quantity = quantity
        super().__init__(
            message or f"Insufficient stock or product not found (product_id={product_id}, quantity={quantity})"
        )


class NotInitializedError(MallError, RuntimeError):
    """A component was used before it was configured or loaded. Operator error."""


class StorageFailureError(MallError):
    """
    Wraps an error raised by the storage layer.

    The original exception is kept on .cause (and chained with `raise ... from`).
    """

    def __init__(self, operation: str, cause: BaseException, **identifiers):
        self.operation = operation
        self.cause = cause
        self.identifiers = identifiers
        context = ", ".join(f"{k}={v}" for k, v in identifiers.items())
        suffix = f" ({context})" if context else ""
        super().__init__(f"{operation} failed{suffix}: {cause}")


class PermissionDeniedError(MallError):
    """Raised when a subject lacks the required (resource, action) grant."""

    status_code = 403


class AuthenticationFailedError(MallError):
    """Bad username/password or inactive account. Message never says which."""

    status_code = 401


class TokenError(MallError):
    status_code = 401


class TokenExpiredError(TokenError):
    """Expected condition: the caller should refresh or re-authenticate."""


class InvalidSignatureError(TokenError):
    """Token was signed with a different key. Treat as tampering."""


class MalformedTokenError(TokenError):
    """Token could not be decoded or is missing required claims."""


def error_response(exc: Exception) -> tuple[dict, int]:
    """Map an exception to a (json_body, status) pair for Flask routes."""
    if isinstance(exc, TokenExpiredError):
        return {"error": str(exc), "hint": "refresh or re-authenticate"}, 401
    if isinstance(exc, (NotInitializedError, StorageFailureError)):
        # Details go to the log, not to the client
        logger.error("Service failure: %s", exc, exc_info=exc)
        return {"error": "Internal server error"}, 500
    if isinstance(exc, MallError):
        return {"error": str(exc)}, exc.status_code
    logger.error("Unexpected error: %s", exc, exc_info=exc)
    return {"error": "Internal server error"}, 500
