"""dinein error types.

Every error carries a stable ``code`` for programmatic handling and the HTTP
status it maps to. Authentication failures all surface as 401 but keep a
distinct ``reason`` in their details.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class DineinError(Exception):
    """Base error for all dinein exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Serialize to the API error envelope."""
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "request_id": request_id,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


class FormatError(DineinError):
    """Malformed identifier or key shape (400)."""

    code = "invalid_format"
    message = "Invalid identifier format"
    status_code = 400


class ValidationError(DineinError):
    """Request or attribute validation error (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400


class NotFoundError(DineinError):
    """Resource not found (404)."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class ExpiredError(DineinError):
    """Entity exists but is past its expiry (401)."""

    code = "expired"
    message = "Resource expired"
    status_code = 401


class UnboundError(DineinError):
    """Credential exists but has no owner (401)."""

    code = "unbound"
    message = "Resource is not bound to an owner"
    status_code = 401


class ConflictError(DineinError):
    """State conflict (409)."""

    code = "conflict"
    message = "Conflict"
    status_code = 409


class TableUnavailableError(ConflictError):
    """Requested table is occupied or flagged unavailable (409)."""

    code = "table_unavailable"
    message = "Requested table is not available"


class NoAvailableTablesError(ConflictError):
    """No table can be reserved (409)."""

    code = "no_available_tables"
    message = "No available tables"


class StoreError(DineinError):
    """Underlying data store fault (500)."""

    code = "store_error"
    message = "Data store operation failed"
    status_code = 500


class TransactionUnsupportedError(StoreError):
    """The data store cannot run multi-statement transactions (500)."""

    code = "transaction_unsupported"
    message = "Transactions are not supported by the data store"


class ConfigurationError(DineinError):
    """Invalid or missing startup configuration (500)."""

    code = "configuration_error"
    message = "Invalid configuration"


class AuthFailureReason(str, Enum):
    """Why an authentication attempt was rejected."""

    MISSING_API_KEY = "missing_api_key"
    MALFORMED_API_KEY = "malformed_api_key"
    INVALID_API_KEY = "invalid_api_key"
    EXPIRED_API_KEY = "expired_api_key"
    UNBOUND_API_KEY = "unbound_api_key"
    AUTHENTICATION_REQUIRED = "authentication_required"
    MISSING_SESSION = "missing_session"
    INVALID_SESSION = "invalid_session"


_REASON_MESSAGES = {
    AuthFailureReason.MISSING_API_KEY: "API key required",
    AuthFailureReason.MALFORMED_API_KEY: "Invalid API key format",
    AuthFailureReason.INVALID_API_KEY: "Invalid API key",
    AuthFailureReason.EXPIRED_API_KEY: "API key expired",
    AuthFailureReason.UNBOUND_API_KEY: "API key is not associated with a staff member",
    AuthFailureReason.AUTHENTICATION_REQUIRED: "Staff authentication required",
    AuthFailureReason.MISSING_SESSION: "Session identifier required",
    AuthFailureReason.INVALID_SESSION: "Invalid or expired session",
}


class UnauthorizedError(DineinError):
    """Authentication required or rejected (401)."""

    code = "unauthorized"
    message = "Authentication required"
    status_code = 401

    def __init__(
        self,
        reason: AuthFailureReason = AuthFailureReason.AUTHENTICATION_REQUIRED,
        message: str | None = None,
    ) -> None:
        self.reason = reason
        super().__init__(
            message or _REASON_MESSAGES[reason],
            details={"reason": reason.value},
        )


class ForbiddenError(DineinError):
    """Permission denied (403)."""

    code = "forbidden"
    message = "Insufficient role permissions"
    status_code = 403
