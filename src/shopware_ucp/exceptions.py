"""Exception hierarchy for the UCP checkout broker.

Every error raised by this package inherits from UCPError so callers can map
failures to a stable, machine-readable ``error_code`` without ever exposing a
stack trace or a raw processor payload.

All exceptions have:
- error_code: Stable error code (e.g., "validation_error")
- http_status: Status code an HTTP collaborator should answer with
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to API response format
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""

    VALIDATION_ERROR = "validation_error"
    PROCESSOR_ERROR = "processor_error"
    PAYMENT_FAILED = "payment_failed"
    NO_HANDLER_AVAILABLE = "no_handler_available"
    STATE_CONFLICT = "state_conflict"
    SESSION_NOT_FOUND = "session_not_found"
    CONFIGURATION_ERROR = "configuration_error"


class UCPError(Exception):
    """Base exception for all UCP broker errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "ucp_error"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Caller input (4xx)
# =============================================================================

class UCPValidationError(UCPError):
    """Malformed caller input. Never reaches a processor."""

    error_code = ErrorCode.VALIDATION_ERROR.value
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class InvalidAmountError(UCPValidationError):
    """A monetary value could not be converted to minor units."""

    def __init__(self, value: Any) -> None:
        super().__init__(f"Invalid monetary amount: {value!r}", field="amount")


class AddressMappingError(UCPValidationError):
    """A UCP address could not be mapped to a platform address."""

    def __init__(self, code: str, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, field=field, details={"code": code})
        self.code = code


class SessionNotFoundError(UCPError):
    """Checkout session does not exist."""

    error_code = ErrorCode.SESSION_NOT_FOUND.value
    http_status = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Checkout session '{session_id}' not found",
            details={"session_id": session_id},
        )
        self.session_id = session_id


# =============================================================================
# Payment flow
# =============================================================================

class ConnectorError(UCPError):
    """Network, protocol or response-shape fault talking to a processor.

    Retryable by the caller; handlers downgrade it to a ``<processor>_error``
    result.
    """

    error_code = ErrorCode.PROCESSOR_ERROR.value
    http_status = 502

    def __init__(
        self,
        message: str,
        processor: str,
        status_code: Optional[int] = None,
    ) -> None:
        details: dict[str, Any] = {"processor": processor}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details)
        self.processor = processor
        self.status_code = status_code


class NoHandlerAvailableError(UCPError):
    """No enabled, configured handler matches the request."""

    error_code = ErrorCode.NO_HANDLER_AVAILABLE.value
    http_status = 422

    def __init__(self, shop_id: str, requested: Optional[str] = None) -> None:
        if requested:
            message = f"No payment handler available for '{requested}'"
        else:
            message = "No payment handler available"
        details: dict[str, Any] = {"shop_id": shop_id}
        if requested:
            details["requested_handler"] = requested
        super().__init__(message, details=details)
        self.shop_id = shop_id
        self.requested = requested


class StateConflictError(UCPError):
    """A status transition was attempted from an unexpected status."""

    error_code = ErrorCode.STATE_CONFLICT.value
    http_status = 409

    def __init__(self, session_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move session {session_id} from {current} to {target}",
            details={"session_id": session_id, "current": current, "target": target},
        )
        self.session_id = session_id
        self.current = current
        self.target = target


# =============================================================================
# Startup
# =============================================================================

class ConfigurationError(UCPError):
    """Required configuration is missing. Fatal at startup."""

    error_code = ErrorCode.CONFIGURATION_ERROR.value
    http_status = 500


__all__ = [
    "ErrorCode",
    "UCPError",
    "UCPValidationError",
    "InvalidAmountError",
    "AddressMappingError",
    "SessionNotFoundError",
    "ConnectorError",
    "NoHandlerAvailableError",
    "StateConflictError",
    "ConfigurationError",
]
