"""
Logging utilities for the UCP broker with sensitive data masking.

Payment credentials, processor API keys and wallet tokens must never reach a
log line. Modules log through ``logging.getLogger(__name__)``; the helpers
below mask outbound HTTP traffic and tag records with the checkout session
being worked on.

Usage:
    from shopware_ucp.logging import log_request, log_response, session_context

    with session_context(session.session_id):
        log_request(logger, "POST", "/payments", headers, body)
        log_response(logger, 201, response_body, duration_ms)
"""
from __future__ import annotations

import json
import logging
import re
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional, Sequence

if TYPE_CHECKING:
    from .config import UCPSettings

MASK_PATTERN = "***"
MAX_LOG_MESSAGE_LENGTH = 2000
MAX_BODY_LOG_LENGTH = 1000

SENSITIVE_FIELDS = frozenset({
    "password",
    "secret",
    "token",
    "api_key",
    "apiKey",
    "authorization",
    "credential",
    "credentials",
    "cardToken",
    "card_number",
    "cardNumber",
    "cvc",
    "cvv",
    "signature",
    "signedMessage",
    "intermediateSigningKey",
    "client_secret",
})

session_id_var: ContextVar[Optional[str]] = ContextVar("ucp_session_id", default=None)


# =============================================================================
# Sensitive Data Masking
# =============================================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """Mask a sensitive value, showing only its first and last characters."""
    if not value or len(value) <= show_chars * 2:
        return MASK_PATTERN
    return f"{value[:show_chars]}...{value[-show_chars:]}"


def is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    key_lower = key.lower().replace("-", "_")
    return key in SENSITIVE_FIELDS or key_lower in SENSITIVE_FIELDS or any(
        sensitive in key_lower
        for sensitive in ("secret", "password", "token", "key", "credential", "auth")
    )


def mask_sensitive_data(
    data: Any,
    additional_fields: Optional[Sequence[str]] = None,
    _depth: int = 0,
    _max_depth: int = 10,
) -> Any:
    """Recursively mask sensitive data in a data structure.

    Args:
        data: The data structure to mask (dict, list, or scalar)
        additional_fields: Additional field names to mask

    Returns:
        Copy of data with sensitive values masked
    """
    if _depth > _max_depth:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_sensitive_key(str(key)):
                result[key] = MASK_PATTERN
            elif additional_fields and key in additional_fields:
                result[key] = MASK_PATTERN
            else:
                result[key] = mask_sensitive_data(
                    value, additional_fields, _depth + 1, _max_depth
                )
        return result

    if isinstance(data, (list, tuple)):
        return type(data)(
            mask_sensitive_data(item, additional_fields, _depth + 1, _max_depth)
            for item in data
        )

    if isinstance(data, str):
        return _mask_inline_patterns(data)

    return data


def _mask_inline_patterns(text: str) -> str:
    """Mask processor keys and auth headers embedded in free text."""
    if len(text) > MAX_LOG_MESSAGE_LENGTH:
        text = text[:MAX_LOG_MESSAGE_LENGTH] + "...[truncated]"

    patterns = [
        # Mollie and Stripe keys
        (r'\b(live_|test_)[a-zA-Z0-9]{20,}\b', r'\1***'),
        (r'\b(sk_live_|sk_test_|pk_live_|pk_test_)[a-zA-Z0-9]+\b', r'\1***'),
        (r'(Bearer\s+)[a-zA-Z0-9._-]+', r'\1***'),
        (r'(Basic\s+)[a-zA-Z0-9+/=]+', r'\1***'),
        (r'(https?://)[^:/\s]+:[^@/\s]+@', r'\1***:***@'),
    ]
    for pattern, replacement in patterns:
        text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)
    return text


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask sensitive HTTP headers."""
    sensitive_headers = {
        "authorization",
        "x-api-key",
        "cookie",
        "set-cookie",
        "stripe-signature",
    }
    return {
        key: MASK_PATTERN if key.lower() in sensitive_headers else value
        for key, value in headers.items()
    }


# =============================================================================
# Request/Response Logging
# =============================================================================

def _body_for_log(body: Any) -> str:
    body_str = json.dumps(mask_sensitive_data(body), default=str)
    if len(body_str) > MAX_BODY_LOG_LENGTH:
        body_str = body_str[:MAX_BODY_LOG_LENGTH] + "..."
    return body_str


def log_request(
    logger: logging.Logger,
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
) -> None:
    """Log an outgoing processor request with secrets masked."""
    log_data: Dict[str, Any] = {
        "direction": "request",
        "method": method,
        "url": _mask_inline_patterns(url),
    }
    if headers:
        log_data["headers"] = mask_headers(headers)
    if body is not None:
        log_data["body"] = _body_for_log(body)

    logger.debug(f"HTTP {method} {log_data['url']}", extra={"data": log_data})


def log_response(
    logger: logging.Logger,
    status_code: int,
    body: Optional[Any] = None,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
) -> None:
    """Log a processor response; 4xx/5xx are logged as warnings."""
    log_data: Dict[str, Any] = {
        "direction": "response",
        "status_code": status_code,
    }
    if duration_ms is not None:
        log_data["duration_ms"] = duration_ms
    if error:
        log_data["error"] = error
    if body is not None:
        log_data["body"] = _body_for_log(body)

    level = logging.DEBUG if status_code < 400 else logging.WARNING
    message = f"HTTP {status_code}"
    if duration_ms is not None:
        message += f" ({duration_ms:.0f}ms)"
    logger.log(level, message, extra={"data": log_data})


# =============================================================================
# Session context and formatting
# =============================================================================

@contextmanager
def session_context(session_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``session_id``."""
    token = session_id_var.set(session_id)
    try:
        yield
    finally:
        session_id_var.reset(token)


class SessionContextFilter(logging.Filter):
    """Adds the current checkout session id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = session_id_var.get()
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _mask_inline_patterns(record.getMessage()),
        }
        session_id = getattr(record, "session_id", None)
        if session_id:
            log_data["session_id"] = session_id
        data = getattr(record, "data", None)
        if data:
            log_data["data"] = mask_sensitive_data(data)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure root logging for the service process."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(session_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SessionContextFilter())
    root_logger.addHandler(console_handler)


def configure_logging(settings: UCPSettings) -> None:
    """Apply the logging settings; JSON output outside the dev environment."""
    setup_logging(
        level=settings.log_level,
        json_format=settings.log_json or settings.environment != "dev",
    )


__all__ = [
    "mask_value",
    "is_sensitive_key",
    "mask_sensitive_data",
    "mask_headers",
    "log_request",
    "log_response",
    "session_context",
    "session_id_var",
    "SessionContextFilter",
    "StructuredFormatter",
    "setup_logging",
    "configure_logging",
]
