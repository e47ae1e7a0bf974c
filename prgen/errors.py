"""Error taxonomy shared by every backend adapter.

Adapters raise whatever their transport produces. The orchestrator funnels
those failures through :func:`normalize_error` so callers always receive a
:class:`ProviderError` carrying one of the closed :class:`ErrorCode` values.
"""

from __future__ import annotations

import socket
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.error import URLError

from .cancellation import RequestCancelledError
from .llm.transport import (
    HTTPStatusError,
    StreamAbortedError,
    TransportError,
)
from .models import ProviderType


class ErrorCode(str, Enum):
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"
    TOKEN_LIMIT_EXCEEDED = "TOKEN_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    UNKNOWN_PROVIDER_ERROR = "UNKNOWN_PROVIDER_ERROR"


RETRYABLE_CODES = frozenset(
    {ErrorCode.RATE_LIMITED, ErrorCode.TIMEOUT, ErrorCode.NETWORK_ERROR}
)


class ProviderError(RuntimeError):
    """Normalized failure surfaced to callers regardless of vendor."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        provider: ProviderType | None = None,
        http_status: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider = provider
        self.http_status = http_status
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.http_status is not None:
            payload["http_status"] = self.http_status
        return payload


class TemplateValidationError(ValueError):
    """Raised before any network call when a template fails validation."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__("Invalid template: " + "; ".join(self.errors))


class NoProviderAvailableError(LookupError):
    """Raised when neither the preferred key nor a fallback resolves."""

    code = "NO_PROVIDER_AVAILABLE"


# Vendor error identifiers found in error bodies, checked before HTTP status.
_TYPE_CODES: Dict[ErrorCode, tuple[str, ...]] = {
    ErrorCode.INVALID_API_KEY: (
        "invalid_api_key",
        "authentication_error",
        "permission_error",
        "unauthorized",
    ),
    ErrorCode.QUOTA_EXCEEDED: (
        "insufficient_quota",
        "quota_exceeded",
        "billing_hard_limit_reached",
        "billing_error",
    ),
    ErrorCode.RATE_LIMITED: ("rate_limit_exceeded", "rate_limit_error"),
    ErrorCode.MODEL_NOT_FOUND: ("model_not_found", "not_found_error"),
    ErrorCode.TOKEN_LIMIT_EXCEEDED: (
        "context_length_exceeded",
        "token_limit_exceeded",
        "request_too_large",
    ),
}

_STATUS_CODES: Dict[int, ErrorCode] = {
    401: ErrorCode.INVALID_API_KEY,
    403: ErrorCode.INVALID_API_KEY,
    402: ErrorCode.QUOTA_EXCEEDED,
    404: ErrorCode.MODEL_NOT_FOUND,
    408: ErrorCode.TIMEOUT,
    413: ErrorCode.TOKEN_LIMIT_EXCEEDED,
    429: ErrorCode.RATE_LIMITED,
    502: ErrorCode.NETWORK_ERROR,
    503: ErrorCode.NETWORK_ERROR,
    504: ErrorCode.TIMEOUT,
    529: ErrorCode.NETWORK_ERROR,
}


def normalize_error(
    error: BaseException, provider: ProviderType | None = None
) -> ProviderError:
    """Map any adapter failure onto the closed error taxonomy."""
    if isinstance(error, ProviderError):
        if error.provider is None and provider is not None:
            error.provider = provider
        return error

    code: ErrorCode
    status: Optional[int] = None
    if isinstance(error, HTTPStatusError):
        status = error.status
        code = _code_for_types(error.error_types) or _STATUS_CODES.get(
            error.status, ErrorCode.UNKNOWN_PROVIDER_ERROR
        )
        if code is ErrorCode.UNKNOWN_PROVIDER_ERROR and error.status == 400:
            code = _code_for_message(str(error)) or code
    elif isinstance(error, RequestCancelledError):
        code = ErrorCode.TIMEOUT if error.deadline_exceeded else ErrorCode.NETWORK_ERROR
    elif isinstance(error, TransportError):
        code = ErrorCode.TIMEOUT if error.timed_out else ErrorCode.NETWORK_ERROR
    elif isinstance(error, StreamAbortedError):
        code = ErrorCode.NETWORK_ERROR
    elif isinstance(error, (socket.timeout, TimeoutError)):
        code = ErrorCode.TIMEOUT
    elif isinstance(error, (ConnectionError, URLError)):
        code = ErrorCode.NETWORK_ERROR
    else:
        code = ErrorCode.UNKNOWN_PROVIDER_ERROR

    message = _describe(code, provider, error)
    normalized = ProviderError(
        code,
        message,
        provider=provider,
        http_status=status,
        cause=error,
    )
    normalized.__cause__ = error
    return normalized


def format_provider_error(error: ProviderError) -> str:
    """Return a user-facing explanation for a normalized error."""
    name = error.provider.value.upper() if error.provider else "the LLM provider"
    messages = {
        ErrorCode.INVALID_API_KEY: f"Invalid {name} API key. Please check your configuration.",
        ErrorCode.QUOTA_EXCEEDED: f"{name} quota exceeded. Please check your account usage and billing.",
        ErrorCode.RATE_LIMITED: f"Too many requests to {name}. Please wait a moment before trying again.",
        ErrorCode.MODEL_NOT_FOUND: f"The specified {name} model is not available.",
        ErrorCode.TOKEN_LIMIT_EXCEEDED: f"The diff content is too large for {name} processing. Please try with a smaller diff.",
        ErrorCode.NETWORK_ERROR: f"Network error connecting to {name}. Please check your connection.",
        ErrorCode.TIMEOUT: f"{name} request timed out. Please try again.",
    }
    return messages.get(error.code, error.message or f"An unexpected error occurred with {name}.")


def _code_for_types(error_types: Iterable[str]) -> Optional[ErrorCode]:
    lowered = [value.lower() for value in error_types]
    for code, identifiers in _TYPE_CODES.items():
        if any(value in identifiers for value in lowered):
            return code
    return None


def _code_for_message(message: str) -> Optional[ErrorCode]:
    lowered = message.lower()
    if "api_key" in lowered or "api key" in lowered:
        return ErrorCode.INVALID_API_KEY
    if "context length" in lowered or "too many tokens" in lowered or "prompt is too long" in lowered:
        return ErrorCode.TOKEN_LIMIT_EXCEEDED
    return None


def _describe(
    code: ErrorCode, provider: ProviderType | None, error: BaseException
) -> str:
    name = provider.value if provider else "provider"
    detail = str(error).strip() or error.__class__.__name__
    return f"{name}: {code.value.lower().replace('_', ' ')} ({detail})"


__all__ = [
    "ErrorCode",
    "NoProviderAvailableError",
    "ProviderError",
    "RETRYABLE_CODES",
    "TemplateValidationError",
    "format_provider_error",
    "normalize_error",
]
