"""Error types and the upstream error classifier.

Upstream failures never propagate as exceptions past the invoker; they are
turned into one error token here and flow through the token channel like any
other content.
"""

from __future__ import annotations

import httpx
import openai

from aichat.models import ErrorCategory, StreamToken


class ConfigError(Exception):
    """Invalid or missing credentials/URLs. Fatal at startup."""


class StreamingUnsupportedError(RuntimeError):
    """The destination cannot flush incrementally."""


SENTINELS: dict[ErrorCategory, str] = {
    ErrorCategory.BAD_REQUEST: "bad request",
    ErrorCategory.SERVICE_UNAVAILABLE: "service unavailable",
    ErrorCategory.TOO_MANY_REQUESTS: "too many requests",
    ErrorCategory.UNAUTHORIZED: "unauthorized",
    ErrorCategory.TIMEOUT: "request timed out",
}

RETRYABLE: dict[ErrorCategory, bool | None] = {
    ErrorCategory.BAD_REQUEST: False,
    ErrorCategory.SERVICE_UNAVAILABLE: True,
    ErrorCategory.TOO_MANY_REQUESTS: True,
    ErrorCategory.UNAUTHORIZED: False,
    ErrorCategory.TIMEOUT: True,
    ErrorCategory.UNKNOWN: None,
}

_TIMEOUT_ERRORS = (openai.APITimeoutError, httpx.TimeoutException, TimeoutError)
_MALFORMED_ERRORS = (openai.APIResponseValidationError, ValueError, TypeError)


def _status_category(status: int) -> ErrorCategory:
    if status in (500, 503, 504):
        return ErrorCategory.SERVICE_UNAVAILABLE
    if status == 429:
        return ErrorCategory.TOO_MANY_REQUESTS
    if status == 401:
        return ErrorCategory.UNAUTHORIZED
    return ErrorCategory.BAD_REQUEST


def categorize(exc: BaseException) -> ErrorCategory:
    if isinstance(exc, _TIMEOUT_ERRORS):
        return ErrorCategory.TIMEOUT
    if isinstance(exc, openai.APIStatusError):
        return _status_category(exc.status_code)
    if isinstance(exc, _MALFORMED_ERRORS):
        return ErrorCategory.BAD_REQUEST
    return ErrorCategory.UNKNOWN


def classify(exc: BaseException) -> StreamToken:
    """Map an upstream failure to its error token. Never raises."""
    category = categorize(exc)
    text = SENTINELS.get(category) or str(exc) or type(exc).__name__
    return StreamToken.error(category, text, RETRYABLE[category])
