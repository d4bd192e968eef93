"""Failure classification for upstream calls.

Turns a non-success ``httpx.Response`` or a raised exception into an
``ApiFailure`` value.  ``classify`` never raises.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from page_relay.types import ApiFailure, FailureKind

_logger = logging.getLogger(__name__)

# Statuses below 500 that are still worth retrying
_RETRYABLE_STATUSES = (408, 429)


def is_retryable_status(status: int) -> bool:
    return status >= 500 or status in _RETRYABLE_STATUSES


def missing_credential() -> ApiFailure:
    return ApiFailure(
        kind=FailureKind.MISSING_CREDENTIAL,
        retryable=False,
        message="API key not provided. Set the OPENAI_API_KEY environment variable.",
        status_code=500,
    )


def _error_fields(body: bytes) -> tuple[str, str] | None:
    """Return ``(message, type)`` from an OpenAI-style error body."""
    try:
        data: Any = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    if not isinstance(message, str) or not message:
        return None
    err_type = error.get("type")
    return message, err_type if isinstance(err_type, str) and err_type else "unknown"


def classify_response(response: httpx.Response) -> ApiFailure:
    """Classify a non-success response whose body has already been read."""
    status = response.status_code
    retryable = is_retryable_status(status)
    try:
        body = response.content
    except httpx.ResponseNotRead:
        body = b""

    fields = _error_fields(body)
    if fields is None:
        reason = response.reason_phrase or "Unknown"
        return ApiFailure(
            kind=FailureKind.UNKNOWN,
            retryable=retryable,
            message=f"HTTP {status}: {reason}",
            status_code=status,
        )
    message, err_type = fields
    return ApiFailure(
        kind=FailureKind.API_ERROR,
        retryable=retryable,
        message=message,
        status_code=status,
        error_type=err_type,
    )


def classify_exception(exc: BaseException) -> ApiFailure:
    """Classify a raised failure.

    Anything that is not a timeout counts as a network error; whether it is
    actually retried depends on the budget the caller has left.
    """
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        detail = f": {exc}" if str(exc) else ""
        return ApiFailure(
            kind=FailureKind.TIMEOUT,
            retryable=True,
            message=f"Upstream request timed out{detail}",
        )
    detail = str(exc) or type(exc).__name__
    return ApiFailure(
        kind=FailureKind.NETWORK_ERROR,
        retryable=True,
        message=f"Network error: {detail}",
    )


def classify(outcome: httpx.Response | BaseException | ApiFailure) -> ApiFailure:
    """Return an ``ApiFailure`` for any unsuccessful outcome."""
    try:
        if isinstance(outcome, ApiFailure):
            return outcome
        if isinstance(outcome, httpx.Response):
            return classify_response(outcome)
        if isinstance(outcome, BaseException):
            return classify_exception(outcome)
        return ApiFailure(
            kind=FailureKind.UNKNOWN,
            retryable=False,
            message=f"Unexpected upstream outcome: {type(outcome).__name__}",
        )
    except Exception as e:  # classification must always yield a value
        _logger.exception("Failure classification failed")
        return ApiFailure(
            kind=FailureKind.UNKNOWN,
            retryable=False,
            message=f"Unclassifiable upstream failure: {e}",
        )
