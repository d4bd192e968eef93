"""Single upstream request with a hard deadline."""

from __future__ import annotations

import asyncio
import logging

import httpx

from page_relay.types import ApiFailure, FailureKind, OutboundRequest

_logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30000


def timeout_failure(timeout_ms: float) -> ApiFailure:
    return ApiFailure(
        kind=FailureKind.TIMEOUT,
        retryable=True,
        message=f"Upstream request timed out after {timeout_ms:g} ms",
    )


async def send(
    client: httpx.AsyncClient,
    request: OutboundRequest,
    timeout_ms: float = DEFAULT_TIMEOUT_MS,
) -> httpx.Response | ApiFailure:
    """Send *request* and wait at most *timeout_ms* for the response headers.

    The body is not read: the returned response is a live stream that the
    caller must close.  When the deadline passes first the in-flight request
    is cancelled and a timeout ``ApiFailure`` is returned.  Transport errors
    (DNS, refused, reset) propagate unchanged.
    """
    try:
        return await asyncio.wait_for(
            client.send(request.to_httpx(), stream=True),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        _logger.debug("Request to %s abandoned after %g ms", request.url, timeout_ms)
        return timeout_failure(timeout_ms)
