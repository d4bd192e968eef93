"""Bounded retry around the transport wrapper.

Attempts are strictly sequential and the delay between them is constant,
so the worst-case latency is bounded by
``(max_attempts + 1) * timeout + max_attempts * delay``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from page_relay.types import ApiFailure, OutboundRequest

from .errors import classify
from .transport import DEFAULT_TIMEOUT_MS, send

_logger = logging.getLogger(__name__)

# Retry configuration
_MAX_ATTEMPTS = 3  # retries after the initial try
_BASE_DELAY_MS = 1000  # constant, not exponential

RequestBuilder = Callable[[], OutboundRequest]
SleepFn = Callable[[float], Awaitable[Any]]


class RetryCoordinator:
    """Re-issue a request until it succeeds or the budget runs out.

    Parameters
    ----------
    client:
        Shared ``httpx.AsyncClient`` used for every attempt.
    max_attempts:
        Retries after the initial try (``max_attempts + 1`` tries in total).
    base_delay_ms:
        Fixed pause between tries.
    timeout_ms:
        Per-attempt deadline for the response headers.
    sleep:
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_attempts: int = _MAX_ATTEMPTS,
        base_delay_ms: float = _BASE_DELAY_MS,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self.max_attempts = max(0, max_attempts)
        self.base_delay_ms = base_delay_ms
        self.timeout_ms = timeout_ms
        self._sleep = sleep
        self._attempts = 0

    @property
    def attempts(self) -> int:
        """Number of tries made by the most recent ``execute()``."""
        return self._attempts

    async def execute(
        self, request_builder: RequestBuilder,
    ) -> httpx.Response | ApiFailure:
        """Return the first successful streaming response, or the final failure.

        The successful response body is left unread for the relay.
        Cancellation is not intercepted, so an abandoned session stops
        consuming attempts immediately.
        """
        self._attempts = 0
        total = self.max_attempts + 1
        failure: ApiFailure | None = None

        for n in range(total):
            self._attempts = n + 1
            outcome = await self._attempt(request_builder)
            if isinstance(outcome, httpx.Response):
                return outcome
            failure = outcome

            remaining = total - (n + 1)
            if not failure.retryable:
                _logger.warning(
                    "LLM API failed with non-retryable error (attempt %d/%d): %s",
                    n + 1, total, failure,
                )
                return failure
            if remaining == 0:
                break

            _logger.warning(
                "LLM API failed (attempt %d/%d): %s, retrying in %g ms...",
                n + 1, total, failure, self.base_delay_ms,
            )
            await self._sleep(self.base_delay_ms / 1000)

        _logger.error("LLM API retries exhausted after %d attempts: %s", total, failure)
        return failure

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _attempt(
        self, request_builder: RequestBuilder,
    ) -> httpx.Response | ApiFailure:
        """Run one try and return the live response or its classified failure.

        Anything raised while building or sending the request, such as an
        invalid URL or a header that cannot be encoded, becomes a failure.
        """
        try:
            outcome = await send(self._client, request_builder(), self.timeout_ms)
        except Exception as e:
            return classify(e)

        if isinstance(outcome, ApiFailure):
            return outcome

        if outcome.is_success:
            return outcome

        try:
            await outcome.aread()
        except (httpx.HTTPError, OSError) as e:
            _logger.debug("Could not read error body: %s", e)
        finally:
            await outcome.aclose()
        return classify(outcome)
