"""Relay a streaming completion response to a caller as raw text bytes.

A ``RelayStream`` owns one relay session: it reads the upstream SSE body,
feeds it through an ``SSEDecoder`` and hands each delta on as soon as it is
decoded.  Nothing is retried once streaming has begun, since a retry would
repeat text the caller has already received.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator, Protocol

import httpx

from page_relay.llm.sse import SSEDecoder
from page_relay.types import RelayState, RelayStatus, StreamDelta

_logger = logging.getLogger(__name__)


class RelaySink(Protocol):
    """Destination for relayed bytes."""

    async def write(self, data: bytes) -> None:
        ...

    async def close(self) -> None:
        ...

    async def error(self, exc: BaseException) -> None:
        ...


class RelayStream:
    """One relay session over a successful upstream response.

    Parameters
    ----------
    response:
        Live streaming response from the retry coordinator, or ``None``
        when there is no body to read.
    decoder:
        SSE decoder; a fresh one is created when omitted.
    """

    def __init__(
        self,
        response: httpx.Response | None,
        decoder: SSEDecoder | None = None,
    ) -> None:
        self._response = response
        self._decoder = decoder or SSEDecoder()
        self.state = RelayState()

    @property
    def status(self) -> RelayStatus:
        return self.state.status

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield each delta as UTF-8 bytes, in upstream order."""
        if self.state.status is not RelayStatus.PENDING:
            raise RuntimeError(f"Relay already {self.state.status.value}")
        self.state.status = RelayStatus.OPEN

        if self._response is None:
            self.state.status = RelayStatus.CLOSED_CLEAN
            return

        try:
            async for chunk in self._response.aiter_bytes():
                for delta in self._decoder.feed(chunk):
                    yield self._emit(delta)
                if self._decoder.done:
                    break
            for delta in self._decoder.finish():
                yield self._emit(delta)
        except Exception as e:
            self.state.status = RelayStatus.CLOSED_ERROR
            self.state.error = e
            _logger.exception(
                "Relay stream failed after %d chars", self.state.emitted_chars,
            )
            raise
        finally:
            await self._response.aclose()
            if self.state.status is RelayStatus.OPEN:
                # Finished normally or abandoned by the consumer.
                self.state.status = RelayStatus.CLOSED_CLEAN

        _logger.info(
            "Relay finished: %d deltas, %d chars",
            self.state.emitted_deltas, self.state.emitted_chars,
        )

    async def open(self, sink: RelaySink) -> None:
        """Push the whole session into *sink*, then close or error it."""
        if self.state.status is not RelayStatus.PENDING:
            raise RuntimeError(f"Relay already {self.state.status.value}")
        try:
            async with aclosing(self.iter_bytes()) as stream:
                async for data in stream:
                    await sink.write(data)
        except Exception as e:
            self.state.status = RelayStatus.CLOSED_ERROR
            self.state.error = e
            await sink.error(e)
            raise
        await sink.close()

    async def collect(self) -> str:
        """Consume the whole session and return the concatenated text."""
        async with aclosing(self.iter_bytes()) as stream:
            parts = [data async for data in stream]
        return b"".join(parts).decode("utf-8")

    def _emit(self, delta: StreamDelta) -> bytes:
        self.state.record(delta)
        return delta.text.encode("utf-8")
