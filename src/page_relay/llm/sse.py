"""Incremental decoder for OpenAI-style SSE completion streams.

Each upstream event looks like::

    data: {"choices": [{"delta": {"content": "Hi"}}]}

and the stream ends with ``data: [DONE]``.  Framing is line based: bytes
are buffered until a newline arrives, so an event may be split across any
number of reads.  A JSON payload is assumed never to contain a raw newline.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from page_relay.types import StreamDelta

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def extract_delta_text(event: Any) -> str:
    """Return ``choices[0].delta.content`` or ``""`` when absent."""
    if not isinstance(event, dict):
        return ""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    choice = choices[0]
    if not isinstance(choice, dict):
        return ""
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class SSEDecoder:
    """Stateful line-buffered SSE decoder.

    ``feed()`` accepts raw bytes and returns the deltas completed by them;
    ``finish()`` flushes a final unterminated line.  After the ``[DONE]``
    sentinel every further input is ignored.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.buffer = ""
        self._done = False
        self.skipped = 0

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, data: bytes) -> list[StreamDelta]:
        if self._done:
            return []
        self.buffer += self._decoder.decode(data)
        if "\n" not in self.buffer:
            return []
        *lines, self.buffer = self.buffer.split("\n")
        return self._process(lines)

    def finish(self) -> list[StreamDelta]:
        if self._done:
            return []
        tail = self.buffer + self._decoder.decode(b"", final=True)
        self.buffer = ""
        if not tail:
            return []
        return self._process(tail.split("\n"))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process(self, lines: list[str]) -> list[StreamDelta]:
        deltas: list[StreamDelta] = []
        for line in lines:
            if self._done:
                break
            delta = self._parse_line(line.rstrip("\r"))
            if delta is not None:
                deltas.append(delta)
        return deltas

    def _parse_line(self, line: str) -> StreamDelta | None:
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            self._done = True
            return None

        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            # Keep-alives and torn fragments are expected; skip them.
            self.skipped += 1
            _logger.debug("Skipping undecodable SSE payload: %.80r", payload)
            return None

        text = extract_delta_text(event)
        if not text:
            return None
        return StreamDelta(text=text)
