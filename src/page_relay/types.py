"""Shared data types for Page Relay."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any

import httpx


# ---------------------------------------------------------------------------
# Outbound request
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutboundRequest:
    """A fully-built upstream request.

    Immutable so every retry attempt sends exactly the same payload.
    """

    url: str
    method: str = "POST"
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = b""

    @classmethod
    def json_post(
        cls,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> OutboundRequest:
        merged = {"Content-Type": "application/json"}
        merged.update(headers or {})
        return cls(
            url=url,
            method="POST",
            headers=tuple(merged.items()),
            body=json.dumps(payload).encode("utf-8"),
        )

    def to_httpx(self) -> httpx.Request:
        """Build a fresh ``httpx.Request`` (requests are single-use)."""
        return httpx.Request(
            self.method, self.url, headers=list(self.headers), content=self.body,
        )


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class FailureKind(enum.Enum):
    """Failure taxonomy for a relay session."""

    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    API_ERROR = "api_error"
    UNKNOWN = "unknown"
    MISSING_CREDENTIAL = "missing_credential"
    DECODE_ERROR = "decode_error"


@dataclass(frozen=True)
class ApiFailure:
    """Classified failure of an upstream call."""

    kind: FailureKind
    retryable: bool
    message: str
    status_code: int | None = None
    error_type: str = "unknown"

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.kind.value} {self.status_code}] {self.message}"
        return f"[{self.kind.value}] {self.message}"


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamDelta:
    """One fragment of generated text extracted from a single SSE event."""

    text: str


class RelayStatus(enum.Enum):
    PENDING = "pending"
    OPEN = "open"
    CLOSED_CLEAN = "closed_clean"
    CLOSED_ERROR = "closed_error"

    @property
    def is_terminal(self) -> bool:
        return self in (RelayStatus.CLOSED_CLEAN, RelayStatus.CLOSED_ERROR)


@dataclass
class RelayState:
    """Per-session bookkeeping, owned by a single ``RelayStream``."""

    status: RelayStatus = RelayStatus.PENDING
    emitted_chars: int = 0
    emitted_deltas: int = 0
    error: BaseException | None = field(default=None, repr=False)

    def record(self, delta: StreamDelta) -> None:
        self.emitted_chars += len(delta.text)
        self.emitted_deltas += 1
