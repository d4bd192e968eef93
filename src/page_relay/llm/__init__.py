"""Upstream LLM access: transport, failure classification, retry and SSE decoding."""

from page_relay.llm.errors import classify, missing_credential
from page_relay.llm.retry import RetryCoordinator
from page_relay.llm.sse import SSEDecoder
from page_relay.llm.transport import send

__all__ = [
    "RetryCoordinator",
    "SSEDecoder",
    "classify",
    "missing_credential",
    "send",
]
