"""Page generation service: the entry point used by the HTTP layer.

``generate()`` returns either a live ``RelayStream`` or a ready-made
fallback document; ``render_page()`` is the buffered variant that waits
for the complete page.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace

import httpx

from page_relay.config import RelayConfig
from page_relay.fallback import render
from page_relay.llm.errors import classify, missing_credential
from page_relay.llm.retry import RetryCoordinator, SleepFn
from page_relay.prompt import PromptBuilder, build_prompt, build_request
from page_relay.relay import RelayStream
from page_relay.types import ApiFailure, FailureKind

_logger = logging.getLogger(__name__)

# Seconds an established stream may stay silent before the read fails
_STREAM_READ_TIMEOUT = 60

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def strip_code_fence(text: str) -> str:
    """Remove a Markdown code fence wrapped around generated HTML."""
    return _FENCE_RE.sub("", text.strip()).strip()


@dataclass
class Generation:
    """Outcome of one generation request.

    Exactly one of ``stream`` (success, body not yet relayed) or
    ``document`` (complete HTML, either a page or a fallback) is set.
    """

    status_code: int
    stream: RelayStream | None = None
    document: str = ""
    failure: ApiFailure | None = None
    attempts: int = 0

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


class PageGenerator:
    """Generate HTML pages for request paths via a streaming LLM API.

    Parameters
    ----------
    config:
        Startup configuration (credential, endpoint, model, retry policy).
    client:
        Optional shared ``httpx.AsyncClient``.  When omitted one is created
        and closed by ``aclose()``.
    prompt_builder:
        ``(path, user_agent, config) -> prompt`` callable.
    sleep:
        Delay function used between retries.
    """

    def __init__(
        self,
        config: RelayConfig,
        client: httpx.AsyncClient | None = None,
        prompt_builder: PromptBuilder = build_prompt,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                config.timeout_ms / 1000, read=_STREAM_READ_TIMEOUT,
            ),
        )
        self._prompt_builder = prompt_builder
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def generate(self, path: str, user_agent: str) -> Generation:
        """Start generating the page for *path*.

        Failures before the first byte come back as a fallback document
        carrying the classified status code.
        """
        if not self.config.has_api_key:
            _logger.warning(
                "API key not provided; refusing to generate %s", path,
            )
            return self._failed(missing_credential(), attempts=0)

        prompt = self._prompt_builder(path, user_agent, self.config)
        _logger.info("Sending streaming request for path %s", path)

        coordinator = RetryCoordinator(
            self._client,
            max_attempts=self.config.max_retries,
            base_delay_ms=self.config.retry_delay_ms,
            timeout_ms=self.config.timeout_ms,
            sleep=self._sleep,
        )
        outcome = await coordinator.execute(
            lambda: build_request(prompt, self.config),
        )
        if isinstance(outcome, ApiFailure):
            return self._failed(outcome, attempts=coordinator.attempts)

        return Generation(
            status_code=200,
            stream=RelayStream(outcome),
            attempts=coordinator.attempts,
        )

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def render_page(self, path: str, user_agent: str) -> Generation:
        """Generate the complete page for *path* before returning it."""
        generation = await self.generate(path, user_agent)
        if generation.stream is None:
            assert generation.failure is not None
            return replace(
                generation, document=self._document(generation.failure, path),
            )

        try:
            text = await generation.stream.collect()
        except Exception as e:
            return self._failed(
                classify(e), attempts=generation.attempts, path=path,
            )

        html = strip_code_fence(text)
        if not html:
            failure = ApiFailure(
                kind=FailureKind.UNKNOWN,
                retryable=False,
                message="The AI service returned no content.",
                status_code=502,
            )
            return self._failed(failure, attempts=generation.attempts, path=path)

        return Generation(
            status_code=200, document=html, attempts=generation.attempts,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this generator created it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _document(self, failure: ApiFailure, path: str | None = None) -> str:
        status = failure.status_code or 500
        if path is None:
            document = render(failure.message, status)
        elif path == "/":
            document = render(
                failure.message, status,
                summary="An error occurred while generating the home page.",
                link_text="Reload page",
            )
        else:
            document = render(
                failure.message, status,
                summary="An error occurred while generating this page.",
            )
        return document

    def _failed(
        self,
        failure: ApiFailure,
        attempts: int,
        path: str | None = None,
    ) -> Generation:
        document = self._document(failure, path)
        _logger.error("Generation failed (%d attempts): %s", attempts, failure)
        return Generation(
            status_code=failure.status_code or 500,
            document=document,
            failure=failure,
            attempts=attempts,
        )
