"""End-to-end tests for PageGenerator against a mocked upstream."""

from __future__ import annotations

import asyncio
import json
from typing import Callable

import httpx
import pytest

from page_relay.config import RelayConfig
from page_relay.service import PageGenerator, strip_code_fence
from page_relay.types import FailureKind


def _event(content: str) -> str:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload)}\n"


def _sse(*contents: str) -> bytes:
    return ("".join(_event(c) for c in contents) + "data: [DONE]\n").encode()


class _Upstream:
    """Scripted upstream: one response factory per attempt (last repeats)."""

    def __init__(self, *responses: Callable[[], httpx.Response]) -> None:
        self._responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        idx = min(len(self.requests), len(self._responses)) - 1
        return self._responses[idx]()


def _ok(*contents: str) -> Callable[[], httpx.Response]:
    return lambda: httpx.Response(200, content=_sse(*contents))


def _error(status: int, message: str | None = None) -> Callable[[], httpx.Response]:
    if message is None:
        return lambda: httpx.Response(status, text="upstream exploded")
    return lambda: httpx.Response(status, json={"error": {"message": message, "type": "x"}})


def _make_generator(
    upstream: _Upstream, api_key: str = "sk-test", **overrides,
) -> tuple[PageGenerator, list[float]]:
    config = RelayConfig(api_key=api_key, base_url="http://upstream.test/v1", **overrides)
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    return PageGenerator(config, client=client, sleep=fake_sleep), delays


class TestGenerate:
    async def test_missing_credential_makes_no_call(self):
        upstream = _Upstream(_ok("never"))
        gen, _ = _make_generator(upstream, api_key="")
        result = await gen.generate("/anything", "UA")

        assert not result.is_stream
        assert result.status_code == 500
        assert "500" in result.document
        assert "OPENAI_API_KEY" in result.document
        assert result.failure.kind is FailureKind.MISSING_CREDENTIAL
        assert result.attempts == 0
        assert upstream.requests == []

    async def test_retry_then_stream(self):
        upstream = _Upstream(_error(429, "slow down"), _error(429, "slow down"), _ok("Hi"))
        gen, delays = _make_generator(upstream)
        result = await gen.generate("/hello", "UA")

        assert result.is_stream
        assert result.status_code == 200
        body = b"".join([chunk async for chunk in result.stream.iter_bytes()])
        assert body == b"Hi"
        assert len(upstream.requests) == 3
        assert result.attempts == 3
        assert delays == [1.0, 1.0]

    async def test_all_attempts_fail(self):
        upstream = _Upstream(_error(500, "The server had an error processing your request"))
        gen, delays = _make_generator(upstream)
        result = await gen.generate("/hello", "UA")

        assert not result.is_stream
        assert result.status_code == 500
        assert "500 - Internal Server Error" in result.document
        assert "The server had an error processing your request" in result.document
        assert len(upstream.requests) == 4
        assert len(delays) == 3

    async def test_non_retryable_status_surfaces(self):
        upstream = _Upstream(_error(401, "Incorrect API key provided"))
        gen, delays = _make_generator(upstream)
        result = await gen.generate("/hello", "UA")

        assert result.status_code == 401
        assert "Incorrect API key provided" in result.document
        assert len(upstream.requests) == 1
        assert delays == []

    async def test_network_failure_uses_500(self):
        def refused(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        config = RelayConfig(api_key="sk-test", max_retries=1)
        client = httpx.AsyncClient(transport=httpx.MockTransport(refused))

        async def no_sleep(seconds: float) -> None:
            pass

        gen = PageGenerator(config, client=client, sleep=no_sleep)
        result = await gen.generate("/", "UA")
        assert result.status_code == 500
        assert result.failure.kind is FailureKind.NETWORK_ERROR
        assert "Connection refused" in result.document

    @pytest.mark.parametrize(
        "overrides",
        [
            {"api_key": "sk-tést"},
            {"api_key": "sk-test", "base_url": "http://[::1"},
        ],
        ids=["non-ascii-key", "invalid-base-url"],
    )
    async def test_unsendable_request_renders_fallback(self, overrides):
        upstream = _Upstream(_ok("never"))
        client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        gen = PageGenerator(RelayConfig(**overrides), client=client, sleep=fake_sleep)
        result = await gen.generate("/hello", "UA")

        assert not result.is_stream
        assert result.status_code == 500
        assert result.failure.kind is FailureKind.NETWORK_ERROR
        assert "Network error" in result.document
        assert result.attempts == 4
        assert len(delays) == 3
        assert upstream.requests == []

    async def test_request_carries_prompt_and_credential(self):
        upstream = _Upstream(_ok("x"))
        gen, _ = _make_generator(upstream, model="gpt-4o-mini")
        result = await gen.generate("/docs/intro", "TestAgent/1.0")
        await result.stream.collect()

        sent = upstream.requests[0]
        assert str(sent.url) == "http://upstream.test/v1/chat/completions"
        assert sent.headers["authorization"] == "Bearer sk-test"
        body = json.loads(sent.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["stream"] is True
        assert "/docs/intro" in body["messages"][0]["content"]
        assert "TestAgent/1.0" in body["messages"][0]["content"]

    async def test_cancel_during_retry_consumes_no_more_attempts(self):
        upstream = _Upstream(_error(503))
        config = RelayConfig(api_key="sk-test")
        client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        gen = PageGenerator(config, client=client)  # real asyncio.sleep

        task = asyncio.create_task(gen.generate("/", "UA"))
        while not upstream.requests:
            await asyncio.sleep(0)
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(upstream.requests) == 1
        await client.aclose()


class TestRenderPage:
    async def test_buffers_and_strips_fence(self):
        upstream = _Upstream(_ok("```html\n", "<html><body>ok</body></html>", "\n```"))
        gen, _ = _make_generator(upstream)
        result = await gen.render_page("/about", "UA")

        assert result.status_code == 200
        assert result.document == "<html><body>ok</body></html>"
        assert not result.is_stream

    async def test_home_page_error_wording(self):
        gen, _ = _make_generator(_Upstream(_ok()), api_key="")
        result = await gen.render_page("/", "UA")
        assert result.status_code == 500
        assert "Reload page" in result.document
        assert "home page" in result.document

    async def test_other_page_error_wording(self):
        gen, _ = _make_generator(_Upstream(_error(404, "model not found")))
        result = await gen.render_page("/missing", "UA")
        assert result.status_code == 404
        assert "Back to home" in result.document
        assert "model not found" in result.document

    async def test_mid_stream_failure_renders_error(self):
        async def broken_body():
            yield _event("partial").encode()
            raise httpx.ReadError("connection reset")

        upstream = _Upstream(lambda: httpx.Response(200, content=broken_body()))
        gen, _ = _make_generator(upstream)
        result = await gen.render_page("/page", "UA")
        assert result.status_code == 500
        assert result.failure.kind is FailureKind.NETWORK_ERROR
        assert "connection reset" in result.document

    async def test_empty_completion(self):
        gen, _ = _make_generator(_Upstream(_ok()))
        result = await gen.render_page("/page", "UA")
        assert result.status_code == 502
        assert "no content" in result.document


class TestStripCodeFence:
    def test_html_fence(self):
        assert strip_code_fence("```html\n<p>x</p>\n```") == "<p>x</p>"

    def test_bare_fence(self):
        assert strip_code_fence("```\n<p>x</p>```") == "<p>x</p>"

    def test_no_fence(self):
        assert strip_code_fence("  <p>x</p>  ") == "<p>x</p>"
