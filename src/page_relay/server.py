"""FastAPI application serving generated pages.

Routes:
  ``GET /api/{slug}``   stream the generated page as it arrives
  ``GET /favicon.ico``  never generated
  ``GET /{path}``       buffered page for every other path
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, Response, StreamingResponse

from page_relay.config import RelayConfig, load_config
from page_relay.service import Generation, PageGenerator

_logger = logging.getLogger(__name__)

HTML_MEDIA_TYPE = "text/html; charset=utf-8"

# Chunked framing is left to the ASGI server; no Transfer-Encoding here.
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def _document_response(generation: Generation) -> HTMLResponse:
    return HTMLResponse(
        generation.document,
        status_code=generation.status_code,
        headers={"Content-Type": HTML_MEDIA_TYPE},
    )


def create_app(
    config: RelayConfig | None = None,
    generator: PageGenerator | None = None,
) -> FastAPI:
    """Build the application.

    Configuration is resolved once here; pass *generator* to supply a
    pre-built ``PageGenerator`` (tests use this to fake the upstream).
    """
    if generator is None:
        generator = PageGenerator(config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await generator.aclose()

    app = FastAPI(title="page-relay", lifespan=lifespan)
    app.state.generator = generator

    @app.get("/favicon.ico")
    async def favicon() -> Response:
        return Response(status_code=404)

    @app.get("/api/{slug}")
    async def stream_page(slug: str, request: Request) -> Response:
        path = request.url.path
        user_agent = request.headers.get("user-agent", "")
        generation = await generator.generate(path, user_agent)
        if generation.stream is None:
            return _document_response(generation)

        return StreamingResponse(
            generation.stream.iter_bytes(),
            media_type=HTML_MEDIA_TYPE,
            headers=STREAM_HEADERS,
        )

    @app.get("/{path:path}")
    async def page(path: str, request: Request) -> HTMLResponse:
        user_agent = request.headers.get("user-agent", "")
        generation = await generator.render_page("/" + path, user_agent)
        return _document_response(generation)

    return app
