"""
Test Configuration Module
"""

import json
from typing import Callable

import httpx
import pytest
import pytest_asyncio

from gemini_proxy.providers.gemini_client import GeminiClient

BASE_URL = "https://gemini.test"


class RecordingHandler:
    """
    MockTransport handler that records requests and answers through a
    user supplied callable.
    """

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict:
        return json.loads(self.last.content)


@pytest.fixture
def make_gemini_client():
    """Build a GeminiClient whose transport is served by a RecordingHandler."""

    def _make(respond: Callable[[httpx.Request], httpx.Response]):
        handler = RecordingHandler(respond)
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = GeminiClient(base_url=BASE_URL, http_client=http_client)
        return client, handler

    return _make


@pytest_asyncio.fixture
async def app_client():
    """
    ASGI test client factory for the application.

    Overrides the upstream client dependency and clears overrides afterwards.
    """
    from gemini_proxy.api.deps import get_gemini_client
    from gemini_proxy.main import app

    clients: list[httpx.AsyncClient] = []

    def _make(gemini_client: GeminiClient) -> httpx.AsyncClient:
        app.dependency_overrides[get_gemini_client] = lambda: gemini_client
        ac = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        clients.append(ac)
        return ac

    yield _make

    for ac in clients:
        await ac.aclose()
    app.dependency_overrides = {}


class TrackedByteStream(httpx.AsyncByteStream):
    """Upstream response body that records whether it was closed."""

    def __init__(self, *chunks: str):
        self.chunks = [c.encode("utf-8") for c in chunks]
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def sse_body(*events: dict, delimiter: str = "\n\n") -> str:
    return "".join(f"data: {json.dumps(e)}{delimiter}" for e in events)


def parse_sse(text: str) -> list:
    """Split an outbound SSE body into decoded payloads; [DONE] stays a string."""
    out = []
    for block in text.split("\n\n"):
        if not block:
            continue
        assert block.startswith("data: ")
        payload = block[len("data: "):]
        out.append(payload if payload == "[DONE]" else json.loads(payload))
    return out
