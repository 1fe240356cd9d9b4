import base64

import httpx
import pytest

from gemini_proxy.common.errors import FetchError, InvalidDataUriError
from gemini_proxy.conversion.media import (
    collect_image_refs,
    fetch_inline_data,
    parse_data_uri,
    resolve_media,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestParseDataUri:
    def test_base64(self):
        assert parse_data_uri("data:image/png;base64,iVBORw0KGgo=") == {
            "mimeType": "image/png",
            "data": "iVBORw0KGgo=",
        }

    def test_plain_payload_is_base64_encoded(self):
        result = parse_data_uri("data:text/plain,hello%20world")
        assert result["mimeType"] == "text/plain"
        assert base64.b64decode(result["data"]) == b"hello world"

    @pytest.mark.parametrize("ref", ["image/png;base64,AAAA", "data:image/png;base64", ""])
    def test_invalid(self, ref):
        with pytest.raises(InvalidDataUriError):
            parse_data_uri(ref)


class TestFetchInlineData:
    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://img.test/a.png"
            return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

        async with _client(handler) as client:
            result = await fetch_inline_data(client, "https://img.test/a.png")

        assert result == {
            "mimeType": "image/png",
            "data": base64.b64encode(b"\x89PNG").decode("ascii"),
        }

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        async with _client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_inline_data(client, "https://img.test/missing.png")

        assert exc_info.value.message == (
            "Error fetching image: 404 Not Found (https://img.test/missing.png)"
        )
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_inline_data(client, "https://img.test/a.png")

        assert "ConnectError" in exc_info.value.message


def test_collect_image_refs_is_distinct_and_ordered():
    messages = [
        {"role": "system", "content": "s"},
        {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": "https://img.test/b.png"}},
                {"type": "text", "text": "x"},
                {"type": "image_url", "image_url": "data:image/png;base64,AAAA"},
            ],
        },
        {
            "role": "user",
            "content": [{"type": "image_url", "image_url": {"url": "https://img.test/b.png"}}],
        },
    ]
    assert collect_image_refs(messages) == [
        "https://img.test/b.png",
        "data:image/png;base64,AAAA",
    ]


@pytest.mark.asyncio
async def test_resolve_media_fetches_each_reference():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, content=b"img", headers={"content-type": "image/jpeg"})

    refs = ["https://img.test/1.jpg", "data:image/png;base64,AAAA", "https://img.test/2.jpg"]
    async with _client(handler) as client:
        media = await resolve_media(client, refs)

    assert sorted(seen) == ["https://img.test/1.jpg", "https://img.test/2.jpg"]
    assert list(media) == refs
    assert media["data:image/png;base64,AAAA"] == {"mimeType": "image/png", "data": "AAAA"}
    assert media["https://img.test/1.jpg"]["mimeType"] == "image/jpeg"


@pytest.mark.asyncio
async def test_resolve_media_fails_as_a_whole():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/bad.png":
            return httpx.Response(500)
        return httpx.Response(200, content=b"ok", headers={"content-type": "image/png"})

    async with _client(handler) as client:
        with pytest.raises(FetchError):
            await resolve_media(client, ["https://img.test/ok.png", "https://img.test/bad.png"])


@pytest.mark.asyncio
async def test_resolve_media_without_refs():
    async with _client(lambda request: httpx.Response(500)) as client:
        assert await resolve_media(client, []) == {}


@pytest.mark.asyncio
async def test_fetch_follows_redirects():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "img.test":
            return httpx.Response(302, headers={"location": "https://cdn.test/real.png"})
        return httpx.Response(200, content=b"PNG", headers={"content-type": "image/png"})

    async with _client(handler) as client:
        result = await fetch_inline_data(client, "https://img.test/img")

    assert result == {"mimeType": "image/png", "data": "UE5H"}


@pytest.mark.asyncio
async def test_redirect_to_missing_image_fails_with_final_status():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "img.test":
            return httpx.Response(301, headers={"location": "https://cdn.test/gone.png"})
        return httpx.Response(404)

    async with _client(handler) as client:
        with pytest.raises(FetchError) as exc_info:
            await fetch_inline_data(client, "https://img.test/img")

    assert exc_info.value.message.startswith("Error fetching image: 404 Not Found")
