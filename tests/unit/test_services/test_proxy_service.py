import json

import httpx
import pytest
from conftest import TrackedByteStream, parse_sse, sse_body

from gemini_proxy.common.errors import FetchError, UpstreamError, UpstreamHttpError
from gemini_proxy.services.proxy_service import ProxyService

COMPLETION = {
    "candidates": [{"content": {"parts": [{"text": "Hi"}]}, "finishReason": "STOP", "index": 0}],
    "usageMetadata": {"promptTokenCount": 1, "candidatesTokenCount": 1, "totalTokenCount": 2},
}


@pytest.mark.asyncio
async def test_chat_completion_resolves_model_and_converts(make_gemini_client):
    client, handler = make_gemini_client(lambda request: httpx.Response(200, json=COMPLETION))
    service = ProxyService(client)

    result = await service.chat_completion(
        {"model": "gpt-4o", "messages": [{"role": "user", "content": "Hello"}]}, "key"
    )

    assert handler.last.url.path == "/v1beta/models/gemini-1.5-pro-latest:generateContent"
    assert handler.last_json()["contents"] == [{"role": "user", "parts": [{"text": "Hello"}]}]
    assert result["model"] == "gemini-1.5-pro-latest"
    assert result["choices"][0]["message"]["content"] == "Hi"
    assert result["id"].startswith("chatcmpl-")


@pytest.mark.asyncio
async def test_chat_completion_inlines_remote_images(make_gemini_client):
    def respond(request: httpx.Request) -> httpx.Response:
        if request.url.host == "img.test":
            return httpx.Response(200, content=b"PNG", headers={"content-type": "image/png"})
        return httpx.Response(200, json=COMPLETION)

    client, handler = make_gemini_client(respond)
    service = ProxyService(client)
    await service.chat_completion(
        {
            "model": "gemini-1.5-flash",
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "image_url", "image_url": {"url": "https://img.test/a.png"}}],
                }
            ],
        },
        "key",
    )

    parts = handler.last_json()["contents"][0]["parts"]
    assert parts == [{"inlineData": {"mimeType": "image/png", "data": "UE5H"}}, {"text": ""}]


@pytest.mark.asyncio
async def test_failed_image_fetch_skips_upstream_call(make_gemini_client):
    client, handler = make_gemini_client(lambda request: httpx.Response(404))
    service = ProxyService(client)

    with pytest.raises(FetchError):
        await service.chat_completion(
            {
                "messages": [
                    {
                        "role": "user",
                        "content": [{"type": "image_url", "image_url": {"url": "https://img.test/x"}}],
                    }
                ]
            },
            "key",
        )

    assert [r.url.host for r in handler.requests] == ["img.test"]


@pytest.mark.asyncio
async def test_upstream_http_error_is_raised_with_body(make_gemini_client):
    client, _ = make_gemini_client(
        lambda request: httpx.Response(
            429, content=b'{"error":"quota"}', headers={"content-type": "application/json"}
        )
    )
    service = ProxyService(client)

    with pytest.raises(UpstreamHttpError) as exc_info:
        await service.chat_completion({"messages": []}, "key")

    assert exc_info.value.status_code == 429
    assert exc_info.value.body == b'{"error":"quota"}'
    assert exc_info.value.content_type == "application/json"


@pytest.mark.asyncio
async def test_upstream_transport_error(make_gemini_client):
    def respond(request):
        raise httpx.ConnectError("refused", request=request)

    client, _ = make_gemini_client(respond)
    with pytest.raises(UpstreamError) as exc_info:
        await ProxyService(client).list_models("key")
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_non_json_success_body_is_an_upstream_error(make_gemini_client):
    client, _ = make_gemini_client(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(UpstreamError):
        await ProxyService(client).list_models("key")


@pytest.mark.asyncio
async def test_chat_completion_stream(make_gemini_client):
    upstream = sse_body(
        {"candidates": [{"content": {"parts": [{"text": "Hi"}]}, "index": 0}]},
        {
            "candidates": [{"finishReason": "STOP", "index": 0}],
            "usageMetadata": {"promptTokenCount": 1, "candidatesTokenCount": 1, "totalTokenCount": 2},
        },
    )
    client, handler = make_gemini_client(
        lambda request: httpx.Response(
            200, text=upstream, headers={"content-type": "text/event-stream"}
        )
    )
    service = ProxyService(client)

    stream = await service.chat_completion_stream(
        {
            "model": "gemini-1.5-flash",
            "messages": [{"role": "user", "content": "Hello"}],
            "stream": True,
            "stream_options": {"include_usage": True},
        },
        "key",
    )
    events = parse_sse("".join([event async for event in stream]))

    assert handler.last.url.params["alt"] == "sse"
    assert events[-1] == "[DONE]"
    assert events[0]["choices"][0]["delta"] == {"role": "assistant", "content": ""}
    assert events[1]["choices"][0]["delta"] == {"content": "Hi"}
    assert events[-2]["choices"][0]["finish_reason"] == "stop"
    assert events[-2]["usage"] == {"completion_tokens": 1, "prompt_tokens": 1, "total_tokens": 2}
    assert len({e["id"] for e in events[:-1]}) == 1


@pytest.mark.asyncio
async def test_chat_completion_stream_error_raised_before_streaming(make_gemini_client):
    client, _ = make_gemini_client(lambda request: httpx.Response(400, text="bad request"))
    with pytest.raises(UpstreamHttpError) as exc_info:
        await ProxyService(client).chat_completion_stream({"messages": [], "stream": True}, "key")
    assert exc_info.value.body == b"bad request"


@pytest.mark.asyncio
async def test_embeddings(make_gemini_client):
    client, handler = make_gemini_client(
        lambda request: httpx.Response(200, json={"embeddings": [{"values": [1.0, 2.0]}]})
    )
    result = await ProxyService(client).embeddings(
        {"model": "text-embedding-3-small", "input": "hello"}, "key"
    )

    assert handler.last.url.path == "/v1beta/models/text-embedding-004:batchEmbedContents"
    assert json.loads(handler.last.content)["requests"][0]["model"] == "models/text-embedding-004"
    assert result["model"] == "text-embedding-004"
    assert result["data"] == [{"object": "embedding", "index": 0, "embedding": [1.0, 2.0]}]


@pytest.mark.asyncio
async def test_list_models(make_gemini_client):
    client, _ = make_gemini_client(
        lambda request: httpx.Response(200, json={"models": [{"name": "models/gemini-pro"}]})
    )
    result = await ProxyService(client).list_models("key")
    assert [m["id"] for m in result["data"]] == ["gemini-pro"]


def _streaming_service(make_gemini_client, upstream: TrackedByteStream) -> ProxyService:
    client, _ = make_gemini_client(
        lambda request: httpx.Response(
            200, stream=upstream, headers={"content-type": "text/event-stream"}
        )
    )
    return ProxyService(client)


STREAM_REQUEST = {"messages": [{"role": "user", "content": "Hello"}], "stream": True}


def _tracked_upstream() -> TrackedByteStream:
    return TrackedByteStream(
        sse_body({"candidates": [{"content": {"parts": [{"text": "a"}]}}]}),
        sse_body({"candidates": [{"content": {"parts": [{"text": "b"}]}, "finishReason": "STOP"}]}),
    )


@pytest.mark.asyncio
async def test_stream_closed_before_iteration_closes_upstream(make_gemini_client):
    upstream = _tracked_upstream()
    service = _streaming_service(make_gemini_client, upstream)

    stream = await service.chat_completion_stream(STREAM_REQUEST, "key")
    await stream.aclose()

    assert upstream.closed
    assert stream.closed
    assert [event async for event in stream] == []


@pytest.mark.asyncio
async def test_stream_closed_midway_closes_upstream(make_gemini_client):
    upstream = _tracked_upstream()
    service = _streaming_service(make_gemini_client, upstream)

    stream = await service.chat_completion_stream(STREAM_REQUEST, "key")
    first = await stream.__anext__()
    assert parse_sse(first)[0]["choices"][0]["delta"]["role"] == "assistant"
    assert not upstream.closed

    await stream.aclose()
    await stream.aclose()

    assert upstream.closed


@pytest.mark.asyncio
async def test_exhausted_stream_closes_upstream(make_gemini_client):
    upstream = _tracked_upstream()
    service = _streaming_service(make_gemini_client, upstream)

    stream = await service.chat_completion_stream(STREAM_REQUEST, "key")
    events = parse_sse("".join([event async for event in stream]))

    assert events[-1] == "[DONE]"
    assert upstream.closed
    assert stream.closed
