"""
OpenAI Proxy API

Provides OpenAI-compatible API endpoints backed by Gemini. Routes are
served both with and without the ``/v1`` prefix.
"""

import json
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from gemini_proxy.api.deps import ApiKey, ProxyServiceDep
from gemini_proxy.common.errors import ValidationError

router = APIRouter(tags=["Proxy - OpenAI"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


async def _read_json_body(request: Request) -> dict[str, Any]:
    """
    Read the request body as a JSON object.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Invalid JSON body: {str(e)}", code="invalid_json") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", code="invalid_json")
    return body


@router.get("/v1/models")
@router.get("/models")
async def list_models(api_key: ApiKey, service: ProxyServiceDep):
    """
    OpenAI Models API (List)

    Lists the upstream catalog with the ``models/`` namespace stripped.
    """
    return JSONResponse(content=await service.list_models(api_key))


@router.post("/v1/chat/completions")
@router.post("/chat/completions")
async def chat_completions(request: Request, api_key: ApiKey, service: ProxyServiceDep):
    """
    OpenAI Chat Completions API Proxy

    Returns a chat.completion object, or an SSE stream of
    chat.completion.chunk events when ``stream`` is true.
    """
    body = await _read_json_body(request)

    if body.get("stream"):
        stream = await service.chat_completion_stream(body, api_key)
        # Runs after the response ends, also when the client left before the first event.
        return StreamingResponse(
            stream,
            headers=STREAM_HEADERS,
            media_type="text/event-stream",
            background=BackgroundTask(stream.aclose),
        )

    return JSONResponse(content=await service.chat_completion(body, api_key))


@router.post("/v1/embeddings")
@router.post("/embeddings")
async def embeddings(request: Request, api_key: ApiKey, service: ProxyServiceDep):
    """
    OpenAI Embeddings API Proxy
    """
    body = await _read_json_body(request)
    return JSONResponse(content=await service.embeddings(body, api_key))
