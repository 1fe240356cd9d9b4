"""
Proxy Service

Orchestrates one OpenAI-compatible call: request conversion, media
resolution, the upstream call and response conversion.
"""

import logging
from typing import Any, Optional

import httpx

from gemini_proxy.common.errors import UpstreamError, UpstreamHttpError
from gemini_proxy.conversion.media import collect_image_refs, resolve_media
from gemini_proxy.conversion.request import build_gemini_request, resolve_model
from gemini_proxy.conversion.response import (
    build_chat_completion,
    build_embeddings_request,
    build_embeddings_response,
    build_model_list,
    generate_completion_id,
    qualify_model_name,
)
from gemini_proxy.conversion.stream import StreamContext, transcode_stream
from gemini_proxy.providers.base import ProviderResponse
from gemini_proxy.providers.gemini_client import GeminiClient

logger = logging.getLogger(__name__)


def _raise_for_upstream(response: ProviderResponse, operation: str) -> None:
    """
    Turn a failed upstream call into the matching application error.

    Raises:
        UpstreamError: The upstream could not be reached
        UpstreamHttpError: The upstream answered with a non-2xx status
    """
    if response.error:
        logger.warning("Upstream %s failed: %s", operation, response.error)
        raise UpstreamError(message=response.error, status_code=response.status_code)
    if not response.is_success:
        logger.warning(
            "Upstream %s returned HTTP %d: %s",
            operation,
            response.status_code,
            response.content[:500],
        )
        raise UpstreamHttpError(
            status_code=response.status_code,
            body=response.content,
            content_type=response.content_type,
        )


def _json_body(response: ProviderResponse) -> dict[str, Any]:
    if not isinstance(response.body, dict):
        raise UpstreamError(message="Upstream returned a non-JSON body")
    return response.body


class CompletionEventStream:
    """
    OpenAI SSE events of one streamed completion.

    Owns the open upstream response. The response is closed once the events
    are exhausted, when iteration fails, or on ``aclose``, whether or not
    iteration ever started. ``aclose`` is idempotent.
    """

    def __init__(self, upstream: httpx.Response, context: StreamContext):
        self.upstream = upstream
        self.context = context
        self._events = transcode_stream(upstream.aiter_text(), context)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "CompletionEventStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._events.__anext__()
        except Exception:
            # StopAsyncIteration included
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._events.aclose()
        finally:
            await self.upstream.aclose()
            logger.debug(
                "Stream %s closed, candidates=%d",
                self.context.completion_id,
                len(self.context.last),
            )


class ProxyService:
    """
    OpenAI -> Gemini proxy service

    Stateless apart from the shared upstream client; every call builds its
    own conversion state.
    """

    def __init__(self, client: GeminiClient):
        self.client = client

    async def _prepare_chat(self, body: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        model = resolve_model(body.get("model"))
        media = await resolve_media(
            self.client.http_client,
            collect_image_refs(body.get("messages")),
        )
        return model, build_gemini_request(body, media)

    async def chat_completion(
        self,
        body: dict[str, Any],
        api_key: Optional[str],
    ) -> dict[str, Any]:
        """
        Non-streaming chat completion.

        Returns:
            dict: OpenAI chat.completion body
        """
        model, gemini_body = await self._prepare_chat(body)
        response = await self.client.generate_content(model, gemini_body, api_key)
        _raise_for_upstream(response, "generateContent")
        return build_chat_completion(_json_body(response), model, generate_completion_id())

    async def chat_completion_stream(
        self,
        body: dict[str, Any],
        api_key: Optional[str],
    ) -> CompletionEventStream:
        """
        Streaming chat completion.

        The upstream call is opened before returning so that upstream errors
        surface as exceptions rather than as a broken stream. The returned
        stream owns the open upstream response; callers must ``aclose`` it.
        """
        model, gemini_body = await self._prepare_chat(body)
        response = await self.client.stream_generate_content(model, gemini_body, api_key)
        _raise_for_upstream(response, "streamGenerateContent")

        stream_options = body.get("stream_options")
        include_usage = bool(
            isinstance(stream_options, dict) and stream_options.get("include_usage")
        )
        context = StreamContext(model=model, include_usage=include_usage)
        return CompletionEventStream(response.stream, context)

    async def embeddings(
        self,
        body: dict[str, Any],
        api_key: Optional[str],
    ) -> dict[str, Any]:
        model, gemini_body = build_embeddings_request(body)
        response = await self.client.batch_embed_contents(
            qualify_model_name(model), gemini_body, api_key
        )
        _raise_for_upstream(response, "batchEmbedContents")
        return build_embeddings_response(_json_body(response), model)

    async def list_models(self, api_key: Optional[str]) -> dict[str, Any]:
        response = await self.client.list_models(api_key)
        _raise_for_upstream(response, "models.list")
        return build_model_list(_json_body(response))
