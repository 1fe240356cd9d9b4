"""
Google Gemini Native API Client

Sends generateContent, streamGenerateContent, batchEmbedContents and
models.list calls to the Gemini REST API over one shared connection pool.
"""

import json
import logging
import time
from typing import Any, Optional

import httpx

from gemini_proxy.config import get_settings
from gemini_proxy.providers.base import ProviderResponse

logger = logging.getLogger(__name__)


class GeminiClient:
    """
    Google Gemini native API client.

    The underlying ``httpx.AsyncClient`` is created lazily and reused
    across requests until ``close`` is called.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        api_client: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Gemini Client

        Args:
            base_url: API base URL, defaults to configuration
            api_version: API version path segment, defaults to configuration
            api_client: Value of the x-goog-api-client header
            timeout: Request timeout (seconds); None disables timeouts
            http_client: Pre-built client, mainly for tests
        """
        settings = get_settings()
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.api_version = api_version or settings.GEMINI_API_VERSION
        self.api_client = api_client or settings.GEMINI_API_CLIENT
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self._client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """
        Get or create the shared HTTP client instance

        Returns:
            httpx.AsyncClient: HTTP client instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self) -> None:
        """Close HTTP Client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _build_url(self, path: str) -> str:
        cleaned_path = path.lstrip("/")
        return f"{self.base_url}/{self.api_version}/{cleaned_path}"

    def _prepare_headers(self, api_key: Optional[str], json_body: bool = False) -> dict[str, str]:
        headers = {"x-goog-api-client": self.api_client}
        if api_key:
            headers["x-goog-api-key"] = api_key
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        api_key: Optional[str],
        body: Optional[dict[str, Any]] = None,
    ) -> ProviderResponse:
        url = self._build_url(path)
        headers = self._prepare_headers(api_key, json_body=body is not None)

        logger.debug(
            "Gemini Request: method=%s url=%s body=%s",
            method,
            url,
            json.dumps(body, ensure_ascii=False) if body is not None else None,
        )

        started = time.perf_counter()
        try:
            response = await self.http_client.request(
                method=method,
                url=url,
                headers=headers,
                json=body,
            )
        except httpx.TimeoutException as e:
            return ProviderResponse(status_code=504, error=f"Request timeout: {str(e)}")
        except httpx.RequestError as e:
            return ProviderResponse(status_code=502, error=f"Request error: {str(e)}")

        response_body: Any = response.text
        try:
            response_body = response.json()
        except json.JSONDecodeError:
            pass

        return ProviderResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response_body,
            content=response.content,
            total_time_ms=int((time.perf_counter() - started) * 1000),
        )

    async def generate_content(
        self,
        model: str,
        body: dict[str, Any],
        api_key: Optional[str],
    ) -> ProviderResponse:
        return await self._send("POST", f"models/{model}:generateContent", api_key, body)

    async def batch_embed_contents(
        self,
        model: str,
        body: dict[str, Any],
        api_key: Optional[str],
    ) -> ProviderResponse:
        """
        Args:
            model: Fully qualified model name (``models/...``)
        """
        return await self._send("POST", f"{model}:batchEmbedContents", api_key, body)

    async def list_models(self, api_key: Optional[str]) -> ProviderResponse:
        return await self._send("GET", "models", api_key)

    async def stream_generate_content(
        self,
        model: str,
        body: dict[str, Any],
        api_key: Optional[str],
    ) -> ProviderResponse:
        """
        Open a streamGenerateContent call in SSE mode.

        On success the returned ``ProviderResponse.stream`` is an open
        response whose body has not been read; the caller owns it and must
        close it. On an error status the body is read and the response is
        closed before returning.
        """
        url = self._build_url(f"models/{model}:streamGenerateContent")
        headers = self._prepare_headers(api_key, json_body=True)

        logger.debug(
            "Gemini Stream Request: url=%s body=%s",
            url,
            json.dumps(body, ensure_ascii=False),
        )

        request = self.http_client.build_request(
            "POST",
            url,
            params={"alt": "sse"},
            headers=headers,
            json=body,
        )
        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            return ProviderResponse(status_code=504, error=f"Request timeout: {str(e)}")
        except httpx.RequestError as e:
            return ProviderResponse(status_code=502, error=f"Request error: {str(e)}")

        provider_response = ProviderResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
        )

        if not response.is_success:
            try:
                provider_response.content = await response.aread()
            finally:
                await response.aclose()
            return provider_response

        provider_response.stream = response
        return provider_response
