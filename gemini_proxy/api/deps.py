"""
API Dependency Injection Module

Provides dependencies required by FastAPI routes.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header

from gemini_proxy.providers.gemini_client import GeminiClient
from gemini_proxy.services.proxy_service import ProxyService

# Shared upstream client, so the connection pool outlives single requests
_gemini_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    """Get the process-wide Gemini client, creating it on first use."""
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiClient()
    return _gemini_client


async def close_gemini_client() -> None:
    global _gemini_client
    if _gemini_client is not None:
        await _gemini_client.close()
        _gemini_client = None


def get_api_key(authorization: Annotated[Optional[str], Header()] = None) -> Optional[str]:
    """
    Extract the caller's key from ``Authorization: Bearer <key>``.

    The key is forwarded upstream as-is; a missing key is not an error here,
    the upstream rejects the call if it needs one.
    """
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) < 2 or not parts[1]:
        return None
    return parts[1]


GeminiClientDep = Annotated[GeminiClient, Depends(get_gemini_client)]
ApiKey = Annotated[Optional[str], Depends(get_api_key)]


def get_proxy_service(client: GeminiClientDep) -> ProxyService:
    """Get proxy service"""
    return ProxyService(client)


ProxyServiceDep = Annotated[ProxyService, Depends(get_proxy_service)]
