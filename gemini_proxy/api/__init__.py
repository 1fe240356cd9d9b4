"""
API Router Module Initialization
"""

from gemini_proxy.api.deps import get_api_key, get_gemini_client, get_proxy_service

__all__ = [
    "get_api_key",
    "get_gemini_client",
    "get_proxy_service",
]
