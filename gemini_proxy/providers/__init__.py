"""
Upstream Provider Module Initialization
"""

from gemini_proxy.providers.base import ProviderResponse
from gemini_proxy.providers.gemini_client import GeminiClient

__all__ = [
    "ProviderResponse",
    "GeminiClient",
]
