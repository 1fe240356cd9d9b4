"""
Service Layer Module Initialization
"""

from gemini_proxy.services.proxy_service import CompletionEventStream, ProxyService

__all__ = [
    "CompletionEventStream",
    "ProxyService",
]
