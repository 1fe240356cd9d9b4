"""
Middleware Module Initialization
"""

from gemini_proxy.middleware.cors import CORS_HEADERS, PermissiveCORSMiddleware

__all__ = [
    "CORS_HEADERS",
    "PermissiveCORSMiddleware",
]
