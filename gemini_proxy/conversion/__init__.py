"""
OpenAI <-> Gemini Conversion

Request mapping, media inlining, response adaptation and stream re-emission.
"""

from gemini_proxy.conversion.request import build_gemini_request, resolve_model
from gemini_proxy.conversion.response import (
    build_chat_completion,
    build_embeddings_request,
    build_embeddings_response,
    build_model_list,
)
from gemini_proxy.conversion.stream import OpenAIStreamEmitter, StreamContext, transcode_stream

__all__ = [
    "build_gemini_request",
    "resolve_model",
    "build_chat_completion",
    "build_embeddings_request",
    "build_embeddings_response",
    "build_model_list",
    "OpenAIStreamEmitter",
    "StreamContext",
    "transcode_stream",
]
