"""
Static Lookup Tables

Field renames, safety profiles and finish-reason mapping shared by every
request. All tables are read-only after import.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping

# OpenAI request field -> Gemini generationConfig field
FIELD_MAP: Mapping[str, str] = MappingProxyType(
    {
        "n": "candidateCount",  # ignored by the upstream when streaming
        "max_tokens": "maxOutputTokens",
        "max_completion_tokens": "maxOutputTokens",
        "temperature": "temperature",
        "top_p": "topP",
        "top_k": "topK",
        "frequency_penalty": "frequencyPenalty",
        "presence_penalty": "presencePenalty",
    }
)

HARM_CATEGORIES: tuple[str, ...] = (
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
    "HARM_CATEGORY_HARASSMENT",
)

DEFAULT_SAFETY_PROFILE = "block_none"

# Safety profile name -> threshold applied to every harm category
SAFETY_THRESHOLDS: Mapping[str, str] = MappingProxyType(
    {
        "block_none": "BLOCK_NONE",
        "block_some": "BLOCK_ONLY_HIGH",
        "block_most": "BLOCK_MEDIUM_AND_ABOVE",
    }
)

# Gemini finishReason -> OpenAI finish_reason; unknown reasons pass through
FINISH_REASONS: Mapping[str, str] = MappingProxyType(
    {
        "STOP": "stop",
        "MAX_TOKENS": "length",
        "SAFETY": "content_filter",
        "RECITATION": "content_filter",
    }
)

# Joins the text of multiple parts within one candidate
PARTS_SEPARATOR = "\n\n|>"

MIME_JSON = "application/json"
MIME_TEXT = "text/plain"
MIME_ENUM = "text/x.enum"

# Used when functionCalling is requested without any declarations
PLACEHOLDER_FUNCTION_DECLARATIONS: tuple[Mapping[str, Any], ...] = (
    MappingProxyType(
        {
            "name": "get_weather",
            "description": "Get the current weather in a given location",
            "parameters": {
                "type": "OBJECT",
                "properties": {
                    "location": {
                        "type": "STRING",
                        "description": "The city and state, e.g. San Francisco, CA",
                    }
                },
                "required": ["location"],
            },
        }
    ),
)


def map_finish_reason(reason: Any) -> Any:
    """Translate a Gemini finishReason, passing unknown values through verbatim."""
    if isinstance(reason, str):
        return FINISH_REASONS.get(reason, reason)
    return reason
