"""
Chat Request Conversion

Maps an OpenAI chat completion request body onto a Gemini generateContent
request body. Everything here is synchronous and side-effect free: remote
images are resolved beforehand (see ``conversion.media``) and handed in
through the ``media`` mapping.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

from gemini_proxy.common.errors import FetchError, UnsupportedContentTypeError, ValidationError
from gemini_proxy.config import get_settings
from gemini_proxy.conversion.media import image_ref_of, is_remote_url, parse_data_uri
from gemini_proxy.conversion.tables import (
    DEFAULT_SAFETY_PROFILE,
    FIELD_MAP,
    HARM_CATEGORIES,
    MIME_ENUM,
    MIME_JSON,
    MIME_TEXT,
    PLACEHOLDER_FUNCTION_DECLARATIONS,
    SAFETY_THRESHOLDS,
)

logger = logging.getLogger(__name__)

_PASSTHROUGH_MODEL_PREFIXES = ("gemini-", "learnlm-")
_MODEL_NAMESPACE = "models/"


def resolve_model(model: Any, default: Optional[str] = None) -> str:
    """
    Resolve the upstream model id for a chat request.

    - ``models/<id>`` -> ``<id>``
    - ``gemini-*`` / ``learnlm-*`` -> verbatim
    - anything else, or no model -> the configured default
    """
    fallback = default or get_settings().DEFAULT_MODEL
    if not isinstance(model, str):
        return fallback
    if model.startswith(_MODEL_NAMESPACE):
        return model[len(_MODEL_NAMESPACE):]
    if model.startswith(_PASSTHROUGH_MODEL_PREFIXES):
        return model
    return fallback


def _tool_flags(tools: Any) -> Dict[str, Any]:
    return tools if isinstance(tools, dict) else {}


def transform_config(body: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build generationConfig from the sampling parameters of the request.

    Raises:
        ValidationError: For an unsupported response_format.type
    """
    cfg: Dict[str, Any] = {}
    for src, dst in FIELD_MAP.items():
        if body.get(src) is not None:
            cfg[dst] = body[src]

    stop = body.get("stop")
    if isinstance(stop, str) and stop:
        cfg["stopSequences"] = [stop]
    elif isinstance(stop, list) and stop:
        cfg["stopSequences"] = stop

    response_format = body.get("response_format")
    if response_format is not None:
        r_type = response_format.get("type") if isinstance(response_format, dict) else None
        if r_type == "json_schema":
            schema_payload = response_format.get("json_schema")
            schema = schema_payload.get("schema") if isinstance(schema_payload, dict) else None
            # Forwarded even for enum schemas: Gemini reads the allowed values
            # from responseSchema, text/x.enum alone carries none.
            if schema is not None:
                cfg["responseSchema"] = schema
            if isinstance(schema, dict) and "enum" in schema:
                cfg["responseMimeType"] = MIME_ENUM
            else:
                cfg["responseMimeType"] = MIME_JSON
        elif r_type == "json_object":
            cfg["responseMimeType"] = MIME_JSON
        elif r_type == "text":
            cfg["responseMimeType"] = MIME_TEXT
        else:
            raise ValidationError(
                "Unsupported response_format.type",
                code="unsupported_response_format",
                details={"type": r_type},
            )

    flags = _tool_flags(body.get("tools"))
    if flags.get("structuredOutput") or flags.get("functionCalling"):
        # An enum constraint is more specific than plain JSON and wins.
        if cfg.get("responseMimeType") != MIME_ENUM:
            cfg["responseMimeType"] = MIME_JSON

    return cfg


def transform_safety(profile: Any) -> List[Dict[str, str]]:
    """
    Build safetySettings for a named profile.

    Unknown or missing profile names behave like ``block_none``.
    """
    threshold = SAFETY_THRESHOLDS.get(profile) if isinstance(profile, str) else None
    if threshold is None:
        threshold = SAFETY_THRESHOLDS[DEFAULT_SAFETY_PROFILE]
    return [{"category": category, "threshold": threshold} for category in HARM_CATEGORIES]


def _openai_tools_to_declarations(tools: List[Any]) -> List[Dict[str, Any]]:
    declarations: List[Dict[str, Any]] = []
    for tool in tools:
        if not isinstance(tool, dict) or tool.get("type") != "function":
            continue
        fn = tool.get("function")
        if not isinstance(fn, dict):
            continue
        name = fn.get("name")
        if not isinstance(name, str) or not name:
            continue
        decl: Dict[str, Any] = {"name": name}
        if isinstance(fn.get("description"), str):
            decl["description"] = fn["description"]
        if isinstance(fn.get("parameters"), dict):
            decl["parameters"] = fn["parameters"]
        declarations.append(decl)
    return declarations


def _merge_function_declarations(
    tools: List[Dict[str, Any]],
    declarations: List[Dict[str, Any]],
) -> None:
    for tool in tools:
        if "functionDeclarations" in tool:
            tool["functionDeclarations"] = declarations
            return
    tools.append({"functionDeclarations": declarations})


def transform_tools(tools: Any) -> Optional[List[Dict[str, Any]]]:
    """
    Build the Gemini tools list.

    Accepts the flag object ``{groundingSearch, functionCalling,
    functionDeclarations}`` or a standard OpenAI ``tools`` list. Returns
    None when no tool ends up enabled.
    """
    out: List[Dict[str, Any]] = []

    if isinstance(tools, list):
        declarations = _openai_tools_to_declarations(tools)
        if declarations:
            out.append({"functionDeclarations": declarations})
        return out or None

    flags = _tool_flags(tools)
    if flags.get("groundingSearch"):
        out.append({"googleSearchRetrieval": {}})

    if flags.get("functionCalling"):
        supplied = flags.get("functionDeclarations")
        if isinstance(supplied, list) and supplied:
            declarations = copy.deepcopy(supplied)
        else:
            declarations = [copy.deepcopy(dict(d)) for d in PLACEHOLDER_FUNCTION_DECLARATIONS]
        _merge_function_declarations(out, declarations)

    return out or None


def _inline_image(item: Dict[str, Any], media: Mapping[str, Dict[str, str]]) -> Dict[str, Any]:
    ref = image_ref_of(item)
    inline = media.get(ref)
    if inline is None:
        if is_remote_url(ref):
            # Remote references must be fetched before conversion.
            raise FetchError(f"image was not resolved ({ref})")
        inline = parse_data_uri(ref)
    return {"inlineData": dict(inline)}


def transform_message_parts(
    content: Any,
    media: Optional[Mapping[str, Dict[str, str]]] = None,
) -> List[Dict[str, Any]]:
    """
    Convert one message's content into Gemini parts.

    Raises:
        UnsupportedContentTypeError: For an unknown content part type
    """
    media = media or {}
    if not isinstance(content, list):
        if content is None:
            content = ""
        elif not isinstance(content, str):
            content = str(content)
        return [{"text": content}]

    parts: List[Dict[str, Any]] = []
    for item in content:
        item_type = item.get("type") if isinstance(item, dict) else None
        if item_type == "text":
            parts.append({"text": item.get("text", "")})
        elif item_type == "image_url":
            parts.append(_inline_image(item, media))
        elif item_type == "input_audio":
            audio = item.get("input_audio") or {}
            parts.append(
                {
                    "inlineData": {
                        "mimeType": f"audio/{audio.get('format')}",
                        "data": audio.get("data"),
                    }
                }
            )
        else:
            raise UnsupportedContentTypeError(item_type)

    if content and all(isinstance(item, dict) and item.get("type") == "image_url" for item in content):
        # The upstream rejects turns without any text parameter.
        parts.append({"text": ""})

    return parts


def transform_messages(
    messages: Any,
    media: Optional[Mapping[str, Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """
    Split the message list into system_instruction and contents.

    Raises:
        ValidationError: If messages is not a list
    """
    if not isinstance(messages, list):
        raise ValidationError("messages is required and must be an array", code="missing_messages")

    contents: List[Dict[str, Any]] = []
    system_parts: List[Dict[str, Any]] = []

    for message in messages:
        if not isinstance(message, dict):
            raise ValidationError("each message must be an object", code="invalid_message")
        parts = transform_message_parts(message.get("content"), media)
        role = message.get("role")
        if role == "system":
            system_parts.extend(parts)
            continue
        contents.append({"role": "model" if role == "assistant" else "user", "parts": parts})

    out: Dict[str, Any] = {}
    if system_parts:
        out["system_instruction"] = {"parts": system_parts}
        if not contents:
            contents.append({"role": "model", "parts": [{"text": " "}]})
    out["contents"] = contents
    return out


def build_gemini_request(
    body: Dict[str, Any],
    media: Optional[Mapping[str, Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """
    Convert an OpenAI chat completion request into a Gemini request body.

    Args:
        body: OpenAI chat completion request
        media: Pre-resolved inlineData payloads keyed by image reference

    Returns:
        dict: Gemini generateContent request body
    """
    generation_config = transform_config(body)
    request: Dict[str, Any] = transform_messages(body.get("messages"), media)
    request["safetySettings"] = transform_safety(body.get("safety"))
    request["generationConfig"] = generation_config

    tools = transform_tools(body.get("tools"))
    if tools:
        request["tools"] = tools

    return request
