"""
Response Conversion

Maps Gemini responses (generateContent, batchEmbedContents, models.list)
back into OpenAI-shaped bodies, and builds the embedding request body.
"""

from __future__ import annotations

import random
import string
import time
from typing import Any, Dict, List, Optional

from gemini_proxy.common.errors import ValidationError
from gemini_proxy.config import get_settings
from gemini_proxy.conversion.tables import PARTS_SEPARATOR, map_finish_reason

_ID_ALPHABET = string.ascii_letters + string.digits
_MODEL_NAMESPACE = "models/"


def generate_completion_id() -> str:
    """Generate an OpenAI-style ``chatcmpl-`` id with 29 random characters."""
    return "chatcmpl-" + "".join(random.choices(_ID_ALPHABET, k=29))


def candidate_text(candidate: Dict[str, Any]) -> Optional[str]:
    """
    Join the text of all parts of a candidate.

    Returns None when the candidate carries no content at all.
    """
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list):
        return None
    return PARTS_SEPARATOR.join(
        part.get("text") or "" if isinstance(part, dict) else "" for part in parts
    )


def transform_usage(usage: Any) -> Dict[str, Any]:
    """
    Map usageMetadata to OpenAI usage.

    Missing counters stay null; they are not recomputed locally.
    """
    if not isinstance(usage, dict):
        usage = {}
    return {
        "completion_tokens": usage.get("candidatesTokenCount"),
        "prompt_tokens": usage.get("promptTokenCount"),
        "total_tokens": usage.get("totalTokenCount"),
    }


def transform_candidate(candidate: Dict[str, Any], key: str = "message") -> Dict[str, Any]:
    """
    Convert one candidate into an OpenAI choice.

    Args:
        candidate: Gemini candidate
        key: ``message`` for completions, ``delta`` for stream chunks
    """
    return {
        "index": candidate.get("index") or 0,
        key: {"role": "assistant", "content": candidate_text(candidate)},
        "logprobs": None,
        "finish_reason": map_finish_reason(candidate.get("finishReason")),
    }


def build_chat_completion(
    data: Dict[str, Any],
    model: str,
    completion_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build an OpenAI chat.completion from a Gemini generateContent response.

    Every candidate becomes one choice; indices are preserved.
    """
    candidates = data.get("candidates")
    if not isinstance(candidates, list):
        candidates = []
    return {
        "id": completion_id or generate_completion_id(),
        "choices": [transform_candidate(c) for c in candidates if isinstance(c, dict)],
        "created": int(time.time()),
        "model": model,
        "object": "chat.completion",
        "usage": transform_usage(data.get("usageMetadata")),
    }


def resolve_embeddings_model(model: Any) -> str:
    """
    Pick the upstream embeddings model.

    ``models/...`` names are used verbatim; anything else is replaced by
    the configured default embeddings model.

    Raises:
        ValidationError: If model is not a string
    """
    if not isinstance(model, str):
        raise ValidationError("model is not specified", code="missing_model")
    if model.startswith(_MODEL_NAMESPACE):
        return model
    return get_settings().DEFAULT_EMBEDDINGS_MODEL


def qualify_model_name(model: str) -> str:
    """Prefix a bare model id with the "models/" namespace."""
    return model if model.startswith(_MODEL_NAMESPACE) else _MODEL_NAMESPACE + model


def build_embeddings_request(body: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
    """
    Build a batchEmbedContents request.

    Returns:
        tuple: (model name as reported back to the caller, Gemini request body)
    """
    model = resolve_embeddings_model(body.get("model"))
    qualified = qualify_model_name(model)

    inputs = body.get("input")
    if not isinstance(inputs, list):
        inputs = [inputs]

    dimensions = body.get("dimensions")
    requests: List[Dict[str, Any]] = []
    for text in inputs:
        req: Dict[str, Any] = {
            "model": qualified,
            "content": {"parts": [{"text": text}]},
        }
        if dimensions is not None:
            req["outputDimensionality"] = dimensions
        requests.append(req)

    return model, {"requests": requests}


def build_embeddings_response(data: Dict[str, Any], model: str) -> Dict[str, Any]:
    embeddings = data.get("embeddings")
    if not isinstance(embeddings, list):
        embeddings = []
    return {
        "object": "list",
        "data": [
            {
                "object": "embedding",
                "index": index,
                "embedding": item.get("values") if isinstance(item, dict) else None,
            }
            for index, item in enumerate(embeddings)
        ],
        "model": model,
    }


def build_model_list(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a Gemini models.list response into an OpenAI model list."""
    models = data.get("models")
    if not isinstance(models, list):
        models = []
    out: List[Dict[str, Any]] = []
    for item in models:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str):
            continue
        out.append(
            {
                "id": name.replace(_MODEL_NAMESPACE, "", 1),
                "object": "model",
                "created": 0,
                "owned_by": "",
            }
        )
    return {"object": "list", "data": out}
