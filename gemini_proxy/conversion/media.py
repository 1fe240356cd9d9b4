"""
Media Inlining

Turns image references (remote URL or data URI) into the inlineData
payloads the Gemini API requires.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from typing import Any, Iterable
from urllib.parse import unquote_to_bytes

import httpx

from gemini_proxy.common.errors import FetchError, InvalidDataUriError

logger = logging.getLogger(__name__)

DATA_URI_PATTERN = re.compile(r"^data:(?P<mimeType>.*?)(?P<base64>;base64)?,(?P<data>.*)$")


def is_remote_url(ref: str) -> bool:
    return ref.startswith("http://") or ref.startswith("https://")


def parse_data_uri(ref: str) -> dict[str, str]:
    """
    Parse ``data:<mimeType>[;base64],<payload>``.

    Payloads that are not declared base64 are percent-decoded and encoded,
    so the result always carries base64 data.

    Raises:
        InvalidDataUriError: If the reference does not match the grammar
    """
    match = DATA_URI_PATTERN.match(ref)
    if match is None:
        raise InvalidDataUriError(ref)

    data = match.group("data")
    if not match.group("base64"):
        data = base64.b64encode(unquote_to_bytes(data)).decode("ascii")
    return {"mimeType": match.group("mimeType"), "data": data}


async def fetch_inline_data(client: httpx.AsyncClient, url: str) -> dict[str, str]:
    """
    Download a remote image and base64 encode it.

    Raises:
        FetchError: On network failure or a non-2xx response
    """
    try:
        response = await client.get(url, follow_redirects=True)
    except httpx.HTTPError as e:
        raise FetchError(f"{type(e).__name__}: {e} ({url})") from e

    if not response.is_success:
        raise FetchError(
            f"{response.status_code} {response.reason_phrase} ({url})",
            details={"status_code": response.status_code, "url": url},
        )

    return {
        "mimeType": response.headers.get("content-type", ""),
        "data": base64.b64encode(response.content).decode("ascii"),
    }


async def resolve_inline_data(client: httpx.AsyncClient, ref: str) -> dict[str, str]:
    """Resolve a single reference of either form."""
    if is_remote_url(ref):
        return await fetch_inline_data(client, ref)
    return parse_data_uri(ref)


def collect_image_refs(messages: Any) -> list[str]:
    """
    List the distinct image references of a chat request, in order.
    """
    refs: list[str] = []
    if not isinstance(messages, list):
        return refs
    for message in messages:
        if not isinstance(message, dict):
            continue
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for item in content:
            if not isinstance(item, dict) or item.get("type") != "image_url":
                continue
            ref = image_ref_of(item)
            if ref and ref not in refs:
                refs.append(ref)
    return refs


def image_ref_of(item: dict[str, Any]) -> str:
    image_url = item.get("image_url")
    if isinstance(image_url, dict):
        image_url = image_url.get("url")
    return image_url if isinstance(image_url, str) else ""


async def resolve_media(
    client: httpx.AsyncClient,
    refs: Iterable[str],
) -> dict[str, dict[str, str]]:
    """
    Resolve every reference concurrently.

    Any single failure fails the whole batch; nothing is cached between
    requests.

    Returns:
        dict: reference -> inlineData payload
    """
    refs = list(refs)
    if not refs:
        return {}
    logger.debug("Resolving %d media reference(s)", len(refs))
    results = await asyncio.gather(*(resolve_inline_data(client, ref) for ref in refs))
    return dict(zip(refs, results))
