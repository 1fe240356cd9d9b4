"""
Server-Sent Events Framing

Splits the upstream event stream into raw JSON payloads and formats
outbound events.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, AsyncIterable, AsyncIterator, Union

logger = logging.getLogger(__name__)

# Anchored at the buffer head. Payload excludes CR/LF so a frame can never
# swallow the delimiter of the next one.
FRAME_PATTERN = re.compile(r"^data: ([^\r\n]*)(?:\n\n|\r\r|\r\n\r\n)")

SSE_DELIMITER = "\n\n"
SSE_DONE = "data: [DONE]" + SSE_DELIMITER


class SSEFrameParser:
    """
    Incremental SSE frame parser.

    Text is appended to an internal buffer on every ``feed``; complete
    ``data: <payload><delimiter>`` frames are drained from the head of the
    buffer and the incomplete remainder is kept for the next call. A
    delimiter split across two reads is therefore only matched once it is
    complete. Anything at the buffer head that is not a ``data:`` frame
    stalls the parser until ``flush``.
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        """
        Append text and return every complete frame payload.

        Args:
            chunk: Decoded text as read from the network

        Returns:
            list[str]: Raw JSON payloads in arrival order
        """
        if not chunk:
            return []

        self._buffer += chunk
        frames: list[str] = []
        while True:
            match = FRAME_PATTERN.match(self._buffer)
            if match is None:
                break
            frames.append(match.group(1))
            self._buffer = self._buffer[match.end():]
        return frames

    def flush(self) -> list[str]:
        """
        Drain whatever is left in the buffer as one best-effort frame.

        Returns:
            list[str]: Empty, or the undrained trailing text
        """
        if not self._buffer:
            return []
        leftover, self._buffer = self._buffer, ""
        logger.error("Invalid data in upstream stream: %r", leftover)
        return [leftover]


async def iter_sse_frames(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    """
    Pull-based parsing stage: decoded text chunks in, raw frame payloads out.
    """
    parser = SSEFrameParser()
    async for chunk in chunks:
        for frame in parser.feed(chunk):
            yield frame
    for frame in parser.flush():
        yield frame


def format_sse(data: Union[dict[str, Any], str]) -> str:
    """
    Format one outbound ``data:`` event.

    Args:
        data: Event payload; dictionaries are JSON encoded

    Returns:
        str: SSE event terminated by a blank line
    """
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False)
    return f"data: {data}{SSE_DELIMITER}"
