"""
Stream Conversion

Re-emits Gemini streamGenerateContent events as OpenAI
``chat.completion.chunk`` SSE events.

Each stream owns a ``StreamContext``; nothing is shared between
concurrent streams. The pipeline is a chain of async generators:

    text chunks -> iter_sse_frames -> to_openai_stream -> SSE text
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional

from gemini_proxy.common.errors import StreamDecodeError
from gemini_proxy.common.sse import SSE_DONE, format_sse, iter_sse_frames
from gemini_proxy.conversion.response import (
    generate_completion_id,
    transform_candidate,
    transform_usage,
)

logger = logging.getLogger(__name__)


@dataclass
class StreamContext:
    """State of one in-flight streamed completion."""

    model: str
    completion_id: str = field(default_factory=generate_completion_id)
    include_usage: bool = False
    # candidate index -> most recent event seen for that candidate
    last: Dict[int, Dict[str, Any]] = field(default_factory=dict)


class OpenAIStreamEmitter:
    """
    Converts upstream frames, in arrival order, into OpenAI SSE chunks.

    - The first frame of a candidate produces a role announcement
      (``delta={"role": "assistant", "content": ""}``).
    - Frames carrying content parts produce a content delta.
    - ``flush`` produces one terminal chunk per candidate from its last
      recorded event, then the ``[DONE]`` sentinel.
    """

    def __init__(self, context: StreamContext):
        self.context = context
        self._finished = False

    def process_frame(self, frame: str) -> List[str]:
        """
        Convert one raw upstream frame.

        Malformed JSON never aborts the stream; it is replaced by an
        error-content event for every candidate slot seen so far.

        Returns:
            list[str]: Outbound SSE events
        """
        if self._finished:
            logger.warning("Dropping upstream frame received after stream end")
            return []

        data = self._decode(frame)
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            logger.warning("Upstream frame without candidates skipped: %s", frame[:200])
            return []

        usage = data.get("usageMetadata")
        out: List[str] = []
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            # Single-candidate responses may omit index 0.
            candidate["index"] = candidate.get("index") or 0
            index = candidate["index"]

            if index not in self.context.last:
                out.append(self._render(candidate, usage, first=True))
            self.context.last[index] = {"candidates": [candidate], "usageMetadata": usage}

            content = candidate.get("content")
            if isinstance(content, dict) and content.get("parts"):
                out.append(self._render(candidate, usage))
        return out

    def flush(self) -> List[str]:
        """
        Emit terminal chunks and the ``[DONE]`` sentinel.

        Nothing is emitted when no candidate was ever seen.
        """
        if self._finished:
            return []
        self._finished = True

        if not self.context.last:
            return []

        out: List[str] = []
        for index in sorted(self.context.last):
            event = self.context.last[index]
            out.append(
                self._render(event["candidates"][0], event.get("usageMetadata"), stop=True)
            )
        out.append(SSE_DONE)
        return out

    def _decode(self, frame: str) -> Dict[str, Any]:
        try:
            data = json.loads(frame)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            return data
        except ValueError as e:
            err = StreamDecodeError(frame, f"{type(e).__name__}: {e}")
            logger.error("Stream decode error: %s, frame=%r", err.message, frame)
            slots = max(self.context.last) + 1 if self.context.last else 1
            return {
                "candidates": [
                    {
                        "finishReason": "error",
                        "content": {"parts": [{"text": err.message}]},
                        "index": index,
                    }
                    for index in range(slots)
                ]
            }

    def _render(
        self,
        candidate: Dict[str, Any],
        usage: Optional[Dict[str, Any]],
        *,
        first: bool = False,
        stop: bool = False,
    ) -> str:
        item = transform_candidate(candidate, key="delta")
        if stop:
            item["delta"] = {}
            if item["finish_reason"] is None:
                item["finish_reason"] = "stop"
        else:
            item["finish_reason"] = None
            if first:
                item["delta"]["content"] = ""
            else:
                del item["delta"]["role"]

        output: Dict[str, Any] = {
            "id": self.context.completion_id,
            "choices": [item],
            "created": int(time.time()),
            "model": self.context.model,
            "object": "chat.completion.chunk",
        }
        if self.context.include_usage:
            output["usage"] = transform_usage(usage) if stop and usage else None
        return format_sse(output)


async def to_openai_stream(
    frames: AsyncIterable[str],
    context: StreamContext,
) -> AsyncIterator[str]:
    """Pull-based re-emitting stage: raw frames in, OpenAI SSE events out."""
    emitter = OpenAIStreamEmitter(context)
    async for frame in frames:
        for event in emitter.process_frame(frame):
            yield event
    for event in emitter.flush():
        yield event


async def transcode_stream(
    chunks: AsyncIterable[str],
    context: StreamContext,
) -> AsyncIterator[str]:
    """
    Full stream pipeline from decoded upstream text to OpenAI SSE text.

    Closing this generator closes every stage behind it.
    """
    async with aclosing(iter_sse_frames(chunks)) as frames:
        async with aclosing(to_openai_stream(frames, context)) as events:
            async for event in events:
                yield event
