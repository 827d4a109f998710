"""
Decoder for the chat-completions streaming wire format.

The upstream body is a sequence of newline-delimited ``data: <json>`` records
ending with ``data: [DONE]``. Records may be split across transport chunks, so
partial lines are buffered until their newline arrives.
"""

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, List, NamedTuple, Optional

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class ToolCallDelta(NamedTuple):
    """One fragment of a tool call, keyed by its position in the response."""

    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


class DeltaFrame(NamedTuple):
    content: Optional[str] = None
    tool_calls: List[ToolCallDelta] = []
    finish_reason: Optional[str] = None
    error: Optional[str] = None


def _parse_tool_call_deltas(raw: Any) -> List[ToolCallDelta]:
    deltas = []
    if not isinstance(raw, list):
        return deltas
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        index = item.get("index")
        if not isinstance(index, int) or isinstance(index, bool):
            # Some providers omit the index when only one call is streamed
            index = i
        function = item.get("function")
        if not isinstance(function, dict):
            function = {}
        deltas.append(
            ToolCallDelta(
                index=index,
                id=item.get("id") or None,
                name=function.get("name") or None,
                arguments=function.get("arguments") or None,
            )
        )
    return deltas


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


def parse_record(payload: str) -> Optional[DeltaFrame]:
    """Turn one record payload into a frame, or ``None`` if it carries nothing."""
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("record payload is not an object")

    if data.get("error"):
        return DeltaFrame(error=_error_message(data["error"]))

    choices = data.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None

    choice = choices[0]
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = {}
    content = delta.get("content")
    if not isinstance(content, str) or not content:
        content = None
    tool_calls = _parse_tool_call_deltas(delta.get("tool_calls"))
    finish_reason = choice.get("finish_reason")

    if content is None and not tool_calls and not finish_reason:
        return None
    return DeltaFrame(content=content, tool_calls=tool_calls, finish_reason=finish_reason)


class StreamFrameDecoder:
    """Incremental decoder. Use one instance per response stream."""

    def __init__(self):
        self._buffer = ""
        self.done = False
        self.records = 0
        self.skipped = 0

    def feed(self, text: str) -> List[DeltaFrame]:
        """Consume a raw chunk and return the frames it completed."""
        if self.done or not text:
            return []
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        frames = []
        for line in lines:
            frame = self._decode_line(line)
            if frame is not None:
                frames.append(frame)
            if self.done:
                self._buffer = ""
                break
        return frames

    def finish(self) -> List[DeltaFrame]:
        """Flush a trailing record that arrived without a final newline."""
        if self.done or not self._buffer:
            return []
        line, self._buffer = self._buffer, ""
        frame = self._decode_line(line)
        return [frame] if frame is not None else []

    def _decode_line(self, line: str) -> Optional[DeltaFrame]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]
        if payload.strip() == DONE_SENTINEL:
            self.done = True
            return None

        self.records += 1
        try:
            return parse_record(payload)
        except ValueError:
            # json.JSONDecodeError is a ValueError too
            self.skipped += 1
            logger.debug(f"Skipping unparseable stream record #{self.records}: {payload[:80]!r}")
            return None


async def decode_stream(chunks: AsyncIterable[str]) -> AsyncIterator[DeltaFrame]:
    """Yield delta frames from an async iterable of raw text chunks.

    Stops at the ``[DONE]`` sentinel or when the transport runs dry.
    """
    decoder = StreamFrameDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
        if decoder.done:
            break
    for frame in decoder.finish():
        yield frame
    if decoder.skipped:
        logger.debug(f"Stream ended: {decoder.records} records, {decoder.skipped} skipped")
