"""
Incremental SSE frame parsing.

The backend writes one event per frame:

    data: {"step": "confirmed", "data": {...}}\\n\\n

Network reads can split a frame anywhere (mid-delimiter, mid-JSON, inside a
multi-byte character). FrameParser keeps the incomplete tail between reads so
the events it produces do not depend on how the transport chunked the bytes.
"""
from __future__ import annotations

import codecs
import json
import logging
from typing import List, Optional

from agentlink.models import AgentStep, ProtocolEvent

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_PREFIX = "data:"


def decode_frame(frame: str) -> Optional[ProtocolEvent]:
    """Decode one frame, or return None for noise, keepalives and bad JSON."""
    payload = None
    for line in frame.split("\n"):
        if line.startswith(DATA_PREFIX):
            payload = line[len(DATA_PREFIX):].strip()
            break

    if not payload:
        return None

    try:
        message = json.loads(payload)
    except (ValueError, RecursionError):
        # JSONDecodeError, oversized integers, pathological nesting
        logger.debug(f"Dropping frame with undecodable JSON: {payload[:80]}")
        return None

    if not isinstance(message, dict):
        return None

    step = message.get("step")
    if not step or not isinstance(step, str):
        return None

    try:
        agent_step = AgentStep(step)
    except ValueError:
        logger.debug(f"Dropping frame with unknown step: {step}")
        return None

    data = message.get("data")
    if not isinstance(data, dict):
        data = {}

    return ProtocolEvent(step=agent_step, data=data)


class FrameParser:
    """
    Turns a byte stream into ProtocolEvents.

    Usage:
        parser = FrameParser()
        async for chunk in response.aiter_bytes():
            for event in parser.feed(chunk):
                ...
        for event in parser.flush():
            ...
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received but not yet terminated by a delimiter."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[ProtocolEvent]:
        """Add one network read and return the events it completed."""
        self._buffer += self._decoder.decode(chunk)
        frames = self._buffer.split(FRAME_DELIMITER)
        self._buffer = frames.pop()
        return self._decode_all(frames)

    def flush(self) -> List[ProtocolEvent]:
        """Decode whatever is left once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        if not remainder.strip():
            return []
        return self._decode_all([remainder])

    def _decode_all(self, frames: List[str]) -> List[ProtocolEvent]:
        events = []
        for frame in frames:
            event = decode_frame(frame)
            if event is not None:
                events.append(event)
        return events
