"""Incremental Server-Sent Events framing.

The :class:`FrameDecoder` turns successive byte chunks into
:class:`Frame` objects.  A chunk may end in the middle of a line or in
the middle of a multi-byte character; both are carried over to the
next call.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass
class Frame:
    """One decoded ``event:``/``data:`` pair."""

    event_type: str = ""
    data: str = ""


def _payload_event_type(data: str) -> str:
    try:
        payload = json.loads(data)
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""
    event_type = payload.get("event") or payload.get("type") or ""
    return event_type if isinstance(event_type, str) else ""


class FrameDecoder:
    """Assembles frames from a chunked SSE byte stream."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._pending_event: str | None = None
        self.done = False

    def feed(self, chunk: bytes | str) -> list[Frame]:
        """Decode *chunk* and return every frame it completes."""
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        frames = []
        for line in lines:
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[Frame]:
        """Process whatever is left once the stream has closed."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        frames = []
        for line in tail.split("\n"):
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def _process_line(self, line: str) -> Frame | None:
        # Nothing after [DONE] belongs to the turn.
        if self.done:
            return None
        line = line.rstrip("\r")
        if not line.strip():
            return None
        if line.startswith("event:"):
            self._pending_event = line[len("event:"):].strip()
            return None
        if not line.startswith("data:"):
            logger.debug(f"Ignoring SSE line: {line[:80]!r}")
            return None

        data = line[len("data:"):].strip()
        if data == DONE_SENTINEL:
            self.done = True
            return None

        event_type = self._pending_event or _payload_event_type(data)
        self._pending_event = None
        return Frame(event_type=event_type, data=data)
