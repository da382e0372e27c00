"""Server-Sent Events encoding of patch events.

The inverse of :mod:`streamdoc.frames`; used to write captures and to
replay a recorded turn through the assembler.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable

from streamdoc.events import Action, PatchEvent
from streamdoc.frames import DONE_SENTINEL


def encode_event(event: PatchEvent, event_type: str | None = None) -> str:
    """Encode one patch event as an SSE block."""
    action = event.action.value if isinstance(event.action, Action) else event.action
    payload = {
        "seq_id": event.sequence,
        "key": list(event.path),
        "action": action,
        "content": event.content,
    }
    data = json.dumps(payload, ensure_ascii=False)
    if event_type:
        return f"event: {event_type}\ndata: {data}\n\n"
    return f"data: {data}\n\n"


def encode_stream(events: Iterable[PatchEvent], done: bool = True) -> str:
    """Encode a whole turn, optionally terminated by ``[DONE]``."""
    body = "".join(encode_event(event) for event in events)
    if done:
        body += f"data: {DONE_SENTINEL}\n\n"
    return body


async def sse_generator(
    events: Iterable[PatchEvent],
    chunk_size: int | None = None,
) -> AsyncIterator[bytes]:
    """Yield an encoded turn as UTF-8 chunks.

    With *chunk_size* the bytes are cut at fixed offsets regardless of
    line or character boundaries, the way a network read would.
    """
    data = encode_stream(events).encode("utf-8")
    if not chunk_size:
        yield data
        return
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]
