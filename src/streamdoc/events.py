"""Patch events carried by the agent event stream."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from streamdoc.frames import Frame

logger = logging.getLogger(__name__)

PathSegment = Union[str, int]
Path = tuple[PathSegment, ...]


class Action(str, Enum):
    APPEND = "append"
    UPSERT = "upsert"
    END = "end"


@dataclass(frozen=True)
class PatchEvent:
    """A single ``(path, action, content)`` instruction.

    ``action`` is kept as the raw string sent by the backend so that
    unknown actions survive parsing; they are inert downstream.
    ``sequence`` is informational only and is never used to reorder.
    """

    path: Path = ()
    action: str = ""
    content: Any = None
    sequence: int | None = None

    @property
    def is_end(self) -> bool:
        return self.action == Action.END


def _coerce_path(key: Any) -> Path:
    if not isinstance(key, list):
        return ()
    return tuple(key)


def event_from_payload(payload: dict) -> PatchEvent:
    """Build a :class:`PatchEvent` from an already decoded frame payload."""
    sequence = payload.get("seq_id")
    if sequence is None:
        sequence = payload.get("seq")
    return PatchEvent(
        path=_coerce_path(payload.get("key")),
        action=payload.get("action") or "",
        content=payload.get("content"),
        sequence=sequence,
    )


def parse_event(frame: Frame) -> PatchEvent | None:
    """Parse ``frame.data`` into a :class:`PatchEvent`.

    Returns ``None`` when the payload is not a JSON object.  Losing one
    frame must not abort the turn, so the caller simply keeps its
    previous document.
    """
    try:
        payload = json.loads(frame.data)
    except ValueError as e:
        logger.debug(f"Skipping malformed frame: {e}")
        return None
    if not isinstance(payload, dict):
        logger.debug(f"Skipping non-object frame payload: {frame.data[:80]!r}")
        return None
    return event_from_payload(payload)
