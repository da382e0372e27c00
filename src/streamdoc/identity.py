"""Display-id reconciliation.

The host addresses an in-flight answer by a locally generated display
id until the backend assigns a canonical ``message.id``.  From that
point on the canonical id is used for every render callback of the
turn, including the one triggered by the event that carried the id.
"""

from __future__ import annotations

import time
from typing import Any

from streamdoc.merge import get_path

MESSAGE_ID_PATH = ("message", "id")


def new_display_id() -> str:
    """Return a local display id for a fresh turn."""
    return f"assistant-{int(time.time() * 1000)}"


def canonical_id(document: Any) -> str | None:
    value = get_path(document, MESSAGE_ID_PATH)
    if value is None or value == "" or isinstance(value, (dict, list, bool)):
        return None
    return str(value)


def reconcile(document: Any, display_id: str) -> str:
    """Return the id the host should use after merging *document*."""
    message_id = canonical_id(document)
    if message_id is None or message_id == display_id:
        return display_id
    return message_id
