"""Path-scoped immutable merging of patch events into a document.

Documents are plain JSON-like values (``dict``, ``list`` and scalars)
that are never mutated once produced.  A merge copies only the chain of
containers from the root down to the changed leaf; every other subtree
is shared by reference with the previous version.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from streamdoc.events import Action, PathSegment

_MISSING = object()


def _is_index(segment: Any) -> bool:
    return isinstance(segment, int) and not isinstance(segment, bool)


def normalize_path(path: Sequence[PathSegment]) -> str:
    """Render *path* in dotted/indexed form.

    ``["message", "content", "progress", 0, "answer"]`` becomes
    ``"message.content.progress[0].answer"``.
    """
    parts = []
    for segment in path:
        if _is_index(segment):
            parts.append(f"[{segment}]")
        elif parts:
            parts.append(f".{segment}")
        else:
            parts.append(str(segment))
    return "".join(parts)


def _child(node: Any, segment: PathSegment, default: Any = None) -> Any:
    if isinstance(node, dict):
        return node.get(segment, default)
    if isinstance(node, list) and _is_index(segment):
        if 0 <= segment < len(node):
            return node[segment]
    return default


def get_path(doc: Any, path: Sequence[PathSegment], default: Any = None) -> Any:
    """Read the value at *path*, returning *default* when any step is missing."""
    current = doc
    for segment in path:
        current = _child(current, segment, _MISSING)
        if current is _MISSING:
            return default
    return current


def _with_slot(node: Any, segment: PathSegment, value: Any) -> Any:
    """Return a shallow copy of *node* with ``node[segment] = value``.

    A missing node becomes a list when *segment* is an index and a dict
    otherwise.  Lists are padded with ``None`` up to the index.  An
    existing container keeps its kind where possible: a dict accepts an
    index as a key, and a list addressed by a key is re-keyed into a
    dict so its items survive.
    """
    if isinstance(node, dict):
        mapping = dict(node)
    elif _is_index(segment):
        items = list(node) if isinstance(node, list) else []
        if segment >= len(items):
            items.extend([None] * (segment + 1 - len(items)))
        items[segment] = value
        return items
    elif isinstance(node, list):
        mapping = {str(i): item for i, item in enumerate(node)}
    else:
        mapping = {}
    mapping[segment] = value
    return mapping


def set_path(doc: Any, path: Sequence[PathSegment], value: Any) -> Any:
    """Return a new document with *value* stored at *path*.

    Only the ancestors of the leaf are copied.  Intermediate containers
    that do not exist yet are created from the type of the segment that
    addresses into them.
    """
    if not path:
        return doc
    head, rest = path[0], path[1:]
    if not rest:
        return _with_slot(doc, head, value)
    child = _child(doc, head)
    return _with_slot(doc, head, set_path(child, rest, value))


def merge(doc: Any, path: Sequence[PathSegment], action: str, content: Any) -> Any:
    """Apply one patch instruction to *doc* and return the new document.

    ``upsert`` replaces the value at *path*.  ``append`` sets the slot
    when the last segment is an index, concatenates when both the
    current value and *content* are strings, and otherwise replaces.
    ``end`` and unknown actions return *doc* itself.
    """
    if not path:
        return doc
    if action == Action.UPSERT:
        return set_path(doc, path, content)
    if action == Action.APPEND:
        if _is_index(path[-1]):
            return set_path(doc, path, content)
        current = get_path(doc, path)
        if isinstance(current, str) and isinstance(content, str):
            return set_path(doc, path, current + content)
        return set_path(doc, path, content)
    return doc
