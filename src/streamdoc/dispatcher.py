"""Whitelist dispatch of render side effects.

Every merged patch event is looked up in a :class:`Whitelist` by its
action and normalized path.  A matching entry may carry a handler that
reads the merged document and calls the host's :class:`RenderSink`.
Paths that match nothing are inert: the document still grows, but no
render side effect fires.

The dispatcher keeps no state of its own.  Whether a progress slot is
new or growing is decided purely by the shape of the event path.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from streamdoc.blocks import RenderBlock
from streamdoc.events import Action, Path, PathSegment
from streamdoc.extractors import ExtractorRegistry, default_registry
from streamdoc.merge import get_path, normalize_path

logger = logging.getLogger(__name__)

PROGRESS_ROOTS: tuple[Path, ...] = (
    ("message", "content", "progress"),
    ("message", "content", "middle_answer", "progress"),
)

# Utility skills that never produce a visible block.
SILENT_SKILLS = frozenset({"search_memory", "_date", "build_memory"})


class RenderSink(Protocol):
    """Callbacks the host provides to receive render side effects."""

    def on_text_delta(self, display_id: str, full_text: str) -> None:
        """Replace the in-progress text of *display_id* with *full_text*."""

    def on_tool_block(self, display_id: str, tool_name: str, block: RenderBlock) -> None:
        """Create or replace the block rendered for *tool_name*."""

    def on_identity_renamed(self, old_id: str, new_id: str) -> None:
        """Rename the tracked message from *old_id* to *new_id*."""


Handler = Callable[[Any, Path, Any, str], None]


@dataclass
class WhitelistEntry:
    """A registered ``(action, pattern)`` pair.

    An entry without a handler is whitelisted for merging only.
    """

    action: str
    pattern: str
    handler: Handler | None = None


def _action_value(action: str) -> str:
    # Keys are stored as plain strings.
    return action.value if isinstance(action, Action) else action


def _compile(pattern: str) -> re.Pattern:
    return re.compile("^" + re.escape(pattern).replace(r"\[\*\]", r"\[\d+\]") + "$")


class Whitelist:
    """Registry of whitelisted ``(action, path)`` keys.

    Patterns are normalized paths; ``[*]`` matches any array index.
    Exact keys are checked first, then wildcard patterns in
    registration order.
    """

    def __init__(self) -> None:
        self._exact: dict[tuple[str, str], WhitelistEntry] = {}
        self._patterns: list[tuple[re.Pattern, WhitelistEntry]] = []

    def register(self, action: str, pattern: str, handler: Handler | None = None) -> WhitelistEntry:
        entry = WhitelistEntry(action=_action_value(action), pattern=pattern, handler=handler)
        if "[*]" in pattern:
            self._patterns.append((_compile(pattern), entry))
        else:
            self._exact[(entry.action, pattern)] = entry
        return entry

    def lookup(self, action: str, normalized_path: str) -> WhitelistEntry | None:
        action = _action_value(action)
        entry = self._exact.get((action, normalized_path))
        if entry is not None:
            return entry
        for regex, candidate in self._patterns:
            if candidate.action == action and regex.match(normalized_path):
                return candidate
        return None

    def __len__(self) -> int:
        return len(self._exact) + len(self._patterns)


def consume_time(slot: dict) -> int | None:
    """Milliseconds between a slot's ``start_time`` and ``end_time`` (seconds)."""
    start, end = slot.get("start_time"), slot.get("end_time")
    if not isinstance(start, (int, float)) or not isinstance(end, (int, float)):
        return None
    if not start or not end or end <= start:
        return None
    return round((end - start) * 1000)


def is_silent_skill(skill_info: Any) -> bool:
    if not isinstance(skill_info, dict):
        return True
    name = skill_info.get("name")
    if not isinstance(name, str) or name.lower() in SILENT_SKILLS:
        return True
    args = skill_info.get("args")
    if isinstance(args, list):
        for arg in args:
            if isinstance(arg, dict) and arg.get("name") == "action" and arg.get("value") == "show_ds":
                return True
    return False


class WhitelistDispatcher:
    """Decides which patch events trigger render side effects.

    Args:
        sink: Host callbacks receiving text deltas and tool blocks.
        extractors: Registry used to turn skill answers into blocks.
            Defaults to :func:`default_registry`.
        progress_roots: Paths of the ``progress`` arrays to watch.
    """

    def __init__(
        self,
        sink: RenderSink,
        extractors: ExtractorRegistry | None = None,
        progress_roots: Sequence[Path] = PROGRESS_ROOTS,
    ):
        self.sink = sink
        self.extractors = extractors if extractors is not None else default_registry()
        self.whitelist = Whitelist()
        self.whitelist.register(Action.UPSERT, "error")
        self.whitelist.register(Action.UPSERT, "message")
        for root in progress_roots:
            self._register_progress(tuple(root))

    def dispatch(
        self,
        action: str,
        path: Sequence[PathSegment],
        document: Any,
        content: Any,
        display_id: str,
    ) -> None:
        """Invoke the handler whitelisted for ``(action, path)``, if any."""
        entry = self.whitelist.lookup(action, normalize_path(path))
        if entry is None or entry.handler is None:
            return
        entry.handler(document, tuple(path), content, display_id)

    # ------------------------------------------------------------------
    # Progress handlers
    # ------------------------------------------------------------------

    def _register_progress(self, root: Path) -> None:
        prefix = normalize_path(root)
        depth = len(root) + 1

        def new_slot(document, path, content, display_id):
            self._render_slot(document, path[:depth], display_id)

        def answer_grew(document, path, content, display_id):
            slot = get_path(document, path[:depth])
            if isinstance(slot, dict) and slot.get("stage") == "llm":
                self._emit_text(slot, display_id)

        def tool_answer_grew(document, path, content, display_id):
            slot = get_path(document, path[:depth])
            if isinstance(slot, dict) and slot.get("stage") == "skill":
                self._emit_tool(slot, path[depth - 1], display_id)

        def answer_replaced(document, path, content, display_id):
            self._render_slot(document, path[:depth], display_id)

        self.whitelist.register(Action.APPEND, f"{prefix}[*]", new_slot)
        self.whitelist.register(Action.APPEND, f"{prefix}[*].answer", answer_grew)
        self.whitelist.register(Action.APPEND, f"{prefix}[*].answer.answer", tool_answer_grew)
        self.whitelist.register(Action.UPSERT, f"{prefix}[*].answer", answer_replaced)

    def _render_slot(self, document: Any, slot_path: Path, display_id: str) -> None:
        slot = get_path(document, slot_path)
        if not isinstance(slot, dict):
            return
        stage = slot.get("stage")
        if stage == "llm":
            self._emit_text(slot, display_id)
        elif stage == "skill":
            self._emit_tool(slot, slot_path[-1], display_id)

    def _emit_text(self, slot: dict, display_id: str) -> None:
        answer = slot.get("answer")
        if answer is None:
            answer = ""
        if isinstance(answer, str):
            self.sink.on_text_delta(display_id, answer)

    def _emit_tool(self, slot: dict, index: int, display_id: str) -> None:
        skill_info = slot.get("skill_info")
        if is_silent_skill(skill_info):
            return
        name = skill_info["name"]
        block = self.extractors.extract(skill_info, slot.get("answer"))
        if block is None:
            logger.debug(f"No block extracted for skill {name}")
            return
        block = block.model_copy(update={
            "consume_time": consume_time(slot),
            "tool_name": name,
            "slot": index,
        })
        self.sink.on_tool_block(display_id, name, block)
