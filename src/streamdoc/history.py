"""Convert a finished ``progress`` array into render blocks in one pass.

Used for stored conversation history and for extracting the final blocks
of a turn once streaming is over.  The skip rules match live dispatch.
"""

from __future__ import annotations

from typing import Any

from streamdoc.blocks import BlockType, RenderBlock
from streamdoc.dispatcher import PROGRESS_ROOTS, consume_time, is_silent_skill
from streamdoc.extractors import ExtractorRegistry, default_registry
from streamdoc.merge import get_path


def find_progress(document: Any) -> list:
    """Return the first ``progress`` array found under the known roots."""
    for root in PROGRESS_ROOTS:
        progress = get_path(document, root)
        if isinstance(progress, list):
            return progress
    return []


def blocks_from_progress(
    progress: list,
    extractors: ExtractorRegistry | None = None,
) -> list[RenderBlock]:
    if extractors is None:
        extractors = default_registry()
    blocks = []
    for index, item in enumerate(progress):
        if not isinstance(item, dict):
            continue
        stage = item.get("stage")
        if stage == "llm":
            answer = item.get("answer")
            if isinstance(answer, str) and answer:
                blocks.append(RenderBlock(type=BlockType.MARKDOWN, content=answer))
        elif stage == "skill":
            skill_info = item.get("skill_info")
            if is_silent_skill(skill_info):
                continue
            block = extractors.extract(skill_info, item.get("answer"))
            if block is not None:
                blocks.append(block.model_copy(update={
                    "consume_time": consume_time(item),
                    "tool_name": skill_info["name"],
                    "slot": index,
                }))
    return blocks


def blocks_from_document(
    document: Any,
    extractors: ExtractorRegistry | None = None,
) -> list[RenderBlock]:
    return blocks_from_progress(find_progress(document), extractors)
