"""The incremental event-stream assembler.

The :class:`Assembler` owns one turn's document.  For every frame it
asks the backend strategy for a patch event, merges it, reconciles the
display id and dispatches render side effects.  ``consume()`` drains
``iter_turn()``; ``iter_turn()`` is the streaming entry point.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import streamdoc.instrumentation as inst
from streamdoc.dispatcher import WhitelistDispatcher
from streamdoc.events import PatchEvent
from streamdoc.frames import Frame, FrameDecoder
from streamdoc.identity import reconcile
from streamdoc.merge import merge, normalize_path
from streamdoc.strategies import BackendStrategy

logger = logging.getLogger(__name__)


@dataclass
class TurnUpdate:
    """Snapshot emitted after each applied patch event."""

    event: PatchEvent
    document: Any
    display_id: str


@dataclass
class TurnResult:
    """The outcome of one streamed turn.

    ``completed`` is true when the backend signalled the end of the turn
    (an ``end`` action or the ``[DONE]`` sentinel) rather than the
    stream simply closing.
    """

    document: Any = field(default_factory=dict)
    display_id: str = ""
    completed: bool = False
    frames: int = 0


@asynccontextmanager
async def _released(chunks: AsyncIterable[bytes]):
    iterator = aiter(chunks)
    try:
        yield iterator
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


class Assembler:
    """Rebuilds an assistant answer from a stream of patch events.

    Args:
        strategy: Backend adapter turning frames into patch events.
        dispatcher: Whitelist dispatcher holding the host's render sink.
    """

    def __init__(self, strategy: BackendStrategy, dispatcher: WhitelistDispatcher):
        self.strategy = strategy
        self.dispatcher = dispatcher

    def reduce(self, frame: Frame, prev: Any, display_id: str) -> tuple[Any, str]:
        """Apply one frame and return ``(document, display_id)``.

        Frames that do not parse leave *prev* untouched.
        """
        event = self.strategy.to_patch_event(frame, prev)
        if event is None:
            return prev, display_id
        return self.apply(event, prev, display_id)

    def apply(self, event: PatchEvent, prev: Any, display_id: str) -> tuple[Any, str]:
        """Merge *event*, reconcile the display id, then dispatch."""
        if event.is_end:
            return prev, display_id
        document = merge(prev, event.path, event.action, event.content)

        # The id sync runs for every event, whitelisted or not.
        current_id = reconcile(document, display_id)
        try:
            if current_id != display_id:
                logger.info(f"Renaming message {display_id} -> {current_id}")
                self.dispatcher.sink.on_identity_renamed(display_id, current_id)

            self.dispatcher.dispatch(
                event.action, event.path, document, event.content, current_id,
            )
        except Exception as e:
            logger.warning(
                f"Render sink failed on {event.action} "
                f"{normalize_path(event.path)}: {e}"
            )
            raise
        return document, current_id

    async def iter_turn(
        self,
        chunks: AsyncIterable[bytes],
        display_id: str,
        document: Any = None,
    ) -> AsyncIterator[TurnUpdate | TurnResult]:
        """Consume *chunks*, yielding a :class:`TurnUpdate` per applied event.

        The final item is always a :class:`TurnResult`.  The chunk
        iterator is closed on every exit path.
        """
        result = TurnResult(
            document=document if document is not None else {},
            display_id=display_id,
        )
        decoder = FrameDecoder()

        async with inst.turn_span(self.strategy.name, display_id) as span:
            try:
                async with _released(chunks) as iterator:
                    async for chunk in iterator:
                        for frame in decoder.feed(chunk):
                            update = self._step(frame, result, span)
                            if update is not None:
                                yield update
                            if result.completed:
                                break
                        if result.completed or decoder.done:
                            break
                    else:
                        for frame in decoder.flush():
                            update = self._step(frame, result, span)
                            if update is not None:
                                yield update
                            if result.completed:
                                break
            except Exception as e:
                inst.record_error(span, e)
                raise
            if decoder.done:
                result.completed = True
            inst.record_frames(span, result.frames, result.completed)

        logger.info(
            f"Turn {result.display_id} finished after {result.frames} frames "
            f"(completed={result.completed})"
        )
        yield result

    async def consume(
        self,
        chunks: AsyncIterable[bytes],
        display_id: str,
        document: Any = None,
    ) -> TurnResult:
        """Run a whole turn and return its :class:`TurnResult`."""
        result: TurnResult | None = None
        async with aclosing(self.iter_turn(chunks, display_id, document)) as updates:
            async for item in updates:
                if isinstance(item, TurnResult):
                    result = item
        if result is None:
            raise RuntimeError("iter_turn() ended without emitting a TurnResult")
        return result

    def _step(self, frame: Frame, result: TurnResult, span) -> TurnUpdate | None:
        result.frames += 1
        event = self.strategy.to_patch_event(frame, result.document)
        if event is None:
            return None
        if event.is_end:
            result.completed = True
            return None
        previous_id = result.display_id
        result.document, result.display_id = self.apply(
            event, result.document, result.display_id,
        )
        if result.display_id != previous_id:
            inst.record_rename(span, previous_id, result.display_id)
        return TurnUpdate(
            event=event, document=result.document, display_id=result.display_id,
        )
