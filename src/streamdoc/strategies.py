"""Backend strategies.

A strategy knows how one agent backend frames its stream and how to
phrase a request to it.  The assembler only ever sees
:class:`PatchEvent` objects, so backends that do not speak the
incremental patch protocol natively translate their own events here.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from streamdoc.events import Action, PatchEvent, parse_event
from streamdoc.frames import Frame
from streamdoc.merge import get_path

logger = logging.getLogger(__name__)


def with_context(text: str, context: dict | None) -> str:
    """Prefix the user's *text* with an application context block.

    ``context`` carries a ``title`` and arbitrary ``data``; it is only
    included when a title is present.
    """
    if not context or not context.get("title"):
        return text
    data = json.dumps(context.get("data"), indent=2, ensure_ascii=False)
    return f"[Context: {context['title']}]\n{data}\n\n{text}"


class BackendStrategy(Protocol):
    """Interface every backend adapter implements."""

    name: str

    def to_patch_event(self, frame: Frame, document: Any) -> PatchEvent | None:
        """Translate *frame* into a patch instruction, or ``None`` to skip it."""
        ...

    def request_path(self) -> str:
        """Path, relative to the client base URL, of the streaming endpoint."""
        ...

    def build_body(
        self,
        query: str,
        conversation_id: str | None = None,
        regenerate_message_id: str | None = None,
        custom_data: dict | None = None,
    ) -> dict:
        """Return the JSON body that starts a streaming turn."""
        ...


class DIPStrategy:
    """The incremental patch protocol spoken natively by DIP agents.

    Args:
        agent_key: Agent key used in the request path.
        agent_id: Agent id sent in the request body.
        agent_version: Agent version, ``"latest"`` by default.
        executor_version: Executor engine version, ``"v2"`` by default.
    """

    name = "dip"

    def __init__(
        self,
        agent_key: str,
        agent_id: str = "",
        agent_version: str = "latest",
        executor_version: str = "v2",
    ):
        self.agent_key = agent_key
        self.agent_id = agent_id
        self.agent_version = agent_version
        self.executor_version = executor_version

    def to_patch_event(self, frame: Frame, document: Any) -> PatchEvent | None:
        return parse_event(frame)

    def request_path(self) -> str:
        return f"/app/{self.agent_key}/chat/completion"

    def build_body(
        self,
        query: str,
        conversation_id: str | None = None,
        regenerate_message_id: str | None = None,
        custom_data: dict | None = None,
    ) -> dict:
        body = {
            "agent_id": self.agent_id,
            "agent_version": self.agent_version,
            "executor_version": self.executor_version,
            "query": query,
            "stream": True,
            "custom_querys": custom_data,
            "chat_option": {
                "is_need_history": True,
                "is_need_doc_retrival_post_process": True,
                "is_need_progress": True,
                "enable_dependency_cache": True,
            },
            "inc_stream": True,
        }
        if conversation_id:
            body["conversation_id"] = conversation_id
        if regenerate_message_id:
            body["regenerate_assistant_message_id"] = regenerate_message_id
        return body


class CozeStrategy:
    """Coze v3 chat events mapped onto the patch protocol.

    Answer text is kept in a single LLM slot at ``progress[0]`` so the
    whitelist dispatcher renders it exactly like a DIP answer.

    Args:
        bot_id: Coze bot id.
        user_id: User id sent with each request.
    """

    name = "coze"

    PROGRESS = ("message", "content", "progress")
    END_EVENTS = frozenset({"conversation.chat.completed", "done"})

    def __init__(self, bot_id: str, user_id: str = "chatkit-user"):
        self.bot_id = bot_id
        self.user_id = user_id

    def to_patch_event(self, frame: Frame, document: Any) -> PatchEvent | None:
        if frame.event_type in self.END_EVENTS:
            return PatchEvent(action=Action.END)
        try:
            data = json.loads(frame.data)
        except ValueError as e:
            logger.debug(f"Skipping malformed Coze frame: {e}")
            return None
        if not isinstance(data, dict):
            return None

        slot = self.PROGRESS + (0,)
        if data.get("type") == "answer" and isinstance(data.get("content"), str):
            if frame.event_type == "conversation.message.delta":
                if get_path(document, slot) is None:
                    return PatchEvent(
                        path=slot, action=Action.APPEND,
                        content={"stage": "llm", "answer": data["content"]},
                    )
                return PatchEvent(
                    path=slot + ("answer",), action=Action.APPEND,
                    content=data["content"],
                )
            if frame.event_type == "conversation.message.completed":
                if get_path(document, slot) is None:
                    return PatchEvent(
                        path=slot, action=Action.APPEND,
                        content={"stage": "llm", "answer": data["content"]},
                    )
                return PatchEvent(
                    path=slot + ("answer",), action=Action.UPSERT,
                    content=data["content"],
                )

        conversation_id = data.get("conversation_id")
        if conversation_id and conversation_id != get_path(document, ("message", "conversation_id")):
            return PatchEvent(
                path=("message", "conversation_id"), action=Action.UPSERT,
                content=conversation_id,
            )
        return None

    def request_path(self) -> str:
        return "/v3/chat"

    def build_body(
        self,
        query: str,
        conversation_id: str | None = None,
        regenerate_message_id: str | None = None,
        custom_data: dict | None = None,
    ) -> dict:
        body = {
            "bot_id": self.bot_id,
            "user_id": self.user_id,
            "stream": True,
            "additional_messages": [
                {"role": "user", "content": query, "content_type": "text"},
            ],
        }
        if conversation_id:
            body["conversation_id"] = conversation_id
        return body
