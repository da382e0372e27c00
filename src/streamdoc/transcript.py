from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field, field_serializer

from streamdoc.blocks import BlockType, RenderBlock

logger = logging.getLogger(__name__)


class MessageRole(Enum):
    ASSISTANT = "assistant"
    USER = "user"


class ChatMessage(BaseModel):
    message_id: str
    role: MessageRole
    blocks: list[RenderBlock] = Field(default_factory=list)

    @field_serializer("role")
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @property
    def text(self) -> str:
        """Concatenated markdown of the message."""
        return "".join(
            block.content for block in self.blocks
            if block.type == BlockType.MARKDOWN and isinstance(block.content, str)
        )


class Transcript(BaseModel):
    """Reference host: the message list a chat UI renders.

    Implements the render sink callbacks.  Text deltas replace the
    trailing markdown block, tool blocks replace the earlier block for
    the same tool, and identity renames move the entry to its new id.

    Text deltas carry no slot index, so two LLM slots with no tool block
    between them share one markdown block: the later slot's text replaces
    the earlier one's.  ``history.blocks_from_document`` keeps them apart
    once the turn has finished.
    """

    messages: list[ChatMessage] = Field(default_factory=list)
    streaming_message_id: str | None = None

    def get(self, message_id: str) -> ChatMessage | None:
        for message in self.messages:
            if message.message_id == message_id:
                return message
        return None

    def add_user_message(self, message_id: str, text: str) -> ChatMessage:
        message = ChatMessage(
            message_id=message_id,
            role=MessageRole.USER,
            blocks=[RenderBlock(type=BlockType.MARKDOWN, content=text)],
        )
        self.messages.append(message)
        return message

    def start_turn(self, display_id: str) -> ChatMessage:
        """Add an empty assistant entry, or reset it when regenerating."""
        message = ChatMessage(message_id=display_id, role=MessageRole.ASSISTANT)
        for i, existing in enumerate(self.messages):
            if existing.message_id == display_id:
                self.messages[i] = message
                break
        else:
            self.messages.append(message)
        self.streaming_message_id = display_id
        return message

    def finish_turn(self) -> None:
        self.streaming_message_id = None

    # ------------------------------------------------------------------
    # Render sink
    # ------------------------------------------------------------------

    def on_text_delta(self, display_id: str, full_text: str) -> None:
        message = self._require(display_id)
        if message.blocks and message.blocks[-1].type == BlockType.MARKDOWN:
            message.blocks[-1] = RenderBlock(type=BlockType.MARKDOWN, content=full_text)
        else:
            message.blocks.append(RenderBlock(type=BlockType.MARKDOWN, content=full_text))

    def on_tool_block(self, display_id: str, tool_name: str, block: RenderBlock) -> None:
        message = self._require(display_id)
        for i, existing in enumerate(message.blocks):
            if existing.tool_name == tool_name and existing.slot == block.slot:
                message.blocks[i] = block
                return
        message.blocks.append(block)

    def on_identity_renamed(self, old_id: str, new_id: str) -> None:
        message = self.get(old_id)
        if message is None:
            logger.warning(f"Cannot rename unknown message {old_id}")
            return
        message.message_id = new_id
        if self.streaming_message_id == old_id:
            self.streaming_message_id = new_id

    def _require(self, display_id: str) -> ChatMessage:
        message = self.get(display_id)
        if message is None:
            message = self.start_turn(display_id)
        return message
