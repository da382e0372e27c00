from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_serializer


class BlockType(Enum):
    MARKDOWN = "markdown"
    WEB_SEARCH = "web_search"
    JSON2PLOT = "json2plot"
    TOOL = "tool"


class WebSearchResult(BaseModel):
    content: str = ""
    icon: str = ""
    link: str = ""
    media: str = ""
    title: str = ""


class WebSearchQuery(BaseModel):
    input: str = ""
    results: list[WebSearchResult] = Field(default_factory=list)


class ChartField(BaseModel):
    name: str
    display_name: str
    data_type: str


class ChartDataSchema(BaseModel):
    chart_type: str
    title: str | None = None
    dimensions: list[ChartField]
    measures: list[ChartField]
    rows: list[dict]


class DefaultToolResult(BaseModel):
    """Generic key/value rendering of a tool without a dedicated block."""

    title: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None


class ToolCallData(BaseModel):
    name: str
    title: str = ""
    input: Any = None
    output: Any = None


class RenderBlock(BaseModel):
    """A renderable piece of an assistant message.

    ``content`` is a string for markdown blocks and one of the typed
    payloads above for everything else.  ``tool_name`` and ``slot``
    identify the progress step a tool block was extracted from, so a
    later update of the same step replaces it instead of adding a block.
    """

    type: BlockType
    content: Any = None
    consume_time: int | None = None
    tool_name: str | None = None
    slot: int | None = None

    @field_serializer("type")
    def serialize_type(self, block_type: BlockType, _info) -> str:
        return block_type.value

    @field_serializer("content")
    def serialize_content(self, content: Any, _info) -> Any:
        if isinstance(content, BaseModel):
            return content.model_dump()
        return content
