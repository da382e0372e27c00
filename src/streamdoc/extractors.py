"""Tool result extractors.

An extractor turns the raw ``answer`` of a finished (or still
streaming) skill invocation into a :class:`RenderBlock`.  Extractors are
pure: they never mutate their input and return ``None`` for any shape
they do not recognise.

Extractors are held by an explicit :class:`ExtractorRegistry` that the
host builds once and hands to the dispatcher.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from streamdoc.blocks import (
    BlockType,
    ChartDataSchema,
    ChartField,
    DefaultToolResult,
    RenderBlock,
    ToolCallData,
    WebSearchQuery,
    WebSearchResult,
)
from streamdoc.merge import get_path

logger = logging.getLogger(__name__)

Extractor = Callable[[dict, Any], "RenderBlock | None"]

CHART_TYPES = ("Line", "Column", "Pie", "Circle")


class ExtractorRegistry:
    """Maps skill names to extractors.

    Skills without a dedicated extractor go through ``default``.

    Args:
        default: Fallback extractor, or ``None`` to render nothing for
            unknown skills.
    """

    def __init__(self, default: Extractor | None = None):
        self._extractors: dict[str, Extractor] = {}
        self.default = default

    def register(self, name: str, extractor: Extractor) -> None:
        if name in self._extractors:
            raise ValueError(f"Extractor for '{name}' is already registered")
        self._extractors[name] = extractor

    def unregister(self, name: str) -> None:
        self._extractors.pop(name, None)

    def get(self, name: str) -> Extractor | None:
        return self._extractors.get(name, self.default)

    def names(self) -> list[str]:
        return list(self._extractors)

    def extract(self, skill_info: dict | None, answer: Any) -> RenderBlock | None:
        """Run the extractor registered for ``skill_info["name"]``.

        A failing extractor is logged and treated as producing no block,
        so one bad tool result never aborts the rest of the turn.
        """
        if not isinstance(skill_info, dict) or not skill_info.get("name"):
            return None
        name = skill_info["name"]
        extractor = self.get(name)
        if extractor is None:
            return None
        try:
            return extractor(skill_info, answer)
        except Exception as e:
            logger.warning(f"Extractor for {name} raised: {e}")
            return None


def _args(skill_info: dict) -> list[dict]:
    args = skill_info.get("args")
    if not isinstance(args, list):
        return []
    return [arg for arg in args if isinstance(arg, dict)]


def _arg_value(args: list[dict], *names: str) -> Any:
    for arg in args:
        if arg.get("name") in names:
            return arg.get("value")
    return None


def _full_or_partial(answer: Any) -> Any:
    if not isinstance(answer, dict):
        return None
    return answer.get("full_result") or answer.get("result")


def infer_data_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value)
        except ValueError:
            return "string"
        return "date"
    return "string"


# ---------------------------------------------------------------------------
# Built-in extractors
# ---------------------------------------------------------------------------


def extract_web_search(skill_info: dict, answer: Any) -> RenderBlock | None:
    tool_calls = get_path(answer, ("choices", 0, "message", "tool_calls"))
    if not isinstance(tool_calls, list) or len(tool_calls) < 2:
        return None

    intent = get_path(tool_calls, (0, "search_intent"))
    if isinstance(intent, list):
        intent = intent[0] if intent else None
    query = ""
    if isinstance(intent, dict):
        query = intent.get("query") or intent.get("keywords") or ""

    results = get_path(tool_calls, (1, "search_result"))
    if not isinstance(results, list):
        return None

    return RenderBlock(
        type=BlockType.WEB_SEARCH,
        content=WebSearchQuery(
            input=query,
            results=[
                WebSearchResult(**{
                    field: item.get(field) or ""
                    for field in ("content", "icon", "link", "media", "title")
                })
                for item in results
                if isinstance(item, dict)
            ],
        ),
    )


def extract_chart(skill_info: dict, answer: Any) -> RenderBlock | None:
    plot = _full_or_partial(answer)
    if not isinstance(plot, dict):
        return None
    config = plot.get("chart_config")
    if not isinstance(config, dict) or config.get("chart_type") not in CHART_TYPES:
        return None

    rows = plot.get("data") or plot.get("data_sample") or []
    if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
        return None
    first = rows[0]

    dimensions: list[ChartField] = []
    measures: list[ChartField] = []
    seen: list[str] = []
    for key in ("xField", "groupField", "seriesField"):
        field = config.get(key)
        if field and field not in seen and field in first:
            seen.append(field)
            dimensions.append(ChartField(
                name=field, display_name=field,
                data_type=infer_data_type(first[field]),
            ))
    y_field = config.get("yField")
    if y_field and y_field in first:
        measures.append(ChartField(
            name=y_field, display_name=y_field, data_type="number",
        ))

    # Fall back to the first non-numeric / numeric columns of the sample row.
    if not dimensions or not measures:
        field_types = {
            key: infer_data_type(value)
            for key, value in first.items()
            if value is not None
        }
        if not dimensions:
            for key, data_type in field_types.items():
                if data_type != "number" and all(m.name != key for m in measures):
                    dimensions.append(ChartField(
                        name=key, display_name=key, data_type=data_type,
                    ))
                    break
        if not measures:
            for key, data_type in field_types.items():
                if data_type == "number" and all(d.name != key for d in dimensions):
                    measures.append(ChartField(
                        name=key, display_name=key, data_type="number",
                    ))
                    break

    if not dimensions or not measures:
        return None

    return RenderBlock(
        type=BlockType.JSON2PLOT,
        content=ChartDataSchema(
            chart_type=config["chart_type"],
            title=plot.get("title"),
            dimensions=dimensions,
            measures=measures,
            rows=rows,
        ),
    )


def extract_execute_code(skill_info: dict, answer: Any) -> RenderBlock | None:
    code = ""
    for arg in _args(skill_info):
        if arg.get("name") in ("code", "script") or arg.get("type") == "str":
            code = arg.get("value") or ""
            break
    if not code:
        return None
    output = get_path(answer, ("result", "result", "stdout")) or "Execution finished"
    return RenderBlock(
        type=BlockType.TOOL,
        content=ToolCallData(
            name="execute_code", title="Code execution",
            input=code, output=output,
        ),
    )


def extract_text2sql(skill_info: dict, answer: Any) -> RenderBlock | None:
    query = _arg_value(_args(skill_info), "input")
    data = _full_or_partial(answer)
    if not query or not isinstance(data, dict):
        return None
    rows = data.get("data")
    return RenderBlock(
        type=BlockType.TOOL,
        content=ToolCallData(
            name="text2sql",
            title=data.get("title") or "Text2SQL",
            input=data.get("sql") or "",
            output={"data": rows if isinstance(rows, list) else []},
        ),
    )


def extract_text2metric(skill_info: dict, answer: Any) -> RenderBlock | None:
    data = _full_or_partial(answer)
    if not isinstance(data, dict) or not data.get("title"):
        return None
    rows = data.get("data")
    return RenderBlock(
        type=BlockType.TOOL,
        content=ToolCallData(
            name="text2metric",
            title=data["title"],
            input=_args(skill_info),
            output={"data": rows if isinstance(rows, list) else []},
        ),
    )


def extract_af_sailor(skill_info: dict, answer: Any) -> RenderBlock | None:
    result = get_path(answer, ("result",))
    if not isinstance(result, dict):
        return None
    text = result.get("text")
    if not isinstance(text, list) or not text:
        return None
    cites = result.get("cites")
    cites = cites if isinstance(cites, list) else []
    return RenderBlock(
        type=BlockType.TOOL,
        content=ToolCallData(
            name="af_sailor",
            title=f"Found {len(cites)} records",
            input=text,
            output={"data": cites},
        ),
    )


def _datasource_extractor(name: str, title: str) -> Extractor:
    def extract(skill_info: dict, answer: Any) -> RenderBlock | None:
        matches = get_path(answer, ("result", "result"))
        if not isinstance(matches, list) or not matches:
            return None
        return RenderBlock(
            type=BlockType.TOOL,
            content=ToolCallData(
                name=name,
                title=title.format(count=len(matches)),
                input=[],
                output={"data": matches},
            ),
        )
    return extract


extract_datasource_filter = _datasource_extractor(
    "datasource_filter", "Matched {count} data sources",
)
extract_datasource_rerank = _datasource_extractor(
    "datasource_rerank", "Reranked {count} data sources",
)


def build_default_tool_result(skill_info: dict, answer: Any) -> DefaultToolResult | None:
    """Render any tool as ``title`` / ``input`` / ``output``.

    The title is taken from the ``input`` or ``query`` argument, then
    from a ``title`` on the output or the answer, then the tool name.
    """
    name = skill_info.get("name") if isinstance(skill_info, dict) else None
    if not name:
        return None
    args = _args(skill_info)
    tool_input = {arg["name"]: arg.get("value") for arg in args if arg.get("name")}

    output = answer
    if isinstance(answer, dict):
        if answer.get("result") is not None:
            output = answer["result"]
        elif answer.get("full_result") is not None:
            output = answer["full_result"]
    elif answer is None:
        output = {}

    title = (
        _arg_value(args, "input", "query")
        or (output.get("title") if isinstance(output, dict) else None)
        or (answer.get("title") if isinstance(answer, dict) else None)
    )
    if not isinstance(title, str) or not title:
        title = name
    return DefaultToolResult(title=title, input=tool_input, output=output)


def extract_default_tool(skill_info: dict, answer: Any) -> RenderBlock | None:
    result = build_default_tool_result(skill_info, answer)
    if result is None:
        return None
    return RenderBlock(
        type=BlockType.TOOL,
        content=ToolCallData(
            name=skill_info["name"],
            title=result.title,
            input=result.input,
            output=result.output,
        ),
    )


BUILTIN_EXTRACTORS: dict[str, Extractor] = {
    "zhipu_search_tool": extract_web_search,
    "json2plot": extract_chart,
    "execute_code": extract_execute_code,
    "text2sql": extract_text2sql,
    "text2metric": extract_text2metric,
    "af_sailor": extract_af_sailor,
    "datasource_filter": extract_datasource_filter,
    "datasource_rerank": extract_datasource_rerank,
}


def default_registry() -> ExtractorRegistry:
    """Build a registry with every built-in extractor."""
    registry = ExtractorRegistry(default=extract_default_tool)
    for name, extractor in BUILTIN_EXTRACTORS.items():
        registry.register(name, extractor)
    return registry
