"""Unit tests for tool result extractors and their registry."""

import copy

import pytest

from streamdoc.blocks import BlockType, RenderBlock
from streamdoc.extractors import (
    BUILTIN_EXTRACTORS,
    ExtractorRegistry,
    build_default_tool_result,
    default_registry,
    extract_af_sailor,
    extract_chart,
    extract_datasource_filter,
    extract_datasource_rerank,
    extract_default_tool,
    extract_execute_code,
    extract_text2metric,
    extract_text2sql,
    extract_web_search,
    infer_data_type,
)

from tests.conftest import web_search_answer


def info(name, *args):
    return {"name": name, "args": list(args)}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestExtractorRegistry:
    def test_default_registry_has_builtins(self):
        registry = default_registry()
        assert sorted(registry.names()) == sorted(BUILTIN_EXTRACTORS)
        assert registry.default is extract_default_tool

    def test_duplicate_registration_rejected(self):
        registry = ExtractorRegistry()
        registry.register("a", extract_default_tool)
        with pytest.raises(ValueError, match="already registered"):
            registry.register("a", extract_default_tool)

    def test_unregister_falls_back_to_default(self):
        registry = default_registry()
        registry.unregister("zhipu_search_tool")
        assert registry.get("zhipu_search_tool") is extract_default_tool

    def test_custom_extractor(self):
        registry = ExtractorRegistry()
        registry.register("echo", lambda skill_info, answer: RenderBlock(
            type=BlockType.TOOL, content=answer,
        ))
        block = registry.extract(info("echo"), "hi")
        assert block.content == "hi"

    def test_missing_name_returns_none(self):
        registry = default_registry()
        assert registry.extract({"args": []}, {}) is None
        assert registry.extract(None, {}) is None

    def test_exception_is_logged_not_raised(self, caplog):
        registry = ExtractorRegistry()

        def broken(skill_info, answer):
            raise TypeError("bad shape")

        registry.register("broken", broken)
        assert registry.extract(info("broken"), {}) is None
        assert any("bad shape" in r.message for r in caplog.records)


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------

class TestWebSearch:
    def test_extracts_query_and_results(self):
        block = extract_web_search(info("zhipu_search_tool"), web_search_answer("rain", ("A", "B")))

        assert block.type == BlockType.WEB_SEARCH
        assert block.content.input == "rain"
        assert [r.title for r in block.content.results] == ["A", "B"]
        assert block.content.results[0].link == "https://example.com/0"
        assert block.content.results[0].icon == ""

    def test_requires_two_tool_calls(self):
        answer = {"choices": [{"message": {"tool_calls": [{"search_intent": []}]}}]}
        assert extract_web_search(info("zhipu_search_tool"), answer) is None

    @pytest.mark.parametrize("answer", [None, "text", {}, {"choices": []}])
    def test_unrecognised_shapes(self, answer):
        assert extract_web_search(info("zhipu_search_tool"), answer) is None

    def test_does_not_mutate_answer(self):
        answer = web_search_answer()
        snapshot = copy.deepcopy(answer)
        extract_web_search(info("zhipu_search_tool"), answer)
        assert answer == snapshot


# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------

class TestChart:
    def test_configured_fields(self):
        answer = {"result": {
            "title": "Sales",
            "chart_config": {"chart_type": "Column", "xField": "month", "yField": "total"},
            "data": [{"month": "2024-01-01", "total": 3}, {"month": "2024-02-01", "total": 5}],
        }}

        block = extract_chart(info("json2plot"), answer)

        assert block.type == BlockType.JSON2PLOT
        assert block.content.chart_type == "Column"
        assert block.content.title == "Sales"
        assert [(d.name, d.data_type) for d in block.content.dimensions] == [("month", "date")]
        assert [m.name for m in block.content.measures] == ["total"]
        assert len(block.content.rows) == 2

    def test_full_result_preferred(self):
        answer = {
            "full_result": {"chart_config": {"chart_type": "Pie"}, "data": [{"k": "a", "v": 1}]},
            "result": {"chart_config": {"chart_type": "Bar"}},
        }
        block = extract_chart(info("json2plot"), answer)
        assert block.content.chart_type == "Pie"

    def test_falls_back_to_sample_columns(self):
        answer = {"result": {
            "chart_config": {"chart_type": "Line"},
            "data_sample": [{"region": "north", "count": 7}],
        }}
        block = extract_chart(info("json2plot"), answer)

        assert [d.name for d in block.content.dimensions] == ["region"]
        assert [m.name for m in block.content.measures] == ["count"]

    @pytest.mark.parametrize("answer", [
        None,
        {"result": {"chart_config": {"chart_type": "Radar"}, "data": [{"a": 1}]}},
        {"result": {"chart_config": {"chart_type": "Line"}, "data": []}},
        {"result": {"chart_config": {"chart_type": "Line"}, "data": [{"a": 1}]}},
    ])
    def test_rejected(self, answer):
        assert extract_chart(info("json2plot"), answer) is None


class TestInferDataType:
    @pytest.mark.parametrize("value,expected", [
        (True, "boolean"),
        (3, "number"),
        (2.5, "number"),
        ("2024-05-01", "date"),
        ("north", "string"),
        (None, "string"),
    ])
    def test_types(self, value, expected):
        assert infer_data_type(value) == expected


# ---------------------------------------------------------------------------
# Other built-ins
# ---------------------------------------------------------------------------

class TestExecuteCode:
    def test_code_and_stdout(self):
        skill = info("execute_code", {"name": "code", "value": "print(1)"})
        answer = {"result": {"result": {"stdout": "1\n"}}}

        block = extract_execute_code(skill, answer)

        assert block.content.input == "print(1)"
        assert block.content.output == "1\n"
        assert block.content.title == "Code execution"

    def test_default_output(self):
        block = extract_execute_code(info("execute_code", {"name": "script", "value": "x"}), None)
        assert block.content.output == "Execution finished"

    def test_no_code(self):
        assert extract_execute_code(info("execute_code"), {}) is None


class TestText2Sql:
    def test_extracts_sql_and_rows(self):
        skill = info("text2sql", {"name": "input", "value": "top customers"})
        answer = {"result": {"title": "Top customers", "sql": "SELECT 1", "data": [{"a": 1}]}}

        block = extract_text2sql(skill, answer)

        assert block.content.name == "text2sql"
        assert block.content.title == "Top customers"
        assert block.content.input == "SELECT 1"
        assert block.content.output == {"data": [{"a": 1}]}

    def test_requires_input_arg(self):
        assert extract_text2sql(info("text2sql"), {"result": {"sql": "x"}}) is None


class TestText2Metric:
    def test_requires_title(self):
        assert extract_text2metric(info("text2metric"), {"result": {"data": []}}) is None

    def test_extracts(self):
        block = extract_text2metric(info("text2metric"), {"result": {"title": "GMV", "data": "bad"}})
        assert block.content.title == "GMV"
        assert block.content.output == {"data": []}


class TestAfSailor:
    def test_counts_cites(self):
        answer = {"result": {"text": ["x"], "cites": [{"id": 1}, {"id": 2}]}}
        block = extract_af_sailor(info("af_sailor"), answer)
        assert block.content.title == "Found 2 records"

    def test_requires_text(self):
        assert extract_af_sailor(info("af_sailor"), {"result": {"text": []}}) is None


class TestDatasource:
    def test_filter_and_rerank_titles(self):
        answer = {"result": {"result": [{"id": "a"}, {"id": "b"}]}}
        assert extract_datasource_filter(info("datasource_filter"), answer).content.title == \
            "Matched 2 data sources"
        assert extract_datasource_rerank(info("datasource_rerank"), answer).content.title == \
            "Reranked 2 data sources"

    def test_empty_matches(self):
        assert extract_datasource_filter(info("datasource_filter"), {"result": {"result": []}}) is None


# ---------------------------------------------------------------------------
# Default tool rendering
# ---------------------------------------------------------------------------

class TestDefaultTool:
    def test_title_from_query_arg(self):
        skill = info("lookup", {"name": "query", "value": "population"}, {"name": "limit", "value": 3})
        result = build_default_tool_result(skill, {"result": {"rows": 1}})

        assert result.title == "population"
        assert result.input == {"query": "population", "limit": 3}
        assert result.output == {"rows": 1}

    def test_title_from_output_then_name(self):
        assert build_default_tool_result(info("x"), {"result": {"title": "From output"}}).title == \
            "From output"
        assert build_default_tool_result(info("x"), "plain").title == "x"

    def test_missing_answer_renders_empty_output(self):
        assert build_default_tool_result(info("x"), None).output == {}

    def test_block(self):
        block = extract_default_tool(info("lookup"), {"full_result": [1, 2]})
        assert block.type == BlockType.TOOL
        assert block.content.name == "lookup"
        assert block.content.output == [1, 2]
