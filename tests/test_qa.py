"""
Tests for the QA gates.

Validates schema checking of declarative documents and reference checking
of compiled specs.
"""

from chartpipe.compiler import compile_document
from chartpipe.qa import qa_chart_document, qa_compiled_spec
from chartpipe.spec.builder import ChartBuilder, nominal, quantitative
from chartpipe.spec.models import VEGA_LITE_SCHEMA


def minimal_document(**overrides):
    doc = {
        "$schema": VEGA_LITE_SCHEMA,
        "data": {"values": [{"a": 1, "b": "x"}]},
        "mark": "point",
        "encoding": {"x": {"field": "a", "type": "quantitative"}},
        "width": 100,
        "height": 100,
    }
    doc.update(overrides)
    return doc


def compiled_spec():
    doc = (
        ChartBuilder(data=[{"a": 1, "b": "x"}], width=100, height=100)
        .mark("point")
        .encode(x=quantitative("a"), y=quantitative("a"), color=nominal("b"))
        .build()
    )
    return compile_document(doc)


class TestQAChartDocument:
    """Tests for qa_chart_document."""

    def test_valid_document_passes(self):
        result = qa_chart_document(minimal_document())

        assert result["status"] == "OK"
        assert result["errors"] == []
        assert result["warnings"] == []

    def test_mark_and_layer_together_fail(self):
        result = qa_chart_document(minimal_document(layer=[{"mark": "text"}]))

        assert result["status"] == "FAIL"

    def test_unknown_mark_fails(self):
        result = qa_chart_document(minimal_document(mark="arc"))

        assert result["status"] == "FAIL"
        assert any(e.startswith("mark") for e in result["errors"])

    def test_unknown_top_level_key_fails(self):
        result = qa_chart_document(minimal_document(selection={}))

        assert result["status"] == "FAIL"

    def test_bad_field_type_fails(self):
        encoding = {"x": {"field": "a", "type": "number"}}

        result = qa_chart_document(minimal_document(encoding=encoding))

        assert result["status"] == "FAIL"

    def test_param_must_be_point_selection(self):
        params = [{"name": "sel", "select": {"type": "interval"}}]

        result = qa_chart_document(minimal_document(params=params))

        assert result["status"] == "FAIL"

    def test_empty_values_warns(self):
        result = qa_chart_document(minimal_document(data={"values": []}))

        assert result["status"] == "OK"
        assert "data.values is empty" in result["warnings"]

    def test_missing_size_warns(self):
        doc = minimal_document()
        del doc["width"]

        result = qa_chart_document(doc)

        assert result["status"] == "OK"
        assert any("width/height" in w for w in result["warnings"])


class TestQACompiledSpec:
    """Tests for qa_compiled_spec."""

    def test_compiled_spec_passes(self):
        result = qa_compiled_spec(compiled_spec())

        assert result["status"] == "OK"

    def test_unknown_data_source_fails(self):
        spec = compiled_spec()
        spec["marks"][0]["from"]["data"] = "nowhere"

        result = qa_compiled_spec(spec)

        assert result["status"] == "FAIL"
        assert any("unknown data: nowhere" in e for e in result["errors"])

    def test_unknown_scale_fails(self):
        spec = compiled_spec()
        spec["scales"] = [s for s in spec["scales"] if s["name"] != "color"]

        result = qa_compiled_spec(spec)

        assert result["status"] == "FAIL"
        assert any("unknown scale: color" in e for e in result["errors"])

    def test_duplicate_data_name_fails(self):
        spec = compiled_spec()
        spec["data"].append(dict(spec["data"][0]))

        assert qa_compiled_spec(spec)["status"] == "FAIL"

    def test_modify_signal_needs_store(self):
        spec = compiled_spec()
        spec["signals"].append({"name": "sel_modify"})

        result = qa_compiled_spec(spec)

        assert any("sel_store" in e for e in result["errors"])

    def test_missing_schema_and_marks_fail(self):
        result = qa_compiled_spec({"data": []})

        assert "Missing $schema" in result["errors"]
        assert "No marks" in result["errors"]
        assert "No axes" in result["warnings"]
