"""Unit tests for JSON recovery and export cleaning."""

import pytest

from src.exceptions import ParseError
from src.workflow import clean_for_export, extract_json, import_instructions
from src.workflow.export import DEFAULT_INSTANCE_ID
from src.workflow.extractor import strip_wrappers


class TestExtractJson:
    """Tests for extract_json recovery steps."""

    def test_plain_object(self):
        """Test that clean JSON parses directly."""
        assert extract_json('{"name": "Flow", "nodes": []}') == {"name": "Flow", "nodes": []}

    def test_fenced_block(self):
        """Test that a ```json fence is stripped."""
        text = '```json\n{"name": "Fenced", "nodes": []}\n```'
        assert extract_json(text)["name"] == "Fenced"

    def test_leading_label(self):
        """Test that a JSON: label is stripped."""
        assert extract_json('JSON: {"a": 1}') == {"a": 1}

    def test_trailing_commas(self):
        """Test that trailing commas before closing brackets are removed."""
        assert extract_json('{"nodes": [1, 2,], "name": "x",}') == {"nodes": [1, 2], "name": "x"}

    def test_single_quotes(self):
        """Test that single-quoted JSON is normalized."""
        assert extract_json("{'name': 'Quoted'}") == {"name": "Quoted"}

    def test_object_embedded_in_prose(self):
        """Test that the object is found inside surrounding explanation text."""
        text = 'Sure! Here is your workflow: {"name": "Embedded", "nodes": [{"id": "a"}]} Let me know.'
        assert extract_json(text) == {"name": "Embedded", "nodes": [{"id": "a"}]}

    def test_braces_inside_strings_do_not_break_spans(self):
        """Test that braces inside string values are ignored when scanning."""
        text = 'Result: {"code": "if (x) { return 1; }", "name": "Braces"} done'
        assert extract_json(text)["name"] == "Braces"

    def test_array_is_returned(self):
        """Test that a top-level array is a valid result."""
        assert extract_json("[1, 2, 3]") == [1, 2, 3]

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_input_raises(self, text):
        """Test that empty content raises ParseError."""
        with pytest.raises(ParseError):
            extract_json(text)

    def test_unrecoverable_raises_with_preview(self):
        """Test that garbage raises ParseError carrying a preview."""
        with pytest.raises(ParseError) as exc_info:
            extract_json("this is not json at all")

        assert exc_info.value.preview.startswith("this is not json")
        assert exc_info.value.correlation_id

    def test_strip_wrappers(self):
        """Test wrapper stripping on its own."""
        assert strip_wrappers("```\n{}\n```") == "{}"


class TestCleanForExport:
    """Tests for clean_for_export."""

    def test_fills_required_fields(self):
        """Test that name, settings and meta get defaults."""
        cleaned = clean_for_export({"nodes": [], "connections": {}})

        assert cleaned["name"] == "Generated Workflow"
        assert cleaned["settings"] == {"executionOrder": "v1"}
        assert cleaned["meta"] == {"instanceId": DEFAULT_INSTANCE_ID}

    def test_drops_unknown_top_level_fields(self):
        """Test that only importable top-level fields survive."""
        cleaned = clean_for_export(
            {"name": "x", "nodes": [], "connections": {}, "explanation": "because", "tags": ["a"]}
        )

        assert "explanation" not in cleaned
        assert cleaned["tags"] == ["a"]

    def test_strips_private_and_metadata_keys_at_depth(self):
        """Test that _-prefixed and metadata keys are removed inside nodes."""
        workflow = {
            "name": "x",
            "nodes": [{"name": "A", "_notes": "x", "metadata": {}, "parameters": {"_debug": 1, "keep": 2}}],
            "connections": {},
        }

        cleaned = clean_for_export(workflow)

        assert cleaned["nodes"] == [{"name": "A", "parameters": {"keep": 2}}]

    def test_input_is_not_modified(self):
        """Test that the caller's workflow is untouched."""
        workflow = {"name": "x", "nodes": [{"_private": True}], "connections": {}}

        clean_for_export(workflow)

        assert workflow["nodes"] == [{"_private": True}]

    def test_coerces_field_types(self):
        """Test active, triggerCount and pinData coercion."""
        cleaned = clean_for_export(
            {"name": "x", "nodes": [], "active": 1, "triggerCount": "bad", "pinData": "nope"}
        )

        assert cleaned["active"] is True
        assert cleaned["triggerCount"] == 0
        assert cleaned["pinData"] == {}

    def test_other_platforms_only_deep_clean(self):
        """Test that non-n8n platforms keep their shape."""
        cleaned = clean_for_export({"steps": [{"_x": 1, "app": "gmail"}], "_metadata": {}}, "zapier")

        assert cleaned == {"steps": [{"app": "gmail"}]}


class TestImportInstructions:
    """Tests for import_instructions."""

    def test_n8n_has_steps(self):
        """Test that n8n gets import steps."""
        assert any("Import" in line for line in import_instructions("n8n"))

    def test_other_platforms_empty(self):
        """Test that other platforms get no steps."""
        assert import_instructions("make") == []
