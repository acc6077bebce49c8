"""Unit tests for the Zapier and Make validators."""

from collections import deque

import pytest

from src.exceptions import SchemaValidationError
from src.validation import MakeValidator, Severity, ZapierValidator
from src.validation.platforms import format_json_path


def _kinds(issues):
    return [i.kind for i in issues]


@pytest.fixture
def zap():
    return {
        "name": "Mail to Slack",
        "trigger": {"app": "gmail", "event": "new_email"},
        "actions": [
            {"app": "slack", "action": "send_message", "input": {"text": "New mail: {{trigger.subject}}"}},
        ],
    }


@pytest.fixture
def scenario():
    return {
        "name": "Rows to Slack",
        "modules": [
            {"id": 1, "module": "google-sheets:watchRows", "version": 2, "parameters": {}},
            {"id": 2, "module": "slack:CreateMessage", "version": 1, "mapper": {"text": "{{1.name}}"}},
        ],
        "connections": [{"srcModuleId": 1, "dstModuleId": 2}],
    }


class TestFormatJsonPath:
    """Tests for format_json_path."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            (deque([]), ""),
            (deque(["trigger"]), "trigger"),
            (deque(["actions", 0, "app"]), "actions[0].app"),
        ],
    )
    def test_paths(self, path, expected):
        """Test root, key and index rendering."""
        assert format_json_path(path) == expected


class TestZapierValidator:
    """Tests for ZapierValidator."""

    def test_valid(self, zap):
        """Test that a well-formed Zap has no findings."""
        report = ZapierValidator().validate(zap)

        assert report.valid
        assert report.warnings == []

    def test_missing_sections_are_critical(self):
        """Test that a document without trigger and actions is rejected at the root."""
        report = ZapierValidator().validate({"name": "Empty"})

        assert _kinds(report.errors) == ["schema_violation", "schema_violation"]
        assert report.summary.critical_issues == 2

    def test_nested_violation_is_high(self, zap):
        """Test that a bad action is reported with its path."""
        del zap["actions"][0]["action"]

        report = ZapierValidator().validate(zap)

        assert not report.valid
        assert report.errors[0].severity == Severity.HIGH
        assert report.errors[0].message == "actions[0]: 'action' is a required property"

    def test_empty_actions(self, zap):
        """Test that at least one action is required."""
        zap["actions"] = []

        assert not ZapierValidator().validate(zap).valid

    def test_unqualified_mapping_warned(self, zap):
        """Test that {{subject}} without a step is a warning."""
        zap["actions"][0]["input"]["text"] = "New mail: {{subject}}"

        report = ZapierValidator().validate(zap)

        assert report.valid
        assert _kinds(report.warnings) == ["invalid_mapping"]
        assert report.warnings[0].current_value == "{{subject}}"
        assert "{{trigger.subject}}" in report.warnings[0].suggested_fix

    def test_non_object_document(self):
        """Test that a list is rejected."""
        report = ZapierValidator().validate([])

        assert report.summary.critical_issues == 1


class TestMakeValidator:
    """Tests for MakeValidator."""

    def test_valid(self, scenario):
        """Test that a well-formed scenario has no findings."""
        report = MakeValidator().validate(scenario)

        assert report.valid
        assert report.warnings == []

    def test_modules_required(self):
        """Test that an empty module list is rejected."""
        report = MakeValidator().validate({"name": "Nothing", "modules": []})

        assert not report.valid

    def test_duplicate_module_id(self, scenario):
        """Test that module ids must be unique."""
        scenario["modules"][1]["id"] = 1
        scenario["modules"][1]["mapper"] = {}
        scenario["connections"] = []

        report = MakeValidator().validate(scenario)

        assert _kinds(report.errors) == ["duplicate_module_id"]

    def test_forward_reference_warned(self, scenario):
        """Test that a mapper reading from a later module is a warning."""
        scenario["modules"][0]["mapper"] = {"row": "{{2.ts}}"}

        report = MakeValidator().validate(scenario)

        assert report.valid
        assert _kinds(report.warnings) == ["forward_reference"]

    def test_routes(self, scenario):
        """Test that routes need a flow array of known module ids."""
        scenario["routes"] = [{"flow": [1, 7]}, {"filter": {}}]

        report = MakeValidator().validate(scenario)

        assert _kinds(report.errors) == ["invalid_route_module", "invalid_route"]
        assert report.errors[0].current_value == 7

    def test_connection_to_unknown_module(self, scenario):
        """Test that connections must join existing modules."""
        scenario["connections"].append({"srcModuleId": 2, "dstModuleId": 9})

        report = MakeValidator().validate(scenario)

        assert _kinds(report.errors) == ["invalid_connection_module"]
        assert report.errors[0].severity == Severity.HIGH


class TestRaiseForErrors:
    """Tests for ValidationReport.raise_for_errors."""

    def test_valid_report_does_not_raise(self, zap):
        """Test that a valid report is a no-op."""
        ZapierValidator().validate(zap).raise_for_errors()

    def test_errors_carried(self):
        """Test that the first error is named and the rest counted."""
        report = ZapierValidator().validate({"name": "Empty"})

        with pytest.raises(SchemaValidationError) as exc_info:
            report.raise_for_errors()

        assert "(+1 more)" in str(exc_info.value)
        assert "'actions' is a required property" in str(exc_info.value)
