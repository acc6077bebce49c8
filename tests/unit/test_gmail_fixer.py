"""Unit tests for Gmail-specific repairs."""

import pytest

from src.fixers import GmailFixer


@pytest.fixture
def fixer():
    return GmailFixer()


@pytest.fixture
def label_workflow(node_factory):
    """Gmail trigger -> label check IF -> Slack."""
    return {
        "name": "Mail Router",
        "nodes": [
            node_factory("Gmail Trigger", "n8n-nodes-base.gmailTrigger", position=0),
            node_factory(
                "Check Label",
                "n8n-nodes-base.if",
                position=1,
                conditions={"conditions": [{"leftValue": '={{$json["labelIds"]}}', "rightValue": "Work", "operation": "contains"}]},
            ),
            node_factory("Notify", "n8n-nodes-base.slack", position=2, channel="#mail"),
        ],
        "connections": {
            "Gmail Trigger": {"main": [[{"node": "Check Label", "type": "main", "index": 0}]]},
            "Check Label": {"main": [[{"node": "Notify", "type": "main", "index": 0}]]},
        },
    }


class TestRemapFields:
    """Tests for flat-to-nested field remapping."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ('={{$json["subject"]}}', '={{$json["headers"]["subject"]}}'),
            ('={{$json["sender"]}}', '={{$json["headers"]["from"]}}'),
            ('={{$json["body"]}}', '={{$json["textPlain"]}}'),
            ('={{$json["labels"]}}', '={{$json["labelIds"]}}'),
            ('={{$json["custom"]}}', '={{$json["custom"]}}'),
        ],
    )
    def test_remap(self, fixer, expression, expected):
        """Test known fields are nested and others left alone."""
        assert fixer.remap_fields(expression) == expected

    def test_multiple_references(self, fixer):
        """Test that every reference in an expression is rewritten."""
        result = fixer.remap_fields('{{$json["from"]}}: {{$json["subject"]}}')

        assert result == '{{$json["headers"]["from"]}}: {{$json["headers"]["subject"]}}'


class TestLabelDetection:
    """Tests for is_label_check and extract_label."""

    def test_label_check_after_gmail(self, fixer, label_workflow):
        """Test detection via the condition reference."""
        trigger, check, _ = label_workflow["nodes"]
        check["name"] = "Route"

        assert fixer.is_label_check(check, trigger)

    def test_label_check_by_name(self, fixer, node_factory):
        """Test detection via the node name."""
        trigger = node_factory("Gmail Trigger", "n8n-nodes-base.gmailTrigger")
        check = node_factory("Tag filter", "n8n-nodes-base.if", position=1, conditions={"conditions": []})

        assert fixer.is_label_check(check, trigger)

    def test_not_after_gmail(self, fixer, label_workflow, node_factory):
        """Test that non-Gmail predecessors never count."""
        _, check, _ = label_workflow["nodes"]

        assert not fixer.is_label_check(check, node_factory("Hook", "n8n-nodes-base.webhook"))
        assert not fixer.is_label_check(check, None)

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Check Starred", "STARRED"),
            ("Is it important?", "IMPORTANT"),
            ("Check label: receipts", "RECEIPTS"),
            ("Check Label", "INBOX"),
        ],
    )
    def test_extract_label(self, fixer, name, expected):
        """Test system labels, custom labels and the INBOX default."""
        assert fixer.extract_label(name) == expected


class TestReplaceWithLabelFilter:
    """Tests for replace_with_label_filter."""

    def test_replaces_node_and_rewires(self, fixer, label_workflow):
        """Test that the IF becomes a Code node and connections follow the rename."""
        fixed, message = fixer.replace_with_label_filter(label_workflow, "Check Label")

        node = fixed["nodes"][1]
        assert node["name"] == "Filter Label"
        assert node["type"] == "n8n-nodes-base.code"
        assert node["id"] == "node0001"
        assert node["position"] == [450, 300]
        assert "labels.includes('INBOX')" in node["parameters"]["jsCode"]
        assert fixed["connections"]["Gmail Trigger"]["main"][0][0]["node"] == "Filter Label"
        assert "Filter Label" in fixed["connections"]
        assert "Check Label" not in fixed["connections"]
        assert message == "Replaced IF node 'Check Label' with Code node 'Filter Label' for Gmail label checking"

    def test_input_not_modified(self, fixer, label_workflow):
        """Test that the original workflow is untouched."""
        fixer.replace_with_label_filter(label_workflow, "Check Label")

        assert label_workflow["nodes"][1]["type"] == "n8n-nodes-base.if"

    def test_name_collision_gets_suffix(self, fixer, label_workflow, node_factory):
        """Test that the replacement name avoids existing nodes."""
        label_workflow["nodes"].append(node_factory("Filter Label", "n8n-nodes-base.set", position=3))

        fixed, _ = fixer.replace_with_label_filter(label_workflow, "Check Label")

        assert fixed["nodes"][1]["name"] == "Filter Label 2"

    def test_missing_node(self, fixer, label_workflow):
        """Test that an unknown node name changes nothing."""
        fixed, message = fixer.replace_with_label_filter(label_workflow, "Nope")

        assert message is None
        assert fixed == label_workflow
