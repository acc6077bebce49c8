"""Unit tests for n8n format normalization."""

from unittest.mock import patch

import pytest

from src.fixers import PlatformFormatFixer, normalize_node_type
from src.fixers.format import CREDENTIAL_PLACEHOLDERS, NODE_HANDLERS, MIN_SLACK_VERSION
from src.workflow import NodeKind


@pytest.fixture
def fixer():
    return PlatformFormatFixer()


def _workflow(*nodes, connections=None):
    return {"name": "Test", "nodes": list(nodes), "connections": connections or {}}


def _node(fixed, name):
    return next(n for n in fixed["nodes"] if n["name"] == name)


class TestNormalizeNodeType:
    """Tests for normalize_node_type."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Gmail Trigger", "n8n-nodes-base.gmailTrigger"),
            ("slackMessage", "n8n-nodes-base.slack"),
            ("n8n-nodes-base.httpWebRequest", "n8n-nodes-base.httpRequest"),
            ("set", "n8n-nodes-base.set"),
            ("n8n-nodes-base.if", "n8n-nodes-base.if"),
            ("@n8n/n8n-nodes-langchain.agent", "@n8n/n8n-nodes-langchain.agent"),
            ("", ""),
            (None, None),
        ],
    )
    def test_aliases(self, raw, expected):
        """Test alias and prefix normalization."""
        assert normalize_node_type(raw) == expected


class TestWorkflowLevel:
    """Tests for top-level defaults."""

    def test_input_not_modified(self, fixer):
        """Test that the fixer works on a copy."""
        original = {"nodes": [{"name": "A", "type": "set"}]}

        fixer.fix(original)

        assert original == {"nodes": [{"name": "A", "type": "set"}]}

    def test_top_level_defaults(self, fixer):
        """Test that meta, versionId, pinData, staticData and settings are filled."""
        fixed = fixer.fix({"nodes": []}).workflow

        assert fixed["name"] == "Generated Workflow"
        assert len(fixed["meta"]["instanceId"]) == 64
        assert fixed["versionId"]
        assert fixed["pinData"] == {}
        assert fixed["staticData"] is None
        assert fixed["settings"] == {"executionOrder": "v1"}
        assert fixed["connections"] == {}

    def test_existing_values_kept(self, fixer):
        """Test that present values are not overwritten."""
        fixed = fixer.fix(
            {"name": "Mine", "nodes": [], "meta": {"instanceId": "abc"}, "settings": {"executionOrder": "v0"}}
        ).workflow

        assert fixed["name"] == "Mine"
        assert fixed["meta"]["instanceId"] == "abc"
        assert fixed["settings"]["executionOrder"] == "v0"

    def test_non_dict_input(self, fixer):
        """Test that a non-object input yields an empty workflow instead of raising."""
        result = fixer.fix(["not", "a", "workflow"])

        assert result.workflow["name"] == "Generated Workflow"
        assert result.workflow["connections"] == {}


class TestNodeDefaults:
    """Tests for per-node defaults."""

    def test_types_ids_positions_credentials(self, fixer):
        """Test that bare nodes are filled in."""
        fixed = fixer.fix(_workflow({"name": "Mail", "type": "gmail"})).workflow
        node = fixed["nodes"][0]

        assert node["type"] == NodeKind.GMAIL
        assert len(node["id"]) == 8
        assert node["position"] == [250, 300]
        assert node["credentials"] == CREDENTIAL_PLACEHOLDERS[NodeKind.GMAIL]

    def test_short_id_replaced(self, fixer):
        """Test that ids shorter than five characters are regenerated."""
        fixed = fixer.fix(_workflow({"id": "1", "name": "A", "type": "n8n-nodes-base.set"})).workflow

        assert fixed["nodes"][0]["id"] != "1"

    def test_duplicate_names_renamed(self, fixer):
        """Test that later duplicates get numeric suffixes."""
        result = fixer.fix(
            _workflow(
                {"name": "Webhook", "type": "n8n-nodes-base.set"},
                {"name": "Webhook", "type": "n8n-nodes-base.set"},
                {"name": "Webhook", "type": "n8n-nodes-base.set"},
            )
        )

        assert [n["name"] for n in result.workflow["nodes"]] == ["Webhook", "Webhook 2", "Webhook 3"]
        assert "Renamed duplicate node 'Webhook' to 'Webhook 2'" in result.fixes

    def test_handler_failure_restores_node(self, fixer):
        """Test that a failing handler leaves the node as it was."""
        node = {"id": "abcdef", "name": "Call", "type": "n8n-nodes-base.httpRequest", "parameters": {"url": "x"}}

        with patch.dict(NODE_HANDLERS, {NodeKind.HTTP_REQUEST: _explode}):
            fixed = fixer.fix(_workflow(node)).workflow

        assert fixed["nodes"][0]["parameters"] == {"url": "x"}


def _explode(node):
    node["parameters"]["half"] = "done"
    raise RuntimeError("boom")


class TestNodeHandlers:
    """Tests for node-specific handlers."""

    def test_gmail_trigger_labels(self, fixer):
        """Test labelIds hoisting and default."""
        fixed = fixer.fix(
            _workflow(
                {"name": "A", "type": "n8n-nodes-base.gmailTrigger", "parameters": {"options": {"labelIds": "Work"}}},
                {"name": "B", "type": "n8n-nodes-base.gmailTrigger", "parameters": {"scope": "x"}},
            )
        ).workflow

        assert _node(fixed, "A")["parameters"] == {"labelIds": ["Work"]}
        assert _node(fixed, "B")["parameters"] == {"labelIds": ["INBOX"]}

    def test_slack(self, fixer):
        """Test Slack version, operation and channel normalization."""
        fixed = fixer.fix(
            _workflow(
                {"name": "A", "type": "n8n-nodes-base.slack", "typeVersion": 1, "parameters": {"channel": "alerts", "resource": "message"}},
                {"name": "B", "type": "n8n-nodes-base.slack", "parameters": {"channel": "C024BE91L"}},
            )
        ).workflow
        a = _node(fixed, "A")

        assert a["typeVersion"] == MIN_SLACK_VERSION
        assert a["parameters"]["channel"] == "#alerts"
        assert a["parameters"]["operation"] == "post"
        assert a["parameters"]["authentication"] == "accessToken"
        assert "resource" not in a["parameters"]
        assert _node(fixed, "B")["parameters"]["channel"] == "#general"

    def test_if_legacy_conditions(self, fixer):
        """Test that v1 string groups become a flat conditions list."""
        node = {
            "name": "Check",
            "type": "n8n-nodes-base.if",
            "parameters": {
                "conditions": {"string": [{"value1": '={{$json["status"]}}', "operation": "equal", "value2": "open"}]}
            },
        }
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["conditions"] == {
            "conditions": [{"leftValue": '={{$json["status"]}}', "rightValue": "open", "operation": "equal"}]
        }
        assert params["combineOperation"] == "all"

    def test_if_list_conditions_and_empty_left(self, fixer):
        """Test that a bare list is wrapped and an empty leftValue stays empty."""
        node = {
            "name": "Check",
            "type": "n8n-nodes-base.if",
            "parameters": {"conditions": [{"rightValue": None, "operation": ""}]},
        }
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["conditions"]["conditions"] == [{"leftValue": "", "rightValue": "", "operation": "equal"}]

    def test_google_sheets(self, fixer):
        """Test resource locators and mapping values are flattened."""
        node = {
            "name": "Sheet",
            "type": "n8n-nodes-base.googleSheets",
            "parameters": {
                "documentId": {"__rl": True, "value": "doc-1", "mode": "id"},
                "sheetName": {"__rl": True, "value": ""},
                "columns": {
                    "mappingMode": "defineBelow",
                    "value": {"mappingValues": [{"column": "Email", "value": "={{$json.email}}"}]},
                },
            },
        }
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["operation"] == "append"
        assert params["documentId"] == "doc-1"
        assert params["sheetName"] == "Sheet1"
        assert params["columns"]["value"] == {"Email": "={{$json.email}}"}
        assert params["options"] == {}

    def test_schedule(self, fixer):
        """Test that a single interval is listified and mode inferred."""
        node = {"name": "Every hour", "type": "n8n-nodes-base.scheduleTrigger", "parameters": {"rule": {"interval": {"field": "hours"}}}}
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["rule"]["interval"] == [{"field": "hours"}]
        assert params["mode"] == "everyX"

    def test_google_drive_list_folder_becomes_search(self, fixer):
        """Test the folder list rewrite."""
        node = {
            "name": "Find",
            "type": "n8n-nodes-base.googleDrive",
            "parameters": {"operation": "list", "resource": "folder", "name": "Invoices"},
        }
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["operation"] == "search"
        assert params["searchMethod"] == "name"
        assert params["searchText"] == "Invoices"

    def test_google_drive_upload_parents(self, fixer):
        """Test that a string folderId on upload becomes a parents locator."""
        node = {
            "name": "Upload",
            "type": "n8n-nodes-base.googleDrive",
            "parameters": {"operation": "upload", "resource": "file", "folderId": "f-1", "binary": True},
        }
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["parents"] == {"__rl": True, "value": "f-1", "mode": "id"}
        assert params["binaryPropertyName"] == "data"
        assert "folderId" not in params

    def test_http_request(self, fixer):
        """Test method default and authentication unwrapping."""
        node = {"name": "Call", "type": "httpRequest", "parameters": {"authentication": {"value": "genericCredentialType"}}}
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["method"] == "GET"
        assert params["authentication"] == "genericCredentialType"
        assert params["options"] == {}

    def test_webhook(self, fixer):
        """Test method, path and non-standard key cleanup."""
        node = {
            "name": "Incoming Order",
            "type": "n8n-nodes-base.webhook",
            "webhookId": "abc",
            "notes": "x",
            "parameters": {"httpMethod": "get", "path": "new order"},
        }
        result = fixer.fix(_workflow(node))
        fixed_node = result.workflow["nodes"][0]

        assert fixed_node["parameters"]["httpMethod"] == "GET"
        assert fixed_node["parameters"]["path"] == "new-order"
        assert fixed_node["parameters"]["responseMode"] == "onReceived"
        assert "webhookId" not in fixed_node
        assert "notes" not in fixed_node
        assert any(s["node"] == "Incoming Order" and "webhookId" in s["current"] for s in result.suggestions)

    def test_webhook_invalid_method(self, fixer):
        """Test that an unknown method falls back to POST."""
        node = {"name": "Hook", "type": "n8n-nodes-base.webhook", "parameters": {"httpMethod": "FETCH"}}
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["httpMethod"] == "POST"
        assert params["path"] == "hook"

    def test_email_send(self, fixer):
        """Test sender default and attachment wrapping."""
        node = {"name": "Send Email", "type": "n8n-nodes-base.emailSend", "parameters": {"attachments": "data"}}
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params["fromEmail"] == "noreply@example.com"
        assert params["attachments"] == {"attachment": ["data"]}

    def test_function_migrates_js_code(self, fixer):
        """Test that jsCode moves to functionCode."""
        node = {"name": "Fn", "type": "n8n-nodes-base.function", "parameters": {"jsCode": "return items;"}}
        params = fixer.fix(_workflow(node)).workflow["nodes"][0]["parameters"]

        assert params == {"functionCode": "return items;"}


class TestConnections:
    """Tests for connection normalization."""

    def test_flat_edge_list_becomes_one_port(self, fixer):
        """Test that a flat edge list is wrapped as a single port."""
        result = fixer.fix(
            _workflow(
                {"name": "A", "type": "n8n-nodes-base.set"},
                {"name": "B", "type": "n8n-nodes-base.set"},
                connections={"A": {"main": [{"node": "B", "type": "main", "index": 0}]}},
            )
        )

        assert result.workflow["connections"]["A"]["main"] == [[{"node": "B", "type": "main", "index": 0}]]

    def test_dangling_edges_dropped(self, fixer):
        """Test that edges to missing nodes are removed and recorded."""
        result = fixer.fix(
            _workflow(
                {"name": "A", "type": "n8n-nodes-base.set"},
                {"name": "B", "type": "n8n-nodes-base.set"},
                connections={"A": {"main": [[{"node": "B"}, {"node": "Missing"}]]}},
            )
        )

        assert result.workflow["connections"]["A"]["main"] == [[{"node": "B"}]]
        assert "Dropped connection from 'A' to missing node 'Missing'" in result.fixes


class TestSuggestions:
    """Tests for replacement suggestions."""

    def test_suggestions(self, fixer):
        """Test single-condition IF, function and noOp suggestions."""
        result = fixer.fix(
            _workflow(
                {
                    "name": "Check",
                    "type": "n8n-nodes-base.if",
                    "parameters": {"conditions": {"conditions": [{"leftValue": "a", "operation": "equal"}]}},
                },
                {"name": "Build", "type": "n8n-nodes-base.function", "parameters": {"functionCode": "return [{json: {}}];"}},
                {"name": "Nothing", "type": "n8n-nodes-base.noOp"},
            )
        )
        suggested = {(s["node"], s["suggested"]) for s in result.suggestions}

        assert ("Check", "switch") in suggested
        assert ("Build", "set") in suggested
        assert ("Nothing", "remove") in suggested
        # Suggestions never change the workflow
        assert _node(result.workflow, "Nothing")["type"] == "n8n-nodes-base.noOp"
