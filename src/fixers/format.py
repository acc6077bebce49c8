"""n8n import-format normalization.

The fixer works on a deep copy and never raises: a node whose handler fails
is restored to its pre-handler state and the failure is logged.
"""

import copy
import logging
import re
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from src.workflow.nodes import N8N_PREFIX, NodeKind, classify, unique_name

logger = logging.getLogger(__name__)

# Lowercased bare type -> canonical n8n type suffix
NODE_TYPE_ALIASES = {
    "gmailtrigger": "gmailTrigger",
    "gmail trigger": "gmailTrigger",
    "slackmessage": "slack",
    "slack message": "slack",
    "httpwebrequest": "httpRequest",
    "http request": "httpRequest",
    "httprequest": "httpRequest",
    "googlesheets": "googleSheets",
    "google sheets": "googleSheets",
    "webhooktrigger": "webhook",
    "webhook trigger": "webhook",
    "setdata": "set",
    "set data": "set",
    "ifelse": "if",
    "if else": "if",
    "splitinbatches": "splitInBatches",
    "split in batches": "splitInBatches",
    "scheduletrigger": "scheduleTrigger",
    "schedule trigger": "scheduleTrigger",
    "googledrive": "googleDrive",
    "google drive": "googleDrive",
    "emailsend": "emailSend",
    "send email": "emailSend",
}

_BARE_TYPE = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")
_SLACK_CHANNEL_ID = re.compile(r"^[CG][A-Z0-9]+$")

CREDENTIAL_PLACEHOLDERS: dict[NodeKind, dict[str, dict[str, str]]] = {
    NodeKind.GMAIL_TRIGGER: {"gmailOAuth2": {"id": "1", "name": "Gmail account"}},
    NodeKind.GMAIL: {"gmailOAuth2": {"id": "1", "name": "Gmail account"}},
    NodeKind.SLACK: {"slackApi": {"id": "2", "name": "Slack account"}},
    NodeKind.GOOGLE_SHEETS: {"googleSheetsOAuth2Api": {"id": "3", "name": "Google Sheets account"}},
    NodeKind.GOOGLE_DRIVE: {"googleDriveOAuth2Api": {"id": "4", "name": "Google Drive account"}},
    NodeKind.GOOGLE_DRIVE_TRIGGER: {"googleDriveOAuth2Api": {"id": "4", "name": "Google Drive account"}},
}

STANDARD_NODE_FIELDS = ("id", "name", "type", "typeVersion", "position", "parameters", "credentials")
VALID_HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
MIN_SLACK_VERSION = 2.2


@dataclass
class FormatFixResult:
    workflow: dict[str, Any]
    fixes: list[str] = field(default_factory=list)
    suggestions: list[dict[str, str]] = field(default_factory=list)


def generate_node_id() -> str:
    return uuid.uuid4().hex[:8]


def generate_instance_id() -> str:
    return secrets.token_hex(32)


def normalize_node_type(node_type: Any) -> Any:
    """Canonical n8n type for common aliases and bare names; others unchanged."""
    if not isinstance(node_type, str) or not node_type.strip():
        return node_type
    if classify(node_type) is not NodeKind.OTHER:
        return node_type
    bare = node_type[len(N8N_PREFIX) :] if node_type.startswith(N8N_PREFIX) else node_type
    alias = NODE_TYPE_ALIASES.get(bare.strip().lower())
    if alias:
        return N8N_PREFIX + alias
    if bare == node_type and _BARE_TYPE.match(bare):
        return N8N_PREFIX + bare
    return node_type


def _params(node: dict[str, Any]) -> dict[str, Any]:
    params = node.get("parameters")
    if not isinstance(params, dict):
        params = node["parameters"] = {}
    return params


def _listify(value: Any) -> list[Any]:
    return value if isinstance(value, list) else [value]


def _fix_gmail_trigger(node: dict[str, Any]) -> None:
    params = _params(node)
    options = params.get("options")
    if isinstance(options, dict) and "labelIds" in options:
        params["labelIds"] = options.pop("labelIds")
        if not options:
            del params["options"]
    if params.get("label") and not params.get("labelIds"):
        params["labelIds"] = [params.pop("label")]
    if params.get("labelIds") and not isinstance(params["labelIds"], list):
        params["labelIds"] = [params["labelIds"]]
    if not params.get("labelIds"):
        params["labelIds"] = ["INBOX"]
    params.pop("scope", None)


def _fix_slack(node: dict[str, Any]) -> None:
    version = node.get("typeVersion")
    if not isinstance(version, (int, float)) or version < MIN_SLACK_VERSION:
        node["typeVersion"] = MIN_SLACK_VERSION
    params = _params(node)
    params.pop("resource", None)
    params.setdefault("operation", "post")
    if not params.get("operation"):
        params["operation"] = "post"
    if not params.get("authentication"):
        params["authentication"] = "accessToken"
    channel = params.get("channel")
    if isinstance(channel, str) and channel and not channel.startswith("#"):
        # Raw channel IDs cannot be resolved offline
        params["channel"] = "#general" if _SLACK_CHANNEL_ID.match(channel) else f"#{channel}"
    if not isinstance(params.get("otherOptions"), dict):
        params["otherOptions"] = {}


def _legacy_conditions(wrapper: dict[str, Any]) -> list[dict[str, Any]]:
    """Convert n8n v1 ``{string: [{value1, operation, value2}]}`` groups."""
    converted = []
    for group in ("string", "number", "boolean", "dateTime"):
        for entry in wrapper.get(group) or []:
            if isinstance(entry, dict):
                converted.append(
                    {
                        "leftValue": entry.get("value1", ""),
                        "rightValue": entry.get("value2", ""),
                        "operation": entry.get("operation", "equal"),
                    }
                )
    return converted


def _fix_if(node: dict[str, Any]) -> None:
    params = _params(node)
    wrapper = params.get("conditions")
    if isinstance(wrapper, list):
        wrapper = {"conditions": wrapper}
    elif not isinstance(wrapper, dict):
        wrapper = {"conditions": []}

    conditions = wrapper.get("conditions")
    if not conditions:
        conditions = _legacy_conditions(wrapper)
    conditions = _listify(conditions)
    for group in ("string", "number", "boolean", "dateTime"):
        wrapper.pop(group, None)
    wrapper.pop("combinator", None)

    # Empty references stay empty; the condition fixer fills them from context
    wrapper["conditions"] = [
        {
            "leftValue": c.get("leftValue") or "",
            "rightValue": "" if c.get("rightValue") is None else c["rightValue"],
            "operation": c.get("operation") or "equal",
        }
        for c in conditions
        if isinstance(c, dict)
    ]
    params["conditions"] = wrapper
    if not params.get("combineOperation"):
        params["combineOperation"] = "all"


def _unwrap_resource_locator(value: Any, default: str) -> Any:
    if isinstance(value, dict) and value.get("__rl"):
        return value.get("value") or default
    return value


def _fix_google_sheets(node: dict[str, Any]) -> None:
    params = _params(node)
    if not params.get("operation"):
        params["operation"] = "append"
    if "documentId" in params:
        params["documentId"] = _unwrap_resource_locator(params["documentId"], "YOUR_SHEET_ID_HERE")
    if "sheetName" in params:
        params["sheetName"] = _unwrap_resource_locator(params["sheetName"], "Sheet1")
    columns = params.get("columns")
    if isinstance(columns, dict) and columns.get("mappingMode") == "defineBelow":
        value = columns.get("value")
        if isinstance(value, dict) and isinstance(value.get("mappingValues"), list):
            columns["value"] = {
                m.get("column"): m.get("value")
                for m in value["mappingValues"]
                if isinstance(m, dict) and m.get("column")
            }
    if not isinstance(params.get("options"), dict):
        params["options"] = {}


def _fix_schedule(node: dict[str, Any]) -> None:
    params = _params(node)
    rule = params.get("rule")
    if isinstance(rule, dict):
        if "interval" in rule and not isinstance(rule["interval"], list):
            rule["interval"] = [rule["interval"]]
        if rule.get("cronTimes") and not isinstance(rule["cronTimes"], list):
            rule["cronTimes"] = [rule["cronTimes"]]
    if not params.get("mode"):
        if params.get("cronExpression"):
            params["mode"] = "cronExpression"
        elif rule:
            params["mode"] = "everyX"


def _fix_google_drive_trigger(node: dict[str, Any]) -> None:
    params = _params(node)
    if not params.get("event"):
        params["event"] = "fileCreated"
    folder = params.get("folderId")
    if isinstance(folder, dict):
        params["folderId"] = folder.get("value") or folder.get("id") or ""
    poll = params.get("pollTimes")
    if not poll:
        params["pollTimes"] = {"item": [{"mode": "everyMinute"}]}
    elif isinstance(poll, dict) and "item" not in poll:
        params["pollTimes"] = {"item": [poll]}


def _fix_google_drive(node: dict[str, Any]) -> None:
    params = _params(node)
    operation = params.get("operation")
    resource = params.get("resource")

    if operation == "list" and resource == "folder":
        options = params.get("options")
        search_text = params.pop("name", None)
        if isinstance(options, dict) and "q" in options:
            params.setdefault("queryString", options.pop("q"))
            search_text = search_text or params["queryString"]
        params["operation"] = "search"
        params["searchMethod"] = "name"
        params["searchText"] = search_text or ""
        if isinstance(options, dict) and not options:
            del params["options"]

    elif operation == "upload" and resource == "file":
        if "binary" in params:
            del params["binary"]
            params["binaryPropertyName"] = "data"
        folder = params.get("folderId")
        if isinstance(folder, str) and folder:
            params["parents"] = {"__rl": True, "value": params.pop("folderId"), "mode": "id"}

    elif operation == "create" and resource == "folder":
        if not params.get("name") and params.get("folderName"):
            params["name"] = params.pop("folderName")


def _fix_http_request(node: dict[str, Any]) -> None:
    params = _params(node)
    if not params.get("method"):
        params["method"] = "GET"
    auth = params.get("authentication")
    if isinstance(auth, dict):
        params["authentication"] = auth.get("value") or "none"
    if not isinstance(params.get("options"), dict):
        params["options"] = {}
    for ui_key in ("headerParametersUi", "queryParametersUi"):
        ui = params.get(ui_key)
        if isinstance(ui, dict) and ui.get("parameter") and not isinstance(ui["parameter"], list):
            ui["parameter"] = [ui["parameter"]]


def _fix_webhook(node: dict[str, Any]) -> None:
    params = _params(node)
    method = params.get("httpMethod")
    if not isinstance(method, str) or method.upper() not in VALID_HTTP_METHODS:
        params["httpMethod"] = "POST"
    else:
        params["httpMethod"] = method.upper()
    path = params.get("path")
    if not isinstance(path, str) or not path:
        path = str(node.get("name") or "webhook").lower()
    params["path"] = re.sub(r"\s+", "-", path.strip())
    if not params.get("responseMode"):
        params["responseMode"] = "onReceived"
    if not isinstance(params.get("options"), dict):
        params["options"] = {}
    for key in [k for k in node if k not in STANDARD_NODE_FIELDS]:
        del node[key]


def _fix_email_send(node: dict[str, Any]) -> None:
    params = _params(node)
    if not params.get("fromEmail"):
        params["fromEmail"] = "noreply@example.com"
    to_email = params.get("toEmail")
    if isinstance(to_email, dict):
        params["toEmail"] = to_email.get("value") or ""
    attachments = params.get("attachments")
    if attachments and not (isinstance(attachments, dict) and "attachment" in attachments):
        params["attachments"] = {"attachment": _listify(attachments)}


def _fix_function(node: dict[str, Any]) -> None:
    params = _params(node)
    if params.get("jsCode") and not params.get("functionCode"):
        params["functionCode"] = params.pop("jsCode")
    if not params.get("functionCode"):
        params["functionCode"] = "// Add your code here\nreturn items;"


# Adding a node type means adding an entry here
NODE_HANDLERS: dict[NodeKind, Callable[[dict[str, Any]], None]] = {
    NodeKind.GMAIL_TRIGGER: _fix_gmail_trigger,
    NodeKind.SLACK: _fix_slack,
    NodeKind.IF: _fix_if,
    NodeKind.GOOGLE_SHEETS: _fix_google_sheets,
    NodeKind.SCHEDULE_TRIGGER: _fix_schedule,
    NodeKind.CRON: _fix_schedule,
    NodeKind.GOOGLE_DRIVE_TRIGGER: _fix_google_drive_trigger,
    NodeKind.GOOGLE_DRIVE: _fix_google_drive,
    NodeKind.HTTP_REQUEST: _fix_http_request,
    NodeKind.WEBHOOK: _fix_webhook,
    NodeKind.EMAIL_SEND: _fix_email_send,
    NodeKind.FUNCTION: _fix_function,
    NodeKind.FUNCTION_ITEM: _fix_function,
}


def _normalize_port(port: Any, names: set[str], source: str, fixes: list[str]) -> list[dict[str, Any]]:
    edges = []
    for edge in _listify(port):
        if not isinstance(edge, dict) or not edge.get("node"):
            continue
        if edge["node"] not in names:
            fixes.append(f"Dropped connection from '{source}' to missing node '{edge['node']}'")
            continue
        edges.append(edge)
    return edges


class PlatformFormatFixer:
    """Normalizes an n8n workflow into an importable shape."""

    def fix(self, workflow: dict[str, Any]) -> FormatFixResult:
        fixed = copy.deepcopy(workflow) if isinstance(workflow, dict) else {}
        fixes: list[str] = []

        if not isinstance(fixed.get("meta"), dict) or not fixed["meta"].get("instanceId"):
            meta = fixed["meta"] if isinstance(fixed.get("meta"), dict) else {}
            meta["instanceId"] = generate_instance_id()
            fixed["meta"] = meta
        if not fixed.get("name"):
            fixed["name"] = "Generated Workflow"
            fixes.append("Set default workflow name")

        nodes = fixed.get("nodes")
        webhook_id_nodes: list[str] = []
        if isinstance(nodes, list):
            fixed["nodes"] = nodes = [n for n in nodes if isinstance(n, dict)]
            self._normalize_types(nodes, fixes)
            self._dedupe_names(nodes, fixes)
            webhook_id_nodes = [
                n.get("name") for n in nodes if classify(n.get("type")) is NodeKind.WEBHOOK and n.get("webhookId")
            ]
            for index, node in enumerate(nodes):
                self._apply_defaults(node, index, fixes)
                self._apply_handler(node, fixes)

        if not fixed.get("versionId"):
            fixed["versionId"] = str(uuid.uuid4())
        if not fixed.get("pinData"):
            fixed["pinData"] = {}
        if "staticData" not in fixed:
            fixed["staticData"] = None
        if not isinstance(fixed.get("settings"), dict):
            fixed["settings"] = {}
        if not fixed["settings"].get("executionOrder"):
            fixed["settings"]["executionOrder"] = "v1"

        self._fix_connections(fixed, fixes)
        suggestions = self.suggest_replacements(fixed, webhook_id_nodes)

        if fixes:
            logger.info("Format fixer applied %d fixes", len(fixes))
        return FormatFixResult(workflow=fixed, fixes=fixes, suggestions=suggestions)

    def _normalize_types(self, nodes: list[dict[str, Any]], fixes: list[str]) -> None:
        for node in nodes:
            original = node.get("type")
            normalized = normalize_node_type(original)
            if normalized != original:
                node["type"] = normalized
                fixes.append(f"Normalized node type {original!r} -> {normalized!r} on '{node.get('name')}'")

    def _dedupe_names(self, nodes: list[dict[str, Any]], fixes: list[str]) -> None:
        """Rename later duplicates; connections keep pointing at the first holder of a name."""
        taken = {n["name"] for n in nodes if isinstance(n.get("name"), str)}
        seen: set[str] = set()
        for node in nodes:
            name = node.get("name")
            if not isinstance(name, str) or not name:
                continue
            if name in seen:
                new_name = unique_name(name, taken)
                node["name"] = new_name
                taken.add(new_name)
                fixes.append(f"Renamed duplicate node '{name}' to '{new_name}'")
                name = new_name
            seen.add(name)

    def _apply_defaults(self, node: dict[str, Any], index: int, fixes: list[str]) -> None:
        node_id = node.get("id")
        if not node_id or len(str(node_id)) < 5:
            node["id"] = generate_node_id()
            fixes.append(f"Generated id for node '{node.get('name')}'")
        position = node.get("position")
        if not isinstance(position, list) or len(position) != 2:
            node["position"] = [250 + index * 200, 300]
        kind = classify(node.get("type"))
        if not node.get("credentials") and kind in CREDENTIAL_PLACEHOLDERS:
            node["credentials"] = copy.deepcopy(CREDENTIAL_PLACEHOLDERS[kind])
            fixes.append(f"Added credential placeholder to '{node.get('name')}'")

    def _apply_handler(self, node: dict[str, Any], fixes: list[str]) -> None:
        kind = classify(node.get("type"))
        handler = NODE_HANDLERS.get(kind)
        if handler is None:
            return
        snapshot = copy.deepcopy(node)
        try:
            handler(node)
        except Exception:
            logger.warning("Format handler for %s failed on %r", kind.value, node.get("name"), exc_info=True)
            node.clear()
            node.update(snapshot)
            return
        if node != snapshot:
            fixes.append(f"Normalized {kind.value.removeprefix(N8N_PREFIX)} parameters on '{node.get('name')}'")

    def _fix_connections(self, workflow: dict[str, Any], fixes: list[str]) -> None:
        connections = workflow.get("connections")
        if not isinstance(connections, dict):
            workflow["connections"] = {}
            return
        names = {n.get("name") for n in workflow.get("nodes") or [] if isinstance(n, dict)}

        for source, outputs in list(connections.items()):
            if not isinstance(outputs, dict):
                outputs = connections[source] = {"main": []}
            for output_type, ports in list(outputs.items()):
                if output_type != "main" and not isinstance(ports, list):
                    continue
                if not ports:
                    outputs[output_type] = []
                    continue
                ports = _listify(ports)
                # A flat list of edges is a single port
                if all(isinstance(p, dict) for p in ports):
                    ports = [ports]
                outputs[output_type] = [_normalize_port(p, names, source, fixes) for p in ports]

    def suggest_replacements(
        self, workflow: dict[str, Any], webhook_id_nodes: list[str] | None = None
    ) -> list[dict[str, str]]:
        """Optional simplifications, returned alongside (not inside) the workflow."""
        suggestions = []
        for node in workflow.get("nodes") or []:
            if not isinstance(node, dict):
                continue
            name = str(node.get("name") or "")
            kind = classify(node.get("type"))
            params = node.get("parameters") if isinstance(node.get("parameters"), dict) else {}

            if kind is NodeKind.IF:
                conditions = (params.get("conditions") or {}).get("conditions")
                if isinstance(conditions, list) and len(conditions) == 1:
                    suggestions.append(
                        {
                            "node": name,
                            "current": "if",
                            "suggested": "switch",
                            "reason": "Switch is simpler for binary conditions",
                        }
                    )
            elif kind is NodeKind.EMAIL_SEND and "email" not in name.lower():
                suggestions.append(
                    {
                        "node": name,
                        "current": "emailSend",
                        "suggested": "set",
                        "reason": "Use set node for creating response data",
                    }
                )
            elif kind in (NodeKind.FUNCTION, NodeKind.FUNCTION_ITEM):
                code = params.get("functionCode") or ""
                if "return {" in code or "return [" in code:
                    suggestions.append(
                        {
                            "node": name,
                            "current": "function",
                            "suggested": "set",
                            "reason": "Use set node for creating simple data structures",
                        }
                    )
            elif kind is NodeKind.NO_OP:
                suggestions.append(
                    {
                        "node": name,
                        "current": "noOp",
                        "suggested": "remove",
                        "reason": "NoOp nodes do nothing and can be removed",
                    }
                )

        for name in webhook_id_nodes or []:
            suggestions.append(
                {
                    "node": name,
                    "current": "webhook with webhookId field",
                    "suggested": "webhook without webhookId field",
                    "reason": "Remove non-standard webhookId field",
                }
            )
        return suggestions
