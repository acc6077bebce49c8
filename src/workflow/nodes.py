"""n8n node kinds and graph helpers.

Workflows travel through the pipeline as plain JSON-compatible dicts in the
n8n wire shape; this module gives the string ``type`` field a closed set of
kinds and offers the few graph operations the fixers share.
"""

from collections.abc import Iterator
from enum import StrEnum
from typing import Any

N8N_PREFIX = "n8n-nodes-base."


class NodeKind(StrEnum):
    """Canonical n8n node types with dedicated handling."""

    GMAIL_TRIGGER = "n8n-nodes-base.gmailTrigger"
    GMAIL = "n8n-nodes-base.gmail"
    SLACK = "n8n-nodes-base.slack"
    IF = "n8n-nodes-base.if"
    SWITCH = "n8n-nodes-base.switch"
    CODE = "n8n-nodes-base.code"
    SET = "n8n-nodes-base.set"
    GOOGLE_SHEETS = "n8n-nodes-base.googleSheets"
    SCHEDULE_TRIGGER = "n8n-nodes-base.scheduleTrigger"
    CRON = "n8n-nodes-base.cron"
    GOOGLE_DRIVE_TRIGGER = "n8n-nodes-base.googleDriveTrigger"
    GOOGLE_DRIVE = "n8n-nodes-base.googleDrive"
    HTTP_REQUEST = "n8n-nodes-base.httpRequest"
    WEBHOOK = "n8n-nodes-base.webhook"
    EMAIL_SEND = "n8n-nodes-base.emailSend"
    FUNCTION = "n8n-nodes-base.function"
    FUNCTION_ITEM = "n8n-nodes-base.functionItem"
    NO_OP = "n8n-nodes-base.noOp"
    OTHER = "other"


def classify(node_type: Any) -> NodeKind:
    """Map a node ``type`` string to its NodeKind (OTHER when unknown)."""
    if not isinstance(node_type, str):
        return NodeKind.OTHER
    try:
        return NodeKind(node_type)
    except ValueError:
        return NodeKind.OTHER


def is_mail_type(node_type: Any) -> bool:
    return isinstance(node_type, str) and "gmail" in node_type


def is_sheets_type(node_type: Any) -> bool:
    return isinstance(node_type, str) and "googleSheets" in node_type


def get_nodes(workflow: dict[str, Any]) -> list[dict[str, Any]]:
    """Nodes that are dicts; tolerates a missing or malformed list."""
    nodes = workflow.get("nodes")
    if not isinstance(nodes, list):
        return []
    return [n for n in nodes if isinstance(n, dict)]


def node_names(workflow: dict[str, Any]) -> set[str]:
    return {n["name"] for n in get_nodes(workflow) if isinstance(n.get("name"), str)}


def find_node(workflow: dict[str, Any], name: str) -> dict[str, Any] | None:
    for node in get_nodes(workflow):
        if node.get("name") == name:
            return node
    return None


def unique_name(base: str, taken: set[str]) -> str:
    """base, or base with the first free numeric suffix ("Webhook 2", "Webhook 3"...)."""
    if base not in taken:
        return base
    n = 2
    while f"{base} {n}" in taken:
        n += 1
    return f"{base} {n}"


def iter_edges(connections: Any) -> Iterator[tuple[str, dict[str, Any]]]:
    """Yield (source_name, edge) for every edge in a connections map.

    Walks every output type (``main`` and any others) and skips
    entries that are not edge dicts.
    """
    if not isinstance(connections, dict):
        return
    for source, outputs in connections.items():
        if not isinstance(outputs, dict):
            continue
        for ports in outputs.values():
            if not isinstance(ports, list):
                continue
            for port in ports:
                if not isinstance(port, list):
                    continue
                for edge in port:
                    if isinstance(edge, dict):
                        yield source, edge


def rename_node_references(workflow: dict[str, Any], old_name: str, new_name: str) -> None:
    """Rewrite connection keys and edge targets from old_name to new_name in place."""
    connections = workflow.get("connections")
    if not isinstance(connections, dict):
        return
    if old_name in connections:
        connections[new_name] = connections.pop(old_name)
    for _, edge in iter_edges(connections):
        if edge.get("node") == old_name:
            edge["node"] = new_name
