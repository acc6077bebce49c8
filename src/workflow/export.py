"""Strip a generated workflow down to what the target platform imports."""

import copy
from typing import Any

# Top-level fields n8n accepts on import
N8N_EXPORT_FIELDS = (
    "name",
    "nodes",
    "connections",
    "settings",
    "meta",
    "versionId",
    "pinData",
    "staticData",
    "tags",
    "active",
    "id",
    "triggerCount",
    "createdAt",
    "updatedAt",
)

# Keys dropped at any depth; "_"-prefixed keys are dropped as well
STRIPPED_KEYS = frozenset({"metadata", "instructions", "validation"})

DEFAULT_INSTANCE_ID = "workflow_instance_id"

N8N_IMPORT_INSTRUCTIONS = [
    "To import this workflow into n8n:",
    "1. Copy the JSON workflow below",
    "2. In n8n, click the menu (three dots) and select 'Import from File'",
    "3. Or press Ctrl+Shift+V (or Cmd+Shift+V on Mac) in the n8n editor",
    "4. Paste the JSON and click 'Import'",
    "Note: You'll need to set up your own credentials for each service",
]


def _deep_clean(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: _deep_clean(v)
            for k, v in value.items()
            if not (isinstance(k, str) and (k.startswith("_") or k in STRIPPED_KEYS))
        }
    if isinstance(value, list):
        return [_deep_clean(v) for v in value]
    return value


def clean_for_export(workflow: dict[str, Any], platform: str = "n8n") -> dict[str, Any]:
    """Return a cleaned copy of workflow; the input is never modified.

    For n8n only the importable top-level fields survive, with name,
    nodes, connections, settings and meta always present.
    """
    if platform != "n8n":
        return _deep_clean(copy.deepcopy(workflow))

    nodes = workflow.get("nodes")
    cleaned: dict[str, Any] = {
        "name": workflow.get("name") or "Generated Workflow",
        "nodes": copy.deepcopy(nodes) if isinstance(nodes, list) else [],
        "connections": copy.deepcopy(workflow.get("connections") or {}),
        "settings": copy.deepcopy(workflow.get("settings") or {"executionOrder": "v1"}),
        "meta": copy.deepcopy(workflow.get("meta") or {"instanceId": DEFAULT_INSTANCE_ID}),
    }
    for field in N8N_EXPORT_FIELDS:
        if field in cleaned or field not in workflow:
            continue
        value = workflow[field]
        if field == "pinData":
            value = copy.deepcopy(value) if isinstance(value, dict) else {}
        elif field == "staticData":
            value = copy.deepcopy(value) if isinstance(value, dict) else None
        elif field == "tags":
            value = list(value) if isinstance(value, list) else []
        elif field == "active":
            value = bool(value)
        elif field == "triggerCount":
            try:
                value = int(value or 0)
            except (TypeError, ValueError):
                value = 0
        cleaned[field] = value

    return _deep_clean(cleaned)


def import_instructions(platform: str) -> list[str]:
    """Human-readable steps for importing the generated workflow."""
    if platform == "n8n":
        return list(N8N_IMPORT_INSTRUCTIONS)
    return []
