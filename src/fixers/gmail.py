"""Gmail-specific repairs: nested field references and label filters."""

import copy
import logging
import re
from typing import Any

from src.workflow.nodes import (
    NodeKind,
    is_mail_type,
    node_names,
    rename_node_references,
    unique_name,
)

logger = logging.getLogger(__name__)

# Flat field name -> path in the Gmail trigger output
MAIL_FIELD_MAP: dict[str, tuple[str, ...]] = {
    "subject": ("headers", "subject"),
    "from": ("headers", "from"),
    "email": ("headers", "from"),
    "sender": ("headers", "from"),
    "to": ("headers", "to"),
    "date": ("headers", "date"),
    "body": ("textPlain",),
    "text": ("textPlain",),
    "html": ("textHtml",),
    "messageId": ("id",),
    "labels": ("labelIds",),
}

# Checked in order against the lowercased node name
SYSTEM_LABELS = (
    ("inbox", "INBOX"),
    ("sent", "SENT"),
    ("draft", "DRAFT"),
    ("important", "IMPORTANT"),
    ("starred", "STARRED"),
)

_FLAT_FIELD = re.compile(r'\$json\["(\w+)"\]')
_CUSTOM_LABEL = re.compile(r"label[:\s]+([A-Za-z_]+)", re.IGNORECASE)
_CHECK_WORDS = re.compile(r"\b(check|if)\b", re.IGNORECASE)

LABEL_FILTER_CODE = """// Filter items by Gmail label
return items.filter(item => {{
  const labels = item.json.labelIds || [];
  return labels.includes('{label}');
}});"""


def _field_path(path: tuple[str, ...]) -> str:
    return "$json" + "".join(f'["{p}"]' for p in path)


class GmailFixer:
    """Specialized fixer for Gmail-related workflow issues."""

    def remap_fields(self, expression: str) -> str:
        """Rewrite flat ``$json["subject"]``-style references to the nested Gmail shape."""

        def _sub(match: re.Match[str]) -> str:
            path = MAIL_FIELD_MAP.get(match.group(1))
            return _field_path(path) if path else match.group(0)

        return _FLAT_FIELD.sub(_sub, expression)

    def is_label_check(self, node: dict[str, Any], previous: dict[str, Any] | None) -> bool:
        """An IF node after a Gmail node that tests labels or tags."""
        if previous is None or not is_mail_type(previous.get("type")):
            return False
        if node.get("type") != NodeKind.IF:
            return False
        name = str(node.get("name") or "").lower()
        if "label" in name or "tag" in name:
            return True
        conditions = (node.get("parameters") or {}).get("conditions") or {}
        if not isinstance(conditions, dict):
            return False
        return any(
            isinstance(c, dict)
            and isinstance(c.get("leftValue"), str)
            and ("label" in c["leftValue"] or "tag" in c["leftValue"])
            for c in conditions.get("conditions") or []
        )

    def extract_label(self, node_name: str) -> str:
        """Gmail label ID implied by a node name (INBOX when nothing matches)."""
        lowered = node_name.lower()
        for keyword, label in SYSTEM_LABELS:
            if keyword in lowered:
                return label
        match = _CUSTOM_LABEL.search(node_name)
        if match:
            return match.group(1).upper()
        return "INBOX"

    def build_label_filter_node(self, node: dict[str, Any], taken_names: set[str]) -> dict[str, Any]:
        name = str(node.get("name") or "Label Filter")
        new_name = unique_name(_CHECK_WORDS.sub("Filter", name), taken_names)
        return {
            "id": node.get("id"),
            "name": new_name,
            "type": NodeKind.CODE.value,
            "typeVersion": 2,
            "position": node.get("position", [0, 0]),
            "parameters": {
                "mode": "runOnceForAllItems",
                "jsCode": LABEL_FILTER_CODE.format(label=self.extract_label(name)),
            },
        }

    def replace_with_label_filter(
        self, workflow: dict[str, Any], node_name: str
    ) -> tuple[dict[str, Any], str | None]:
        """Swap the named IF node for a Code node filtering on Gmail labels.

        Returns the updated copy and a description of the change, or the
        unchanged copy and None when the node does not exist.
        """
        fixed = copy.deepcopy(workflow)
        nodes = fixed.get("nodes")
        if not isinstance(nodes, list):
            return fixed, None

        for index, node in enumerate(nodes):
            if not isinstance(node, dict) or node.get("name") != node_name:
                continue
            taken = node_names(fixed) - {node_name}
            replacement = self.build_label_filter_node(node, taken)
            nodes[index] = replacement
            if replacement["name"] != node_name:
                rename_node_references(fixed, node_name, replacement["name"])
            logger.info(
                "Replaced label check IF node %r with Code node %r", node_name, replacement["name"]
            )
            return fixed, (
                f"Replaced IF node '{node_name}' with Code node '{replacement['name']}' "
                "for Gmail label checking"
            )
        return fixed, None

