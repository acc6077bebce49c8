"""Context-aware synthesis of IF node conditions.

Intent comes from the node name (plus the workflow name), source context from
the type of the node feeding the IF. Both are resolved through ordered keyword
rule tables; the first matching rule wins.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from src.fixers.gmail import GmailFixer
from src.validation.issues import ValidationIssue
from src.validation.structural import VALID_OPERATIONS, has_generic_placeholder
from src.workflow.nodes import NodeKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordRule:
    """Maps any (or all) of a set of keywords to a value."""

    keywords: tuple[str, ...]
    value: str
    require_all: bool = False

    def matches(self, text: str) -> bool:
        hits = (k in text for k in self.keywords)
        return all(hits) if self.require_all else any(hits)


def first_match(rules: list[KeywordRule], text: str, default: str) -> str:
    for rule in rules:
        if rule.matches(text):
            return rule.value
    return default


INTENT_RULES = [
    KeywordRule(("urgent", "emergency"), "urgent"),
    KeywordRule(("priority", "important"), "priority"),
    KeywordRule(("label", "tag"), "label"),
    KeywordRule(("rating", "score", "stars"), "rating"),
    KeywordRule(("status", "state"), "status"),
    KeywordRule(("amount", "price", "cost"), "amount"),
    KeywordRule(("contains", "includes"), "contains"),
    KeywordRule(("equals", "matches"), "equals"),
]

# Matched against the previous node's type string
SOURCE_RULES = [
    KeywordRule(("gmail",), "gmail"),
    KeywordRule(("googleSheets",), "sheets"),
    KeywordRule(("webhook",), "webhook"),
    KeywordRule(("form",), "form"),
]

OPERATION_RULES = [
    KeywordRule(("contains", "includes"), "contains"),
    KeywordRule(("starts", "begins"), "startsWith"),
    KeywordRule(("ends",), "endsWith"),
    KeywordRule(("greater", "more", ">"), "larger"),
    KeywordRule(("less", "<"), "smaller"),
    KeywordRule(("not", "equal"), "notEqual", require_all=True),
]

FIELD_RULES = [
    KeywordRule((name,), name)
    for name in (
        "subject",
        "title",
        "name",
        "email",
        "status",
        "priority",
        "rating",
        "amount",
        "price",
        "type",
        "category",
    )
]

COLUMN_RULES = [
    KeywordRule((name,), name)
    for name in (
        "name",
        "email",
        "status",
        "priority",
        "amount",
        "date",
        "title",
        "description",
        "category",
        "type",
        "id",
    )
]

# Operation names models commonly invent -> the n8n enumeration
OPERATION_ALIASES = {
    "largerThan": "larger",
    "greaterThan": "larger",
    "greater": "larger",
    "gt": "larger",
    "largerThanOrEqual": "largerEqual",
    "greaterThanOrEqual": "largerEqual",
    "greaterEqual": "largerEqual",
    "gte": "largerEqual",
    "smallerThan": "smaller",
    "lessThan": "smaller",
    "less": "smaller",
    "lt": "smaller",
    "smallerThanOrEqual": "smallerEqual",
    "lessThanOrEqual": "smallerEqual",
    "lessEqual": "smallerEqual",
    "lte": "smallerEqual",
    "equals": "equal",
    "eq": "equal",
    "is": "equal",
    "notEquals": "notEqual",
    "ne": "notEqual",
    "doesNotContain": "notContains",
    "isEmpty": "notExists",
    "isNotEmpty": "exists",
}

LABEL_REPLACEMENT_REASON = "Gmail label checking requires array operations"

# intent -> source context -> condition (or replacement)
CONDITION_PATTERNS: dict[str, dict[str, dict[str, Any]]] = {
    "urgent": {
        "gmail": {"leftValue": '={{$json["headers"]["subject"]}}', "rightValue": "urgent", "operation": "contains"},
        "default": {"leftValue": '={{$json["subject"]}}', "rightValue": "urgent", "operation": "contains"},
    },
    "priority": {
        "gmail": {"leftValue": '={{$json["headers"]["subject"]}}', "rightValue": "priority", "operation": "contains"},
        "default": {"leftValue": '={{$json["priority"]}}', "rightValue": "high", "operation": "equal"},
    },
    "label": {
        "gmail": {"replace_with": NodeKind.CODE.value, "reason": LABEL_REPLACEMENT_REASON},
    },
    "rating": {
        "default": {"leftValue": '={{$json["rating"]}}', "rightValue": 4, "operation": "largerEqual"},
    },
    "status": {
        "default": {"leftValue": '={{$json["status"]}}', "rightValue": "active", "operation": "equal"},
    },
    "amount": {
        "default": {"leftValue": '={{$json["amount"]}}', "rightValue": 100, "operation": "larger"},
    },
}

_STOP_WORDS = re.compile(r"\b(check|if|when|contains|equals|matches|is)\b")
_QUOTED = re.compile(r"[\"']([^\"']+)[\"']")
_CHECK_FIELD = re.compile(r"check[_\s]+([a-zA-Z]+)")


def normalize_operation(operation: Any) -> str | None:
    """Map an operation to the n8n enumeration, or None when unknown."""
    if operation in VALID_OPERATIONS:
        return operation
    if isinstance(operation, str):
        return OPERATION_ALIASES.get(operation) or OPERATION_ALIASES.get(operation.strip())
    return None


@dataclass
class ConditionFix:
    """Either a synthesized condition or an instruction to replace the node."""

    replace: bool
    condition: dict[str, Any] | None = None
    node_type: str | None = None
    reason: str | None = None
    # set when a Code node would express a kept IF condition better
    advice: str | None = None


@dataclass
class NodePatch:
    node: dict[str, Any]
    fixes: list[str] = field(default_factory=list)


class ConditionFixer:
    """Fixes IF node conditions based on node names and the preceding node."""

    def __init__(self, gmail_fixer: GmailFixer | None = None):
        self.gmail_fixer = gmail_fixer or GmailFixer()

    def detect_intent(self, node_name: str, workflow_name: str = "") -> str:
        return first_match(INTENT_RULES, f"{node_name} {workflow_name}".lower(), "default")

    def detect_source(self, previous_type: Any) -> str:
        if not isinstance(previous_type, str):
            return "default"
        return first_match(SOURCE_RULES, previous_type, "default")

    def detect_operation(self, node_name: str) -> str:
        return first_match(OPERATION_RULES, node_name, "equal")

    def extract_search_term(self, node_name: str) -> str:
        cleaned = _STOP_WORDS.sub("", node_name).strip()
        quoted = _QUOTED.search(cleaned)
        if quoted:
            return quoted.group(1)
        words = cleaned.split()
        return words[-1] if words else "value"

    def extract_field_name(self, node_name: str) -> str:
        name = first_match(FIELD_RULES, node_name, "")
        if not name:
            match = _CHECK_FIELD.search(node_name)
            name = match.group(1) if match else "value"
        # "field" is the placeholder token itself
        return "value" if name == "field" else name

    def extract_column_name(self, node_name: str) -> str:
        return first_match(COLUMN_RULES, node_name, "value")

    def fix(
        self,
        node: dict[str, Any],
        previous_node: dict[str, Any] | None,
        context: dict[str, Any] | None = None,
    ) -> ConditionFix:
        """Synthesize a condition for node, or say which node type should replace it."""
        context = context or {}
        node_name = str(node.get("name") or "").lower()
        workflow_name = str(context.get("workflow_name") or "")
        intent = self.detect_intent(node_name, workflow_name)
        source = self.detect_source((previous_node or {}).get("type"))
        logger.debug("Condition intent=%s source=%s for %r", intent, source, node.get("name"))

        if source == "gmail" and self.gmail_fixer.is_label_check(node, previous_node):
            logger.info("Replacing Gmail label check %r with a Code node", node.get("name"))
            return ConditionFix(replace=True, node_type=NodeKind.CODE.value, reason=LABEL_REPLACEMENT_REASON)

        pattern = CONDITION_PATTERNS.get(intent, {})
        chosen = pattern.get(source) or pattern.get("default")
        if chosen and "replace_with" in chosen:
            logger.info(
                "Suggesting %s node instead of IF for %r: %s",
                chosen["replace_with"],
                node.get("name"),
                chosen["reason"],
            )
            return ConditionFix(replace=True, node_type=chosen["replace_with"], reason=chosen["reason"])
        condition = dict(chosen) if chosen else self._contextual_condition(source, node_name)
        _, advice = self.should_use_code_node(intent, source, node_name)
        return ConditionFix(replace=False, condition=condition, advice=advice)

    def _contextual_condition(self, source: str, node_name: str) -> dict[str, Any]:
        if source == "gmail":
            if "from" in node_name or "sender" in node_name:
                return {
                    "leftValue": '={{$json["headers"]["from"]}}',
                    "rightValue": self.extract_search_term(node_name),
                    "operation": "contains",
                }
            if "attachment" in node_name:
                return {
                    "leftValue": '={{$json["attachments"].length}}',
                    "rightValue": 0,
                    "operation": "larger",
                }
            return {
                "leftValue": '={{$json["headers"]["subject"]}}',
                "rightValue": self.extract_search_term(node_name),
                "operation": "contains",
            }

        if source == "sheets":
            field_name = self.extract_column_name(node_name)
        else:
            field_name = self.extract_field_name(node_name)
        return {
            "leftValue": f'={{{{$json["{field_name}"]}}}}',
            "rightValue": self.extract_search_term(node_name),
            "operation": self.detect_operation(node_name),
        }

    def should_use_code_node(self, intent: str, source: str, node_name: str) -> tuple[bool, str | None]:
        """Advisory: would a Code node express this check better than an IF?"""
        node_name = node_name.lower()
        if source == "gmail" and (intent == "label" or "label" in node_name):
            return True, (
                "Gmail label checking requires array operations - use Code node with: "
                'return items.filter(item => item.json.labelIds?.includes("LABEL_NAME"))'
            )
        if any(k in node_name for k in ("count", "length", "multiple")):
            return True, "Array operations are better handled with Code node"
        return False, None

    def patch_node(
        self,
        node: dict[str, Any],
        previous_node: dict[str, Any] | None,
        issues: list[ValidationIssue],
        synthesized: dict[str, Any],
    ) -> NodePatch:
        """Repair the flagged conditions of an IF node.

        Order per condition: Gmail field remapping, then the synthesized
        condition for placeholder/empty references, then operation aliases.
        Returns a patched copy; the input node is not modified.
        """
        patched = copy.deepcopy(node)
        name = patched.get("name")
        fixes: list[str] = []

        params = patched.get("parameters")
        if not isinstance(params, dict):
            params = patched["parameters"] = {}
        wrapper = params.get("conditions")
        if not isinstance(wrapper, dict):
            wrapper = params["conditions"] = {"conditions": []}
        conditions = wrapper.get("conditions")
        if not isinstance(conditions, list):
            conditions = []

        if not conditions:
            wrapper["conditions"] = [dict(synthesized)]
            fixes.append(f"Created condition for '{name}': {_describe(synthesized)}")
            return NodePatch(node=patched, fixes=fixes)

        flagged = {i.condition_index for i in issues if i.condition_index is not None}
        from_mail = previous_node is not None and self.detect_source(previous_node.get("type")) == "gmail"
        sheets_generic = {
            i.condition_index for i in issues if i.kind == "sheets_generic_field"
        }

        for index, condition in enumerate(conditions):
            if index not in flagged:
                continue
            fixed = dict(condition) if isinstance(condition, dict) else {}
            left = fixed.get("leftValue")

            if from_mail and isinstance(left, str):
                remapped = self.gmail_fixer.remap_fields(left)
                if remapped != left:
                    fixed["leftValue"] = left = remapped
                    fixes.append(f"Remapped Gmail field in '{name}' condition {index + 1}")

            if (
                not isinstance(left, str)
                or not left.strip()
                or has_generic_placeholder(left)
                or index in sheets_generic
            ):
                fixed["leftValue"] = synthesized["leftValue"]
                if fixed.get("rightValue") in (None, ""):
                    fixed["rightValue"] = synthesized["rightValue"]
                fixes.append(
                    f"Replaced field reference in '{name}' condition {index + 1} with {synthesized['leftValue']}"
                )

            operation = fixed.get("operation")
            if operation not in VALID_OPERATIONS:
                fixed["operation"] = normalize_operation(operation) or synthesized["operation"]
                fixes.append(
                    f"Changed operation in '{name}' condition {index + 1} from {operation!r} to {fixed['operation']!r}"
                )

            conditions[index] = fixed

        wrapper["conditions"] = conditions
        return NodePatch(node=patched, fixes=fixes)


def _describe(condition: dict[str, Any]) -> str:
    return f"{condition.get('leftValue')} {condition.get('operation')} {condition.get('rightValue')!r}"
