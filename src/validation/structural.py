"""Structural and context-aware validation of n8n workflow graphs."""

import logging
import re
from collections.abc import Iterator
from typing import Any

from src.validation.issues import Severity, ValidationIssue, ValidationReport
from src.workflow.analysis import find_cycle
from src.workflow.nodes import NodeKind, is_mail_type, is_sheets_type

logger = logging.getLogger(__name__)

VALID_OPERATIONS = (
    "equal",
    "notEqual",
    "contains",
    "notContains",
    "startsWith",
    "notStartsWith",
    "endsWith",
    "notEndsWith",
    "regex",
    "notRegex",
    "larger",
    "largerEqual",
    "smaller",
    "smallerEqual",
    "exists",
    "notExists",
)

GENERIC_PLACEHOLDER_PATTERNS = [
    re.compile(r'\$json\["field"\]'),
    re.compile(r"\$json\['field'\]"),
    # $json.field but not $json.fieldname / $json.fieldName / $json.field_
    re.compile(r"\$json\.field(?!name|Name|_)"),
]

# Flat mail fields; the trigger exposes these under "headers"
INVALID_MAIL_FIELD_PATTERNS = [
    re.compile(r'\$json\["email"\]'),
    re.compile(r'\$json\["from"\]'),
    re.compile(r'\$json\["subject"\]'),
]

GENERIC_FIELD = '$json["field"]'


def has_generic_placeholder(value: Any) -> bool:
    """True when value contains an un-substituted ``$json["field"]``-style reference."""
    return isinstance(value, str) and any(p.search(value) for p in GENERIC_PLACEHOLDER_PATTERNS)


def get_conditions(node: dict[str, Any]) -> list[Any]:
    """The ``parameters.conditions.conditions`` list of an IF node, or []."""
    params = node.get("parameters")
    if not isinstance(params, dict):
        return []
    wrapper = params.get("conditions")
    if not isinstance(wrapper, dict):
        return []
    conditions = wrapper.get("conditions")
    return conditions if isinstance(conditions, list) else []


def _strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for v in value.values():
            yield from _strings(v)
    elif isinstance(value, list):
        for v in value:
            yield from _strings(v)


def suggest_field_fix(previous_node: dict[str, Any] | None) -> str:
    """Suggest a concrete field reference based on the preceding node."""
    if previous_node is None:
        return 'Use specific field name instead of generic "field"'
    prev_type = previous_node.get("type")
    if is_mail_type(prev_type):
        return 'For Gmail: use $json["headers"]["subject"], $json["headers"]["from"], etc.'
    if is_sheets_type(prev_type):
        return 'For Google Sheets: use column names like $json["Name"], $json["Email"]'
    if isinstance(prev_type, str) and "webhook" in prev_type:
        return 'For Webhook: use form field names like $json["name"], $json["email"]'
    return "Use specific field name relevant to your data"


def suggest_mail_field_fix(current_value: str) -> str:
    if "email" in current_value or "from" in current_value:
        return 'Use $json["headers"]["from"] for Gmail sender'
    if "subject" in current_value:
        return 'Use $json["headers"]["subject"] for Gmail subject'
    return 'Use proper Gmail field structure: $json["headers"]["fieldname"]'


class StructuralValidator:
    """Validates workflow structure and catches common generation mistakes.

    Issues are split into errors (which make the workflow invalid) and
    warnings. Nodes are checked in list order so conditions can be judged
    against the node that precedes them.
    """

    def validate(self, workflow: Any) -> ValidationReport:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if not isinstance(workflow, dict):
            errors.append(
                ValidationIssue(
                    kind="invalid_nodes",
                    severity=Severity.CRITICAL,
                    message="Workflow must be a JSON object with a nodes array",
                )
            )
            return ValidationReport.from_issues(errors, warnings)

        self._check_basic_structure(workflow, errors, warnings)

        nodes = workflow.get("nodes")
        if isinstance(nodes, list):
            seen_names: set[str] = set()
            previous: dict[str, Any] | None = None
            for node in nodes:
                if not isinstance(node, dict):
                    errors.append(
                        ValidationIssue(
                            kind="missing_node_type",
                            severity=Severity.CRITICAL,
                            message="Node entry is not an object",
                        )
                    )
                    continue
                self._check_node(node, previous, seen_names, errors, warnings)
                previous = node

        self._check_connections(workflow, errors)
        self._check_cycles(workflow, warnings)

        report = ValidationReport.from_issues(errors, warnings)
        logger.debug(
            "Validated workflow %r: %d errors (%d critical), %d warnings",
            workflow.get("name"),
            report.summary.total_issues,
            report.summary.critical_issues,
            report.summary.total_warnings,
        )
        return report

    def _check_basic_structure(
        self,
        workflow: dict[str, Any],
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        if not workflow.get("name"):
            warnings.append(
                ValidationIssue(
                    kind="missing_name",
                    severity=Severity.LOW,
                    message="Workflow is missing a name",
                )
            )
        if not isinstance(workflow.get("nodes"), list):
            errors.append(
                ValidationIssue(
                    kind="invalid_nodes",
                    severity=Severity.CRITICAL,
                    message="Workflow must have a nodes array",
                )
            )
        if not isinstance(workflow.get("connections"), dict):
            warnings.append(
                ValidationIssue(
                    kind="missing_connections",
                    severity=Severity.MEDIUM,
                    message="Workflow should have connections object",
                )
            )

    def _check_node(
        self,
        node: dict[str, Any],
        previous: dict[str, Any] | None,
        seen_names: set[str],
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        name = node.get("name")
        node_type = node.get("type")

        if not node.get("id"):
            errors.append(
                ValidationIssue(
                    kind="missing_node_id",
                    severity=Severity.CRITICAL,
                    node_ref=name,
                    message="Node is missing required ID",
                )
            )
        if not node_type:
            errors.append(
                ValidationIssue(
                    kind="missing_node_type",
                    severity=Severity.CRITICAL,
                    node_ref=name,
                    message="Node is missing required type",
                )
            )
        if isinstance(name, str) and name:
            if name in seen_names:
                errors.append(
                    ValidationIssue(
                        kind="duplicate_node_name",
                        severity=Severity.HIGH,
                        node_ref=name,
                        message=f'Duplicate node name: "{name}"',
                        suggested_fix='Add a numeric suffix, e.g. "Webhook 2"',
                    )
                )
            seen_names.add(name)

        if node_type == NodeKind.IF:
            self._check_if_node(node, previous, errors, warnings)
        if is_mail_type(node_type):
            self._check_mail_node(node, errors)

    def _check_if_node(
        self,
        node: dict[str, Any],
        previous: dict[str, Any] | None,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        name = node.get("name")
        conditions = get_conditions(node)
        if not conditions:
            errors.append(
                ValidationIssue(
                    kind="empty_if_conditions",
                    severity=Severity.CRITICAL,
                    node_ref=name,
                    message="IF node has no conditions",
                )
            )
            return

        for index, condition in enumerate(conditions):
            if not isinstance(condition, dict):
                condition = {}
            left = condition.get("leftValue")
            left_str = left if isinstance(left, str) else ""

            if has_generic_placeholder(left_str):
                errors.append(
                    ValidationIssue(
                        kind="generic_placeholder",
                        severity=Severity.CRITICAL,
                        node_ref=name,
                        condition_index=index,
                        message=(
                            f"IF node condition {index + 1} contains generic placeholder "
                            "instead of specific field reference"
                        ),
                        current_value=left_str,
                        suggested_fix=suggest_field_fix(previous),
                    )
                )

            if previous is not None:
                self._check_condition_context(node, condition, left_str, index, previous, errors, warnings)

            if not left_str.strip():
                errors.append(
                    ValidationIssue(
                        kind="empty_left_value",
                        severity=Severity.CRITICAL,
                        node_ref=name,
                        condition_index=index,
                        message=f"IF node condition {index + 1} has empty leftValue",
                    )
                )

            operation = condition.get("operation")
            if operation not in VALID_OPERATIONS:
                errors.append(
                    ValidationIssue(
                        kind="invalid_operation",
                        severity=Severity.HIGH,
                        node_ref=name,
                        condition_index=index,
                        message=f"IF node condition {index + 1} has invalid operation: {operation}",
                        current_value=operation,
                        suggested_fix=f"Use one of: {', '.join(VALID_OPERATIONS)}",
                    )
                )

    def _check_condition_context(
        self,
        node: dict[str, Any],
        condition: dict[str, Any],
        left: str,
        index: int,
        previous: dict[str, Any],
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        name = node.get("name") or ""
        prev_type = previous.get("type")

        if is_mail_type(prev_type):
            if any(p.search(left) for p in INVALID_MAIL_FIELD_PATTERNS):
                errors.append(
                    ValidationIssue(
                        kind="invalid_gmail_field",
                        severity=Severity.HIGH,
                        node_ref=name,
                        condition_index=index,
                        message=f"Gmail IF condition uses invalid field reference: {left}",
                        current_value=left,
                        suggested_fix=suggest_mail_field_fix(left),
                    )
                )
            if "label" in left and "label" in name.lower():
                warnings.append(
                    ValidationIssue(
                        kind="gmail_label_check",
                        severity=Severity.MEDIUM,
                        node_ref=name,
                        condition_index=index,
                        message="Gmail label checking should use Code node instead of IF node",
                        suggested_fix=(
                            "Replace with Code node using: return items.filter(item => "
                            'item.json.labelIds?.includes("LABEL_NAME"))'
                        ),
                    )
                )

        if is_sheets_type(prev_type) and GENERIC_FIELD in left:
            warnings.append(
                ValidationIssue(
                    kind="sheets_generic_field",
                    severity=Severity.MEDIUM,
                    node_ref=name,
                    condition_index=index,
                    message="Google Sheets condition should reference specific column names",
                    suggested_fix='Use actual column names like $json["Name"] or $json["Email"]',
                )
            )

    def _check_mail_node(self, node: dict[str, Any], errors: list[ValidationIssue]) -> None:
        name = node.get("name")
        values = list(_strings(node.get("parameters")))
        if any(GENERIC_FIELD in v for v in values):
            errors.append(
                ValidationIssue(
                    kind="gmail_generic_field",
                    severity=Severity.HIGH,
                    node_ref=name,
                    message="Gmail node contains generic field reference instead of proper Gmail structure",
                    suggested_fix=(
                        'Use proper Gmail field references like $json["headers"]["subject"] '
                        'or $json["headers"]["from"]'
                    ),
                )
            )
        if any(p.search(v) for v in values for p in INVALID_MAIL_FIELD_PATTERNS):
            errors.append(
                ValidationIssue(
                    kind="invalid_gmail_field_reference",
                    severity=Severity.HIGH,
                    node_ref=name,
                    message="Gmail node uses incorrect field reference pattern",
                    suggested_fix='Gmail fields should be accessed via headers object: $json["headers"]["fieldname"]',
                )
            )

    def _check_connections(self, workflow: dict[str, Any], errors: list[ValidationIssue]) -> None:
        connections = workflow.get("connections")
        if not isinstance(connections, dict):
            return
        names = {n.get("name") for n in workflow.get("nodes") or [] if isinstance(n, dict)}

        for source, outputs in connections.items():
            if source not in names:
                errors.append(
                    ValidationIssue(
                        kind="invalid_source_connection",
                        severity=Severity.HIGH,
                        node_ref=source,
                        message=f'Connection source "{source}" does not exist',
                    )
                )
                continue
            for target in _edge_targets(outputs):
                if target not in names:
                    errors.append(
                        ValidationIssue(
                            kind="invalid_target_connection",
                            severity=Severity.HIGH,
                            node_ref=source,
                            message=f'Connection target "{target}" does not exist',
                            current_value=target,
                        )
                    )


    def _check_cycles(self, workflow: dict[str, Any], warnings: list[ValidationIssue]) -> None:
        cycle = find_cycle(workflow)
        if cycle:
            warnings.append(
                ValidationIssue(
                    kind="potential_loop",
                    severity=Severity.LOW,
                    node_ref=cycle[0],
                    message="Potential infinite loop detected: " + " -> ".join(cycle),
                    current_value=cycle,
                )
            )

def _edge_targets(outputs: Any) -> Iterator[Any]:
    if not isinstance(outputs, dict):
        return
    for ports in outputs.values():
        if not isinstance(ports, list):
            continue
        for port in ports:
            if not isinstance(port, list):
                continue
            for edge in port:
                if isinstance(edge, dict):
                    yield edge.get("node")
