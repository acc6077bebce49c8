"""Validation of Zapier and Make workflow documents.

The top-level shape of each platform's export is described as a JSON Schema
and checked with jsonschema; the checks a schema cannot express (field
mappings, module references in routes and connections) run afterwards, and
only when the schema passes.
"""

import logging
import re
from collections.abc import Iterator
from typing import Any, Protocol

import jsonschema  # type: ignore[import-untyped,unused-ignore]

from src.validation.issues import Severity, ValidationIssue, ValidationReport

logger = logging.getLogger(__name__)

ZAPIER_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["trigger", "actions"],
    "properties": {
        "name": {"type": "string"},
        "trigger": {
            "type": "object",
            "required": ["app", "event"],
            "properties": {
                "app": {"type": "string", "minLength": 1},
                "event": {"type": "string", "minLength": 1},
                "input": {"type": "object"},
                "configuration": {"type": "object"},
            },
        },
        "actions": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["app", "action"],
                "properties": {
                    "app": {"type": "string", "minLength": 1},
                    "action": {"type": "string", "minLength": 1},
                    "input": {"type": "object"},
                    "configuration": {"type": "object"},
                    "conditions": {"type": "array"},
                },
            },
        },
    },
}

MAKE_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["modules"],
    "properties": {
        "name": {"type": "string"},
        "modules": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["id", "module", "version"],
                "properties": {
                    "id": {"type": "number"},
                    "module": {"type": "string", "minLength": 1},
                    "version": {"type": "number"},
                    "parameters": {"type": "object"},
                    "mapper": {"type": "object"},
                    "metadata": {"type": "object"},
                },
            },
        },
        "connections": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["srcModuleId", "dstModuleId"],
            },
        },
        "routes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"flow": {"type": "array"}, "filter": {"type": "object"}},
            },
        },
    },
}

# {{field}} in a Zapier input; a valid mapping names its step: {{trigger.subject}}
_ZAPIER_MAPPING = re.compile(r"\{\{([^}]+)\}\}")
# {{3.subject}} in a Make mapper
_MAKE_MAPPING = re.compile(r"\{\{(\d+)\.[^}]+\}\}")


class PlatformValidator(Protocol):
    def validate(self, workflow: Any) -> ValidationReport: ...


def format_json_path(path: Any) -> str:
    """Render a jsonschema path deque as ``actions[0].app``."""
    parts: list[str] = []
    for segment in path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        elif parts:
            parts.append(f".{segment}")
        else:
            parts.append(str(segment))
    return "".join(parts)


def schema_issues(schema: dict[str, Any], workflow: Any) -> list[ValidationIssue]:
    """One issue per schema violation; violations at the document root are critical."""
    validator_cls = jsonschema.validators.validator_for(schema)
    validator = validator_cls(schema)

    issues = []
    for error in sorted(validator.iter_errors(workflow), key=lambda e: list(e.absolute_path)):
        path = format_json_path(error.absolute_path)
        issues.append(
            ValidationIssue(
                kind="schema_violation",
                severity=Severity.HIGH if path else Severity.CRITICAL,
                message=f"{path or 'workflow'}: {error.message}",
                current_value=path or None,
            )
        )
    return issues


def _strings(value: Any, path: str = "") -> Iterator[tuple[str, str]]:
    """Yield (path, string) for every string nested in value."""
    if isinstance(value, str):
        yield path, value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from _strings(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from _strings(item, f"{path}[{index}]")


class ZapierValidator:
    """Checks a Zap: one trigger, a non-empty actions list, step-qualified field mappings."""

    def validate(self, workflow: Any) -> ValidationReport:
        errors = schema_issues(ZAPIER_SCHEMA, workflow)
        warnings: list[ValidationIssue] = []
        if errors:
            return ValidationReport.from_issues(errors, warnings)

        if not workflow.get("name"):
            warnings.append(
                ValidationIssue(kind="missing_name", severity=Severity.LOW, message="Zap has no name")
            )
        for index, action in enumerate(workflow["actions"]):
            ref = f"actions[{index}]"
            for key in ("input", "configuration"):
                for path, text in _strings(action.get(key)):
                    for match in _ZAPIER_MAPPING.finditer(text):
                        field = match.group(1).strip()
                        if "." in field:
                            continue
                        warnings.append(
                            ValidationIssue(
                                kind="invalid_mapping",
                                severity=Severity.MEDIUM,
                                node_ref=ref,
                                message=f"Field mapping {match.group(0)} in {ref}.{key}.{path} does not name a step",
                                current_value=match.group(0),
                                suggested_fix=f"Qualify the field with its step, e.g. {{{{trigger.{field}}}}}",
                            )
                        )

        report = ValidationReport.from_issues(errors, warnings)
        logger.debug("Validated zap %r: %d warnings", workflow.get("name"), report.summary.total_warnings)
        return report


class MakeValidator:
    """Checks a Make scenario: typed modules with unique ids, resolvable mappings, routes and connections."""

    def validate(self, workflow: Any) -> ValidationReport:
        errors = schema_issues(MAKE_SCHEMA, workflow)
        warnings: list[ValidationIssue] = []
        if errors:
            return ValidationReport.from_issues(errors, warnings)

        if not workflow.get("name"):
            warnings.append(
                ValidationIssue(kind="missing_name", severity=Severity.LOW, message="Scenario has no name")
            )

        module_ids: set[Any] = set()
        for module in workflow["modules"]:
            module_id = module["id"]
            if module_id in module_ids:
                errors.append(
                    ValidationIssue(
                        kind="duplicate_module_id",
                        severity=Severity.HIGH,
                        node_ref=str(module_id),
                        message=f"Duplicate module id: {module_id}",
                    )
                )
            module_ids.add(module_id)

            for _, text in _strings(module.get("mapper")):
                for match in _MAKE_MAPPING.finditer(text):
                    if int(match.group(1)) >= module_id:
                        warnings.append(
                            ValidationIssue(
                                kind="forward_reference",
                                severity=Severity.MEDIUM,
                                node_ref=str(module_id),
                                message=f"Module {module_id} maps {match.group(0)} from a later module",
                                current_value=match.group(0),
                            )
                        )

        for index, route in enumerate(workflow.get("routes") or []):
            flow = route.get("flow")
            if not isinstance(flow, list):
                errors.append(
                    ValidationIssue(
                        kind="invalid_route",
                        severity=Severity.HIGH,
                        node_ref=f"routes[{index}]",
                        message=f"Route {index} must have a flow array",
                    )
                )
                continue
            for module_id in flow:
                if module_id not in module_ids:
                    errors.append(
                        ValidationIssue(
                            kind="invalid_route_module",
                            severity=Severity.HIGH,
                            node_ref=f"routes[{index}]",
                            message=f"Route {index} references non-existent module {module_id}",
                            current_value=module_id,
                        )
                    )

        for index, connection in enumerate(workflow.get("connections") or []):
            for end in ("srcModuleId", "dstModuleId"):
                if connection[end] not in module_ids:
                    errors.append(
                        ValidationIssue(
                            kind="invalid_connection_module",
                            severity=Severity.HIGH,
                            node_ref=f"connections[{index}]",
                            message=f"Connection {index} {end} references non-existent module {connection[end]}",
                            current_value=connection[end],
                        )
                    )

        return ValidationReport.from_issues(errors, warnings)


PLATFORM_VALIDATORS: dict[str, type[PlatformValidator]] = {
    "zapier": ZapierValidator,
    "make": MakeValidator,
}
