"""Bounded validate/fix/regenerate loop for generated workflows.

Each attempt validates the current workflow, applies format normalization and
condition repair (each step reverted if it adds critical issues), re-validates,
and, when critical issues remain, asks the model for a refined version. The
loop is iterative and stops at ``max_attempts``, which is itself clamped to a
configured ceiling.

Zapier and Make documents are checked against their platform schemas. They
have no local repair, so an invalid document can only be regenerated.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from src.exceptions import FlowForgeError
from src.fixers.condition import ConditionFixer
from src.fixers.format import PlatformFormatFixer
from src.fixers.gmail import GmailFixer
from src.llm.client import GenerationClient
from src.orchestrator.validation_cache import ValidationCache
from src.prompts.composer import compose_refinement, compose_system_prompt
from src.validation.issues import ValidationIssue, ValidationReport
from src.validation.platforms import PLATFORM_VALIDATORS, PlatformValidator
from src.validation.structural import StructuralValidator
from src.workflow.export import clean_for_export
from src.workflow.extractor import extract_json
from src.workflow.nodes import NodeKind, classify

logger = logging.getLogger(__name__)

# Platforms whose workflows get local format and condition repair
REPAIRABLE_PLATFORMS = frozenset({"n8n"})

DEFAULT_MAX_ATTEMPTS_CAP = 5

# Warnings that still trigger a repair pass
FIXABLE_WARNING_KINDS = frozenset({"gmail_label_check"})

# Issue kind -> user-facing hint
ISSUE_HINTS: dict[str, str] = {
    "missing_node_type": "Check node type casing and naming",
    "missing_node_id": "Give every node a unique id",
    "duplicate_node_name": "Ensure all node names are unique",
    "empty_if_conditions": "Describe the condition to check in the request",
    "generic_placeholder": "Name the exact field each condition should test",
    "empty_left_value": "Name the exact field each condition should test",
    "invalid_operation": "Use a supported comparison (equals, contains, greater than...)",
    "invalid_gmail_field": "Gmail fields live under headers (headers.subject, headers.from)",
    "invalid_gmail_field_reference": "Gmail fields live under headers (headers.subject, headers.from)",
    "gmail_generic_field": "Reference concrete Gmail fields",
    "gmail_label_check": "Gmail label checks work best as a Code node filter",
    "sheets_generic_field": "Reference Google Sheets columns by name",
    "invalid_source_connection": "Ensure all connected nodes exist",
    "invalid_target_connection": "Ensure all referenced nodes exist in the workflow",
    "missing_connections": "Connect the workflow nodes together",
    "potential_loop": "Check that the connection cycle has an exit condition",
    "invalid_nodes": "Fix JSON structure errors",
    "missing_name": "Give the workflow a descriptive name",
    "schema_violation": "Match the platform's import format",
    "invalid_mapping": "Qualify Zapier field mappings with their step (trigger.field)",
    "duplicate_module_id": "Give every Make module a unique id",
    "forward_reference": "Map Make fields only from earlier modules",
    "invalid_route": "Give every Make route a flow array",
    "invalid_route_module": "Route only to Make modules that exist",
    "invalid_connection_module": "Connect only Make modules that exist",
}


class GenerationAttempt(BaseModel):
    """One pass of the validation loop."""

    attempt_number: int
    workflow_snapshot: Any
    issues: list[ValidationIssue] = Field(default_factory=list)
    remaining_issues: list[ValidationIssue] = Field(default_factory=list)
    fixes_applied: list[str] = Field(default_factory=list)
    regenerated: bool = False
    success: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RegenerationUsage(BaseModel):
    """Tokens and cost of the regeneration calls made during one run."""

    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0


class ValidationOutcome(BaseModel):
    success: bool
    attempts: int
    history: list[GenerationAttempt] = Field(default_factory=list)
    workflow: Any
    report: ValidationReport
    suggestions: list[str] = Field(default_factory=list)
    from_cache: bool = False
    regeneration_usage: RegenerationUsage = Field(default_factory=RegenerationUsage)

    def raise_for_failure(self) -> None:
        """Raise SchemaValidationError when the loop ended with errors."""
        if not self.success:
            self.report.raise_for_errors()


def has_fixable_warnings(report: ValidationReport) -> bool:
    return any(w.kind in FIXABLE_WARNING_KINDS for w in report.warnings)


def is_clean(report: ValidationReport) -> bool:
    return report.valid and not has_fixable_warnings(report)


def _rank(report: ValidationReport) -> tuple[int, int]:
    return report.summary.critical_issues, report.summary.total_issues


def _merge_issues(*groups: Sequence[ValidationIssue]) -> list[ValidationIssue]:
    """Concatenate issue lists, keeping the first of each (kind, node, message)."""
    seen: set[tuple[str, str | None, str]] = set()
    merged = []
    for group in groups:
        for issue in group:
            key = (issue.kind, issue.node_ref, issue.message)
            if key not in seen:
                seen.add(key)
                merged.append(issue)
    return merged


def _describe_suggestion(suggestion: dict[str, str]) -> str:
    return (
        f"{suggestion['node']}: consider {suggestion['suggested']} instead of "
        f"{suggestion['current']} ({suggestion['reason']})"
    )


class ValidationOrchestrator:
    """Drives a workflow through validation and repair.

    Collaborators are passed in; anything omitted gets a fresh default
    instance. Without a ``regenerator`` the loop only applies local fixes.
    """

    def __init__(
        self,
        validator: StructuralValidator | None = None,
        format_fixer: PlatformFormatFixer | None = None,
        condition_fixer: ConditionFixer | None = None,
        gmail_fixer: GmailFixer | None = None,
        regenerator: GenerationClient | None = None,
        cache: ValidationCache | None = None,
        regeneration_temperature: float = 0.3,
        max_attempts_cap: int = DEFAULT_MAX_ATTEMPTS_CAP,
        platform_validators: dict[str, PlatformValidator] | None = None,
    ):
        self.validator = validator or StructuralValidator()
        self.format_fixer = format_fixer or PlatformFormatFixer()
        self.gmail_fixer = gmail_fixer or GmailFixer()
        self.condition_fixer = condition_fixer or ConditionFixer(self.gmail_fixer)
        self.regenerator = regenerator
        self.cache = cache
        self.regeneration_temperature = regeneration_temperature
        self.max_attempts_cap = max(1, max_attempts_cap)
        self.platform_validators = platform_validators or {
            name: validator_cls() for name, validator_cls in PLATFORM_VALIDATORS.items()
        }

    def validator_for(self, platform: str) -> StructuralValidator | PlatformValidator:
        if platform in REPAIRABLE_PLATFORMS:
            return self.validator
        try:
            return self.platform_validators[platform]
        except KeyError:
            raise FlowForgeError(f"No validator for platform {platform!r}") from None

    def clamp_attempts(self, max_attempts: int) -> int:
        clamped = min(max(1, max_attempts), self.max_attempts_cap)
        if clamped != max_attempts:
            logger.warning("max_attempts %d out of range, using %d", max_attempts, clamped)
        return clamped

    async def validate_and_fix(
        self,
        workflow: Any,
        original_prompt: str = "",
        *,
        max_attempts: int = 3,
        platform: str = "n8n",
        bypass_cache: bool = False,
        regenerator: GenerationClient | None = None,
        normalize: bool = False,
    ) -> ValidationOutcome:
        """Validate, repair and optionally regenerate until clean or out of attempts.

        ``regenerator`` overrides the client given at construction for this call.
        With ``normalize`` the raw workflow is validated before the first format
        fix, so attempt 1 reports what the model actually produced and lists the
        normalization among its fixes.
        """
        validator = self.validator_for(platform)
        repairable = platform in REPAIRABLE_PLATFORMS

        if self.cache is not None and not bypass_cache:
            cached = self.cache.get(workflow, platform)
            if cached is not None:
                cached.from_cache = True
                return cached

        max_attempts = self.clamp_attempts(max_attempts)
        regenerator = regenerator or self.regenerator
        current = copy.deepcopy(workflow)
        history: list[GenerationAttempt] = []
        fixer_suggestions: list[dict[str, str]] = []
        usage = RegenerationUsage()
        best: tuple[Any, ValidationReport] | None = None

        raw_issues: list[ValidationIssue] = []
        pending_fixes: list[str] = []
        if normalize and repairable:
            current, raw_report, pending_fixes, suggestions = self._normalize(current)
            raw_issues = raw_report.issues
            fixer_suggestions.extend(suggestions)

        for attempt_number in range(1, max_attempts + 1):
            report = validator.validate(current)
            logger.info(
                "Validation attempt %d/%d: %d errors (%d critical), %d warnings",
                attempt_number,
                max_attempts,
                report.summary.total_issues,
                report.summary.critical_issues,
                report.summary.total_warnings,
            )
            if best is None or _rank(report) < _rank(best[1]):
                best = (current, report)
            issues = _merge_issues(raw_issues, report.issues) if attempt_number == 1 else report.issues

            if is_clean(report):
                history.append(
                    GenerationAttempt(
                        attempt_number=attempt_number,
                        workflow_snapshot=copy.deepcopy(current),
                        issues=issues,
                        remaining_issues=report.issues,
                        fixes_applied=pending_fixes,
                        success=True,
                    )
                )
                return self._finish(
                    workflow, current, report, history, fixer_suggestions, usage, platform, success=True
                )

            if repairable:
                fixed, final_report, repair_fixes, suggestions = self._repair(current, report)
            else:
                fixed, final_report, repair_fixes, suggestions = current, report, [], []
            fixes = [*pending_fixes, *repair_fixes]
            pending_fixes = []
            fixer_suggestions.extend(s for s in suggestions if s not in fixer_suggestions)
            if _rank(final_report) < _rank(best[1]):
                best = (fixed, final_report)

            # A warning the repair could not remove does not fail the workflow
            success = final_report.valid
            regenerated = False
            next_workflow = fixed
            needs_model = final_report.summary.critical_issues > 0 or not repairable
            if not success and needs_model and attempt_number < max_attempts and regenerator is not None:
                outstanding = self._accumulated_issues(history, final_report)
                refined = await self._regenerate(regenerator, original_prompt, fixed, outstanding, platform, usage)
                if refined is not None:
                    next_workflow = refined
                    regenerated = True

            history.append(
                GenerationAttempt(
                    attempt_number=attempt_number,
                    workflow_snapshot=copy.deepcopy(fixed),
                    issues=issues,
                    remaining_issues=final_report.issues,
                    fixes_applied=fixes,
                    regenerated=regenerated,
                    success=success,
                )
            )
            if success:
                return self._finish(
                    workflow, fixed, final_report, history, fixer_suggestions, usage, platform, success=True
                )

            if not regenerated and not repair_fixes:
                logger.info("No further fixes available after attempt %d", attempt_number)
                break
            current = next_workflow

        best_workflow, best_report = best
        logger.warning(
            "Validation exhausted after %d attempts with %d critical issues",
            len(history),
            best_report.summary.critical_issues,
        )
        return self._finish(
            workflow, best_workflow, best_report, history, fixer_suggestions, usage, platform, success=False
        )

    def _normalize(self, workflow: Any) -> tuple[Any, ValidationReport, list[str], list[dict[str, str]]]:
        """Validate the raw workflow, then format-fix it unless that adds critical issues."""
        raw_report = self.validator.validate(workflow)
        result = self.format_fixer.fix(workflow)
        fixed_report = self.validator.validate(result.workflow)
        if fixed_report.summary.critical_issues > raw_report.summary.critical_issues:
            logger.warning(
                "Format fixes raised critical issues from %d to %d; validating the raw workflow",
                raw_report.summary.critical_issues,
                fixed_report.summary.critical_issues,
            )
            return workflow, raw_report, [], []
        return result.workflow, raw_report, result.fixes, result.suggestions

    def _repair(
        self, workflow: Any, report: ValidationReport
    ) -> tuple[Any, ValidationReport, list[str], list[dict[str, str]]]:
        """Format fix then condition fix; a step that adds critical issues is undone."""
        fixes: list[str] = []

        result = self.format_fixer.fix(workflow)
        formatted_report = self.validator.validate(result.workflow)
        if formatted_report.summary.critical_issues > report.summary.critical_issues:
            logger.warning(
                "Format fixes raised critical issues from %d to %d; reverting",
                report.summary.critical_issues,
                formatted_report.summary.critical_issues,
            )
            formatted, formatted_report = workflow, report
        else:
            formatted = result.workflow
            fixes.extend(result.fixes)

        patched, condition_fixes, advice = self._fix_conditions(formatted, formatted_report)
        suggestions = [*result.suggestions, *advice]
        if not condition_fixes:
            return formatted, formatted_report, fixes, suggestions

        patched_report = self.validator.validate(patched)
        if patched_report.summary.critical_issues > formatted_report.summary.critical_issues:
            logger.warning("Condition fixes raised critical issues; reverting")
            return formatted, formatted_report, fixes, suggestions
        fixes.extend(condition_fixes)
        return patched, patched_report, fixes, suggestions

    def _fix_conditions(
        self, workflow: Any, report: ValidationReport
    ) -> tuple[Any, list[str], list[dict[str, str]]]:
        by_node: dict[str, list[ValidationIssue]] = {}
        for issue in report.issues:
            if issue.is_condition_issue:
                by_node.setdefault(issue.node_ref, []).append(issue)
        if not by_node or not isinstance(workflow, dict) or not isinstance(workflow.get("nodes"), list):
            return workflow, [], []

        fixed = copy.deepcopy(workflow)
        fixes: list[str] = []
        advice: list[dict[str, str]] = []
        context = {"workflow_name": fixed.get("name") or ""}

        for node_name, issues in by_node.items():
            nodes = fixed["nodes"]
            position, previous = None, None
            last_dict = None
            for i, candidate in enumerate(nodes):
                if not isinstance(candidate, dict):
                    continue
                if candidate.get("name") == node_name:
                    position, previous = i, last_dict
                    break
                last_dict = candidate
            if position is None or classify(nodes[position].get("type")) is not NodeKind.IF:
                continue

            node = nodes[position]
            decision = self.condition_fixer.fix(node, previous, context)
            if decision.replace:
                fixed, description = self.gmail_fixer.replace_with_label_filter(fixed, node_name)
                if description:
                    fixes.append(description)
                continue

            if decision.advice:
                advice.append(
                    {
                        "node": node_name,
                        "current": str(node.get("type")),
                        "suggested": NodeKind.CODE.value,
                        "reason": decision.advice,
                    }
                )
            patch = self.condition_fixer.patch_node(node, previous, issues, decision.condition)
            nodes[position] = patch.node
            fixes.extend(patch.fixes)

        return fixed, fixes, advice

    def _accumulated_issues(
        self, history: Sequence[GenerationAttempt], report: ValidationReport
    ) -> list[ValidationIssue]:
        return _merge_issues([i for a in history for i in a.remaining_issues], report.issues)

    async def _regenerate(
        self,
        regenerator: GenerationClient,
        original_prompt: str,
        workflow: Any,
        issues: list[ValidationIssue],
        platform: str,
        usage: RegenerationUsage,
    ) -> dict[str, Any] | None:
        """Ask the model for a corrected workflow; None keeps the current one."""
        prompt = compose_refinement(original_prompt, workflow, issues)
        system_prompt = compose_system_prompt(platform)
        try:
            completion = await regenerator.generate(
                prompt,
                temperature=self.regeneration_temperature,
                system_prompt=system_prompt,
                request_type="regenerate",
                platform=platform,
            )
        except FlowForgeError as e:
            logger.warning("Refined regeneration failed, keeping current workflow: %s", e)
            return None

        input_tokens = completion.usage.input_tokens or regenerator.estimate_tokens(f"{system_prompt}\n{prompt}")
        output_tokens = completion.usage.output_tokens or regenerator.estimate_tokens(completion.content)
        usage.calls += 1
        usage.input_tokens += input_tokens
        usage.output_tokens += output_tokens
        usage.cost += regenerator.calculate_cost(input_tokens, output_tokens, completion.model)

        try:
            parsed = extract_json(completion.content)
        except FlowForgeError as e:
            logger.warning("Refined regeneration was unparseable, keeping current workflow: %s", e)
            return None
        if not isinstance(parsed, dict):
            logger.warning("Refined regeneration returned a %s, keeping current workflow", type(parsed).__name__)
            return None
        logger.info("Regenerated workflow with %d outstanding issues", len(issues))
        return clean_for_export(parsed, platform)

    def _finish(
        self,
        original: Any,
        workflow: Any,
        report: ValidationReport,
        history: list[GenerationAttempt],
        fixer_suggestions: list[dict[str, str]],
        usage: RegenerationUsage,
        platform: str,
        *,
        success: bool,
    ) -> ValidationOutcome:
        outcome = ValidationOutcome(
            success=success,
            attempts=len(history),
            history=history,
            workflow=workflow,
            report=report,
            suggestions=self.generate_suggestions(history, fixer_suggestions),
            regeneration_usage=usage,
        )
        if success and self.cache is not None:
            self.cache.put(original, outcome, platform)
        return outcome

    @staticmethod
    def generate_suggestions(
        history: Sequence[GenerationAttempt], fixer_suggestions: Sequence[dict[str, str]] = ()
    ) -> list[str]:
        """User-facing hints for the issue kinds seen, then node replacement suggestions."""
        suggestions: list[str] = []
        for attempt in history:
            for issue in attempt.issues:
                hint = ISSUE_HINTS.get(issue.kind)
                if hint and hint not in suggestions:
                    suggestions.append(hint)
        suggestions.extend(_describe_suggestion(s) for s in fixer_suggestions)
        return suggestions
