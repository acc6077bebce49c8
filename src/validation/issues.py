"""Validation issue and report models."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from src.exceptions import SchemaValidationError


class Severity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class ValidationIssue(BaseModel):
    """One finding from the structural validator."""

    kind: str
    severity: Severity
    message: str
    node_ref: str | None = None
    condition_index: int | None = None
    current_value: Any = None
    suggested_fix: str | None = None

    @property
    def is_condition_issue(self) -> bool:
        return self.node_ref is not None and self.kind in CONDITION_ISSUE_KINDS


# Issue kinds the ConditionFixer can act on
CONDITION_ISSUE_KINDS = frozenset(
    {
        "empty_if_conditions",
        "generic_placeholder",
        "empty_left_value",
        "invalid_operation",
        "invalid_gmail_field",
        "gmail_label_check",
        "sheets_generic_field",
    }
)


class ReportSummary(BaseModel):
    total_issues: int = 0
    total_warnings: int = 0
    critical_issues: int = 0


class ValidationReport(BaseModel):
    """Outcome of validating one workflow."""

    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)

    @classmethod
    def from_issues(
        cls,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> "ValidationReport":
        return cls(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            summary=ReportSummary(
                total_issues=len(errors),
                total_warnings=len(warnings),
                critical_issues=sum(1 for e in errors if e.severity == Severity.CRITICAL),
            ),
        )

    @property
    def issues(self) -> list[ValidationIssue]:
        """Errors followed by warnings."""
        return [*self.errors, *self.warnings]

    def raise_for_errors(self) -> None:
        """Raise SchemaValidationError carrying the errors when the report is invalid."""
        if self.valid:
            return
        first = self.errors[0].message
        more = f" (+{len(self.errors) - 1} more)" if len(self.errors) > 1 else ""
        raise SchemaValidationError(f"Workflow failed validation: {first}{more}", issues=self.errors)


def summarize(report: ValidationReport) -> dict[str, Any]:
    """Condensed view of a report: counts plus the five most severe errors."""
    top = sorted(report.errors, key=lambda i: SEVERITY_WEIGHTS.get(i.severity, 0), reverse=True)
    return {
        "valid": report.valid,
        "total_issues": report.summary.total_issues,
        "critical_issues": report.summary.critical_issues,
        "fixable_issues": sum(1 for e in report.errors if e.suggested_fix),
        "top_issues": [i.model_dump() for i in top[:5]],
    }
