"""Workflow and request validation."""

from src.validation.issues import (
    CONDITION_ISSUE_KINDS,
    SEVERITY_WEIGHTS,
    ReportSummary,
    Severity,
    ValidationIssue,
    ValidationReport,
    summarize,
)
from src.validation.platforms import (
    MAKE_SCHEMA,
    PLATFORM_VALIDATORS,
    ZAPIER_SCHEMA,
    MakeValidator,
    ZapierValidator,
    schema_issues,
)
from src.validation.request import (
    Complexity,
    GenerationRequest,
    Platform,
    ProviderChoice,
    parse_request,
    sanitize_input,
)
from src.validation.structural import (
    VALID_OPERATIONS,
    StructuralValidator,
    get_conditions,
    has_generic_placeholder,
)

__all__ = [
    "CONDITION_ISSUE_KINDS",
    "MAKE_SCHEMA",
    "PLATFORM_VALIDATORS",
    "SEVERITY_WEIGHTS",
    "VALID_OPERATIONS",
    "ZAPIER_SCHEMA",
    "Complexity",
    "GenerationRequest",
    "MakeValidator",
    "Platform",
    "ProviderChoice",
    "ReportSummary",
    "Severity",
    "StructuralValidator",
    "ValidationIssue",
    "ValidationReport",
    "ZapierValidator",
    "get_conditions",
    "has_generic_placeholder",
    "parse_request",
    "sanitize_input",
    "schema_issues",
    "summarize",
]
