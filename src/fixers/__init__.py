"""Workflow repair: import-format normalization and condition synthesis."""

from src.fixers.condition import (
    CONDITION_PATTERNS,
    ConditionFix,
    ConditionFixer,
    NodePatch,
    normalize_operation,
)
from src.fixers.format import FormatFixResult, PlatformFormatFixer, normalize_node_type
from src.fixers.gmail import MAIL_FIELD_MAP, GmailFixer

__all__ = [
    "CONDITION_PATTERNS",
    "MAIL_FIELD_MAP",
    "ConditionFix",
    "ConditionFixer",
    "FormatFixResult",
    "GmailFixer",
    "NodePatch",
    "PlatformFormatFixer",
    "normalize_node_type",
    "normalize_operation",
]
