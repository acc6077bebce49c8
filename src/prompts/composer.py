"""Prompt assembly for workflow generation.

Every function here is pure: the same inputs always produce the same prompt
text, which keeps prompts cacheable and easy to assert on in tests.
"""

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from src.prompts.loader import load_prompt
from src.retrieval.documents import DocType, Document
from src.validation.issues import ValidationIssue

PLATFORM_NAMES = {
    "n8n": "n8n",
    "zapier": "Zapier",
    "make": "Make (Integromat)",
}

COMPLEXITY_DESCRIPTIONS = {
    "simple": "straightforward, linear",
    "moderate": "moderately complex with conditional logic",
    "complex": "highly complex with multiple branches and error handling",
}

# Prompt template holding each platform's technical rules
PLATFORM_SPEC_TEMPLATES = {
    "n8n": "n8n_spec",
    "zapier": "zapier_spec",
    "make": "make_spec",
}

# Top-level fields (required, optional) each platform accepts
PLATFORM_FIELDS = {
    "n8n": (
        "name, nodes, connections, settings, meta",
        "versionId, pinData, staticData, tags, active, id, triggerCount, createdAt, updatedAt",
    ),
    "zapier": ("name, trigger, actions", "description"),
    "make": ("name, modules", "connections, routes, metadata"),
}

# Worked example shown when include_examples is set
EXAMPLE_TEMPLATES = {
    "n8n": "n8n_example",
    "zapier": "zapier_example",
    "make": "make_example",
}

_BEST_PRACTICE = re.compile(r"best practice|recommended|should|must|always|never", re.IGNORECASE)
MAX_PRACTICES_PER_DOC = 5
DOC_SNIPPET_CHARS = 200
EXAMPLE_PREVIEW_LINES = 10

# Issue kind -> instruction appended to a refinement prompt
FIX_INSTRUCTIONS: dict[str, str] = {
    "missing_node_type": (
        "Use exact n8n node types with the n8n-nodes-base. prefix, e.g. gmailTrigger (not "
        '"Gmail Trigger"), slack (not slackMessage), httpRequest (not httpWebRequest), '
        "googleSheets, code, set, if."
    ),
    "missing_node_id": "Give every node a unique lowercase alphanumeric id of at least 6 characters.",
    "duplicate_node_name": (
        'Make every node name unique; add descriptive or numeric suffixes ("Webhook 1", "Webhook 2").'
    ),
    "empty_if_conditions": (
        "Every IF node needs parameters.conditions.conditions with at least one "
        "{leftValue, rightValue, operation} entry."
    ),
    "generic_placeholder": (
        'Replace $json["field"] with the actual field the condition tests, e.g. '
        '$json["headers"]["subject"] after a Gmail trigger.'
    ),
    "empty_left_value": "Every condition needs a leftValue expression such as ={{$json[\"status\"]}}.",
    "invalid_operation": (
        "Use a valid n8n operation: equal, notEqual, contains, notContains, startsWith, endsWith, "
        "regex, larger, largerEqual, smaller, smallerEqual, exists, notExists."
    ),
    "invalid_gmail_field": (
        'Gmail trigger output nests headers: use $json["headers"]["subject"] and '
        '$json["headers"]["from"] instead of flat fields.'
    ),
    "invalid_gmail_field_reference": (
        'Gmail trigger output nests headers: use $json["headers"]["subject"] and '
        '$json["headers"]["from"] instead of flat fields.'
    ),
    "gmail_generic_field": 'Reference concrete Gmail fields instead of $json["field"].',
    "gmail_label_check": (
        "Check Gmail labels with a Code node filtering on item.json.labelIds, not an IF node."
    ),
    "sheets_generic_field": "Reference the actual Google Sheets column name in conditions.",
    "invalid_source_connection": "Connection keys must be names of nodes that exist in the workflow.",
    "invalid_target_connection": (
        "Every connection target must name an existing node exactly; check spelling and casing."
    ),
    "missing_connections": "Include a connections object wiring the nodes together.",
    "invalid_nodes": "The workflow needs a non-empty nodes array.",
    "missing_name": "Give the workflow a name.",
    "potential_loop": "Remove the connection cycle or give it an explicit exit condition.",
    "schema_violation": "Follow the platform's import format exactly; every required field must be present and typed.",
    "invalid_mapping": "Zapier field mappings must name their step, e.g. {{trigger.subject}} not {{subject}}.",
    "duplicate_module_id": "Give every Make module a unique numeric id.",
    "forward_reference": "Make mappers may only reference modules with a lower id, e.g. {{1.name}} in module 2.",
    "invalid_route": "Every Make route needs a flow array of module ids.",
    "invalid_route_module": "Make routes may only list module ids that exist in modules.",
    "invalid_connection_module": "Make connections may only join module ids that exist in modules.",
}
DEFAULT_FIX_INSTRUCTION = "Fix any structural issues and ensure the workflow follows the target platform's format exactly."


@dataclass(frozen=True)
class PromptOptions:
    complexity: str = "moderate"
    error_handling: bool = True
    optimization: float = 50
    include_examples: bool = False
    simplified: bool = False


def group_documents(documents: Sequence[Document]) -> dict[str, list[Document]]:
    grouped: dict[str, list[Document]] = {"nodes": [], "examples": [], "guides": [], "api": [], "other": []}
    for doc in documents:
        if doc.doc_type in (DocType.NODE, DocType.TRIGGER, DocType.ACTION):
            grouped["nodes"].append(doc)
        elif doc.doc_type == DocType.EXAMPLE:
            grouped["examples"].append(doc)
        elif doc.doc_type in (DocType.GUIDE, DocType.BEST_PRACTICE):
            grouped["guides"].append(doc)
        elif doc.doc_type in (DocType.API, DocType.SCHEMA):
            grouped["api"].append(doc)
        else:
            grouped["other"].append(doc)
    return grouped


def extract_best_practices(content: str) -> list[str]:
    practices = [
        line.strip()
        for line in content.split("\n")
        if _BEST_PRACTICE.search(line) and 20 < len(line) < 200
    ]
    return practices[:MAX_PRACTICES_PER_DOC]


def _snippet(doc: Document) -> str:
    return f"- **{doc.title}**: {doc.content[:DOC_SNIPPET_CHARS]}..."


def build_documentation_context(documents: Sequence[Document], platform: str) -> str:
    grouped = group_documents(documents)
    lines = [
        "## Platform Documentation Context",
        "",
        f"Based on {platform} documentation, here are the relevant components and patterns for this workflow:",
        "",
    ]

    if grouped["nodes"]:
        lines.append("### Available Nodes/Actions:")
        for doc in grouped["nodes"]:
            lines.append(_snippet(doc))
            parameters = doc.metadata.get("parameters")
            if isinstance(parameters, dict):
                lines.append(f"  Parameters: {json.dumps(list(parameters))}")
        lines.append("")

    if grouped["examples"]:
        lines.append("### Relevant Examples:")
        for doc in grouped["examples"]:
            lines.append(f"- {doc.title}")
            workflow = doc.metadata.get("workflow")
            if workflow:
                preview = json.dumps(workflow, indent=2).split("\n")[:EXAMPLE_PREVIEW_LINES]
                lines.extend(["  ```json", *(f"  {line}" for line in preview), "  ```"])
        lines.append("")

    if grouped["guides"]:
        lines.append("### Best Practices:")
        for doc in grouped["guides"]:
            lines.extend(f"- {practice}" for practice in extract_best_practices(doc.content))
        lines.append("")

    if grouped["api"]:
        lines.append("### API and Schema Reference:")
        lines.extend(_snippet(doc) for doc in grouped["api"])
        lines.append("")

    if grouped["other"]:
        lines.append("### Additional Context:")
        lines.extend(_snippet(doc) for doc in grouped["other"])

    return "\n".join(lines).rstrip()


def build_technical_spec(platform: str, options: PromptOptions) -> str:
    spec = load_prompt(PLATFORM_SPEC_TEMPLATES.get(platform, "n8n_spec")).rstrip()
    if options.error_handling:
        spec += "\n\n" + load_prompt("error_handling_spec").rstrip()
    if options.optimization > 50:
        spec += "\n\n" + load_prompt("optimization_spec").rstrip()
    return spec


def build_user_request(user_input: str, options: PromptOptions) -> str:
    request = f'## User Request\n"{user_input}"'
    extra = []
    if options.error_handling:
        extra += ["- Include comprehensive error handling", "- Add fallback paths for failures"]
    if options.complexity == "complex":
        extra += ["- Implement advanced logic and data processing", "- Use loops/iterators where appropriate"]
    if extra:
        request += "\n\nAdditional Requirements:\n" + "\n".join(extra)
    return request


def compose(
    platform: str,
    user_input: str,
    documents: Sequence[Document] = (),
    options: PromptOptions | None = None,
) -> str:
    """Build the full generation prompt.

    Sections, in order: format restriction, task definition, documentation
    context (only with documents), technical spec, worked example (only with
    include_examples), output requirements, user request, closing instructions
    and final reminder. With ``options.simplified`` the short focused prompt
    is returned instead.
    """
    options = options or PromptOptions()
    if options.simplified:
        return compose_focused(platform, user_input)
    required_fields, optional_fields = PLATFORM_FIELDS.get(platform, PLATFORM_FIELDS["n8n"])
    fields = {"required_fields": required_fields, "optional_fields": optional_fields}
    sections = [
        load_prompt("format_restriction", platform=platform, **fields),
        load_prompt(
            "task",
            platform=platform,
            platform_upper=platform.upper(),
            complexity_description=COMPLEXITY_DESCRIPTIONS.get(
                options.complexity, COMPLEXITY_DESCRIPTIONS["moderate"]
            ),
        ),
    ]
    if documents:
        sections.append(build_documentation_context(documents, platform))
    sections.append(build_technical_spec(platform, options))
    if options.include_examples and platform in EXAMPLE_TEMPLATES:
        sections.append(load_prompt(EXAMPLE_TEMPLATES[platform]))
    sections.append(load_prompt("output_requirements", platform=platform, **fields))
    sections.append(build_user_request(user_input, options))
    sections.append(load_prompt("critical_instructions", **fields))
    sections.append(load_prompt("final_reminder"))
    return "\n\n".join(section.strip() for section in sections)


def compose_system_prompt(platform: str, complexity: str = "moderate") -> str:
    return load_prompt(
        "system",
        platform_name=PLATFORM_NAMES.get(platform, platform),
        platform=platform,
        complexity=complexity,
    ).strip()


def compose_focused(platform: str, user_input: str) -> str:
    """Short prompt variant with only the most common pitfalls."""
    header = f'Generate a valid {platform} workflow JSON for this request: "{user_input}"'
    if platform == "n8n":
        return f"{header}\n\n{load_prompt('focused_n8n').strip()}"
    return (
        f"{header}\n\nOutput ONLY valid JSON with no explanatory text. "
        f"Follow the standard {platform} format exactly."
    )


def compose_refinement(
    original_prompt: str,
    workflow: Any,
    issues: Sequence[ValidationIssue],
) -> str:
    """The original prompt plus the outstanding issues, fix instructions and current workflow."""
    issue_lines = []
    for issue in issues:
        where = f" (node '{issue.node_ref}')" if issue.node_ref else ""
        issue_lines.append(f"- [{issue.severity}] {issue.kind}{where}: {issue.message}")

    kinds = list(dict.fromkeys(issue.kind for issue in issues))
    instructions = list(dict.fromkeys(FIX_INSTRUCTIONS.get(kind, DEFAULT_FIX_INSTRUCTION) for kind in kinds))

    return "\n\n".join(
        [
            original_prompt.rstrip(),
            "The previous workflow generation had the following issues:\n" + "\n".join(issue_lines),
            "Please regenerate the workflow fixing these specific issues:\n"
            + "\n".join(f"- {text}" for text in instructions),
            "Current workflow that needs fixing:\n" + json.dumps(workflow, indent=2),
        ]
    )
