"""Unit tests for prompt composition."""

import pytest

from src.prompts import (
    PromptOptions,
    compose,
    compose_focused,
    compose_refinement,
    compose_system_prompt,
    extract_best_practices,
    group_documents,
    load_prompt,
)
from src.retrieval.documents import DocType, Document
from src.validation import Severity
from src.validation.issues import ValidationIssue


def _doc(doc_type, title, content="Body text", **metadata):
    return Document(content=content, platform="n8n", doc_type=doc_type, title=title, metadata=metadata)


class TestLoadPrompt:
    """Tests for template loading."""

    def test_formats_kwargs(self):
        """Test that keyword arguments are substituted."""
        prompt = load_prompt("format_restriction", platform="zapier", required_fields="name, trigger", optional_fields="x")

        assert "valid zapier workflow JSON" in prompt
        assert "- name, trigger (REQUIRED)" in prompt

    def test_missing_template(self):
        """Test that an unknown template raises."""
        with pytest.raises(FileNotFoundError):
            load_prompt("does_not_exist")


class TestCompose:
    """Tests for compose section ordering and options."""

    def test_section_order(self):
        """Test that sections appear in the documented order."""
        prompt = compose("n8n", "Email me new Typeform responses")

        order = [
            "CRITICAL WORKFLOW FORMAT RESTRICTION",
            "Task: Generate N8N Workflow JSON",
            "n8n Technical Specifications",
            "OUTPUT REQUIREMENTS",
            "## User Request",
            "CRITICAL INSTRUCTIONS",
            "FINAL REMINDER",
        ]
        positions = [prompt.index(marker) for marker in order]
        assert positions == sorted(positions)
        assert '"Email me new Typeform responses"' in prompt

    def test_deterministic(self):
        """Test that identical inputs give identical prompts."""
        docs = [_doc(DocType.NODE, "Slack")]
        assert compose("n8n", "x", docs) == compose("n8n", "x", docs)

    def test_documentation_context_only_with_documents(self):
        """Test that the documentation section depends on retrieved docs."""
        assert "Platform Documentation Context" not in compose("n8n", "x")
        with_docs = compose("n8n", "x", [_doc(DocType.NODE, "Slack Node", parameters={"channel": {}})])

        assert "Platform Documentation Context" in with_docs
        assert "**Slack Node**" in with_docs
        assert 'Parameters: ["channel"]' in with_docs

    def test_options(self):
        """Test error handling, optimization, complexity and example toggles."""
        prompt = compose(
            "n8n",
            "x",
            options=PromptOptions(complexity="complex", error_handling=False, optimization=80, include_examples=True),
        )

        assert "ERROR HANDLING" not in prompt
        assert "OPTIMIZATION" in prompt
        assert "Example Structure" in prompt
        assert "Use loops/iterators where appropriate" in prompt
        assert "multiple branches" in prompt

    def test_platform_spec_selected(self):
        """Test that each platform gets its technical spec."""
        assert "Zapier Technical Specifications" in compose("zapier", "x")
        assert "Make Technical Specifications" in compose("make", "x")

    def test_field_lists_follow_platform(self):
        """Test that Zapier prompts ask for Zapier fields, not n8n ones."""
        prompt = compose("zapier", "x")

        assert "REQUIRED FIELDS: name, trigger, actions" in prompt
        assert "name, nodes, connections" not in prompt
        assert "name, nodes, connections, settings, meta" in compose("n8n", "x")

    def test_example_matches_platform(self):
        """Test that each platform gets its own worked example."""
        options = PromptOptions(include_examples=True)

        zapier = compose("zapier", "x", options=options)
        make = compose("make", "x", options=options)

        assert '"actions": [' in zapier
        assert "n8n-nodes-base" not in zapier
        assert '"modules": [' in make
        assert "n8n-nodes-base" not in make

    def test_simplified_returns_focused_prompt(self):
        """Test that the simplified option swaps in the focused prompt."""
        prompt = compose("n8n", "Post RSS to Slack", options=PromptOptions(simplified=True))

        assert prompt == compose_focused("n8n", "Post RSS to Slack")


class TestSystemAndFocused:
    """Tests for the system and focused prompts."""

    def test_system_prompt_names_platform(self):
        """Test the display name substitution."""
        assert "expert Make (Integromat) workflow" in compose_system_prompt("make")

    def test_focused_n8n(self):
        """Test the n8n pitfalls section."""
        prompt = compose_focused("n8n", "Post RSS to Slack")

        assert prompt.startswith('Generate a valid n8n workflow JSON for this request: "Post RSS to Slack"')
        assert "webhookId" in prompt

    def test_focused_other(self):
        """Test the generic variant for other platforms."""
        assert "standard zapier format" in compose_focused("zapier", "x")


class TestRefinement:
    """Tests for compose_refinement."""

    def test_contains_issues_instructions_and_workflow(self):
        """Test that the refinement prompt carries every part."""
        issues = [
            ValidationIssue(kind="missing_node_type", severity=Severity.CRITICAL, message="Node is missing required type", node_ref="A"),
            ValidationIssue(kind="missing_node_type", severity=Severity.CRITICAL, message="Node is missing required type", node_ref="B"),
            ValidationIssue(kind="something_new", severity=Severity.LOW, message="odd"),
        ]

        prompt = compose_refinement("Original request", {"name": "Current"}, issues)

        assert prompt.startswith("Original request")
        assert "- [critical] missing_node_type (node 'A'): Node is missing required type" in prompt
        assert prompt.count("Use exact n8n node types") == 1
        assert "Fix any structural issues" in prompt
        assert '"name": "Current"' in prompt


class TestDocumentHelpers:
    """Tests for grouping and best-practice extraction."""

    def test_group_documents(self):
        """Test the doc type buckets."""
        grouped = group_documents(
            [
                _doc(DocType.TRIGGER, "t"),
                _doc(DocType.EXAMPLE, "e"),
                _doc(DocType.BEST_PRACTICE, "b"),
                _doc(DocType.SCHEMA, "s"),
                _doc(DocType.GENERAL, "g"),
            ]
        )

        assert {k: [d.title for d in v] for k, v in grouped.items()} == {
            "nodes": ["t"],
            "examples": ["e"],
            "guides": ["b"],
            "api": ["s"],
            "other": ["g"],
        }

    def test_extract_best_practices(self):
        """Test keyword and length filtering."""
        content = "\n".join(
            [
                "You should always name nodes clearly.",
                "Short should",
                "Unrelated sentence about nothing in particular.",
                "It is recommended to add error workflows for production use.",
            ]
        )

        assert extract_best_practices(content) == [
            "You should always name nodes clearly.",
            "It is recommended to add error workflows for production use.",
        ]
