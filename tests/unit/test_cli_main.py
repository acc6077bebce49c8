"""Unit tests for the CLI app."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from src.cache import InMemoryCacheStore, ResultCache
from src.cli.main import app
from src.exceptions import ProviderError
from src.services import GenerationResult


@pytest.fixture
def runner():
    """CLI test runner."""
    return CliRunner()


@pytest.fixture
def workflow_file(tmp_path, valid_workflow):
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(valid_workflow))
    return path


def _generator(result=None, error=None):
    generator = MagicMock()
    generator.generate = AsyncMock(return_value=result, side_effect=error)
    return generator


class TestMainApp:
    """Test main CLI app registration."""

    def test_app_exists(self):
        """Test that app exists."""
        assert app.info.name == "flowforge"

    def test_all_commands_registered(self, runner):
        """Test that all expected commands are registered."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("generate", "validate", "fix", "cache", "docs", "usage"):
            assert command in result.stdout

    def test_cache_subcommand_group(self, runner):
        """Test that cache is registered as a subcommand group."""
        result = runner.invoke(app, ["cache", "--help"])

        assert result.exit_code == 0
        assert "stats" in result.stdout
        assert "cleanup" in result.stdout


class TestGenerateCommand:
    """Tests for `flowforge generate`."""

    def test_invalid_request_exits_2(self, runner):
        """Test that request validation errors are listed."""
        result = runner.invoke(app, ["generate", "Post to Slack", "--max-attempts", "9"])

        assert result.exit_code == 2
        assert "max_attempts" in result.stdout

    def test_blank_request_exits_2(self, runner):
        """Test that a blank request is rejected before any model call."""
        with patch("src.services.create_workflow_generator") as factory:
            result = runner.invoke(app, ["generate", "   "])

        assert result.exit_code == 2
        factory.assert_not_called()

    def test_writes_workflow(self, runner, tmp_path, valid_workflow):
        """Test that a generated workflow is written to --output."""
        output = tmp_path / "out.json"
        generated = GenerationResult(
            workflow=valid_workflow,
            validation={"valid": True, "attempts": 1},
            metadata={"platform": "n8n", "model": "claude-3-7-sonnet-20250219", "total_tokens": 200, "cost": 0.0016},
            import_instructions=["Paste the JSON"],
        )
        generator = _generator(result=generated)

        with patch("src.services.create_workflow_generator", return_value=generator):
            result = runner.invoke(app, ["generate", "Post to Slack", "-o", str(output), "--no-rag"])

        assert result.exit_code == 0
        assert json.loads(output.read_text()) == valid_workflow
        request = generator.generate.call_args.args[0]
        assert request.use_rag is False
        assert "Paste the JSON" in result.stdout

    def test_simple_prompt_flag(self, runner, valid_workflow):
        """Test that --simple-prompt reaches the request."""
        generator = _generator(result=GenerationResult(workflow=valid_workflow, validation={"valid": True}))

        with patch("src.services.create_workflow_generator", return_value=generator):
            result = runner.invoke(app, ["generate", "Post to Slack", "--simple-prompt"])

        assert result.exit_code == 0
        assert generator.generate.call_args.args[0].simplified_prompt is True

    def test_provider_error_exits_1(self, runner):
        """Test that provider failures print suggestions."""
        error = ProviderError("rate limited", status_code=429, suggestions=["Wait a minute"])

        with patch("src.services.create_workflow_generator", return_value=_generator(error=error)):
            result = runner.invoke(app, ["generate", "Post to Slack"])

        assert result.exit_code == 1
        assert "Wait a minute" in result.stdout


class TestValidateAndFixCommands:
    """Tests for `flowforge validate` and `flowforge fix`."""

    def test_validate_valid(self, runner, workflow_file):
        """Test that a clean workflow exits 0."""
        result = runner.invoke(app, ["validate", str(workflow_file)])

        assert result.exit_code == 0

    def test_validate_invalid(self, runner, tmp_path):
        """Test that a workflow with errors exits 1."""
        path = tmp_path / "broken.json"
        path.write_text(json.dumps({"name": "Broken", "nodes": [{"id": "abcdef12", "name": "Mystery"}], "connections": {}}))

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 1

    def test_validate_unparseable(self, runner, tmp_path):
        """Test that a file without JSON exits 1."""
        path = tmp_path / "notes.txt"
        path.write_text("no workflow here")

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 1

    def test_fix_writes_repaired_workflow(self, runner, tmp_path, valid_workflow):
        """Test that local repairs are applied and written."""
        del valid_workflow["nodes"][0]["id"]
        source = tmp_path / "in.json"
        source.write_text(json.dumps(valid_workflow))
        output = tmp_path / "out.json"

        result = runner.invoke(app, ["fix", str(source), "-o", str(output)])

        assert result.exit_code == 0
        repaired = json.loads(output.read_text())
        assert all(node.get("id") for node in repaired["nodes"])

    def test_fix_rejects_attempts_above_ceiling(self, runner, workflow_file):
        """Test that --max-attempts is bounded before any repair runs."""
        result = runner.invoke(app, ["fix", str(workflow_file), "--max-attempts", "25"])

        assert result.exit_code == 2

    def test_validate_zapier(self, runner, tmp_path):
        """Test that --platform selects the Zapier schema checks."""
        valid = tmp_path / "zap.json"
        valid.write_text(
            json.dumps(
                {
                    "name": "Mail to Slack",
                    "trigger": {"app": "gmail", "event": "new_email"},
                    "actions": [{"app": "slack", "action": "send_message", "input": {"text": "{{trigger.subject}}"}}],
                }
            )
        )
        invalid = tmp_path / "broken_zap.json"
        invalid.write_text(json.dumps({"name": "No actions", "trigger": {"app": "gmail", "event": "new_email"}}))

        assert runner.invoke(app, ["validate", str(valid), "--platform", "zapier"]).exit_code == 0
        assert runner.invoke(app, ["validate", str(invalid), "--platform", "zapier"]).exit_code == 1

    def test_validate_unknown_platform(self, runner, workflow_file):
        """Test that an unsupported platform exits 2."""
        result = runner.invoke(app, ["validate", str(workflow_file), "--platform", "ifttt"])

        assert result.exit_code == 2


class TestCacheCommands:
    """Tests for `flowforge cache`."""

    def test_disabled(self, runner):
        """Test the message when caching is off."""
        with patch("src.cache.build_result_cache", return_value=None):
            result = runner.invoke(app, ["cache", "stats"])

        assert result.exit_code == 0
        assert "disabled" in result.stdout

    def test_stats(self, runner):
        """Test that stats render for an available store."""
        with patch("src.cache.build_result_cache", return_value=ResultCache(InMemoryCacheStore())):
            result = runner.invoke(app, ["cache", "stats"])

        assert result.exit_code == 0
        assert "Entries" in result.stdout

    def test_cleanup(self, runner):
        """Test that cleanup reports the number removed."""
        with patch("src.cache.build_result_cache", return_value=ResultCache(InMemoryCacheStore())):
            result = runner.invoke(app, ["cache", "cleanup"])

        assert result.exit_code == 0
        assert "Removed 0" in result.stdout


class TestDocsCommands:
    """Tests for `flowforge docs`."""

    def test_search_without_retriever(self, runner):
        """Test that search exits 1 when retrieval is not configured."""
        with patch("src.retrieval.build_context_retriever", return_value=None):
            result = runner.invoke(app, ["docs", "search", "slack"])

        assert result.exit_code == 1
