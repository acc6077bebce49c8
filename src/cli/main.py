"""CLI entry point.

Provides the main CLI application with commands for:
- generate: Generate a workflow from a natural-language request
- validate / fix: Check or repair an existing workflow file
- cache: Result cache statistics and cleanup
- docs: Search and index platform documentation
- usage: LLM token and cost summary
"""

# Configure logging early before other imports
import src.logging_config  # noqa: F401

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.exceptions import FlowForgeError, ParseError, ProviderError, RequestValidationError

app = typer.Typer(
    name="flowforge",
    help="Generate and repair automation workflows with LLMs",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

SEVERITY_COLORS = {
    "critical": "red",
    "high": "yellow",
    "medium": "cyan",
    "low": "dim",
}


def _run(coro: Coroutine[Any, Any, None]) -> None:
    """Run a command body, releasing database connections before the loop closes."""
    from src.storage import close_db

    async def main() -> None:
        try:
            await coro
        finally:
            await close_db()

    asyncio.run(main())


def _read_workflow(path: Path) -> Any:
    """Load a workflow from a JSON file, tolerating fenced or chatty model output."""
    from src.workflow import extract_json

    try:
        text = path.read_text()
    except OSError as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(1) from e
    try:
        return extract_json(text)
    except ParseError as e:
        console.print(f"[red]{path} holds no parseable workflow: {e}[/red]")
        raise typer.Exit(1) from e


def _write_or_print(workflow: Any, output: Path | None) -> None:
    payload = json.dumps(workflow, indent=2)
    if output is None:
        console.print_json(payload)
        return
    output.write_text(payload + "\n")
    console.print(f"[green]Workflow written to {output}[/green]")


def _issues_table(title: str, issues: list[Any]) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Severity")
    table.add_column("Kind", style="cyan")
    table.add_column("Node")
    table.add_column("Message")
    for issue in issues:
        color = SEVERITY_COLORS.get(str(issue.severity), "white")
        table.add_row(
            f"[{color}]{issue.severity}[/{color}]",
            issue.kind,
            issue.node_ref or "-",
            issue.message,
        )
    return table


def _print_suggestions(suggestions: list[str]) -> None:
    if suggestions:
        console.print("\n[bold]Suggestions:[/bold]")
        for suggestion in suggestions:
            console.print(f"  • {suggestion}")


# =============================================================================
# GENERATION
# =============================================================================


@app.command()
def generate(
    request: Annotated[str, typer.Argument(help="What the workflow should do")],
    platform: Annotated[
        str,
        typer.Option("--platform", "-p", help="Target platform (n8n, zapier, make)"),
    ] = "n8n",
    complexity: Annotated[
        str,
        typer.Option("--complexity", "-c", help="simple, moderate or complex"),
    ] = "simple",
    provider: Annotated[
        str,
        typer.Option("--provider", help="Model provider (claude, openai)"),
    ] = "claude",
    use_rag: Annotated[
        bool,
        typer.Option("--rag/--no-rag", help="Add retrieved documentation to the prompt"),
    ] = True,
    validate_output: Annotated[
        bool,
        typer.Option("--validate/--no-validate", help="Run the validate-and-fix loop"),
    ] = True,
    include_examples: Annotated[
        bool,
        typer.Option("--examples/--no-examples", help="Include a worked example in the prompt"),
    ] = True,
    bypass_cache: Annotated[
        bool,
        typer.Option("--bypass-cache", help="Skip cache lookups"),
    ] = False,
    simplified_prompt: Annotated[
        bool,
        typer.Option("--simple-prompt", help="Use the short focused prompt instead of the full one"),
    ] = False,
    max_attempts: Annotated[
        int,
        typer.Option("--max-attempts", "-m", help="Validation attempts (1-5)"),
    ] = 3,
    timeout: Annotated[
        Optional[float],  # noqa: UP007
        typer.Option("--timeout", "-t", help="Deadline in seconds for the whole request"),
    ] = None,
    output: Annotated[
        Optional[Path],  # noqa: UP007
        typer.Option("--output", "-o", help="Write the workflow JSON to this file"),
    ] = None,
) -> None:
    """Generate a workflow from a natural-language request."""
    from src.validation import parse_request

    try:
        parsed = parse_request(
            {
                "input": request,
                "platform": platform,
                "complexity": complexity,
                "provider": provider,
                "use_rag": use_rag,
                "validate_output": validate_output,
                "include_examples": include_examples,
                "bypass_cache": bypass_cache,
                "simplified_prompt": simplified_prompt,
                "max_attempts": max_attempts,
            }
        )
    except RequestValidationError as e:
        console.print("[red]Invalid request:[/red]")
        for error in e.errors:
            console.print(f"  • {error}")
        raise typer.Exit(2) from e

    _run(_run_generate(parsed, timeout, output))


async def _run_generate(request: Any, timeout: float | None, output: Path | None) -> None:
    """Run the generation pipeline and render the result."""
    from src.services import create_workflow_generator

    generator = create_workflow_generator()
    with console.status(f"[bold blue]Generating {request.platform} workflow...[/bold blue]"):
        try:
            result = await generator.generate(request, timeout=timeout)
        except ProviderError as e:
            console.print(f"[red]Provider error: {e}[/red]")
            _print_suggestions(e.suggestions)
            raise typer.Exit(1) from e
        except FlowForgeError as e:
            console.print(f"[red]Generation failed: {e}[/red]")
            console.print(f"[dim]Correlation ID: {e.correlation_id}[/dim]")
            raise typer.Exit(1) from e

    meta = result.metadata
    valid = result.validation.get("valid")
    status = "[green]valid[/green]" if valid else "[yellow]has issues[/yellow]"
    console.print(
        Panel(
            f"[bold]Platform:[/bold] {meta.get('platform', request.platform)}\n"
            f"[bold]Model:[/bold] {meta.get('model', '-')}\n"
            f"[bold]Tokens:[/bold] {meta.get('total_tokens', 0)}"
            f"  [bold]Cost:[/bold] ${meta.get('cost') or 0.0:.4f}\n"
            f"[bold]Time:[/bold] {meta.get('generation_time_ms', 0)}ms\n"
            f"[bold]Docs used:[/bold] {meta.get('rag_docs_used', 0)}\n"
            f"[bold]Validation:[/bold] {status} after {result.validation.get('attempts', 0)} attempt(s)\n"
            f"[bold]From cache:[/bold] {result.from_cache}",
            title="⚙️  FlowForge",
            border_style="green" if valid else "yellow",
        )
    )
    _write_or_print(result.workflow, output)
    _print_suggestions(result.suggestions)

    if result.import_instructions:
        console.print("\n[bold]To import:[/bold]")
        for step, line in enumerate(result.import_instructions, 1):
            console.print(f"  {step}. {line}")


# =============================================================================
# VALIDATION AND REPAIR
# =============================================================================


@app.command()
def validate(
    file: Annotated[Path, typer.Argument(help="Workflow JSON file")],
    platform: Annotated[
        str,
        typer.Option("--platform", "-p", help="n8n, zapier or make"),
    ] = "n8n",
) -> None:
    """Check a workflow file for structural issues.

    Exits with status 1 when the workflow has errors.
    """
    from src.orchestrator import ValidationOrchestrator

    workflow = _read_workflow(file)
    try:
        validator = ValidationOrchestrator().validator_for(platform)
    except FlowForgeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2) from e
    report = validator.validate(workflow)

    if report.errors:
        console.print(_issues_table(f"Errors ({len(report.errors)})", report.errors))
    if report.warnings:
        console.print(_issues_table(f"Warnings ({len(report.warnings)})", report.warnings))

    if report.valid:
        console.print(f"[green]✅ {file} is valid ({report.summary.total_warnings} warnings)[/green]")
        return
    console.print(
        f"[red]❌ {report.summary.total_issues} errors "
        f"({report.summary.critical_issues} critical)[/red]"
    )
    raise typer.Exit(1)


@app.command()
def fix(
    file: Annotated[Path, typer.Argument(help="Workflow JSON file")],
    output: Annotated[
        Optional[Path],  # noqa: UP007
        typer.Option("--output", "-o", help="Write the repaired workflow to this file"),
    ] = None,
    platform: Annotated[
        str,
        typer.Option("--platform", "-p", help="Target platform"),
    ] = "n8n",
    max_attempts: Annotated[
        int,
        typer.Option("--max-attempts", "-m", min=1, max=5, help="Repair attempts (1-5)"),
    ] = 3,
    regenerate_with: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option(
            "--regenerate-with",
            help="Provider (anthropic, openai) to ask for a corrected workflow when local fixes fall short",
        ),
    ] = None,
    prompt: Annotated[
        str,
        typer.Option("--prompt", help="Original request, used when regenerating"),
    ] = "",
) -> None:
    """Repair a workflow file with the validate-and-fix loop."""
    workflow = _read_workflow(file)
    _run(_run_fix(workflow, output, platform, max_attempts, regenerate_with, prompt))


async def _run_fix(
    workflow: Any,
    output: Path | None,
    platform: str,
    max_attempts: int,
    regenerate_with: str | None,
    prompt: str,
) -> None:
    from src.orchestrator import ValidationOrchestrator
    from src.settings import get_settings

    regenerator = None
    if regenerate_with:
        from src.llm import get_generation_client

        try:
            regenerator = get_generation_client(regenerate_with)
        except FlowForgeError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from e

    orchestrator = ValidationOrchestrator(
        regenerator=regenerator, max_attempts_cap=get_settings().validation_attempts_cap
    )
    outcome = await orchestrator.validate_and_fix(
        workflow, prompt, max_attempts=max_attempts, platform=platform, bypass_cache=True
    )

    for attempt in outcome.history:
        for line in attempt.fixes_applied:
            console.print(f"[dim]attempt {attempt.attempt_number}:[/dim] {line}")
        if attempt.regenerated:
            console.print(f"[dim]attempt {attempt.attempt_number}:[/dim] regenerated by model")

    if outcome.report.errors:
        console.print(_issues_table("Remaining errors", outcome.report.errors))

    _write_or_print(outcome.workflow, output)
    _print_suggestions(outcome.suggestions)

    if outcome.success:
        console.print(f"[green]✅ Workflow is valid after {outcome.attempts} attempt(s)[/green]")
        return
    console.print(f"[yellow]⚠️  Workflow still has issues after {outcome.attempts} attempt(s)[/yellow]")
    raise typer.Exit(1)


# =============================================================================
# CACHE
# =============================================================================

cache_app = typer.Typer(
    name="cache",
    help="Inspect and maintain the result cache",
    no_args_is_help=True,
)
app.add_typer(cache_app, name="cache")


def _result_cache() -> Any:
    from src.cache import build_result_cache

    cache = build_result_cache()
    if cache is None:
        console.print("[yellow]Result cache is disabled (CACHE_BACKEND=none).[/yellow]")
        raise typer.Exit(0)
    return cache


@cache_app.command("stats")
def cache_stats() -> None:
    """Show entry and hit counts per platform."""
    _run(_cache_stats())


async def _cache_stats() -> None:
    stats = await _result_cache().stats()
    if not stats["available"]:
        console.print("[red]Cache store is unavailable.[/red]")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[bold]Entries:[/bold] {stats['total_entries']}\n"
            f"[bold]Hits:[/bold] {stats['total_hits']}\n"
            f"[bold]Avg hits/entry:[/bold] {stats['avg_hits_per_entry']:.2f}",
            title="🗄️  Result Cache",
            border_style="blue",
        )
    )
    if stats["platform_breakdown"]:
        table = Table(title="By platform", show_header=True)
        table.add_column("Platform", style="cyan")
        table.add_column("Entries", justify="right")
        table.add_column("Hits", justify="right")
        for name, counts in sorted(stats["platform_breakdown"].items()):
            table.add_row(name, str(counts["count"]), str(counts["hits"]))
        console.print(table)


@cache_app.command("cleanup")
def cache_cleanup() -> None:
    """Delete expired cache entries."""
    _run(_cache_cleanup())


async def _cache_cleanup() -> None:
    removed = await _result_cache().cleanup()
    console.print(f"[green]Removed {removed} expired entries.[/green]")


# =============================================================================
# DOCUMENTATION
# =============================================================================

docs_app = typer.Typer(
    name="docs",
    help="Search and index platform documentation",
    no_args_is_help=True,
)
app.add_typer(docs_app, name="docs")


@docs_app.command("search")
def docs_search(
    query: Annotated[str, typer.Argument(help="What to look for")],
    platform: Annotated[
        str,
        typer.Option("--platform", "-p", help="Platform to search"),
    ] = "n8n",
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum documents"),
    ] = 10,
    min_relevance: Annotated[
        float,
        typer.Option("--min-relevance", help="Similarity threshold (0-1)"),
    ] = 0.7,
) -> None:
    """Show the documents retrieval would add to a prompt."""
    _run(_docs_search(query, platform, limit, min_relevance))


async def _docs_search(query: str, platform: str, limit: int, min_relevance: float) -> None:
    from src.retrieval import build_context_retriever

    retriever = build_context_retriever()
    if retriever is None:
        console.print("[yellow]Retrieval is disabled or not configured.[/yellow]")
        raise typer.Exit(1)

    result = await retriever.get_relevant_context(
        query, platform, max_documents=limit, min_relevance=min_relevance
    )
    if not result.documents:
        console.print("[dim]No documents found.[/dim]")
        return

    table = Table(
        title=f"Documents ({len(result.documents)}, avg relevance {result.avg_relevance:.2f})",
        show_header=True,
    )
    table.add_column("Score", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Title", max_width=40)
    table.add_column("Content", max_width=60)
    for doc in result.documents:
        table.add_row(
            f"{doc.relevance_score:.2f}",
            str(doc.doc_type),
            doc.title or "-",
            doc.content[:120].replace("\n", " "),
        )
    console.print(table)


@docs_app.command("index")
def docs_index(
    file: Annotated[Path, typer.Argument(help="YAML file of documents")],
) -> None:
    """Embed documents from a YAML file and store them in the database."""
    _run(_docs_index(file))


async def _docs_index(file: Path) -> None:
    import yaml

    from src.retrieval import SqlDocumentStore, get_embeddings, load_documents

    try:
        documents = load_documents(file)
        embeddings = get_embeddings()
    except (OSError, yaml.YAMLError, FlowForgeError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    with console.status(f"[bold blue]Indexing {len(documents)} documents...[/bold blue]"):
        written = await SqlDocumentStore().add_documents(documents, embeddings)
    console.print(f"[green]Indexed {written} documents from {file}.[/green]")


# =============================================================================
# USAGE
# =============================================================================


@app.command()
def usage(
    days: Annotated[
        int,
        typer.Option("--days", "-d", help="Look-back window in days"),
    ] = 30,
) -> None:
    """Show LLM token usage and estimated cost."""
    _run(_usage(days))


async def _usage(days: int) -> None:
    from src.dal.llm_usage import LLMUsageRepository
    from src.storage import get_session

    async with get_session() as session:
        summary = await LLMUsageRepository(session).get_summary(days=days)

    console.print(
        Panel(
            f"[bold]Calls:[/bold] {summary['total_calls']}\n"
            f"[bold]Tokens:[/bold] {summary['total_tokens']} "
            f"({summary['total_input_tokens']} in / {summary['total_output_tokens']} out)\n"
            f"[bold]Cost:[/bold] ${summary['total_cost_usd']:.4f}\n"
            f"[bold]Regenerations:[/bold] {summary['by_request_type'].get('regenerate', {}).get('calls', 0)}",
            title=f"📊 LLM usage, last {days} days",
            border_style="blue",
        )
    )
    if summary["by_model"]:
        table = Table(show_header=True)
        table.add_column("Model", style="cyan")
        table.add_column("Provider")
        table.add_column("Calls", justify="right")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost", justify="right")
        for row in summary["by_model"]:
            table.add_row(
                row["model"],
                row["provider"],
                str(row["calls"]),
                str(row["tokens"]),
                f"${row['cost_usd']:.4f}",
            )
        console.print(table)


if __name__ == "__main__":
    app()
