"""Workflow generation pipeline.

WorkflowGenerator turns a GenerationRequest into an importable workflow:

1. result cache lookup
2. documentation retrieval (use_rag)
3. prompt composition
4. model call through a GenerationClient
5. JSON extraction and export cleaning
6. validate-and-fix loop (validate_output), which records the format fixes
   applied to the raw output; without it the format fixes still run
7. metadata assembly and cache write

Only parse failures and fatal provider failures raise. A workflow that still
has issues after the loop is returned with ``validation["valid"] = False``.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from src.cache import CachedResult, ResultCache, build_result_cache, generate_key, input_hash
from src.exceptions import FlowForgeError, GenerationTimeoutError, ParseError
from src.fixers import PlatformFormatFixer
from src.llm.client import GenerationClient
from src.llm.factory import get_generation_client
from src.orchestrator import (
    REPAIRABLE_PLATFORMS,
    GenerationAttempt,
    RegenerationUsage,
    ValidationCache,
    ValidationOrchestrator,
    ValidationOutcome,
)
from src.prompts import PromptOptions, compose, compose_system_prompt
from src.retrieval import ContextRetriever, RetrievalResult, build_context_retriever
from src.settings import Settings, get_settings
from src.validation import GenerationRequest, StructuralValidator, summarize
from src.workflow import assess_complexity, clean_for_export, extract_json, import_instructions

logger = logging.getLogger(__name__)

AI_METADATA_KEY = "_metadata"


class GenerationResult(BaseModel):
    """What a caller gets back from WorkflowGenerator.generate."""

    workflow: dict[str, Any]
    validation: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    history: list[GenerationAttempt] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    import_instructions: list[str] = Field(default_factory=list)
    from_cache: bool = False


class WorkflowGenerator:
    """Public entry point for generating workflows.

    Collaborators are injected so tests can swap any of them. ``client_factory``
    maps a completion provider name ("anthropic", "openai") to a client and is
    called at most once per provider.
    """

    def __init__(
        self,
        *,
        client_factory: Callable[[str], GenerationClient] = get_generation_client,
        retriever: ContextRetriever | None = None,
        cache: ResultCache | None = None,
        orchestrator: ValidationOrchestrator | None = None,
        format_fixer: PlatformFormatFixer | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.client_factory = client_factory
        self.retriever = retriever
        self.cache = cache
        self.format_fixer = format_fixer or PlatformFormatFixer()
        self.orchestrator = orchestrator or ValidationOrchestrator(
            format_fixer=self.format_fixer,
            max_attempts_cap=self.settings.validation_attempts_cap,
        )
        self._clients: dict[str, GenerationClient] = {}

    def client_for(self, provider: str) -> GenerationClient:
        if provider not in self._clients:
            self._clients[provider] = self.client_factory(provider)
        return self._clients[provider]

    async def generate(self, request: GenerationRequest, *, timeout: float | None = None) -> GenerationResult:
        """Run the full pipeline for one request.

        Args:
            request: validated generation request
            timeout: deadline in seconds for the whole chain; defaults to
                ``request_timeout_seconds`` from settings

        Raises:
            GenerationTimeoutError: the deadline passed; nothing is cached
            ParseError: the model output held no usable workflow
            ProviderError: the provider failed fatally or retries ran out
        """
        if timeout is None:
            timeout = self.settings.request_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                return await self._generate(request)
        except TimeoutError as e:
            logger.error("Generation for %s timed out after %ss", request.platform, timeout)
            raise GenerationTimeoutError(
                f"Workflow generation exceeded {timeout}s",
                timeout=timeout,
            ) from e

    async def _generate(self, request: GenerationRequest) -> GenerationResult:
        start = time.perf_counter()
        platform = str(request.platform)
        complexity = str(request.complexity)
        provider = request.provider.llm_provider
        cache_key = generate_key(request.input, platform, complexity, str(request.provider))

        if self.cache is not None and not request.bypass_cache:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return GenerationResult(
                    workflow=cached.workflow,
                    validation=cached.metadata.get("validation", {"valid": True}),
                    metadata=cached.metadata,
                    import_instructions=import_instructions(platform),
                    from_cache=True,
                )

        retrieval = RetrievalResult()
        if request.use_rag and self.retriever is not None:
            retrieval = await self.retriever.get_relevant_context(
                request.input,
                platform,
                max_documents=self.settings.rag_max_documents,
                min_relevance=self.settings.rag_min_relevance,
                include_examples=request.include_examples,
            )

        options = PromptOptions(
            complexity=complexity,
            error_handling=request.error_handling,
            optimization=request.optimization,
            include_examples=request.include_examples,
            simplified=request.simplified_prompt,
        )
        prompt = compose(platform, request.input, retrieval.documents, options)
        system_prompt = compose_system_prompt(platform, complexity)

        client = self.client_for(provider)
        completion = await client.generate(prompt, system_prompt=system_prompt, platform=platform)

        parsed = extract_json(completion.content)
        if not isinstance(parsed, dict):
            raise ParseError(
                f"Expected a workflow object, got {type(parsed).__name__}",
                preview=completion.content[:200],
            )
        ai_metadata = parsed.pop(AI_METADATA_KEY, None)

        workflow = clean_for_export(parsed, platform)

        history: list[GenerationAttempt] = []
        suggestions: list[str] = []
        regeneration = RegenerationUsage()
        if request.validate_output:
            # normalize: the loop sees the raw output and records the format fixes
            outcome = await self.orchestrator.validate_and_fix(
                workflow,
                prompt,
                max_attempts=request.max_attempts,
                platform=platform,
                bypass_cache=request.bypass_cache,
                regenerator=client,
                normalize=True,
            )
            workflow = clean_for_export(outcome.workflow, platform)
            history = outcome.history
            suggestions = outcome.suggestions
            if not outcome.from_cache:
                regeneration = outcome.regeneration_usage
            validation = self._validation_summary(outcome)
        else:
            fixes: list[str] = []
            if platform in REPAIRABLE_PLATFORMS:
                fix_result = self.format_fixer.fix(workflow)
                workflow = clean_for_export(fix_result.workflow, platform)
                fixes = fix_result.fixes
                suggestions = ValidationOrchestrator.generate_suggestions([], fix_result.suggestions)
                if fixes:
                    logger.info("Applied %d format fixes to unvalidated workflow", len(fixes))
            validation = {"valid": True, "skipped": True, "attempts": 0, "fixes_applied": fixes}

        input_tokens = completion.usage.input_tokens or client.estimate_tokens(f"{system_prompt}\n{prompt}")
        output_tokens = completion.usage.output_tokens or client.estimate_tokens(completion.content)
        cost = client.calculate_cost(input_tokens, output_tokens, completion.model) + regeneration.cost
        input_tokens += regeneration.input_tokens
        output_tokens += regeneration.output_tokens
        metadata: dict[str, Any] = {
            "provider": str(request.provider),
            "model": completion.model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "cost": cost,
            "regenerations": regeneration.calls,
            "generation_time_ms": int((time.perf_counter() - start) * 1000),
            "platform": platform,
            "complexity": complexity,
            "rag_enhanced": bool(retrieval.documents),
            "rag_docs_used": len(retrieval.documents),
            "avg_relevance": retrieval.avg_relevance,
            "attempts": validation.get("attempts", 0),
        }
        if platform in REPAIRABLE_PLATFORMS:
            metadata["complexity_score"] = assess_complexity(workflow)
        if ai_metadata is not None:
            metadata["ai_metadata"] = ai_metadata

        if self.cache is not None and validation.get("valid"):
            await self.cache.set(
                cache_key,
                CachedResult(workflow=workflow, metadata={**metadata, "validation": validation}),
                platform=platform,
                input_hash=input_hash(request.input),
            )

        logger.info(
            "Generated %s workflow with %d nodes in %dms (valid=%s)",
            platform,
            len(workflow.get("nodes", []) or []),
            metadata["generation_time_ms"],
            validation.get("valid"),
        )
        return GenerationResult(
            workflow=workflow,
            validation=validation,
            metadata=metadata,
            history=history,
            suggestions=suggestions,
            import_instructions=import_instructions(platform),
        )

    @staticmethod
    def _validation_summary(outcome: ValidationOutcome) -> dict[str, Any]:
        return {
            **summarize(outcome.report),
            "valid": outcome.success,
            "warnings": len(outcome.report.warnings),
            "attempts": outcome.attempts,
            "fixes_applied": [fix for attempt in outcome.history for fix in attempt.fixes_applied],
            "from_cache": outcome.from_cache,
        }

    async def validate_and_fix(
        self,
        workflow: Any,
        original_prompt: str = "",
        options: dict[str, Any] | None = None,
    ) -> ValidationOutcome:
        """Run an existing workflow through the validate-and-fix loop.

        Recognized options: ``max_attempts``, ``platform``, ``bypass_cache``,
        ``provider`` (a completion provider name such as "anthropic"; enables
        regeneration with that provider's client) and ``strict``.

        Raises:
            SchemaValidationError: ``strict`` is set and errors remain after the loop
        """
        options = options or {}
        regenerator = None
        if options.get("provider"):
            try:
                regenerator = self.client_for(options["provider"])
            except FlowForgeError as e:
                logger.warning("Regeneration disabled: %s", e)
        outcome = await self.orchestrator.validate_and_fix(
            workflow,
            original_prompt,
            max_attempts=options.get("max_attempts", self.settings.validation_max_attempts),
            platform=options.get("platform", "n8n"),
            bypass_cache=options.get("bypass_cache", False),
            regenerator=regenerator,
        )
        if options.get("strict"):
            outcome.raise_for_failure()
        return outcome


def create_workflow_generator(settings: Settings | None = None) -> WorkflowGenerator:
    """WorkflowGenerator wired from settings."""
    settings = settings or get_settings()
    validator = StructuralValidator()
    format_fixer = PlatformFormatFixer()
    orchestrator = ValidationOrchestrator(
        validator=validator,
        format_fixer=format_fixer,
        cache=ValidationCache(
            ttl_seconds=settings.validation_cache_ttl_seconds,
            max_size=settings.validation_cache_max_size,
        ),
        regeneration_temperature=settings.regeneration_temperature,
        max_attempts_cap=settings.validation_attempts_cap,
    )
    return WorkflowGenerator(
        retriever=build_context_retriever(settings),
        cache=build_result_cache(settings),
        orchestrator=orchestrator,
        format_fixer=format_fixer,
        settings=settings,
    )
