from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from detective_d.cache.result_cache import ResultCache, make_cache_key
from detective_d.core.detect import resolve_file_type
from detective_d.core.errors import LLMParseError, SchemaValidationError
from detective_d.core.ports.model import ModelClient
from detective_d.core.positions import normalize_findings, offset_to_line_column
from detective_d.core.postprocess import post_process
from detective_d.core.precheck import run_precheck
from detective_d.core.prompt import build_prompt, model_parameters
from detective_d.core.recovery import recover_analysis
from detective_d.core.references import ReferenceLibrary, build_retrieval_context
from detective_d.core.sampler import truncate_content
from detective_d.models import (
    AnalysisResponse,
    AnalysisSummary,
    AnalyzeRequest,
    FileType,
    LLMStatus,
    NormalizedFinding,
    ParserHint,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    response: AnalysisResponse
    cache_hit: bool
    content_hash: str


def findings_from_hints(hints: list[ParserHint], content: str) -> list[NormalizedFinding]:
    """Turn local parser hints into findings, used when the model gives nothing usable."""
    findings: list[NormalizedFinding] = []
    for hint in hints:
        line, column = hint.line, hint.column
        if line is None and hint.position is not None:
            line, column = offset_to_line_column(content, hint.position)
        findings.append(
            NormalizedFinding(
                line=line,
                column=column if line is not None else None,
                position=hint.position,
                message=hint.message,
                type="error",
                category=hint.category or "syntax",
                severity="medium",
                confidence=1.0,
                explanation=hint.message,
            )
        )
    return findings


class Analyzer:
    """Run one request through detect, precheck, sample, cache, model, recover and normalize."""

    def __init__(self, model: ModelClient, cache: ResultCache, references: ReferenceLibrary | None = None) -> None:
        self._model = model
        self._cache = cache
        self._references = references or ReferenceLibrary()

    @property
    def model(self) -> ModelClient:
        return self._model

    @property
    def cache(self) -> ResultCache:
        return self._cache

    async def analyze(self, request: AnalyzeRequest, request_id: str | None = None) -> AnalysisOutcome:
        started = time.perf_counter()
        request_id = request_id or uuid.uuid4().hex
        content = request.content

        file_type, detected = resolve_file_type(request.file_type, content)
        hints = run_precheck(content, file_type)
        sampled = truncate_content(content, hints)

        key, cache_key = make_cache_key(content, file_type, request.max_errors)
        cached = await self._cache.lookup(key)
        if cached is not None:
            response = AnalysisResponse.model_validate(cached.response)
            return AnalysisOutcome(response=response, cache_hit=True, content_hash=cache_key.content_hash)

        snippets = self._references.retrieve(file_type, build_retrieval_context(hints, content))
        prompt = build_prompt(
            file_type=file_type,
            content=sampled.content,
            original_length=len(content),
            file_name=request.file_name,
            hints=hints,
            snippets=snippets,
            truncation=sampled.truncation,
            truncation_note=sampled.prompt_note,
            max_errors=request.max_errors,
        )
        result = await self._model.complete(
            prompt, max_tokens=model_parameters(request.max_errors).max_tokens, stream=request.stream
        )

        base: dict[str, Any] = {
            "request_id": request_id,
            "file_name": request.file_name,
            "file_type": file_type,
            "detected_file_type": detected,
            "content_length": len(content),
            "parser_hints": hints,
            "truncation_map": sampled.truncation,
            "rag_snippets": [snippet.id for snippet in snippets],
        }

        def summary(**counts: int) -> AnalysisSummary:
            return AnalysisSummary(
                analysis_time_ms=int((time.perf_counter() - started) * 1000),
                rag_loaded=self._references.loaded,
                llm_provider=self._model.provider,
                llm_model=self._model.model,
                tokens_used=result.usage.total_tokens if result.usage else None,
                retries=result.retries,
                latency_ms=result.latency_ms,
                **counts,
            )

        if not result.success:
            response = self._fallback(base, hints, content, file_type, "failed", summary, llm_error=result.error)
            return AnalysisOutcome(response=response, cache_hit=False, content_hash=cache_key.content_hash)

        try:
            analysis = recover_analysis(result.text)
        except LLMParseError as exc:
            response = self._fallback(
                base, hints, content, file_type, "parse_error", summary, llm_error=str(exc), raw_llm_output=exc.raw_text
            )
            return AnalysisOutcome(response=response, cache_hit=False, content_hash=cache_key.content_hash)
        except SchemaValidationError as exc:
            response = self._fallback(
                base,
                hints,
                content,
                file_type,
                "validation_error",
                summary,
                llm_error=str(exc),
                raw_llm_output=result.text,
                schema_validation_errors=exc.violations,
            )
            return AnalysisOutcome(response=response, cache_hit=False, content_hash=cache_key.content_hash)

        findings = normalize_findings(analysis.errors[: request.max_errors], content, sampled.truncation)
        processed = post_process(findings, content, file_type)
        response = AnalysisResponse(
            **base,
            llm_status="success",
            errors=processed.findings,
            total_errors=processed.total_errors,
            analysis_confidence=analysis.analysis_confidence,
            summary=summary(
                total_errors=processed.total_errors,
                total_warnings=processed.total_warnings,
                sanity_checks_passed=processed.sanity_checks_passed,
                sanity_checks_failed=processed.sanity_checks_failed,
            ),
        )
        await self._cache.store(
            key, cache_key, response.model_dump(mode="json"), request_id=request_id, model=self._model.model
        )
        logger.info(
            "Analysis %s finished: %d finding(s) in %s content (%d ms)",
            request_id,
            len(processed.findings),
            file_type,
            response.summary.analysis_time_ms,
        )
        return AnalysisOutcome(response=response, cache_hit=False, content_hash=cache_key.content_hash)

    def _fallback(
        self,
        base: dict[str, Any],
        hints: list[ParserHint],
        content: str,
        file_type: FileType,
        status: LLMStatus,
        summary: Callable[..., AnalysisSummary],
        **diagnostics: Any,
    ) -> AnalysisResponse:
        logger.warning("Analysis %s degraded to parser hints (%s)", base["request_id"], status)
        processed = post_process(findings_from_hints(hints, content), content, file_type)
        return AnalysisResponse(
            **base,
            llm_status=status,
            errors=processed.findings,
            total_errors=processed.total_errors,
            analysis_confidence=1.0 if hints else 0.0,
            summary=summary(total_errors=processed.total_errors, total_warnings=processed.total_warnings),
            **diagnostics,
        )

