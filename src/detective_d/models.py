from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

FileType = Literal["json", "csv", "xml", "yaml"]
RequestedFileType = Literal["auto", "json", "csv", "xml", "yaml"]
HintKind = Literal["syntax_error", "structure_error", "warning"]
FindingType = Literal["error", "warning"]
Severity = Literal["critical", "high", "medium", "low"]
Safety = Literal["safe", "risky", "manual_review"]
LLMStatus = Literal["success", "failed", "parse_error", "validation_error"]

FILE_TYPES: tuple[str, ...] = ("json", "csv", "xml", "yaml")
FINDING_TYPES: tuple[str, ...] = ("error", "warning")
SEVERITIES: tuple[str, ...] = ("critical", "high", "medium", "low")
SAFETY_LEVELS: tuple[str, ...] = ("safe", "risky", "manual_review")


class ParserHint(BaseModel):
    """A defect found by a local parser, positioned against the original content."""

    model_config = ConfigDict(frozen=True)

    kind: HintKind
    message: str
    position: int | None = None
    line: int | None = None
    column: int | None = None
    row: int | None = None
    category: str | None = None


class ErrorWindow(BaseModel):
    start: int
    end: int
    reason: str
    # Offset of the window's first character inside the sampled text, None when not spliced in.
    sampled_start: int | None = None


class OmittedRange(BaseModel):
    start: int
    end: int


class TruncationMap(BaseModel):
    was_truncated: bool
    original_length: int
    truncated_length: int
    head_chars: int = 0
    tail_chars: int = 0
    error_windows: list[ErrorWindow] = Field(default_factory=list)
    omitted_ranges: list[OmittedRange] = Field(default_factory=list)


class Suggestion(BaseModel):
    description: str
    safety: Safety = "manual_review"
    fix_code: str | None = None
    preview: str | None = None


class Finding(BaseModel):
    """One issue reported by the model after repair."""

    line: int | None = Field(default=None, ge=1)
    column: int | None = Field(default=None, ge=1)
    position: int | None = Field(default=None, ge=0)
    message: str
    type: FindingType = "error"
    category: str = "syntax"
    severity: Severity = "medium"
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    explanation: str = ""
    suggestions: list[Suggestion] = Field(default_factory=list)


class ModelAnalysis(BaseModel):
    """The validated payload a model completion must reduce to."""

    errors: list[Finding]
    total_errors: int = Field(ge=0)
    analysis_confidence: float = Field(ge=0.0, le=1.0)


class NormalizedFinding(Finding):
    """A finding whose line/column refer to the original content."""

    id: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    is_approximate: bool = False
    position_note: str | None = None


class AnalyzeRequest(BaseModel):
    content: str
    file_type: RequestedFileType = "auto"
    file_name: str | None = None
    max_errors: int = Field(default=100, ge=1, le=1000)
    stream: bool = False

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must be a non-empty string")
        return value


class ReferenceSnippet(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    file_type: FileType
    category: str
    title: str
    content: str
    keywords: tuple[str, ...] = ()


class AnalysisSummary(BaseModel):
    total_errors: int = 0
    total_warnings: int = 0
    analysis_time_ms: int = 0
    rag_loaded: bool = False
    llm_provider: str
    llm_model: str
    tokens_used: int | None = None
    retries: int = 0
    latency_ms: int | None = None
    sanity_checks_passed: int = 0
    sanity_checks_failed: int = 0


class AnalysisResponse(BaseModel):
    request_id: str
    file_name: str | None = None
    file_type: FileType
    detected_file_type: FileType
    content_length: int
    parser_hints: list[ParserHint] = Field(default_factory=list)
    truncation_map: TruncationMap | None = None
    rag_snippets: list[str] = Field(default_factory=list)
    llm_status: LLMStatus
    errors: list[NormalizedFinding] = Field(default_factory=list)
    total_errors: int = 0
    analysis_confidence: float = 0.0
    summary: AnalysisSummary
    llm_error: str | None = None
    raw_llm_output: str | None = None
    schema_validation_errors: list[str] | None = None

    @property
    def is_fallback(self) -> bool:
        return self.llm_status != "success"


class CacheKey(BaseModel):
    content_hash: str
    max_errors: int
    file_type: FileType


class CacheEntry(BaseModel):
    request_id: str
    cache_key: CacheKey
    response: dict[str, Any]
    model: str
    model_version: str
    rag_version: str
    created_at: float
    ttl_seconds: int
