from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from detective_d.core.precheck import is_parseable
from detective_d.models import FileType, NormalizedFinding, Safety

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 50

_STRUCTURAL_CHARS = frozenset({",", ";", ":", "{", "}", "[", "]", "(", ")", '"', "'"})

_SAFE_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"add\s+(comma|semicolon|colon|bracket|brace|parenthesis|quote)",
        r"insert\s+(,|;|:|\{|\}|\[|\]|\(|\)|\"|')",
        r"missing\s+(comma|semicolon|bracket|brace|quote)",
        r"remove\s+(trailing\s+)?(comma|semicolon)",
        r"delete\s+(extra|duplicate)\s+(comma|brace|bracket)",
        r"fix\s+(indentation|whitespace|spacing)",
        r"add\s+(newline|line\s+break)",
        r"remove\s+(extra\s+)?(whitespace|spaces|tabs)",
        r"add\s+(closing|opening)\s+quote",
        r"escape\s+quote",
        r"change\s+(single|double)\s+quote",
    )
)

_RISKY_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"remove\s+(field|property|key|value|data|content|line|row|column)",
        r"delete\s+(field|property|key|value|data|content|line|row)",
        r"restructure|reorganize|rewrite|refactor",
        r"change\s+(structure|format|schema|type)",
        r"convert\s+(to|from)\s+(array|object|string|number)",
        r"and\s+(also\s+)?(remove|delete|change|modify)",
        r"first.*then",
        r"fix\s+all|correct\s+everything|repair\s+entire",
    )
)

_APPEND = re.compile(r"add.*at\s+end|append|insert.*after", re.IGNORECASE)
_PREPEND = re.compile(r"add.*at\s+start|prepend|insert.*before", re.IGNORECASE)
_REPLACE_LINE = re.compile(r"replace.*line|change.*line", re.IGNORECASE)


def evaluate_safety(description: str, fix_code: str | None = None) -> Safety:
    """Classify a repair suggestion when the model did not tag it."""
    if fix_code and len(fix_code) <= 3 and fix_code.strip() in _STRUCTURAL_CHARS:
        return "safe"
    if any(pattern.search(description) for pattern in _SAFE_PATTERNS):
        return "safe"
    if any(pattern.search(description) for pattern in _RISKY_PATTERNS):
        return "risky"
    return "manual_review"


def suggestion_preview(fix_code: str | None) -> str | None:
    if not fix_code:
        return None
    if len(fix_code) <= PREVIEW_LIMIT:
        return fix_code
    return fix_code[: PREVIEW_LIMIT - 3] + "..."


def apply_suggestion(content: str, line: int | None, column: int | None, fix_code: str, description: str) -> str | None:
    """Apply ``fix_code`` to ``content`` at ``line``; None when there is nowhere to apply it."""
    lines = content.split("\n")
    if line is None or line < 1 or line > len(lines):
        return None
    index = line - 1
    current = lines[index]
    if _APPEND.search(description):
        lines[index] = current + fix_code
    elif _PREPEND.search(description):
        lines[index] = fix_code + current
    elif column is not None and column >= 1:
        cut = min(column - 1, len(current))
        lines[index] = current[:cut] + fix_code + current[cut:]
    elif _REPLACE_LINE.search(description):
        lines[index] = fix_code
    else:
        lines[index] = current + fix_code
    return "\n".join(lines)


@dataclass(frozen=True)
class PostProcessResult:
    findings: list[NormalizedFinding]
    total_errors: int
    total_warnings: int
    sanity_checks_passed: int
    sanity_checks_failed: int


def _sanity_check(finding: NormalizedFinding, content: str, file_type: FileType) -> tuple[NormalizedFinding, bool | None]:
    if not finding.suggestions or not finding.suggestions[0].fix_code:
        return finding, None
    first = finding.suggestions[0]
    patched = apply_suggestion(content, finding.line, finding.column, first.fix_code or "", first.description)
    if patched is None:
        factor, safety, passed = 0.8, "risky", None
    elif is_parseable(patched, file_type):
        factor, safety, passed = 1.2, "safe", True
    else:
        factor, safety, passed = 0.6, "risky", False

    suggestions = [first.model_copy(update={"safety": safety}), *finding.suggestions[1:]]
    confidence = round(min(finding.confidence * factor, 1.0), 4)
    return finding.model_copy(update={"confidence": confidence, "suggestions": suggestions}), passed


def post_process(findings: list[NormalizedFinding], content: str, file_type: FileType) -> PostProcessResult:
    """Attach ids and previews, then sanity-check each first suggestion against the local parser."""
    processed: list[NormalizedFinding] = []
    passed = failed = 0
    for index, finding in enumerate(findings):
        suggestions = [
            suggestion.model_copy(update={"preview": suggestion_preview(suggestion.fix_code)})
            for suggestion in finding.suggestions
        ]
        finding = finding.model_copy(
            update={
                "id": f"{finding.category}_{finding.line or 0}_{finding.column or 0}_{index}",
                "suggestions": suggestions,
            }
        )
        finding, outcome = _sanity_check(finding, content, file_type)
        if outcome is True:
            passed += 1
        elif outcome is False:
            failed += 1
        processed.append(finding)

    errors = sum(1 for finding in processed if finding.type == "error")
    if failed:
        logger.info("Sanity checks: %d passed, %d failed", passed, failed)
    return PostProcessResult(
        findings=processed,
        total_errors=errors,
        total_warnings=len(processed) - errors,
        sanity_checks_passed=passed,
        sanity_checks_failed=failed,
    )

