"""Map positions reported against sampled content back onto the original content.

Offsets are 0-based character indices; lines and columns are 1-based.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from detective_d.core.sampler import WINDOW_CLOSE_MARKER, window_open_marker
from detective_d.models import Finding, NormalizedFinding, TruncationMap

logger = logging.getLogger(__name__)

SEARCH_WINDOW_LINES = 3

_SNIPPET_PATTERN = re.compile(r"`([^`]+)`|\"([^\"]+)\"|'([^']+)'")


@dataclass(frozen=True)
class SnippetMatch:
    matches: bool
    confidence: float
    actual_line: int | None = None


@dataclass(frozen=True)
class NormalizedPosition:
    line: int | None
    column: int | None
    confidence: float
    note: str | None = None
    is_approximate: bool = False
    original_position: int | None = None


def offset_to_line_column(content: str, offset: int) -> tuple[int, int]:
    offset = max(0, min(offset, len(content)))
    line = content.count("\n", 0, offset) + 1
    line_start = content.rfind("\n", 0, offset) + 1
    return line, offset - line_start + 1


def line_column_to_offset(content: str, line: int, column: int = 1) -> int:
    """Return the offset of ``line``/``column``, or -1 when the line does not exist."""
    lines = content.split("\n")
    if line < 1 or line > len(lines):
        return -1
    offset = sum(len(text) + 1 for text in lines[: line - 1])
    return offset + min(max(column, 1) - 1, len(lines[line - 1]))


def map_truncated_offset(offset: int, truncation: TruncationMap) -> int | None:
    """Translate an offset in the sampled text to one in the original text.

    Returns None when the offset does not correspond to any kept original text.
    """
    if not truncation.was_truncated:
        return offset
    if offset < truncation.head_chars:
        return offset

    tail_start = truncation.truncated_length - truncation.tail_chars
    if offset >= tail_start:
        return truncation.original_length - truncation.tail_chars + (offset - tail_start)

    for window in truncation.error_windows:
        if window.sampled_start is None:
            continue
        window_length = window.end - window.start
        if window.sampled_start <= offset < window.sampled_start + window_length:
            return window.start + (offset - window.sampled_start)

    # Offsets on the marker text surrounding a window resolve to that window's start.
    for window in truncation.error_windows:
        if window.sampled_start is None:
            continue
        opened = window.sampled_start - len(window_open_marker(window.start))
        closed = window.sampled_start + (window.end - window.start) + len(WINDOW_CLOSE_MARKER)
        if opened <= offset < closed:
            return window.start
    return None


def verify_snippet_at_line(content: str, line: int, snippet: str, window: int = SEARCH_WINDOW_LINES) -> SnippetMatch:
    lines = content.split("\n")
    if line < 1 or line > len(lines):
        return SnippetMatch(matches=False, confidence=0.0)

    needle = snippet.strip().lower()
    if not needle:
        return SnippetMatch(matches=False, confidence=0.5)

    if needle in lines[line - 1].lower():
        return SnippetMatch(matches=True, confidence=1.0, actual_line=line)

    first = max(1, line - window)
    last = min(len(lines), line + window)
    for candidate in range(first, last + 1):
        if needle in lines[candidate - 1].lower():
            distance = abs(candidate - line)
            return SnippetMatch(matches=True, confidence=max(1.0 - 0.2 * distance, 0.5), actual_line=candidate)

    words = [word for word in needle.split() if len(word) > 3]
    if words:
        for candidate in range(first, last + 1):
            text = lines[candidate - 1].lower()
            matched = sum(1 for word in words if word in text)
            if matched >= len(words) * 0.6:
                distance = abs(candidate - line)
                ratio = matched / len(words)
                return SnippetMatch(
                    matches=True,
                    confidence=max(ratio * (1.0 - 0.15 * distance), 0.4),
                    actual_line=candidate,
                )

    return SnippetMatch(matches=False, confidence=0.0)


def normalize_position(
    content: str,
    *,
    line: int | None = None,
    column: int | None = None,
    position: int | None = None,
    snippet: str | None = None,
    truncation: TruncationMap | None = None,
) -> NormalizedPosition:
    lines = content.split("\n")

    if line is not None:
        if line < 1 or line > len(lines):
            logger.warning("Reported line %d is outside 1..%d", line, len(lines))
            return NormalizedPosition(
                line=None,
                column=None,
                confidence=0.2,
                note=f"Invalid line number {line} (file has {len(lines)} lines)",
            )
        if column is not None:
            return _normalize_line_and_column(content, lines, line, column, snippet)
        return _normalize_line_only(content, line, snippet)

    if position is not None:
        return _normalize_offset(content, position, snippet, truncation)

    return NormalizedPosition(line=None, column=None, confidence=0.0, note="No position information provided")


def _normalize_line_and_column(
    content: str, lines: list[str], line: int, column: int, snippet: str | None
) -> NormalizedPosition:
    valid_column = min(column, len(lines[line - 1]) + 1)
    if not snippet:
        return NormalizedPosition(line=line, column=valid_column, confidence=0.8)

    match = verify_snippet_at_line(content, line, snippet)
    if not match.matches or match.actual_line is None:
        logger.debug("Snippet %r not found near line %d", snippet[:50], line)
        return NormalizedPosition(
            line=line,
            column=valid_column,
            confidence=0.6,
            note="Line number may be approximate (snippet does not match)",
            is_approximate=True,
        )
    if match.actual_line == line:
        return NormalizedPosition(line=line, column=valid_column, confidence=1.0)

    adjusted_column = min(valid_column, len(lines[match.actual_line - 1]) + 1)
    return NormalizedPosition(
        line=match.actual_line,
        column=adjusted_column,
        confidence=match.confidence,
        note=f"Adjusted from line {line} based on snippet match",
        is_approximate=True,
    )


def _normalize_line_only(content: str, line: int, snippet: str | None) -> NormalizedPosition:
    if snippet:
        match = verify_snippet_at_line(content, line, snippet)
        if match.matches and match.actual_line is not None:
            moved = match.actual_line != line
            return NormalizedPosition(
                line=match.actual_line,
                column=None,
                confidence=match.confidence,
                note=f"Adjusted from line {line} based on snippet match" if moved else None,
                is_approximate=moved,
            )
    return NormalizedPosition(line=line, column=None, confidence=0.7)


def _normalize_offset(
    content: str, position: int, snippet: str | None, truncation: TruncationMap | None
) -> NormalizedPosition:
    truncated = truncation is not None and truncation.was_truncated
    offset: int | None = position
    if truncation is not None:
        offset = map_truncated_offset(position, truncation)
    if offset is None:
        logger.warning("Position %d falls in an omitted section of the sampled content", position)
        return NormalizedPosition(
            line=None,
            column=None,
            confidence=0.1,
            note="Position is in omitted section of truncated content",
        )

    line, column = offset_to_line_column(content, offset)
    if snippet:
        match = verify_snippet_at_line(content, line, snippet)
        if match.matches and match.actual_line is not None:
            moved = match.actual_line != line
            verified = line_column_to_offset(content, match.actual_line, column)
            _, verified_column = offset_to_line_column(content, verified)
            return NormalizedPosition(
                line=match.actual_line,
                column=verified_column,
                confidence=match.confidence,
                note=f"Adjusted from line {line} based on snippet match" if moved else None,
                is_approximate=moved,
                original_position=verified,
            )

    return NormalizedPosition(
        line=line,
        column=column,
        confidence=0.7 if truncated else 0.9,
        note="Position mapped from truncated content" if truncated else None,
        original_position=offset,
    )


def extract_snippet(explanation: str) -> str | None:
    """Return the first backticked or quoted fragment of ``explanation``."""
    match = _SNIPPET_PATTERN.search(explanation or "")
    if match is None:
        return None
    return next(group for group in match.groups() if group is not None)


def normalize_findings(
    findings: list[Finding], content: str, truncation: TruncationMap | None = None
) -> list[NormalizedFinding]:
    """Re-anchor every finding onto the original content and combine confidences."""
    normalized: list[NormalizedFinding] = []
    for finding in findings:
        result = normalize_position(
            content,
            line=finding.line,
            column=finding.column,
            position=finding.position,
            snippet=extract_snippet(finding.explanation),
            truncation=truncation,
        )
        if finding.confidence is None:
            confidence = result.confidence
        else:
            confidence = finding.confidence * result.confidence
        if result.confidence < 0.5:
            logger.debug("Low position confidence %.2f for %r", result.confidence, finding.message[:60])

        data = finding.model_dump()
        data.update(
            line=result.line,
            column=result.column if result.line is not None else None,
            position=result.original_position,
            confidence=round(min(max(confidence, 0.0), 1.0), 4),
            is_approximate=result.is_approximate,
            position_note=result.note,
        )
        normalized.append(NormalizedFinding.model_validate(data))
    return normalized
