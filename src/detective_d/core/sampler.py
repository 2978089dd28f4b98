from __future__ import annotations

import logging
from dataclasses import dataclass

from detective_d.models import ErrorWindow, OmittedRange, ParserHint, TruncationMap

logger = logging.getLogger(__name__)

MAX_PASSTHROUGH_CHARS = 12000
HEAD_CHARS = 6000
TAIL_CHARS = 4000
WINDOW_RADIUS = 500

CONTENT_OMITTED_MARKER = "\n\n...<TRUNCATED: Content omitted>...\n\n"
MIDDLE_OMITTED_MARKER = "\n\n...<TRUNCATED: Middle section omitted>...\n\n"
WINDOW_CLOSE_MARKER = "\n...<END ERROR CONTEXT>...\n\n"


def window_open_marker(start: int) -> str:
    return f"\n\n...<ERROR CONTEXT at position {start}>...\n"


@dataclass(frozen=True)
class SampledContent:
    content: str
    truncation: TruncationMap
    prompt_note: str = ""


def _hint_offset(content: str, hint: ParserHint) -> int | None:
    if hint.position is not None:
        return hint.position
    if hint.line is not None and hint.line >= 1:
        lines = content.split("\n")
        return sum(len(text) + 1 for text in lines[: hint.line - 1])
    return None


def extract_error_windows(content: str, hints: list[ParserHint], radius: int = WINDOW_RADIUS) -> list[ErrorWindow]:
    """Carve a window of ``radius`` characters either side of every positioned hint."""
    windows: list[ErrorWindow] = []
    seen: set[tuple[int, int]] = set()
    for hint in hints:
        offset = _hint_offset(content, hint)
        if offset is None:
            continue
        start = max(0, offset - radius)
        end = min(len(content), offset + radius)
        if (start, end) in seen:
            continue
        seen.add((start, end))
        where = f"line {hint.line}" if hint.line is not None else f"position {offset}"
        windows.append(ErrorWindow(start=start, end=end, reason=f"Error at {where}: {hint.message[:50]}"))
    return sorted(windows, key=lambda window: window.start)


def truncate_content(content: str, hints: list[ParserHint] | None = None) -> SampledContent:
    """Bound ``content`` to a head, a tail and the neighbourhood of each hint.

    Short content passes through untouched. Longer content keeps the first
    ``HEAD_CHARS`` and last ``TAIL_CHARS`` characters verbatim plus every error
    window lying strictly between them; the returned map records what was kept.
    """
    original_length = len(content)
    if original_length <= MAX_PASSTHROUGH_CHARS:
        return SampledContent(
            content=content,
            truncation=TruncationMap(
                was_truncated=False,
                original_length=original_length,
                truncated_length=original_length,
            ),
        )

    tail_start = original_length - TAIL_CHARS
    windows = extract_error_windows(content, hints or [])
    parts = [content[:HEAD_CHARS], CONTENT_OMITTED_MARKER]
    cursor = HEAD_CHARS + len(CONTENT_OMITTED_MARKER)
    included: list[ErrorWindow] = []

    for window in windows:
        if window.start < HEAD_CHARS or window.end > tail_start:
            logger.debug("Skipping error window %d-%d overlapping head or tail", window.start, window.end)
            included.append(window)
            continue
        opener = window_open_marker(window.start)
        snippet = content[window.start : window.end]
        parts.extend([opener, snippet, WINDOW_CLOSE_MARKER])
        included.append(window.model_copy(update={"sampled_start": cursor + len(opener)}))
        cursor += len(opener) + len(snippet) + len(WINDOW_CLOSE_MARKER)

    if not any(window.sampled_start is not None for window in included):
        parts.append(MIDDLE_OMITTED_MARKER)
    parts.append(content[tail_start:])
    sampled = "".join(parts)

    omitted: list[OmittedRange] = []
    last_included = HEAD_CHARS
    for window in included:
        if window.sampled_start is None:
            continue
        if window.start > last_included:
            omitted.append(OmittedRange(start=last_included, end=window.start))
        last_included = max(last_included, window.end)
    if tail_start > last_included:
        omitted.append(OmittedRange(start=last_included, end=tail_start))

    truncation = TruncationMap(
        was_truncated=True,
        original_length=original_length,
        truncated_length=len(sampled),
        head_chars=HEAD_CHARS,
        tail_chars=TAIL_CHARS,
        error_windows=included,
        omitted_ranges=omitted,
    )
    logger.info(
        "Content truncated from %d to %d chars (%d error window(s))",
        original_length,
        len(sampled),
        sum(1 for window in included if window.sampled_start is not None),
    )
    return SampledContent(content=sampled, truncation=truncation, prompt_note=build_truncation_note(truncation))


def build_truncation_note(truncation: TruncationMap) -> str:
    if not truncation.was_truncated:
        return ""
    lines = [
        "IMPORTANT: The content below has been truncated to fit the analysis budget.",
        "",
        "INCLUDED SECTIONS:",
        f"- Head: characters 0-{truncation.head_chars}",
    ]
    for window in truncation.error_windows:
        if window.sampled_start is not None:
            lines.append(f"- Error context: characters {window.start}-{window.end} ({window.reason})")
    tail_start = truncation.original_length - truncation.tail_chars
    lines.append(f"- Tail: characters {tail_start}-{truncation.original_length}")
    if truncation.omitted_ranges:
        lines.extend(["", "OMITTED SECTIONS:"])
        for omitted in truncation.omitted_ranges:
            lines.append(f"- Characters {omitted.start}-{omitted.end} ({omitted.end - omitted.start} chars)")
    lines.extend(
        [
            "",
            "INSTRUCTIONS:",
            "- Line numbers in the sampled view are discontinuous; report lines of the ORIGINAL file.",
            "- Do not report errors for omitted sections you cannot see.",
            f"- Original file length: {truncation.original_length} characters.",
        ]
    )
    return "\n".join(lines)
