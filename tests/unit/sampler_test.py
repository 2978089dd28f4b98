"""Tests for head/tail/error-window sampling of large content."""

from detective_d.core.sampler import (
    CONTENT_OMITTED_MARKER,
    HEAD_CHARS,
    MAX_PASSTHROUGH_CHARS,
    MIDDLE_OMITTED_MARKER,
    TAIL_CHARS,
    WINDOW_CLOSE_MARKER,
    build_truncation_note,
    extract_error_windows,
    truncate_content,
    window_open_marker,
)
from detective_d.models import ParserHint


def _content(length: int = 20000) -> str:
    # Distinct characters per region so slices can be told apart.
    return "".join(chr(ord("a") + (index // 1000) % 26) for index in range(length))


def _hint(position: int | None = None, line: int | None = None) -> ParserHint:
    return ParserHint(kind="syntax_error", message="Unexpected token", position=position, line=line)


class TestPassthrough:
    def test_short_content_is_untouched(self) -> None:
        content = "x" * MAX_PASSTHROUGH_CHARS
        sampled = truncate_content(content, [_hint(position=5)])
        assert sampled.content == content
        assert sampled.truncation.was_truncated is False
        assert sampled.truncation.original_length == MAX_PASSTHROUGH_CHARS
        assert sampled.truncation.truncated_length == MAX_PASSTHROUGH_CHARS
        assert sampled.truncation.error_windows == []
        assert sampled.prompt_note == ""


class TestExtractErrorWindows:
    def test_window_clamped_to_content(self) -> None:
        windows = extract_error_windows("x" * 100, [_hint(position=10)])
        assert [(window.start, window.end) for window in windows] == [(0, 100)]

    def test_duplicates_collapse_and_sorted(self) -> None:
        content = "x" * 5000
        windows = extract_error_windows(content, [_hint(position=3000), _hint(position=1000), _hint(position=3000)])
        assert [window.start for window in windows] == [500, 2500]

    def test_line_hint_uses_line_start(self) -> None:
        content = ("y" * 99 + "\n") * 30
        windows = extract_error_windows(content, [_hint(line=21)])
        assert windows[0].start == 2000 - 500
        assert windows[0].reason.startswith("Error at line 21")

    def test_hint_without_location_is_ignored(self) -> None:
        assert extract_error_windows("x" * 100, [_hint()]) == []


class TestTruncation:
    def test_head_and_tail_are_kept_verbatim(self) -> None:
        content = _content()
        sampled = truncate_content(content)
        assert sampled.content.startswith(content[:HEAD_CHARS] + CONTENT_OMITTED_MARKER)
        assert sampled.content.endswith(MIDDLE_OMITTED_MARKER + content[-TAIL_CHARS:])
        truncation = sampled.truncation
        assert truncation.was_truncated is True
        assert truncation.head_chars == HEAD_CHARS
        assert truncation.tail_chars == TAIL_CHARS
        assert truncation.truncated_length == len(sampled.content)
        assert [(r.start, r.end) for r in truncation.omitted_ranges] == [(HEAD_CHARS, 20000 - TAIL_CHARS)]

    def test_middle_error_window_is_spliced_in(self) -> None:
        content = _content()
        sampled = truncate_content(content, [_hint(position=10000)])
        expected = (
            content[:HEAD_CHARS]
            + CONTENT_OMITTED_MARKER
            + window_open_marker(9500)
            + content[9500:10500]
            + WINDOW_CLOSE_MARKER
            + content[-TAIL_CHARS:]
        )
        assert sampled.content == expected

        [window] = sampled.truncation.error_windows
        assert (window.start, window.end) == (9500, 10500)
        assert window.sampled_start == HEAD_CHARS + len(CONTENT_OMITTED_MARKER) + len(window_open_marker(9500))
        assert sampled.content[window.sampled_start : window.sampled_start + 1000] == content[9500:10500]
        assert [(r.start, r.end) for r in sampled.truncation.omitted_ranges] == [(6000, 9500), (10500, 16000)]

    def test_window_overlapping_head_is_not_spliced(self) -> None:
        sampled = truncate_content(_content(), [_hint(position=6200)])
        [window] = sampled.truncation.error_windows
        assert window.sampled_start is None
        assert MIDDLE_OMITTED_MARKER in sampled.content
        assert "ERROR CONTEXT" not in sampled.content

    def test_prompt_note_lists_sections(self) -> None:
        sampled = truncate_content(_content(), [_hint(position=10000)])
        note = sampled.prompt_note
        assert "Head: characters 0-6000" in note
        assert "Error context: characters 9500-10500" in note
        assert "Tail: characters 16000-20000" in note
        assert "Characters 6000-9500 (3500 chars)" in note
        assert "Original file length: 20000 characters." in note
        assert note == build_truncation_note(sampled.truncation)
