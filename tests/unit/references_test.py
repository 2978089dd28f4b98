"""Tests for reference snippet retrieval."""

from detective_d.core.references import ReferenceLibrary, build_retrieval_context, format_snippets_for_prompt
from detective_d.models import ParserHint, ReferenceSnippet


class TestReferenceLibrary:
    def test_builtin_library_covers_every_format(self) -> None:
        status = ReferenceLibrary().status()
        assert status["loaded"] is True
        assert status["total_snippets"] == 16
        assert status["by_file_type"] == {"json": 4, "csv": 4, "xml": 4, "yaml": 4}

    def test_keyword_and_error_scoring(self) -> None:
        snippets = ReferenceLibrary().retrieve("json", "Trailing comma error")
        assert [snippet.id for snippet in snippets] == [
            "JSON_RULES_TRAILING_COMMA_RULES",
            "JSON_PATTERNS_COMMON_MISTAKES",
            "JSON_REPAIRS_REPAIR_STRATEGIES",
        ]

    def test_rules_win_without_context(self) -> None:
        snippets = ReferenceLibrary().retrieve("json")
        assert [snippet.category for snippet in snippets] == ["rules", "rules", "patterns"]

    def test_only_matching_file_type(self) -> None:
        assert all(snippet.file_type == "yaml" for snippet in ReferenceLibrary().retrieve("YAML", limit=10))

    def test_limit(self) -> None:
        assert len(ReferenceLibrary().retrieve("csv", limit=2)) == 2

    def test_unknown_file_type(self) -> None:
        assert ReferenceLibrary().retrieve("toml") == []

    def test_empty_library(self) -> None:
        library = ReferenceLibrary([])
        assert library.loaded is False
        assert library.retrieve("json") == []


def test_retrieval_context_joins_hints_and_head() -> None:
    hints = [ParserHint(kind="syntax_error", message="Missing comma")]
    context = build_retrieval_context(hints, "x" * 1000)
    assert context.startswith("Missing comma")
    assert context.count("x") == 500


def test_format_snippets_for_prompt() -> None:
    snippet = ReferenceSnippet(id="S", file_type="xml", category="rules", title="Tags", content="Close every tag.")
    assert format_snippets_for_prompt([snippet]) == "REFERENCE RULES:\n\n[1] Tags (rules)\nClose every tag."
    assert format_snippets_for_prompt([]) == ""
