"""Tests for prompt assembly."""

import pytest

from detective_d.core.prompt import MAX_TOKENS_CEILING, build_prompt, model_parameters
from detective_d.core.references import ReferenceLibrary
from detective_d.core.sampler import truncate_content
from detective_d.models import ParserHint


class TestModelParameters:
    @pytest.mark.parametrize(("max_errors", "expected"), [(1, 700), (10, 2500), (100, MAX_TOKENS_CEILING)])
    def test_token_budget(self, max_errors: int, expected: int) -> None:
        parameters = model_parameters(max_errors)
        assert parameters.max_tokens == expected
        assert parameters.temperature == 0.0


class TestBuildPrompt:
    def test_sections_in_order(self) -> None:
        prompt = build_prompt(file_type="json", content='{"a": 1,}', original_length=9, max_errors=5)
        sections = prompt.split("\n\n---\n\n")
        assert len(sections) == 5
        assert sections[0].startswith("You are Detective D")
        assert sections[1].startswith("## ANALYSIS CONTEXT")
        assert "report at most 5 issues" in sections[2]
        assert sections[3] == '## CONTENT\n\n```json\n{"a": 1,}\n```'

    def test_context_includes_file_name_hints_and_references(self) -> None:
        hints = [ParserHint(kind="syntax_error", message="Illegal trailing comma", position=8, line=1)]
        snippets = ReferenceLibrary().retrieve("json", "trailing comma")
        prompt = build_prompt(
            file_type="json",
            content='{"a": 1,}',
            original_length=9,
            file_name="data.json",
            hints=hints,
            snippets=snippets,
        )
        assert "File name: data.json" in prompt
        assert "### PARSER HINTS" in prompt
        assert '"message": "Illegal trailing comma"' in prompt
        assert "REFERENCE RULES:" in prompt
        assert "Trailing Comma Rules" in prompt
        assert "TRUNCATION NOTICE" not in prompt

    def test_format_specific_example(self) -> None:
        prompt = build_prompt(file_type="yaml", content="a: 1", original_length=4)
        assert "Inconsistent indentation" in prompt
        assert "File type: YAML" in prompt

    def test_truncation_notice(self) -> None:
        content = "y" * 20000
        sampled = truncate_content(content)
        prompt = build_prompt(
            file_type="csv",
            content=sampled.content,
            original_length=len(content),
            truncation=sampled.truncation,
            truncation_note=sampled.prompt_note,
        )
        assert "### TRUNCATION NOTICE" in prompt
        assert "Content length: 20000 characters" in prompt
        assert "Original file length: 20000 characters." in prompt
