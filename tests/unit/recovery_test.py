"""Tests for extracting, repairing and validating model output."""

import json

import pytest

from detective_d.core.errors import LLMParseError, SchemaValidationError
from detective_d.core.recovery import (
    extract_balanced_json,
    parse_json_response,
    recover_analysis,
    repair_response,
    validate_response,
)

VALID = {
    "errors": [
        {
            "line": 2,
            "column": 5,
            "message": "Missing comma",
            "type": "error",
            "category": "syntax",
            "severity": "high",
            "confidence": 0.9,
            "explanation": "Expected `,` after value",
            "suggestions": [{"description": "Add comma", "fix_code": ",", "safety": "safe"}],
        }
    ],
    "total_errors": 1,
    "analysis_confidence": 0.85,
}


class TestExtractBalancedJson:
    def test_braces_inside_strings_are_ignored(self) -> None:
        assert extract_balanced_json('noise {"a": "}"} trailing') == '{"a": "}"}'

    def test_escaped_quotes(self) -> None:
        text = 'x {"a": "say \\"}\\" now", "b": {"c": 1}} y'
        assert json.loads(extract_balanced_json(text) or "") == {"a": 'say "}" now', "b": {"c": 1}}

    def test_unbalanced(self) -> None:
        assert extract_balanced_json('{"a": {"b": 1}') is None

    def test_no_opener(self) -> None:
        assert extract_balanced_json("plain text") is None

    def test_array_opener(self) -> None:
        assert extract_balanced_json("see [1, [2, 3]] ok", opener="[") == "[1, [2, 3]]"


class TestParseJsonResponse:
    def test_direct(self) -> None:
        assert parse_json_response(json.dumps(VALID)) == VALID

    def test_fenced_block(self) -> None:
        text = f"Here you go:\n```json\n{json.dumps(VALID)}\n```\nThanks"
        assert parse_json_response(text) == VALID

    def test_prose_around_object(self) -> None:
        text = f"The analysis follows. {json.dumps(VALID)} Let me know."
        assert parse_json_response(text) == VALID

    def test_first_balanced_object_when_several_follow(self) -> None:
        assert parse_json_response('noise {"a": "}"} trailing {"b": 2}') == {"a": "}"}

    def test_bare_array(self) -> None:
        assert parse_json_response('[{"message": "x"}]') == [{"message": "x"}]

    def test_array_in_prose(self) -> None:
        assert parse_json_response("Lines [3, 7] are broken") == [3, 7]

    def test_nothing_parseable(self) -> None:
        with pytest.raises(LLMParseError) as excinfo:
            parse_json_response("I could not analyze this file, sorry.")
        assert excinfo.value.raw_text == "I could not analyze this file, sorry."


class TestRepairResponse:
    def test_defaults_for_missing_fields(self) -> None:
        repaired = repair_response({"errors": [{"line": "7"}]})
        [finding] = repaired["errors"]
        assert finding["line"] == 7
        assert finding["message"] == "Unknown error"
        assert finding["explanation"] == "Unknown error"
        assert finding["type"] == "error"
        assert finding["severity"] == "medium"
        assert finding["category"] == "syntax"
        assert finding["suggestions"] == []
        assert repaired["total_errors"] == 1
        assert repaired["analysis_confidence"] == 0.5

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("95%", 0.95), ("0.4", 0.4), (1.7, 1.0), (-2, 0.0), ("high", None), (True, None)],
    )
    def test_confidence_coercion(self, raw: object, expected: float | None) -> None:
        [finding] = repair_response({"errors": [{"message": "m", "confidence": raw}]})["errors"]
        assert finding["confidence"] == expected

    def test_lines_and_columns_are_clamped(self) -> None:
        [finding] = repair_response({"errors": [{"line": 0, "column": -4, "position": -1}]})["errors"]
        assert (finding["line"], finding["column"], finding["position"]) == (1, 1, 0)

    def test_warning_defaults_to_low_severity(self) -> None:
        [finding] = repair_response({"errors": [{"type": "Warning", "severity": "bogus"}]})["errors"]
        assert finding["type"] == "warning"
        assert finding["severity"] == "low"

    def test_suggestion_aliases_and_inferred_safety(self) -> None:
        raw = {"errors": [{"suggestions": ["Remove trailing comma", {"text": "Rewrite the file", "code": "{}"}]}]}
        [finding] = repair_response(raw)["errors"]
        first, second = finding["suggestions"]
        assert first == {"description": "Remove trailing comma", "fix_code": None, "safety": "safe"}
        assert second == {"description": "Rewrite the file", "fix_code": "{}", "safety": "risky"}

    @pytest.mark.parametrize("raw", ["Syntax", "structure", "info", 3])
    def test_unknown_type_falls_back_to_error(self, raw: object) -> None:
        [finding] = repair_response({"errors": [{"message": "m", "type": raw}]})["errors"]
        assert finding["type"] == "error"
        assert finding["severity"] == "medium"

    @pytest.mark.parametrize("raw", [float("inf"), float("-inf"), float("nan"), "9" * 5000])
    def test_unrepresentable_numbers_become_none(self, raw: object) -> None:
        repaired = repair_response({"errors": [{"line": raw, "column": raw, "position": raw}], "total_errors": raw})
        [finding] = repaired["errors"]
        assert (finding["line"], finding["column"], finding["position"]) == (None, None, None)
        assert repaired["total_errors"] == 1

    def test_non_object_suggestions_get_placeholder_description(self) -> None:
        [finding] = repair_response({"errors": [{"message": "m", "suggestions": [3, None, ["x"]]}]})["errors"]
        assert [suggestion["description"] for suggestion in finding["suggestions"]] == ["No description provided"] * 3
        assert all(suggestion["fix_code"] is None for suggestion in finding["suggestions"])

    def test_top_level_array_becomes_errors(self) -> None:
        repaired = repair_response([{"message": "a"}, {"message": "b"}])
        assert [finding["message"] for finding in repaired["errors"]] == ["a", "b"]
        assert repaired["total_errors"] == 2

    def test_non_list_errors_are_replaced(self) -> None:
        assert repair_response({"errors": "none"})["errors"] == []

    def test_scalars_pass_through(self) -> None:
        assert repair_response("text") == "text"


class TestValidateResponse:
    def test_non_object(self) -> None:
        with pytest.raises(SchemaValidationError) as excinfo:
            validate_response(42)
        assert excinfo.value.violations == ["response: Response is not an object"]

    def test_violations_name_the_field(self) -> None:
        with pytest.raises(SchemaValidationError) as excinfo:
            validate_response({"errors": [{"message": "m", "type": "info"}], "total_errors": 1, "analysis_confidence": 1})
        assert any(violation.startswith("errors.0.type:") for violation in excinfo.value.violations)
        assert "violation" in str(excinfo.value)


class TestRecoverAnalysis:
    def test_valid_completion(self) -> None:
        analysis = recover_analysis(json.dumps(VALID))
        assert analysis.total_errors == 1
        assert analysis.errors[0].suggestions[0].safety == "safe"

    def test_markdown_wrapped_completion_with_loose_fields(self) -> None:
        text = '```\n{"errors": [{"line": "3", "message": "Bad key", "confidence": "80%"}]}\n```'
        analysis = recover_analysis(text)
        assert analysis.errors[0].line == 3
        assert analysis.errors[0].confidence == pytest.approx(0.8)
        assert analysis.analysis_confidence == 0.5

    def test_category_in_type_field_becomes_error(self) -> None:
        analysis = recover_analysis('{"errors": [{"message": "m", "type": "info"}]}')
        assert analysis.errors[0].type == "error"

    def test_infinite_numbers_are_dropped(self) -> None:
        analysis = recover_analysis('{"errors": [{"line": 1e999, "column": -1e999, "message": "m"}], "total_errors": 1e999}')
        assert analysis.errors[0].line is None
        assert analysis.errors[0].column is None
        assert analysis.total_errors == 1

    def test_prose_fails_parsing(self) -> None:
        with pytest.raises(LLMParseError):
            recover_analysis("no json here")
