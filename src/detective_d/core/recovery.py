"""Turn a model completion into a validated ``ModelAnalysis``.

Recovery runs in three separate stages: extract a JSON value from free text,
repair fields that drifted in shape, then validate the repaired payload.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from detective_d.core.errors import LLMParseError, SchemaValidationError
from detective_d.core.postprocess import evaluate_safety
from detective_d.models import FINDING_TYPES, SAFETY_LEVELS, SEVERITIES, ModelAnalysis

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_FLAT_OBJECT = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")

DEFAULT_CONFIDENCE = 0.5


def extract_balanced_json(text: str, opener: str = "{") -> str | None:
    """Return the first brace-balanced substring starting at ``opener``.

    Braces inside string literals (including escaped quotes) are ignored.
    """
    closer = "}" if opener == "{" else "]"
    start = text.find(opener)
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _direct(text: str) -> Any:
    return json.loads(text.strip())


def _fenced_block(text: str) -> Any:
    match = _FENCED_BLOCK.search(text)
    if match is None:
        raise ValueError("no fenced block")
    return json.loads(match.group(1))


def _slice_between(text: str, opener: str, closer: str) -> Any:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        raise ValueError(f"no {opener}...{closer} span")
    return json.loads(text[start : end + 1])


def _brace_slice(text: str) -> Any:
    return _slice_between(text, "{", "}")


def _balanced_braces(text: str) -> Any:
    candidate = extract_balanced_json(text)
    if candidate is None:
        raise ValueError("no balanced object")
    return json.loads(candidate)


def _bracket_slice(text: str) -> Any:
    return _slice_between(text, "[", "]")


def _flat_object(text: str) -> Any:
    for match in _FLAT_OBJECT.finditer(text):
        try:
            return json.loads(match.group(0))
        except ValueError:
            continue
    raise ValueError("no parseable object")


STRATEGIES: tuple[tuple[str, Callable[[str], Any]], ...] = (
    ("direct", _direct),
    ("fenced_block", _fenced_block),
    ("brace_slice", _brace_slice),
    ("balanced_braces", _balanced_braces),
    ("bracket_slice", _bracket_slice),
    ("flat_object", _flat_object),
)


def parse_json_response(text: str) -> Any:
    """Try each extraction strategy in order; the first that parses wins."""
    for name, strategy in STRATEGIES:
        try:
            parsed = strategy(text)
        except ValueError:
            continue
        logger.debug("Model output parsed with strategy %s", name)
        return parsed
    raise LLMParseError("Could not extract valid JSON from model response", raw_text=text)


# --- repair ---------------------------------------------------------------


def _coerce_confidence(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        try:
            number = float(text.rstrip("%")) / 100 if text.endswith("%") else float(text)
        except ValueError:
            return None
    elif isinstance(value, int | float):
        number = float(value)
    else:
        return None
    if number != number:  # NaN
        return None
    return min(max(number, 0.0), 1.0)


def _coerce_int(value: Any, minimum: int) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        match = re.match(r"\s*-?\d+", value)
        if match is None:
            return None
        try:
            number = int(match.group(0))
        except ValueError:  # beyond the int string-conversion limit
            return None
    elif isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        number = int(value)
    else:
        return None
    return max(number, minimum)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else None


def _repair_suggestion(raw: Any) -> Any:
    if isinstance(raw, str):
        raw = {"description": raw}
    if not isinstance(raw, dict):
        raw = {}
    description = _text(raw.get("description")) or _text(raw.get("text")) or "No description provided"
    fix_code = raw.get("fix_code", raw.get("code", raw.get("code_snippet")))
    fix_code = fix_code if isinstance(fix_code, str) else None
    safety = raw.get("safety")
    safety = safety.strip().lower() if isinstance(safety, str) else None
    if safety not in SAFETY_LEVELS:
        safety = evaluate_safety(description, fix_code)
    return {"description": description, "fix_code": fix_code, "safety": safety}


def _repair_finding(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    finding = dict(raw)

    finding["confidence"] = _coerce_confidence(raw.get("confidence"))
    finding["line"] = _coerce_int(raw.get("line"), 1)
    finding["column"] = _coerce_int(raw.get("column"), 1)
    finding["position"] = _coerce_int(raw.get("position"), 0)

    kind = _text(raw.get("type"))
    kind = kind.strip().lower() if kind else None
    # Category-like values ("syntax", "structure", "info") drift into this field.
    finding["type"] = kind if kind in FINDING_TYPES else "error"

    severity = _text(raw.get("severity"))
    severity = severity.strip().lower() if severity else None
    if severity not in SEVERITIES:
        severity = "low" if finding["type"] == "warning" else "medium"
    finding["severity"] = severity

    finding["category"] = _text(raw.get("category")) or "syntax"
    finding["message"] = _text(raw.get("message")) or "Unknown error"
    finding["explanation"] = _text(raw.get("explanation")) or finding["message"]

    suggestions = raw.get("suggestions")
    finding["suggestions"] = [_repair_suggestion(item) for item in suggestions] if isinstance(suggestions, list) else []
    return finding


def repair_response(parsed: Any) -> Any:
    """Coerce and default fields of a parsed model payload so it can be validated.

    Anything that is not recognisably the expected shape is returned unchanged
    for validation to reject.
    """
    if isinstance(parsed, list):
        parsed = {"errors": parsed}
    if not isinstance(parsed, dict):
        return parsed

    repaired = dict(parsed)
    errors = parsed.get("errors")
    repaired["errors"] = [_repair_finding(item) for item in errors] if isinstance(errors, list) else []

    total = _coerce_int(parsed.get("total_errors"), 0)
    repaired["total_errors"] = total if total is not None else len(repaired["errors"])

    confidence = _coerce_confidence(parsed.get("analysis_confidence"))
    repaired["analysis_confidence"] = DEFAULT_CONFIDENCE if confidence is None else confidence
    return repaired


# --- validation -----------------------------------------------------------


def _format_violation(error: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error["loc"]) or "response"
    return f"{location}: {error['msg']}"


def validate_response(repaired: Any) -> ModelAnalysis:
    if not isinstance(repaired, dict):
        raise SchemaValidationError(repaired, ["response: Response is not an object"])
    try:
        return ModelAnalysis.model_validate(repaired)
    except ValidationError as exc:
        raise SchemaValidationError(repaired, [_format_violation(error) for error in exc.errors()]) from exc


def recover_analysis(text: str) -> ModelAnalysis:
    """Extract, repair and validate a model completion.

    Raises ``LLMParseError`` when no JSON can be found and
    ``SchemaValidationError`` when the repaired JSON still has the wrong shape.
    """
    parsed = parse_json_response(text)
    return validate_response(repair_response(parsed))
