from __future__ import annotations

import json
from dataclasses import dataclass

from detective_d.core.references import format_snippets_for_prompt
from detective_d.models import FileType, ParserHint, ReferenceSnippet, TruncationMap

MAX_TOKENS_CEILING = 4000
TOKENS_PER_ERROR = 200
TOKENS_BASE = 500

RESPONSE_SCHEMA_EXAMPLE: dict[str, object] = {
    "errors": [
        {
            "line": 1,
            "column": 1,
            "position": 0,
            "message": "string",
            "type": "error | warning",
            "category": "syntax | structure | semantic",
            "severity": "critical | high | medium | low",
            "explanation": "string, quoting the offending text in backticks",
            "confidence": 0.0,
            "suggestions": [{"description": "string", "fix_code": "string (optional)", "safety": "safe"}],
        }
    ],
    "total_errors": 0,
    "analysis_confidence": 0.0,
}

_EXAMPLES: dict[str, tuple[str, dict[str, object]]] = {
    "json": (
        '{\n  "name": "Ada",\n  "age": 36,\n}',
        {
            "line": 3,
            "column": 10,
            "message": "Trailing comma before closing brace",
            "type": "error",
            "category": "syntax",
            "severity": "high",
            "explanation": "The member `\"age\": 36,` is followed by a comma but no further member.",
            "confidence": 0.95,
            "suggestions": [{"description": "Remove trailing comma", "fix_code": "", "safety": "safe"}],
        },
    ),
    "csv": (
        "id,name,email\n1,Ada,ada@example.com\n2,Grace",
        {
            "line": 3,
            "column": 1,
            "message": "Row has 2 columns but the header has 3",
            "type": "error",
            "category": "structure",
            "severity": "medium",
            "explanation": "The record `2,Grace` is missing the email field.",
            "confidence": 0.9,
            "suggestions": [{"description": "Add missing comma at end of row", "fix_code": ",", "safety": "safe"}],
        },
    ),
    "xml": (
        "<root>\n  <item>one</item>\n  <item>two\n</root>",
        {
            "line": 4,
            "column": 3,
            "message": "Mismatched closing tag",
            "type": "error",
            "category": "syntax",
            "severity": "critical",
            "explanation": "The element opened by `<item>two` is never closed before `</root>`.",
            "confidence": 0.9,
            "suggestions": [
                {"description": "Add closing tag at end of line 3", "fix_code": "</item>", "safety": "safe"}
            ],
        },
    ),
    "yaml": (
        "server:\n  host: localhost\n   port: 8080",
        {
            "line": 3,
            "column": 4,
            "message": "Inconsistent indentation",
            "type": "error",
            "category": "syntax",
            "severity": "high",
            "explanation": "The key `port: 8080` is indented by three spaces while its sibling uses two.",
            "confidence": 0.9,
            "suggestions": [{"description": "Fix indentation to two spaces", "safety": "safe"}],
        },
    ),
}

_SYSTEM_INSTRUCTIONS = """You are Detective D, an expert validator for structured data files.

Your role:
- Find syntax errors, structural problems and common mistakes in JSON, CSV, XML and YAML.
- Report precise locations: line and column when possible, character position otherwise.
- Suggest small, safe repairs grounded in the reference rules.

Your behavior:
- Treat the parser hints and reference rules as authoritative.
- Do not guess. When uncertain, report a confidence below 0.8.
- Return ONLY a JSON object matching the schema. No prose, no markdown."""


@dataclass(frozen=True)
class ModelParameters:
    max_tokens: int
    temperature: float = 0.0
    top_p: float = 1.0


def model_parameters(max_errors: int) -> ModelParameters:
    return ModelParameters(max_tokens=min(max_errors * TOKENS_PER_ERROR + TOKENS_BASE, MAX_TOKENS_CEILING))


def _context_block(
    file_type: FileType,
    file_name: str | None,
    content_length: int,
    hints: list[ParserHint],
    snippets: list[ReferenceSnippet],
    truncation: TruncationMap | None,
    truncation_note: str,
) -> str:
    parts = ["## ANALYSIS CONTEXT", "", f"File type: {file_type.upper()}"]
    if file_name:
        parts.append(f"File name: {file_name}")
    parts.append(f"Content length: {content_length} characters")

    if hints:
        hint_json = json.dumps([hint.model_dump(exclude_none=True) for hint in hints], indent=2)
        parts.extend(
            [
                "",
                "### PARSER HINTS",
                "Local parsers found these issues; their positions are exact:",
                f"```json\n{hint_json}\n```",
            ]
        )

    reference = format_snippets_for_prompt(snippets)
    if reference:
        parts.extend(["", "### REFERENCE", reference])

    if truncation is not None and truncation.was_truncated:
        parts.extend(
            [
                "",
                "### TRUNCATION NOTICE",
                truncation_note,
                "Only analyze the included sections; errors in omitted ranges cannot be detected.",
            ]
        )
    return "\n".join(parts)


def _task_block(file_type: FileType, max_errors: int) -> str:
    example_input, example_error = _EXAMPLES[file_type]
    example_output = {"errors": [example_error], "total_errors": 1, "analysis_confidence": 0.9}
    return "\n".join(
        [
            "## TASK",
            "",
            f"Analyze the {file_type.upper()} content below and report at most {max_errors} issues.",
            "For each issue give: line (required), column (preferred), position (fallback), message, type,",
            "category, severity, explanation, confidence between 0.0 and 1.0, and 1-3 suggestions tagged",
            "with a safety level of safe, risky or manual_review.",
            "",
            "### RESPONSE SCHEMA",
            f"```json\n{json.dumps(RESPONSE_SCHEMA_EXAMPLE, indent=2)}\n```",
            "",
            "### EXAMPLE",
            f"Input:\n```\n{example_input}\n```",
            f"Output:\n```json\n{json.dumps(example_output, indent=2)}\n```",
            "",
            "### CRITICAL INSTRUCTIONS",
            "- Respond with a single JSON object and nothing else.",
            "- Line numbers refer to the ORIGINAL file, counting from 1.",
            "- Quote the offending text in backticks inside each explanation.",
            "- If there are no issues, return an empty errors array.",
        ]
    )


def build_prompt(
    *,
    file_type: FileType,
    content: str,
    original_length: int,
    file_name: str | None = None,
    hints: list[ParserHint] | None = None,
    snippets: list[ReferenceSnippet] | None = None,
    truncation: TruncationMap | None = None,
    truncation_note: str = "",
    max_errors: int = 100,
) -> str:
    """Assemble the model prompt: instructions, context, task, then the (sampled) content."""
    sections = [
        _SYSTEM_INSTRUCTIONS,
        _context_block(file_type, file_name, original_length, hints or [], snippets or [], truncation, truncation_note),
        _task_block(file_type, max_errors),
        f"## CONTENT\n\n```{file_type}\n{content}\n```",
        "Remember: return ONLY the JSON object described above.",
    ]
    return "\n\n---\n\n".join(sections)
