"""Local parsers that find defects without asking the model.

Every hint is computed from the original, untruncated content, so its
line/column/position values are ground truth.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from xml.dom import minidom
from xml.parsers.expat import ExpatError

import yaml

from detective_d.core.positions import line_column_to_offset
from detective_d.models import FileType, ParserHint

logger = logging.getLogger(__name__)

MAX_HINTS = 3

_POSITION_PATTERN = re.compile(r"(?:at )?(?:position|char)\s+(\d+)", re.IGNORECASE)
_LINE_COLUMN_PATTERN = re.compile(r"line\s+(\d+)[,\s]+column\s+(\d+)", re.IGNORECASE)
_LINE_PATTERN = re.compile(r"(?:at )?line\s+(\d+)", re.IGNORECASE)
_COLUMN_PATTERN = re.compile(r"column\s+(\d+)", re.IGNORECASE)
_ROW_PATTERN = re.compile(r"(?:row|line|record)\s+(\d+)", re.IGNORECASE)


def extract_position_from_error(message: str) -> dict[str, int]:
    """Pull ``position``/``line``/``column`` numbers out of a parser error message."""
    found: dict[str, int] = {}
    if match := _POSITION_PATTERN.search(message):
        found["position"] = int(match.group(1))
    if match := _LINE_COLUMN_PATTERN.search(message):
        found["line"] = int(match.group(1))
        found["column"] = int(match.group(2))
        return found
    if match := _LINE_PATTERN.search(message):
        found["line"] = int(match.group(1))
    if match := _COLUMN_PATTERN.search(message):
        found["column"] = int(match.group(1))
    return found


def _check_json(content: str) -> list[ParserHint]:
    try:
        json.loads(content)
    except json.JSONDecodeError as exc:
        return [ParserHint(kind="syntax_error", message=f"JSON parse error: {exc}", **extract_position_from_error(str(exc)))]
    return []


def _check_yaml(content: str) -> list[ParserHint]:
    try:
        for _ in yaml.safe_load_all(content):
            pass
    except yaml.YAMLError as exc:
        problem = getattr(exc, "problem", None) or " ".join(str(exc).split())
        mark = getattr(exc, "problem_mark", None)
        if mark is None:
            return [ParserHint(kind="syntax_error", message=f"YAML parse error: {problem}", **extract_position_from_error(str(exc)))]
        return [
            ParserHint(
                kind="syntax_error",
                message=f"YAML parse error: {problem}",
                line=mark.line + 1,
                column=mark.column + 1,
                position=mark.index,
            )
        ]
    return []


def _check_csv(content: str) -> list[ParserHint]:
    hints: list[ParserHint] = []
    reader = csv.reader(io.StringIO(content, newline=""), strict=True)
    expected: int | None = None
    try:
        for index, row in enumerate(reader):
            if not row:
                continue
            if expected is None:
                expected = len(row)
                continue
            if len(row) != expected:
                hints.append(
                    ParserHint(
                        kind="structure_error",
                        message=f"Row {index + 1}: {len(row)} columns vs {expected} expected",
                        row=index + 1,
                        line=reader.line_num,
                        category="structure",
                    )
                )
                if len(hints) >= MAX_HINTS:
                    break
    except csv.Error as exc:
        message = f"CSV parse error at line {reader.line_num}: {exc}"
        row_match = _ROW_PATTERN.search(message)
        row = int(row_match.group(1)) if row_match else None
        hints.append(ParserHint(kind="syntax_error", message=message, row=row, line=row))
    return hints[:MAX_HINTS]


def _check_xml(content: str) -> list[ParserHint]:
    try:
        minidom.parseString(content)
    except ExpatError as exc:
        line = exc.lineno
        column = exc.offset + 1
        position = line_column_to_offset(content, line, column)
        return [
            ParserHint(
                kind="syntax_error",
                message=f"XML parse error: {exc}",
                line=line,
                column=column,
                position=position if position >= 0 else None,
            )
        ]
    return []


_CHECKS = {
    "json": _check_json,
    "yaml": _check_yaml,
    "csv": _check_csv,
    "xml": _check_xml,
}


def run_precheck(content: str, file_type: FileType) -> list[ParserHint]:
    """Parse ``content`` as ``file_type`` and return at most ``MAX_HINTS`` hints."""
    hints = _CHECKS[file_type](content)[:MAX_HINTS]
    if hints:
        logger.info("Precheck found %d %s issue(s)", len(hints), file_type)
    return hints


def is_parseable(content: str, file_type: FileType) -> bool:
    """True when the local parser accepts ``content`` without a syntax error."""
    return not any(hint.kind == "syntax_error" for hint in _CHECKS[file_type](content))
