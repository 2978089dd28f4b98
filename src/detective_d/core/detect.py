import re

from detective_d.models import FileType

_YAML_DOCUMENT_START = re.compile(r"^---\s*$")
_YAML_LINE_PATTERNS = (
    re.compile(r"^[\w-]+\s*:\s*.+"),
    re.compile(r"^\s*-\s+.+"),
)

_CSV_SAMPLE_LINES = 5


def _non_empty_lines(text: str) -> list[str]:
    return [line.rstrip("\r") for line in text.split("\n") if line.strip()]


def _looks_like_yaml(text: str, lines: list[str]) -> bool:
    first_line = text.split("\n", 1)[0].rstrip("\r")
    if _YAML_DOCUMENT_START.match(first_line):
        return True
    return any(pattern.match(line.strip()) for line in lines[:2] for pattern in _YAML_LINE_PATTERNS)


def _looks_like_csv(lines: list[str]) -> bool:
    sample = lines[:_CSV_SAMPLE_LINES]
    if len(sample) < 2:
        return False
    header_commas = sample[0].count(",")
    if header_commas < 2:
        return False
    following = sample[1:]
    consistent = sum(1 for line in following if abs(line.count(",") - header_commas) <= 1)
    return consistent * 2 >= len(following)


def detect_file_type(content: str) -> FileType:
    """Guess the format of ``content`` from its first few lines.

    Never raises and never returns an unknown type: anything that is not clearly
    XML, YAML or CSV is treated as JSON.
    """
    text = content.strip()
    if not text:
        return "json"
    if text[0] in "{[":
        return "json"
    if text.startswith("<"):
        return "xml"

    lines = _non_empty_lines(text)
    if _looks_like_yaml(text, lines):
        return "yaml"
    if _looks_like_csv(lines):
        return "csv"
    return "json"


def resolve_file_type(requested: str, content: str) -> tuple[FileType, FileType]:
    """Return ``(effective, detected)`` types for a request's ``file_type`` value."""
    detected = detect_file_type(content)
    if requested == "auto":
        return detected, detected
    if requested not in ("json", "csv", "xml", "yaml"):
        raise ValueError(f"Unsupported file type: {requested}")
    return requested, detected  # type: ignore[return-value]
