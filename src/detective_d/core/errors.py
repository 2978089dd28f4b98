from __future__ import annotations

from typing import Any


class DetectiveError(Exception):
    """Base class for pipeline errors."""


class ModelTransportError(DetectiveError):
    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class LLMParseError(DetectiveError):
    """No JSON value could be recovered from a model completion."""

    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class SchemaValidationError(DetectiveError):
    """The recovered JSON does not have the expected shape, even after repair."""

    def __init__(self, parsed: Any, violations: list[str]) -> None:
        super().__init__(f"Response failed schema validation ({len(violations)} violation(s))")
        self.parsed = parsed
        self.violations = violations
