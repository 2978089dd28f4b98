"""Tests for request and response model validation."""

import pytest
from pydantic import ValidationError

from detective_d.models import AnalysisResponse, AnalysisSummary, AnalyzeRequest, Finding, NormalizedFinding


class TestAnalyzeRequest:
    def test_defaults(self) -> None:
        request = AnalyzeRequest(content="{}")
        assert request.file_type == "auto"
        assert request.max_errors == 100
        assert request.stream is False
        assert request.file_name is None

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    def test_blank_content_rejected(self, content: str) -> None:
        with pytest.raises(ValidationError):
            AnalyzeRequest(content=content)

    @pytest.mark.parametrize("max_errors", [0, 1001])
    def test_max_errors_bounds(self, max_errors: int) -> None:
        with pytest.raises(ValidationError):
            AnalyzeRequest(content="{}", max_errors=max_errors)

    def test_unknown_file_type(self) -> None:
        with pytest.raises(ValidationError):
            AnalyzeRequest(content="{}", file_type="toml")  # type: ignore[arg-type]


class TestFinding:
    def test_line_and_column_are_one_based(self) -> None:
        with pytest.raises(ValidationError):
            Finding(line=0, message="m")
        with pytest.raises(ValidationError):
            Finding(column=0, message="m")

    def test_confidence_range(self) -> None:
        with pytest.raises(ValidationError):
            NormalizedFinding(message="m", confidence=1.5)

    def test_unknown_severity(self) -> None:
        with pytest.raises(ValidationError):
            Finding(message="m", severity="urgent")  # type: ignore[arg-type]


class TestAnalysisResponse:
    def _response(self, status: str) -> AnalysisResponse:
        return AnalysisResponse(
            request_id="r",
            file_type="json",
            detected_file_type="json",
            content_length=2,
            llm_status=status,  # type: ignore[arg-type]
            summary=AnalysisSummary(llm_provider="groq", llm_model="m"),
        )

    @pytest.mark.parametrize(
        ("status", "fallback"),
        [("success", False), ("failed", True), ("parse_error", True), ("validation_error", True)],
    )
    def test_is_fallback(self, status: str, fallback: bool) -> None:
        assert self._response(status).is_fallback is fallback

    def test_round_trips_through_json(self) -> None:
        response = self._response("success")
        assert AnalysisResponse.model_validate_json(response.model_dump_json()) == response
