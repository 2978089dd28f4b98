import logging
import uuid

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from detective_d.api.dependencies import get_analyzer
from detective_d.api.schemas import ErrorResponse
from detective_d.core.pipeline import Analyzer
from detective_d.models import AnalysisResponse, AnalyzeRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])


@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    responses={500: {"model": ErrorResponse}},
)
async def analyze(
    body: AnalyzeRequest,
    request: Request,
    analyzer: Analyzer = Depends(get_analyzer),
) -> Response:
    """Analyze one file; degraded results still return 200 with ``X-Fallback-Mode: true``."""
    request_id = getattr(request.state, "request_id", None) or uuid.uuid4().hex
    try:
        outcome = await analyzer.analyze(body, request_id=request_id)
    except Exception:
        logger.exception("Unexpected error while analyzing request %s", request_id)
        error = ErrorResponse(message="Internal server error", request_id=request_id)
        return JSONResponse(status_code=500, content=error.model_dump())

    headers = {
        "X-Cache-Status": "HIT" if outcome.cache_hit else "MISS",
        "X-Content-Hash": outcome.content_hash,
        "X-LLM-Status": outcome.response.llm_status,
    }
    if outcome.response.is_fallback:
        headers["X-Fallback-Mode"] = "true"
    return Response(content=outcome.response.model_dump_json(), media_type="application/json", headers=headers)
