from fastapi import APIRouter, Depends, Response, status

from detective_d.api.dependencies import get_analyzer
from detective_d.api.schemas import HealthResponse, ReadinessResponse
from detective_d.core.pipeline import Analyzer

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/healthz/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness probe: is the process alive?"""
    return HealthResponse()


@router.get("/healthz/ready", response_model=ReadinessResponse)
async def readiness(
    response: Response,
    analyzer: Analyzer = Depends(get_analyzer),
) -> ReadinessResponse:
    """Readiness probe: checks the cache backend and that a model key is configured."""
    cache_up = await analyzer.cache.ping()
    model_ready = analyzer.model.configured
    if cache_up and model_ready:
        return ReadinessResponse()
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="degraded",
        cache="up" if cache_up else "down",
        model="configured" if model_ready else "missing",
    )
