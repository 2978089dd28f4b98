import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, status

from detective_d.api.dependencies import get_app_settings, get_cache
from detective_d.api.schemas import (
    CacheStatsBody,
    CacheStatsResponse,
    CacheStorage,
    InvalidateRequest,
    InvalidateResponse,
)
from detective_d.cache.result_cache import ResultCache
from detective_d.config import Settings

router = APIRouter(prefix="/cache", tags=["cache"])


def require_admin(
    x_api_key: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject the request unless it carries ``ADMIN_API_KEY`` (when one is configured)."""
    expected = settings.admin_api_key
    if not expected:
        return
    supplied = x_api_key
    if supplied is None and authorization and authorization.startswith("Bearer "):
        supplied = authorization.removeprefix("Bearer ").strip()
    if not supplied or not hmac.compare_digest(supplied, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(cache: ResultCache = Depends(get_cache)) -> CacheStatsResponse:
    stats = await cache.stats()
    return CacheStatsResponse(
        cache_enabled=cache.enabled,
        stats=CacheStatsBody(
            hits=stats.hits,
            misses=stats.misses,
            invalidations=stats.invalidations,
            total_requests=stats.total_requests,
            hit_rate=round(stats.hit_rate, 4),
            hit_rate_percentage=f"{stats.hit_rate * 100:.2f}%",
        ),
        storage=CacheStorage(
            backend=cache.backend_name,
            ttl_seconds=cache.ttl_seconds,
            primary_configured=cache.primary_configured,
            primary_available=cache.primary_available,
        ),
        versions=cache.versions(),
    )


@router.post("/invalidate", response_model=InvalidateResponse, dependencies=[Depends(require_admin)])
async def invalidate(body: InvalidateRequest, cache: ResultCache = Depends(get_cache)) -> InvalidateResponse:
    removed = 0
    if body.scope == "all":
        removed = await cache.invalidate_all()
    elif body.scope == "file_type":
        if body.file_type is None:
            raise HTTPException(status_code=400, detail="file_type is required for scope 'file_type'")
        removed = await cache.invalidate_file_type(body.file_type)
    else:
        if body.kind is None or body.version is None:
            raise HTTPException(status_code=400, detail="kind and version are required for scope 'version'")
        cache.update_version(body.kind, body.version)
    return InvalidateResponse(scope=body.scope, removed=removed, versions=cache.versions())


@router.post("/reset-stats", status_code=204, dependencies=[Depends(require_admin)])
async def reset_stats(cache: ResultCache = Depends(get_cache)) -> None:
    await cache.reset_stats()
