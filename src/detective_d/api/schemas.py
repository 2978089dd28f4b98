from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from detective_d.models import FileType


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    status: str = "ok"
    cache: str = "up"
    model: str = "configured"


class CacheStatsBody(BaseModel):
    hits: int
    misses: int
    invalidations: int
    total_requests: int
    hit_rate: float
    hit_rate_percentage: str


class CacheStorage(BaseModel):
    backend: str
    ttl_seconds: int
    primary_configured: bool
    primary_available: bool


class CacheStatsResponse(BaseModel):
    cache_enabled: bool
    stats: CacheStatsBody
    storage: CacheStorage
    versions: dict[str, str]


class InvalidateRequest(BaseModel):
    """POST /cache/invalidate: ``file_type`` is required for that scope, ``kind``/``version`` for ``version``."""

    scope: Literal["all", "file_type", "version"] = "all"
    file_type: FileType | None = None
    kind: Literal["model", "rag"] | None = None
    version: str | None = Field(default=None, min_length=1)


class InvalidateResponse(BaseModel):
    scope: str
    removed: int
    versions: dict[str, str]


class ErrorResponse(BaseModel):
    error: bool = True
    message: str
    request_id: str | None = None
