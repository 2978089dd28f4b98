from __future__ import annotations

from typing import Any

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root() -> dict[str, Any]:
    """Root discovery endpoint listing the API's resources."""
    return {
        "meta": {
            "title": "Detective D API",
            "description": "Locate defects in JSON, CSV, XML and YAML files.",
            "version": "0.1.0",
        },
        "links": {
            "self": "/",
            "analyze": "/analyze",
            "cache-stats": "/cache/stats",
            "cache-invalidate": "/cache/invalidate",
            "health": "/health",
            "openapi": "/openapi.json",
            "docs": "/docs",
        },
    }
