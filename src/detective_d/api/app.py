from __future__ import annotations

from fastapi import FastAPI

from detective_d.api.lifespan import lifespan
from detective_d.api.middleware import RequestContextMiddleware
from detective_d.api.routes.analyze import router as analyze_router
from detective_d.api.routes.cache import router as cache_router
from detective_d.api.routes.health import router as health_router
from detective_d.api.routes.root import router as root_router


def create_app() -> FastAPI:
    app = FastAPI(
        title="Detective D API",
        description="Locate defects in JSON, CSV, XML and YAML files.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)

    app.include_router(root_router, include_in_schema=False)
    app.include_router(health_router, include_in_schema=False)
    app.include_router(analyze_router)
    app.include_router(cache_router)

    return app
