"""FastAPI application factory for the analyzer service."""

from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from .api.routes import router as api_router
from .config import get_settings
from .logging import bind_request_context, configure_logging
from .monitoring import ensure_metrics_server
from .utils import generate_id


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.logging)

    metrics_disabled = os.getenv("DREAMCUT_DISABLE_METRICS", "false").lower() in {"1", "true", "yes"}
    if not metrics_disabled:
        ensure_metrics_server(settings.monitoring.prometheus_port)

    app = FastAPI(
        title="DreamCut Analyzer",
        version=settings.api_version,
        docs_url=f"{settings.base_url}/docs",
        redoc_url=f"{settings.base_url}/redoc",
        openapi_url=f"{settings.base_url}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=["*"])

    request_id_header = settings.logging.request_id_header

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        request_id = request.headers.get(request_id_header) or generate_id("req")
        bind_request_context(request_id)
        response = await call_next(request)
        response.headers[request_id_header] = request_id
        return response

    app.include_router(api_router, prefix=settings.base_url)

    @app.get("/healthz")
    async def root_health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
