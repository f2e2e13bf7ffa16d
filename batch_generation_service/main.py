"""Entry points for running the FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router as api_router
from .config import Settings, get_settings
from .errors import (
    BatchAlreadyRunningError,
    BatchNotFoundError,
    BatchServiceError,
    NoFailedConfigsError,
    TemplateNotFoundError,
)
from .jobs.orchestrator import BatchOrchestrator, build_orchestrator
from .jobs.templates import TemplateLibrary
from .logging_utils import configure_from_settings
from .monitoring.metrics import metrics_router

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    BatchNotFoundError: 404,
    TemplateNotFoundError: 404,
    BatchAlreadyRunningError: 409,
    NoFailedConfigsError: 409,
}


async def _service_error_handler(request: Request, exc: BatchServiceError) -> JSONResponse:
    status_code = next((code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)), 400)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(
    orchestrator: Optional[BatchOrchestrator] = None,
    templates: Optional[TemplateLibrary] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    owns_orchestrator = orchestrator is None
    orchestrator = orchestrator or build_orchestrator(settings)
    templates = templates or TemplateLibrary(settings.data_dir / "templates.json")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await orchestrator.store.initialize()
        logger.info("Starting batch generation service", extra={"environment": settings.environment})
        try:
            yield
        finally:
            if owns_orchestrator:
                await orchestrator.aclose()

    app = FastAPI(title="Batch Generation Service", version="0.1.0", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.templates = templates
    app.include_router(api_router, prefix="/api")
    app.add_exception_handler(BatchServiceError, _service_error_handler)

    if settings.enable_metrics:
        app.include_router(metrics_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


def build_default_app() -> FastAPI:
    """ASGI factory for ``uvicorn --factory batch_generation_service.main:build_default_app``."""

    settings = get_settings()
    configure_from_settings(settings)
    return create_app(settings=settings)


__all__ = ["build_default_app", "create_app"]
