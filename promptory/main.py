"""FastAPI application entry point."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from promptory import __version__
from promptory.config import settings
from promptory.engine.errors import (
    ConfigValidationError,
    CredentialError,
    CredentialIntegrityError,
    DuplicateResourceError,
    NoActiveProviderError,
    NotFoundError,
    PathTraversalError,
    PromptoryError,
    ProviderValidationError,
)
from promptory.engine.llm_service import LLMService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Tests install their own service before startup
    service: LLMService | None = getattr(app.state, "llm_service", None)
    if service is None:
        os.makedirs(settings.results_dir, exist_ok=True)
        service = LLMService.from_settings(settings)
        app.state.llm_service = service
    await service.start()
    logger.info(f"{settings.app_name} started (results in {settings.results_dir})")
    yield
    await service.close()


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(",") if settings.cors_origins != "*" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error mapping ───────────────────────────────────

def _status_for(exc: PromptoryError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (DuplicateResourceError, NoActiveProviderError)):
        return 409
    if isinstance(exc, CredentialIntegrityError):
        return 400
    if isinstance(exc, CredentialError):
        return 503
    if isinstance(exc, (PathTraversalError, ProviderValidationError, ConfigValidationError)):
        return 400
    return 502


@app.exception_handler(PromptoryError)
async def promptory_error_handler(request: Request, exc: PromptoryError):
    status = _status_for(exc)
    if status >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc), "code": exc.code})


# ── Register routers ────────────────────────────────
from promptory.api.llm import router as llm_router
from promptory.api.providers import router as providers_router
from promptory.api.title_config import router as title_config_router

prefix = settings.api_prefix

app.include_router(providers_router, prefix=prefix + "/providers", tags=["providers"])
app.include_router(llm_router, prefix=prefix + "/llm", tags=["llm"])
app.include_router(title_config_router, prefix=prefix + "/title-config", tags=["title-config"])


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}
