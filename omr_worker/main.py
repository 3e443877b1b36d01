"""
OMR Worker API

FastAPI application that turns uploaded score images/PDFs into MusicXML,
score metadata and per-measure-group preview images.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from omr_worker.api.routes import health, scores
from omr_worker.config import Settings, settings
from omr_worker.core.pipeline import ScorePipeline
from omr_worker.core.session_limiter import SessionLimiter
from omr_worker.services.workspace import WorkspaceManager


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Referrer policy
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response


# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Adapter: FastAPI expects (Request, Exception) but slowapi's handler
# takes (Request, RateLimitExceeded). Narrow inside so the outer
# signature satisfies FastAPI's type contract.
def _handle_rate_limit(request: Request, exc: Exception) -> Response:
    if isinstance(exc, RateLimitExceeded):
        return _rate_limit_exceeded_handler(request, exc)
    raise exc


async def _handle_validation_error(request: Request, exc: Exception) -> Response:
    """Missing or malformed request fields are a 400, not FastAPI's default 422."""
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    logger.info("Rejected request to %s: %d validation errors", request.url.path, len(errors))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Missing required fields",
            "errors": jsonable_encoder(errors),
        },
    )


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build the application with its own workspace manager and pipeline.

    All configuration flows from ``app_settings`` into the pipeline here;
    nothing below the HTTP layer reads settings or the environment.

    One application per process: the processing route is decorated with the
    module-level slowapi limiter, so ``rate_limit_enabled`` of the most
    recently created app applies to every app in the process.
    """
    cfg = app_settings or settings
    workspaces = WorkspaceManager(cfg.scratch_root)
    pipeline = ScorePipeline.from_settings(cfg, workspaces)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        """Application lifespan handler."""
        logger.info(f"Starting {cfg.app_name} v{cfg.app_version}")
        logger.info(f"Audiveris path: {cfg.audiveris_path}")
        logger.info(f"MuseScore path: {cfg.musescore_path}")
        logger.info(f"Scratch root: {workspaces.root}")
        workspaces.sweep_expired(cfg.cleanup_grace_seconds)

        yield

        logger.info("Shutting down...")
        await workspaces.shutdown()

    app = FastAPI(
        title=cfg.app_name,
        version=cfg.app_version,
        description="Optical music recognition worker: score image → MusicXML + previews.",
        lifespan=lifespan,
        # Disable public docs in production; set OMR_WORKER_DEBUG=true locally to enable
        docs_url="/docs" if cfg.debug else None,
        redoc_url="/redoc" if cfg.debug else None,
        openapi_url="/openapi.json" if cfg.debug else None,
    )

    app.state.settings = cfg
    app.state.workspaces = workspaces
    app.state.pipeline = pipeline
    app.state.session_limiter = SessionLimiter(cfg.max_concurrent_sessions)

    # Add rate limiter to app state and exception handler (shared limiter, see above)
    scores.limiter.enabled = cfg.rate_limit_enabled
    app.state.limiter = scores.limiter
    app.add_exception_handler(RateLimitExceeded, _handle_rate_limit)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)

    # Security headers middleware (added first, runs last)
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS middleware
    if "*" in cfg.cors_origins:
        logger.warning(
            "SECURITY WARNING: CORS allows all origins. "
            "Set OMR_WORKER_CORS_ORIGINS to specific domains in production."
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(scores.router, prefix="/api", tags=["scores"])

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with service info."""
        return {
            "service": cfg.app_name,
            "version": cfg.app_version,
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
