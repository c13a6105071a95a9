"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import health, notes, versions
from core.config import get_settings
from services.exceptions import (
    NotFoundError,
    VersionAllocationError,
    VersionComparisonError,
    VersionNoteMismatchError,
)
from services.version_pruner import prune_dispatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()
    logging.basicConfig(
        level=app_settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    yield

    # Shutdown: don't leave detached prune tasks running against a closing pool
    if prune_dispatcher.pending:
        logger.info("Cancelling %d pending prune tasks", prune_dispatcher.pending)
    prune_dispatcher.cancel_all()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


app_settings = get_settings()

app = FastAPI(
    title="Notes API",
    description="Note storage with version history, restore and retention.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(NotFoundError)
async def not_found_exception_handler(
    _request: Request, exc: NotFoundError,
) -> JSONResponse:
    """Missing and inaccessible notes/versions look the same to the client."""
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(VersionNoteMismatchError)
async def version_mismatch_exception_handler(
    _request: Request, exc: VersionNoteMismatchError,
) -> JSONResponse:
    """Version exists but belongs to a different note."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(VersionComparisonError)
async def version_comparison_exception_handler(
    _request: Request, exc: VersionComparisonError,
) -> JSONResponse:
    """Compared versions belong to different notes."""
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(VersionAllocationError)
async def version_allocation_exception_handler(
    _request: Request, exc: VersionAllocationError,
) -> JSONResponse:
    """Concurrent writers exhausted version number retries."""
    logger.error("Version allocation failed: %s", exc)
    return JSONResponse(
        status_code=409,
        content={"detail": "Could not save a version due to concurrent changes. Please retry."},
    )


# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(notes.router)
app.include_router(versions.router)
