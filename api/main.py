"""
api/main.py -- FastAPI application entry point for TokenVault.

Exposes the AuthService facade over HTTP. This module is a thin adapter: it
owns the HTTP error mapping and the app lifecycle, nothing else.

Run with:      uvicorn api.main:app

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. log_requests          -- one INFO line per request with latency

Lifespan builds the single Database handle and the AuthService (which
generates the per-process root secret) on startup, and disposes the engine on
shutdown.

Error mapping (core.errors kind -> HTTP status):
  InvalidInput 400 | BadCredential 401 | IntegrityError 401 | Unauthorized 403
  NotFound 404 | Conflict 409 | StoreFailure 503
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.privileges import router as privileges_router
from api.routes.v1.tokens import router as tokens_router
from api.routes.v1.users import router as users_router
from auth.db import Database
from auth.service import AuthService
from core.config import get_settings
from core.errors import (
    BadCredential,
    Conflict,
    IntegrityError,
    InvalidInput,
    NotFound,
    StoreFailure,
    Unauthorized,
    VaultError,
)

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokenvault.api")

# Most specific kinds first; the first isinstance() match wins.
_STATUS_BY_KIND: list[tuple[type[VaultError], int]] = [
    (InvalidInput, 400),
    (BadCredential, 401),
    (IntegrityError, 401),
    (Unauthorized, 403),
    (NotFound, 404),
    (Conflict, 409),
    (StoreFailure, 503),
]


def status_for(exc: VaultError) -> int:
    for kind, status in _STATUS_BY_KIND:
        if isinstance(exc, kind):
            return status
    return 500


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the store handle and the facade; dispose them on shutdown.

    The root secret lives only in app.state.service for the life of the
    process. It is logged once when SHOW_ROOT_SECRET=true so an operator can
    bootstrap the first manage-privilege holder.
    """
    settings = get_settings()
    logger.info("TokenVault API starting up")
    app.state.service = AuthService(Database(settings.database_url), settings=settings)
    if settings.show_root_secret:
        logger.warning("Root secret for this process: %s", app.state.service.root_secret)
    logger.info("Store initialized")

    yield

    app.state.service.close()
    logger.info("TokenVault API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TokenVault API",
    description="Per-user sealed bearer tokens and privilege management.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(tokens_router, prefix="/api/v1", tags=["Tokens"])
app.include_router(privileges_router, prefix="/api/v1", tags=["Privileges"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(VaultError)
async def vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    """Render a typed core failure. The message never contains secrets."""
    status = status_for(exc)
    if status >= 500:
        logger.error("Store failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=str(exc))).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Routing 404/405 from Starlette. Registered on the Starlette base class so those are caught too."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and store reachability."""
    db_ok = request.app.state.service.db.ping()
    return HealthResponse(
        version=_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
