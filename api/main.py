"""
api/main.py -- FastAPI application entry point for KeyControl.

Exposes key check-out/check-in for rooms over HTTP with bearer-token auth.

Run with:  python main.py serve
           uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for the ALLOWED_ORIGINS list only
  2. SlowAPIMiddleware  -- enforces the /api window and per-route limits
  3. security_headers   -- CSP, nosniff, frame deny, referrer policy
  4. log_requests       -- one log line per request with latency

Lifespan builds the connection pool once, refuses to start if the store is
unreachable, and drains the pool on shutdown.

This module is the only place that turns errors into HTTP responses. Every
handler below returns the same envelope:
    {"success": false, "error": <message>, "code": <code>, "details"?: [...]}
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.people import router as people_router
from api.routes.rooms import router as rooms_router
from api.validation import format_errors
from auth.store import UserStore
from core.config import get_settings
from core.errors import KeyControlError, PoolExhausted
from custody.store import CustodyStore, PersonStore
from db.gateway import Database, StoreError, StoreErrorKind

__version__ = "2.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("keycontrol.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def attach_stores(app: FastAPI, db: Database) -> None:
    """Wire the gateway and every store built on it into app.state."""
    app.state.db = db
    app.state.user_store = UserStore(db)
    app.state.custody = CustodyStore(db)
    app.state.people = PersonStore(db)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the connection pool for the whole server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. A failed connectivity check aborts startup.
    """
    logger.info("KeyControl API starting up (environment=%s)", _settings.environment)
    db = Database(
        _settings.sqlalchemy_url,
        pool_size=_settings.db_pool_size,
        pool_timeout=_settings.db_pool_timeout,
    )
    if not db.health_check():
        db.shutdown()
        raise RuntimeError("Falha ao conectar com banco de dados")
    attach_stores(app, db)
    logger.info(
        "Database pool ready (%s:%s/%s, size=%d)",
        _settings.db_host,
        _settings.db_port,
        _settings.db_name,
        _settings.db_pool_size,
    )
    logger.info("Token lifetime: %ds; CORS origins: %s", _settings.token_expire_seconds, ", ".join(_settings.origins))

    yield

    app.state.db.shutdown()
    logger.info("KeyControl API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="KeyControl API",
    description="Room key check-out and check-in with role-based access.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette builds the stack in reverse registration order: the LAST
# add_middleware()/@app.middleware call becomes the OUTERMOST layer. CORS is
# registered last so preflight requests are answered before rate limiting.
# ---------------------------------------------------------------------------


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


_CSP = "default-src 'self'; style-src 'self' 'unsafe-inline'; script-src 'self'; img-src 'self' data: https:"


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", _CSP)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(rooms_router, prefix="/api", tags=["Rooms"])
app.include_router(people_router, prefix="/api", tags=["People"])


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, code: str, details: list | None = None, **extra) -> JSONResponse:
    content = ErrorResponse(error=message, code=code, details=details).model_dump(exclude_none=True)
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(KeyControlError)
async def keycontrol_error_handler(request: Request, exc: KeyControlError) -> JSONResponse:
    """Map every domain error to its status code and the shared envelope."""
    if exc.http_status >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.warning("%s on %s %s", exc.code, request.method, request.url.path)
    response = _error(exc.http_status, exc.message, exc.code, exc.details)
    if isinstance(exc, PoolExhausted):
        response.headers["Retry-After"] = str(exc.retry_after)
    return response


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map tagged store failures: duplicates 409, unreachable 503, the rest 500.

    The driver message stays in the log; the client only sees the generic text.
    """
    logger.error("Store error on %s %s: kind=%s code=%s", request.method, request.url.path, exc.kind.value, exc.code)
    if exc.kind in (StoreErrorKind.unique_violation, StoreErrorKind.foreign_key_violation):
        return _error(409, "Registro duplicado", "conflict")
    if exc.kind is StoreErrorKind.unavailable:
        return _error(503, "Serviço indisponível", "service_unavailable")
    if exc.kind is StoreErrorKind.pool_exhausted:
        response = _error(503, PoolExhausted.message, PoolExhausted.code)
        response.headers["Retry-After"] = str(PoolExhausted.retry_after)
        return response
    return _error(500, "Erro interno do servidor", "internal_error")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one entry per failing field."""
    return _error(400, "Dados de entrada inválidos", "validation_error", format_errors(exc.errors()))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After set to the length of the exceeded window.

    slowapi keeps the breached limit on exc.limit; its .limit is the
    RateLimitItem whose expiry is the window in seconds.
    """
    item = getattr(getattr(exc, "limit", None), "limit", None)
    retry_after = int(item.get_expiry()) if item is not None else _settings.rate_limit_window_seconds
    response = _error(429, "Muitas requisições. Tente novamente em alguns minutos.", "rate_limited")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unmatched routes echo the path and method; other HTTP errors keep their status."""
    if exc.status_code == 404:
        return _error(
            404,
            "Rota não encontrada",
            "route_not_found",
            path=request.url.path,
            method=request.method,
        )
    return _error(exc.status_code, str(exc.detail), f"http_{exc.status_code}")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Erro interno do servidor", "internal_error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No authentication and no rate limit -- load balancers and monitors must
# never be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
@limiter.exempt
def health(request: Request) -> HealthResponse:
    """Return liveness plus a connectivity check of the store."""
    db_ok = request.app.state.db.health_check()
    return HealthResponse(
        status="OK" if db_ok else "DEGRADED",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=_settings.environment,
        database="ok" if db_ok else "error",
    )
