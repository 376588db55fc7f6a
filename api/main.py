"""
api/main.py -- FastAPI application entry point for PinSquirrel.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the long-lived collaborators once (credential hasher, token
service, stores, mailer, services) and hangs them on app.state. Routes reach
them through the request; nothing below api/ holds a module-level instance.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.metadata import router as metadata_router
from api.routes.v1.pins import router as pins_router
from api.routes.v1.tags import router as tags_router
from auth.hashing import CredentialHasher
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from core.errors import ErrorKind, PinSquirrelError
from mail.mailgun import MailgunEmailService
from pins.service import PinService, TagService
from pins.store import PinStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("pinsquirrel.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------

PURGE_INTERVAL_SECONDS = 60 * 60


async def _purge_loop(app: FastAPI) -> None:
    """Delete long-expired password reset tokens every hour.

    A failed purge is logged and retried next interval. CancelledError from
    task.cancel() during shutdown propagates out and ends the loop.
    """
    while True:
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)
        try:
            removed = await asyncio.to_thread(app.state.user_store.purge_expired_reset_tokens)
        except Exception:
            logger.exception("Reset token purge failed")
            continue
        if removed:
            logger.info("Purged %d expired reset tokens", removed)


def build_mailer(cfg: Settings) -> MailgunEmailService | None:
    if not cfg.mail_enabled:
        return None
    return MailgunEmailService(
        api_key=cfg.mailgun_api_key,
        domain=cfg.mailgun_domain,
        from_email=cfg.mailgun_from_email,
        from_name=cfg.mailgun_from_name,
        base_url=cfg.mailgun_base_url,
    )


def wire_services(
    app: FastAPI,
    cfg: Settings,
    user_store: UserStore,
    pin_store: PinStore,
    hasher: CredentialHasher | None = None,
    mailer=None,
) -> None:
    """Attach the collaborators every route depends on to app.state."""
    hasher = hasher or CredentialHasher()
    tokens = TokenService(secret_key=cfg.secret_key, expire_seconds=cfg.token_expire_seconds)
    app.state.settings = cfg
    app.state.hasher = hasher
    app.state.tokens = tokens
    app.state.user_store = user_store
    app.state.pin_store = pin_store
    app.state.auth_service = AuthenticationService(user_store, hasher, tokens, mailer=mailer)
    app.state.pin_service = PinService(pin_store)
    app.state.tag_service = TagService(pin_store)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Everything before yield runs on startup; everything after on shutdown."""
    logger.info("PinSquirrel API starting up")
    cfg = get_settings()
    user_store = UserStore(cfg.database_url)
    pin_store = PinStore(cfg.database_url)
    mailer = build_mailer(cfg)
    if mailer is None:
        logger.warning("Mailgun not configured -- password reset is disabled")
    wire_services(app, cfg, user_store, pin_store, mailer=mailer)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.purge_task
    user_store.close()
    pin_store.close()
    logger.info("PinSquirrel API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PinSquirrel API",
    description="Save, tag and search bookmarks.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(pins_router, prefix="/api/v1", tags=["Pins"])
app.include_router(tags_router, prefix="/api/v1", tags=["Tags"])
app.include_router(metadata_router, prefix="/api/v1", tags=["Metadata"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.USER_ALREADY_EXISTS: 409,
    ErrorKind.INVALID_RESET_TOKEN: 400,
    ErrorKind.RESET_TOKEN_EXPIRED: 400,
    ErrorKind.TOO_MANY_RESET_REQUESTS: 429,
    ErrorKind.RESET_NOT_CONFIGURED: 503,
    ErrorKind.EMAIL_SEND_FAILED: 502,
    ErrorKind.PIN_NOT_FOUND: 404,
    ErrorKind.TAG_NOT_FOUND: 404,
    ErrorKind.DUPLICATE_PIN: 409,
    ErrorKind.DUPLICATE_TAG: 409,
    ErrorKind.FORBIDDEN: 404,
    ErrorKind.INVALID_URL: 400,
    ErrorKind.UNSUPPORTED_PROTOCOL: 400,
    ErrorKind.FETCH_TIMEOUT: 504,
    ErrorKind.FETCH_HTTP_ERROR: 502,
    ErrorKind.PARSE_ERROR: 502,
}

# Someone else's pin and a missing pin must produce byte-identical responses.
_NOT_FOUND_KINDS = frozenset({ErrorKind.PIN_NOT_FOUND, ErrorKind.TAG_NOT_FOUND, ErrorKind.FORBIDDEN})


def error_response(exc: PinSquirrelError) -> JSONResponse:
    if exc.kind in _NOT_FOUND_KINDS:
        error = ErrorDetail(code="not_found", message="Not found.")
    elif exc.kind is ErrorKind.VALIDATION:
        error = ErrorDetail(code=exc.kind.value, message=exc.message, detail=exc.payload.get("field_errors"))
    else:
        error = ErrorDetail(code=exc.kind.value, message=exc.message, detail=exc.payload or None)
    response = JSONResponse(
        status_code=_STATUS.get(exc.kind, 400),
        content=ErrorResponse(error=error).model_dump(),
    )
    if exc.kind is ErrorKind.INVALID_CREDENTIALS:
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(PinSquirrelError)
async def domain_error_handler(request: Request, exc: PinSquirrelError) -> JSONResponse:
    """Map a service-layer failure to its HTTP status and envelope."""
    return error_response(exc)


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Plain def: SlowAPIMiddleware calls this handler directly, without await.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


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


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all HTTP exceptions, router 404/405 included.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
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

    The raw exception goes to the log only, never to the response body.
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
#
# No rate limit: health checks from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
