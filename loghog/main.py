# =============================================================================
# LogHog — FastAPI Application Entry Point
# =============================================================================
#
# Wires the routers, the access log middleware and the error handlers.
#
# ERROR CONTRACT: every LogHogError becomes
#   {"error": {"class", "code", "field"?, "detail"}}
# with the status code carried by the exception class. FastAPI's own
# request-parameter errors are folded into the same validation envelope, and
# HTTPExceptions (admin key 401/403, rate limit 429, unknown route 404) get
# the envelope too, keeping their WWW-Authenticate / Retry-After headers.
# Anything else is logged with its traceback and returned as a bare 500 so
# internals never leak to clients.
#
# Run locally:
#   uvicorn loghog.main:app --reload
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from loghog.api import admin, logs
from loghog.api.access_log import AccessLogMiddleware
from loghog.config import settings
from loghog.errors import LogHogError, StorageUnavailableError
from loghog.models.responses import HealthResponse

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.log_store_type == "postgres" and settings.create_tables_on_startup:
        from loghog.db.engine import init_models
        await init_models()
    logger.info(
        "%s %s started (store=%s)",
        settings.app_name, settings.app_version, settings.log_store_type,
    )
    yield


app = FastAPI(
    title=settings.app_name,
    description=(
        "Receives structured log entries from client applications, stores "
        "their bodies compressed, and serves filtered queries per application."
    ),
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(AccessLogMiddleware)

app.include_router(logs.router)
app.include_router(admin.router)


# ---------------------------------------------------------------------------
# Exception Handlers
# ---------------------------------------------------------------------------


@app.exception_handler(LogHogError)
async def loghog_error_handler(_request: Request, exc: LogHogError) -> JSONResponse:
    headers: dict[str, str] = {}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, StorageUnavailableError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict()},
        headers=headers or None,
    )


# HTTPException raised by dependencies (admin key, rate limiter) and by
# Starlette itself (unknown route, wrong method) → (class, code)
_HTTP_ERROR_CODES = {
    401: ("auth", "unauthorized"),
    403: ("auth", "forbidden"),
    404: ("not_found", "not_found"),
    405: ("http", "method_not_allowed"),
    429: ("rate_limit", "rate_limited"),
}


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error_class, code = _HTTP_ERROR_CODES.get(exc.status_code, ("http", "http_error"))
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"class": error_class, "code": code, "detail": str(exc.detail)}},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    _request: Request, exc: RequestValidationError,
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    # loc is ("query", "limit") / ("body", "name"); drop the location kind
    loc = [str(part) for part in first.get("loc", ())[1:]]
    error = {
        "class": "validation",
        "code": "wrong_type",
        "detail": first.get("msg", "Invalid request."),
    }
    if loc:
        error["field"] = ".".join(loc)
    return JSONResponse(status_code=422, content={"error": error})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "class": "internal",
                "code": "internal_error",
                "detail": "Internal server error.",
            }
        },
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("loghog.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
