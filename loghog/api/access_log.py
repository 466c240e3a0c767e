# =============================================================================
# Access Log Middleware — One Line per Request
# =============================================================================
#
# Emits method, path, status, latency and the resolved application id for
# every API request.
#
# DESIGN DECISION: Starlette middleware (not a FastAPI dependency) because
# it wraps the ENTIRE request lifecycle, so it sees the final status code
# (including error envelopes) and the full latency without every endpoint
# opting in.
#
# The application id comes from request.state, set by get_current_app_id.
# Unauthenticated and admin requests log app_id=-.
# =============================================================================

from __future__ import annotations

import logging
import time

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("loghog.access")

# Endpoints not worth a line each (health checks, docs)
_SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start_time = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        app_id = getattr(request.state, "app_id", None)
        logger.info(
            "%s %s -> %d (%.1fms) app_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            app_id or "-",
        )
        return response
