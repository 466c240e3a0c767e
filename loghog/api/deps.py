# =============================================================================
# API Dependencies — Authentication & Service Wiring
# =============================================================================
#
# FastAPI dependencies shared by the routers:
#
# 1. get_current_app_id() — resolve the Bearer token to an application id
#                           and apply the per-application rate limit
# 2. require_admin()      — guard the admin endpoints with the admin key
# 3. get_pipeline() / get_query_service() — services bound to the store
#
# DESIGN DECISION: HTTPBearer(auto_error=False) so that a missing header
# reaches the resolver and produces the same InvalidTokenError envelope as a
# bad token, instead of FastAPI's default 403.
# =============================================================================

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from loghog.config import settings
from loghog.services.auth import TokenResolver
from loghog.services.pipeline import IngestionPipeline
from loghog.services.query import LogQueryService
from loghog.services.store import LogStore, bounded, get_log_store

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs (shows "Authorize" button in Swagger UI)
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_app_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    store: LogStore = Depends(get_log_store),
) -> str:
    """
    Resolve the caller's application from its bearer token.

    Raises:
        InvalidTokenError: missing, unknown, or revoked token (→ 401)
        StorageUnavailableError: token lookup failed or timed out (→ 503)
        HTTPException 429: rate limit exceeded
    """
    token = credentials.credentials if credentials else None
    app_id = await bounded(TokenResolver(store).resolve(token))

    # Rate limit check (imported lazily so tests can patch the module)
    from loghog.services.rate_limiter import check_rate_limit
    await check_rate_limit(app_id)

    # Stored on request.state for the access log middleware
    request.state.app_id = app_id
    return app_id


def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> None:
    """
    Verify the admin key.

    Raises HTTPException 403 when the admin API is disabled (no key
    configured) and 401 when the presented key does not match.
    """
    if not settings.admin_api_key:
        raise HTTPException(status_code=403, detail="Admin API is disabled.")

    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), settings.admin_api_key.encode(),
    ):
        raise HTTPException(
            status_code=401,
            detail="Invalid admin key.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_pipeline(store: LogStore = Depends(get_log_store)) -> IngestionPipeline:
    return IngestionPipeline(store)


def get_query_service(store: LogStore = Depends(get_log_store)) -> LogQueryService:
    return LogQueryService(store)
