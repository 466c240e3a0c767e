# =============================================================================
# Admin API — Applications, Tokens and Message Templates
# =============================================================================
#
# Provisioning endpoints. All of them require the static admin key
# (settings.admin_api_key) as a bearer token; with no key configured the
# admin API is disabled entirely.
#
# DESIGN DECISION: The raw application token is only returned ONCE at
# creation. After that only key_prefix is visible and the server keeps
# nothing but its SHA-256 hash.
#
# DESIGN DECISION: Deleting an application removes its tokens and templates
# immediately. Its log records stay until the retention purge removes them,
# and no token can reach them in the meantime.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from loghog.api.deps import require_admin
from loghog.errors import NotFoundError
from loghog.models.requests import (
    CreateApplicationRequest,
    CreateTokenRequest,
    PutTemplateRequest,
)
from loghog.models.responses import (
    ApplicationResponse,
    TemplateResponse,
    TokenCreatedResponse,
)
from loghog.services.auth import generate_token
from loghog.services.store import LogStore, get_log_store
from loghog.services.templates import placeholders

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/applications",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ApplicationResponse,
    status_code=201,
    summary="Register an application",
)
async def create_application(
    request: CreateApplicationRequest,
    store: LogStore = Depends(get_log_store),
) -> ApplicationResponse:
    app = await store.create_application(request.name)
    logger.info("Application created: id=%s, name='%s'", app.id, app.name)
    return ApplicationResponse(id=app.id, name=app.name, created_at=app.created_at)


@router.delete(
    "/{app_id}",
    status_code=204,
    summary="Delete an application with its tokens and templates",
)
async def delete_application(
    app_id: str,
    store: LogStore = Depends(get_log_store),
) -> Response:
    if not await store.delete_application(app_id):
        raise NotFoundError(f"Application '{app_id}' not found.")
    logger.info("Application deleted: id=%s", app_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@router.post(
    "/{app_id}/tokens",
    response_model=TokenCreatedResponse,
    status_code=201,
    summary="Issue an application token",
    description="The raw token is only returned in this response. Store it securely.",
)
async def create_token(
    app_id: str,
    request: CreateTokenRequest,
    store: LogStore = Depends(get_log_store),
) -> TokenCreatedResponse:
    raw_token, key_prefix, key_hash = generate_token()

    token = await store.create_token(app_id, request.name, key_prefix, key_hash)
    if token is None:
        raise NotFoundError(f"Application '{app_id}' not found.")

    logger.info(
        "Token issued: id=%s, app_id=%s, prefix='%s'",
        token.id, app_id, token.key_prefix,
    )
    return TokenCreatedResponse(
        id=token.id,
        application_id=token.application_id,
        name=token.name,
        key_prefix=token.key_prefix,
        raw_token=raw_token,
        created_at=token.created_at,
    )


@router.delete(
    "/{app_id}/tokens/{token_id}",
    status_code=204,
    summary="Revoke an application token",
)
async def revoke_token(
    app_id: str,
    token_id: str,
    store: LogStore = Depends(get_log_store),
) -> Response:
    """Revoked tokens are rejected from the next request on."""
    if not await store.revoke_token(app_id, token_id):
        raise NotFoundError(f"Token '{token_id}' not found.")
    logger.info("Token revoked: id=%s, app_id=%s", token_id, app_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Message Templates
# ---------------------------------------------------------------------------


@router.put(
    "/{app_id}/templates/{name}",
    response_model=TemplateResponse,
    summary="Create or replace a message template",
)
async def put_template(
    app_id: str,
    name: str,
    request: PutTemplateRequest,
    store: LogStore = Depends(get_log_store),
) -> TemplateResponse:
    if not await store.put_template(app_id, name, request.pattern):
        raise NotFoundError(f"Application '{app_id}' not found.")

    logger.info("Template stored: app_id=%s, name='%s'", app_id, name)
    return TemplateResponse(
        application_id=app_id,
        name=name,
        pattern=request.pattern,
        placeholders=placeholders(request.pattern),
    )
