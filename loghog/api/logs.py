# =============================================================================
# Logs API — Ingestion, Query and Record View
# =============================================================================
#
# ENDPOINTS:
#   POST /logs              — Submit one log entry, returns the record id
#   POST /logs/batch        — Submit many entries, per-entry outcome
#   GET  /logs              — Filtered, newest-first, cursor-paginated list
#   GET  /logs/{record_id}  — One record with its original body restored
#
# Every endpoint authenticates with the application's bearer token and only
# ever sees that application's records.
#
# DESIGN DECISION: Raw JSON bodies (request.json()) instead of a Pydantic
# body model. The validator owns the error contract, so a missing level is
# "missing_field" on "level" rather than FastAPI's generic 422 list.
#
# DESIGN DECISION: Synchronous 201 (not 202 like a queued job). The record
# is committed before the response, so the returned id is immediately
# queryable.
# =============================================================================

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from loghog.api.deps import get_current_app_id, get_pipeline, get_query_service
from loghog.config import settings
from loghog.db.models import LogLevel
from loghog.errors import UnknownLevelError, WrongTypeError
from loghog.models.requests import LogSubmission
from loghog.models.responses import (
    BatchIngestResponse,
    BatchItemResponse,
    ErrorResponse,
    IngestResponse,
    LogListResponse,
    LogRecordResponse,
    LogSummaryResponse,
    TemplateRefResponse,
)
from loghog.services.pipeline import IngestionPipeline
from loghog.services.query import LogQueryService
from loghog.services.store import LogFilters, bounded
from loghog.services.validator import parse_timestamp

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/logs",
    tags=["Logs"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing, unknown or revoked token"},
        422: {"model": ErrorResponse, "description": "Invalid submission or query"},
        503: {"model": ErrorResponse, "description": "Log storage unavailable"},
    },
)


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise WrongTypeError("payload", "a JSON document") from None


# ---------------------------------------------------------------------------
# POST /logs — Submit a single entry
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=IngestResponse,
    status_code=201,
    summary="Submit a log entry",
    description=(
        "Validate, index and store one log entry. The body object is stored "
        "compressed and returned verbatim by GET /logs/{record_id}."
    ),
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "application/json": {"schema": LogSubmission.model_json_schema()}
            },
        }
    },
)
async def submit_log(
    request: Request,
    app_id: str = Depends(get_current_app_id),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse:
    raw = await _read_json(request)
    record_id = await bounded(pipeline.ingest_for_app(app_id, raw))
    return IngestResponse(id=record_id)


# ---------------------------------------------------------------------------
# POST /logs/batch — Submit many entries
# ---------------------------------------------------------------------------


@router.post(
    "/batch",
    response_model=BatchIngestResponse,
    summary="Submit a batch of log entries",
    description=(
        "Accepts a JSON array of entries or {\"entries\": [...]}. Entries are "
        "independent: one invalid entry does not reject the others."
    ),
)
async def submit_log_batch(
    request: Request,
    app_id: str = Depends(get_current_app_id),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> BatchIngestResponse:
    raw = await _read_json(request)
    entries = raw.get("entries") if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise WrongTypeError("entries", "an array of log entries")
    if len(entries) > settings.batch_max_entries:
        raise WrongTypeError(
            "entries", f"at most {settings.batch_max_entries} entries per batch",
        )

    # Each entry carries its own deadline; see IngestionPipeline
    results = await pipeline.ingest_batch_for_app(app_id, entries)

    items = [
        BatchItemResponse(index=r.index, status="accepted", id=r.record_id)
        if r.ok
        else BatchItemResponse(index=r.index, status="rejected", error=r.error.to_dict())
        for r in results
    ]
    accepted = sum(1 for r in results if r.ok)
    return BatchIngestResponse(
        accepted=accepted,
        rejected=len(results) - accepted,
        results=items,
    )


# ---------------------------------------------------------------------------
# GET /logs — Filtered query
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=LogListResponse,
    summary="Query log records",
    description=(
        "All filters are AND-combined. Results are newest first. Pass "
        "next_cursor back as ?cursor= (with the same filters) to continue."
    ),
)
async def list_logs(
    level: str | None = Query(default=None, description="debug|info|warn|error|fatal"),
    category: str | None = Query(default=None),
    tag: list[str] | None = Query(default=None, description="key:value, repeatable"),
    trace_id: str | None = Query(default=None),
    span_id: str | None = Query(default=None),
    template: str | None = Query(default=None, description="Template name"),
    since: str | None = Query(default=None, description="ISO-8601, inclusive"),
    until: str | None = Query(default=None, description="ISO-8601, exclusive"),
    q: str | None = Query(default=None, description="Case-insensitive message substring"),
    cursor: str | None = Query(default=None),
    limit: int | None = Query(default=None, description="Page size"),
    app_id: str = Depends(get_current_app_id),
    service: LogQueryService = Depends(get_query_service),
) -> LogListResponse:
    filters = LogFilters(
        level=_parse_level(level),
        category=category,
        tags=_parse_tag_filters(tag or []),
        trace_id=trace_id,
        span_id=span_id,
        template=template,
        since=parse_timestamp(since, "since"),
        until=parse_timestamp(until, "until"),
        text=q or None,
    )
    page_size = settings.query_default_limit if limit is None else min(limit, settings.query_max_limit)

    page = await bounded(service.query_page(app_id, filters, cursor, page_size))

    return LogListResponse(
        items=[
            LogSummaryResponse(
                id=item.id,
                timestamp=item.timestamp,
                level=item.level.value,
                message=item.message,
                category=item.category,
                trace_id=item.trace_id,
                span_id=item.span_id,
                template=item.template_name,
                tags=item.tags,
            )
            for item in page.items
        ],
        next_cursor=page.next_cursor,
    )


# ---------------------------------------------------------------------------
# GET /logs/{record_id} — View one record
# ---------------------------------------------------------------------------


@router.get(
    "/{record_id}",
    response_model=LogRecordResponse,
    summary="View a log record",
    responses={404: {"description": "Unknown id, or owned by another application"}},
)
async def get_log(
    record_id: str,
    app_id: str = Depends(get_current_app_id),
    service: LogQueryService = Depends(get_query_service),
) -> LogRecordResponse:
    view = await bounded(service.get(app_id, record_id))

    template = None
    if view.template is not None:
        template = TemplateRefResponse(name=view.template.name, params=view.template.params)

    return LogRecordResponse(
        id=view.id,
        app_id=view.app_id,
        timestamp=view.timestamp,
        level=view.level.value,
        message=view.message,
        body=view.body,
        category=view.category,
        trace_id=view.trace_id,
        span_id=view.span_id,
        template=template,
        rendered_message=view.rendered_message,
        tags=view.tags,
        created_at=view.created_at,
    )


# ---------------------------------------------------------------------------
# Query Parameter Parsing
# ---------------------------------------------------------------------------


def _parse_level(value: str | None) -> LogLevel | None:
    if value is None:
        return None
    try:
        return LogLevel(value)
    except ValueError:
        raise UnknownLevelError(value, [lvl.value for lvl in LogLevel]) from None


def _parse_tag_filters(values: list[str]) -> dict[str, str]:
    tags: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition(":")
        if not sep or not key:
            raise WrongTypeError("tag", "key:value")
        tags[key] = value
    return tags
