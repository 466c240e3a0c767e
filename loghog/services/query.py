# =============================================================================
# Query / Retrieval — Filtered Search and Exact Record View
# =============================================================================
#
# query_page(): one newest-first page plus an opaque cursor for the next one.
#   Repeating the same filters with the returned cursor continues the scan.
# query():      lazy async iterator over all matches, paging internally.
# get():        one record with its body decompressed (the "view" action).
#
# TENANT ISOLATION: every store call is scoped by app_id. A record that does
# not exist and a record owned by another application both raise the same
# NotFoundError, so ids cannot be discovered across tenants.
#
# CURSOR FORMAT: urlsafe base64 of JSON [timestamp_iso, record_id]. Callers
# treat it as opaque; a malformed cursor is a WrongTypeError on "cursor".
# =============================================================================

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loghog.db.models import LogLevel
from loghog.errors import NotFoundError, WrongTypeError
from loghog.services import codec
from loghog.services.store import CursorKey, LogFilters, LogStore, StoredLogRecord
from loghog.services.templates import render_template
from loghog.services.validator import TemplateRef

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LogRecordSummary:
    """Index fields of a record, without the body."""

    id: str
    timestamp: datetime
    level: LogLevel
    message: str
    category: str
    trace_id: str | None
    span_id: str | None
    template_name: str | None
    tags: dict[str, str]


@dataclass
class LogRecordView:
    """A full record with its original body restored."""

    id: str
    app_id: str
    timestamp: datetime
    level: LogLevel
    message: str
    body: dict[str, Any]
    category: str
    trace_id: str | None
    span_id: str | None
    template: TemplateRef | None
    tags: dict[str, str]
    rendered_message: str | None = None
    created_at: datetime | None = None


@dataclass
class LogPage:
    items: list[LogRecordSummary] = field(default_factory=list)
    next_cursor: str | None = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class LogQueryService:
    def __init__(self, store: LogStore) -> None:
        self._store = store

    async def query_page(
        self,
        app_id: str,
        filters: LogFilters,
        cursor: str | None = None,
        limit: int = 50,
    ) -> LogPage:
        """Fetch one page. next_cursor is None when no further rows exist."""
        if limit < 1:
            raise WrongTypeError("limit", "a positive integer")

        after = decode_cursor(cursor) if cursor else None
        # One extra row tells us whether another page exists
        rows = await self._store.query(app_id, filters, limit + 1, after)

        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = encode_cursor((rows[-1].timestamp, rows[-1].id)) if has_more else None
        return LogPage(items=[_to_summary(r) for r in rows], next_cursor=next_cursor)

    async def query(
        self,
        app_id: str,
        filters: LogFilters,
        page_size: int = 100,
    ) -> AsyncIterator[LogRecordSummary]:
        """Yield every matching record, newest first, fetching lazily."""
        cursor: str | None = None
        while True:
            page = await self.query_page(app_id, filters, cursor, page_size)
            for item in page.items:
                yield item
            if page.next_cursor is None:
                return
            cursor = page.next_cursor

    async def get(self, app_id: str, record_id: str) -> LogRecordView:
        """
        Return one record with its decompressed body.

        Raises NotFoundError for unknown ids and for ids owned by another
        application; CorruptBodyError if the body cannot be restored.
        """
        record = await self._store.get(app_id, record_id)
        if record is None or record.body is None:
            raise NotFoundError(f"Log record '{record_id}' not found.")

        body = codec.decompress(record.body, record.body_codec)

        template = None
        rendered = None
        if record.template_name is not None:
            template = TemplateRef(
                name=record.template_name,
                params=record.template_params or {},
            )
            pattern = await self._store.get_template(app_id, record.template_name)
            if pattern is not None:
                rendered = render_template(pattern, template.params)

        return _to_view(record, body, template, rendered)


# ---------------------------------------------------------------------------
# Cursor Encoding
# ---------------------------------------------------------------------------


def encode_cursor(key: CursorKey) -> str:
    timestamp, record_id = key
    raw = json.dumps([timestamp.isoformat(), record_id], separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> CursorKey:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        timestamp_text, record_id = json.loads(base64.urlsafe_b64decode(padded))
        timestamp = datetime.fromisoformat(timestamp_text)
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError):
        raise WrongTypeError("cursor", "a cursor returned by a previous query") from None
    if timestamp.tzinfo is None or not isinstance(record_id, str):
        raise WrongTypeError("cursor", "a cursor returned by a previous query")
    return timestamp, record_id


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _to_summary(record: StoredLogRecord) -> LogRecordSummary:
    return LogRecordSummary(
        id=record.id,
        timestamp=record.timestamp,
        level=record.level,
        message=record.message,
        category=record.category,
        trace_id=record.trace_id,
        span_id=record.span_id,
        template_name=record.template_name,
        tags=record.tags,
    )


def _to_view(
    record: StoredLogRecord,
    body: dict[str, Any],
    template: TemplateRef | None,
    rendered: str | None,
) -> LogRecordView:
    return LogRecordView(
        id=record.id,
        app_id=record.app_id,
        timestamp=record.timestamp,
        level=record.level,
        message=record.message,
        body=body,
        category=record.category,
        trace_id=record.trace_id,
        span_id=record.span_id,
        template=template,
        tags=record.tags,
        rendered_message=rendered,
        created_at=record.created_at,
    )
