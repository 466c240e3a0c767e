# =============================================================================
# Log Store Abstraction — Pluggable Persistence Protocol
# =============================================================================
#
# Provides a common interface for everything the ingestion core persists:
# token lookups, immutable log records, and the small amount of tenancy data
# (applications, tokens, message templates) the admin API manages.
#
# DESIGN DECISION: Protocol (structural typing) over ABC, with two backends:
#
#   LogStore (Protocol)
#   ├── SqlLogStore       — PostgreSQL via SQLAlchemy async sessions
#   └── InMemoryLogStore  — process-local dicts behind a threading.Lock
#
# CONCURRENCY:
# - Records are immutable and ids are fresh UUID4s, so inserts never race.
# - SqlLogStore: one session (one transaction) per call; a record is either
#   fully committed or absent.
# - InMemoryLogStore: the lock is held only around synchronous dict work,
#   never across an await.
#
# FAILURE MAPPING:
# Connection-level database failures surface as StorageUnavailableError,
# the only error class clients are expected to retry. Calls wrapped in
# bounded() that overrun request_timeout_seconds surface the same way.
# =============================================================================

from __future__ import annotations

import asyncio
import copy
import logging
import threading
import uuid
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Protocol, TypeVar

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from loghog.config import settings
from loghog.db.models import Application, AppToken, LogEntry, LogLevel, MessageTemplate
from loghog.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

# (timestamp, id) of the last row of a page; rows strictly after it in
# newest-first order form the next page.
CursorKey = tuple[datetime, str]

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class NewLogRecord:
    """Everything the pipeline hands to the store for one insert."""

    app_id: str
    timestamp: datetime
    level: LogLevel
    message: str
    body: bytes
    body_codec: str
    body_size: int
    category: str
    trace_id: str | None = None
    span_id: str | None = None
    template_name: str | None = None
    template_params: dict[str, Any] | None = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class StoredLogRecord:
    """
    A persisted record.

    `body` is None on records returned by query(); only get() loads the
    compressed body.
    """

    id: str
    app_id: str
    timestamp: datetime
    level: LogLevel
    message: str
    body: bytes | None
    body_codec: str
    body_size: int
    category: str
    trace_id: str | None = None
    span_id: str | None = None
    template_name: str | None = None
    template_params: dict[str, Any] | None = None
    tags: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class LogFilters:
    """AND-combined query filters. None / empty means "no constraint"."""

    level: LogLevel | None = None
    category: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    trace_id: str | None = None
    span_id: str | None = None
    template: str | None = None
    since: datetime | None = None  # inclusive
    until: datetime | None = None  # exclusive
    text: str | None = None  # case-insensitive substring of message


@dataclass
class ApplicationInfo:
    id: str
    name: str
    created_at: datetime


@dataclass
class TokenInfo:
    id: str
    application_id: str
    name: str
    key_prefix: str
    is_active: bool
    created_at: datetime


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LogStore(Protocol):
    """Persistence interface used by the resolver, pipeline, query and admin API."""

    async def find_app_id_for_token(self, key_hash: str) -> str | None:
        """Return the owning application id of an active token, else None."""
        ...

    async def insert(self, record: NewLogRecord) -> str:
        """Persist one record atomically and return its generated id."""
        ...

    async def query(
        self,
        app_id: str,
        filters: LogFilters,
        limit: int,
        after: CursorKey | None = None,
    ) -> list[StoredLogRecord]:
        """Newest-first records of one application matching every filter."""
        ...

    async def get(self, app_id: str, record_id: str) -> StoredLogRecord | None:
        """One record with its compressed body, only if owned by app_id."""
        ...

    async def create_application(self, name: str) -> ApplicationInfo: ...

    async def delete_application(self, app_id: str) -> bool: ...

    async def create_token(
        self, app_id: str, name: str, key_prefix: str, key_hash: str,
    ) -> TokenInfo | None: ...

    async def revoke_token(self, app_id: str, token_id: str) -> bool: ...

    async def put_template(self, app_id: str, name: str, pattern: str) -> bool: ...

    async def get_template(self, app_id: str, name: str) -> str | None: ...


# ---------------------------------------------------------------------------
# Implementation 1: PostgreSQL
# ---------------------------------------------------------------------------


class SqlLogStore:
    """
    PostgreSQL-backed store using SQLAlchemy async sessions.

    Tag filters use JSONB containment (`tags @> {...}`), served by the GIN
    index on log_records.tags. Free-text search is an ILIKE over message.
    """

    def __init__(self, session_factory=None) -> None:
        if session_factory is None:
            from loghog.db.engine import async_session_factory

            session_factory = async_session_factory
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (OperationalError, InterfaceError, OSError) as e:
            logger.warning("Log store unavailable: %s", e)
            raise StorageUnavailableError("Log store is temporarily unavailable.") from e

    async def find_app_id_for_token(self, key_hash: str) -> str | None:
        stmt = select(AppToken.application_id).where(
            AppToken.key_hash == key_hash,
            AppToken.is_active.is_(True),
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def insert(self, record: NewLogRecord) -> str:
        record_id = str(uuid.uuid4())
        entry = LogEntry(
            id=record_id,
            app_id=record.app_id,
            timestamp=record.timestamp,
            level=record.level,
            message=record.message,
            body=record.body,
            body_codec=record.body_codec,
            body_size=record.body_size,
            category=record.category,
            trace_id=record.trace_id,
            span_id=record.span_id,
            template_name=record.template_name,
            template_params=record.template_params,
            tags=record.tags,
            created_at=datetime.now(UTC),
        )
        async with self._session() as session:
            session.add(entry)
            await session.commit()
        return record_id

    async def query(
        self,
        app_id: str,
        filters: LogFilters,
        limit: int,
        after: CursorKey | None = None,
    ) -> list[StoredLogRecord]:
        stmt = (
            select(LogEntry)
            .options(defer(LogEntry.body))
            .where(LogEntry.app_id == app_id)
        )

        if filters.level is not None:
            stmt = stmt.where(LogEntry.level == filters.level)
        if filters.category is not None:
            stmt = stmt.where(LogEntry.category == filters.category)
        if filters.trace_id is not None:
            stmt = stmt.where(LogEntry.trace_id == filters.trace_id)
        if filters.span_id is not None:
            stmt = stmt.where(LogEntry.span_id == filters.span_id)
        if filters.template is not None:
            stmt = stmt.where(LogEntry.template_name == filters.template)
        if filters.tags:
            stmt = stmt.where(LogEntry.tags.contains(filters.tags))
        if filters.since is not None:
            stmt = stmt.where(LogEntry.timestamp >= filters.since)
        if filters.until is not None:
            stmt = stmt.where(LogEntry.timestamp < filters.until)
        if filters.text:
            stmt = stmt.where(
                LogEntry.message.ilike(f"%{_escape_like(filters.text)}%", escape="\\"),
            )

        if after is not None:
            after_ts, after_id = after
            stmt = stmt.where(
                or_(
                    LogEntry.timestamp < after_ts,
                    and_(LogEntry.timestamp == after_ts, LogEntry.id < after_id),
                )
            )

        stmt = stmt.order_by(LogEntry.timestamp.desc(), LogEntry.id.desc()).limit(limit)

        async with self._session() as session:
            result = await session.execute(stmt)
            entries = list(result.scalars().all())

        logger.debug(
            "Log query returned %d rows (app_id=%s, limit=%d)",
            len(entries), app_id, limit,
        )
        return [_entry_to_record(e, include_body=False) for e in entries]

    async def get(self, app_id: str, record_id: str) -> StoredLogRecord | None:
        stmt = select(LogEntry).where(
            LogEntry.id == record_id,
            LogEntry.app_id == app_id,
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            entry = result.scalar_one_or_none()
        if entry is None:
            return None
        return _entry_to_record(entry, include_body=True)

    async def create_application(self, name: str) -> ApplicationInfo:
        app = Application(id=str(uuid.uuid4()), name=name, created_at=datetime.now(UTC))
        async with self._session() as session:
            session.add(app)
            await session.commit()
        return ApplicationInfo(id=app.id, name=app.name, created_at=app.created_at)

    async def delete_application(self, app_id: str) -> bool:
        async with self._session() as session:
            app = await session.get(Application, app_id)
            if app is None:
                return False
            # Cascades to tokens and templates; log_records are left in place
            await session.delete(app)
            await session.commit()
        return True

    async def create_token(
        self, app_id: str, name: str, key_prefix: str, key_hash: str,
    ) -> TokenInfo | None:
        async with self._session() as session:
            app = await session.get(Application, app_id)
            if app is None:
                return None
            token = AppToken(
                id=str(uuid.uuid4()),
                application_id=app_id,
                name=name,
                key_prefix=key_prefix,
                key_hash=key_hash,
                is_active=True,
                created_at=datetime.now(UTC),
            )
            session.add(token)
            await session.commit()
        return TokenInfo(
            id=token.id,
            application_id=app_id,
            name=token.name,
            key_prefix=token.key_prefix,
            is_active=True,
            created_at=token.created_at,
        )

    async def revoke_token(self, app_id: str, token_id: str) -> bool:
        stmt = (
            update(AppToken)
            .where(AppToken.id == token_id, AppToken.application_id == app_id)
            .values(is_active=False, revoked_at=datetime.now(UTC))
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0

    async def put_template(self, app_id: str, name: str, pattern: str) -> bool:
        async with self._session() as session:
            app = await session.get(Application, app_id)
            if app is None:
                return False
            stmt = select(MessageTemplate).where(
                MessageTemplate.application_id == app_id,
                MessageTemplate.name == name,
            )
            template = (await session.execute(stmt)).scalar_one_or_none()
            if template is None:
                session.add(MessageTemplate(application_id=app_id, name=name, pattern=pattern))
            else:
                template.pattern = pattern
            await session.commit()
        return True

    async def get_template(self, app_id: str, name: str) -> str | None:
        stmt = select(MessageTemplate.pattern).where(
            MessageTemplate.application_id == app_id,
            MessageTemplate.name == name,
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Implementation 2: In-Memory
# ---------------------------------------------------------------------------


class InMemoryLogStore:
    """
    Process-local store for tests and single-process development runs.

    Returned records are copies, so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, StoredLogRecord] = {}
        self._applications: dict[str, ApplicationInfo] = {}
        self._tokens: dict[str, TokenInfo] = {}  # key_hash → token
        self._token_hashes: dict[str, str] = {}  # token id → key_hash
        self._templates: dict[tuple[str, str], str] = {}

    async def find_app_id_for_token(self, key_hash: str) -> str | None:
        with self._lock:
            token = self._tokens.get(key_hash)
            if token is None or not token.is_active:
                return None
            return token.application_id

    async def insert(self, record: NewLogRecord) -> str:
        record_id = str(uuid.uuid4())
        stored = StoredLogRecord(
            **{f: copy.deepcopy(getattr(record, f)) for f in _NEW_RECORD_FIELDS},
            id=record_id,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            self._records[record_id] = stored
        return record_id

    async def query(
        self,
        app_id: str,
        filters: LogFilters,
        limit: int,
        after: CursorKey | None = None,
    ) -> list[StoredLogRecord]:
        with self._lock:
            candidates = [r for r in self._records.values() if r.app_id == app_id]

        matches = [r for r in candidates if _matches(r, filters)]
        matches.sort(key=lambda r: (r.timestamp, r.id), reverse=True)
        if after is not None:
            matches = [r for r in matches if (r.timestamp, r.id) < after]
        return [_copy_record(r, include_body=False) for r in matches[:limit]]

    async def get(self, app_id: str, record_id: str) -> StoredLogRecord | None:
        with self._lock:
            record = self._records.get(record_id)
        if record is None or record.app_id != app_id:
            return None
        return _copy_record(record, include_body=True)

    async def create_application(self, name: str) -> ApplicationInfo:
        app = ApplicationInfo(id=str(uuid.uuid4()), name=name, created_at=datetime.now(UTC))
        with self._lock:
            self._applications[app.id] = app
        return replace(app)

    async def delete_application(self, app_id: str) -> bool:
        with self._lock:
            if self._applications.pop(app_id, None) is None:
                return False
            for key_hash in [h for h, t in self._tokens.items() if t.application_id == app_id]:
                token = self._tokens.pop(key_hash)
                self._token_hashes.pop(token.id, None)
            for key in [k for k in self._templates if k[0] == app_id]:
                del self._templates[key]
        return True

    async def create_token(
        self, app_id: str, name: str, key_prefix: str, key_hash: str,
    ) -> TokenInfo | None:
        token = TokenInfo(
            id=str(uuid.uuid4()),
            application_id=app_id,
            name=name,
            key_prefix=key_prefix,
            is_active=True,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            if app_id not in self._applications:
                return None
            self._tokens[key_hash] = token
            self._token_hashes[token.id] = key_hash
        return replace(token)

    async def revoke_token(self, app_id: str, token_id: str) -> bool:
        with self._lock:
            key_hash = self._token_hashes.get(token_id)
            token = self._tokens.get(key_hash) if key_hash else None
            if token is None or token.application_id != app_id:
                return False
            token.is_active = False
        return True

    async def put_template(self, app_id: str, name: str, pattern: str) -> bool:
        with self._lock:
            if app_id not in self._applications:
                return False
            self._templates[(app_id, name)] = pattern
        return True

    async def get_template(self, app_id: str, name: str) -> str | None:
        with self._lock:
            return self._templates.get((app_id, name))


# ---------------------------------------------------------------------------
# Call Deadline
# ---------------------------------------------------------------------------


async def bounded(awaitable: Awaitable[T], timeout: float | None = None) -> T:
    """
    Await a store round-trip, giving up after request_timeout_seconds.

    A call that overruns is cancelled and reported as StorageUnavailableError
    (503 + Retry-After), the same as a refused connection.
    """
    limit = settings.request_timeout_seconds if timeout is None else timeout
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except TimeoutError:
        logger.error("Storage call exceeded %.2fs timeout", limit)
        raise StorageUnavailableError("Log storage did not respond in time.") from None


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def create_log_store(store_type: str | None = None) -> SqlLogStore | InMemoryLogStore:
    """
    Build the configured store backend.

    - "postgres" → SqlLogStore (default)
    - "memory"   → InMemoryLogStore
    """
    store_type = store_type or settings.log_store_type

    if store_type == "memory":
        logger.info("Using in-memory log store")
        return InMemoryLogStore()

    logger.info("Using PostgreSQL log store")
    return SqlLogStore()


@lru_cache
def get_log_store() -> SqlLogStore | InMemoryLogStore:
    """Process-wide store instance; also the FastAPI dependency."""
    return create_log_store()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------

_NEW_RECORD_FIELDS = [
    "app_id", "timestamp", "level", "message", "body", "body_codec",
    "body_size", "category", "trace_id", "span_id", "template_name",
    "template_params", "tags",
]


def _entry_to_record(entry: LogEntry, include_body: bool) -> StoredLogRecord:
    timestamp = entry.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return StoredLogRecord(
        id=entry.id,
        app_id=entry.app_id,
        timestamp=timestamp,
        level=LogLevel(entry.level),
        message=entry.message,
        body=entry.body if include_body else None,
        body_codec=entry.body_codec,
        body_size=entry.body_size,
        category=entry.category,
        trace_id=entry.trace_id,
        span_id=entry.span_id,
        template_name=entry.template_name,
        template_params=entry.template_params,
        tags=entry.tags or {},
        created_at=entry.created_at,
    )


def _copy_record(record: StoredLogRecord, include_body: bool) -> StoredLogRecord:
    return replace(
        record,
        body=record.body if include_body else None,
        tags=dict(record.tags),
        template_params=copy.deepcopy(record.template_params),
    )


def _matches(record: StoredLogRecord, filters: LogFilters) -> bool:
    if filters.level is not None and record.level != filters.level:
        return False
    if filters.category is not None and record.category != filters.category:
        return False
    if filters.trace_id is not None and record.trace_id != filters.trace_id:
        return False
    if filters.span_id is not None and record.span_id != filters.span_id:
        return False
    if filters.template is not None and record.template_name != filters.template:
        return False
    for key, value in filters.tags.items():
        if record.tags.get(key) != value:
            return False
    if filters.since is not None and record.timestamp < filters.since:
        return False
    if filters.until is not None and record.timestamp >= filters.until:
        return False
    if filters.text and filters.text.casefold() not in record.message.casefold():
        return False
    return True


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
