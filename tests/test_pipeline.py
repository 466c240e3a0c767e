# =============================================================================
# Unit Tests — Ingestion Pipeline
# =============================================================================
#
# Runs the full resolve → validate → extract → compress → persist chain
# against InMemoryLogStore. No database, no Redis.
#
# Test groups:
#   1. Happy path (body round-trip, index fields, timestamps)
#   2. Atomicity (rejected submissions persist nothing)
#   3. Authentication
#   4. Batches
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from loghog.db.models import LogLevel
from loghog.errors import (
    InvalidTokenError,
    MissingFieldError,
    StorageUnavailableError,
    UnknownLevelError,
    WrongTypeError,
)
from loghog.services import codec
from loghog.services.auth import generate_token
from loghog.services.pipeline import IngestionPipeline
from loghog.services.store import InMemoryLogStore, LogFilters

FIXED_NOW = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


async def _provision(store: InMemoryLogStore, name: str = "app") -> tuple[str, str]:
    app = await store.create_application(name)
    raw_token, prefix, key_hash = generate_token()
    await store.create_token(app.id, "default", prefix, key_hash)
    return app.id, raw_token


def _count(store: InMemoryLogStore, app_id: str) -> int:
    return len(_run(store.query(app_id, LogFilters(), limit=1000)))


@pytest.fixture
def store():
    return InMemoryLogStore()


@pytest.fixture
def provisioned(store):
    app_id, token = _run(_provision(store))
    pipeline = IngestionPipeline(store, clock=lambda: FIXED_NOW)
    return pipeline, app_id, token


# ---------------------------------------------------------------------------
# 1. Happy Path
# ---------------------------------------------------------------------------


class TestIngest:
    def test_payment_failure_scenario(self, store, provisioned):
        """Body comes back verbatim; level, category and tags are indexed."""
        pipeline, app_id, token = provisioned
        body = {"userId": "user-123", "orderId": "order-abc", "amount": 42.5}

        record_id = _run(pipeline.ingest(token, {
            "level": "error",
            "message": "Payment processing failed.",
            "body": body,
            "tags": {"service": "payments-api"},
        }))

        record = _run(store.get(app_id, record_id))
        assert record.level is LogLevel.ERROR
        assert record.category == "general"
        assert record.tags == {"service": "payments-api"}
        assert codec.decompress(record.body, record.body_codec) == body

        matches = _run(store.query(
            app_id,
            LogFilters(level=LogLevel.ERROR, tags={"service": "payments-api"}),
            limit=10,
        ))
        assert [r.id for r in matches] == [record_id]

    def test_server_time_used_when_omitted(self, store, provisioned):
        pipeline, app_id, token = provisioned
        record_id = _run(pipeline.ingest(token, {"level": "info", "message": "m"}))
        assert _run(store.get(app_id, record_id)).timestamp == FIXED_NOW

    def test_client_timestamp_kept(self, store, provisioned):
        pipeline, app_id, token = provisioned
        record_id = _run(pipeline.ingest(token, {
            "level": "info", "message": "m", "timestamp": "2024-01-02T03:04:05Z",
        }))
        assert _run(store.get(app_id, record_id)).timestamp == datetime(
            2024, 1, 2, 3, 4, 5, tzinfo=UTC,
        )

    def test_body_size_recorded(self, store, provisioned):
        pipeline, app_id, token = provisioned
        record_id = _run(pipeline.ingest(token, {
            "level": "info", "message": "m", "body": {"k": "v"},
        }))
        assert _run(store.get(app_id, record_id)).body_size == len('{"k":"v"}')

    def test_template_stored(self, store, provisioned):
        pipeline, app_id, token = provisioned
        record_id = _run(pipeline.ingest(token, {
            "level": "warn", "message": "m",
            "template": {"name": "order_failed", "params": {"orderId": "o-1"}},
        }))
        record = _run(store.get(app_id, record_id))
        assert record.template_name == "order_failed"
        assert record.template_params == {"orderId": "o-1"}

    def test_identical_submissions_are_distinct_records(self, store, provisioned):
        pipeline, app_id, token = provisioned
        payload = {"level": "info", "message": "same"}
        first = _run(pipeline.ingest(token, payload))
        second = _run(pipeline.ingest(token, payload))
        assert first != second
        assert _count(store, app_id) == 2

    def test_caller_mutation_does_not_reach_store(self, store, provisioned):
        pipeline, app_id, token = provisioned
        tags = {"service": "a"}
        record_id = _run(pipeline.ingest(token, {"level": "info", "message": "m", "tags": tags}))
        tags["service"] = "changed"
        assert _run(store.get(app_id, record_id)).tags == {"service": "a"}


# ---------------------------------------------------------------------------
# 2. Atomicity
# ---------------------------------------------------------------------------


class TestRejection:
    @pytest.mark.parametrize(
        "payload,error",
        [
            ({"message": "no level"}, MissingFieldError),
            ({"level": "info"}, MissingFieldError),
            ({"level": "verbose", "message": "m"}, UnknownLevelError),
            ({"level": "info", "message": "m", "body": {"s": "\ud800"}}, WrongTypeError),
        ],
    )
    def test_nothing_persisted(self, store, provisioned, payload, error):
        pipeline, app_id, token = provisioned
        with pytest.raises(error):
            _run(pipeline.ingest(token, payload))
        assert _count(store, app_id) == 0

    def test_storage_failure_propagates(self):
        fake_store = AsyncMock()
        fake_store.insert.side_effect = StorageUnavailableError("down")
        pipeline = IngestionPipeline(fake_store)
        with pytest.raises(StorageUnavailableError):
            _run(pipeline.ingest_for_app("app-1", {"level": "info", "message": "m"}))

    def test_validation_happens_before_insert(self):
        fake_store = AsyncMock()
        pipeline = IngestionPipeline(fake_store)
        with pytest.raises(UnknownLevelError):
            _run(pipeline.ingest_for_app("app-1", {"level": "nope", "message": "m"}))
        fake_store.insert.assert_not_called()


# ---------------------------------------------------------------------------
# 3. Authentication
# ---------------------------------------------------------------------------


class TestAuthentication:
    def test_unknown_token(self, store, provisioned):
        pipeline, app_id, _ = provisioned
        with pytest.raises(InvalidTokenError):
            _run(pipeline.ingest("lh_" + "0" * 64, {"level": "info", "message": "m"}))
        assert _count(store, app_id) == 0

    def test_missing_token(self, provisioned):
        pipeline, _, _ = provisioned
        with pytest.raises(InvalidTokenError):
            _run(pipeline.ingest(None, {"level": "info", "message": "m"}))

    def test_records_owned_by_token_app(self, store):
        app_a, token_a = _run(_provision(store, "a"))
        app_b, _ = _run(_provision(store, "b"))
        pipeline = IngestionPipeline(store)

        _run(pipeline.ingest(token_a, {"level": "info", "message": "m", "body": {"app_id": app_b}}))

        assert _count(store, app_a) == 1
        assert _count(store, app_b) == 0


# ---------------------------------------------------------------------------
# 4. Batches
# ---------------------------------------------------------------------------


class TestBatch:
    def test_entries_independent(self, store, provisioned):
        pipeline, app_id, token = provisioned
        results = _run(pipeline.ingest_batch(token, [
            {"level": "info", "message": "one"},
            {"level": "bogus", "message": "two"},
            {"level": "error", "message": "three"},
        ]))

        assert [r.ok for r in results] == [True, False, True]
        assert results[1].error.code == "unknown_level"
        assert results[1].index == 1
        assert _count(store, app_id) == 2

    def test_bad_token_rejects_whole_batch(self, store, provisioned):
        pipeline, app_id, _ = provisioned
        with pytest.raises(InvalidTokenError):
            _run(pipeline.ingest_batch("lh_bad", [{"level": "info", "message": "m"}]))
        assert _count(store, app_id) == 0

    def test_empty_batch(self, provisioned):
        pipeline, _, token = provisioned
        assert _run(pipeline.ingest_batch(token, [])) == []

    def test_slow_entry_times_out_alone(self, store, provisioned):
        """One stalled insert fails that entry; earlier and later entries keep their ids."""
        _, app_id, token = provisioned
        real_insert = store.insert

        async def _insert(record):
            if record.message == "stalls":
                await asyncio.sleep(1.0)
            return await real_insert(record)

        store.insert = _insert
        pipeline = IngestionPipeline(store, clock=lambda: FIXED_NOW, timeout=0.05)

        results = _run(pipeline.ingest_batch(token, [
            {"level": "info", "message": "first"},
            {"level": "info", "message": "stalls"},
            {"level": "info", "message": "third"},
        ]))

        assert [r.ok for r in results] == [True, False, True]
        assert isinstance(results[1].error, StorageUnavailableError)
        assert results[1].error.code == "storage_unavailable"
        assert _count(store, app_id) == 2

    def test_timeout_defaults_to_settings(self, store, monkeypatch):
        from loghog.config import settings

        monkeypatch.setattr(settings, "request_timeout_seconds", 2.5)
        assert IngestionPipeline(store)._timeout == 2.5
