# =============================================================================
# Unit Tests — Query / Retrieval
# =============================================================================
#
# Test groups:
#   1. Filters (AND-combined)
#   2. Ordering and cursor pagination
#   3. Tenant isolation
#   4. Record view (body restore, templates, corruption)
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from loghog.db.models import LogLevel
from loghog.errors import CorruptBodyError, NotFoundError, WrongTypeError
from loghog.services import codec
from loghog.services.pipeline import IngestionPipeline
from loghog.services.query import LogQueryService, decode_cursor, encode_cursor
from loghog.services.store import InMemoryLogStore, LogFilters, NewLogRecord

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


async def _collect(aiter):
    return [item async for item in aiter]


def _ingest(store, app_id, minutes=0, **payload):
    payload.setdefault("level", "info")
    payload.setdefault("message", "m")
    payload.setdefault("timestamp", (BASE_TIME + timedelta(minutes=minutes)).isoformat())
    return _run(IngestionPipeline(store).ingest_for_app(app_id, payload))


@pytest.fixture
def store():
    return InMemoryLogStore()


@pytest.fixture
def service(store):
    return LogQueryService(store)


# ---------------------------------------------------------------------------
# 1. Filters
# ---------------------------------------------------------------------------


class TestFilters:
    def test_category_filter_exact(self, store, service):
        media = _ingest(store, "app", category="media")
        _ingest(store, "app", category="billing")
        _ingest(store, "app")

        page = _run(service.query_page("app", LogFilters(category="media")))
        assert [item.id for item in page.items] == [media]

    def test_level_and_tag_combined(self, store, service):
        hit = _ingest(store, "app", level="error", tags={"service": "payments-api"})
        _ingest(store, "app", level="info", tags={"service": "payments-api"})
        _ingest(store, "app", level="error", tags={"service": "search"})

        page = _run(service.query_page(
            "app", LogFilters(level=LogLevel.ERROR, tags={"service": "payments-api"}),
        ))
        assert [item.id for item in page.items] == [hit]

    def test_multiple_tags_all_required(self, store, service):
        hit = _ingest(store, "app", tags={"service": "a", "region": "eu"})
        _ingest(store, "app", tags={"service": "a", "region": "us"})

        page = _run(service.query_page("app", LogFilters(tags={"service": "a", "region": "eu"})))
        assert [item.id for item in page.items] == [hit]

    def test_trace_span_and_template(self, store, service):
        hit = _ingest(
            store, "app", trace_id="t1", span_id="s1",
            template={"name": "tpl", "params": {}},
        )
        _ingest(store, "app", trace_id="t1", span_id="s2")

        assert len(_run(service.query_page("app", LogFilters(trace_id="t1"))).items) == 2
        page = _run(service.query_page("app", LogFilters(span_id="s1", template="tpl")))
        assert [item.id for item in page.items] == [hit]

    def test_time_range_since_inclusive_until_exclusive(self, store, service):
        at_0 = _ingest(store, "app", minutes=0)
        at_5 = _ingest(store, "app", minutes=5)
        _ingest(store, "app", minutes=10)

        page = _run(service.query_page("app", LogFilters(
            since=BASE_TIME, until=BASE_TIME + timedelta(minutes=10),
        )))
        assert [item.id for item in page.items] == [at_5, at_0]

    def test_message_substring_case_insensitive(self, store, service):
        hit = _ingest(store, "app", message="Payment processing FAILED.")
        _ingest(store, "app", message="Payment ok")

        page = _run(service.query_page("app", LogFilters(text="failed")))
        assert [item.id for item in page.items] == [hit]

    def test_no_matches(self, store, service):
        _ingest(store, "app")
        page = _run(service.query_page("app", LogFilters(category="nope")))
        assert page.items == []
        assert page.next_cursor is None


# ---------------------------------------------------------------------------
# 2. Ordering and Pagination
# ---------------------------------------------------------------------------


class TestPagination:
    def test_newest_first(self, store, service):
        ids = [_ingest(store, "app", minutes=i) for i in range(3)]
        page = _run(service.query_page("app", LogFilters()))
        assert [item.id for item in page.items] == list(reversed(ids))

    def test_cursor_walks_every_record_once(self, store, service):
        ids = [_ingest(store, "app", minutes=i) for i in range(7)]
        seen: list[str] = []
        cursor = None
        while True:
            page = _run(service.query_page("app", LogFilters(), cursor=cursor, limit=3))
            seen.extend(item.id for item in page.items)
            if page.next_cursor is None:
                break
            cursor = page.next_cursor
        assert seen == list(reversed(ids))

    def test_same_timestamp_records_not_skipped(self, store, service):
        ids = {_ingest(store, "app", minutes=0) for _ in range(5)}
        items = _run(_collect(service.query("app", LogFilters(), page_size=2)))
        assert {item.id for item in items} == ids
        assert len(items) == 5

    def test_exact_page_has_no_cursor(self, store, service):
        for i in range(3):
            _ingest(store, "app", minutes=i)
        page = _run(service.query_page("app", LogFilters(), limit=3))
        assert len(page.items) == 3
        assert page.next_cursor is None

    def test_invalid_limit(self, service):
        with pytest.raises(WrongTypeError) as exc_info:
            _run(service.query_page("app", LogFilters(), limit=0))
        assert exc_info.value.field == "limit"

    def test_cursor_round_trip(self):
        key = (BASE_TIME, "abc")
        assert decode_cursor(encode_cursor(key)) == key

    @pytest.mark.parametrize("cursor", ["!!!", "bm90LWpzb24", encode_cursor((BASE_TIME, "x"))[:-4]])
    def test_garbage_cursor(self, cursor):
        with pytest.raises(WrongTypeError) as exc_info:
            decode_cursor(cursor)
        assert exc_info.value.field == "cursor"


# ---------------------------------------------------------------------------
# 3. Tenant Isolation
# ---------------------------------------------------------------------------


class TestIsolation:
    def test_other_app_records_invisible(self, store, service):
        a_id = _ingest(store, "app-a", category="media")
        _ingest(store, "app-b", category="media")

        page = _run(service.query_page("app-a", LogFilters(category="media")))
        assert [item.id for item in page.items] == [a_id]

    def test_get_other_app_record_is_not_found(self, store, service):
        a_id = _ingest(store, "app-a")
        with pytest.raises(NotFoundError):
            _run(service.get("app-b", a_id))


# ---------------------------------------------------------------------------
# 4. Record View
# ---------------------------------------------------------------------------


class TestGet:
    def test_body_restored(self, store, service):
        body = {"userId": "user-123", "orderId": "order-abc", "items": [1, 2]}
        record_id = _ingest(store, "app", body=body, level="error")

        view = _run(service.get("app", record_id))
        assert view.body == body
        assert view.level is LogLevel.ERROR
        assert view.app_id == "app"

    def test_unknown_id(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            _run(service.get("app", "does-not-exist"))
        assert exc_info.value.status_code == 404

    def test_template_rendered_when_registered(self, store, service):
        application = _run(store.create_application("app"))
        _run(store.put_template(application.id, "order_failed", "Order {orderId} failed"))
        record_id = _ingest(
            store, application.id,
            template={"name": "order_failed", "params": {"orderId": "o-7"}},
        )

        view = _run(service.get(application.id, record_id))
        assert view.template.name == "order_failed"
        assert view.rendered_message == "Order o-7 failed"

    def test_unregistered_template_not_rendered(self, store, service):
        record_id = _ingest(store, "app", template={"name": "unknown", "params": {"a": 1}})
        view = _run(service.get("app", record_id))
        assert view.template.params == {"a": 1}
        assert view.rendered_message is None

    def test_corrupt_body(self, store, service):
        record_id = _run(store.insert(NewLogRecord(
            app_id="app",
            timestamp=BASE_TIME,
            level=LogLevel.INFO,
            message="m",
            body=b"\x00garbage",
            body_codec=codec.CODEC_NAME,
            body_size=8,
            category="general",
        )))
        with pytest.raises(CorruptBodyError):
            _run(service.get("app", record_id))
