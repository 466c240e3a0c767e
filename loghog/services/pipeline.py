# =============================================================================
# Ingestion Pipeline — Token to Stored Record
# =============================================================================
#
# PIPELINE (one submission):
#   1. Resolve bearer token → app_id            (TokenResolver)
#   2. Validate payload                          (validator.validate)
#   3. Assign timestamp if the client sent none  (clock, read post-validation)
#   4. Extract index fields                      (extractor.extract)
#   5. Compress body                             (codec.encode_body)
#   6. Persist in a single-row transaction       (LogStore.insert)
#   7. Return the generated record id
#
# ATOMICITY: steps 1–5 have no side effects and step 6 is one insert, so any
# failure leaves nothing behind.
#
# BATCH: the token is resolved once (an auth failure rejects the whole
# request); every entry then runs steps 2–7 independently, under its own
# request_timeout_seconds deadline, and reports its own success or failure.
# An entry that times out is reported as storage_unavailable while the
# entries before it stay stored, so a client retries only what failed.
#
# DESIGN DECISION: No deduplication. Identical resubmissions (e.g. client
# retries after a timeout) each create a new record.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from loghog.config import settings
from loghog.errors import LogHogError
from loghog.services import codec
from loghog.services.auth import TokenResolver
from loghog.services.extractor import extract
from loghog.services.store import LogStore, NewLogRecord, bounded
from loghog.services.validator import validate

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class BatchItemResult:
    """Outcome of one entry of a batch submission."""

    index: int
    record_id: str | None = None
    error: LogHogError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IngestionPipeline:
    """Orchestrates resolve → validate → extract → compress → persist."""

    def __init__(
        self,
        store: LogStore,
        resolver: TokenResolver | None = None,
        clock: Callable[[], datetime] = _utc_now,
        compression_level: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver or TokenResolver(store)
        self._clock = clock
        self._compression_level = (
            compression_level if compression_level is not None
            else settings.compression_level
        )
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds

    async def ingest(self, token: str | None, raw_payload: Any) -> str:
        """Ingest one submission. Returns the new record id."""
        app_id = await self._resolver.resolve(token)
        return await self.ingest_for_app(app_id, raw_payload)

    async def ingest_for_app(self, app_id: str, raw_payload: Any) -> str:
        """
        Ingest one submission for an already-resolved application.

        app_id must come from the TokenResolver, never from the payload.
        """
        try:
            payload = validate(raw_payload)
            timestamp = payload.timestamp or self._clock()
            fields = extract(payload)
            encoded = codec.encode_body(payload.body, self._compression_level)
        except LogHogError as e:
            logger.info("Rejected submission for app_id=%s: %s (%s)", app_id, e.code, e.field)
            raise

        record = NewLogRecord(
            app_id=app_id,
            timestamp=timestamp,
            level=payload.level,
            message=payload.message,
            body=encoded.data,
            body_codec=encoded.codec,
            body_size=encoded.original_size,
            category=fields.category,
            trace_id=fields.trace_id,
            span_id=fields.span_id,
            template_name=fields.template.name if fields.template else None,
            template_params=fields.template.params if fields.template else None,
            tags=fields.tags,
        )
        record_id = await self._store.insert(record)

        logger.debug(
            "Stored record %s (app_id=%s, level=%s, category=%s, %d→%d bytes)",
            record_id, app_id, payload.level.value, fields.category,
            encoded.original_size, encoded.compressed_size,
        )
        return record_id

    async def ingest_batch(
        self, token: str | None, payloads: list[Any],
    ) -> list[BatchItemResult]:
        """Ingest entries independently under one token."""
        app_id = await self._resolver.resolve(token)
        return await self.ingest_batch_for_app(app_id, payloads)

    async def ingest_batch_for_app(
        self, app_id: str, payloads: list[Any],
    ) -> list[BatchItemResult]:
        results: list[BatchItemResult] = []
        for index, raw_payload in enumerate(payloads):
            try:
                record_id = await bounded(
                    self.ingest_for_app(app_id, raw_payload), self._timeout,
                )
            except LogHogError as e:
                results.append(BatchItemResult(index=index, error=e))
            else:
                results.append(BatchItemResult(index=index, record_id=record_id))

        accepted = sum(1 for r in results if r.ok)
        logger.info(
            "Batch ingest for app_id=%s: %d accepted, %d rejected",
            app_id, accepted, len(results) - accepted,
        )
        return results
