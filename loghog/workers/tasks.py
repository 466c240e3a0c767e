# =============================================================================
# Celery Task Definitions — Log Retention
# =============================================================================
#
# purge_expired_logs deletes log records whose created_at is older than
# settings.log_retention_days. With retention unset (None) the task is a
# no-op and records are kept forever.
#
# This is also what eventually removes records left behind by a deleted
# application: they are unreachable (no token maps to their app_id) and age
# out here like everything else.
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# - Do NOT use `async/await` in Celery tasks
# - Do NOT use the async SQLAlchemy engine (use the sync engine instead)
#
# RETRY STRATEGY:
# max_retries=3, 5 minutes apart. Handles DB connection drops; the next
# daily run catches anything still left.
# =============================================================================

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete

from loghog.config import settings
from loghog.db.engine import get_sync_session
from loghog.db.models import LogEntry
from loghog.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def retention_cutoff(now: datetime | None = None, days: int | None = None) -> datetime | None:
    """Oldest created_at that is still kept, or None when retention is off."""
    days = settings.log_retention_days if days is None else days
    if not days or days <= 0:
        return None
    return (now or datetime.now(UTC)) - timedelta(days=days)


@celery_app.task(
    bind=True,
    name="purge_expired_logs",
    max_retries=3,
    default_retry_delay=300,
)
def purge_expired_logs(self) -> dict:
    """
    Delete log records older than the retention window.

    Returns:
        dict with the cutoff used and the number of rows deleted.
    """
    cutoff = retention_cutoff()
    if cutoff is None:
        logger.info("Retention disabled; nothing to purge")
        return {"status": "skipped", "deleted": 0, "cutoff": None}

    logger.info("Purging log records created before %s", cutoff.isoformat())

    try:
        with get_sync_session() as session:
            result = session.execute(
                delete(LogEntry).where(LogEntry.created_at < cutoff)
            )
            deleted = result.rowcount or 0
    except Exception as exc:
        logger.exception("Retention purge failed (attempt %d)", self.request.retries + 1)
        raise self.retry(exc=exc)

    logger.info("Retention purge removed %d records", deleted)
    return {"status": "completed", "deleted": deleted, "cutoff": cutoff.isoformat()}
