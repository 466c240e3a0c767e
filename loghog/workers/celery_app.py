# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs LogHog's periodic housekeeping. Ingestion itself is
# synchronous in the API (the record id is returned only after commit), so
# the only job here is the retention purge, triggered by Celery beat.
#
# ARCHITECTURE:
# ┌──────────┐     ┌───────┐     ┌──────────────┐
# │  beat    │────▶│ Redis │────▶│ Celery Worker│────▶ PostgreSQL
# │(scheduler)│    │(broker)│    │ (purge task)  │     (DELETE old rows)
# └──────────┘     └───────┘     └──────────────┘
#                    db 0          results → db 1
#
# Run locally:
#   celery -A loghog.workers.celery_app worker --beat --loglevel=info
# =============================================================================

from celery import Celery
from celery.schedules import crontab

from loghog.config import settings

celery_app = Celery(
    "loghog.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only. Pickle can execute arbitrary code during deserialization.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Ack after completion so a crashed purge is re-queued. The purge is
    # idempotent, so running it twice is harmless.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    # A purge over a large backlog can take a while; kill it after 30 min.
    task_soft_time_limit=1500,
    task_time_limit=1800,

    result_expires=3600,
    timezone="UTC",
    enable_utc=True,

    include=["loghog.workers.tasks"],

    # --- Schedule ---
    # Daily at 03:15 UTC, away from typical traffic peaks.
    beat_schedule={
        "purge-expired-logs": {
            "task": "purge_expired_logs",
            "schedule": crontab(hour=3, minute=15),
        },
    },
)
