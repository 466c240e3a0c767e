# =============================================================================
# LogHog — Structured Log Ingestion Service
# =============================================================================
# Applications authenticate with a per-application bearer token and submit
# structured log entries. Each entry is validated, its index fields are
# extracted, its body is compressed, and the record is stored for filtered
# search and exact retrieval.
#
# Package structure:
#   loghog/
#   ├── api/          → FastAPI route handlers (logs, admin) and dependencies
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Ingestion core (resolver, validator, extractor, codec,
#   │                    pipeline, query) and the pluggable log store
#   └── workers/      → Celery app and retention task
# =============================================================================
