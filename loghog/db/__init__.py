# =============================================================================
# Database Package
# =============================================================================
# Provides async/sync SQLAlchemy engines, session management, and ORM models.
#
# Key exports:
#   - async_session_factory: session factory used by SqlLogStore
#   - get_sync_session: context manager for Celery workers
#   - Base: SQLAlchemy declarative base for ORM models
#   - Application, AppToken, MessageTemplate, LogEntry: ORM models
# =============================================================================
