# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────┐       ┌──────────────────────────────────────┐
# │ applications │       │ app_tokens                           │
# ├──────────────┤       ├──────────────────────────────────────┤
# │ id (PK)      │──1:N─▶│ id (PK)                              │
# │ name         │       │ application_id (FK → applications)   │
# │ created_at   │       │ key_prefix / key_hash (unique)       │
# └──────────────┘       │ is_active / revoked_at               │
#        │               └──────────────────────────────────────┘
#        │ 1:N           ┌──────────────────────────────────────┐
#        └──────────────▶│ message_templates (app_id, name)     │
#                        └──────────────────────────────────────┘
#
# ┌──────────────────────────────────────────────────────────────┐
# │ log_records                                                  │
# ├──────────────────────────────────────────────────────────────┤
# │ id (PK, uuid4) │ app_id (NOT a FK) │ timestamp │ level       │
# │ message │ body (bytea, compressed) │ body_codec │ body_size  │
# │ category │ trace_id │ span_id │ template_name/params │ tags  │
# │ created_at                                                   │
# └──────────────────────────────────────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. log_records.app_id carries no foreign key. Deleting an application
#    cascades to its tokens and templates only; its records stay with a
#    dangling app_id until the retention task purges them.
#
# 2. Index fields are real columns (or JSONB for tags / template params)
#    so filtered queries never touch the compressed body.
#
# 3. Token material is stored as a SHA-256 hash only.
# =============================================================================

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class LogLevel(str, enum.Enum):
    """
    Closed set of accepted log levels.

    Matching is exact and case-sensitive: "ERROR" or "warning" are rejected,
    never coerced.
    """

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


# =============================================================================
# Tenancy — Applications, Tokens, Templates
# =============================================================================


class Application(Base):
    """A tenant: owns tokens, templates, and (by app_id) log records."""

    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    tokens: Mapped[list["AppToken"]] = relationship(
        "AppToken",
        back_populates="application",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    templates: Mapped[list["MessageTemplate"]] = relationship(
        "MessageTemplate",
        back_populates="application",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, name='{self.name}')>"


class AppToken(Base):
    """
    A bearer token bound to exactly one application.

    Revocation flips is_active; the row is kept so the key prefix stays
    identifiable in logs.
    """

    __tablename__ = "app_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    application_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # First 8 chars of the raw token for identification in logs
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False)

    # SHA-256 hash of the full token — never store plaintext
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    application: Mapped["Application"] = relationship(
        "Application", back_populates="tokens",
    )

    def __repr__(self) -> str:
        return (
            f"<AppToken(id={self.id}, app={self.application_id}, "
            f"prefix='{self.key_prefix}', active={self.is_active})>"
        )


class MessageTemplate(Base):
    """Named message pattern with {placeholder} markers, per application."""

    __tablename__ = "message_templates"
    __table_args__ = (
        UniqueConstraint("application_id", "name", name="uq_message_template_app_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    pattern: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    application: Mapped["Application"] = relationship(
        "Application", back_populates="templates",
    )


# =============================================================================
# Log Records
# =============================================================================


class LogEntry(Base):
    """
    One persisted log submission. Immutable after insert.

    `body` holds the compressed JSON body (see services/codec.py);
    `body_codec` names the format so older rows stay readable if the codec
    ever changes.
    """

    __tablename__ = "log_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    app_id: Mapped[str] = mapped_column(String(36), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    level: Mapped[LogLevel] = mapped_column(
        Enum(LogLevel, name="log_level", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    body: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    body_codec: Mapped[str] = mapped_column(String(20), nullable=False)
    body_size: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Index fields ---
    category: Mapped[str] = mapped_column(String(200), nullable=False, default="general")
    trace_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    span_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    template_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    template_params: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    tags: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    # Server ingest time, used by retention
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<LogEntry(id={self.id}, app={self.app_id}, "
            f"level={self.level}, category='{self.category}')>"
        )


# =============================================================================
# Database Indexes
# =============================================================================
#
# Every query is scoped by app_id and ordered newest-first, so each
# composite index leads with app_id and ends with timestamp.
# The GIN index serves `tags @> '{"k": "v"}'` containment filters.
# =============================================================================

log_app_timestamp_idx = Index(
    "idx_log_app_timestamp",
    LogEntry.app_id,
    LogEntry.timestamp.desc(),
    LogEntry.id.desc(),
)

log_app_level_idx = Index(
    "idx_log_app_level_timestamp",
    LogEntry.app_id,
    LogEntry.level,
    LogEntry.timestamp.desc(),
)

log_app_category_idx = Index(
    "idx_log_app_category_timestamp",
    LogEntry.app_id,
    LogEntry.category,
    LogEntry.timestamp.desc(),
)

log_app_trace_idx = Index(
    "idx_log_app_trace",
    LogEntry.app_id,
    LogEntry.trace_id,
)

log_tags_gin_idx = Index(
    "idx_log_tags_gin",
    LogEntry.tags,
    postgresql_using="gin",
)

log_created_at_idx = Index(
    "idx_log_created_at",
    LogEntry.created_at,
)
