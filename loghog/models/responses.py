# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data leaving the API. Compressed bodies, token hashes and other
# storage details never appear here.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class ErrorBody(BaseModel):
    error_class: str = Field(alias="class")
    code: str
    detail: str
    field: str | None = None


class ErrorResponse(BaseModel):
    """Envelope for every LogHogError response."""

    error: ErrorBody


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class IngestResponse(BaseModel):
    """Response for POST /logs."""

    id: str = Field(description="Identifier of the stored log record")
    status: str = "accepted"
    message: str = "Log entry stored."


class BatchItemResponse(BaseModel):
    index: int = Field(description="Position of the entry in the submitted array")
    status: str = Field(description="'accepted' or 'rejected'")
    id: str | None = None
    error: dict[str, Any] | None = None


class BatchIngestResponse(BaseModel):
    """Response for POST /logs/batch — per-entry outcome."""

    accepted: int
    rejected: int
    results: list[BatchItemResponse]


# ---------------------------------------------------------------------------
# Query / Retrieval
# ---------------------------------------------------------------------------


class TemplateRefResponse(BaseModel):
    name: str
    params: dict[str, Any] = Field(default_factory=dict)


class LogSummaryResponse(BaseModel):
    id: str
    timestamp: datetime
    level: str
    message: str
    category: str
    trace_id: str | None = None
    span_id: str | None = None
    template: str | None = Field(default=None, description="Template name, if any")
    tags: dict[str, str] = Field(default_factory=dict)


class LogListResponse(BaseModel):
    """Response for GET /logs."""

    items: list[LogSummaryResponse]
    next_cursor: str | None = Field(
        default=None,
        description="Pass back as ?cursor= with the same filters for the next page.",
    )


class LogRecordResponse(BaseModel):
    """Response for GET /logs/{record_id} — the full record."""

    id: str
    app_id: str
    timestamp: datetime
    level: str
    message: str
    body: dict[str, Any]
    category: str
    trace_id: str | None = None
    span_id: str | None = None
    template: TemplateRefResponse | None = None
    rendered_message: str | None = Field(
        default=None,
        description="Template pattern filled with params, when the template is registered.",
    )
    tags: dict[str, str] = Field(default_factory=dict)
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class ApplicationResponse(BaseModel):
    id: str
    name: str
    created_at: datetime


class TokenCreatedResponse(BaseModel):
    """Returned once at token creation. raw_token is never shown again."""

    id: str
    application_id: str
    name: str
    key_prefix: str
    raw_token: str = Field(description="Full token. Store it securely — it is not retrievable.")
    created_at: datetime


class TemplateResponse(BaseModel):
    application_id: str
    name: str
    pattern: str
    placeholders: list[str]
