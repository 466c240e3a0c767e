# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# LogSubmission is the shape of a POST /logs body. Routes do not bind it as
# a FastAPI body parameter: services/validator.py runs it and maps each
# ValidationError onto the error contract (missing_field / wrong_type /
# unknown_level) with the offending field path.
#
# Every text field is checked for lone UTF-16 surrogates ("\ud800"). JSON
# escapes allow them, but they cannot be encoded as UTF-8 and PostgreSQL
# refuses them, so they are rejected up front as wrong_type.
# =============================================================================

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictStr
from pydantic_core import PydanticCustomError

from loghog.db.models import LogLevel

ALLOWED_LEVELS = [level.value for level in LogLevel]


def _encodable(value: str) -> str:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise PydanticCustomError(
            "unencodable_string", "Text contains an unpaired surrogate",
        ) from None
    return value


def _not_blank(value: str) -> str:
    if not value.strip():
        raise PydanticCustomError("blank_string", "Text must not be blank")
    return value


def _known_level(value: str) -> LogLevel:
    if value not in ALLOWED_LEVELS:
        raise PydanticCustomError(
            "unknown_level",
            "Level must be one of {allowed}",
            {"allowed": ALLOWED_LEVELS},
        )
    return LogLevel(value)


def _iso_datetime(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise PydanticCustomError(
            "timestamp_format", "Expected an ISO-8601 timestamp",
        ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


Text = Annotated[StrictStr, AfterValidator(_encodable)]
NonBlankText = Annotated[Text, AfterValidator(_not_blank)]
Level = Annotated[StrictStr, AfterValidator(_known_level)]
Timestamp = Annotated[Text, AfterValidator(_iso_datetime)]


class TemplateRefIn(BaseModel):
    """A {"name", "params"} reference to a predefined message template."""

    model_config = ConfigDict(extra="ignore")

    name: NonBlankText
    params: dict[str, Any] | None = None


class LogSubmission(BaseModel):
    """
    Shape of a POST /logs body.

    Example:
        {
            "level": "error",
            "message": "Payment processing failed.",
            "body": {"userId": "user-123", "orderId": "order-abc"},
            "tags": {"service": "payments-api"}
        }

    Unknown keys (including a client-sent "app_id") are ignored.
    """

    level: Level = Field(..., description="debug|info|warn|error|fatal (case-sensitive)")
    message: NonBlankText
    body: dict[str, Any] | None = Field(
        default=None,
        description="Arbitrary JSON object, stored compressed and returned verbatim.",
    )
    timestamp: Timestamp | None = Field(
        default=None,
        description="ISO-8601. Server time is used when omitted.",
    )
    category: Text | None = Field(
        default=None,
        description="Overrides body.category. Defaults to 'general'.",
    )
    trace_id: Text | None = None
    span_id: Text | None = None
    template: TemplateRefIn | None = None
    tags: dict[Text, Text] | None = None

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "level": "error",
                    "message": "Payment processing failed.",
                    "body": {"userId": "user-123", "orderId": "order-abc"},
                    "tags": {"service": "payments-api"},
                },
            ]
        },
    )


class CreateApplicationRequest(BaseModel):
    """Request body for POST /admin/applications."""

    name: Annotated[str, Field(min_length=1, max_length=200), AfterValidator(_encodable)]


class CreateTokenRequest(BaseModel):
    """Request body for POST /admin/applications/{app_id}/tokens."""

    name: Annotated[
        str,
        Field(
            min_length=1,
            max_length=200,
            description="Human-readable label (e.g., 'production', 'ci').",
        ),
        AfterValidator(_encodable),
    ] = "default"


class PutTemplateRequest(BaseModel):
    """Request body for PUT /admin/applications/{app_id}/templates/{name}."""

    pattern: Annotated[
        str,
        Field(
            min_length=1,
            max_length=4000,
            description="Message pattern with {placeholder} markers.",
            examples=["Order {orderId} failed for {userId}"],
        ),
        AfterValidator(_encodable),
    ]
