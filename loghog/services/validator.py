# =============================================================================
# Payload Validator — Shape & Type Checks for Log Submissions
# =============================================================================
#
# Turns an untrusted, already-JSON-decoded payload into a ValidatedPayload,
# or raises a PayloadValidationError subclass naming the offending field.
#
# The shape lives in Pydantic (models/requests.py: LogSubmission). This
# module runs it and folds the first ValidationError entry into the error
# contract by its `type`:
#
#   missing          → MissingFieldError     (null counts as missing)
#   unknown_level    → UnknownLevelError
#   anything else    → WrongTypeError
#
# with the field path taken from the error `loc` ("tags.retry",
# "template.name"). The same TypeAdapters back the parse_* helpers the
# extractor uses for index fields embedded in `body`.
#
# Pydantic stops at `dict[str, Any]` for body and template params, so
# check_json_tree walks those for values JSON cannot carry losslessly
# (non-finite floats, non-string keys, unpaired surrogates).
# =============================================================================

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from loghog.db.models import LogLevel
from loghog.errors import (
    MissingFieldError,
    PayloadValidationError,
    UnknownLevelError,
    WrongTypeError,
)
from loghog.models.requests import (
    ALLOWED_LEVELS,
    LogSubmission,
    TemplateRefIn,
    Text,
    Timestamp,
)

UNENCODABLE = "valid Unicode text (no unpaired surrogates)"

_EXPECTED = {
    "string_type": "a string",
    "dict_type": "a JSON object",
    "model_type": "a JSON object",
    "model_attributes_type": "a JSON object",
    "blank_string": "a non-empty string",
    "timestamp_format": "an ISO-8601 string",
    "unencodable_string": UNENCODABLE,
}

_TEXT = TypeAdapter(Text)
_TAGS = TypeAdapter(dict[Text, Text])
_TEMPLATE = TypeAdapter(TemplateRefIn)
_TIMESTAMP = TypeAdapter(Timestamp)


@dataclass(frozen=True)
class TemplateRef:
    """Reference to a predefined message template plus its fill-in values."""

    name: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "params": self.params}


@dataclass
class ValidatedPayload:
    """
    A submission that passed validation.

    The optional index fields hold only what the caller sent at the top
    level; values embedded in `body` are resolved later by the extractor.
    """

    level: LogLevel
    message: str
    body: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime | None = None
    category: str | None = None
    trace_id: str | None = None
    span_id: str | None = None
    template: TemplateRef | None = None
    tags: dict[str, str] | None = None


def validate(raw_payload: Any) -> ValidatedPayload:
    """Validate a decoded JSON submission."""
    if not isinstance(raw_payload, dict):
        raise WrongTypeError("payload", "a JSON object")

    present = {key: value for key, value in raw_payload.items() if value is not None}
    try:
        submission = LogSubmission.model_validate(present)
    except ValidationError as exc:
        raise to_payload_error(exc) from None

    body = submission.body or {}
    check_json_tree(body, "body")

    return ValidatedPayload(
        level=submission.level,
        message=submission.message,
        body=body,
        timestamp=submission.timestamp,
        category=submission.category,
        trace_id=submission.trace_id,
        span_id=submission.span_id,
        template=_template_ref(submission.template, "template"),
        tags=submission.tags,
    )


def to_payload_error(exc: ValidationError, prefix: str | None = None) -> PayloadValidationError:
    """Map the first Pydantic error onto MissingField/UnknownLevel/WrongType."""
    error = exc.errors()[0]
    parts = [str(part) for part in error["loc"]]
    if prefix:
        parts.insert(0, prefix)
    field_name = _printable(".".join(parts)) or "payload"

    if error["type"] == "missing":
        return MissingFieldError(field_name)
    if error["type"] == "unknown_level":
        return UnknownLevelError(_printable(str(error["input"])), ALLOWED_LEVELS)
    return WrongTypeError(field_name, _EXPECTED.get(error["type"], "a valid value"))


# ---------------------------------------------------------------------------
# Field Parsers — shared with the extractor
# ---------------------------------------------------------------------------


def _adapt(adapter: TypeAdapter, value: Any, field_name: str) -> Any:
    if value is None:
        return None
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        raise to_payload_error(exc, field_name) from None


def parse_optional_str(value: Any, field_name: str) -> str | None:
    return _adapt(_TEXT, value, field_name)


def parse_tags(value: Any, field_name: str) -> dict[str, str] | None:
    return _adapt(_TAGS, value, field_name)


def parse_template(value: Any, field_name: str) -> TemplateRef | None:
    return _template_ref(_adapt(_TEMPLATE, value, field_name), field_name)


def parse_timestamp(value: Any, field_name: str) -> datetime | None:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    return _adapt(_TIMESTAMP, value, field_name)


def _template_ref(model: TemplateRefIn | None, field_name: str) -> TemplateRef | None:
    if model is None:
        return None
    params = model.params or {}
    check_json_tree(params, f"{field_name}.params")
    return TemplateRef(name=model.name, params=params)


def _printable(text: str) -> str:
    # Error fields and details are echoed back in a UTF-8 response body
    return text.encode("utf-8", "backslashreplace").decode("utf-8")


def _encodable(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def check_json_tree(root: dict[str, Any], field_name: str) -> None:
    """
    Walk a nested structure and reject anything JSON cannot carry losslessly.

    Iterative, so deeply nested bodies do not hit the recursion limit.
    """
    stack: list[tuple[Any, str]] = [(root, field_name)]
    while stack:
        value, path = stack.pop()
        if value is None or isinstance(value, (bool, int)):
            continue
        if isinstance(value, str):
            if not _encodable(value):
                raise WrongTypeError(path, UNENCODABLE)
            continue
        if isinstance(value, float):
            if not math.isfinite(value):
                raise WrongTypeError(path, "a finite number")
            continue
        if isinstance(value, dict):
            for key, child in value.items():
                if not isinstance(key, str):
                    raise WrongTypeError(path, "an object with string keys")
                if not _encodable(key):
                    raise WrongTypeError(path, UNENCODABLE)
                stack.append((child, f"{path}.{key}"))
            continue
        if isinstance(value, list):
            for index, child in enumerate(value):
                stack.append((child, f"{path}[{index}]"))
            continue
        raise WrongTypeError(path, "a JSON value")
