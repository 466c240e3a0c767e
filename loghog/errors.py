# =============================================================================
# Error Taxonomy
# =============================================================================
#
# Every failure the ingestion core can report is a LogHogError subclass.
# Each class carries its HTTP status and a machine-readable code so that a
# single exception handler (see main.py) can render the response envelope:
#
#   {"error": {"class": "validation", "code": "missing_field",
#              "field": "message", "detail": "..."}}
#
# LogHogError
# ├── AuthError                 (401)  → InvalidTokenError
# ├── PayloadValidationError    (422)  → MissingFieldError, WrongTypeError,
# │                                      UnknownLevelError
# ├── StorageError                     → CorruptBodyError (500),
# │                                      StorageUnavailableError (503)
# └── NotFoundError             (404)
#
# Only StorageUnavailableError is transient; clients may retry it with
# backoff. Everything else is final for the submitted payload.
# =============================================================================

from __future__ import annotations

from typing import Any


class LogHogError(Exception):
    """Root of the error hierarchy."""

    error_class: str = "internal"
    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, detail: str, *, field: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        """Serialise for HTTP responses and per-entry batch results."""
        payload: dict[str, Any] = {
            "class": self.error_class,
            "code": self.code,
            "detail": self.detail,
        }
        if self.field is not None:
            payload["field"] = self.field
        return payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, detail={self.detail!r})"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthError(LogHogError):
    error_class = "auth"
    code = "auth_error"
    status_code = 401


class InvalidTokenError(AuthError):
    """Token is unknown or revoked. The two cases are indistinguishable."""

    code = "invalid_token"

    def __init__(self, detail: str = "Invalid or revoked application token.") -> None:
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class PayloadValidationError(LogHogError):
    error_class = "validation"
    code = "invalid_payload"
    status_code = 422


class MissingFieldError(PayloadValidationError):
    code = "missing_field"

    def __init__(self, field: str) -> None:
        super().__init__(f"Required field '{field}' is missing.", field=field)


class WrongTypeError(PayloadValidationError):
    code = "wrong_type"

    def __init__(self, field: str, expected: str) -> None:
        super().__init__(f"Field '{field}' must be {expected}.", field=field)


class UnknownLevelError(PayloadValidationError):
    code = "unknown_level"

    def __init__(self, level: str, allowed: list[str]) -> None:
        super().__init__(
            f"Unknown level '{level}'. Expected one of: {', '.join(allowed)}.",
            field="level",
        )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(LogHogError):
    error_class = "storage"
    code = "storage_error"
    status_code = 500


class CorruptBodyError(StorageError):
    """A stored body could not be restored to a valid mapping."""

    code = "corrupt_body"


class StorageUnavailableError(StorageError):
    """The backing store could not be reached, or the call timed out."""

    code = "storage_unavailable"
    status_code = 503
    retry_after_seconds = 5


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class NotFoundError(LogHogError):
    error_class = "not_found"
    code = "not_found"
    status_code = 404
