"""Display-time rendering of message templates.

A template pattern contains ``{name}`` placeholders filled from a record's
template params. Params are never checked against the pattern at ingestion;
a placeholder with no matching param is left verbatim so mismatches stay
visible. ``{{`` and ``}}`` produce literal braces. String params are
inserted as-is; any other value is written as the JSON the client sent
(``true``, ``null``, ``{"a": 1}``).
"""

from __future__ import annotations

import json
import re
from typing import Any

_PLACEHOLDER = re.compile(r"\{\{|\}\}|\{([A-Za-z_][A-Za-z0-9_.\-]*)\}")


def render_template(pattern: str, params: dict[str, Any] | None) -> str:
    params = params or {}

    def _substitute(match: re.Match[str]) -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        name = match.group(1)
        if name not in params:
            return token
        value = params[name]
        if isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False)

    return _PLACEHOLDER.sub(_substitute, pattern)


def placeholders(pattern: str) -> list[str]:
    """Names referenced by a pattern, in order of first appearance."""
    seen: list[str] = []
    for match in _PLACEHOLDER.finditer(pattern):
        name = match.group(1)
        if name and name not in seen:
            seen.append(name)
    return seen
