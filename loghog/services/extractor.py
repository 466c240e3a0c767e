# =============================================================================
# Field Extractor — Index Fields from Top Level or Body
# =============================================================================
#
# Resolves the five index fields of a validated submission:
#
#   category, trace_id, span_id, template, tags
#
# PRECEDENCE (per field):
#   1. value sent at the top level of the payload
#   2. same-named key inside `body`
#   3. absent — except category, which defaults to "general"
#
# Values read from `body` go through the same Pydantic TypeAdapters as the
# top-level fields (validator.parse_*), so a malformed embedded field
# (e.g. body.tags = ["a"]) fails explicitly with a WrongTypeError naming
# "body.tags" instead of being skipped.
#
# Pure function: no I/O, no mutation of the payload.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field

from loghog.services.validator import (
    TemplateRef,
    ValidatedPayload,
    parse_optional_str,
    parse_tags,
    parse_template,
)

DEFAULT_CATEGORY = "general"


@dataclass(frozen=True)
class IndexFields:
    category: str = DEFAULT_CATEGORY
    trace_id: str | None = None
    span_id: str | None = None
    template: TemplateRef | None = None
    tags: dict[str, str] = field(default_factory=dict)


def extract(payload: ValidatedPayload) -> IndexFields:
    """Resolve index fields, top-level values taking precedence over body."""
    body = payload.body

    category = payload.category
    if category is None:
        category = parse_optional_str(body.get("category"), "body.category")

    trace_id = payload.trace_id
    if trace_id is None:
        trace_id = parse_optional_str(body.get("trace_id"), "body.trace_id")

    span_id = payload.span_id
    if span_id is None:
        span_id = parse_optional_str(body.get("span_id"), "body.span_id")

    template = payload.template
    if template is None:
        template = parse_template(body.get("template"), "body.template")

    tags = payload.tags
    if tags is None:
        tags = parse_tags(body.get("tags"), "body.tags")

    return IndexFields(
        category=category if category is not None else DEFAULT_CATEGORY,
        trace_id=trace_id,
        span_id=span_id,
        template=template,
        tags=tags or {},
    )
