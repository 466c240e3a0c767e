# =============================================================================
# Unit Tests — Index Field Extraction
# =============================================================================

import pytest

from loghog.errors import WrongTypeError
from loghog.services.extractor import DEFAULT_CATEGORY, extract
from loghog.services.validator import validate


def _extract(**payload):
    payload.setdefault("level", "info")
    payload.setdefault("message", "m")
    return extract(validate(payload))


class TestPrecedence:
    def test_top_level_tags_win_over_body(self):
        fields = _extract(
            tags={"service": "top"},
            body={"tags": {"service": "body", "region": "eu"}},
        )
        # Whole value replaced, not merged
        assert fields.tags == {"service": "top"}

    def test_body_tags_used_when_no_top_level(self):
        fields = _extract(body={"tags": {"service": "payments-api"}})
        assert fields.tags == {"service": "payments-api"}

    def test_top_level_category_wins(self):
        fields = _extract(category="billing", body={"category": "media"})
        assert fields.category == "billing"

    def test_trace_and_span_from_body(self):
        fields = _extract(body={"trace_id": "t-1", "span_id": "s-1"})
        assert fields.trace_id == "t-1"
        assert fields.span_id == "s-1"

    def test_template_from_body(self):
        fields = _extract(body={"template": {"name": "tpl", "params": {"a": 1}}})
        assert fields.template.name == "tpl"
        assert fields.template.params == {"a": 1}


class TestDefaults:
    def test_category_defaults_to_general(self):
        assert _extract().category == DEFAULT_CATEGORY == "general"

    def test_nothing_else_is_filled(self):
        fields = _extract()
        assert fields.trace_id is None
        assert fields.span_id is None
        assert fields.template is None
        assert fields.tags == {}


class TestBodyValueErrors:
    def test_non_string_body_category(self):
        with pytest.raises(WrongTypeError) as exc_info:
            _extract(body={"category": 7})
        assert exc_info.value.field == "body.category"

    def test_non_object_body_tags(self):
        with pytest.raises(WrongTypeError) as exc_info:
            _extract(body={"tags": ["a", "b"]})
        assert exc_info.value.field == "body.tags"

    def test_bad_body_value_ignored_when_top_level_present(self):
        fields = _extract(category="ok", body={"category": 7})
        assert fields.category == "ok"
