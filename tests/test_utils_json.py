"""Tests for JSON column parsing utilities."""

from canopy.utils.json import parse_json_field, parse_json_list


class TestParseJsonField:
    """parse_json_field: strict dict parser for model_metadata."""

    def test_from_json_string(self):
        assert parse_json_field('{"key": "value"}') == {"key": "value"}

    def test_from_dict(self):
        assert parse_json_field({"key": "value"}) == {"key": "value"}

    def test_none_returns_none(self):
        assert parse_json_field(None) is None

    def test_empty_dict_returns_none(self):
        assert parse_json_field({}) is None
        assert parse_json_field("{}") is None

    def test_invalid_json_returns_none(self):
        assert parse_json_field("not json") is None

    def test_json_list_returns_none(self):
        """Lists are not dicts; parse_json_field only returns dicts."""
        assert parse_json_field("[1, 2, 3]") is None


class TestParseJsonList:
    """parse_json_list: citations and references columns."""

    def test_from_json_string(self):
        assert parse_json_list('[{"text": "a"}]') == [{"text": "a"}]

    def test_list_passthrough(self):
        lst = [1, 2]
        assert parse_json_list(lst) is lst

    def test_none_and_empty(self):
        assert parse_json_list(None) == []
        assert parse_json_list("") == []

    def test_invalid_json(self):
        assert parse_json_list("[oops") == []

    def test_dict_json_returns_empty(self):
        assert parse_json_list('{"a": 1}') == []
