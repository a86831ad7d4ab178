"""Tests for storage coercion and read-path decoding."""

from __future__ import annotations

from datetime import date, datetime, time

from mdb_engine.types import from_storage, parse_field_type, to_storage
from mdb_engine.types.emoji import EMOJI_GLYPHS, resolve_emoji


class TestToStorage:
    def test_array_serialized_compactly(self) -> None:
        assert to_storage([1, "a"], parse_field_type("array")) == '[1,"a"]'

    def test_json_keeps_unicode(self) -> None:
        assert to_storage({"k": "é"}, parse_field_type("json")) == '{"k":"é"}'

    def test_temporal_strings_become_python_values(self) -> None:
        assert to_storage("2024-05-01", parse_field_type("date")) == date(2024, 5, 1)
        assert to_storage("12:30:00", parse_field_type("time")) == time(12, 30)
        assert to_storage("2024-05-01 12:30:00", parse_field_type("datetime")) == datetime(2024, 5, 1, 12, 30)
        assert to_storage("2024-05-01T12:30:00", parse_field_type("datetime")) == datetime(2024, 5, 1, 12, 30)

    def test_float_from_int(self) -> None:
        value = to_storage(3, parse_field_type("float"))
        assert value == 3.0
        assert isinstance(value, float)

    def test_none_passes_through(self) -> None:
        assert to_storage(None, parse_field_type("json")) is None


class TestFromStorage:
    def test_array_and_json(self) -> None:
        assert from_storage('[1,"a"]', parse_field_type("array")) == [1, "a"]
        assert from_storage('{"k":1}', parse_field_type("json")) == {"k": 1}

    def test_emoji_resolves_to_glyph(self) -> None:
        assert from_storage(":smile:", parse_field_type("emoji")) == EMOJI_GLYPHS["smile"]

    def test_unknown_emoji_left_as_is(self) -> None:
        assert from_storage(":nope:", parse_field_type("emoji")) == ":nope:"

    def test_temporal_values_as_strings(self) -> None:
        assert from_storage(date(2024, 5, 1), parse_field_type("date")) == "2024-05-01"
        assert from_storage(time(7, 5, 3), parse_field_type("time")) == "07:05:03"
        assert from_storage(datetime(2024, 5, 1, 7, 5, 3), parse_field_type("datetime")) == "2024-05-01 07:05:03"

    def test_boolean_from_integer(self) -> None:
        assert from_storage(1, parse_field_type("boolean")) is True


class TestEmojiTable:
    def test_resolve(self) -> None:
        assert resolve_emoji(":fire:") == EMOJI_GLYPHS["fire"]
        assert resolve_emoji("fire") is None
        assert resolve_emoji(":unknown:") is None
