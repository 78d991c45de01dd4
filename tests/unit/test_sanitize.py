"""Tests for upstream field coercion."""
import json
from datetime import datetime

import pytest

from retailsync.core.sanitize import (
    FieldSpec,
    coerce,
    lookup,
    parse_datetime,
    raw_payload,
    sanitize,
    to_number,
)
from retailsync.exceptions import RecordValidationError


class TestParseDatetime:
    def test_seven_digit_fraction(self):
        assert parse_datetime("2025-03-01T10:22:33.1234567") == datetime(2025, 3, 1, 10, 22, 33, 123456)

    def test_zulu_suffix_becomes_naive_utc(self):
        assert parse_datetime("2025-03-01T10:00:00Z") == datetime(2025, 3, 1, 10, 0, 0)

    def test_offset_converted_to_utc(self):
        assert parse_datetime("2025-03-01T17:00:00+07:00") == datetime(2025, 3, 1, 10, 0, 0)

    @pytest.mark.parametrize("value", [None, "", "not a date", 12345, {}])
    def test_garbage_is_none(self, value):
        assert parse_datetime(value) is None


class TestToNumber:
    @pytest.mark.parametrize("value,expected", [
        ("12.5", 12.5),
        (7, 7.0),
        (None, 0),
        ("abc", 0),
        (float("nan"), 0),
        (float("inf"), 0),
    ])
    def test_float_coercion(self, value, expected):
        assert to_number(value) == expected

    def test_int_cast(self):
        assert to_number("42", None, cast=int) == 42

    def test_int_outside_64_bit_range_uses_default(self):
        assert to_number("99999999999999999999", None, cast=int) is None
        assert to_number(-1e20, 0, cast=int) == 0
        assert to_number("1000000000000", None, cast=int) == 1000000000000


class TestSanitize:
    FIELDS = (
        FieldSpec("kiot_id", "id", "int", required=True),
        FieldSpec("name", "name", max_length=5, default=""),
        FieldSpec("debt", "debt", "float", default=0),
        FieldSpec("active", "isActive", "bool", default=True),
        FieldSpec("partner_code", "partner.code", max_length=10),
        FieldSpec("extra", "Extra", "json"),
    )

    def test_maps_and_coerces(self):
        row = sanitize(
            {"id": "17", "name": "Long name here", "debt": "x", "isActive": "false",
             "partner": {"code": "GHN"}, "Extra": {"a": 1}},
            self.FIELDS,
        )
        assert row == {
            "kiot_id": 17,
            "name": "Long ",
            "debt": 0,
            "active": False,
            "partner_code": "GHN",
            "extra": '{"a": 1}',
        }

    def test_missing_optional_fields_use_defaults(self):
        row = sanitize({"id": 1}, self.FIELDS)
        assert row["name"] == ""
        assert row["active"] is True
        assert row["partner_code"] is None
        assert row["extra"] is None

    def test_missing_required_field_raises(self):
        with pytest.raises(RecordValidationError):
            sanitize({"name": "no id"}, self.FIELDS)

    def test_non_mapping_raises(self):
        with pytest.raises(RecordValidationError):
            sanitize(["not", "a", "dict"], self.FIELDS)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            FieldSpec("x", kind="decimal")


def test_lookup_dotted_path():
    assert lookup({"a": {"b": {"c": 3}}}, "a.b.c") == 3
    assert lookup({"a": None}, "a.b") is None


def test_coerce_numbers_to_strings():
    assert coerce(FieldSpec("code", max_length=3), 12345) == "123"


def test_raw_payload_keeps_unicode():
    payload = raw_payload({"name": "Áo thun"})
    assert "Áo thun" in payload
    assert json.loads(payload) == {"name": "Áo thun"}
