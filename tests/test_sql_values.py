"""
Tests for typed column values and their SQL literals.
"""

from datetime import datetime, date, timedelta
from decimal import Decimal

import pytest

from dbbackup.utils.sql_values import (
    SqlValue, ValueKind, format_time_value, quote_identifier, to_sql_literal
)


class TestTagging:

    @pytest.mark.parametrize("value, kind", [
        (None, ValueKind.NULL),
        ("text", ValueKind.TEXT),
        (42, ValueKind.INTEGER),
        (True, ValueKind.INTEGER),
        (1.5, ValueKind.FLOAT),
        (Decimal("10.25"), ValueKind.FLOAT),
        (datetime(2024, 1, 2, 3, 4, 5), ValueKind.TIMESTAMP),
        (date(2024, 1, 2), ValueKind.TIMESTAMP),
        (b"\x00\x01", ValueKind.BYTES),
        (timedelta(hours=1), ValueKind.TEXT),
    ])
    def test_kind_for_driver_values(self, value, kind):
        assert SqlValue.from_python(value).kind is kind

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            SqlValue.from_python(object())


class TestLiterals:

    def test_null(self):
        assert to_sql_literal(None) == "NULL"

    def test_plain_string_is_single_quoted(self):
        assert to_sql_literal("alice") == "'alice'"

    def test_quote_and_backslash_are_escaped(self):
        assert to_sql_literal("o'brien") == "'o\\'brien'"
        assert to_sql_literal("C:\\temp") == "'C:\\\\temp'"

    def test_newline_is_escaped(self):
        assert to_sql_literal("a\nb") == "'a\\nb'"

    def test_integers_and_bools(self):
        assert to_sql_literal(7) == "7"
        assert to_sql_literal(-3) == "-3"
        assert to_sql_literal(False) == "0"

    def test_decimal_keeps_exact_text(self):
        assert to_sql_literal(Decimal("0.10")) == "0.10"

    def test_small_decimal_stays_fixed_point(self):
        literal = to_sql_literal(Decimal("0.000000123456789012345678901234"))
        assert literal == "0.000000123456789012345678901234"
        assert 'E' not in literal

    def test_decimal_with_positive_exponent_is_expanded(self):
        assert to_sql_literal(Decimal("1.5E+3")) == "1500"

    def test_float_is_raw(self):
        assert to_sql_literal(2.5) == "2.5"

    def test_datetime_format(self):
        assert to_sql_literal(datetime(2024, 1, 2, 3, 4, 5, 999)) == "'2024-01-02 03:04:05'"

    def test_date_format(self):
        assert to_sql_literal(date(2024, 1, 2)) == "'2024-01-02'"

    def test_bytes_become_hex_literal(self):
        assert to_sql_literal(b"\xde\xad") == "X'dead'"
        assert to_sql_literal(b"") == "X''"

    def test_time_column(self):
        assert to_sql_literal(timedelta(hours=26, minutes=3, seconds=4)) == "'26:03:04'"


def test_negative_time_value():
    assert format_time_value(-timedelta(minutes=90)) == "-01:30:00"


def test_quote_identifier_doubles_backticks():
    assert quote_identifier("users") == "`users`"
    assert quote_identifier("we`ird") == "`we``ird`"
