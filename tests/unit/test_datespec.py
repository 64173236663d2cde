"""
Unit tests for the date/time pattern compiler (meteo_csv_ingest.datespec).

Tests token ordering, the rejection rules and sscanf-like scanning.
"""

from __future__ import annotations

import pytest

from meteo_csv_ingest.datespec import (
    DEFAULT_DATETIME_SPEC,
    DateField,
    FieldToken,
    LiteralToken,
    TimezoneToken,
    compile_format,
    scan,
)
from meteo_csv_ingest.exceptions import ConfigurationError, InvalidFormatSpec

Y, M, D, H, MI, S = (
    DateField.YEAR, DateField.MONTH, DateField.DAY,
    DateField.HOUR, DateField.MINUTE, DateField.SECOND,
)


class TestCompileFormat:
    """Tests for compile_format()."""

    def test_iso_pattern_field_order(self):
        compiled = compile_format(DEFAULT_DATETIME_SPEC)
        assert compiled.fields == (Y, M, D, H, MI, S)
        assert compiled.has_tz is False

    def test_field_order_follows_pattern(self):
        compiled = compile_format("DD.MM.YYYY HH24:MI")
        assert compiled.fields == (D, M, Y, H, MI)

    def test_tokens_are_tagged(self):
        compiled = compile_format("YYYY-MM-DD")
        assert compiled.tokens == (
            FieldToken(Y, 4), LiteralToken("-"), FieldToken(M, 2), LiteralToken("-"), FieldToken(D, 2),
        )

    def test_seconds_are_unbounded(self):
        compiled = compile_format("HH24:MI:SS", time_only=True)
        assert compiled.tokens[-1] == FieldToken(S, None)

    def test_trailing_timezone(self):
        compiled = compile_format("YYYY-MM-DD HH24:MI:SS TZ")
        assert compiled.has_tz is True
        assert isinstance(compiled.tokens[-1], TimezoneToken)

    def test_timezone_not_at_end_rejected(self):
        with pytest.raises(InvalidFormatSpec, match="very end"):
            compile_format("YYYY-MM-DD TZ HH24:MI")

    def test_duplicate_token_rejected(self):
        with pytest.raises(InvalidFormatSpec, match="twice"):
            compile_format("YYYY-MM-DD YYYY")

    def test_percent_rejected(self):
        with pytest.raises(InvalidFormatSpec, match="%"):
            compile_format("%Y-MM-DD")

    def test_empty_rejected(self):
        with pytest.raises(InvalidFormatSpec):
            compile_format("")

    def test_no_token_rejected(self):
        with pytest.raises(InvalidFormatSpec, match="No date/time field"):
            compile_format("hello")

    def test_date_spec_needs_three_fields(self):
        with pytest.raises(InvalidFormatSpec, match="three"):
            compile_format("MM-DD")

    def test_time_spec_rejects_date_tokens(self):
        with pytest.raises(InvalidFormatSpec, match="not allowed"):
            compile_format("YYYY HH24:MI", time_only=True)

    def test_time_spec_with_two_fields(self):
        compiled = compile_format("HH24:MI", time_only=True)
        assert compiled.fields == (H, MI)

    def test_is_a_configuration_error(self):
        """Invalid patterns are configuration errors for the caller."""
        with pytest.raises(ConfigurationError):
            compile_format("YYYY-YYYY")


class TestScan:
    """Tests for scan()."""

    def test_iso_timestamp(self):
        result = scan(compile_format(DEFAULT_DATETIME_SPEC), "2020-01-05T08:30:00")
        assert result is not None
        assert result.values == {Y: 2020, M: 1, D: 5, H: 8, MI: 30, S: 0}
        assert result.tz_offset is None

    def test_fractional_seconds(self):
        result = scan(compile_format(DEFAULT_DATETIME_SPEC), "2020-01-05T08:30:12.25")
        assert result.values[S] == pytest.approx(12.25)

    def test_single_digit_fields_before_dot_separator(self):
        result = scan(compile_format("DD.MM.YYYY HH24:MI"), "5.1.2020 8:30")
        assert result.values == {D: 5, M: 1, Y: 2020, H: 8, MI: 30}

    def test_bounded_fields_are_integers(self):
        assert scan(compile_format("HH24:MI", time_only=True), "8.5:30") is None

    def test_whitespace_matches_any_run(self):
        result = scan(compile_format("DD.MM.YYYY HH24:MI"), "05.01.2020    08:30")
        assert result.values == {D: 5, M: 1, Y: 2020, H: 8, MI: 30}

    def test_literal_mismatch(self):
        assert scan(compile_format(DEFAULT_DATETIME_SPEC), "2020/01/05T08:30:00") is None

    def test_non_numeric_field(self):
        assert scan(compile_format("YYYY-MM-DD"), "2020-xx-05") is None

    def test_trailing_text_ignored(self):
        result = scan(compile_format(DEFAULT_DATETIME_SPEC), "2020-01-05T08:30:00Z")
        assert result.values[H] == 8

    def test_bounded_widths_without_separators(self):
        result = scan(compile_format("YYYYMMDDHH24MI"), "202001050830")
        assert result.values == {Y: 2020, M: 1, D: 5, H: 8, MI: 30}

    def test_iso_timezone_offset(self):
        result = scan(compile_format("YYYY-MM-DD HH24:MI:SS TZ"), "2020-01-05 08:30:00 +01:00")
        assert result.tz_offset == pytest.approx(1.0)

    def test_timezone_abbreviation(self):
        result = scan(compile_format("YYYY-MM-DD HH24:MI TZ"), "2020-01-05 08:30 CET")
        assert result.tz_offset == pytest.approx(1.0)

    def test_unknown_timezone(self):
        assert scan(compile_format("YYYY-MM-DD HH24:MI TZ"), "2020-01-05 08:30 XYZ") is None

    def test_missing_timezone(self):
        assert scan(compile_format("YYYY-MM-DD HH24:MI TZ"), "2020-01-05 08:30") is None

    def test_date_and_time_share_result(self):
        result = scan(compile_format("YYYY-MM-DD"), "2020-01-05")
        scan(compile_format("HH24:MI", time_only=True), "08:30", result)
        assert result.values == {Y: 2020, M: 1, D: 5, H: 8, MI: 30}
