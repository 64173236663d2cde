"""
Date resolver for meteo-csv-ingest.

Reconstructs one absolute timestamp from a tokenized data row. Four
structurally different representations are supported; which one is
active is decided when the layout is resolved (see ``DateColumns``):

1. **Decimal**: a single numeric column in one of the conventions of
   ``DecimalDateType`` (spreadsheet serial day, Julian day, ...).
2. **Strings**: one combined date-time column, or a date column plus a
   time column, each scanned with a compiled pattern (``datespec``).
3. **Components**: year (or a fixed fallback year) plus either a
   julian day or month+day, plus a time of day given as a string, as a
   numeric ``HMM``/``HHMM`` value or as separate hour/minute/second columns.

Any extraction failure (pattern mismatch, non-numeric token, fractional
value where an integer is required, impossible calendar date) yields
``None``; the row pipeline decides whether that is fatal.

Fallback year auto-wrap: loggers that start mid-year and wrap into
January often have no year column. With a fixed year and auto-wrap
enabled, rows before day 273 / before October are assigned the fixed
year and earlier rows the year before. Once a row from the fixed year
has been seen, wrapping is switched off for the rest of the file, so a
``DateResolver`` must be created for every pass over a file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Sequence

from meteo_csv_ingest.datespec import CompiledFormat, DateField, ScanResult, scan
from meteo_csv_ingest.transforms.numbers import parse_float, parse_int

logger = logging.getLogger(__name__)

# julian day / month thresholds below which a fixed-year row belongs to the fixed year
WRAP_JDN_THRESHOLD = 273.0
WRAP_MONTH_THRESHOLD = 10

_SECONDS_PER_DAY = 86400.0
_UTC_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class DecimalDateType(str, Enum):
    """Numerical date representations."""

    EXCEL = "EXCEL"  # days since 1899-12-30
    JULIAN = "JULIAN"  # julian date, 2440587.5 = 1970-01-01T00:00
    MJULIAN = "MJULIAN"  # modified julian date, 0 = 1858-11-17T00:00
    MATLAB = "MATLAB"  # datenum, 719529 = 1970-01-01T00:00
    RFC868 = "RFC868"  # seconds since 1900-01-01T00:00
    UNIX = "UNIX"  # integer seconds since 1970-01-01T00:00 UTC


# (naive reference date, value at that date, unit in seconds) for the
# conventions expressed in local time
_DECIMAL_EPOCHS: dict[DecimalDateType, tuple[datetime, float, float]] = {
    DecimalDateType.EXCEL: (datetime(1899, 12, 30), 0.0, _SECONDS_PER_DAY),
    DecimalDateType.JULIAN: (datetime(1970, 1, 1), 2440587.5, _SECONDS_PER_DAY),
    DecimalDateType.MJULIAN: (datetime(1858, 11, 17), 0.0, _SECONDS_PER_DAY),
    DecimalDateType.MATLAB: (datetime(1970, 1, 1), 719529.0, _SECONDS_PER_DAY),
    DecimalDateType.RFC868: (datetime(1900, 1, 1), 0.0, 1.0),
}


@dataclass(frozen=True)
class DateColumns:
    """Column indices (0-based) of the date/time roles of a layout.

    ``None`` means the role is absent. ``date_str`` and ``time_str`` point to
    the same column when date and time are combined in one string.
    """

    decimal_date: int | None = None
    decimal_type: DecimalDateType | None = None
    date_str: int | None = None
    time_str: int | None = None
    year: int | None = None
    jdn: int | None = None
    month: int | None = None
    day: int | None = None
    ntime: int | None = None
    hours: int | None = None
    minutes: int | None = None
    seconds: int | None = None
    fixed_year: int | None = None
    auto_wrap: bool = True

    @property
    def as_decimal(self) -> bool:
        return self.decimal_date is not None

    @property
    def as_components(self) -> bool:
        return any(
            col is not None
            for col in (self.year, self.jdn, self.month, self.day, self.ntime, self.hours, self.minutes, self.seconds)
        )

    @property
    def combined(self) -> bool:
        return self.date_str is not None and self.date_str == self.time_str

    @property
    def max_column(self) -> int:
        """Highest column index used by any date/time role (-1 if none)."""
        indices = [
            col
            for col in (
                self.decimal_date, self.date_str, self.time_str, self.year, self.jdn,
                self.month, self.day, self.ntime, self.hours, self.minutes, self.seconds,
            )
            if col is not None
        ]
        return max(indices, default=-1)

    def is_set(self) -> bool:
        """Whether the date/time representation is fully determined."""
        if self.decimal_date is not None:
            return True
        if self.as_components:
            has_year = self.year is not None or self.fixed_year is not None
            has_day = self.jdn is not None or (self.month is not None and self.day is not None)
            has_time = self.ntime is not None or self.hours is not None or self.time_str is not None
            return has_year and has_day and has_time
        return self.date_str is not None and self.time_str is not None

    def describe(self) -> str:
        parts = [
            f"{name}={value}"
            for name, value in (
                ("decimal_date", self.decimal_date), ("date_str", self.date_str),
                ("time_str", self.time_str), ("year", self.year), ("fixed_year", self.fixed_year),
                ("jdn", self.jdn), ("month", self.month), ("day", self.day), ("ntime", self.ntime),
                ("hours", self.hours), ("minutes", self.minutes), ("seconds", self.seconds),
            )
            if value is not None
        ]
        return "[" + " ".join(parts) + "]"


def tz_from_hours(offset: float) -> timezone:
    """Build a fixed-offset ``tzinfo`` from decimal hours."""
    if offset == 0:
        return timezone.utc
    return timezone(timedelta(hours=offset))


def make_datetime(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: float = 0.0,
    tz_offset: float = 0.0,
) -> datetime | None:
    """Build an aware datetime, returning ``None`` for impossible values.

    ``hour`` may be 24 (end of day), which rolls over to the next day.
    """
    if not (0 <= hour <= 24 and 0 <= minute < 60 and 0.0 <= second < 60.0):
        return None
    try:
        base = datetime(year, month, day, tzinfo=tz_from_hours(tz_offset))
        return base + timedelta(hours=hour, minutes=minute, seconds=second)
    except (ValueError, OverflowError):
        return None


def from_year_and_jdn(
    year: int, jdn: float, seconds: float = 0.0, tz_offset: float = 0.0
) -> datetime | None:
    """Timestamp from a year, a day of year and seconds since midnight.

    Day 1.0 is 1 January 00:00; a fractional day is allowed.
    """
    try:
        base = datetime(year, 1, 1, tzinfo=tz_from_hours(tz_offset))
        offset = round((jdn - 1.0) * _SECONDS_PER_DAY + seconds, 3)
        return base + timedelta(seconds=offset)
    except (ValueError, OverflowError):
        return None


def from_decimal(value: float, date_type: DecimalDateType, tz_offset: float = 0.0) -> datetime | None:
    """Convert a numerical date to an aware datetime in the file timezone."""
    tz = tz_from_hours(tz_offset)
    try:
        if date_type is DecimalDateType.UNIX:
            return (_UTC_EPOCH + timedelta(seconds=value)).astimezone(tz)
        reference, reference_value, unit = _DECIMAL_EPOCHS[date_type]
        return (reference + timedelta(seconds=round((value - reference_value) * unit, 3))).replace(tzinfo=tz)
    except (ValueError, OverflowError):
        return None


def _integral(value: float) -> int | None:
    """Return *value* as an int if it has no fractional part."""
    if value != int(value):
        return None
    return int(value)


class DateResolver:
    """Turns a tokenized data row into a timestamp.

    One resolver must be used per pass over a file since the fallback-year
    auto-wrap state evolves while rows are read.

    Args:
        columns: The date/time column roles of the layout.
        datetime_format: Compiled pattern for the date (or combined
            date-time) string column, if any.
        time_format: Compiled pattern for a separate time string column.
        tz_offset: Timezone of the file, in hours, used unless a ``TZ``
            token provides one.
    """

    def __init__(
        self,
        columns: DateColumns,
        datetime_format: CompiledFormat | None = None,
        time_format: CompiledFormat | None = None,
        tz_offset: float = 0.0,
    ) -> None:
        self.columns = columns
        self.datetime_format = datetime_format
        self.time_format = time_format
        self.tz_offset = tz_offset
        self.auto_wrap = columns.fixed_year is not None and columns.auto_wrap

    # -- Public API ---------------------------------------------------------

    def resolve(self, tokens: Sequence[str]) -> datetime | None:
        """Resolve the timestamp of one row, or ``None`` if it cannot be read."""
        cols = self.columns
        if len(tokens) <= cols.max_column:
            return None
        if cols.as_components:
            return self._resolve_components(tokens)
        if cols.as_decimal:
            date_type = cols.decimal_type or DecimalDateType.EXCEL
            if date_type is DecimalDateType.UNIX:
                value = parse_int(tokens[cols.decimal_date])
            else:
                value = parse_float(tokens[cols.decimal_date])
            if value is None:
                return None
            return from_decimal(value, date_type, self.tz_offset)
        return self._resolve_strings(tokens)

    # -- Fixed year ---------------------------------------------------------

    def fixed_year_for_jdn(self, jdn: float) -> int:
        if jdn < WRAP_JDN_THRESHOLD:
            self.auto_wrap = False
        return self.columns.fixed_year - 1 if self.auto_wrap else self.columns.fixed_year

    def fixed_year_for_month(self, month: int) -> int:
        if month < WRAP_MONTH_THRESHOLD:
            self.auto_wrap = False
        return self.columns.fixed_year - 1 if self.auto_wrap else self.columns.fixed_year

    # -- Representations ----------------------------------------------------

    def _resolve_strings(self, tokens: Sequence[str]) -> datetime | None:
        cols = self.columns
        result = scan(self.datetime_format, tokens[cols.date_str])
        if result is None:
            return None
        if not cols.combined and self.time_format is not None:
            if scan(self.time_format, tokens[cols.time_str], result) is None:
                return None
        return self._from_scan(result)

    def _from_scan(self, result: ScanResult) -> datetime | None:
        values = result.values
        integers = []
        for date_field in (DateField.YEAR, DateField.MONTH, DateField.DAY, DateField.HOUR, DateField.MINUTE):
            value = _integral(values.get(date_field, 0.0))
            if value is None:
                return None
            integers.append(value)
        tz = result.tz_offset if result.tz_offset is not None else self.tz_offset
        return make_datetime(*integers, second=values.get(DateField.SECOND, 0.0), tz_offset=tz)

    def _component_int(self, tokens: Sequence[str], col: int | None) -> int | None:
        if col is None:
            return 0
        return parse_int(tokens[col])

    def _component_float(self, tokens: Sequence[str], col: int | None) -> float | None:
        if col is None:
            return 0.0
        return parse_float(tokens[col])

    def _time_of_day(self, tokens: Sequence[str]) -> tuple[float, float | None] | None:
        """Seconds since midnight and an optional timezone override."""
        cols = self.columns
        if cols.time_str is not None and self.time_format is not None:
            result = scan(self.time_format, tokens[cols.time_str])
            if result is None:
                return None
            values = result.values
            seconds = (
                values.get(DateField.HOUR, 0.0) * 3600.0
                + values.get(DateField.MINUTE, 0.0) * 60.0
                + values.get(DateField.SECOND, 0.0)
            )
            return seconds, result.tz_offset
        if cols.ntime is not None:
            ntime = parse_int(tokens[cols.ntime])
            if ntime is None or ntime < 0:
                return None
            hours, minutes = divmod(ntime, 100)
            return hours * 3600.0 + minutes * 60.0, None
        hours = self._component_int(tokens, cols.hours)
        minutes = self._component_int(tokens, cols.minutes)
        seconds = self._component_float(tokens, cols.seconds)
        if hours is None or minutes is None or seconds is None:
            return None
        return hours * 3600.0 + minutes * 60.0 + seconds, None

    def _resolve_components(self, tokens: Sequence[str]) -> datetime | None:
        cols = self.columns
        if cols.jdn is not None:
            # a fractional julian day is only meaningful with a time string
            if cols.time_str is not None:
                jdn = self._component_float(tokens, cols.jdn)
            else:
                jdn = self._component_int(tokens, cols.jdn)
            if jdn is None:
                return None
            year = self._component_int(tokens, cols.year)
            if year is None:
                return None
            if year == 0 and cols.fixed_year is not None:
                year = self.fixed_year_for_jdn(float(jdn))
            time_of_day = self._time_of_day(tokens)
            if time_of_day is None:
                return None
            seconds, tz = time_of_day
            return from_year_and_jdn(year, jdn, seconds, self.tz_offset if tz is None else tz)

        month = self._component_int(tokens, cols.month)
        if month is None:
            return None
        year = self._component_int(tokens, cols.year)
        if year is None:
            return None
        if year == 0 and cols.fixed_year is not None:
            year = self.fixed_year_for_month(month)
        day = self._component_int(tokens, cols.day)
        if day is None:
            return None
        time_of_day = self._time_of_day(tokens)
        if time_of_day is None:
            return None
        seconds, tz = time_of_day
        try:
            base = datetime(year, month, day, tzinfo=tz_from_hours(self.tz_offset if tz is None else tz))
            return base + timedelta(seconds=seconds)
        except (ValueError, OverflowError):
            return None
