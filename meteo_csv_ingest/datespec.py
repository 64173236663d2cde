"""
Date/time format specification compiler for meteo-csv-ingest.

A date/time pattern such as ``"DD.MM.YYYY HH24:MI:SS"`` is compiled once,
at configuration time, into an ordered list of tagged tokens:

- ``LiteralToken``   -- text that must appear as-is (whitespace in the
  pattern matches any run of whitespace, including none);
- ``FieldToken``     -- a numeric calendar field with a maximum width
  (``YYYY`` = 4, ``MM``/``DD``/``HH24``/``MI`` = 2, read as integers of
  one up to that many digits; ``SS`` unbounded so that fractional
  seconds can be read);
- ``TimezoneToken``  -- a whitespace-free word resolved by
  ``timezones.parse_timezone``; only allowed at the very end.

Scanning a value walks the tokens left to right, the same way ``sscanf``
would walk a format string: numeric fields skip leading whitespace and
anything left over after the last token is ignored. Working on tokens
instead of textual placeholders keeps user text out of any format string
and makes field widths explicit.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Union

from meteo_csv_ingest.exceptions import InvalidFormatSpec
from meteo_csv_ingest.timezones import parse_timezone

logger = logging.getLogger(__name__)

DEFAULT_DATETIME_SPEC = "YYYY-MM-DDTHH24:MI:SS"
DEFAULT_DATE_SPEC = "YYYY-MM-DD"
DEFAULT_TIME_SPEC = "HH24:MI:SS"


class DateField(IntEnum):
    """Calendar fields, numbered in ISO order."""

    YEAR = 0
    MONTH = 1
    DAY = 2
    HOUR = 3
    MINUTE = 4
    SECOND = 5


# Pattern token -> (field, max width). Longer tokens are tried first.
_FIELD_TOKENS: tuple[tuple[str, DateField, int | None], ...] = (
    ("YYYY", DateField.YEAR, 4),
    ("HH24", DateField.HOUR, 2),
    ("MM", DateField.MONTH, 2),
    ("DD", DateField.DAY, 2),
    ("MI", DateField.MINUTE, 2),
    ("SS", DateField.SECOND, None),
)
_TZ_TOKEN = "TZ"

_TIME_FIELDS = frozenset({DateField.HOUR, DateField.MINUTE, DateField.SECOND})
_ALL_FIELDS = frozenset(DateField)

_INTEGER_RES: dict[int, re.Pattern[str]] = {
    width: re.compile(rf"[+-]?\d{{1,{width}}}") for _, _, width in _FIELD_TOKENS if width is not None
}
_SECONDS_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class LiteralToken:
    text: str


@dataclass(frozen=True)
class FieldToken:
    field: DateField
    width: int | None


@dataclass(frozen=True)
class TimezoneToken:
    pass


Token = Union[LiteralToken, FieldToken, TimezoneToken]


@dataclass(frozen=True)
class CompiledFormat:
    """A compiled date/time pattern.

    Attributes:
        spec: The pattern string as configured.
        fields: Calendar fields in the order they appear in the pattern.
        tokens: The tagged token sequence used for scanning.
        has_tz: Whether the pattern ends with a ``TZ`` token.
    """

    spec: str
    fields: tuple[DateField, ...]
    tokens: tuple[Token, ...]
    has_tz: bool = False


@dataclass
class ScanResult:
    """Values extracted from one date and/or time string."""

    values: dict[DateField, float] = field(default_factory=dict)
    tz_offset: float | None = None


def compile_format(spec: str, *, time_only: bool = False) -> CompiledFormat:
    """Compile a date/time pattern string.

    Args:
        spec: Pattern made of ``YYYY MM DD HH24 MI SS`` tokens, an optional
            trailing ``TZ`` token and arbitrary literal separators.
        time_only: If True, only ``HH24``, ``MI`` and ``SS`` (and ``TZ``)
            are accepted, as required for a separate time column.

    Returns:
        The ``CompiledFormat``.

    Raises:
        InvalidFormatSpec: If the pattern is empty, contains ``%``, repeats
            a token, places ``TZ`` anywhere but at the end, uses a token
            not allowed for its kind, or (for date patterns) has fewer
            than three fields.
    """
    if not spec:
        raise InvalidFormatSpec("Empty date/time specification")
    if "%" in spec:
        raise InvalidFormatSpec(
            f"Badly formatted date/time specification '{spec}': '%' is not allowed"
        )

    allowed = _TIME_FIELDS if time_only else _ALL_FIELDS
    tokens: list[Token] = []
    fields: list[DateField] = []
    literal: list[str] = []
    has_tz = False
    pos = 0

    def flush_literal() -> None:
        if literal:
            tokens.append(LiteralToken("".join(literal)))
            literal.clear()

    while pos < len(spec):
        if spec.startswith(_TZ_TOKEN, pos):
            if pos + len(_TZ_TOKEN) != len(spec):
                raise InvalidFormatSpec(
                    f"When providing TZ in a date/time format, it must be at the "
                    f"very end of the string: '{spec}'"
                )
            flush_literal()
            tokens.append(TimezoneToken())
            has_tz = True
            pos += len(_TZ_TOKEN)
            continue

        for text, date_field, width in _FIELD_TOKENS:
            if spec.startswith(text, pos):
                if date_field in fields:
                    raise InvalidFormatSpec(
                        f"Badly formatted date/time specification '{spec}': "
                        f"argument '{text}' appearing twice"
                    )
                if date_field not in allowed:
                    raise InvalidFormatSpec(
                        f"Token '{text}' is not allowed in time specification '{spec}'"
                    )
                flush_literal()
                tokens.append(FieldToken(date_field, width))
                fields.append(date_field)
                pos += len(text)
                break
        else:
            literal.append(spec[pos])
            pos += 1

    flush_literal()

    if not fields:
        raise InvalidFormatSpec(f"No date/time field found in specification '{spec}'")
    if not time_only and len(fields) < 3:
        raise InvalidFormatSpec(
            f"Date specification '{spec}' must contain at least three fields"
        )

    compiled = CompiledFormat(
        spec=spec, fields=tuple(fields), tokens=tuple(tokens), has_tz=has_tz
    )
    logger.debug("Compiled date/time spec %r -> fields=%s tz=%s", spec, compiled.fields, has_tz)
    return compiled


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def scan(compiled: CompiledFormat, text: str, result: ScanResult | None = None) -> ScanResult | None:
    """Extract calendar fields from *text* according to *compiled*.

    Args:
        compiled: The compiled pattern.
        text: The raw date, time or combined date-time string.
        result: Optional result to fill in (so that a date string and a
            time string can contribute to the same result).

    Returns:
        The filled ``ScanResult``, or ``None`` on any mismatch.
    """
    if result is None:
        result = ScanResult()
    pos = 0
    for token in compiled.tokens:
        if isinstance(token, LiteralToken):
            for char in token.text:
                if char.isspace():
                    pos = _skip_whitespace(text, pos)
                elif pos < len(text) and text[pos] == char:
                    pos += 1
                else:
                    return None
        elif isinstance(token, FieldToken):
            pos = _skip_whitespace(text, pos)
            if token.width is None:
                match = _SECONDS_RE.match(text, pos)
            else:
                match = _INTEGER_RES[token.width].match(text, pos)
            if match is None:
                return None
            result.values[token.field] = float(match.group(0))
            pos = match.end()
        else:
            pos = _skip_whitespace(text, pos)
            end = pos
            while end < len(text) and not text[end].isspace():
                end += 1
            offset = parse_timezone(text[pos:end])
            if offset is None:
                return None
            result.tz_offset = offset
            pos = end
    return result
