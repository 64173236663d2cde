"""
Timezone token resolver for meteo-csv-ingest.

Date/time patterns may end with a ``TZ`` token. The matching text in the
data file is either a numerical offset to GMT or a well-known abbreviation:

  ``+1``, ``+1.``, ``-3.5``      -> decimal hours
  ``+01:00``, ``+0100``, ``-02``  -> ISO 8601 style offsets
  ``Z``, ``UTC``, ``CET``, ...    -> abbreviations (see ``TZ_ABBREVIATIONS``)

All offsets are returned as decimal hours east of GMT.
"""

from __future__ import annotations

import re

# Offsets in hours, see https://en.wikipedia.org/wiki/List_of_time_zone_abbreviations
TZ_ABBREVIATIONS: dict[str, float] = {
    "Z": 0.0,
    "UTC": 0.0,
    "GMT": 0.0,
    "UT": 0.0,
    "WET": 0.0,
    "WEST": 1.0,
    "BST": 1.0,
    "IST": 1.0,
    "CET": 1.0,
    "MEZ": 1.0,
    "CEST": 2.0,
    "MESZ": 2.0,
    "EET": 2.0,
    "EEST": 3.0,
    "MSK": 3.0,
    "GST": 4.0,
    "PKT": 5.0,
    "ICT": 7.0,
    "HKT": 8.0,
    "AWST": 8.0,
    "JST": 9.0,
    "KST": 9.0,
    "ACST": 9.5,
    "AEST": 10.0,
    "AEDT": 11.0,
    "NZST": 12.0,
    "NZDT": 13.0,
    "NST": -3.5,
    "NDT": -2.5,
    "AST": -4.0,
    "ADT": -3.0,
    "EST": -5.0,
    "EDT": -4.0,
    "CST": -6.0,
    "CDT": -5.0,
    "MST": -7.0,
    "MDT": -6.0,
    "PST": -8.0,
    "PDT": -7.0,
    "AKST": -9.0,
    "AKDT": -8.0,
    "HST": -10.0,
}

_ISO_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})?$")
_DECIMAL_OFFSET_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


def parse_timezone(token: str) -> float | None:
    """Convert a timezone token to an offset in decimal hours.

    Args:
        token: The raw text captured by the ``TZ`` field of a pattern.

    Returns:
        The offset to GMT in hours, or ``None`` if the token is not a
        recognised offset or abbreviation.
    """
    tz = token.strip()
    if not tz:
        return None

    abbreviation = TZ_ABBREVIATIONS.get(tz.upper())
    if abbreviation is not None:
        return abbreviation

    match = _ISO_OFFSET_RE.match(tz)
    if match and (match.group(3) is not None or ":" not in tz):
        sign = -1.0 if match.group(1) == "-" else 1.0
        hours = int(match.group(2))
        minutes = int(match.group(3) or 0)
        if minutes >= 60:
            return None
        return sign * (hours + minutes / 60.0)

    if _DECIMAL_OFFSET_RE.match(tz):
        offset = float(tz)
        if abs(offset) > 14.0:
            return None
        return offset

    return None
