"""
Number parsing for meteo-csv-ingest.

Data files are read as text; every numeric token (measurements, date
components, decimal dates) goes through these helpers so that the
accepted syntax is the same everywhere:

- integers: optional sign followed by digits (``"12"``, ``"-3"``);
- floats: optional sign, digits with an optional decimal point and an
  optional exponent (``"1.5"``, ``".5"``, ``"2e-3"``).

Anything else (``"1,5"``, ``"12abc"``, ``"inf"``, ``"1_000"``) is rejected.
``int()``/``float()`` alone would accept underscores, ``inf`` and ``nan``.
"""

from __future__ import annotations

import re

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_int(token: str) -> int | None:
    """Parse an integer token, returning ``None`` if it is not an integer.

    A value with a fractional part (``"1.5"``) is not an integer.
    """
    token = token.strip()
    if not _INT_RE.fullmatch(token):
        return None
    return int(token)


def parse_float(token: str) -> float | None:
    """Parse a floating point token, returning ``None`` on failure."""
    token = token.strip()
    if not _FLOAT_RE.fullmatch(token):
        return None
    return float(token)
