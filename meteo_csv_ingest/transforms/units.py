"""
Unit conversion table for meteo-csv-ingest.

Values must end up in SI units. When a file declares its units (either
on a units header line or through the ``UNITS`` option), each unit is
mapped to an ``(offset, multiplier)`` pair. The row pipeline then applies
``value * multiplier + offset``.

Recognised conversions:
  %, PC, CM         -> x 0.01
  C, DEGC, °C       -> + 273.15
  HPA               -> x 100
  MM, MV, MA        -> x 0.001
  MIN               -> x 60
  IN                -> x 0.0254
  FT                -> x 0.3048
  F                 -> x 5/9, - 32*5/9
  KM/H, MPH, KT     -> to m/s

Units already in SI (``K``, ``M/S``, ``W/M2``, ...) and unitless markers
(``-``, ``1``, empty) need no conversion. Anything else is logged and
left untouched.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

T_WATER_FREEZING_PT = 273.15

IDENTITY: tuple[float, float] = (0.0, 1.0)

# Mapping from upper-cased unit to (offset, multiplier)
UNIT_CONVERSIONS: dict[str, tuple[float, float]] = {
    "%": (0.0, 0.01),
    "PC": (0.0, 0.01),
    "CM": (0.0, 0.01),
    "C": (T_WATER_FREEZING_PT, 1.0),
    "DEGC": (T_WATER_FREEZING_PT, 1.0),
    "GRAD C": (T_WATER_FREEZING_PT, 1.0),
    "°C": (T_WATER_FREEZING_PT, 1.0),
    "HPA": (0.0, 1e2),
    "MM": (0.0, 1e-3),
    "MV": (0.0, 1e-3),
    "MA": (0.0, 1e-3),
    "MIN": (0.0, 60.0),
    "IN": (0.0, 0.0254),
    "FT": (0.0, 0.3048),
    "F": (-32.0 * 5.0 / 9.0, 5.0 / 9.0),
    "KM/H": (0.0, 1.0 / 3.6),
    "MPH": (0.0, 1.60934 / 3.6),
    "KT": (0.0, 1.852 / 3.6),
}

# Units that are already SI or carry no physical unit
NO_CONVERSION_UNITS = frozenset({
    "", "1", "-", "0 OR 1", "0/1", "??",
    "TS", "RN", "W/M2", "M/S", "K", "M", "N", "V", "VOLT", "DEG", "°", "KG/M2",
})


def unit_conversion(unit: str) -> tuple[float, float]:
    """Return the ``(offset, multiplier)`` needed to convert *unit* to SI.

    Args:
        unit: e.g. ``"degC"``, ``"%"``, ``"hPa"``. Quotes are ignored.

    Returns:
        ``(0.0, 1.0)`` for SI/unitless or unrecognised units.
    """
    key = unit.replace('"', "").replace("'", "").strip().upper()
    if key in NO_CONVERSION_UNITS:
        return IDENTITY
    conversion = UNIT_CONVERSIONS.get(key)
    if conversion is None:
        logger.warning("Can not parse unit '%s', leaving values unconverted", unit)
        return IDENTITY
    return conversion


def conversions_from_units(units: list[str]) -> tuple[list[float], list[float]]:
    """Build per-column offset and multiplier vectors from a list of units.

    Args:
        units: One unit per column, including date/time columns.

    Returns:
        Tuple of (offsets, multipliers), both with ``len(units)`` entries.
    """
    offsets: list[float] = []
    multipliers: list[float] = []
    for unit in units:
        offset, multiplier = unit_conversion(unit)
        offsets.append(offset)
        multipliers.append(multiplier)
    return offsets, multipliers
