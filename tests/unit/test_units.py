"""
Unit tests for the unit conversion table (meteo_csv_ingest.transforms.units).
"""

from __future__ import annotations

import logging

import pytest

from meteo_csv_ingest.transforms.units import (
    IDENTITY,
    conversions_from_units,
    unit_conversion,
)


class TestUnitConversion:
    """Tests for unit_conversion()."""

    def test_celsius(self):
        assert unit_conversion("degC") == (273.15, 1.0)
        assert unit_conversion("C") == (273.15, 1.0)

    def test_percent(self):
        assert unit_conversion("%") == (0.0, 0.01)

    def test_hectopascal(self):
        assert unit_conversion("hPa") == (0.0, 100.0)

    def test_quotes_ignored(self):
        assert unit_conversion('"mm"') == (0.0, 0.001)

    def test_fahrenheit(self):
        offset, multiplier = unit_conversion("F")
        # 212 F is the boiling point of water
        assert 212.0 * multiplier + offset == pytest.approx(100.0)

    @pytest.mark.parametrize("unit", ["m/s", "-", "K", "", "W/m2", "1"])
    def test_si_units_unchanged(self, unit):
        assert unit_conversion(unit) == IDENTITY

    def test_unknown_unit_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="meteo_csv_ingest.transforms.units"):
            assert unit_conversion("furlongs") == IDENTITY
        assert "furlongs" in caplog.text


class TestConversionsFromUnits:
    """Tests for conversions_from_units()."""

    def test_vectors(self):
        offsets, multipliers = conversions_from_units(["ts", "C", "%"])
        assert offsets == [0.0, 273.15, 0.0]
        assert multipliers == [1.0, 1.0, 0.01]

    def test_empty(self):
        assert conversions_from_units([]) == ([], [])
