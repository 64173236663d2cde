"""
Unit tests for station metadata extraction (meteo_csv_ingest.metadata).
"""

from __future__ import annotations

import pytest

from meteo_csv_ingest.exceptions import ConfigurationError, MetadataExtractionFailed
from meteo_csv_ingest.metadata import (
    Location,
    MetadataFields,
    canonical_parameter,
    extract_from_filename,
    extract_from_header_line,
    merge_metadata,
    parse_header_specs,
    parse_position,
    resolve_station,
)

WFJ = MetadataFields(latitude=46.83, longitude=9.81, altitude=2540.0)


class TestCanonicalParameter:
    """Tests for canonical_parameter()."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("TA", "TA"),
            ("psum", "PSUM"),
            ("Precipitation", "PSUM"),
            ("airtemp", "TA"),
            ("Temperatura aria", "TA"),
            ("Velocità vento", "VW"),
            ("ws", "VW"),
            ("WS_MAX", "VW_MAX"),
            ("Incoming_Radiation", "ISWR"),
            ("StationPressure", "P"),
            ("Foo bar", "FOO_BAR"),
        ],
    )
    def test_names(self, raw, expected):
        assert canonical_parameter(raw) == expected


class TestMetadataFields:
    """Tests for MetadataFields.assign()."""

    def test_id_accumulates(self):
        fields = MetadataFields()
        fields.assign("ID", "WFJ")
        fields.assign("id", "2")
        assert fields.id == "WFJ-2"

    def test_numeric(self):
        fields = MetadataFields()
        fields.assign("ALT", " 2540 ")
        fields.assign("AZI", "180")
        assert fields.altitude == 2540.0
        assert fields.azimuth == 180.0

    def test_numeric_overwrites(self):
        fields = MetadataFields()
        fields.assign("LAT", "46")
        fields.assign("LAT", "47")
        assert fields.latitude == 47.0

    def test_non_numeric_coordinate(self):
        with pytest.raises(MetadataExtractionFailed, match="LAT"):
            MetadataFields().assign("LAT", "north", "wfj.csv")

    def test_param_is_canonicalized(self):
        fields = MetadataFields()
        fields.assign("PARAM", "Precipitation")
        assert fields.param == "PSUM"

    def test_skip(self):
        fields = MetadataFields()
        fields.assign("SKIP", "anything")
        assert fields == MetadataFields()

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            MetadataFields().assign("COLOR", "blue")


class TestHeaderSpecs:
    """Tests for parse_header_specs() and extract_from_header_line()."""

    def test_grouped_by_line(self):
        specs = parse_header_specs(["ID:1:2", "NAME:1:3", "lat:2:2"])
        assert specs == {1: [(2, "ID"), (3, "NAME")], 2: [(2, "LAT")]}

    @pytest.mark.parametrize("spec", ["ID:1", "ID:0:1", "ID:1:-2", "ID:a:1", "FOO:1:1"])
    def test_malformed(self, spec):
        with pytest.raises(ConfigurationError):
            parse_header_specs([spec])

    def test_extract(self):
        fields = MetadataFields()
        extract_from_header_line('station,"WFJ2",Weissfluhjoch', [(2, "ID"), (3, "NAME")], ",", fields)
        assert fields.id == "WFJ2"
        assert fields.name == "Weissfluhjoch"

    def test_composite_id(self):
        fields = MetadataFields()
        extract_from_header_line("station;WFJ;2", [(2, "ID"), (3, "ID")], ";", fields)
        assert fields.id == "WFJ-2"

    def test_missing_column(self):
        with pytest.raises(MetadataExtractionFailed, match="column 4"):
            extract_from_header_line("a,b", [(4, "ID")], ",", MetadataFields(), "wfj.csv")


class TestFilename:
    """Tests for extract_from_filename()."""

    def test_full_pattern(self):
        fields = extract_from_filename(
            "/data/H0118_Generoso-Calmasino_-_Precipitation.csv", "{ID}_{NAME}-{SKIP}_-_{PARAM}"
        )
        assert fields.id == "H0118"
        assert fields.name == "Generoso"
        assert fields.param == "PSUM"

    def test_leading_literal(self):
        assert extract_from_filename("STA_123.csv", "STA_{ID}").id == "123"

    def test_leading_literal_mismatch(self):
        with pytest.raises(MetadataExtractionFailed):
            extract_from_filename("XYZ_123.csv", "STA_{ID}")

    def test_trailing_literal(self):
        assert extract_from_filename("X1_data.csv", "{ID}_data").id == "X1"

    def test_trailing_literal_mismatch(self):
        with pytest.raises(MetadataExtractionFailed):
            extract_from_filename("X1_meta.csv", "{ID}_data")

    def test_missing_separator(self):
        with pytest.raises(MetadataExtractionFailed):
            extract_from_filename("abc.csv", "{ID}#{NAME}")

    def test_numeric_fields(self):
        fields = extract_from_filename("46.5_9.8_1500.csv", "{LAT}_{LON}_{ALT}")
        assert (fields.latitude, fields.longitude, fields.altitude) == (46.5, 9.8, 1500.0)

    def test_non_numeric_coordinate(self):
        with pytest.raises(MetadataExtractionFailed):
            extract_from_filename("north_x.csv", "{LAT}_{NAME}")

    @pytest.mark.parametrize("pattern", ["{ID", "{ID}{NAME}", "{FOO}_x", "plain"])
    def test_malformed_pattern(self, pattern):
        with pytest.raises(ConfigurationError):
            extract_from_filename("a_b.csv", pattern)


class TestPosition:
    """Tests for parse_position() and Location."""

    def test_latlon(self):
        assert parse_position("latlon (46.8, 9.8, 1500)") == Location(
            latitude=46.8, longitude=9.8, altitude=1500.0
        )

    def test_xy_without_commas(self):
        location = parse_position("xy (785000 189000 2500)")
        assert (location.easting, location.northing, location.altitude) == (785000.0, 189000.0, 2500.0)

    def test_without_altitude(self):
        location = parse_position("LATLON 46.8 9.8")
        assert location.altitude is None
        assert location.latitude == 46.8

    @pytest.mark.parametrize("text", ["polar (1, 2)", "latlon (north, east)", "latlon"])
    def test_invalid(self, text):
        with pytest.raises(ConfigurationError):
            parse_position(text)

    def test_half_pair(self):
        with pytest.raises(MetadataExtractionFailed):
            Location(latitude=46.0).check("wfj.csv")

    def test_out_of_range(self):
        with pytest.raises(MetadataExtractionFailed, match="out of range"):
            Location(latitude=95.0, longitude=9.0).check()

    def test_is_nodata(self):
        assert Location(altitude=100.0).is_nodata() is True
        assert Location(easting=1.0, northing=2.0).is_nodata() is False


class TestResolveStation:
    """Tests for merge_metadata() and resolve_station()."""

    def test_merge_first_set_wins(self):
        merged = merge_metadata(MetadataFields(id="A"), MetadataFields(id="B", name="N"), None)
        assert merged.id == "A"
        assert merged.name == "N"

    def test_priority(self):
        configured = MetadataFields(id="CFG", latitude=46.83, longitude=9.81)
        header = MetadataFields(id="HDR", name="Header name", altitude=2540.0)
        filename = MetadataFields(name="File name", param="TA")
        station, merged = resolve_station("wfj.csv", configured, header, filename)
        assert station.id == "CFG"
        assert station.name == "Header name"
        assert station.location.altitude == 2540.0
        assert merged.param == "TA"

    def test_fallback_with_index(self):
        station, _ = resolve_station("/data/wfj_2020.csv", WFJ, station_index="3")
        assert station.id == "ID3"
        assert station.name == "wfj_2020"

    def test_fallback_without_index(self):
        station, _ = resolve_station("/data/wfj_2020.csv", WFJ)
        assert station.id == "wfj_2020"

    def test_missing_location(self):
        with pytest.raises(MetadataExtractionFailed, match="POSITION"):
            resolve_station("wfj.csv", MetadataFields(id="WFJ"))

    def test_slope_needs_azimuth(self):
        fields = MetadataFields(latitude=46.0, longitude=9.0, slope=30.0)
        station, _ = resolve_station("wfj.csv", fields)
        assert station.slope is None

    def test_flat_slope_kept(self):
        fields = MetadataFields(latitude=46.0, longitude=9.0, slope=0.0)
        station, _ = resolve_station("wfj.csv", fields)
        assert station.slope == 0.0

    def test_slope_and_azimuth(self):
        fields = MetadataFields(latitude=46.0, longitude=9.0, slope=30.0, azimuth=180.0)
        station, _ = resolve_station("wfj.csv", fields)
        assert (station.slope, station.azimuth) == (30.0, 180.0)
