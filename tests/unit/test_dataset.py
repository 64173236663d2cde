"""
Unit tests for the Dataset handle (meteo_csv_ingest.dataset).

Tests the handle pattern (lazy layouts, shared index), the dict/frame
read methods and ``describe()``.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd
import pytest

from meteo_csv_ingest.config import CsvOptions, InputConfig, SectionedConfig, StationSettings
from meteo_csv_ingest.dataset import Dataset, DatasetInfo
from meteo_csv_ingest.exceptions import DateParseError

UTC = timezone.utc

WFJ = (
    "TIMESTAMP,TA,RH\n"
    "2020-01-01T00:00:00,1.5,80\n"
    "2020-01-01T01:00:00,2.5,81\n"
    "2020-01-01T02:00:00,3.5,82\n"
)
DAV = (
    "TIMESTAMP;HS\n"
    "2020-01-01T02:00:00;1.2\n"
    "2020-01-01T01:00:00;1.1\n"
    "2020-01-01T00:00:00;1.0\n"
)


@pytest.fixture
def dataset(write_file, position):
    wfj = write_file("wfj.csv", WFJ)
    dav = write_file("dav.csv", DAV)
    stations = [
        StationSettings(index="1", path=str(wfj), options=CsvOptions(position=position, id="WFJ")),
        StationSettings(index="2", path=str(dav), options=CsvOptions(position=position, delimiter=";")),
    ]
    return Dataset(InputConfig(), stations)


class TestDatasetHandle:
    """Tests for construction and lazy layouts."""

    def test_layouts_resolved_lazily(self, dataset):
        assert dataset._layouts is None
        layouts = dataset.layouts
        assert len(layouts) == 2
        assert dataset.layouts is layouts

    def test_from_config(self, tmp_path, write_file, position):
        write_file("wfj.csv", WFJ)
        cfg = SectionedConfig({
            "INPUT": {
                "METEOPATH": str(tmp_path),
                "STATION1": "wfj.csv",
                "POSITION": position,
                "CSV_SILENT_ERRORS": True,
            }
        })
        ds = Dataset.from_config(cfg)
        assert ds.policy.silent_errors is True
        assert ds.read_station_data()[0].id == "ID1"

    def test_repr(self, dataset):
        assert "wfj.csv" in repr(dataset)


class TestDatasetRead:
    """Tests for load(), load_frame() and read_station_data()."""

    def test_station_data(self, dataset):
        stations = dataset.read_station_data()
        assert [s.id for s in stations] == ["WFJ", "ID2"]
        assert stations[1].name == "dav"

    def test_load(self, dataset):
        data = dataset.load()
        assert set(data) == {"WFJ", "ID2"}
        assert [r["TA"] for r in data["WFJ"]] == [1.5, 2.5, 3.5]
        assert [r["HS"] for r in data["ID2"]] == [1.0, 1.1, 1.2]

    def test_load_range(self, dataset):
        data = dataset.load(datetime(2020, 1, 1, 1, tzinfo=UTC), datetime(2020, 1, 1, 1, tzinfo=UTC))
        assert [len(records) for records in data.values()] == [1, 1]

    def test_load_frame_all(self, dataset):
        frames = dataset.load_frame()
        assert set(frames) == {"WFJ", "ID2"}
        assert list(frames["WFJ"].columns) == ["station", "TA", "RH"]

    def test_load_frame_station(self, dataset):
        df = dataset.load_frame(station="ID2")
        assert isinstance(df, pd.DataFrame)
        assert df["HS"].tolist() == [1.0, 1.1, 1.2]

    def test_load_frame_unknown_station(self, dataset):
        with pytest.raises(ValueError, match="not found"):
            dataset.load_frame(station="NOPE")

    def test_single_station_returns_frame(self, write_file, position):
        path = write_file("wfj.csv", WFJ)
        ds = Dataset(InputConfig(), [StationSettings(index="1", path=str(path), options=CsvOptions(position=position))])
        assert isinstance(ds.load_frame(), pd.DataFrame)

    def test_policy_applied(self, write_file, position):
        path = write_file("bad.csv", WFJ + "garbage,1,2\n")
        settings = [StationSettings(index="1", path=str(path), options=CsvOptions(position=position))]
        with pytest.raises(DateParseError):
            Dataset(InputConfig(), settings).load()
        records = Dataset(InputConfig(silent_errors=True), settings).load()["ID1"]
        assert len(records) == 3


class TestDescribe:
    """Tests for describe()."""

    def test_describe(self, dataset):
        info = dataset.describe()
        assert isinstance(info, DatasetInfo)
        assert info.stations == ["WFJ", "ID2"]
        assert info.fields == {"WFJ": ["TA", "RH"], "ID2": ["HS"]}
        assert info.order == {"WFJ": "ascending", "ID2": "descending"}
        assert info.files["WFJ"].endswith("wfj.csv")
        assert info.time_zone == 0.0
