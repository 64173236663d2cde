"""
Dataset handle for meteo-csv-ingest.

The ``Dataset`` class is a **handle object** over a set of configured
station files. Once created (via ``meteo_csv_ingest.open()`` or
``Dataset.from_config()``), it remembers the resolved options of every
file, lazily resolves each file's ``Layout`` on first use and owns the
``PositionIndex`` shared by all its reads, so that repeated range reads
of the same files resume near their start instead of re-scanning.

Read side:
- ``read_station_data()``: station identities and locations.
- ``load(start, end)``: ``{station_id: [Record, ...]}``.
- ``load_frame(start, end)``: the same data as pandas DataFrames.
- ``describe()``: a ``DatasetInfo`` snapshot (no data rows read).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

import pandas as pd

from meteo_csv_ingest.config import InputConfig, SectionedConfig, StationSettings, parse_input_section
from meteo_csv_ingest.index import PositionIndex
from meteo_csv_ingest.layout import Layout, resolve_layout
from meteo_csv_ingest.metadata import StationInfo
from meteo_csv_ingest.reader import ErrorPolicy, read_file
from meteo_csv_ingest.records import Record, records_to_frame

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DatasetInfo -- lightweight metadata snapshot
# ---------------------------------------------------------------------------

@dataclass
class DatasetInfo:
    """Structured metadata about a dataset, returned by ``Dataset.describe()``.

    Attributes:
        stations: Station ids, in configuration order.
        files: Mapping of station id -> data file path.
        fields: Mapping of station id -> measured field names.
        order: Mapping of station id -> ``"ascending"`` / ``"descending"``.
        time_zone: Timezone of the data, in hours.
    """

    stations: list[str] = field(default_factory=list)
    files: dict[str, str] = field(default_factory=dict)
    fields: dict[str, list[str]] = field(default_factory=dict)
    order: dict[str, str] = field(default_factory=dict)
    time_zone: float = 0.0


# ---------------------------------------------------------------------------
# Dataset -- the main handle class
# ---------------------------------------------------------------------------

class Dataset:
    """Handle object over the station files of one configuration.

    Attributes:
        input_config: Process-wide options (timezone, error policy).
        stations: One ``StationSettings`` per configured file.
        index: Seek points shared by every read of this handle.
    """

    def __init__(
        self,
        input_config: InputConfig,
        stations: list[StationSettings],
        index: PositionIndex | None = None,
    ) -> None:
        self.input_config = input_config
        self.stations = stations
        self.index = index if index is not None else PositionIndex()
        self._layouts: list[Layout] | None = None

    @classmethod
    def from_config(cls, cfg: SectionedConfig, section: str = "INPUT") -> Dataset:
        """Build a handle from a ``SectionedConfig``."""
        input_config, stations = parse_input_section(cfg, section)
        return cls(input_config, stations)

    # -- Properties ---------------------------------------------------------

    @property
    def policy(self) -> ErrorPolicy:
        return ErrorPolicy(
            silent_errors=self.input_config.silent_errors,
            errors_to_nodata=self.input_config.errors_to_nodata,
        )

    @property
    def layouts(self) -> list[Layout]:
        """Layouts of every file, resolved on first access."""
        if self._layouts is None:
            self._layouts = [
                resolve_layout(
                    settings.path,
                    settings.options,
                    tz_offset=self.input_config.time_zone,
                    station_index=settings.index,
                )
                for settings in self.stations
            ]
        return self._layouts

    def __repr__(self) -> str:
        files = [settings.path for settings in self.stations]
        return f"Dataset(files={files}, time_zone={self.input_config.time_zone})"

    # -- Read side ----------------------------------------------------------

    def read_station_data(self) -> list[StationInfo]:
        """Identity and location of every configured station."""
        return [layout.station for layout in self.layouts]

    def load(
        self,
        date_start: datetime | None = None,
        date_end: datetime | None = None,
    ) -> dict[str, list[Record]]:
        """Read every file within ``[date_start, date_end]``.

        Returns:
            Mapping of station id to its records, in time order. Several
            files resolving to the same station id are concatenated.
        """
        result: dict[str, list[Record]] = {}
        policy = self.policy
        for layout in self.layouts:
            records = read_file(layout, date_start, date_end, index=self.index, policy=policy)
            logger.info(
                "Loaded %d records for station %s from %s",
                len(records), layout.station.id, layout.path,
            )
            result.setdefault(layout.station.id, []).extend(records)
        return result

    def load_frame(
        self,
        date_start: datetime | None = None,
        date_end: datetime | None = None,
        station: str | None = None,
    ) -> pd.DataFrame | dict[str, pd.DataFrame]:
        """Load data as DataFrames.

        When ``station`` is given, or only one station exists, a single
        DataFrame is returned; otherwise ``dict[str, DataFrame]``.

        Raises:
            ValueError: If *station* is not a configured station id.
        """
        data = self.load(date_start, date_end)
        fields_by_station = self._fields_by_station()

        if station is not None:
            if station not in data:
                raise ValueError(
                    f"Station '{station}' not found. Available stations: {list(data)}"
                )
            return records_to_frame(data[station], fields_by_station.get(station))

        frames = {
            station_id: records_to_frame(records, fields_by_station.get(station_id))
            for station_id, records in data.items()
        }
        if len(frames) == 1:
            return next(iter(frames.values()))
        return frames

    def describe(self) -> DatasetInfo:
        """Quick metadata lookup, from the layouts only."""
        info = DatasetInfo(time_zone=self.input_config.time_zone)
        for layout in self.layouts:
            station_id = layout.station.id
            if station_id not in info.files:
                info.stations.append(station_id)
            info.files[station_id] = layout.path
            info.fields[station_id] = [name for _, name in layout.measurement_fields]
            info.order[station_id] = "ascending" if layout.ascending else "descending"
        return info

    # -- Private helpers ----------------------------------------------------

    def _fields_by_station(self) -> dict[str, list[str]]:
        fields_by_station: dict[str, list[str]] = {}
        for layout in self.layouts:
            names = fields_by_station.setdefault(layout.station.id, [])
            for _, name in layout.measurement_fields:
                if name not in names:
                    names.append(name)
        return fields_by_station
