"""
meteo-csv-ingest: configurable ingestion of tabular time-series CSV files.

Public API surface:

- ``open(config_path)`` -- **recommended entry point**. Loads a YAML
  configuration (``INPUT`` section with ``STATION<n>`` files and
  ``CSV_*`` layout keys) and returns a ``Dataset`` handle.

- ``read(path, ...)`` -- one-shot read of a single file from keyword
  layout options, without a configuration file.

- ``resolve_layout`` / ``read_file`` -- the two building blocks: resolve
  the immutable ``Layout`` of a file, then stream its records.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from meteo_csv_ingest.config import (
    CsvOptions,
    InputConfig,
    SectionedConfig,
    StationSettings,
    load_config,
    parse_input_section,
)
from meteo_csv_ingest.dataset import Dataset, DatasetInfo
from meteo_csv_ingest.exceptions import (
    ConfigurationError,
    CsvIngestError,
    DateParseError,
    FieldCountMismatch,
    InvalidFormatSpec,
    MetadataExtractionFailed,
    RowError,
    ValueParseError,
)
from meteo_csv_ingest.index import PositionIndex
from meteo_csv_ingest.layout import ColumnRole, Layout, resolve_layout
from meteo_csv_ingest.metadata import Location, StationInfo
from meteo_csv_ingest.reader import ErrorPolicy, read_file
from meteo_csv_ingest.records import NODATA, Record, records_to_frame

__all__ = [
    "open",
    "read",
    "Dataset",
    "DatasetInfo",
    "CsvOptions",
    "InputConfig",
    "SectionedConfig",
    "StationSettings",
    "load_config",
    "parse_input_section",
    "resolve_layout",
    "read_file",
    "records_to_frame",
    "ColumnRole",
    "ErrorPolicy",
    "Layout",
    "Location",
    "PositionIndex",
    "Record",
    "StationInfo",
    "NODATA",
    "CsvIngestError",
    "ConfigurationError",
    "InvalidFormatSpec",
    "MetadataExtractionFailed",
    "RowError",
    "FieldCountMismatch",
    "DateParseError",
    "ValueParseError",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def open(config_path: str | Path, section: str = "INPUT") -> Dataset:
    """Open a YAML configuration and return a ``Dataset`` handle.

    No data file is read until the handle is used.

    Examples::

        ds = meteo_csv_ingest.open("io.yaml")
        stations = ds.read_station_data()
        data = ds.load(datetime(2020, 1, 1), datetime(2020, 12, 31))
        df = ds.load_frame(station="WFJ2")

    Raises:
        FileNotFoundError: If *config_path* does not exist.
        ConfigurationError: If the configuration is invalid.
    """
    logger.info("open() -- loading config from %s", config_path)
    return Dataset.from_config(load_config(config_path), section)


def read(
    path: str | Path,
    date_start: datetime | None = None,
    date_end: datetime | None = None,
    *,
    time_zone: float = 0.0,
    silent_errors: bool = False,
    errors_to_nodata: bool = False,
    index: PositionIndex | None = None,
    **options: Any,
) -> list[Record]:
    """Read one file, described by keyword layout options.

    Keyword options are the ``CSV_*`` keys in lower case without their
    prefix (``delimiter``, ``nr_headers``, ``fields``, ``position``, ...).

    Example::

        records = meteo_csv_ingest.read(
            "wfj.csv", delimiter=";", nodata="-999",
            position="latlon (46.83, 9.81, 2540)",
        )
    """
    try:
        csv_options = CsvOptions.model_validate(options)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid options for {path}: {exc}") from exc
    layout = resolve_layout(path, csv_options, tz_offset=time_zone)
    policy = ErrorPolicy(silent_errors=silent_errors, errors_to_nodata=errors_to_nodata)
    return read_file(layout, date_start, date_end, index=index, policy=policy)
