"""
Record type and tabular view for meteo-csv-ingest.

A ``Record`` is one timestamped row of one station: a mapping of field
name to value, where ``NODATA`` (``None``) marks a missing measurement.
It is distinct from ``0.0`` and from ``NaN`` in the input.

``records_to_frame`` turns a record sequence into a pandas DataFrame
indexed by timestamp, with one column per field and nodata as ``NaN``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

NODATA = None


@dataclass(frozen=True)
class Record:
    """One parsed row.

    Attributes:
        timestamp: Timezone-aware timestamp of the row.
        station: Station id the row belongs to.
        values: Field name -> value (``NODATA`` when missing).
    """

    timestamp: datetime
    station: str
    values: Mapping[str, float | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, name: str) -> float | None:
        return self.values[name]

    def is_nodata(self, name: str) -> bool:
        return self.values.get(name) is NODATA

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return (
            self.timestamp == other.timestamp
            and self.station == other.station
            and dict(self.values) == dict(other.values)
        )

    def __hash__(self) -> int:
        return hash((self.timestamp, self.station, tuple(sorted(self.values.items()))))


def records_to_frame(records: Sequence[Record], fields: Sequence[str] | None = None) -> pd.DataFrame:
    """Build a DataFrame from records.

    Args:
        records: Records, usually of a single station.
        fields: Column order; by default the fields in order of first
            appearance.

    Returns:
        DataFrame indexed by ``timestamp`` with a ``station`` column and one
        float column per field. Nodata becomes ``NaN``.
    """
    if fields is None:
        seen: dict[str, None] = {}
        for record in records:
            for name in record.values:
                seen.setdefault(name, None)
        fields = list(seen)

    rows = [
        {
            "timestamp": record.timestamp,
            "station": record.station,
            **{name: record.values.get(name) for name in fields},
        }
        for record in records
    ]
    df = pd.DataFrame(rows, columns=["timestamp", "station", *fields])
    for name in fields:
        df[name] = pd.to_numeric(df[name], errors="coerce").astype("float64")
    df = df.set_index("timestamp")
    logger.debug("Built frame with %d rows and %d fields", len(df), len(fields))
    return df
