"""
Row pipeline for meteo-csv-ingest.

``read_file`` streams the data section of one file, line by line, and
turns every surviving row into a ``Record``. For each physical line:

1. strip comments, optionally remove quotes, trim; skip empty lines;
2. a header-repeat marker line skips the following header lines;
3. tokenize with the layout delimiter;
4. keep only rows of the target station when an id column exists;
5. check the field count;
6. resolve the timestamp;
7. every ``INDEX_EVERY_N_LINES`` lines, record a seek point;
8. apply the range ``[date_start, date_end]`` (both inclusive);
9. convert every measurement: empty, nodata (optionally quoted),
   ``NAN`` and ``NULL`` tokens are ``NODATA``; numbers are multiplied,
   then offset.

Error policy (``ErrorPolicy``):

- default: any row error raises and aborts the read;
- ``silent_errors``: field-count, date and value errors are logged and
  the row is dropped;
- ``errors_to_nodata``: an unparseable value becomes ``NODATA`` and the
  row is kept. Only value errors are affected, and ``silent_errors``
  takes precedence when both are set.

Ascending files stop at the first row past ``date_end``; descending
files are read to the end (stopping before ``date_start``) and the
records are reversed so that the output is always in time order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from meteo_csv_ingest.dates import tz_from_hours
from meteo_csv_ingest.exceptions import DateParseError, FieldCountMismatch, ValueParseError
from meteo_csv_ingest.index import INDEX_EVERY_N_LINES, PositionIndex
from meteo_csv_ingest.layout import Layout
from meteo_csv_ingest.lines import LineReader, remove_quotes, split_line, strip_comments
from meteo_csv_ingest.records import NODATA, Record
from meteo_csv_ingest.transforms.numbers import parse_float

logger = logging.getLogger(__name__)

NODATA_LITERALS = frozenset({"NAN", "NULL"})


@dataclass(frozen=True)
class ErrorPolicy:
    """How row-level errors are handled."""

    silent_errors: bool = False
    errors_to_nodata: bool = False


def index_key(layout: Layout) -> str:
    """Key of the seek points of *layout* in a ``PositionIndex``."""
    if layout.station_id_column is None:
        return layout.path
    return f"{layout.path}::{layout.target_id}"


def _aware(bound: datetime | None, tz_offset: float) -> datetime | None:
    if bound is None or bound.tzinfo is not None:
        return bound
    return bound.replace(tzinfo=tz_from_hours(tz_offset))


def _nodata_tokens(nodata: str) -> frozenset[str]:
    return frozenset({"", nodata, f'"{nodata}"', f"'{nodata}'"})


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def read_file(
    layout: Layout,
    date_start: datetime | None = None,
    date_end: datetime | None = None,
    *,
    index: PositionIndex | None = None,
    policy: ErrorPolicy | None = None,
) -> list[Record]:
    """Read the records of one file within ``[date_start, date_end]``.

    Args:
        layout: The resolved layout of the file.
        date_start: Inclusive lower bound (``None``: unbounded). Naive
            datetimes are taken in the timezone of the file.
        date_end: Inclusive upper bound (``None``: unbounded).
        index: Seek-point store shared between reads; only used for files
            in ascending order.
        policy: Row error policy (default: every error is fatal).

    Returns:
        Records in ascending time order.

    Raises:
        FieldCountMismatch: A line has the wrong number of fields (or lacks
            the station id column, whatever the policy).
        DateParseError: The timestamp of a line can not be resolved.
        ValueParseError: A measurement is not a number.
    """
    policy = policy or ErrorPolicy()
    start = _aware(date_start, layout.tz_offset)
    end = _aware(date_end, layout.tz_offset)
    resolver = layout.new_date_resolver()
    # the fallback-year wrap state depends on every row from the file start
    use_index = index is not None and layout.ascending and not resolver.auto_wrap
    key = index_key(layout)

    fields = layout.measurement_fields
    column_count = layout.column_count
    nodata_tokens = _nodata_tokens(layout.nodata)
    id_column = layout.station_id_column
    target_id = layout.target_id
    offsets = layout.offsets
    multipliers = layout.multipliers
    filename = layout.path

    records: list[Record] = []
    with open(layout.path, "rb") as fh:
        reader = LineReader(fh, layout.eol, layout.encoding)
        entry = index.get_index(key, start) if use_index and start is not None else None
        if entry is not None:
            reader.seek(entry.offset)
            line_number = entry.line_number - 1
        else:
            line_number = reader.skip(layout.data_start_line)

        for offset, raw in reader:
            line_number += 1
            line = strip_comments(raw, layout.comments_marker)
            if layout.dequote:
                line = remove_quotes(line)
            line = line.strip()
            if not line:
                continue
            if layout.header_repeat_marker and layout.header_repeat_marker in line:
                line_number += reader.skip(layout.header_lines)
                continue

            tokens = split_line(line, layout.delimiter)

            if id_column is not None:
                if len(tokens) <= id_column:
                    raise FieldCountMismatch(
                        f"File '{filename}' declares the station id in column {id_column + 1} but "
                        f"only has {len(tokens)} columns at line {line_number}: '{line}'",
                        filename, line_number, line,
                    )
                if tokens[id_column] != target_id:
                    continue

            if len(tokens) != column_count:
                message = (
                    f"File '{filename}' declares {column_count} columns but line {line_number} "
                    f"has {len(tokens)} fields: '{line}'"
                )
                if policy.silent_errors:
                    logger.warning("%s", message)
                    continue
                raise FieldCountMismatch(message, filename, line_number, line)

            dt = resolver.resolve(tokens)
            if dt is None:
                message = f"Date or time could not be read in file '{filename}' at line {line_number}"
                if policy.silent_errors:
                    logger.warning("%s", message)
                    continue
                raise DateParseError(message, filename, line_number, line)

            if use_index and line_number % INDEX_EVERY_N_LINES == 0:
                index.set_index(key, dt, offset, line_number)

            if layout.ascending:
                if start is not None and dt < start:
                    continue
                if end is not None and dt > end:
                    break
            else:
                if start is not None and dt < start:
                    break
                if end is not None and dt > end:
                    continue

            values: dict[str, float | None] = {}
            keep = True
            for idx, name in fields:
                token = tokens[idx]
                if token in nodata_tokens or token.upper() in NODATA_LITERALS:
                    values[name] = NODATA
                    continue
                value = parse_float(token)
                if value is None:
                    message = f"Could not parse field '{token}' in file '{filename}' at line {line_number}"
                    if policy.silent_errors:
                        logger.warning("%s", message)
                        keep = False
                        break
                    if policy.errors_to_nodata:
                        values[name] = NODATA
                        continue
                    raise ValueParseError(message, filename, line_number, line)
                if multipliers is not None:
                    value *= multipliers[idx]
                if offsets is not None:
                    value += offsets[idx]
                values[name] = value
            if keep:
                records.append(Record(dt, layout.station.id, values))

    if not layout.ascending:
        records.reverse()
    logger.debug("Read %d records from %s", len(records), filename)
    return records
