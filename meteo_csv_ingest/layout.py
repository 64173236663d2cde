"""
Layout resolution for meteo-csv-ingest.

Builds the immutable ``Layout`` of one data file from its ``CsvOptions``
and from the file itself. Resolution reads the beginning of the file
once (at most ``nr_headers + 1000`` lines):

1. Header lines: the column-name line, the units line and any header
   metadata coordinates are read from the declared header lines. A
   "header repeated mid-file" marker line found there is skipped once
   and not counted.
2. Roles: column names (explicit ``FIELDS`` first, header names
   otherwise) are canonicalised (trimmed, upper-cased, inner whitespace
   collapsed to ``_``) and looked up in ``ROLE_TABLE``. Anything that is
   not a date/time component, an id filter or ``SKIP`` is a measurement.
3. Probe: the first data rows are resolved to timestamps and the number
   of ascending vs. descending transitions decides the file order. The
   probe stops after ten transitions.

Consistency checks run before any data row is returned to a caller:
the date/time representation must be fully determined and given only one
way, components-based dates exclude a single-parameter declaration, and
units vectors must have one entry per column.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from meteo_csv_ingest.config import CsvOptions
from meteo_csv_ingest.dates import DateColumns, DateResolver, DecimalDateType
from meteo_csv_ingest.datespec import (
    DEFAULT_DATE_SPEC,
    DEFAULT_DATETIME_SPEC,
    DEFAULT_TIME_SPEC,
    CompiledFormat,
    compile_format,
)
from meteo_csv_ingest.exceptions import ConfigurationError
from meteo_csv_ingest.lines import (
    Eol,
    LineReader,
    canonical_name,
    detect_eol,
    remove_quotes,
    split_line,
    strip_comments,
)
from meteo_csv_ingest.metadata import (
    MetadataFields,
    StationInfo,
    extract_from_filename,
    extract_from_header_line,
    parse_header_specs,
    resolve_station,
)
from meteo_csv_ingest.transforms.units import conversions_from_units

logger = logging.getLogger(__name__)

DEFAULT_NODATA = "NAN"
PROBE_EXTRA_LINES = 1000
MIN_ORDER_TRANSITIONS = 10


class ColumnRole(str, Enum):
    """Semantic purpose of a column."""

    SKIP = "skip"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    YEAR = "year"
    JDAY = "jday"
    MONTH = "month"
    DAY = "day"
    NTIME = "ntime"
    HOUR = "hour"
    MINUTE = "minute"
    SECOND = "second"
    STATION_ID = "station_id"
    FIELD = "field"


# Canonical column name -> role. Names not listed are measurements.
ROLE_TABLE: dict[str, ColumnRole] = {
    "TIMESTAMP": ColumnRole.DATETIME,
    "TS": ColumnRole.DATETIME,
    "DATETIME": ColumnRole.DATETIME,
    "DATE": ColumnRole.DATE,
    "GIORNO": ColumnRole.DATE,
    "FECHA": ColumnRole.DATE,
    "TIME": ColumnRole.TIME,
    "ORA": ColumnRole.TIME,
    "HORA": ColumnRole.TIME,
    "SKIP": ColumnRole.SKIP,
    "YEAR": ColumnRole.YEAR,
    "JDAY": ColumnRole.JDAY,
    "JDN": ColumnRole.JDAY,
    "YDAY": ColumnRole.JDAY,
    "DAY_OF_YEAR": ColumnRole.JDAY,
    "DOY": ColumnRole.JDAY,
    "MONTH": ColumnRole.MONTH,
    "DAY": ColumnRole.DAY,
    "NTIME": ColumnRole.NTIME,
    "HOUR": ColumnRole.HOUR,
    "HOURS": ColumnRole.HOUR,
    "MINUTE": ColumnRole.MINUTE,
    "MINUTES": ColumnRole.MINUTE,
    "SECOND": ColumnRole.SECOND,
    "SECONDS": ColumnRole.SECOND,
    "ID": ColumnRole.STATION_ID,
    "STATIONID": ColumnRole.STATION_ID,
}


def column_role(name: str) -> ColumnRole:
    """Role of a column from its (raw or canonical) name."""
    canonical = canonical_name(name)
    if not canonical:
        return ColumnRole.SKIP
    return ROLE_TABLE.get(canonical, ColumnRole.FIELD)


# ---------------------------------------------------------------------------
# Layout descriptor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Layout:
    """Compiled, immutable description of how to parse one file.

    Attributes:
        path: The data file.
        station: Resolved station identity and location.
        columns: Canonical column names, one per column of the file.
        roles: Role of every column.
        skip: 0-based indices of the columns that are not measurements.
        offsets / multipliers: Per-column unit conversion (``None``: identity).
        ascending: File order discovered by probing.
        header_repeat_at_start: A header-repeat marker line preceded the
            data, so ``nr_headers + 1`` lines are skipped before the data.
    """

    path: str
    station: StationInfo
    columns: tuple[str, ...]
    roles: tuple[ColumnRole, ...]
    skip: frozenset[int]
    date_columns: DateColumns
    delimiter: str = ","
    header_delimiter: str = ","
    header_lines: int = 1
    columns_header_line: int | None = 1
    units_header_line: int | None = None
    comments_marker: str | None = None
    dequote: bool = False
    header_repeat_marker: str | None = None
    header_repeat_at_start: bool = False
    nodata: str = DEFAULT_NODATA
    filter_id: str | None = None
    station_id_column: int | None = None
    offsets: tuple[float, ...] | None = None
    multipliers: tuple[float, ...] | None = None
    datetime_format: CompiledFormat | None = None
    time_format: CompiledFormat | None = None
    tz_offset: float = 0.0
    ascending: bool = True
    eol: Eol = Eol.LF
    encoding: str = "utf-8"
    param: str | None = field(default=None, compare=False)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def measurement_fields(self) -> list[tuple[int, str]]:
        """``(column index, field name)`` of every measured column."""
        return [
            (idx, name)
            for idx, name in enumerate(self.columns)
            if idx not in self.skip
        ]

    @property
    def data_start_line(self) -> int:
        """Number of physical lines preceding the data section."""
        return self.header_lines + 1 if self.header_repeat_at_start else self.header_lines

    @property
    def target_id(self) -> str:
        """Value an id column must hold for a row to be kept."""
        return self.filter_id or self.station.id

    def new_date_resolver(self) -> DateResolver:
        """A fresh resolver for one pass over the file."""
        return DateResolver(
            self.date_columns,
            datetime_format=self.datetime_format,
            time_format=self.time_format,
            tz_offset=self.tz_offset,
        )


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

@dataclass
class _ColumnAssignment:
    columns: list[str]
    roles: list[ColumnRole]
    skip: set[int]
    date_columns: DateColumns
    station_id_column: int | None


def _assign_roles(
    names: list[str],
    options: CsvOptions,
    param: str | None,
    user_provided: bool,
) -> _ColumnAssignment:
    as_decimal = options.decimaldate_type is not None
    columns = [canonical_name(name) for name in names]
    roles: list[ColumnRole] = []
    skip = set(idx for idx in options.skip_columns if idx < len(columns))
    positions: dict[str, int] = {}
    station_id_column: int | None = None

    for idx, name in enumerate(columns):
        role = column_role(name)
        roles.append(role)
        if role is ColumnRole.FIELD:
            continue
        skip.add(idx)
        if role is ColumnRole.DATETIME:
            positions["decimal_date" if as_decimal else "datetime"] = idx
        elif role is ColumnRole.STATION_ID:
            station_id_column = idx
        elif role is not ColumnRole.SKIP:
            positions[role.value] = idx

    combined = positions.get("datetime")
    date_columns = DateColumns(
        decimal_date=positions.get("decimal_date"),
        decimal_type=options.decimaldate_type,
        date_str=combined if combined is not None else positions.get("date"),
        time_str=combined if combined is not None else positions.get("time"),
        year=positions.get("year"),
        jdn=positions.get("jday"),
        month=positions.get("month"),
        day=positions.get("day"),
        ntime=positions.get("ntime"),
        hours=positions.get("hour"),
        minutes=positions.get("minute"),
        seconds=positions.get("second"),
        fixed_year=options.fallback_year,
        auto_wrap=options.fallback_auto_wrap,
    )
    _check_single_representation(date_columns)
    if not date_columns.is_set():
        raise ConfigurationError(
            "Please define how to parse the date and time information (as strings, decimal "
            f"or components). Identified fields: {date_columns.describe()}"
        )
    if date_columns.as_components and param:
        raise ConfigurationError(
            "It is not possible to provide date/time as individual components and declare a single parameter"
        )

    if param and not user_provided:
        _place_single_param(columns, roles, date_columns, param, options, station_id_column)

    return _ColumnAssignment(columns, roles, skip, date_columns, station_id_column)


def _check_single_representation(date_columns: DateColumns) -> None:
    """Reject layouts where two date/time representations compete."""
    cols = date_columns
    date_parts = (cols.year, cols.jdn, cols.month, cols.day)
    time_parts = (cols.ntime, cols.hours, cols.minutes, cols.seconds)
    has_date_parts = any(col is not None for col in date_parts)
    has_time_parts = any(col is not None for col in time_parts)
    if cols.as_decimal:
        conflict = cols.date_str is not None or cols.time_str is not None or cols.as_components
    elif cols.combined:
        conflict = cols.as_components
    else:
        conflict = (cols.date_str is not None and (has_date_parts or has_time_parts)) or (
            cols.time_str is not None and has_time_parts
        )
    if conflict:
        raise ConfigurationError(
            "The date and time can only be given one way (combined string, separate date and "
            f"time strings, decimal date or components). Identified fields: {cols.describe()}"
        )


def _place_single_param(
    columns: list[str],
    roles: list[ColumnRole],
    date_columns: DateColumns,
    param: str,
    options: CsvOptions,
    station_id_column: int | None,
) -> None:
    """Rename the one measured column of a single-parameter file."""
    if station_id_column is not None:
        raise ConfigurationError(
            "It is not possible to declare a single parameter when several stations "
            "are present within one file with an ID column"
        )
    single_date_column = date_columns.decimal_date if date_columns.as_decimal else date_columns.date_str
    if options.single_param_index is not None and options.single_param_index <= len(columns):
        pidx = options.single_param_index - 1
    elif (date_columns.as_decimal or date_columns.combined) and len(columns) == 2:
        pidx = 1 if single_date_column == 0 else 0
    elif (
        not date_columns.combined
        and date_columns.date_str is not None
        and date_columns.time_str is not None
        and len(columns) == 3
    ):
        # the one column that is neither the date nor the time
        pidx = next(
            idx for idx in range(3) if idx not in (date_columns.date_str, date_columns.time_str)
        )
    else:
        logger.warning(
            "Parameter '%s' found but the column holding it is ambiguous, "
            "please set SINGLE_PARAM_INDEX",
            param,
        )
        return
    if roles[pidx] is not ColumnRole.FIELD:
        logger.warning("Single parameter '%s' assigned to date/time column %d, ignored", param, pidx + 1)
        return
    columns[pidx] = param
    logger.debug("Column %d renamed to single parameter '%s'", pidx + 1, param)


def _compile_formats(
    date_columns: DateColumns, options: CsvOptions
) -> tuple[CompiledFormat | None, CompiledFormat | None]:
    if date_columns.as_decimal:
        return None, None
    if date_columns.combined:
        return compile_format(options.datetime_spec or DEFAULT_DATETIME_SPEC), None
    datetime_format = None
    time_format = None
    if date_columns.date_str is not None:
        datetime_format = compile_format(options.date_spec or options.datetime_spec or DEFAULT_DATE_SPEC)
    if date_columns.time_str is not None:
        time_format = compile_format(options.time_spec or DEFAULT_TIME_SPEC, time_only=True)
    return datetime_format, time_format


def _units_vectors(
    options: CsvOptions, header_units: list[str] | None, column_count: int, path: str
) -> tuple[tuple[float, ...] | None, tuple[float, ...] | None]:
    offsets = options.units_offset
    multipliers = options.units_multiplier
    if offsets is None and multipliers is None:
        units = options.units if options.units is not None else header_units
        if units is not None:
            offsets, multipliers = conversions_from_units(units)

    for name, vector in (("offset", offsets), ("multiplier", multipliers)):
        if vector is not None and len(vector) != column_count:
            raise ConfigurationError(
                f"In file '{path}', the declared units {name} ({len(vector)}) must match "
                f"the number of columns ({column_count}) in the file"
            )
    return (
        tuple(offsets) if offsets is not None else None,
        tuple(multipliers) if multipliers is not None else None,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve_layout(
    path: str | Path,
    options: CsvOptions,
    tz_offset: float = 0.0,
    station_index: str | None = None,
) -> Layout:
    """Read the headers of *path* and build its ``Layout``.

    Args:
        path: Data file.
        options: Layout options of this file.
        tz_offset: Timezone of the data, in hours.
        station_index: The ``n`` of ``STATION<n>``, for the default id.

    Returns:
        The resolved ``Layout``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the declaration is inconsistent or the file
            is shorter than its declared header.
        InvalidFormatSpec: If a date/time pattern is malformed.
        MetadataExtractionFailed: If station identity or location can not
            be resolved.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Data file not found: {path}")
    source = str(path)

    configured = MetadataFields(
        id=options.id or "",
        name=options.name or "",
        slope=options.slope,
        azimuth=options.azimuth,
        nodata=options.nodata,
    )
    location = options.location()
    if location is not None:
        configured.latitude = location.latitude
        configured.longitude = location.longitude
        configured.easting = location.easting
        configured.northing = location.northing
        configured.altitude = location.altitude

    from_filename = extract_from_filename(path, options.filename_spec) if options.filename_spec else None
    header_specs = parse_header_specs(options.special_headers)
    from_header = MetadataFields()

    header_lines = options.nr_headers
    delimiter = options.delimiter
    read_units = (
        options.units_headers is not None
        and options.units is None
        and options.units_offset is None
        and options.units_multiplier is None
    )
    user_provided = bool(options.fields)

    header_names: list[str] = []
    header_units: list[str] | None = None
    repeat_at_start = False
    assignment: _ColumnAssignment | None = None
    resolver: DateResolver | None = None
    prev_dt = None
    count_asc = count_dsc = 0
    line_number = 0

    with open(path, "rb") as fh:
        eol = detect_eol(fh)
        reader = LineReader(fh, eol, options.encoding)
        for _ in range(header_lines + PROBE_EXTRA_LINES):
            item = reader.read_line()
            if item is None:
                if line_number < header_lines:
                    raise ConfigurationError(
                        f"Declaring {header_lines} header line(s) for file {source}, "
                        f"but it only contains {line_number} lines"
                    )
                break
            line = item[1].strip()

            if (
                options.header_repeat_mk
                and not repeat_at_start
                and line_number < header_lines
                and options.header_repeat_mk in line
            ):
                repeat_at_start = True
                continue
            line_number += 1
            line = strip_comments(line, options.comments_mk).strip()
            if not line:
                continue

            if line_number <= header_lines:
                if line_number in header_specs:
                    extract_from_header_line(
                        line, header_specs[line_number], options.effective_header_delimiter,
                        from_header, source,
                    )
                if line_number == options.columns_headers:
                    header_names = split_line(remove_quotes(line), delimiter)
                if read_units and line_number == options.units_headers:
                    header_units = split_line(line, delimiter)
                continue

            if assignment is None:
                assignment, resolver = _build_assignment(
                    options, header_names, user_provided, from_header, from_filename, tz_offset
                )
            if options.dequote:
                line = remove_quotes(line)
            tokens = split_line(line, delimiter)
            if len(tokens) <= assignment.date_columns.max_column:
                continue
            dt = resolver.resolve(tokens)
            if dt is None:
                continue
            if prev_dt is not None:
                # rows of different stations may share a timestamp
                if dt > prev_dt:
                    count_asc += 1
                elif dt < prev_dt:
                    count_dsc += 1
            prev_dt = dt
            if count_asc + count_dsc >= MIN_ORDER_TRANSITIONS:
                break

    if assignment is None:
        assignment, resolver = _build_assignment(
            options, header_names, user_provided, from_header, from_filename, tz_offset
        )

    station, merged = resolve_station(
        path,
        configured=configured,
        header=from_header,
        filename=from_filename,
        station_index=station_index,
    )
    offsets, multipliers = _units_vectors(options, header_units, len(assignment.columns), source)

    layout = Layout(
        path=source,
        station=station,
        columns=tuple(assignment.columns),
        roles=tuple(assignment.roles),
        skip=frozenset(assignment.skip),
        date_columns=assignment.date_columns,
        delimiter=delimiter,
        header_delimiter=options.effective_header_delimiter,
        header_lines=header_lines,
        columns_header_line=options.columns_headers,
        units_header_line=options.units_headers,
        comments_marker=options.comments_mk,
        dequote=options.dequote,
        header_repeat_marker=options.header_repeat_mk,
        header_repeat_at_start=repeat_at_start,
        nodata=merged.nodata if merged.nodata is not None else DEFAULT_NODATA,
        filter_id=options.filter_id,
        station_id_column=assignment.station_id_column,
        offsets=offsets,
        multipliers=multipliers,
        datetime_format=resolver.datetime_format,
        time_format=resolver.time_format,
        tz_offset=tz_offset,
        ascending=not count_dsc > count_asc,
        eol=eol,
        encoding=options.encoding,
        param=merged.param,
    )
    logger.info(
        "Resolved layout for %s: station=%s, %d columns, %d fields, %s order, dates %s",
        path.name,
        station.id,
        layout.column_count,
        len(layout.measurement_fields),
        "ascending" if layout.ascending else "descending",
        layout.date_columns.describe(),
    )
    logger.debug("Order probe for %s: %d ascending, %d descending", path.name, count_asc, count_dsc)
    return layout


def _build_assignment(
    options: CsvOptions,
    header_names: list[str],
    user_provided: bool,
    from_header: MetadataFields,
    from_filename: MetadataFields | None,
    tz_offset: float,
) -> tuple[_ColumnAssignment, DateResolver]:
    names = list(options.fields) if user_provided else header_names
    if not names:
        raise ConfigurationError(
            "No column names could be found. Please provide either COLUMNS_HEADERS or FIELDS"
        )
    param = from_header.param or (from_filename.param if from_filename is not None else None)
    assignment = _assign_roles(names, options, param, user_provided)
    datetime_format, time_format = _compile_formats(assignment.date_columns, options)
    resolver = DateResolver(
        assignment.date_columns,
        datetime_format=datetime_format,
        time_format=time_format,
        tz_offset=tz_offset,
    )
    return assignment, resolver
