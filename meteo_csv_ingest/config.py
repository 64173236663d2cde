"""
Configuration models and YAML I/O for meteo-csv-ingest.

The ingestion engine only needs typed ``key_exists`` / ``get`` lookups
scoped to a section. ``SectionedConfig`` provides them on top of a YAML
document shaped like an INI file::

    INPUT:
      METEOPATH: ./data
      TIME_ZONE: 1
      STATION1: station_a.csv
      POSITION1: latlon (46.8, 9.8, 1500)
      CSV_DELIMITER: ";"
      CSV1_NR_HEADERS: 2

Section and key lookups are case-insensitive.

Per-file options are validated into pydantic models:

- ``CsvOptions``: every ``CSV_*`` layout option for one file.
- ``InputConfig``: process-wide options (timezone, data path, error policy).
- ``StationSettings``: one resolved input file.

Key precedence (``parse_input_section``): a station-specific ``CSV<n>_KEY``
overrides the global ``CSV_KEY``. The four date keys (``DECIMALDATE_TYPE``,
``DATETIME_SPEC``, ``DATE_SPEC``, ``TIME_SPEC``) are taken as a group:
the global ones are used only if the station declares none of them.

All validation problems surface as ``ConfigurationError`` so that the
caller sees a single error type for a malformed layout declaration.
"""

from __future__ import annotations

import codecs
import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from meteo_csv_ingest.dates import DecimalDateType
from meteo_csv_ingest.exceptions import ConfigurationError
from meteo_csv_ingest.lines import WHITESPACE_DELIMITER
from meteo_csv_ingest.metadata import Location, parse_header_specs, parse_position

logger = logging.getLogger(__name__)

INPUT_SECTION = "INPUT"
GLOBAL_PREFIX = "CSV_"

_DATE_KEYS = ("DECIMALDATE_TYPE", "DATETIME_SPEC", "DATE_SPEC", "TIME_SPEC")
_STATION_KEY_RE = re.compile(r"^STATION(\d+)$")


# ---------------------------------------------------------------------------
# Key/value store
# ---------------------------------------------------------------------------

class SectionedConfig:
    """Case-insensitive ``section -> key -> value`` store.

    Args:
        data: Mapping of section name to a mapping of key to value.
    """

    def __init__(self, data: dict[str, dict[str, Any]] | None = None) -> None:
        self._sections: dict[str, dict[str, Any]] = {}
        for section, values in (data or {}).items():
            if values is None:
                values = {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"Section '{section}' must be a mapping of keys to values")
            self._sections[str(section).upper()] = {
                str(key).upper(): value for key, value in values.items()
            }

    def key_exists(self, key: str, section: str = INPUT_SECTION) -> bool:
        return key.upper() in self._sections.get(section.upper(), {})

    def get(self, key: str, section: str = INPUT_SECTION, default: Any = None) -> Any:
        return self._sections.get(section.upper(), {}).get(key.upper(), default)

    def keys(self, section: str = INPUT_SECTION) -> list[str]:
        """All (upper-cased) keys of *section*, in declaration order."""
        return list(self._sections.get(section.upper(), {}))

    def __repr__(self) -> str:
        return f"SectionedConfig(sections={list(self._sections)})"


def load_config(path: str | Path) -> SectionedConfig:
    """Load a YAML configuration file into a ``SectionedConfig``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is empty or not a mapping of sections.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if raw is None:
        raise ConfigurationError(f"Config file is empty: {path}")
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file must contain a mapping of sections: {path}")
    logger.info("Loaded config from %s", path)
    return SectionedConfig(raw)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

def _split_words(value: Any) -> Any:
    """Accept ``"a b c"`` as well as ``[a, b, c]`` for list-valued options."""
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [value]
    return value


def _parse_delimiter(value: str, key: str) -> str:
    if value in ("SPACE", "TAB"):
        return WHITESPACE_DELIMITER
    if len(value) != 1:
        raise ValueError(f"{key} must be a single character or SPACE or TAB, got '{value}'")
    return value


class CsvOptions(BaseModel):
    """Layout options of one CSV file (the ``CSV_*`` keys, prefix removed).

    Column and line numbers are 1-based, as written by users.
    """

    delimiter: str = Field(",", description="Field delimiter; SPACE or TAB for whitespace")
    header_delimiter: str | None = Field(None, description="Delimiter of header lines (default: delimiter)")
    nodata: str | None = Field(None, description="Nodata marker (default: header metadata, then NAN)")
    comments_mk: str | None = Field(None, description="Comment marker, rest of the line is ignored")
    dequote: bool = Field(False, description="Remove every quote before tokenizing")
    nr_headers: int = Field(1, ge=0, description="Number of header lines")
    columns_headers: int | None = Field(1, description="Header line holding the column names")
    units_headers: int | None = Field(None, description="Header line holding the units")
    header_repeat_mk: str | None = Field(None, description="Marker of a header block repeated mid-file")
    fields: list[str] = Field(default_factory=list, description="Explicit column names")
    filter_id: str | None = Field(None, description="Station id to keep when an ID column exists")
    skip_fields: list[int] = Field(default_factory=list, description="Columns to ignore")
    single_param_index: int | None = Field(None, description="Column of the single parameter")
    units_offset: list[float] | None = None
    units_multiplier: list[float] | None = None
    units: list[str] | None = Field(None, description="Units of every column, '-' for none")
    decimaldate_type: DecimalDateType | None = None
    datetime_spec: str | None = None
    date_spec: str | None = None
    time_spec: str | None = None
    fallback_year: int | None = None
    fallback_auto_wrap: bool = True
    special_headers: list[str] = Field(default_factory=list, description="FIELDTYPE:line:column triples")
    filename_spec: str | None = Field(None, description="{FIELDTYPE} filename pattern")
    name: str | None = None
    id: str | None = None
    slope: float | None = None
    azimuth: float | None = None
    position: str | None = Field(None, description="latlon (lat, lon, alt) or xy (e, n, alt)")
    encoding: str = "utf-8"

    @field_validator(
        "fields", "skip_fields", "units_offset", "units_multiplier", "units", "special_headers",
        mode="before",
    )
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        return _split_words(value)

    @field_validator("decimaldate_type", mode="before")
    @classmethod
    def _upper_date_type(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator(
        "nodata", "comments_mk", "header_repeat_mk", "filter_id", "name", "id",
        "datetime_spec", "date_spec", "time_spec", "filename_spec", "position",
        mode="before",
    )
    @classmethod
    def _to_text(cls, value: Any) -> Any:
        # YAML turns -999 or 1234 into numbers, and -999.0 into a float
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> CsvOptions:
        self.delimiter = _parse_delimiter(self.delimiter, "DELIMITER")
        if self.header_delimiter is not None:
            self.header_delimiter = _parse_delimiter(self.header_delimiter, "HEADER_DELIMITER")

        has_string_specs = any((self.datetime_spec, self.date_spec, self.time_spec))
        if self.decimaldate_type is not None and has_string_specs:
            raise ValueError("It is not possible to define both DECIMALDATE_TYPE and date/time specifications")
        if self.datetime_spec and (self.date_spec or self.time_spec):
            raise ValueError("It is not possible to define both DATETIME_SPEC and DATE_SPEC or TIME_SPEC")
        if bool(self.date_spec) != bool(self.time_spec):
            raise ValueError("Please define both DATE_SPEC and TIME_SPEC")

        if self.units and (self.units_offset or self.units_multiplier):
            raise ValueError("It is not possible to define both UNITS and UNITS_OFFSET or UNITS_MULTIPLIER")

        if self.columns_headers is not None and (
            self.columns_headers <= 0 or self.columns_headers > self.nr_headers
        ):
            self.columns_headers = None
        if self.columns_headers is None and not self.fields:
            raise ValueError("Please provide either COLUMNS_HEADERS (make sure it is <= NR_HEADERS) or FIELDS")
        if self.units_headers is not None and self.units_headers <= 0:
            raise ValueError("UNITS_HEADERS must be > 0 (first line is numbered 1)")

        if any(idx <= 0 for idx in self.skip_fields):
            raise ValueError("Wrong specification for fields to skip: first field is numbered 1")
        if self.single_param_index is not None and self.single_param_index <= 0:
            raise ValueError("SINGLE_PARAM_INDEX must be > 0 (first field is numbered 1)")

        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ValueError(f"Unknown encoding '{self.encoding}'") from None
        return self

    # -- Derived values -----------------------------------------------------

    @property
    def effective_header_delimiter(self) -> str:
        return self.header_delimiter if self.header_delimiter is not None else self.delimiter

    @property
    def skip_columns(self) -> frozenset[int]:
        """0-based indices of the columns to skip."""
        return frozenset(idx - 1 for idx in self.skip_fields)

    def location(self) -> Location | None:
        return parse_position(self.position) if self.position else None


class InputConfig(BaseModel):
    """Process-wide input options."""

    time_zone: float = Field(0.0, description="Timezone of the data, in hours")
    meteopath: str = Field(".", description="Directory holding the data files")
    silent_errors: bool = Field(False, description="Log and skip faulty rows")
    errors_to_nodata: bool = Field(False, description="Replace unparseable values by nodata")


class StationSettings(BaseModel):
    """One input file with its fully resolved options."""

    index: str = Field(..., description="The n of the STATION<n> key")
    path: str
    options: CsvOptions


# ---------------------------------------------------------------------------
# Key resolution
# ---------------------------------------------------------------------------

def _validate(model: type[BaseModel], data: dict[str, Any], context: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration for {context}: {exc}") from exc


def _option_names() -> list[str]:
    return [name.upper() for name in CsvOptions.model_fields if name != "position"]


def station_options(cfg: SectionedConfig, index: str, section: str = INPUT_SECTION) -> CsvOptions:
    """Resolve the ``CsvOptions`` of station *index*.

    Raises:
        ConfigurationError: If the resulting options are invalid.
    """
    own = f"CSV{index}_"
    values: dict[str, Any] = {}
    for key in _option_names():
        if key in _DATE_KEYS:
            continue
        if cfg.key_exists(own + key, section):
            values[key.lower()] = cfg.get(own + key, section)
        elif cfg.key_exists(GLOBAL_PREFIX + key, section):
            values[key.lower()] = cfg.get(GLOBAL_PREFIX + key, section)

    prefix = own if any(cfg.key_exists(own + key, section) for key in _DATE_KEYS) else GLOBAL_PREFIX
    for key in _DATE_KEYS:
        if cfg.key_exists(prefix + key, section):
            values[key.lower()] = cfg.get(prefix + key, section)

    position_key = f"POSITION{index}"
    if cfg.key_exists(position_key, section):
        values["position"] = cfg.get(position_key, section)
    elif cfg.key_exists("POSITION", section):
        values["position"] = cfg.get("POSITION", section)

    options = _validate(CsvOptions, values, f"station {index}")
    if options.special_headers:
        parse_header_specs(options.special_headers)
    options.location()
    return options


def parse_input_section(
    cfg: SectionedConfig, section: str = INPUT_SECTION
) -> tuple[InputConfig, list[StationSettings]]:
    """Resolve the process-wide options and every ``STATION<n>`` file.

    Stations are returned in ascending order of their index.

    Raises:
        ConfigurationError: If any option is invalid.
    """
    input_config = _validate(
        InputConfig,
        {
            name: cfg.get(key, section)
            for key, name in (
                ("TIME_ZONE", "time_zone"),
                ("METEOPATH", "meteopath"),
                ("CSV_SILENT_ERRORS", "silent_errors"),
                ("CSV_ERRORS_TO_NODATA", "errors_to_nodata"),
            )
            if cfg.key_exists(key, section)
        },
        "input",
    )

    stations: list[StationSettings] = []
    indices = sorted(
        (match.group(1) for match in map(_STATION_KEY_RE.match, cfg.keys(section)) if match),
        key=int,
    )
    for index in indices:
        filename = str(cfg.get(f"STATION{index}", section))
        options = station_options(cfg, index, section)
        stations.append(
            StationSettings(
                index=index,
                path=str(Path(input_config.meteopath) / filename),
                options=options,
            )
        )
    logger.info("Configured %d station file(s) from section %s", len(stations), section)
    return input_config, stations
