"""
Station metadata extraction for meteo-csv-ingest.

A station's identity (id, name), geolocation (lat/lon or easting/northing,
altitude, slope, azimuth) and, for single-parameter files, the name of
the measured parameter can come from four places, in priority order:

1. explicit per-file configuration (``CSV<n>_ID``, ``POSITION<n>``, ...);
2. header coordinates, ``FIELDTYPE:line:column`` triples pointing into
   the header lines of the file;
3. the filename, decomposed with a ``{FIELDTYPE}`` pattern such as
   ``{ID}_{NAME}-{SKIP}_-_{PARAM}``;
4. a generic fallback (name = file stem, id = ``ID<n>`` or the name).

Each strategy fills its own ``MetadataFields`` record; ``resolve_station``
then merges them attribute by attribute, first set value wins. Within a
single strategy, ``ID`` and ``NAME`` values accumulate (joined with
``-``) so that composite identifiers can be assembled from several
coordinates; every other field type overwrites.

Parameter names are canonicalised with ``canonical_parameter`` so that
``Precipitation`` or ``Temperatura aria`` end up as ``PSUM`` and ``TA``.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, fields
from pathlib import Path

from meteo_csv_ingest.exceptions import ConfigurationError, MetadataExtractionFailed
from meteo_csv_ingest.lines import remove_quotes, split_line

logger = logging.getLogger(__name__)

ID_SEPARATOR = "-"

# Field types accepted in header coordinates and filename patterns
METADATA_FIELD_TYPES = frozenset({
    "ID", "NAME", "ALT", "LAT", "LON", "EASTING", "NORTHING",
    "SLOPE", "AZI", "NODATA", "PARAM", "SKIP",
})

_NUMERIC_FIELD_TYPES = {
    "ALT": "altitude",
    "LAT": "latitude",
    "LON": "longitude",
    "EASTING": "easting",
    "NORTHING": "northing",
    "SLOPE": "slope",
    "AZI": "azimuth",
}

# Parameter names that need no canonicalisation
KNOWN_PARAMETERS = frozenset({
    "P", "TA", "RH", "TSG", "TSS", "HS", "VW", "DW", "VW_MAX", "RSWR", "ISWR",
    "ILWR", "RLWR", "TAU_CLD", "PSUM", "PSUM_PH", "HNW",
})

# (canonical name, prefixes) checked in order; longer, more specific
# prefixes must come before the shorter ones they start with
_PARAMETER_PREFIXES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("TA", ("TEMPERATURE_AIR", "AIRTEMP", "TEMPERATURA_ARIA")),
    ("TSG", ("SOIL_TEMPERATURE", "SOILTEMP")),
    ("PSUM", ("PRECIPITATION", "PRECIPITAZIONE", "PREC")),
    ("RSWR", ("REFLECTED_RADIATION", "RADIAZIONE_SOLARE_RIFLESSA")),
    ("ISWR", ("INCOMING_RADIATION", "INCOMINGSHORTWAVERADIATION", "RADIAZIONE_SOLARE_INCIDENTE")),
    ("DW", ("WIND_DIRECTION", "DIREZIONE_VENTO", "WD")),
    ("RH", ("RELATIVE_HUMIDITY", "RELATIVEHUMIDITY", "UMIDITA_RELATIVA", "UMIDIT_RELATIVA")),
    ("VW_MAX", ("WS_MAX",)),
    ("VW", ("WIND_VELOCITY", "VELOCITA_VENTO", "VELOCIT_VENTO", "WS")),
    ("P", ("PRESSURE", "STATIONPRESSURE")),
    ("ILWR", ("INCOMING_LONGWAVE", "INCOMINGLONGWAVERADIATION")),
    ("TSS", ("SNOWSURFACETEMPERATURE",)),
)

_PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")
_POSITION_RE = re.compile(
    r"^\s*(latlon|xy)\s*\(?\s*([^,\s()]+)[\s,]+([^,\s()]+)(?:[\s,]+([^,\s()]+))?\s*\)?\s*$",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Location:
    """Geographic position of a station.

    Either ``latitude``/``longitude`` or ``easting``/``northing`` (or both)
    are expected; altitude is optional.
    """

    latitude: float | None = None
    longitude: float | None = None
    easting: float | None = None
    northing: float | None = None
    altitude: float | None = None

    def is_nodata(self) -> bool:
        """True when no horizontal coordinate is known."""
        return all(
            value is None
            for value in (self.latitude, self.longitude, self.easting, self.northing)
        )

    def check(self, source: str = "") -> None:
        """Validate coordinate consistency and ranges.

        Raises:
            MetadataExtractionFailed: If only half of a coordinate pair is
                known or a latitude/longitude is out of range.
        """
        prefix = f"Inconsistent geographic coordinates for '{source}': " if source else ""
        if (self.latitude is None) != (self.longitude is None):
            raise MetadataExtractionFailed(f"{prefix}latitude and longitude must both be provided")
        if (self.easting is None) != (self.northing is None):
            raise MetadataExtractionFailed(f"{prefix}easting and northing must both be provided")
        if self.latitude is not None and not -90.0 <= self.latitude <= 90.0:
            raise MetadataExtractionFailed(f"{prefix}latitude {self.latitude} out of range")
        if self.longitude is not None and not -180.0 <= self.longitude <= 180.0:
            raise MetadataExtractionFailed(f"{prefix}longitude {self.longitude} out of range")


@dataclass(frozen=True)
class StationInfo:
    """Resolved identity and location of the station behind one file."""

    id: str
    name: str
    location: Location
    slope: float | None = None
    azimuth: float | None = None


@dataclass
class MetadataFields:
    """Metadata collected by one extraction strategy.

    ``None`` (or an empty string for ``id``/``name``) means "not provided".
    """

    id: str = ""
    name: str = ""
    latitude: float | None = None
    longitude: float | None = None
    easting: float | None = None
    northing: float | None = None
    altitude: float | None = None
    slope: float | None = None
    azimuth: float | None = None
    nodata: str | None = None
    param: str | None = None

    def assign(self, field_type: str, value: str, source: str = "") -> None:
        """Attribute *value* to the metadata variable named by *field_type*.

        Raises:
            MetadataExtractionFailed: If a coordinate value is not numeric.
            ConfigurationError: If *field_type* is unknown.
        """
        field_type = field_type.strip().upper()
        if field_type == "ID":
            self.id = f"{self.id}{ID_SEPARATOR}{value}" if self.id else value
        elif field_type == "NAME":
            self.name = f"{self.name}{ID_SEPARATOR}{value}" if self.name else value
        elif field_type == "NODATA":
            self.nodata = value
        elif field_type == "SKIP":
            return
        elif field_type == "PARAM":
            self.param = canonical_parameter(value)
        elif field_type in _NUMERIC_FIELD_TYPES:
            try:
                number = float(value.strip())
            except ValueError:
                raise MetadataExtractionFailed(
                    f"Could not extract metadata '{field_type}' from '{value}' for {source}"
                ) from None
            setattr(self, _NUMERIC_FIELD_TYPES[field_type], number)
        else:
            raise ConfigurationError(f"Unknown metadata field type '{field_type}'")


# ---------------------------------------------------------------------------
# Parameter names
# ---------------------------------------------------------------------------

def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def canonical_parameter(raw: str) -> str:
    """Map a free-form parameter name to its canonical short name.

    >>> canonical_parameter("Precipitation")
    'PSUM'
    >>> canonical_parameter("Temperatura aria")
    'TA'

    Unrecognised names are returned upper-cased with every
    non-alphanumeric character replaced by ``_``.
    """
    name = remove_quotes(raw).strip().upper()
    if name in KNOWN_PARAMETERS:
        return name
    name = re.sub(r"[^A-Z0-9]", "_", _strip_accents(name))
    for canonical, prefixes in _PARAMETER_PREFIXES:
        if name.startswith(prefixes):
            return canonical
    return name


# ---------------------------------------------------------------------------
# Header coordinates
# ---------------------------------------------------------------------------

def parse_header_specs(specs: list[str]) -> dict[int, list[tuple[int, str]]]:
    """Parse ``FIELDTYPE:line:column`` triples.

    Returns:
        Mapping of 1-based header line number to the ``(column, field_type)``
        pairs to read on that line, in declaration order.

    Raises:
        ConfigurationError: If a triple is malformed, a line or column number
            is not a positive integer, or a field type is unknown.
    """
    by_line: dict[int, list[tuple[int, str]]] = {}
    for spec in specs:
        parts = [part.strip() for part in spec.split(":")]
        if len(parts) != 3:
            raise ConfigurationError(f"Wrong format for metadata specification '{spec}'")
        field_type = parts[0].upper()
        if field_type not in METADATA_FIELD_TYPES:
            raise ConfigurationError(f"Unknown metadata field type '{parts[0]}' in '{spec}'")
        try:
            line_number, column = int(parts[1]), int(parts[2])
        except ValueError:
            raise ConfigurationError(
                f"Line and column numbers must be integers in metadata specification '{spec}'"
            ) from None
        if line_number <= 0 or column <= 0:
            raise ConfigurationError(
                f"Line and column numbers must be > 0 in metadata specification '{spec}'"
            )
        by_line.setdefault(line_number, []).append((column, field_type))
    return by_line


def extract_from_header_line(
    line: str,
    specs: list[tuple[int, str]],
    delimiter: str,
    into: MetadataFields,
    source: str = "",
) -> None:
    """Read the metadata declared for one header line into *into*.

    Args:
        line: The (comment-stripped, trimmed) header line.
        specs: ``(column, field_type)`` pairs for this line (1-based columns).
        delimiter: Header delimiter.
        into: Record collecting header metadata for the file.
        source: File name, for error messages.

    Raises:
        MetadataExtractionFailed: If a column does not exist on the line.
    """
    tokens = split_line(line, delimiter)
    for column, field_type in specs:
        if column > len(tokens):
            raise MetadataExtractionFailed(
                f"Metadata specification for '{field_type}' refers to non-existent "
                f"column {column} in {source}"
            )
        into.assign(field_type, remove_quotes(tokens[column - 1]).strip(), source)


# ---------------------------------------------------------------------------
# Filename patterns
# ---------------------------------------------------------------------------

def _compile_filename_pattern(pattern: str) -> tuple[str, list[tuple[str, str]]]:
    """Split a filename pattern into a leading literal and (field, literal) pairs."""
    if pattern.count("{") != pattern.count("}"):
        raise ConfigurationError(f"Unbalanced braces in filename pattern '{pattern}'")
    pieces = _PLACEHOLDER_RE.split(pattern)
    # split() alternates literal, field, literal, field, ..., literal
    leading = pieces[0]
    pairs = [(pieces[idx].strip().upper(), pieces[idx + 1]) for idx in range(1, len(pieces), 2)]
    if not pairs:
        raise ConfigurationError(f"No variables defined in filename pattern '{pattern}'")
    for field_type, literal in pairs[:-1]:
        if not literal:
            raise ConfigurationError(
                f"Filename pattern '{pattern}' has two adjacent variables, they can not be separated"
            )
    for field_type, _ in pairs:
        if field_type not in METADATA_FIELD_TYPES:
            raise ConfigurationError(f"Unknown metadata field type '{field_type}' in '{pattern}'")
    return leading, pairs


def extract_from_filename(path: str | Path, pattern: str) -> MetadataFields:
    """Decompose a file name (extension excluded) with a ``{FIELDTYPE}`` pattern.

    Matching is left to right: the leading literal must be a prefix of the
    name; each variable then ends where the next literal is first found.
    The last variable extends to the end of the name (or to a trailing
    literal, which must then be a suffix of the name).

    Raises:
        MetadataExtractionFailed: If a literal segment can not be matched.
        ConfigurationError: If the pattern itself is malformed.
    """
    stem = Path(path).stem
    leading, pairs = _compile_filename_pattern(pattern)
    mismatch = (
        f"The filename pattern '{pattern}' does not match the filename '{stem}' "
        "for metadata extraction"
    )
    if not stem.startswith(leading):
        raise MetadataExtractionFailed(mismatch)

    extracted = MetadataFields()
    pos = len(leading)
    last = len(pairs) - 1
    for idx, (field_type, literal) in enumerate(pairs):
        if idx == last:
            if literal:
                if not stem.endswith(literal) or len(stem) - len(literal) < pos:
                    raise MetadataExtractionFailed(mismatch)
                end = len(stem) - len(literal)
            else:
                end = len(stem)
        else:
            end = stem.find(literal, pos)
            if end < 0:
                raise MetadataExtractionFailed(mismatch)
        extracted.assign(field_type, stem[pos:end], str(path))
        pos = end + len(literal)

    logger.debug("Filename metadata for %s: %s", stem, extracted)
    return extracted


# ---------------------------------------------------------------------------
# Position strings
# ---------------------------------------------------------------------------

def parse_position(text: str) -> Location:
    """Parse a ``latlon (lat, lon, alt)`` or ``xy (easting, northing, alt)`` string.

    Parentheses, commas and the altitude are optional.

    Raises:
        ConfigurationError: If the string can not be parsed.
    """
    match = _POSITION_RE.match(text)
    if match is None:
        raise ConfigurationError(f"Can not parse position specification '{text}'")
    kind, first, second, altitude = match.groups()
    try:
        a, b = float(first), float(second)
        alt = float(altitude) if altitude is not None else None
    except ValueError:
        raise ConfigurationError(f"Non-numeric coordinates in position specification '{text}'") from None
    if kind.lower() == "latlon":
        return Location(latitude=a, longitude=b, altitude=alt)
    return Location(easting=a, northing=b, altitude=alt)


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

def merge_metadata(*sources: MetadataFields | None) -> MetadataFields:
    """Merge metadata records, earlier sources taking priority."""
    merged = MetadataFields()
    for source in sources:
        if source is None:
            continue
        for item in fields(MetadataFields):
            current = getattr(merged, item.name)
            if current is None or current == "":
                setattr(merged, item.name, getattr(source, item.name))
    return merged


def resolve_station(
    path: str | Path,
    configured: MetadataFields | None = None,
    header: MetadataFields | None = None,
    filename: MetadataFields | None = None,
    station_index: str | None = None,
) -> tuple[StationInfo, MetadataFields]:
    """Build the station identity of a file from all metadata sources.

    Args:
        path: The data file.
        configured: Explicit per-file configuration values.
        header: Values read from header coordinates.
        filename: Values decomposed from the file name.
        station_index: The ``n`` of the ``STATION<n>`` key, used for the
            default id.

    Returns:
        ``(station, merged)`` where *merged* still carries the nodata
        marker and parameter name found along the way.

    Raises:
        MetadataExtractionFailed: If no geolocation is available or the
            coordinates are inconsistent.
    """
    merged = merge_metadata(configured, header, filename)
    location = Location(
        latitude=merged.latitude,
        longitude=merged.longitude,
        easting=merged.easting,
        northing=merged.northing,
        altitude=merged.altitude,
    )
    if location.is_nodata():
        raise MetadataExtractionFailed(
            f"Missing geographic coordinates for '{path}', please consider providing a POSITION key"
        )
    location.check(str(path))

    name = merged.name or Path(path).stem
    if merged.id:
        station_id = merged.id
    elif station_index:
        station_id = f"ID{station_index}"
    else:
        station_id = name

    slope, azimuth = merged.slope, merged.azimuth
    if not (slope == 0.0 or (slope is not None and azimuth is not None)):
        slope, azimuth = None, None

    station = StationInfo(id=station_id, name=name, location=location, slope=slope, azimuth=azimuth)
    return station, merged
