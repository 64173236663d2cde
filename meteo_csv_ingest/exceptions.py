"""
Custom exception hierarchy for meteo-csv-ingest.

Two families:
- Configuration-time errors (``ConfigurationError``, ``InvalidFormatSpec``,
  ``MetadataExtractionFailed``) are raised while a file's layout is being
  resolved, before any data row is read. They always abort the setup of
  that file.
- Row-level errors (``FieldCountMismatch``, ``DateParseError``,
  ``ValueParseError``) are raised by the row pipeline. Whether they
  propagate, are logged and skipped, or are downgraded to nodata depends
  on the error policy of the read.
"""


class CsvIngestError(Exception):
    """Base exception for all meteo-csv-ingest errors."""


class ConfigurationError(CsvIngestError):
    """Raised when a layout declaration is malformed or inconsistent.

    For example:
    - both a decimal date type and date/time specifications are declared;
    - neither column headers nor explicit field names are available;
    - units offset/multiplier vectors do not match the column count;
    - the date/time representation is not fully determined.
    """


class InvalidFormatSpec(ConfigurationError):
    """Raised when a date/time pattern string cannot be compiled.

    Typical causes are a token appearing twice, a stray ``%`` character
    or a ``TZ`` token that is not at the very end of the pattern.
    """


class MetadataExtractionFailed(CsvIngestError):
    """Raised when station identity or geolocation cannot be resolved.

    Covers filename patterns that do not match, header coordinates that
    point to non-existent fields, non-numeric coordinates and, finally,
    the absence of any geolocation after all extraction strategies.
    """


class RowError(CsvIngestError):
    """Base class for errors tied to one physical line of a data file."""

    def __init__(self, message: str, filename: str = "", line_number: int = 0, line: str = "") -> None:
        super().__init__(message)
        self.filename = filename
        self.line_number = line_number
        self.line = line


class FieldCountMismatch(RowError):
    """Raised when a data line does not have the expected number of fields."""


class DateParseError(RowError):
    """Raised when the timestamp of a data line cannot be reconstructed."""


class ValueParseError(RowError):
    """Raised when a measurement field is not a valid number."""
