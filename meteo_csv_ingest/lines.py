"""
Low-level line handling for meteo-csv-ingest.

Data files are opened in binary mode so that the byte offset of every
line is known exactly. Those offsets are what the position index stores
and what a later read seeks to. This module provides:

- ``detect_eol()``: find the end-of-line style of a file once (``\\n``,
  ``\\r\\n`` or a bare ``\\r``);
- ``LineReader``: a buffered line iterator yielding ``(offset, text)``;
- small text helpers shared by the layout resolver and the row
  pipeline (comment stripping, quote removal, tokenizing).

The file encoding must be ASCII compatible (UTF-8, Latin-1, ...) since
lines are split on raw bytes before decoding.
"""

from __future__ import annotations

import codecs
import logging
from enum import Enum
from typing import BinaryIO, Iterator

logger = logging.getLogger(__name__)

WHITESPACE_DELIMITER = " "

_CHUNK_SIZE = 64 * 1024


class Eol(str, Enum):
    """End-of-line styles."""

    LF = "\n"
    CRLF = "\r\n"
    CR = "\r"


def detect_eol(fh: BinaryIO, sample_size: int = _CHUNK_SIZE) -> Eol:
    """Detect the end-of-line style from the beginning of a binary file.

    The file position is restored afterwards. Files without any line
    break are reported as ``Eol.LF``.
    """
    start = fh.tell()
    sample = fh.read(sample_size)
    fh.seek(start)

    for idx, byte in enumerate(sample):
        if byte == 0x0A:
            return Eol.LF
        if byte == 0x0D:
            if idx + 1 < len(sample) and sample[idx + 1] == 0x0A:
                return Eol.CRLF
            if idx + 1 == len(sample) and len(sample) == sample_size:
                # \r at the very end of the sample, look one byte further
                fh.seek(start + sample_size)
                following = fh.read(1)
                fh.seek(start)
                if following == b"\n":
                    return Eol.CRLF
            return Eol.CR
    return Eol.LF


class LineReader:
    """Buffered line iterator over a binary file, tracking byte offsets.

    Args:
        fh: File opened in binary mode.
        eol: End-of-line style of the file (see ``detect_eol``).
        encoding: Text encoding used to decode each line.
    """

    def __init__(self, fh: BinaryIO, eol: Eol, encoding: str = "utf-8") -> None:
        self._fh = fh
        self._sep = b"\r" if eol is Eol.CR else b"\n"
        self._strip_cr = eol is not Eol.CR
        self.encoding = encoding
        self._buffer = b""
        self._buffer_start = fh.tell()
        self._pos = 0

    def tell(self) -> int:
        """Byte offset of the next line to be read."""
        return self._buffer_start + self._pos

    def seek(self, offset: int) -> None:
        """Position the reader at *offset* (which must be a line start)."""
        self._fh.seek(offset)
        self._buffer = b""
        self._buffer_start = offset
        self._pos = 0

    def read_line(self) -> tuple[int, str] | None:
        """Return ``(offset, text)`` of the next line, or ``None`` at EOF.

        The end-of-line characters are not part of *text*.
        """
        while True:
            idx = self._buffer.find(self._sep, self._pos)
            if idx >= 0:
                raw = self._buffer[self._pos:idx]
                offset = self._buffer_start + self._pos
                self._pos = idx + 1
                return offset, self._decode(raw, offset)

            chunk = self._fh.read(_CHUNK_SIZE)
            if not chunk:
                if self._pos < len(self._buffer):
                    raw = self._buffer[self._pos:]
                    offset = self._buffer_start + self._pos
                    self._pos = len(self._buffer)
                    return offset, self._decode(raw, offset)
                return None

            self._buffer = self._buffer[self._pos:] + chunk
            self._buffer_start += self._pos
            self._pos = 0

    def skip(self, count: int) -> int:
        """Skip up to *count* lines, returning how many were skipped."""
        skipped = 0
        while skipped < count and self.read_line() is not None:
            skipped += 1
        return skipped

    def __iter__(self) -> Iterator[tuple[int, str]]:
        while True:
            item = self.read_line()
            if item is None:
                return
            yield item

    def _decode(self, raw: bytes, offset: int) -> str:
        if self._strip_cr and raw.endswith(b"\r"):
            raw = raw[:-1]
        if offset == 0 and raw.startswith(codecs.BOM_UTF8):
            raw = raw[len(codecs.BOM_UTF8):]
        return raw.decode(self.encoding, errors="replace")


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def strip_comments(line: str, marker: str | None) -> str:
    """Truncate *line* at the first occurrence of the comment *marker*."""
    if not marker:
        return line
    idx = line.find(marker)
    return line if idx < 0 else line[:idx]


def remove_quotes(text: str) -> str:
    """Remove every single and double quote character."""
    return text.replace('"', "").replace("'", "")


def split_line(line: str, delimiter: str) -> list[str]:
    """Tokenize a line, trimming every token.

    With the whitespace delimiter, runs of spaces/tabs count as a single
    separator. An empty line gives no tokens.
    """
    if delimiter == WHITESPACE_DELIMITER:
        return line.split()
    if not line:
        return []
    return [token.strip() for token in line.split(delimiter)]


def canonical_name(name: str) -> str:
    """Canonicalize a column or field name.

    Quotes are removed, the name is trimmed and upper-cased and any
    internal run of whitespace becomes a single underscore:
    ``' air temp '`` -> ``'AIR_TEMP'``.
    """
    return "_".join(remove_quotes(name).upper().split())
