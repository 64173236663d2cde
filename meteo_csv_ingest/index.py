"""
Sparse timestamp -> byte offset index for meteo-csv-ingest.

While a file in ascending order is read, every ``INDEX_EVERY_N_LINES``-th
line records ``(timestamp, offset, line_number)``: the timestamp of the
row, the byte offset where that row starts and its physical line number.
A later read of the same file for a range starting at ``start`` seeks to
the latest entry whose timestamp is before ``start`` instead of re-reading
from the end of the header.

The index is purely an optimisation, never persisted, and owned by the
caller: one ``PositionIndex`` is passed explicitly to every read that
should share it. Entries are kept per file key (the path, plus the
station id when one file holds several stations) and guarded by a lock
so that several files may be read in parallel threads against the same
index.
"""

from __future__ import annotations

import bisect
import logging
import threading
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)

INDEX_EVERY_N_LINES = 2000


@dataclass(frozen=True, order=True)
class IndexEntry:
    """One seek point."""

    timestamp: datetime
    offset: int
    line_number: int


class PositionIndex:
    """Per-file sparse index of seek points.

    Example::

        index = PositionIndex()
        records = read_file(layout, start, end, index=index)
        # a second, later read resumes near ``start2``
        records = read_file(layout, start2, end2, index=index)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, list[IndexEntry]] = {}

    def set_index(self, key: str, timestamp: datetime, offset: int, line_number: int) -> None:
        """Record a seek point for file *key* (duplicates are ignored)."""
        entry = IndexEntry(timestamp, offset, line_number)
        with self._lock:
            entries = self._entries.setdefault(key, [])
            pos = bisect.bisect_left(entries, entry)
            if pos < len(entries) and entries[pos] == entry:
                return
            entries.insert(pos, entry)

    def get_index(self, key: str, start: datetime) -> IndexEntry | None:
        """Latest seek point of file *key* whose timestamp is strictly before *start*.

        Rows preceding an indexed line may share its timestamp, so an
        entry stamped exactly ``start`` is not a safe place to resume.
        """
        with self._lock:
            entries = self._entries.get(key)
            if not entries:
                return None
            timestamps = [entry.timestamp for entry in entries]
            pos = bisect.bisect_left(timestamps, start)
            if pos == 0:
                return None
            entry = entries[pos - 1]
        logger.debug("Index hit for %s at %s: offset %d", key, start, entry.offset)
        return entry

    def entries(self, key: str) -> list[IndexEntry]:
        """Copy of the seek points recorded for file *key*, in time order."""
        with self._lock:
            return list(self._entries.get(key, ()))

    def clear(self, key: str | None = None) -> None:
        """Drop the entries of file *key*, or of every file."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())
