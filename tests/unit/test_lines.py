"""
Unit tests for line handling (meteo_csv_ingest.lines).

Covers end-of-line detection, byte offsets reported by ``LineReader``
(which the position index relies on) and the tokenizing helpers.
"""

from __future__ import annotations

import io

import pytest

from meteo_csv_ingest.lines import (
    Eol,
    LineReader,
    canonical_name,
    detect_eol,
    remove_quotes,
    split_line,
    strip_comments,
)


def _lines(data: bytes, eol: Eol) -> list[tuple[int, str]]:
    return list(LineReader(io.BytesIO(data), eol))


class TestDetectEol:
    """Tests for detect_eol()."""

    @pytest.mark.parametrize(
        "data, expected",
        [
            (b"a,b\nc,d\n", Eol.LF),
            (b"a,b\r\nc,d\r\n", Eol.CRLF),
            (b"a,b\rc,d\r", Eol.CR),
            (b"a,b", Eol.LF),
            (b"", Eol.LF),
        ],
    )
    def test_styles(self, data, expected):
        assert detect_eol(io.BytesIO(data)) is expected

    def test_position_restored(self):
        fh = io.BytesIO(b"a\r\nb\r\n")
        detect_eol(fh)
        assert fh.tell() == 0

    def test_cr_at_sample_boundary(self):
        assert detect_eol(io.BytesIO(b"abc\r\nd"), sample_size=4) is Eol.CRLF


class TestLineReader:
    """Tests for LineReader."""

    def test_crlf_offsets(self):
        assert _lines(b"a,b\r\nc,d\r\ne", Eol.CRLF) == [(0, "a,b"), (5, "c,d"), (10, "e")]

    def test_lf_trailing_newline(self):
        assert _lines(b"x\ny\n", Eol.LF) == [(0, "x"), (2, "y")]

    def test_cr_only(self):
        assert _lines(b"a\rb\r", Eol.CR) == [(0, "a"), (2, "b")]

    def test_empty_lines_kept(self):
        assert _lines(b"a\n\nb\n", Eol.LF) == [(0, "a"), (2, ""), (3, "b")]

    def test_bom_stripped(self):
        assert _lines(b"\xef\xbb\xbfx\ny\n", Eol.LF) == [(0, "x"), (4, "y")]

    def test_seek_and_tell(self):
        reader = LineReader(io.BytesIO(b"a,b\r\nc,d\r\ne"), Eol.CRLF)
        reader.read_line()
        assert reader.tell() == 5
        reader.seek(10)
        assert reader.read_line() == (10, "e")
        reader.seek(5)
        assert reader.read_line() == (5, "c,d")
        assert reader.read_line() == (10, "e")
        assert reader.read_line() is None

    def test_skip(self):
        reader = LineReader(io.BytesIO(b"1\n2\n3\n"), Eol.LF)
        assert reader.skip(2) == 2
        assert reader.read_line() == (4, "3")
        assert reader.skip(5) == 0

    def test_offsets_across_chunks(self):
        lines = [f"{i},value_{i}" for i in range(20000)]
        data = ("\n".join(lines) + "\n").encode()
        result = _lines(data, Eol.LF)
        assert len(result) == len(lines)
        for offset, text in result[::997]:
            assert data[offset:].startswith(text.encode() + b"\n")

    def test_latin1(self):
        reader = LineReader(io.BytesIO("Zürich\n".encode("latin-1")), Eol.LF, encoding="latin-1")
        assert reader.read_line() == (0, "Zürich")


class TestTextHelpers:
    """Tests for the tokenizing helpers."""

    def test_strip_comments(self):
        assert strip_comments("1,2 # note", "#") == "1,2 "
        assert strip_comments("1,2", "#") == "1,2"
        assert strip_comments("1,2 # note", None) == "1,2 # note"

    def test_remove_quotes(self):
        assert remove_quotes("\"a\",'b'") == "a,b"

    def test_split_trims_tokens(self):
        assert split_line("a, b ,c,", ",") == ["a", "b", "c", ""]

    def test_split_empty_line(self):
        assert split_line("", ",") == []

    def test_split_whitespace(self):
        assert split_line("  a   b\tc ", " ") == ["a", "b", "c"]

    def test_canonical_name(self):
        assert canonical_name(' "air  temp" ') == "AIR_TEMP"
        assert canonical_name("ta") == "TA"
