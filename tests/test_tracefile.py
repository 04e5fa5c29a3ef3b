import logging

import pytest

from cache import Op
from tracefile import (TraceFormatError, TraceStats, iter_records, parse_line,
                       read_trace, write_trace)


@pytest.mark.parametrize("line,expected", [
    ("0x1f r", (0x1F, Op.READ)),
    ("0x0000ABCD w\n", (0xABCD, Op.WRITE)),
    ("  0XFFFFFFFF   r  ", (0xFFFFFFFF, Op.READ)),
    # anything that is not 'r' counts as a write
    ("0x10 x", (0x10, Op.WRITE)),
    ("0x10 R", (0x10, Op.WRITE)),
])
def test_parse_line(line, expected):
    assert parse_line(line) == expected


@pytest.mark.parametrize("line", ["", "   \n", "# comment"])
def test_parse_line_skips_blank_and_comments(line):
    assert parse_line(line) is None


@pytest.mark.parametrize("line", [
    "0x10",
    "0x10 r extra",
    "10 r",
    "0xZZ r",
    "0x100000000 r",
    "0x10 rw",
    "0x r",
    "0x-10 r",
    "0x+10 r",
    "0x1_0 r",
    " 0x 10 r",
])
def test_parse_line_rejects_malformed(line):
    with pytest.raises(TraceFormatError):
        parse_line(line)


def test_iter_records_skips_and_counts_malformed(caplog):
    stats = TraceStats()
    lines = ["0x0 r", "garbage", "", "0x4 w", "0xG r"]
    with caplog.at_level(logging.WARNING, logger="tracefile"):
        records = list(iter_records(lines, stats, source="t.trace"))
    assert records == [(0x0, Op.READ), (0x4, Op.WRITE)]
    assert stats.as_dict() == {"lines": 5, "records": 2, "skipped": 2}
    assert "t.trace:2" in caplog.text
    assert "t.trace:5" in caplog.text


def test_read_trace_from_file(tmp_path):
    path = tmp_path / "a.trace"
    path.write_text("0x00000000 r\n0x00000010 w\nbad line here\n")
    stats = TraceStats()
    assert list(read_trace(path, stats)) == [(0x0, Op.READ), (0x10, Op.WRITE)]
    assert stats.skipped == 1


def test_read_trace_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(read_trace(tmp_path / "nope.trace"))


def test_write_trace_uses_record_format(tmp_path):
    path = tmp_path / "out.trace"
    assert write_trace(path, [(0x20, Op.WRITE), (0xABC, Op.READ)]) == 2
    assert path.read_text() == "0x00000020 w\n0x00000abc r\n"
    assert list(read_trace(path)) == [(0x20, Op.WRITE), (0xABC, Op.READ)]


def test_read_trace_skips_undecodable_line(tmp_path):
    path = tmp_path / "binary.trace"
    path.write_bytes(b"0x00 r\n\xff\xfe garbage\n0x10 r\n")
    stats = TraceStats()
    assert list(read_trace(path, stats)) == [(0x0, Op.READ), (0x10, Op.READ)]
    assert stats.as_dict() == {"lines": 3, "records": 2, "skipped": 1}
