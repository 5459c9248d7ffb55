"""Range header parsing and the bounded reader behind every ranged body."""
import pytest

from watchoffline.ranges import BoundedReader, parse_range, response_headers


@pytest.mark.parametrize("header,size,expected", [
    (None, 100, None),
    ("bytes=0-9", 100, (0, 9)),
    ("bytes=10-", 100, (10, 99)),
    ("bytes=90-500", 100, (90, 99)),
    ("bytes=500-600", 100, (99, 99)),
    ("bytes=50-10", 100, (50, 50)),
    ("bytes=-20", 100, (80, 99)),
    ("BYTES=5-6", 100, (5, 6)),
    ("bytes=0-1,5-6", 100, (0, 1)),
    ("items=0-9", 100, None),
    ("bytes=abc", 100, None),
    ("bytes=x-y", 100, None),
    ("bytes=0-9", 0, None),
])
def test_parse_range(header, size, expected):
    assert parse_range(header, size) == expected


def test_headers_for_full_and_partial():
    status, headers = response_headers(100, None)
    assert status == 200
    assert headers["Accept-Ranges"] == "bytes"
    assert headers["Content-Length"] == "100"

    status, headers = response_headers(100, (10, 19))
    assert status == 206
    assert headers["Content-Range"] == "bytes 10-19/100"
    assert headers["Content-Length"] == "10"


class ListSource:
    """Sequential source whose skip can be made to fall short."""

    def __init__(self, data, skip_limit=None, read_limit=5):
        self.data = data
        self.pos = 0
        self.skip_limit = skip_limit
        self.read_limit = read_limit
        self.closed = 0

    def skip(self, n):
        step = n if self.skip_limit is None else min(n, self.skip_limit)
        step = min(step, len(self.data) - self.pos)
        self.pos += step
        return step

    def read(self, n):
        n = min(n, self.read_limit)
        out = self.data[self.pos:self.pos + n]
        self.pos += len(out)
        return out

    def close(self):
        self.closed += 1


def _drain(reader, chunk=3):
    out = b""
    while True:
        data = reader.read(chunk)
        if not data:
            return out
        out += data


def test_bounded_reader_returns_exact_slice():
    data = bytes(range(100))
    reader = BoundedReader(ListSource(data), start=10, length=25)
    assert _drain(reader) == data[10:35]
    assert reader.read(10) == b""


def test_short_skip_is_finished_by_reading():
    data = bytes(range(100))
    reader = BoundedReader(ListSource(data, skip_limit=3), start=40, length=10, chunk_size=4)
    assert _drain(reader) == data[40:50]


def test_skip_past_end_raises():
    reader = BoundedReader(ListSource(b"abc", skip_limit=0), start=10, length=5)
    with pytest.raises(EOFError):
        reader.read(5)


def test_reader_stops_at_length_even_if_source_has_more():
    reader = BoundedReader(ListSource(b"x" * 50, read_limit=50), start=0, length=7)
    assert reader.read(100) == b"x" * 7
    assert reader.read(100) == b""


def test_close_runs_once():
    src = ListSource(b"abc")
    reader = BoundedReader(src, 0, 3)
    reader.close()
    reader.close()
    assert src.closed == 1
