# watchoffline/ranges.py
from __future__ import annotations

import io
import logging
import threading
from typing import AsyncIterator, Callable, Dict, Optional, Protocol, Tuple

import anyio
from anyio import to_thread
from fastapi import Request
from fastapi.responses import StreamingResponse

from .smb import RemoteFile

log = logging.getLogger("gateway")

CHUNK_SIZE = 64 * 1024


# -----------------------------------------------------------------------------
# Range header
# -----------------------------------------------------------------------------
def parse_range(range_header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """Inclusive (start, end) for a ``bytes=`` header, clamped to the file.

    Returns None when there is no usable range; the caller then serves the
    whole file with 200. Only the first range of a multi-range header is used.
    """
    if not range_header or size <= 0:
        return None
    h = range_header.strip().lower()
    if not h.startswith("bytes="):
        return None
    first = h[len("bytes="):].split(",", 1)[0].strip()
    if "-" not in first:
        return None
    start_s, end_s = (p.strip() for p in first.split("-", 1))
    try:
        if start_s == "":
            if end_s == "":
                return None
            suffix = int(end_s)
            if suffix <= 0:
                return None
            start, end = max(0, size - suffix), size - 1
        else:
            start = int(start_s)
            end = int(end_s) if end_s else size - 1
    except ValueError:
        return None
    start = min(max(start, 0), size - 1)
    end = min(max(end, start), size - 1)
    return start, end


def response_headers(size: int, rng: Optional[Tuple[int, int]]) -> Tuple[int, Dict[str, str]]:
    if rng is None:
        return 200, {"Accept-Ranges": "bytes", "Content-Length": str(size)}
    start, end = rng
    return 206, {
        "Accept-Ranges": "bytes",
        "Content-Range": f"bytes {start}-{end}/{size}",
        "Content-Length": str(end - start + 1),
    }


# -----------------------------------------------------------------------------
# Sequential sources
# -----------------------------------------------------------------------------
class ByteSource(Protocol):
    def skip(self, n: int) -> int: ...
    def read(self, n: int) -> bytes: ...
    def close(self) -> None: ...


class RemoteSource:
    """Sequential cursor over a positional remote file."""

    def __init__(self, remote: RemoteFile):
        self._remote = remote
        self._pos = 0

    def skip(self, n: int) -> int:
        step = max(0, min(n, self._remote.size - self._pos))
        self._pos += step
        return step

    def read(self, n: int) -> bytes:
        data = self._remote.read(self._pos, n)
        self._pos += len(data)
        return data

    def close(self) -> None:
        self._remote.close()


class LocalSource:
    def __init__(self, path: str):
        self._f: io.BufferedReader = open(path, "rb")

    def skip(self, n: int) -> int:
        before = self._f.tell()
        return self._f.seek(n, io.SEEK_CUR) - before

    def read(self, n: int) -> bytes:
        return self._f.read(n)

    def close(self) -> None:
        self._f.close()


# -----------------------------------------------------------------------------
# Bounded reader
# -----------------------------------------------------------------------------
class BoundedReader:
    """Exactly ``length`` bytes starting at ``start``, then EOF.

    A short ``skip`` is finished by reading and discarding. ``close`` runs the
    source's close once, whichever of completion, disconnect or error gets
    there first.
    """

    def __init__(self, source: ByteSource, start: int, length: int, chunk_size: int = CHUNK_SIZE):
        self._source = source
        self._start = start
        self._left = max(0, length)
        self._chunk = chunk_size
        self._positioned = start == 0
        self._closed = False
        self._lock = threading.Lock()

    def _seek_start(self) -> None:
        remaining = self._start - self._source.skip(self._start)
        while remaining > 0:
            data = self._source.read(min(remaining, self._chunk))
            if not data:
                raise EOFError(f"EOF while skipping to byte {self._start}")
            remaining -= len(data)
        self._positioned = True

    def read(self, n: int = -1) -> bytes:
        if self._left <= 0:
            return b""
        if not self._positioned:
            self._seek_start()
        want = self._left if n is None or n < 0 else min(n, self._left)
        data = self._source.read(want)
        if not data:
            self._left = 0
            return b""
        data = data[: self._left]
        self._left -= len(data)
        return data

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._source.close()


# -----------------------------------------------------------------------------
# Response
# -----------------------------------------------------------------------------
async def _iter_reader(reader: BoundedReader, request: Request, chunk_size: int) -> AsyncIterator[bytes]:
    while True:
        if await request.is_disconnected():
            log.info("client went away on %s", request.url.path)
            break
        data = await to_thread.run_sync(reader.read, chunk_size)
        if not data:
            break
        yield data


async def _close_shielded(closer: Callable[[], None]) -> None:
    with anyio.CancelScope(shield=True):
        await to_thread.run_sync(closer)


class RangeStreamResponse(StreamingResponse):
    """Streams a BoundedReader and closes it when the exchange ends for any reason."""

    def __init__(self, reader: BoundedReader, request: Request, *, status_code: int,
                 headers: Dict[str, str], media_type: str, chunk_size: int = CHUNK_SIZE):
        self.reader = reader
        super().__init__(
            _iter_reader(reader, request, chunk_size),
            status_code=status_code,
            headers=headers,
            media_type=media_type,
        )

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await _close_shielded(self.reader.close)


def ranged_response(source: ByteSource, size: int, range_header: Optional[str], request: Request,
                    media_type: str, chunk_size: int = CHUNK_SIZE) -> RangeStreamResponse:
    rng = parse_range(range_header, size)
    status, headers = response_headers(size, rng)
    start, end = rng if rng is not None else (0, size - 1)
    reader = BoundedReader(source, start, end - start + 1, chunk_size)
    return RangeStreamResponse(reader, request, status_code=status, headers=headers,
                               media_type=media_type, chunk_size=chunk_size)
