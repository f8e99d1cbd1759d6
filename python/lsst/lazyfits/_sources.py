# This file is part of lsst-lazyfits.
#
# Developed for the LSST Data Management System.
# This product includes software developed by the LSST Project
# (https://www.lsst.org).
# See the COPYRIGHT file at the top-level directory of this distribution
# for details of code ownership.
#
# Use of this source code is governed by a 3-clause BSD-style
# license that can be found in the LICENSE file.

"""Byte sources that HDUs read their headers and data from.

All reads are positioned (``read_at``); nothing in this package relies on a
shared file cursor.  Sources backed by a single seekable stream serialize
their seek-and-read pairs under a lock so that HDUs may still be decoded from
multiple threads.
"""

from __future__ import annotations

__all__ = ("BufferSource", "DataSource", "StreamSource", "open_source")

import mmap
import os
import threading
from typing import IO, Protocol

import fsspec

from lsst.resources import ResourcePath, ResourcePathExpression

from ._errors import ClosedSourceError, SourceError


class DataSource(Protocol):
    """Interface for the read-only byte sources FITS content is read from."""

    def read_at(self, offset: int, length: int) -> bytes:
        """Read up to ``length`` bytes starting at ``offset``.

        Fewer bytes are returned only when the end of the source is reached.

        Raises
        ------
        SourceError
            Raised if the underlying read fails.
        ClosedSourceError
            Raised if the source has been closed.
        """
        ...

    def length(self) -> int | None:
        """Return the total size of the source in bytes, or `None` if it is
        not known.
        """
        ...

    def close(self) -> None:
        """Release any resources held by the source."""
        ...

    @property
    def closed(self) -> bool:
        """Whether `close` has been called."""
        ...


class BufferSource:
    """A source backed by an in-memory buffer or memory map.

    Parameters
    ----------
    buffer
        Any object supporting the buffer protocol (`bytes`, `bytearray`,
        `memoryview`, `mmap.mmap`, ...).
    """

    def __init__(self, buffer: bytes | bytearray | memoryview | mmap.mmap):
        self._buffer = buffer
        self._view: memoryview | None = memoryview(buffer).cast("B")

    def __repr__(self) -> str:
        state = "closed" if self._view is None else f"{len(self._view)} bytes"
        return f"BufferSource(<{state}>)"

    def read_at(self, offset: int, length: int) -> bytes:
        if self._view is None:
            raise ClosedSourceError("Read from a closed buffer.", offset=offset, length=length)
        if offset < 0 or length < 0:
            raise SourceError("Negative offset or length.", offset=offset, length=length)
        return bytes(self._view[offset : offset + length])

    def length(self) -> int | None:
        if self._view is None:
            raise ClosedSourceError("Length of a closed buffer.", offset=0, length=0)
        return len(self._view)

    def close(self) -> None:
        if self._view is not None:
            self._view.release()
            self._view = None
            if isinstance(self._buffer, mmap.mmap):
                self._buffer.close()

    @property
    def closed(self) -> bool:
        return self._view is None


class StreamSource:
    """A source backed by a seekable binary stream.

    Parameters
    ----------
    stream
        Readable, seekable binary file-like object.
    owns_stream, optional
        Whether `close` should also close ``stream``.

    Notes
    -----
    Each `read_at` call holds a lock across its seek and read, so a single
    instance may be shared between threads.
    """

    def __init__(self, stream: IO[bytes], *, owns_stream: bool = True):
        self._stream = stream
        self._owns_stream = owns_stream
        self._lock = threading.Lock()
        self._closed = False
        self._length: int | None = None

    def __repr__(self) -> str:
        return f"StreamSource({self._stream!r})"

    def read_at(self, offset: int, length: int) -> bytes:
        if offset < 0 or length < 0:
            raise SourceError("Negative offset or length.", offset=offset, length=length)
        with self._lock:
            if self._closed:
                raise ClosedSourceError("Read from a closed stream.", offset=offset, length=length)
            try:
                self._stream.seek(offset, os.SEEK_SET)
                chunks: list[bytes] = []
                remaining = length
                # Raw streams may legitimately return short reads before EOF.
                while remaining > 0:
                    chunk = self._stream.read(remaining)
                    if not chunk:
                        break
                    chunks.append(chunk)
                    remaining -= len(chunk)
            except (OSError, ValueError) as err:
                raise SourceError(
                    f"Failed to read from {self._stream!r}.", offset=offset, length=length
                ) from err
        return b"".join(chunks)

    def length(self) -> int | None:
        with self._lock:
            if self._closed:
                raise ClosedSourceError("Length of a closed stream.", offset=0, length=0)
            if self._length is None:
                try:
                    self._length = self._stream.seek(0, os.SEEK_END)
                except (OSError, ValueError):
                    return None
            return self._length

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._closed = True
                if self._owns_stream:
                    self._stream.close()

    @property
    def closed(self) -> bool:
        return self._closed


def open_source(
    path: ResourcePathExpression,
    *,
    partial: bool = False,
    memmap: bool = False,
    page_size: int = 2880 * 50,
) -> DataSource:
    """Open a file as a `DataSource`.

    Parameters
    ----------
    path
        File to read; convertible to `lsst.resources.ResourcePath`.
    partial, optional
        Whether only some of the file is expected to be read.  If `False`
        (default), the entire file is read into memory up front; if `True`, it
        is read on demand through `fsspec`.
    memmap, optional
        Memory-map a local file instead of reading it.  Takes precedence over
        ``partial``.
    page_size, optional
        Minimum number of bytes to read at once when ``partial`` is `True`.
        Making this a multiple of the FITS block size (2880) is recommended.

    Returns
    -------
    DataSource
        The opened source; the caller is responsible for closing it.
    """
    path = ResourcePath(path)
    if memmap:
        if not path.isLocal:
            raise ValueError(f"Cannot memory-map non-local file {path}.")
        with open(path.ospath, "rb") as stream:
            if os.fstat(stream.fileno()).st_size == 0:
                return BufferSource(b"")
            return BufferSource(mmap.mmap(stream.fileno(), 0, access=mmap.ACCESS_READ))
    if not partial:
        return BufferSource(path.read())
    fs: fsspec.AbstractFileSystem
    fs, fp = path.to_fsspec()
    return StreamSource(fs.open(fp, mode="rb", block_size=page_size))
