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

from __future__ import annotations

__all__ = ("FitsFile", "ScanState")

import enum
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from logging import getLogger
from typing import Any, Self, final

from lsst.resources import ResourcePathExpression

from ._accumulator import read_header
from ._errors import ClosedSourceError, LexError, StructuralError
from ._hdus import Hdu, HduSummary, make_hdu
from ._header import BLOCK_LENGTH
from ._options import ReadOptions
from ._sources import BufferSource, DataSource, open_source

_LOG = getLogger(__name__)


class ScanState(enum.Enum):
    """States of the walk over a file's HDUs."""

    EMPTY = enum.auto()
    """Nothing has been read yet."""

    SCANNING_HEADER = enum.auto()
    """A header is being read and validated."""

    HEADER_COMPLETE = enum.auto()
    """A header has been validated and its data unit is being located."""

    DATA_VIEW_READY = enum.auto()
    """The most recent HDU is available; more may follow."""

    END_OF_SOURCE = enum.auto()
    """All HDUs have been found."""

    FAILED = enum.auto()
    """A header could not be read; HDUs before it remain usable."""


class _FileSource:
    """A source proxy whose lifetime is tied to a `FitsFile`, so closing the
    file invalidates every view even when the underlying source is borrowed.
    """

    def __init__(self, source: DataSource, owns_source: bool):
        self._source = source
        self._owns_source = owns_source
        self._closed = False

    def __repr__(self) -> str:
        return repr(self._source)

    def read_at(self, offset: int, length: int) -> bytes:
        if self._closed:
            raise ClosedSourceError("Read from a closed FITS file.", offset=offset, length=length)
        return self._source.read_at(offset, length)

    def length(self) -> int | None:
        if self._closed:
            raise ClosedSourceError("Length of a closed FITS file.", offset=0, length=0)
        return self._source.length()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            if self._owns_source:
                self._source.close()

    @property
    def closed(self) -> bool:
        return self._closed or self._source.closed


@final
class FitsFile:
    """A lazily-read sequence of HDUs.

    Parameters
    ----------
    source
        Byte source holding the FITS content.
    options, optional
        Reading options; defaults to `ReadOptions.DEFAULT`.
    owns_source, optional
        Whether closing the file also closes ``source``.  Whether or not it
        does, reads through HDUs of a closed file raise `ClosedSourceError`.

    Notes
    -----
    Headers are read only when an HDU at or past their position is requested,
    and are cached for the lifetime of the file.  Scanning is serialized
    under a lock; decoding data from HDUs that have already been found is
    not, and may proceed concurrently from multiple threads.

    A header that cannot be read (`StructuralError` or `LexError`) stops the
    walk: the HDUs before it remain available, the error is kept in
    `scan_error`, and any request that needs an HDU at or beyond it raises
    that error.
    """

    def __init__(
        self, source: DataSource, *, options: ReadOptions | None = None, owns_source: bool = True
    ):
        self._source = _FileSource(source, owns_source)
        self._options = options if options is not None else ReadOptions.DEFAULT
        self._hdus: list[Hdu] = []
        self._next_offset = 0
        self._state = ScanState.EMPTY
        self._error: StructuralError | LexError | None = None
        self._lock = threading.Lock()

    @classmethod
    @contextmanager
    def open(
        cls,
        path: ResourcePathExpression,
        *,
        partial: bool = False,
        memmap: bool = False,
        page_size: int = 2880 * 50,
        options: ReadOptions | None = None,
    ) -> Iterator[Self]:
        """Open a FITS file for lazy reading.

        Parameters
        ----------
        path
            File to read; convertible to `lsst.resources.ResourcePath`.
        partial, optional
            Whether only some of the file will be read.  If `False`
            (default), the entire raw file may be read into memory up front;
            if `True` it is read a page at a time through ``fsspec``.
        memmap, optional
            Whether to memory-map a local file instead.
        page_size, optional
            Minimum number of bytes to read at once when ``partial=True``.
            Making this a multiple of the FITS block size (2880) is
            recommended.
        options, optional
            Reading options.

        Returns
        -------
        `contextlib.AbstractContextManager` [`FitsFile`]
            A context manager that returns a `FitsFile` when entered and
            closes it on exit.
        """
        fits_file = cls(
            open_source(path, partial=partial, memmap=memmap, page_size=page_size), options=options
        )
        try:
            yield fits_file
        finally:
            fits_file.close()

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview, *, options: ReadOptions | None = None) -> Self:
        """Read FITS content held in memory."""
        return cls(BufferSource(data), options=options)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"FitsFile({self._source!r}, state={self._state.name})"

    @property
    def options(self) -> ReadOptions:
        return self._options

    @property
    def state(self) -> ScanState:
        """Current state of the walk over HDUs."""
        return self._state

    @property
    def scan_error(self) -> StructuralError | LexError | None:
        """The error that stopped the walk, if any."""
        return self._error

    @property
    def closed(self) -> bool:
        return self._source.closed

    def close(self) -> None:
        """Close the file.

        Cached headers remain accessible, but any later data read raises
        `ClosedSourceError`.
        """
        self._source.close()

    def _advance(self) -> bool:
        # Must be called with the lock held.
        if self._state in (ScanState.END_OF_SOURCE, ScanState.FAILED):
            return False
        index = len(self._hdus)
        offset = self._next_offset
        if not self._has_header_at(index, offset):
            self._state = ScanState.END_OF_SOURCE
            _LOG.debug("Found %d HDU(s); reached the end of the source at offset %d.", index, offset)
            return False
        previous_state = self._state
        self._state = ScanState.SCANNING_HEADER
        try:
            header, header_blocks = read_header(
                self._source, offset, primary=(index == 0), options=self._options
            )
        except StructuralError as err:
            self._fail(err.locate(index, offset))
            return False
        except LexError as err:
            self._fail(err)
            return False
        except BaseException:
            self._state = previous_state
            raise
        self._state = ScanState.HEADER_COMPLETE
        hdu = make_hdu(index, header, offset, header_blocks, self._source, self._options)
        _LOG.debug(
            "Found %s HDU %d: header at %d (%d block(s)), %d data byte(s) at %d.",
            hdu.kind,
            index,
            offset,
            header_blocks,
            hdu.data_length,
            hdu.data_offset,
        )
        self._hdus.append(hdu)
        self._next_offset = hdu.next_header_offset
        self._state = ScanState.DATA_VIEW_READY
        return True

    def _has_header_at(self, index: int, offset: int) -> bool:
        if self._source.closed:
            raise ClosedSourceError("Cannot scan a closed FITS file.", offset=offset, length=BLOCK_LENGTH)
        if index == 0:
            # The primary header is required; let read_header report what is
            # wrong with it.
            return True
        probe = self._source.read_at(offset, BLOCK_LENGTH)
        if not probe:
            return False
        if len(probe) < BLOCK_LENGTH:
            _LOG.warning("Ignoring %d trailing byte(s) at offset %d.", len(probe), offset)
            return False
        if not probe.strip(b"\0"):
            _LOG.warning("Ignoring zero padding after the last HDU at offset %d.", offset)
            return False
        return True

    def _fail(self, error: StructuralError | LexError) -> None:
        self._error = error
        self._state = ScanState.FAILED
        _LOG.warning(
            "Stopped reading HDUs at index %d (offset %d): %s", len(self._hdus), self._next_offset, error
        )

    def _get(self, index: int) -> Hdu | None:
        with self._lock:
            while len(self._hdus) <= index and self._advance():
                pass
            if index < len(self._hdus):
                return self._hdus[index]
        return None

    def scan(self) -> list[Hdu]:
        """Read every header in the file.

        Returns
        -------
        hdus
            All HDUs that could be read.  If the walk stopped on an invalid
            header, the error is available in `scan_error` rather than
            raised.
        """
        with self._lock:
            while self._advance():
                pass
            return list(self._hdus)

    def __len__(self) -> int:
        """Number of HDUs that could be read (scans the whole file)."""
        return len(self.scan())

    def __iter__(self) -> Iterator[Hdu]:
        """Iterate over HDUs, reading headers as needed.

        Raises
        ------
        StructuralError
        LexError
            Raised after the last valid HDU has been yielded if the walk
            stopped on an invalid header.
        """
        index = 0
        while (hdu := self._get(index)) is not None:
            yield hdu
            index += 1
        if self._error is not None:
            raise self._error

    def __getitem__(self, key: int | str | tuple[str, int]) -> Hdu:
        """Return an HDU by index, ``EXTNAME``, or ``(EXTNAME, EXTVER)``.

        Raises
        ------
        IndexError
            Raised if the file has fewer HDUs than requested.
        KeyError
            Raised if no HDU has the given name (and version).
        StructuralError
        LexError
            Raised if the walk stopped on an invalid header before the
            requested HDU was found.
        """
        match key:
            case bool():
                raise TypeError(f"Invalid HDU key {key!r}.")
            case int() if key < 0:
                hdus = self.scan()
                if -key > len(hdus):
                    self._raise_if_failed()
                    raise IndexError(f"HDU index {key} is out of range for {len(hdus)} HDU(s).")
                return hdus[key]
            case int():
                if (hdu := self._get(key)) is None:
                    self._raise_if_failed()
                    raise IndexError(f"HDU index {key} is out of range for {len(self._hdus)} HDU(s).")
                return hdu
            case str():
                return self.get_by_name(key)
            case (str() as name, int() as version):
                return self.get_by_name(name, version)
        raise TypeError(f"Invalid HDU key {key!r}.")

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error

    def get_by_name(self, name: str, version: int | None = None) -> Hdu:
        """Return the first HDU with the given ``EXTNAME`` (compared without
        regard to case) and, optionally, ``EXTVER``.

        Raises
        ------
        KeyError
            Raised if no HDU matches.
        StructuralError
        LexError
            Raised if the walk stopped on an invalid header before a match
            was found.
        """
        key = name.strip().upper()
        for hdu in self:
            hdu_name = hdu.name
            if hdu_name is None or hdu_name.upper() != key:
                continue
            if version is None or hdu.version == version:
                return hdu
        if version is None:
            raise KeyError(f"No HDU with EXTNAME={name!r}.")
        raise KeyError(f"No HDU with EXTNAME={name!r} and EXTVER={version}.")

    @property
    def primary(self) -> Hdu:
        """The primary HDU."""
        return self[0]

    def info(self) -> list[HduSummary]:
        """Summarize every HDU that could be read."""
        return [hdu.summary() for hdu in self.scan()]

    @property
    def hdus(self) -> list[Hdu]:
        """The HDUs found so far, without reading further."""
        with self._lock:
            return list(self._hdus)
