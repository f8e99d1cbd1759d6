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

__all__ = ("DataUnit",)

import threading
from typing import final

from ._errors import BoundsError, TruncatedDataError
from ._geometry import DataGeometry
from ._sources import DataSource


@final
class DataUnit:
    """The byte range of one HDU's data unit within a source.

    Parameters
    ----------
    source
        Source the data unit lives in.
    offset
        Byte offset of the first byte of the data unit.
    geometry
        Declared layout of the data unit.
    require_padding, optional
        If `True`, the source must contain the data unit's trailing padding
        as well as its payload before any read is attempted.

    Notes
    -----
    A `DataUnit` never holds payload bytes; every read is a bounded,
    positioned read against the source.  The only mutable state is whether
    the source has already been confirmed to be long enough.
    """

    def __init__(
        self, source: DataSource, offset: int, geometry: DataGeometry, *, require_padding: bool = True
    ):
        self._source = source
        self._offset = offset
        self._geometry = geometry
        self._required = geometry.padded_length if require_padding else geometry.data_length
        self._verified = self._required == 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"DataUnit(offset={self._offset}, length={self.length})"

    @property
    def source(self) -> DataSource:
        """The source this data unit reads from."""
        return self._source

    @property
    def offset(self) -> int:
        """Byte offset of the data unit within the source."""
        return self._offset

    @property
    def geometry(self) -> DataGeometry:
        """Declared layout of the data unit."""
        return self._geometry

    @property
    def length(self) -> int:
        """Number of payload bytes (excluding padding)."""
        return self._geometry.data_length

    def check_complete(self) -> None:
        """Check that the source holds the full declared data unit.

        Raises
        ------
        TruncatedDataError
            Raised if the source is shorter than the declared data unit.
        SourceError
            Raised if the source cannot be read.
        """
        if self._verified:
            return
        with self._lock:
            if self._verified:
                return
            available = self._available()
            if available < self._required:
                raise TruncatedDataError(
                    "Source ends before the end of the declared data unit.",
                    offset=self._offset,
                    expected=self._required,
                    available=available,
                )
            self._verified = True

    def _available(self) -> int:
        total = self._source.length()
        if total is not None:
            return max(total - self._offset, 0)
        # Length unknown: probe the last required byte.
        if self._source.read_at(self._offset + self._required - 1, 1):
            return self._required
        return 0

    def read(self, start: int, length: int) -> bytes:
        """Read bytes from the data unit.

        Parameters
        ----------
        start
            Offset relative to the start of the data unit.
        length
            Number of bytes to read.

        Returns
        -------
        data
            Exactly ``length`` bytes.

        Raises
        ------
        BoundsError
            Raised if the range is not within the declared payload.
        TruncatedDataError
            Raised if the source is shorter than the declared data unit.
        ClosedSourceError
            Raised if the source has been closed.
        """
        if start < 0 or length < 0 or start + length > self.length:
            raise BoundsError(
                f"Byte range [{start}, {start + length}) is outside the data unit of length {self.length}."
            )
        self.check_complete()
        if length == 0:
            return b""
        data = self._source.read_at(self._offset + start, length)
        if len(data) < length:
            raise TruncatedDataError(
                "Short read inside the declared data unit.",
                offset=self._offset + start,
                expected=length,
                available=len(data),
            )
        return data
