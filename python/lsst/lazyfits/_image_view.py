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

__all__ = ("ImageView",)

import decimal
import math
from collections.abc import Sequence
from typing import Any, final

import numpy as np

from ._data_unit import DataUnit
from ._dtypes import Bitpix
from ._errors import BoundsError, DecodeError
from ._header import Header
from ._scaling import Scaling


@final
class ImageView:
    """A lazy, read-only view of an image data unit.

    Parameters
    ----------
    data
        The data unit to read from.
    header
        The (validated) header of the HDU, used for ``BSCALE``, ``BZERO``
        and ``BLANK``.

    Notes
    -----
    Indices and shapes use numpy (C) order, with the slowest-varying axis
    (``NAXISn`` for the largest ``n``) first.  `axes` reports the FITS order.

    Physical values are ``BZERO + BSCALE * raw``.  Integer images whose
    scaling maps integers to integers (``BSCALE = 1`` and integral
    ``BZERO``) decode to integers, which includes the unsigned-integer
    convention; all other scaled images decode to ``float64``.  Stored
    values equal to ``BLANK`` decode to `None` (single elements) or are
    masked (arrays).
    """

    def __init__(self, data: DataUnit, header: Header):
        self._data = data
        self._bitpix: Bitpix = data.geometry.bitpix
        self._scaling = Scaling.from_header(header, "BSCALE", "BZERO")
        blank: int | None = None
        if self._bitpix.is_integer:
            try:
                blank = header.get_int("BLANK")
            except TypeError as err:
                raise DecodeError(str(err)) from err
        self._blank = blank

    def __repr__(self) -> str:
        return f"ImageView(shape={self.shape}, dtype={self.dtype})"

    @property
    def axes(self) -> tuple[int, ...]:
        """Axis lengths in FITS order, ``(NAXIS1, NAXIS2, ...)``."""
        return self._data.geometry.axes

    @property
    def shape(self) -> tuple[int, ...]:
        """Array shape in numpy order (slowest axis first)."""
        return tuple(reversed(self.axes))

    @property
    def ndim(self) -> int:
        """Number of dimensions."""
        return len(self.axes)

    @property
    def size(self) -> int:
        """Total number of elements (zero if there are no axes)."""
        return self._data.geometry.element_count

    @property
    def bitpix(self) -> Bitpix:
        """Declared element type."""
        return self._bitpix

    @property
    def dtype(self) -> np.dtype:
        """Big-endian numpy type of the stored elements."""
        return self._bitpix.to_numpy()

    @property
    def bscale(self) -> decimal.Decimal:
        return self._scaling.scale

    @property
    def bzero(self) -> decimal.Decimal:
        return self._scaling.zero

    @property
    def blank(self) -> int | None:
        """Stored value marking undefined elements, if any."""
        return self._blank

    @property
    def scaling(self) -> Scaling:
        return self._scaling

    def element_at(self, indices: Sequence[int]) -> int | float | None:
        """Decode a single element.

        Parameters
        ----------
        indices
            One index per axis, in numpy order.  Negative indices count from
            the end of the axis.

        Returns
        -------
        value
            The physical value, or `None` if the stored value is ``BLANK``.

        Raises
        ------
        BoundsError
            Raised if the number of indices is wrong or any index is out of
            range.
        TruncatedDataError
            Raised if the source is shorter than the declared data unit.
        """
        shape = self.shape
        if len(indices) != len(shape) or not shape:
            raise BoundsError(
                f"Expected {len(shape)} indices for an image of shape {shape}, got {indices!r}."
            )
        flat = 0
        for index, extent in zip(indices, shape):
            flat = flat * extent + _normalize_index(index, extent)
        width = self._bitpix.width
        raw = np.frombuffer(self._data.read(flat * width, width), dtype=self.dtype)[0]
        if self._blank is not None and int(raw) == self._blank:
            return None
        return self._scaling.apply(raw)

    def __getitem__(self, key: Any) -> Any:
        """Decode an element (all-integer key) or a sub-array (any key with
        slices), reading only the rows along the slowest axis that the key
        touches.
        """
        if not isinstance(key, tuple):
            key = (key,)
        if all(isinstance(k, int | np.integer) for k in key) and len(key) == self.ndim:
            return self.element_at([int(k) for k in key])
        if not self.shape:
            raise BoundsError("Cannot index an image with no axes.")
        if len(key) > self.ndim:
            raise BoundsError(f"Too many indices ({len(key)}) for an image of shape {self.shape}.")
        first, rest = key[0], key[1:]
        n_rows = self.shape[0]
        if isinstance(first, slice):
            rows = np.arange(*first.indices(n_rows))
            lo, hi = (int(rows.min()), int(rows.max()) + 1) if rows.size else (0, 0)
            block = self._finish(self._read_raw_rows(lo, hi))[(slice(None),) + rest]
            return block[rows - lo]
        if isinstance(first, int | np.integer):
            row = _normalize_index(int(first), n_rows)
            block = self._read_raw_rows(row, row + 1)
            return self._finish(block)[(0,) + rest]
        raise TypeError(f"Unsupported index {first!r}; only integers and slices are allowed.")

    def read_raw_array(self) -> np.ndarray:
        """Read the stored (unscaled, big-endian) array."""
        if not self.shape:
            return np.zeros(0, dtype=self.dtype)
        return self._read_raw_rows(0, self.shape[0])

    def read(self) -> np.ndarray:
        """Read and scale the whole array.

        Returns
        -------
        array
            Native-endian array in numpy order; a `numpy.ma.MaskedArray` if
            the image declares ``BLANK``.
        """
        return self._finish(self.read_raw_array())

    def read_rows(self, start: int, stop: int) -> np.ndarray:
        """Read and scale a contiguous range of rows along the slowest axis.

        Raises
        ------
        BoundsError
            Raised if the range is not within the first axis of `shape`.
        """
        if not self.shape:
            raise BoundsError("Cannot read rows of an image with no axes.")
        if not 0 <= start <= stop <= self.shape[0]:
            raise BoundsError(f"Row range [{start}, {stop}) is outside [0, {self.shape[0]}).")
        return self._finish(self._read_raw_rows(start, stop))

    def _read_raw_rows(self, start: int, stop: int) -> np.ndarray:
        row_shape = self.shape[1:]
        row_bytes = math.prod(row_shape) * self._bitpix.width
        buffer = self._data.read(start * row_bytes, (stop - start) * row_bytes)
        return np.frombuffer(buffer, dtype=self.dtype).reshape((stop - start,) + row_shape)

    def _finish(self, raw: np.ndarray) -> np.ndarray:
        scaled = self._scaling.apply_array(raw)
        if self._blank is None:
            return scaled
        return np.ma.MaskedArray(scaled, mask=(raw == self._blank))


def _normalize_index(index: int, extent: int) -> int:
    normalized = index + extent if index < 0 else index
    if not 0 <= normalized < extent:
        raise BoundsError(f"Index {index} is out of range for an axis of length {extent}.")
    return normalized
