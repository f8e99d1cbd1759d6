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

__all__ = ("Bitpix",)

import enum

import numpy as np


class Bitpix(enum.IntEnum):
    """Enumeration of the element types a ``BITPIX`` keyword may declare."""

    UINT8 = 8
    INT16 = 16
    INT32 = 32
    INT64 = 64
    FLOAT32 = -32
    FLOAT64 = -64

    @property
    def width(self) -> int:
        """Number of bytes in one element."""
        return abs(self.value) // 8

    @property
    def is_integer(self) -> bool:
        """Whether elements are integers (and hence may use ``BLANK``)."""
        return self.value > 0

    def to_numpy(self) -> np.dtype:
        """Return the big-endian numpy data type for stored elements.

        Returns
        -------
        dtype
            Numpy data type, e.g. ``dtype('>i2')``.
        """
        match self:
            case Bitpix.UINT8:
                return np.dtype(">u1")
            case Bitpix.INT16:
                return np.dtype(">i2")
            case Bitpix.INT32:
                return np.dtype(">i4")
            case Bitpix.INT64:
                return np.dtype(">i8")
            case Bitpix.FLOAT32:
                return np.dtype(">f4")
            case Bitpix.FLOAT64:
                return np.dtype(">f8")
        raise AssertionError("Invalid enum value.")
