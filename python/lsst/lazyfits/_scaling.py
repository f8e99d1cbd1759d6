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

__all__ = ("Scaling",)

import dataclasses
import decimal

import numpy as np

from ._errors import DecodeError
from ._header import Header


@dataclasses.dataclass(frozen=True)
class Scaling:
    """Linear mapping from stored values to physical values,
    ``physical = zero + scale * raw``.
    """

    scale: decimal.Decimal = decimal.Decimal(1)
    """Multiplicative factor (``BSCALE`` or ``TSCALn``)."""

    zero: decimal.Decimal = decimal.Decimal(0)
    """Additive offset (``BZERO`` or ``TZEROn``)."""

    @classmethod
    def from_header(cls, header: Header, scale_keyword: str, zero_keyword: str) -> Scaling:
        """Read scaling keywords from a header.

        Raises
        ------
        DecodeError
            Raised if either keyword is present but not numeric.
        """
        try:
            scale = header.get_decimal(scale_keyword, decimal.Decimal(1))
            zero = header.get_decimal(zero_keyword, decimal.Decimal(0))
        except TypeError as err:
            raise DecodeError(str(err)) from err
        assert scale is not None and zero is not None
        return cls(scale=scale, zero=zero)

    @property
    def is_identity(self) -> bool:
        """Whether physical values equal stored values."""
        return self.scale == 1 and self.zero == 0

    @property
    def is_integral(self) -> bool:
        """Whether integers map to integers exactly."""
        return self.scale == 1 and self.zero == self.zero.to_integral_value()

    def offset_dtype(self, dtype: np.dtype) -> np.dtype | None:
        """Return the native integer type that stored values of the given
        type map to exactly under the offset-integer convention (unsigned
        16/32/64-bit integers stored as signed, signed bytes stored as
        unsigned), or `None` if the convention does not apply.
        """
        if self.scale != 1:
            return None
        bits = dtype.itemsize * 8
        if dtype.kind == "i" and bits > 8 and self.zero == 1 << (bits - 1):
            return np.dtype(f"u{dtype.itemsize}")
        if dtype.kind == "u" and bits == 8 and self.zero == -128:
            return np.dtype("i1")
        return None

    def apply(self, raw: np.generic) -> int | float | complex | bool:
        """Scale a single stored value, returning a Python scalar."""
        if self.is_identity or raw.dtype.kind not in "iuf":
            return raw.item()
        if raw.dtype.kind in "iu" and self.is_integral:
            return int(raw) + int(self.zero)
        return float(self.zero) + float(self.scale) * float(raw)

    def apply_array(self, raw: np.ndarray) -> np.ndarray:
        """Scale an array of stored values, returning a native-endian
        array.
        """
        native = raw.astype(raw.dtype.newbyteorder("="))
        if self.is_identity or raw.dtype.kind not in "iuf":
            return native
        if (target := self.offset_dtype(raw.dtype)) is not None:
            unsigned = np.dtype(f"u{raw.dtype.itemsize}")
            flipped = native.view(unsigned) ^ unsigned.type(1 << (raw.dtype.itemsize * 8 - 1))
            return flipped.view(target)
        if raw.dtype.kind in "iu" and self.is_integral:
            return native.astype(np.int64) + int(self.zero)
        return native.astype(np.float64) * float(self.scale) + float(self.zero)

