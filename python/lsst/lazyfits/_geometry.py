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

__all__ = ("DataGeometry", "padded_length")

import dataclasses
import math

from ._dtypes import Bitpix
from ._header import BLOCK_LENGTH, Header
from ._values import Integer, Logical
from .utils import round_up


def padded_length(length: int) -> int:
    """Round a byte count up to a whole number of 2880-byte blocks."""
    return round_up(length, BLOCK_LENGTH)


@dataclasses.dataclass(frozen=True)
class DataGeometry:
    """The size and layout of a data unit, as declared by its (already
    validated) header.
    """

    bitpix: Bitpix
    """Element type (`Bitpix`)."""

    axes: tuple[int, ...]
    """Axis lengths in FITS order, ``(NAXIS1, NAXIS2, ...)``."""

    pcount: int = 0
    """Number of bytes (in units of elements) following the main array,
    e.g. a binary-table heap.
    """

    gcount: int = 1
    """Number of groups."""

    random_groups: bool = False
    """Whether this is a primary HDU using the random-groups convention, in
    which ``NAXIS1 = 0`` does not contribute to the size.
    """

    @classmethod
    def from_header(cls, header: Header) -> DataGeometry:
        """Compute geometry from a header that has passed
        `Header.validate`.
        """
        naxis = _int_or(header, "NAXIS", 0)
        axes = tuple(_int_or(header, f"NAXIS{n}", 0) for n in range(1, naxis + 1))
        extension = "XTENSION" in header
        random_groups = (
            not extension and header.get("GROUPS") == Logical(True) and bool(axes) and axes[0] == 0
        )
        # PCOUNT and GCOUNT only have meaning for extensions and random groups.
        uses_groups = extension or random_groups
        return cls(
            bitpix=Bitpix(_int_or(header, "BITPIX", 8)),
            axes=axes,
            pcount=_int_or(header, "PCOUNT", 0) if uses_groups else 0,
            gcount=_int_or(header, "GCOUNT", 1) if uses_groups else 1,
            random_groups=random_groups,
        )

    @property
    def element_width(self) -> int:
        """Number of bytes per element, ``|BITPIX| / 8``."""
        return self.bitpix.width

    @property
    def element_count(self) -> int:
        """Number of elements in the main array (zero when ``NAXIS = 0``)."""
        if not self.axes:
            return 0
        if self.random_groups:
            return math.prod(self.axes[1:])
        return math.prod(self.axes)

    @property
    def data_length(self) -> int:
        """Number of bytes of payload, excluding padding."""
        if not self.axes:
            return 0
        return self.element_width * self.gcount * (self.pcount + self.element_count)

    @property
    def padded_length(self) -> int:
        """Number of bytes the data unit occupies, including padding to a
        whole number of 2880-byte blocks.
        """
        return padded_length(self.data_length)


def _int_or(header: Header, keyword: str, default: int) -> int:
    match header.get(keyword):
        case Integer(value=value):
            return value
    return default
