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

__all__ = (
    "astropy_to_bytes",
    "fits_bytes",
    "image_bytes",
    "pad_data",
    "raw_header_bytes",
)

import io
from collections.abc import Sequence

import astropy.io.fits
import numpy as np

from .._header import BLOCK_LENGTH, Header
from ..utils import round_up


def pad_data(data: bytes) -> bytes:
    """Pad a data unit with zeros to a whole number of blocks."""
    return data.ljust(round_up(len(data), BLOCK_LENGTH), b"\0")


def raw_header_bytes(cards: Sequence[str]) -> bytes:
    """Build header blocks from literal card text, each padded to 80
    characters, without adding an ``END`` card or validating anything.
    """
    raw = "".join(card.ljust(80) for card in cards).encode("ascii")
    return raw.ljust(round_up(len(raw), BLOCK_LENGTH), b" ")


def fits_bytes(*units: tuple[Header, bytes]) -> bytes:
    """Concatenate HDUs, each given as a header and its unpadded data."""
    return b"".join(header.to_bytes() + pad_data(data) for header, data in units)


def image_bytes(array: np.ndarray) -> bytes:
    """Return the big-endian bytes of an array in FITS element order."""
    return np.ascontiguousarray(array).astype(array.dtype.newbyteorder(">")).tobytes()


def astropy_to_bytes(hdu_list: astropy.io.fits.HDUList) -> bytes:
    """Write an astropy HDU list to an in-memory FITS file."""
    buffer = io.BytesIO()
    hdu_list.writeto(buffer)
    return buffer.getvalue()
