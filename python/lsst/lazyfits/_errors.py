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
    "BoundsError",
    "ClosedSourceError",
    "DecodeError",
    "FitsError",
    "LexError",
    "SourceError",
    "StructuralError",
    "StructuralErrorReason",
    "TruncatedDataError",
)

import enum


class FitsError(RuntimeError):
    """Base class for all exceptions raised while reading FITS data."""


class LexError(FitsError, ValueError):
    """Exception raised when a single 80-byte header card cannot be parsed.

    Parameters
    ----------
    message
        Description of the problem.
    offset
        Byte offset within the card at which the problem was detected.
    record
        The raw card bytes.
    card_index, optional
        Zero-based position of the card within its header, when known.
    """

    def __init__(self, message: str, *, offset: int, record: bytes, card_index: int | None = None):
        self.offset = offset
        self.record = record
        self.card_index = card_index
        super().__init__(message)

    def __str__(self) -> str:
        where = f"byte {self.offset}"
        if self.card_index is not None:
            where = f"card {self.card_index}, {where}"
        return f"{self.args[0]} ({where}: {self.record!r})"

    def at_card(self, card_index: int) -> LexError:
        """Return a copy of this error annotated with a card position."""
        return LexError(self.args[0], offset=self.offset, record=self.record, card_index=card_index)


class StructuralErrorReason(enum.StrEnum):
    """Reasons a header is structurally invalid."""

    MISSING_END = "MISSING_END"
    MISALIGNED_HEADER = "MISALIGNED_HEADER"
    MISSING_KEYWORD = "MISSING_KEYWORD"
    DUPLICATE_KEYWORD = "DUPLICATE_KEYWORD"
    MISORDERED_KEYWORD = "MISORDERED_KEYWORD"
    NAXIS_MISMATCH = "NAXIS_MISMATCH"
    UNSUPPORTED_BITPIX = "UNSUPPORTED_BITPIX"
    INVALID_VALUE = "INVALID_VALUE"


class StructuralError(FitsError):
    """Exception raised when a header violates the structural rules of the
    FITS standard, making the geometry of its data unit untrustworthy.

    Parameters
    ----------
    reason
        Enumerated category of the violation.
    message
        Description of the problem.
    keyword, optional
        The keyword involved, if any.
    hdu_index, optional
        Index of the HDU whose header is invalid.
    header_offset, optional
        Byte offset of that header in the source.
    """

    def __init__(
        self,
        reason: StructuralErrorReason,
        message: str,
        *,
        keyword: str | None = None,
        hdu_index: int | None = None,
        header_offset: int | None = None,
    ):
        self.reason = reason
        self.keyword = keyword
        self.hdu_index = hdu_index
        self.header_offset = header_offset
        super().__init__(message)

    def __str__(self) -> str:
        prefix = f"[{self.reason}]"
        if self.hdu_index is not None:
            prefix += f" HDU {self.hdu_index}"
            if self.header_offset is not None:
                prefix += f" (offset {self.header_offset})"
        return f"{prefix}: {self.args[0]}"

    def locate(self, hdu_index: int, header_offset: int) -> StructuralError:
        """Return a copy of this error annotated with the HDU location."""
        return StructuralError(
            self.reason,
            self.args[0],
            keyword=self.keyword,
            hdu_index=hdu_index,
            header_offset=header_offset,
        )


class BoundsError(FitsError, IndexError):
    """Exception raised when an index falls outside the dimensions declared by
    a header.
    """


class SourceError(FitsError, OSError):
    """Exception raised when the underlying byte source cannot be read.

    Parameters
    ----------
    message
        Description of the problem.
    offset
        Byte offset of the failed read.
    length
        Number of bytes requested.
    """

    def __init__(self, message: str, *, offset: int, length: int):
        self.offset = offset
        self.length = length
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.args[0]} (offset={self.offset}, length={self.length})"


class ClosedSourceError(SourceError):
    """Exception raised when data is requested after its source was closed."""


class DecodeError(FitsError, ValueError):
    """Exception raised when a column format descriptor cannot be
    interpreted.
    """


class TruncatedDataError(SourceError):
    """Exception raised when a source holds fewer bytes than its header
    declares.

    Parameters
    ----------
    message
        Description of the problem.
    offset
        Byte offset of the region that was expected.
    expected
        Number of bytes the header declares.
    available
        Number of bytes actually present.
    """

    def __init__(self, message: str, *, offset: int, expected: int, available: int):
        self.expected = expected
        self.available = available
        super().__init__(message, offset=offset, length=expected)

    def __str__(self) -> str:
        return f"{self.args[0]} (offset={self.offset}, expected={self.expected}, available={self.available})"
