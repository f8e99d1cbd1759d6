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
    "AsciiTableHdu",
    "BinaryTableHdu",
    "GenericHdu",
    "Hdu",
    "HduKind",
    "HduSummary",
    "ImageHdu",
    "make_hdu",
)

import enum
import functools
from logging import getLogger
from typing import ClassVar, final

import pydantic

from ._ascii_tables import AsciiTableView
from ._data_unit import DataUnit
from ._geometry import DataGeometry
from ._header import BLOCK_LENGTH, Header
from ._image_view import ImageView
from ._options import ReadOptions
from ._sources import DataSource
from ._tables import TableView
from ._values import Integer, String
from .utils import is_none

_LOG = getLogger(__name__)


class HduKind(enum.StrEnum):
    """Enumeration of the HDU variants."""

    IMAGE = "IMAGE"
    BINTABLE = "BINTABLE"
    TABLE = "TABLE"
    GENERIC = "GENERIC"


class HduSummary(pydantic.BaseModel):
    """A serializable description of one HDU's header and data layout."""

    model_config = pydantic.ConfigDict(frozen=True)

    index: int = pydantic.Field(description="Zero-based position of the HDU in the file.")
    kind: HduKind = pydantic.Field(description="Which variant the HDU was decoded as.")
    xtension: str | None = pydantic.Field(
        default=None,
        exclude_if=is_none,
        description="XTENSION value (absent for the primary HDU).",
    )
    name: str | None = pydantic.Field(default=None, exclude_if=is_none, description="EXTNAME, if present.")
    version: int | None = pydantic.Field(default=None, exclude_if=is_none, description="EXTVER, if named.")
    bitpix: int
    axes: list[int] = pydantic.Field(description="Axis lengths in FITS order (NAXIS1 first).")
    header_offset: int
    header_blocks: int
    data_offset: int
    data_length: int = pydantic.Field(description="Payload size in bytes, excluding padding.")
    n_columns: int | None = pydantic.Field(
        default=None, exclude_if=is_none, description="TFIELDS for table HDUs."
    )


class _HduBase:
    """Layout and raw data access shared by all HDU variants."""

    kind: ClassVar[HduKind]

    def __init__(self, index: int, header: Header, header_offset: int, header_blocks: int, data: DataUnit):
        self._index = index
        self._header = header
        self._header_offset = header_offset
        self._header_blocks = header_blocks
        self._data = data

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(index={self._index}, name={self.name!r}, axes={self.geometry.axes})"
        )

    @property
    def index(self) -> int:
        """Zero-based position in the file (0 is the primary HDU)."""
        return self._index

    @property
    def is_primary(self) -> bool:
        return self._index == 0

    @property
    def header(self) -> Header:
        return self._header

    @property
    def header_offset(self) -> int:
        """Byte offset of the first header block."""
        return self._header_offset

    @property
    def header_blocks(self) -> int:
        """Number of 2880-byte blocks in the header."""
        return self._header_blocks

    @property
    def data_offset(self) -> int:
        """Byte offset of the data unit."""
        return self._header_offset + self._header_blocks * BLOCK_LENGTH

    @property
    def geometry(self) -> DataGeometry:
        return self._data.geometry

    @property
    def data_length(self) -> int:
        """Number of payload bytes, excluding padding."""
        return self._data.geometry.data_length

    @property
    def next_header_offset(self) -> int:
        """Byte offset at which the following HDU's header would start."""
        return self.data_offset + self._data.geometry.padded_length

    @property
    def data_unit(self) -> DataUnit:
        return self._data

    @property
    def name(self) -> str | None:
        """``EXTNAME``, if present and a string."""
        match self._header.get("EXTNAME"):
            case String(text=text):
                return text.strip()
        return None

    @property
    def version(self) -> int | None:
        """``EXTVER`` (1 if the HDU is named but has no ``EXTVER``)."""
        match self._header.get("EXTVER"):
            case Integer(value=value):
                return value
        return 1 if self.name is not None else None

    def raw_bytes(self, start: int, length: int) -> bytes:
        """Read undecoded bytes from the data unit.

        Parameters
        ----------
        start
            Offset relative to the start of the data unit.
        length
            Number of bytes.

        Raises
        ------
        BoundsError
            Raised if the range extends past the declared payload.
        TruncatedDataError
            Raised if the source is shorter than the declared data unit.
        """
        return self._data.read(start, length)

    def read_raw(self) -> bytes:
        """Read the whole undecoded payload (excluding padding)."""
        return self._data.read(0, self.data_length)

    def summary(self) -> HduSummary:
        geometry = self._data.geometry
        xtension = self._header.get("XTENSION")
        n_columns = self._header.get("TFIELDS") if self.kind in (HduKind.BINTABLE, HduKind.TABLE) else None
        return HduSummary(
            index=self._index,
            kind=self.kind,
            xtension=xtension.text if isinstance(xtension, String) else None,
            name=self.name,
            version=self.version,
            bitpix=int(geometry.bitpix),
            axes=list(geometry.axes),
            header_offset=self._header_offset,
            header_blocks=self._header_blocks,
            data_offset=self.data_offset,
            data_length=geometry.data_length,
            n_columns=n_columns.value if isinstance(n_columns, Integer) else None,
        )


@final
class ImageHdu(_HduBase):
    """A primary HDU or ``IMAGE`` extension."""

    kind = HduKind.IMAGE

    @functools.cached_property
    def view(self) -> ImageView:
        """Lazy view of the image data.

        Raises
        ------
        DecodeError
            Raised if ``BSCALE``, ``BZERO`` or ``BLANK`` has the wrong type.
        """
        return ImageView(self._data, self._header)


@final
class BinaryTableHdu(_HduBase):
    """A ``BINTABLE`` extension."""

    kind = HduKind.BINTABLE

    @functools.cached_property
    def view(self) -> TableView:
        """Lazy view of the table rows.

        Raises
        ------
        DecodeError
            Raised if the column definitions cannot be interpreted.
        """
        return TableView(self._data, self._header)


@final
class AsciiTableHdu(_HduBase):
    """A ``TABLE`` (ASCII table) extension."""

    kind = HduKind.TABLE

    @functools.cached_property
    def view(self) -> AsciiTableView:
        """Lazy view of the table rows.

        Raises
        ------
        DecodeError
            Raised if the column definitions cannot be interpreted.
        """
        return AsciiTableView(self._data, self._header)


@final
class GenericHdu(_HduBase):
    """An HDU with no typed decoding: an unrecognized ``XTENSION`` or a
    random-groups primary HDU.

    The payload is still available through `raw_bytes` and `read_raw`.
    """

    kind = HduKind.GENERIC

    @property
    def xtension(self) -> str | None:
        """The ``XTENSION`` value, or `None` for a primary HDU."""
        match self._header.get("XTENSION"):
            case String(text=text):
                return text
        return None

    @property
    def random_groups(self) -> bool:
        return self._data.geometry.random_groups


type Hdu = ImageHdu | BinaryTableHdu | AsciiTableHdu | GenericHdu


def make_hdu(
    index: int,
    header: Header,
    header_offset: int,
    header_blocks: int,
    source: DataSource,
    options: ReadOptions = ReadOptions.DEFAULT,
) -> Hdu:
    """Construct the HDU variant a validated header describes.

    No payload bytes are read.
    """
    geometry = DataGeometry.from_header(header)
    data = DataUnit(
        source,
        header_offset + header_blocks * BLOCK_LENGTH,
        geometry,
        require_padding=options.require_data_padding,
    )
    args = (index, header, header_offset, header_blocks, data)
    match header.get("XTENSION"):
        case None if geometry.random_groups:
            _LOG.warning("Primary HDU uses random groups; exposing it without typed decoding.")
            return GenericHdu(*args)
        case None:
            return ImageHdu(*args)
        case String(text=text):
            match text.strip().upper():
                case "IMAGE":
                    return ImageHdu(*args)
                case "BINTABLE":
                    return BinaryTableHdu(*args)
                case "TABLE":
                    return AsciiTableHdu(*args)
            _LOG.warning(
                "Unrecognized XTENSION %r in HDU %d; exposing it without typed decoding.", text, index
            )
    return GenericHdu(*args)
