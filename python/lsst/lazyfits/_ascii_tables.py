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

__all__ = ("AsciiColumnDescriptor", "AsciiTableView", "parse_ascii_format")

import dataclasses
import decimal
import re
from typing import final

from ._data_unit import DataUnit
from ._errors import BoundsError, DecodeError
from ._header import Header
from ._scaling import Scaling

_TFORM_RE = re.compile(r"\s*([AIFED])\s*(\d+)(?:\.(\d+))?\s*$")
_EXPONENT_RE = re.compile(r"[EeDd]")

type AsciiCell = str | int | decimal.Decimal | None


def parse_ascii_format(text: str) -> tuple[str, int, int | None]:
    """Parse an ASCII-table ``TFORMn`` value (``Aw``, ``Iw``, ``Fw.d``,
    ``Ew.d`` or ``Dw.d``) into its code, width and decimal count.

    Raises
    ------
    DecodeError
        Raised if the format is not recognized.
    """
    if (match := _TFORM_RE.match(text)) is None:
        raise DecodeError(f"Unrecognized ASCII table column format {text!r}.")
    code, width, decimals = match.groups()
    return code, int(width), int(decimals) if decimals is not None else None


@dataclasses.dataclass(frozen=True)
class AsciiColumnDescriptor:
    """The declared layout of one ASCII-table column."""

    name: str
    code: str
    """Format code: ``A``, ``I``, ``F``, ``E`` or ``D``."""

    width: int
    """Field width in characters."""

    decimals: int | None
    """Number of implied decimal places (``d`` in ``Fw.d``), if given."""

    offset: int
    """Zero-based character offset of the field within each row
    (``TBCOLn - 1``).
    """

    unit: str | None = None
    scale: decimal.Decimal = decimal.Decimal(1)
    zero: decimal.Decimal = decimal.Decimal(0)

    null: str | None = None
    """``TNULLn`` string marking undefined fields, if any."""

    @property
    def format(self) -> str:
        """The ``TFORMn`` value in canonical form."""
        if self.decimals is None:
            return f"{self.code}{self.width}"
        return f"{self.code}{self.width}.{self.decimals}"


@final
class AsciiTableView:
    """A lazy, read-only view of an ASCII table (``XTENSION = 'TABLE'``)
    data unit.

    Fields are located by ``TBCOLn`` and parsed according to ``TFORMn``.
    Blank fields and fields matching ``TNULLn`` decode to `None`.  Integer
    fields decode to `int` (or `decimal.Decimal` when ``TSCALn``/``TZEROn``
    are not an integral mapping) and real fields decode losslessly to
    `decimal.Decimal`, with scaling applied in decimal arithmetic.

    Raises
    ------
    DecodeError
        Raised if a column's ``TBCOLn`` or ``TFORMn`` is missing or invalid,
        or if a field extends past ``NAXIS1``.
    """

    def __init__(self, data: DataUnit, header: Header):
        self._data = data
        self._row_length, self._n_rows = data.geometry.axes
        try:
            n_fields = header.get_int("TFIELDS", 0) or 0
            self._columns = tuple(self._read_column(header, n) for n in range(1, n_fields + 1))
        except TypeError as err:
            raise DecodeError(str(err)) from err
        self._indices = {column.name.upper(): n for n, column in reversed(list(enumerate(self._columns)))}

    def _read_column(self, header: Header, n: int) -> AsciiColumnDescriptor:
        tform = header.get_str(f"TFORM{n}")
        tbcol = header.get_int(f"TBCOL{n}")
        if tform is None or tbcol is None:
            raise DecodeError(f"Missing TFORM{n} or TBCOL{n}.")
        code, width, decimals = parse_ascii_format(tform)
        if tbcol < 1 or tbcol - 1 + width > self._row_length:
            raise DecodeError(f"Column {n} (TBCOL{n}={tbcol}, width {width}) does not fit in NAXIS1.")
        scaling = Scaling.from_header(header, f"TSCAL{n}", f"TZERO{n}")
        return AsciiColumnDescriptor(
            name=header.get_str(f"TTYPE{n}") or f"col{n}",
            code=code,
            width=width,
            decimals=decimals,
            offset=tbcol - 1,
            unit=header.get_str(f"TUNIT{n}"),
            scale=scaling.scale,
            zero=scaling.zero,
            null=header.get_str(f"TNULL{n}"),
        )

    def __repr__(self) -> str:
        return f"AsciiTableView(n_rows={self._n_rows}, columns={[c.name for c in self._columns]})"

    @property
    def columns(self) -> tuple[AsciiColumnDescriptor, ...]:
        return self._columns

    @property
    def n_rows(self) -> int:
        return self._n_rows

    @property
    def row_length(self) -> int:
        return self._row_length

    def column_index(self, name: str) -> int:
        """Return the index of the first column with the given name,
        ignoring case.
        """
        try:
            return self._indices[name.upper()]
        except KeyError:
            raise KeyError(f"No column named {name!r}.") from None

    def _resolve(self, column: int | str) -> AsciiColumnDescriptor:
        if isinstance(column, str):
            return self._columns[self.column_index(column)]
        if not 0 <= column < len(self._columns):
            raise BoundsError(f"Column index {column} is out of range for {len(self._columns)} columns.")
        return self._columns[column]

    def _check_row(self, row: int) -> None:
        if not 0 <= row < self._n_rows:
            raise BoundsError(f"Row {row} is out of range for a table with {self._n_rows} rows.")

    def cell(self, row: int, column: int | str) -> AsciiCell:
        """Decode a single field."""
        descriptor = self._resolve(column)
        self._check_row(row)
        field = self._data.read(row * self._row_length + descriptor.offset, descriptor.width)
        return _decode_field(descriptor, field)

    def row(self, row: int) -> dict[str, AsciiCell]:
        """Decode a full row into a mapping from column name to value."""
        self._check_row(row)
        buffer = self._data.read(row * self._row_length, self._row_length)
        return {c.name: _decode_field(c, buffer[c.offset : c.offset + c.width]) for c in self._columns}

    def column(self, column: int | str) -> list[AsciiCell]:
        """Decode a full column."""
        descriptor = self._resolve(column)
        buffer = self._data.read(0, self._n_rows * self._row_length)
        result: list[AsciiCell] = []
        for r in range(self._n_rows):
            start = r * self._row_length + descriptor.offset
            result.append(_decode_field(descriptor, buffer[start : start + descriptor.width]))
        return result


def _decode_field(descriptor: AsciiColumnDescriptor, field: bytes) -> AsciiCell:
    text = field.decode("ascii", errors="replace")
    if descriptor.code == "A":
        if descriptor.null is not None and text.rstrip() == descriptor.null.rstrip():
            return None
        return text.rstrip(" ")
    stripped = text.strip()
    if not stripped or (descriptor.null is not None and stripped == descriptor.null.strip()):
        return None
    scaling = Scaling(descriptor.scale, descriptor.zero)
    if descriptor.code == "I":
        try:
            value = int(stripped)
        except ValueError:
            raise DecodeError(f"Invalid integer field {text!r} in column {descriptor.name!r}.") from None
        if scaling.is_integral:
            return value + int(scaling.zero)
        return scaling.zero + scaling.scale * value
    number = _parse_real(stripped, descriptor)
    if scaling.is_identity:
        return number
    return scaling.zero + scaling.scale * number


def _parse_real(text: str, descriptor: AsciiColumnDescriptor) -> decimal.Decimal:
    mantissa, *exponent = _EXPONENT_RE.split(text.replace(" ", ""), maxsplit=1)
    try:
        value = decimal.Decimal(mantissa)
        if exponent:
            value = value.scaleb(int(exponent[0]))
    except (decimal.InvalidOperation, ValueError):
        raise DecodeError(f"Invalid real field {text!r} in column {descriptor.name!r}.") from None
    if "." not in mantissa and descriptor.decimals:
        # No explicit decimal point: the last 'd' digits are the fraction.
        value = value.scaleb(-descriptor.decimals)
    return value
