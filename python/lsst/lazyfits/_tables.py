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

__all__ = ("ColumnDescriptor", "ColumnFormat", "TableView")

import dataclasses
import decimal
import math
import re
from typing import Any, final

import astropy.table
import numpy as np

from ._data_unit import DataUnit
from ._errors import BoundsError, DecodeError
from ._header import Header
from ._scaling import Scaling

_TFORM_RE = re.compile(r"\s*(\d*)\s*([A-Z])\s*(.*?)\s*$")
_HEAP_RE = re.compile(r"([LXBIJKAEDCM])\s*(?:\(\s*(\d+)\s*\))?$")

# Bytes per element for each binary-table type code; 'X' is handled
# separately since bits are packed.
_CODE_WIDTHS = {
    "L": 1,
    "B": 1,
    "I": 2,
    "J": 4,
    "K": 8,
    "A": 1,
    "E": 4,
    "D": 8,
    "C": 8,
    "M": 16,
    "P": 8,
    "Q": 16,
}

_CODE_DTYPES = {
    "B": np.dtype(">u1"),
    "I": np.dtype(">i2"),
    "J": np.dtype(">i4"),
    "K": np.dtype(">i8"),
    "E": np.dtype(">f4"),
    "D": np.dtype(">f8"),
    "C": np.dtype(">c8"),
    "M": np.dtype(">c16"),
}

_INTEGER_CODES = frozenset("BIJK")

_LOGICALS = {ord("T"): True, ord("F"): False}


@dataclasses.dataclass(frozen=True)
class ColumnFormat:
    """A parsed binary-table ``TFORMn`` value (``rTa``)."""

    repeat: int
    """Repeat count ``r`` (number of elements per cell, or bits for ``X``)."""

    code: str
    """Type code ``T``."""

    heap_code: str | None = None
    """Element type code of a variable-length array (``P``/``Q`` only)."""

    max_length: int | None = None
    """Declared maximum length of a variable-length array, if given."""

    @classmethod
    def parse(cls, text: str) -> ColumnFormat:
        """Parse a ``TFORMn`` value.

        Raises
        ------
        DecodeError
            Raised if the type code is not recognized.
        """
        if (match := _TFORM_RE.match(text)) is None:
            raise DecodeError(f"Invalid binary table column format {text!r}.")
        repeat_text, code, rest = match.groups()
        repeat = int(repeat_text) if repeat_text else 1
        if code == "X":
            return cls(repeat, code)
        if code not in _CODE_WIDTHS:
            raise DecodeError(f"Unrecognized binary table column type code {code!r} in {text!r}.")
        if code in "PQ":
            if (heap := _HEAP_RE.match(rest)) is None:
                raise DecodeError(f"Invalid variable-length array format {text!r}.")
            max_length = int(heap.group(2)) if heap.group(2) is not None else None
            return cls(repeat, code, heap_code=heap.group(1), max_length=max_length)
        # Anything after the code (e.g. 'rAw' substring lengths) is ignored.
        return cls(repeat, code)

    @property
    def is_variable(self) -> bool:
        """Whether cells are descriptors into the heap."""
        return self.heap_code is not None

    @property
    def width(self) -> int:
        """Number of bytes the column occupies in each row."""
        if self.code == "X":
            return math.ceil(self.repeat / 8)
        return self.repeat * _CODE_WIDTHS[self.code]

    def __str__(self) -> str:
        if self.heap_code is None:
            return f"{self.repeat}{self.code}"
        suffix = f"({self.max_length})" if self.max_length is not None else ""
        return f"{self.repeat}{self.code}{self.heap_code}{suffix}"


@dataclasses.dataclass(frozen=True)
class ColumnDescriptor:
    """The declared layout of one binary-table column."""

    name: str
    """Column name (``TTYPEn``, or ``colN`` if absent)."""

    format: ColumnFormat
    """Parsed ``TFORMn``."""

    offset: int
    """Byte offset of the column within each row."""

    unit: str | None = None
    """``TUNITn``, if present."""

    scale: decimal.Decimal = decimal.Decimal(1)
    """``TSCALn`` (1 if absent)."""

    zero: decimal.Decimal = decimal.Decimal(0)
    """``TZEROn`` (0 if absent)."""

    null: int | None = None
    """``TNULLn`` for integer columns, if present."""

    display: str | None = None
    """``TDISPn``, if present."""

    @property
    def width(self) -> int:
        """Number of bytes the column occupies in each row."""
        return self.format.width

    @property
    def scaling(self) -> Scaling:
        return Scaling(self.scale, self.zero)


def _read_columns(header: Header) -> tuple[tuple[ColumnDescriptor, ...], int]:
    try:
        n_fields = header.get_int("TFIELDS", 0)
        assert n_fields is not None
        columns: list[ColumnDescriptor] = []
        offset = 0
        for n in range(1, n_fields + 1):
            tform = header.get_str(f"TFORM{n}")
            if tform is None:
                raise DecodeError(f"Missing TFORM{n} for column {n} of {n_fields}.")
            fmt = ColumnFormat.parse(tform)
            scaling = Scaling.from_header(header, f"TSCAL{n}", f"TZERO{n}")
            column = ColumnDescriptor(
                name=header.get_str(f"TTYPE{n}") or f"col{n}",
                format=fmt,
                offset=offset,
                unit=header.get_str(f"TUNIT{n}"),
                scale=scaling.scale,
                zero=scaling.zero,
                null=header.get_int(f"TNULL{n}") if (fmt.heap_code or fmt.code) in _INTEGER_CODES else None,
                display=header.get_str(f"TDISP{n}"),
            )
            columns.append(column)
            offset += fmt.width
    except TypeError as err:
        raise DecodeError(str(err)) from err
    return tuple(columns), offset


@final
class TableView:
    """A lazy, read-only view of a binary table data unit.

    Parameters
    ----------
    data
        The data unit to read from.
    header
        The (validated) header of the HDU.

    Raises
    ------
    DecodeError
        Raised if a column format is not recognized or the columns do not
        add up to ``NAXIS1``.

    Notes
    -----
    Cells of columns with a repeat count of one decode to Python scalars;
    other cells decode to native-endian numpy arrays.  String (``A``) cells
    decode to `str` with trailing spaces and anything after the first NUL
    removed, logical (``L``) cells to `bool` (or `None` for a NUL byte), and
    bit (``X``) cells to boolean arrays.  ``TSCALn``/``TZEROn`` scaling
    follows the same rules as image ``BSCALE``/``BZERO``, and integer cells
    equal to ``TNULLn`` decode to `None` (or are masked in arrays).
    Variable-length array (``P``/``Q``) cells are read from the heap, which
    starts ``THEAP`` bytes into the data unit.
    """

    def __init__(self, data: DataUnit, header: Header):
        self._data = data
        axes = data.geometry.axes
        self._row_length, self._n_rows = axes
        self._columns, total = _read_columns(header)
        if total != self._row_length:
            raise DecodeError(f"Columns occupy {total} bytes per row, but NAXIS1 = {self._row_length}.")
        try:
            self._heap_offset = header.get_int("THEAP", self._row_length * self._n_rows)
        except TypeError as err:
            raise DecodeError(str(err)) from err
        self._indices = {column.name.upper(): n for n, column in reversed(list(enumerate(self._columns)))}

    def __repr__(self) -> str:
        return f"TableView(n_rows={self._n_rows}, columns={[c.name for c in self._columns]})"

    @property
    def columns(self) -> tuple[ColumnDescriptor, ...]:
        return self._columns

    @property
    def names(self) -> list[str]:
        return [column.name for column in self._columns]

    @property
    def n_rows(self) -> int:
        """Number of rows (``NAXIS2``)."""
        return self._n_rows

    @property
    def row_length(self) -> int:
        """Number of bytes per row (``NAXIS1``)."""
        return self._row_length

    @property
    def heap_offset(self) -> int:
        """Offset of the heap from the start of the data unit."""
        return self._heap_offset

    def column_index(self, name: str) -> int:
        """Return the index of the first column with the given name,
        ignoring case.

        Raises
        ------
        KeyError
            Raised if there is no such column.
        """
        try:
            return self._indices[name.upper()]
        except KeyError:
            raise KeyError(f"No column named {name!r}.") from None

    def _resolve(self, column: int | str) -> ColumnDescriptor:
        if isinstance(column, str):
            return self._columns[self.column_index(column)]
        if not 0 <= column < len(self._columns):
            raise BoundsError(f"Column index {column} is out of range for {len(self._columns)} columns.")
        return self._columns[column]

    def _read_row_bytes(self, row: int) -> bytes:
        if not 0 <= row < self._n_rows:
            raise BoundsError(f"Row {row} is out of range for a table with {self._n_rows} rows.")
        return self._data.read(row * self._row_length, self._row_length)

    def cell(self, row: int, column: int | str) -> Any:
        """Decode a single cell.

        Parameters
        ----------
        row
            Zero-based row index.
        column
            Zero-based column index or (case-insensitive) column name.

        Raises
        ------
        BoundsError
            Raised if the row or column index is out of range.
        KeyError
            Raised if there is no column with the given name.
        DecodeError
            Raised if a variable-length array descriptor is invalid.
        """
        descriptor = self._resolve(column)
        if not 0 <= row < self._n_rows:
            raise BoundsError(f"Row {row} is out of range for a table with {self._n_rows} rows.")
        field = self._data.read(row * self._row_length + descriptor.offset, descriptor.width)
        return self._decode_field(descriptor, field)

    def row(self, row: int) -> dict[str, Any]:
        """Decode a full row into a mapping from column name to value."""
        buffer = self._read_row_bytes(row)
        return {
            column.name: self._decode_field(column, buffer[column.offset : column.offset + column.width])
            for column in self._columns
        }

    def column(self, column: int | str) -> np.ndarray:
        """Decode a full column.

        Returns
        -------
        array
            Array with one entry (or one row of ``repeat`` entries) per table
            row; a `numpy.ma.MaskedArray` if any nulls are present, and an
            object array for variable-length array columns.
        """
        descriptor = self._resolve(column)
        fmt = descriptor.format
        table = np.frombuffer(self._data.read(0, self._n_rows * self._row_length), dtype=np.uint8)
        fields = table.reshape(self._n_rows, self._row_length)[
            :, descriptor.offset : descriptor.offset + descriptor.width
        ]
        if fmt.is_variable or descriptor.width == 0:
            return _object_array([self._decode_field(descriptor, f.tobytes()) for f in fields])
        shape: tuple[int, ...] = (self._n_rows,) if fmt.repeat == 1 else (self._n_rows, fmt.repeat)
        match fmt.code:
            case "A":
                return np.array([_decode_string(f.tobytes()) for f in fields], dtype=str)
            case "X":
                return np.unpackbits(fields, axis=1)[:, : fmt.repeat].astype(bool)
            case "L":
                values = fields.reshape(shape)
                result = values == ord("T")
                if (undefined := values == 0).any():
                    return np.ma.MaskedArray(result, mask=undefined)
                return result
        raw = np.ascontiguousarray(fields).view(_CODE_DTYPES[fmt.code]).reshape(shape)
        scaled = descriptor.scaling.apply_array(raw)
        if descriptor.null is not None and (nulls := raw == descriptor.null).any():
            return np.ma.MaskedArray(scaled, mask=nulls)
        return scaled

    def to_table(self) -> astropy.table.Table:
        """Decode the whole table into an `astropy.table.Table`.

        Column units are taken from ``TUNITn``; unit strings astropy cannot
        parse are kept as unrecognized units.
        """
        table = astropy.table.Table()
        for descriptor in self._columns:
            table[descriptor.name] = self.column(descriptor.name)
            if descriptor.unit:
                table[descriptor.name].unit = descriptor.unit
        return table

    def _decode_field(self, descriptor: ColumnDescriptor, field: bytes) -> Any:
        fmt = descriptor.format
        if fmt.heap_code is None:
            return _decode_elements(descriptor, fmt.code, fmt.repeat, field, scalar=fmt.repeat == 1)
        if fmt.repeat == 0:
            return None
        descriptor_dtype = ">i4" if fmt.code == "P" else ">i8"
        count, offset = (int(v) for v in np.frombuffer(field, dtype=descriptor_dtype, count=2))
        if count < 0 or offset < 0:
            raise DecodeError(f"Invalid variable-length array descriptor ({count}, {offset}).")
        if fmt.heap_code == "X":
            length = math.ceil(count / 8)
        else:
            length = count * _CODE_WIDTHS[fmt.heap_code]
        try:
            buffer = self._data.read(self._heap_offset + offset, length)
        except BoundsError as err:
            raise DecodeError(
                f"Variable-length array descriptor ({count}, {offset}) points outside the heap."
            ) from err
        return _decode_elements(descriptor, fmt.heap_code, count, buffer, scalar=False)


def _decode_elements(
    descriptor: ColumnDescriptor, code: str, count: int, buffer: bytes, *, scalar: bool
) -> Any:
    match code:
        case "A":
            return _decode_string(buffer)
        case "X":
            return np.unpackbits(np.frombuffer(buffer, dtype=np.uint8))[:count].astype(bool)
        case "L":
            values = [_LOGICALS.get(b) for b in buffer]
            return values[0] if scalar else values
    raw = np.frombuffer(buffer, dtype=_CODE_DTYPES[code])
    if scalar:
        if descriptor.null is not None and int(raw[0]) == descriptor.null:
            return None
        return descriptor.scaling.apply(raw[0])
    scaled = descriptor.scaling.apply_array(raw)
    if descriptor.null is not None and (nulls := raw == descriptor.null).any():
        return np.ma.MaskedArray(scaled, mask=nulls)
    return scaled


def _decode_string(buffer: bytes) -> str:
    return buffer.split(b"\0", 1)[0].decode("ascii", errors="replace").rstrip(" ")


def _object_array(values: list[Any]) -> np.ndarray:
    result = np.empty(len(values), dtype=object)
    for n, value in enumerate(values):
        result[n] = value
    return result
