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
    "make_ascii_table_header",
    "make_binary_table_header",
    "make_image_header",
    "make_primary_header",
)

from collections.abc import Iterable, Mapping, Sequence

from ._ascii_tables import parse_ascii_format
from ._card import Card
from ._dtypes import Bitpix
from ._header import Header
from ._tables import ColumnFormat


def _axis_cards(bitpix: Bitpix | int, axes: Sequence[int]) -> list[Card]:
    cards = [Card.make("BITPIX", int(Bitpix(bitpix))), Card.make("NAXIS", len(axes))]
    cards.extend(Card.make(f"NAXIS{n}", length) for n, length in enumerate(axes, start=1))
    return cards


def _name_cards(name: str | None, version: int | None) -> list[Card]:
    cards = []
    if name is not None:
        cards.append(Card.make("EXTNAME", name))
    if version is not None:
        cards.append(Card.make("EXTVER", version))
    return cards


def make_primary_header(
    bitpix: Bitpix | int = Bitpix.UINT8,
    axes: Sequence[int] = (),
    *,
    extend: bool | None = None,
    cards: Iterable[Card] = (),
) -> Header:
    """Make a primary header with the mandatory cards.

    Parameters
    ----------
    bitpix, optional
        Element type.
    axes, optional
        Axis lengths in FITS order (``NAXIS1`` first).
    extend, optional
        Value for an ``EXTEND`` card; omitted if `None`.
    cards, optional
        Additional cards, appended after the mandatory ones.

    Returns
    -------
    Header
        The new header.
    """
    result = [Card.make("SIMPLE", True, "conforms to FITS standard"), *_axis_cards(bitpix, axes)]
    if extend is not None:
        result.append(Card.make("EXTEND", extend))
    result.extend(cards)
    return Header(result)


def make_image_header(
    bitpix: Bitpix | int,
    axes: Sequence[int],
    *,
    name: str | None = None,
    version: int | None = None,
    cards: Iterable[Card] = (),
) -> Header:
    """Make an ``IMAGE`` extension header with the mandatory cards."""
    return Header(
        [
            Card.make("XTENSION", "IMAGE", "image extension"),
            *_axis_cards(bitpix, axes),
            Card.make("PCOUNT", 0),
            Card.make("GCOUNT", 1),
            *_name_cards(name, version),
            *cards,
        ]
    )


def make_binary_table_header(
    columns: Mapping[str, str],
    n_rows: int,
    *,
    heap_size: int = 0,
    units: Mapping[str, str] | None = None,
    name: str | None = None,
    version: int | None = None,
    cards: Iterable[Card] = (),
) -> Header:
    """Make a ``BINTABLE`` extension header.

    Parameters
    ----------
    columns
        Mapping from column name to ``TFORMn`` value, in column order.
    n_rows
        Number of rows.
    heap_size, optional
        Number of heap bytes following the rows (``PCOUNT``).
    units, optional
        Mapping from column name to ``TUNITn`` value.
    name, optional
        ``EXTNAME`` value.
    version, optional
        ``EXTVER`` value.
    cards, optional
        Additional cards, appended after the generated ones.

    Returns
    -------
    Header
        The new header, with ``NAXIS1`` computed from the column formats.

    Raises
    ------
    DecodeError
        Raised if a column format is not recognized.
    """
    formats = {column: ColumnFormat.parse(tform) for column, tform in columns.items()}
    units = units or {}
    result = [
        Card.make("XTENSION", "BINTABLE", "binary table extension"),
        *_axis_cards(Bitpix.UINT8, (sum(f.width for f in formats.values()), n_rows)),
        Card.make("PCOUNT", heap_size),
        Card.make("GCOUNT", 1),
        Card.make("TFIELDS", len(formats)),
    ]
    for n, (column, tform) in enumerate(columns.items(), start=1):
        result.append(Card.make(f"TTYPE{n}", column))
        result.append(Card.make(f"TFORM{n}", tform))
        if column in units:
            result.append(Card.make(f"TUNIT{n}", units[column]))
    result.extend(_name_cards(name, version))
    result.extend(cards)
    return Header(result)


def make_ascii_table_header(
    columns: Mapping[str, str],
    n_rows: int,
    *,
    name: str | None = None,
    version: int | None = None,
    cards: Iterable[Card] = (),
) -> Header:
    """Make a ``TABLE`` (ASCII table) extension header.

    Columns are laid out back to back, with ``TBCOLn`` and ``NAXIS1``
    computed from the ``TFORMn`` widths.

    Raises
    ------
    DecodeError
        Raised if a column format is not recognized.
    """
    widths = [parse_ascii_format(tform)[1] for tform in columns.values()]
    result = [
        Card.make("XTENSION", "TABLE", "ASCII table extension"),
        *_axis_cards(Bitpix.UINT8, (sum(widths), n_rows)),
        Card.make("PCOUNT", 0),
        Card.make("GCOUNT", 1),
        Card.make("TFIELDS", len(widths)),
    ]
    start = 1
    for n, ((column, tform), width) in enumerate(zip(columns.items(), widths), start=1):
        result.append(Card.make(f"TTYPE{n}", column))
        result.append(Card.make(f"TBCOL{n}", start))
        result.append(Card.make(f"TFORM{n}", tform))
        start += width
    result.extend(_name_cards(name, version))
    result.extend(cards)
    return Header(result)
