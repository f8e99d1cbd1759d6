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

import decimal
import unittest

import astropy.io.fits
import numpy as np

from lsst.lazyfits import (
    AsciiTableHdu,
    BoundsError,
    Card,
    DecodeError,
    FitsFile,
    Header,
    make_ascii_table_header,
    make_primary_header,
)
from lsst.lazyfits.tests import astropy_to_bytes, fits_bytes

COLUMNS = {"id": "I6", "flux": "E12.4", "name": "A10", "val": "F8.3"}

ROWS = [
    "     1" + "  1.2345E+02" + "alpha     " + "   1.500",
    "  -999" + "            " + "beta      " + "    1500",
    "     3" + "  2.5000D-01" + "          " + "  -0.125",
]


def ascii_hdu(header: Header, rows: list[str]) -> AsciiTableHdu:
    data = "".join(rows).encode("ascii")
    hdu = FitsFile.from_bytes(fits_bytes((make_primary_header(), b""), (header, data)))[1]
    assert isinstance(hdu, AsciiTableHdu)
    return hdu


class AsciiTableViewTestCase(unittest.TestCase):
    """Tests for AsciiTableView."""

    def setUp(self) -> None:
        header = make_ascii_table_header(
            COLUMNS,
            3,
            name="ASCII",
            cards=[Card.make("TNULL1", "-999"), Card.make("TSCAL4", 2), Card.make("TZERO4", 1)],
        )
        self.view = ascii_hdu(header, ROWS).view

    def test_layout(self) -> None:
        self.assertEqual(self.view.n_rows, 3)
        self.assertEqual(self.view.row_length, 36)
        self.assertEqual([c.offset for c in self.view.columns], [0, 6, 18, 28])
        self.assertEqual([c.format for c in self.view.columns], list(COLUMNS.values()))
        self.assertEqual(self.view.column_index("NAME"), 2)

    def test_cells(self) -> None:
        self.assertEqual(self.view.cell(0, "id"), 1)
        self.assertEqual(self.view.cell(0, "flux"), decimal.Decimal("123.45"))
        self.assertEqual(self.view.cell(2, "flux"), decimal.Decimal("0.25"))
        self.assertEqual(self.view.cell(0, "name"), "alpha")
        self.assertEqual(self.view.cell(2, "name"), "")

    def test_nulls(self) -> None:
        self.assertIsNone(self.view.cell(1, "id"))
        self.assertIsNone(self.view.cell(1, "flux"))

    def test_implied_decimal_and_scaling(self) -> None:
        # 1.500 and (implied) 1.500, scaled by 2 and offset by 1.
        self.assertEqual(self.view.cell(0, "val"), decimal.Decimal(4))
        self.assertEqual(self.view.cell(1, "val"), decimal.Decimal(4))
        self.assertEqual(self.view.cell(2, "val"), decimal.Decimal("0.75"))

    def test_rows_and_columns(self) -> None:
        self.assertEqual(
            self.view.row(2),
            {"id": 3, "flux": decimal.Decimal("0.25"), "name": "", "val": decimal.Decimal("0.75")},
        )
        self.assertEqual(self.view.column("id"), [1, None, 3])
        self.assertEqual(self.view.column(2), ["alpha", "beta", ""])

    def test_bounds(self) -> None:
        with self.assertRaises(BoundsError):
            self.view.cell(3, "id")
        with self.assertRaises(BoundsError):
            self.view.cell(0, 4)
        with self.assertRaises(KeyError):
            self.view.cell(0, "missing")

    def test_invalid_fields(self) -> None:
        header = make_ascii_table_header({"n": "I4", "x": "E8.2"}, 1)
        view = ascii_hdu(header, ["12x " + "1.0E+0q "]).view
        with self.assertRaises(DecodeError):
            view.cell(0, "n")
        with self.assertRaises(DecodeError):
            view.cell(0, "x")

    def test_invalid_header(self) -> None:
        header = make_ascii_table_header({"n": "I4"}, 1)
        with self.assertRaises(DecodeError):
            ascii_hdu(header.updated("TFORM1", "Z4"), ["   1"]).view
        with self.assertRaises(DecodeError):
            ascii_hdu(header.updated("TBCOL1", 2), ["   1"]).view


class AstropyAsciiTableTestCase(unittest.TestCase):
    """Tests that compare against ASCII tables written by astropy."""

    def test_astropy_ascii_table(self) -> None:
        table_hdu = astropy.io.fits.TableHDU.from_columns(
            [
                astropy.io.fits.Column(name="a", format="I5", array=np.array([1, -20])),
                astropy.io.fits.Column(name="b", format="E12.4", array=np.array([1.5, -2.5e10])),
                astropy.io.fits.Column(name="c", format="A4", array=np.array(["ab", "wxyz"])),
            ]
        )
        fits_file = FitsFile.from_bytes(
            astropy_to_bytes(astropy.io.fits.HDUList([astropy.io.fits.PrimaryHDU(), table_hdu]))
        )
        hdu = fits_file[1]
        assert isinstance(hdu, AsciiTableHdu)
        self.assertEqual(hdu.view.column("a"), [1, -20])
        self.assertEqual([float(v) for v in hdu.view.column("b")], [1.5, -2.5e10])
        self.assertEqual(hdu.view.column("c"), ["ab", "wxyz"])


if __name__ == "__main__":
    unittest.main()
