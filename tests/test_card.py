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

from lsst.lazyfits import (
    Card,
    Continuation,
    FitsFile,
    Float,
    Integer,
    LexError,
    Logical,
    Opaque,
    String,
    Undefined,
    lex_card,
    make_primary_header,
)


def record(text: str) -> bytes:
    return text.ljust(80).encode("ascii")


class CardLexerTestCase(unittest.TestCase):
    """Tests for lex_card."""

    def test_integer(self) -> None:
        card = lex_card(record("BITPIX  =                   16 / bits per pixel"), position=1)
        self.assertEqual(card.keyword, "BITPIX")
        self.assertEqual(card.value, Integer(16))
        self.assertEqual(card.comment, "bits per pixel")
        self.assertEqual(card.position, 1)
        self.assertFalse(card.commentary)

    def test_free_format_values(self) -> None:
        self.assertEqual(lex_card(record("NEG     = -42")).value, Integer(-42))
        big = lex_card(record("BIG     = 123456789012345678901234567890")).value
        self.assertEqual(big, Integer(123456789012345678901234567890))
        self.assertEqual(lex_card(record("FLAG    = F")).value, Logical(False))

    def test_logical(self) -> None:
        self.assertEqual(lex_card(record("SIMPLE  =                    T")).value, Logical(True))

    def test_real(self) -> None:
        card = lex_card(record("EXPTIME =              1.5D+02 / seconds"))
        self.assertEqual(card.value, Float("1.5D+02"))
        self.assertEqual(card.value.to_decimal(), decimal.Decimal(150))
        self.assertEqual(card.value.to_float(), 150.0)
        # Decimal text is preserved exactly.
        card = lex_card(record("BSCALE  = 0.1000000000000000055511151231257827"))
        self.assertEqual(card.value.to_decimal(), decimal.Decimal("0.1000000000000000055511151231257827"))

    def test_string(self) -> None:
        card = lex_card(record("OBJECT  = 'O''HARA  '           / target name"))
        self.assertEqual(card.value, String("O'HARA"))
        self.assertEqual(card.comment, "target name")
        card = lex_card(record("PADDED  = '  ab  '"))
        self.assertEqual(card.value, String("  ab"))
        card = lex_card(record("SLASH   = 'a/b' / comment"))
        self.assertEqual(card.value, String("a/b"))
        self.assertEqual(card.comment, "comment")

    def test_undefined(self) -> None:
        card = lex_card(record("UNDEF   =                      / no value"))
        self.assertEqual(card.value, Undefined())
        self.assertEqual(card.comment, "no value")

    def test_commentary(self) -> None:
        card = lex_card(record("COMMENT hello world"))
        self.assertTrue(card.commentary)
        self.assertEqual(card.keyword, "COMMENT")
        self.assertEqual(card.comment, "hello world")
        self.assertEqual(card.value, Undefined())
        card = lex_card(record("        blank keyword"))
        self.assertTrue(card.commentary)
        self.assertEqual(card.keyword, "")
        # A record without the value indicator is commentary too.
        card = lex_card(record("HIERARCH ESO DET CHIP = 1"))
        self.assertTrue(card.commentary)
        self.assertEqual(card.keyword, "HIERARCH")

    def test_end(self) -> None:
        card = lex_card(record("END"))
        self.assertTrue(card.is_end)

    def test_continue(self) -> None:
        card = lex_card(record("CONTINUE  'more text&'"))
        self.assertEqual(card.value, Continuation("more text&"))
        self.assertTrue(card.value.continues)

    def test_complex_is_opaque(self) -> None:
        card = lex_card(record("CPLX    = (1.0, 2.0) / complex"))
        self.assertEqual(card.value, Opaque("(1.0, 2.0)"))
        self.assertEqual(card.comment, "complex")

    def test_malformed_value(self) -> None:
        with self.assertLogs("lsst.lazyfits", "WARNING"):
            card = lex_card(record("BAD     = 12abc"))
        self.assertEqual(card.value, Opaque("12abc"))
        with self.assertRaises(LexError) as cm:
            lex_card(record("BAD     = 12abc"), strict=True)
        self.assertEqual(cm.exception.offset, 10)
        with self.assertRaises(LexError):
            lex_card(record("BAD     = 'unterminated"), strict=True)

    def test_lowercase_keyword(self) -> None:
        with self.assertLogs("lsst.lazyfits", "WARNING"):
            card = lex_card(record("exptime = 30"))
        self.assertEqual(card.keyword, "exptime")
        with self.assertRaises(LexError) as cm:
            lex_card(record("exptime = 30"), allow_lowercase=False)
        self.assertEqual(cm.exception.offset, 0)

    def test_invalid_records(self) -> None:
        with self.assertRaises(LexError):
            lex_card(b"SIMPLE  =                    T")
        bad = bytearray(record("OBJECT  = 'M31'"))
        bad[20] = 0x01
        with self.assertRaises(LexError) as cm:
            lex_card(bytes(bad))
        self.assertEqual(cm.exception.offset, 20)
        self.assertEqual(cm.exception.record, bytes(bad))
        with self.assertRaises(LexError) as cm:
            lex_card(record("BAD*KEY = 1"))
        self.assertEqual(cm.exception.offset, 3)
        with self.assertRaises(LexError):
            lex_card(record("BAD KEY = 1"))

    def test_lexed_image_is_byte_exact(self) -> None:
        for text in (
            "BITPIX  =  16",
            "OBJECT  = 'M31'    /   odd   spacing",
            "COMMENT   indented commentary",
            "END",
        ):
            self.assertEqual(lex_card(record(text)).image, record(text))


class SyntheticCardTestCase(unittest.TestCase):
    """Tests for formatting programmatically-constructed cards."""

    def test_fixed_format(self) -> None:
        self.assertEqual(Card.make("NAXIS", 2).image, record("NAXIS   =                    2"))
        self.assertEqual(Card.make("SIMPLE", True).image, record("SIMPLE  =                    T"))
        self.assertEqual(Card.make("OBJECT", "M31").image, record("OBJECT  = 'M31     '"))
        self.assertEqual(
            Card.make("NAXIS", 2, "number of axes").image,
            record("NAXIS   =                    2 / number of axes"),
        )
        self.assertEqual(Card.make("BSCALE", 2.0).image, record("BSCALE  =                  2.0"))
        self.assertEqual(Card.make_commentary("HISTORY", "did a thing").image, record("HISTORY did a thing"))
        self.assertEqual(Card.make_end().image, record("END"))

    def test_relex_synthetic(self) -> None:
        for card in (
            Card.make("NAXIS", 2, "number of axes"),
            Card.make("OBJECT", "it's"),
            Card.make("BZERO", 32768),
            Card.make("GAIN", decimal.Decimal("1.25")),
            Card.make("FLAG", False),
            Card.make("NOVALUE"),
            Card.make_commentary("COMMENT", "some text"),
        ):
            self.assertEqual(lex_card(card.image), card)

    def test_too_long(self) -> None:
        with self.assertRaises(ValueError):
            Card.make("OBJECT", "x" * 80).image
        with self.assertRaises(ValueError):
            Card.make("TOOLONGKEY", 1)

    def test_invalid_keywords(self) -> None:
        for make in (
            lambda: Card.make("OBS.ID", 1),
            lambda: Card.make("OBS ID", 1),
            lambda: Card.make("COMMENT", 5),
            lambda: Card.make("HISTORY", "text"),
            lambda: Card.make("", 1),
            lambda: Card("END", Integer(1)),
            lambda: Card("END", comment="trailing"),
            lambda: Card("END", commentary=True),
            lambda: Card("CONTINUE", Integer(1)),
            lambda: Card.make_commentary("CONTINUE", "text"),
            lambda: Card("OBJECT", Continuation("text")),
        ):
            with self.assertRaises(ValueError):
                make()
        self.assertEqual(Card.make("obs_id", 1).keyword, "obs_id")

    def test_header_round_trip(self) -> None:
        header = make_primary_header(
            cards=[
                Card.make("DATE-OBS", "2024-01-01"),
                Card.make("EXP_TIME", 30.5, "seconds"),
                Card.make_commentary("HISTORY", "made by hand"),
                Card.make_commentary("", "blank keyword"),
                Card.make("LONGSTR", "abc&"),
                Card("CONTINUE", Continuation("def")),
            ]
        )
        read = FitsFile.from_bytes(header.to_bytes()).primary.header
        self.assertEqual(read, header)
        self.assertEqual(read.get_str("DATE-OBS"), "2024-01-01")
        self.assertEqual(read.get_decimal("EXP_TIME"), decimal.Decimal("30.5"))
        self.assertEqual(read.get_str("LONGSTR"), "abcdef")
        self.assertEqual(read.commentary("HISTORY"), ["made by hand"])


class ValueConversionTestCase(unittest.TestCase):
    """Tests for converting values to Python objects."""

    def test_to_python(self) -> None:
        precise = Float("1.0000000000000000001D0").to_python()
        self.assertIsInstance(precise, decimal.Decimal)
        self.assertEqual(precise, decimal.Decimal("1.0000000000000000001"))
        self.assertIs(Logical(True).to_python(), True)
        self.assertIs(Logical(False).to_python(), False)
        self.assertEqual(Integer(2**70).to_python(), 2**70)
        self.assertEqual(String("M31").to_python(), "M31")
        self.assertIsNone(Undefined().to_python())
        self.assertEqual(Continuation("more&").to_python(), "more&")
        self.assertEqual(Opaque("(1, 2)").to_python(), "(1, 2)")

    def test_lexed_to_python(self) -> None:
        self.assertEqual(lex_card(record("BZERO   =           32768.0000")).value.to_python(), 32768)
        self.assertIs(lex_card(record("EXTEND  =                    T")).value.to_python(), True)
        self.assertIsNone(lex_card(record("NOVALUE =")).value.to_python())


if __name__ == "__main__":
    unittest.main()
