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

import io
import os
import tempfile
import unittest

from lsst.lazyfits import BufferSource, ClosedSourceError, SourceError, StreamSource, open_source


class _FailingStream(io.BytesIO):
    def read(self, size: int | None = -1) -> bytes:
        raise OSError("disk on fire")


class _TrickleStream(io.BytesIO):
    """A stream that returns at most three bytes per read."""

    def read(self, size: int | None = -1) -> bytes:
        return super().read(3 if size is None or size < 0 else min(size, 3))


class BufferSourceTestCase(unittest.TestCase):
    """Tests for BufferSource."""

    def test_read_at(self) -> None:
        source = BufferSource(b"0123456789")
        self.assertEqual(source.length(), 10)
        self.assertEqual(source.read_at(2, 3), b"234")
        self.assertEqual(source.read_at(8, 5), b"89")
        self.assertEqual(source.read_at(20, 5), b"")
        with self.assertRaises(SourceError):
            source.read_at(-1, 2)

    def test_memoryview(self) -> None:
        source = BufferSource(memoryview(bytearray(b"abcdef"))[1:4])
        self.assertEqual(source.read_at(0, 10), b"bcd")

    def test_close(self) -> None:
        source = BufferSource(bytearray(16))
        self.assertFalse(source.closed)
        source.close()
        source.close()
        self.assertTrue(source.closed)
        with self.assertRaises(ClosedSourceError) as cm:
            source.read_at(4, 2)
        self.assertEqual((cm.exception.offset, cm.exception.length), (4, 2))
        with self.assertRaises(ClosedSourceError):
            source.length()


class StreamSourceTestCase(unittest.TestCase):
    """Tests for StreamSource."""

    def test_read_at(self) -> None:
        source = StreamSource(_TrickleStream(b"0123456789"))
        self.assertEqual(source.read_at(1, 7), b"1234567")
        self.assertEqual(source.read_at(0, 2), b"01")
        self.assertEqual(source.read_at(9, 4), b"9")
        self.assertEqual(source.length(), 10)

    def test_failure(self) -> None:
        source = StreamSource(_FailingStream(b"abc"))
        with self.assertRaises(SourceError) as cm:
            source.read_at(0, 1)
        self.assertIsInstance(cm.exception.__cause__, OSError)
        self.assertNotIsInstance(cm.exception, ClosedSourceError)

    def test_close(self) -> None:
        stream = io.BytesIO(b"abc")
        borrowed = StreamSource(stream, owns_stream=False)
        borrowed.close()
        self.assertTrue(borrowed.closed)
        self.assertFalse(stream.closed)
        with self.assertRaises(ClosedSourceError):
            borrowed.read_at(0, 1)
        owned = StreamSource(stream)
        owned.close()
        self.assertTrue(stream.closed)


class OpenSourceTestCase(unittest.TestCase):
    """Tests for open_source."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.filename = os.path.join(tmp.name, "data.bin")
        with open(self.filename, "wb") as stream:
            stream.write(bytes(range(256)) * 20)
        self.empty = os.path.join(tmp.name, "empty.bin")
        open(self.empty, "wb").close()

    def test_modes(self) -> None:
        for kwargs in [{}, {"memmap": True}, {"partial": True, "page_size": 100}]:
            with self.subTest(**kwargs):
                source = open_source(self.filename, **kwargs)
                try:
                    self.assertEqual(source.length(), 5120)
                    self.assertEqual(source.read_at(255, 3), b"\xff\x00\x01")
                    self.assertEqual(source.read_at(5118, 10), b"\xfe\xff")
                finally:
                    source.close()
                self.assertTrue(source.closed)

    def test_empty_memmap(self) -> None:
        source = open_source(self.empty, memmap=True)
        self.assertEqual(source.length(), 0)
        self.assertEqual(source.read_at(0, 2880), b"")


if __name__ == "__main__":
    unittest.main()
