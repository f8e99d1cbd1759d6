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
    "CARD_LENGTH",
    "COMMENTARY_KEYWORDS",
    "KEYWORD_LENGTH",
    "Card",
    "lex_card",
)

import dataclasses
import re
from logging import getLogger
from typing import final

from ._errors import LexError
from ._values import (
    Continuation,
    Float,
    Integer,
    Logical,
    Opaque,
    String,
    Undefined,
    Value,
    quote_string,
    value_from_python,
)

_LOG = getLogger(__name__)

CARD_LENGTH = 80
KEYWORD_LENGTH = 8

COMMENTARY_KEYWORDS = frozenset({"", "COMMENT", "HISTORY"})

_VALUE_INDICATOR = b"= "
_VALUE_START = 10

_NONPRINTABLE_RE = re.compile(rb"[^\x20-\x7e]")
_KEYWORD_RE = re.compile(r"[A-Z0-9_-]*")
_LOWERCASE_KEYWORD_RE = re.compile(r"[A-Za-z0-9_-]*")
_INTEGER_RE = re.compile(r"[+-]?\d+")
# Exponent letters are upper case in the standard; lower case is tolerated.
_REAL_RE = re.compile(r"[+-]?(?:\.\d+|\d+(?:\.\d*)?)(?:[EDed][+-]?\d+)?")
_COMPLEX_RE = re.compile(r"\(\s*[^,()]+\s*,\s*[^,()]+\s*\)")


@final
@dataclasses.dataclass(frozen=True)
class Card:
    """A single keyword/value/comment record of a FITS header.

    Cards compare equal when their keyword, value, comment, and commentary
    flag match; their position and original text are not compared.
    """

    keyword: str
    """Keyword with trailing spaces removed, case preserved (`str`)."""

    value: Value = Undefined()
    """Typed value of the card (`Value`)."""

    comment: str | None = None
    """Comment text, or the full text of a commentary card (`str` or
    `None`).
    """

    commentary: bool = False
    """Whether this is a commentary card (``COMMENT``, ``HISTORY``, blank
    keyword, or any card without the ``= `` value indicator).
    """

    position: int | None = dataclasses.field(default=None, compare=False)
    """Zero-based position of the card within the header it was read from,
    if any.
    """

    raw: bytes | None = dataclasses.field(default=None, compare=False, repr=False)
    """The original 80 bytes the card was lexed from, if any."""

    def __post_init__(self) -> None:
        if len(self.keyword) > KEYWORD_LENGTH:
            raise ValueError(f"Keyword {self.keyword!r} is longer than {KEYWORD_LENGTH} characters.")
        if not _LOWERCASE_KEYWORD_RE.fullmatch(self.keyword):
            raise ValueError(
                f"Keyword {self.keyword!r} contains characters other than letters, digits, '-' and '_'."
            )
        if self.raw is None:
            self._check_reserved()

    def _check_reserved(self) -> None:
        # Synthetic cards must lex back to the same card; lexed cards keep
        # whatever the source held.
        if self.commentary:
            if self.keyword in ("END", "CONTINUE"):
                raise ValueError(f"{self.keyword} cannot be used as a commentary keyword.")
            return
        if self.keyword in COMMENTARY_KEYWORDS:
            raise ValueError(f"Keyword {self.keyword!r} is reserved for commentary cards.")
        match self.value:
            case Continuation() if self.keyword != "CONTINUE":
                raise ValueError(f"Only CONTINUE cards may hold a Continuation, not {self.keyword!r}.")
            case Continuation():
                pass
            case _ if self.keyword == "CONTINUE":
                raise ValueError(f"CONTINUE cards must hold a Continuation, not {self.value!r}.")
        if self.keyword == "END" and (self.value != Undefined() or self.comment is not None):
            raise ValueError("The END card cannot have a value or comment.")

    @classmethod
    def make(cls, keyword: str, value: object = None, comment: str | None = None) -> Card:
        """Construct a synthetic value card, converting the value from a
        Python object.
        """
        return cls(keyword, value_from_python(value), comment)

    @classmethod
    def make_commentary(cls, keyword: str, text: str) -> Card:
        """Construct a synthetic ``COMMENT``, ``HISTORY``, or blank-keyword
        card.
        """
        return cls(keyword, Undefined(), text, commentary=True)

    @classmethod
    def make_end(cls) -> Card:
        """Construct an ``END`` card."""
        return cls("END")

    @property
    def is_end(self) -> bool:
        """Whether this is the ``END`` card."""
        return self.keyword == "END" and not self.commentary

    @property
    def image(self) -> bytes:
        """The 80-byte text of the card.

        Lexed cards return their original bytes unchanged; synthetic cards
        are formatted in fixed format.

        Raises
        ------
        ValueError
            Raised if the formatted card would not fit in 80 bytes.
        """
        if self.raw is not None:
            return self.raw
        return self._format()

    def _format(self) -> bytes:
        keyword = self.keyword.ljust(KEYWORD_LENGTH)
        if self.is_end:
            text = keyword
        elif self.commentary:
            text = keyword + (self.comment or "")
        else:
            match self.value:
                case Continuation(fragment=fragment):
                    text = f"{keyword}  {quote_string(fragment)}"
                case _:
                    text = f"{keyword}= {self.value.to_card_text().ljust(20)}"
            if self.comment is not None:
                text = f"{text.rstrip()} / {self.comment}"
        if len(text) > CARD_LENGTH:
            raise ValueError(f"Card for {self.keyword!r} does not fit in {CARD_LENGTH} characters: {text!r}.")
        return text.ljust(CARD_LENGTH).encode("ascii")

    def __str__(self) -> str:
        return self.image.decode("ascii")


def lex_card(
    record: bytes,
    *,
    position: int | None = None,
    strict: bool = False,
    allow_lowercase: bool = True,
) -> Card:
    """Parse a single 80-byte header record.

    Parameters
    ----------
    record
        Exactly 80 bytes of card text.
    position, optional
        Position of the card within its header, recorded on the result.
    strict, optional
        If `True`, a value field that does not match the FITS value grammar
        raises `LexError`; by default it is kept as an `Opaque` value.
    allow_lowercase, optional
        If `True` (default), lower-case letters in the keyword are accepted
        (case is preserved).

    Returns
    -------
    Card
        The parsed card.

    Raises
    ------
    LexError
        Raised if the record has the wrong length, contains bytes outside
        printable ASCII, or has an invalid keyword or (when ``strict``) an
        invalid value field.
    """
    record = bytes(record)
    if len(record) != CARD_LENGTH:
        raise LexError(
            f"Card has {len(record)} bytes, not {CARD_LENGTH}",
            offset=min(len(record), CARD_LENGTH),
            record=record,
        )
    if (bad := _NONPRINTABLE_RE.search(record)) is not None:
        raise LexError("Card contains a non-printable byte", offset=bad.start(), record=record)
    text = record.decode("ascii")
    keyword = text[:KEYWORD_LENGTH].rstrip(" ")
    _check_keyword(keyword, record, allow_lowercase)
    if keyword == "END":
        if text[KEYWORD_LENGTH:].strip():
            _LOG.warning("END card has non-blank content %r; ignoring it.", text[KEYWORD_LENGTH:].strip())
        return Card("END", position=position, raw=record)
    if keyword in COMMENTARY_KEYWORDS or (
        keyword != "CONTINUE" and record[KEYWORD_LENGTH:_VALUE_START] != _VALUE_INDICATOR
    ):
        return Card(
            keyword,
            Undefined(),
            text[KEYWORD_LENGTH:].rstrip(" "),
            commentary=True,
            position=position,
            raw=record,
        )
    value, comment = _parse_value_field(text[_VALUE_START:], record, strict)
    if keyword == "CONTINUE":
        match value:
            case String(text=fragment):
                value = Continuation(fragment)
            case Undefined():
                value = Continuation("")
            case _:
                if strict:
                    raise LexError("CONTINUE card does not hold a string", offset=_VALUE_START, record=record)
                _LOG.warning("CONTINUE card does not hold a string: %r.", text)
    return Card(keyword, value, comment, position=position, raw=record)


def _check_keyword(keyword: str, record: bytes, allow_lowercase: bool) -> None:
    if " " in keyword:
        raise LexError("Keyword contains an embedded space", offset=keyword.index(" "), record=record)
    if _KEYWORD_RE.fullmatch(keyword):
        return
    if allow_lowercase and _LOWERCASE_KEYWORD_RE.fullmatch(keyword):
        _LOG.warning("Keyword %r contains lower-case letters.", keyword)
        return
    for n, char in enumerate(keyword):
        if not _KEYWORD_RE.fullmatch(char):
            raise LexError(f"Keyword contains invalid character {char!r}", offset=n, record=record)
    raise AssertionError("Unreachable: keyword failed validation without an invalid character.")


def _parse_value_field(field: str, record: bytes, strict: bool) -> tuple[Value, str | None]:
    """Parse the value and comment from columns 11-80 of a value card."""
    start = len(field) - len(field.lstrip(" "))
    if start == len(field):
        return Undefined(), None
    value: Value
    if field[start] == "'":
        pieces: list[str] = []
        pos = start + 1
        while True:
            quote = field.find("'", pos)
            if quote < 0:
                return _malformed(
                    "Unterminated string value", field, start, record, strict, offset=_VALUE_START + start
                )
            pieces.append(field[pos:quote])
            if field.startswith("'", quote + 1):
                pieces.append("'")
                pos = quote + 2
            else:
                pos = quote + 1
                break
        value = String("".join(pieces).rstrip(" "))
        rest = field[pos:]
    else:
        slash = field.find("/", start)
        if slash < 0:
            slash = len(field)
        token = field[start:slash].rstrip(" ")
        rest = field[slash:]
        if not token:
            value = Undefined()
        elif token == "T" or token == "F":
            value = Logical(token == "T")
        elif _INTEGER_RE.fullmatch(token):
            value = Integer(int(token))
        elif _REAL_RE.fullmatch(token):
            value = Float(token)
        elif _COMPLEX_RE.fullmatch(token):
            return Opaque(token), _parse_comment(rest)
        else:
            return _malformed(
                f"Invalid value {token!r}", field, start, record, strict, offset=_VALUE_START + start
            )
    stripped = rest.lstrip(" ")
    if stripped and not stripped.startswith("/"):
        return _malformed(
            "Unexpected text after value",
            field,
            start,
            record,
            strict,
            offset=_VALUE_START + len(field) - len(stripped),
        )
    return value, _parse_comment(stripped)


def _parse_comment(rest: str) -> str | None:
    rest = rest.lstrip(" ")
    if not rest.startswith("/"):
        return None
    return rest[1:].strip(" ")


def _malformed(
    message: str, field: str, start: int, record: bytes, strict: bool, *, offset: int
) -> tuple[Value, str | None]:
    if strict:
        raise LexError(message, offset=offset, record=record)
    _LOG.warning("%s in card %r; keeping the value text as opaque.", message, record.decode("ascii"))
    return Opaque(field[start:].rstrip(" ")), None
