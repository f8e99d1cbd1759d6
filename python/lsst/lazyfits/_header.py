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

__all__ = ("BLOCK_LENGTH", "CARDS_PER_BLOCK", "Header")

import decimal
import re
from collections.abc import Iterable, Iterator
from logging import getLogger
from typing import Any, final

from ._card import CARD_LENGTH, Card
from ._dtypes import Bitpix
from ._errors import StructuralError, StructuralErrorReason
from ._values import Continuation, Float, Integer, Logical, String, Value, value_from_python
from .utils import round_up

_LOG = getLogger(__name__)

BLOCK_LENGTH = 2880
CARDS_PER_BLOCK = BLOCK_LENGTH // CARD_LENGTH

_NAXIS_N_RE = re.compile(r"NAXIS([1-9][0-9]{0,2})")
_MAX_NAXIS = 999

_KEEP: Any = object()


@final
class Header:
    """An immutable, ordered sequence of header cards terminated by ``END``.

    Parameters
    ----------
    cards
        Cards in order.  An ``END`` card is appended if not already last.

    Notes
    -----
    Keyword lookups are case-insensitive and return the first valued
    occurrence; repeated keywords (``HISTORY``, ``COMMENT``, and any
    non-structural keyword) are all retained and visible through iteration.
    Strings that use the ``CONTINUE`` long-string convention are assembled
    into a single `String` value for lookups.
    """

    def __init__(self, cards: Iterable[Card]):
        cards = list(cards)
        if not cards or not cards[-1].is_end:
            cards.append(Card.make_end())
        if any(card.is_end for card in cards[:-1]):
            raise ValueError("A header may only have a single END card, as its last card.")
        self._cards = tuple(cards)
        self._values: dict[str, Value] = {}
        for n, card in enumerate(self._cards):
            if card.commentary or card.is_end or card.keyword == "CONTINUE":
                continue
            key = card.keyword.upper()
            if key not in self._values:
                self._values[key] = self._assemble(n, card.value)

    def _assemble(self, n: int, value: Value) -> Value:
        match value:
            case String(text=text) if value.continues:
                for card in self._cards[n + 1 :]:
                    match card.value:
                        case Continuation(fragment=fragment) if card.keyword == "CONTINUE":
                            text = text[:-1] + fragment
                            if not card.value.continues:
                                break
                        case _:
                            break
                return String(text)
        return value

    @classmethod
    def from_cards(cls, *cards: Card) -> Header:
        """Construct from cards given as positional arguments."""
        return cls(cards)

    @property
    def cards(self) -> tuple[Card, ...]:
        """All cards, including the final ``END`` card."""
        return self._cards

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)

    def __len__(self) -> int:
        return len(self._cards)

    def __contains__(self, keyword: object) -> bool:
        return isinstance(keyword, str) and keyword.upper() in self._values

    def __getitem__(self, keyword: str) -> Value:
        try:
            return self._values[keyword.upper()]
        except KeyError:
            raise KeyError(f"No card with keyword {keyword!r} in header.") from None

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Header):
            return self._cards == other._cards
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._cards)

    def __str__(self) -> str:
        return "\n".join(str(card).rstrip() for card in self._cards)

    def __repr__(self) -> str:
        return f"Header(<{len(self._cards)} cards>)"

    def get(self, keyword: str, default: Value | None = None) -> Value | None:
        """Return the value of the first card with the given keyword, or
        ``default`` if there is no such card.
        """
        return self._values.get(keyword.upper(), default)

    def get_card(self, keyword: str) -> Card | None:
        """Return the first non-commentary card with the given keyword."""
        key = keyword.upper()
        for card in self._cards:
            if card.keyword.upper() == key and not card.commentary:
                return card
        return None

    def commentary(self, keyword: str = "COMMENT") -> list[str]:
        """Return the text of all commentary cards with the given keyword."""
        key = keyword.upper()
        return [card.comment or "" for card in self._cards if card.commentary and card.keyword.upper() == key]

    def get_int(self, keyword: str, default: int | None = None) -> int | None:
        """Return an integer-valued keyword, or ``default`` if absent.

        Raises
        ------
        TypeError
            Raised if the keyword is present but not an integer.
        """
        match self.get(keyword):
            case None:
                return default
            case Integer(value=value):
                return value
            case other:
                raise TypeError(f"Value of {keyword!r} is {other!r}, not an integer.")

    def get_decimal(self, keyword: str, default: decimal.Decimal | None = None) -> decimal.Decimal | None:
        """Return a numeric keyword as a lossless `decimal.Decimal`, or
        ``default`` if absent.

        Raises
        ------
        TypeError
            Raised if the keyword is present but not numeric.
        """
        match self.get(keyword):
            case None:
                return default
            case Integer() | Float() as number:
                return number.to_decimal()
            case other:
                raise TypeError(f"Value of {keyword!r} is {other!r}, not a number.")

    def get_float(self, keyword: str, default: float | None = None) -> float | None:
        """Return a numeric keyword as a `float`, or ``default`` if absent.

        Raises
        ------
        TypeError
            Raised if the keyword is present but not numeric.
        """
        match self.get(keyword):
            case None:
                return default
            case Integer() | Float() as number:
                return number.to_float()
            case other:
                raise TypeError(f"Value of {keyword!r} is {other!r}, not a number.")

    def get_str(self, keyword: str, default: str | None = None) -> str | None:
        """Return a string-valued keyword, or ``default`` if absent.

        Raises
        ------
        TypeError
            Raised if the keyword is present but not a string.
        """
        match self.get(keyword):
            case None:
                return default
            case String(text=text):
                return text
            case other:
                raise TypeError(f"Value of {keyword!r} is {other!r}, not a string.")

    def get_bool(self, keyword: str, default: bool | None = None) -> bool | None:
        """Return a logical keyword, or ``default`` if absent.

        Raises
        ------
        TypeError
            Raised if the keyword is present but not logical.
        """
        match self.get(keyword):
            case None:
                return default
            case Logical(value=value):
                return value
            case other:
                raise TypeError(f"Value of {keyword!r} is {other!r}, not a logical.")

    def to_bytes(self) -> bytes:
        """Serialize the header, padded with spaces to a whole number of
        2880-byte blocks.
        """
        raw = b"".join(card.image for card in self._cards)
        return raw.ljust(round_up(len(raw), BLOCK_LENGTH), b" ")

    @property
    def block_count(self) -> int:
        """Number of 2880-byte blocks the serialized header occupies."""
        return -(-len(self._cards) // CARDS_PER_BLOCK)

    def updated(self, keyword: str, value: object, comment: str | None = _KEEP) -> Header:
        """Return a new header with the value (and optionally the comment) of
        a card set.

        Parameters
        ----------
        keyword
            Keyword to set.  The first existing card with this keyword is
            replaced in place; otherwise a new card is inserted before
            ``END``.
        value
            New value, as a `Value` or a Python object convertible to one.
        comment, optional
            New comment.  If not provided, an existing card's comment is
            kept.

        Returns
        -------
        Header
            The updated header.
        """
        cards = list(self._cards)
        key = keyword.upper()
        for n, card in enumerate(cards):
            if card.keyword.upper() == key and not card.commentary and not card.is_end:
                new_comment = card.comment if comment is _KEEP else comment
                cards[n] = Card(card.keyword, value_from_python(value), new_comment)
                return Header(cards)
        new_card = Card(keyword, value_from_python(value), None if comment is _KEEP else comment)
        cards.insert(len(cards) - 1, new_card)
        return Header(cards)

    def with_comment(self, keyword: str, comment: str | None) -> Header:
        """Return a new header with the comment of an existing card replaced.

        Headers without a card for ``keyword`` are returned unchanged.
        """
        if (card := self.get_card(keyword)) is None:
            return self
        return self.updated(keyword, card.value, comment)

    def appended(self, *cards: Card) -> Header:
        """Return a new header with cards inserted before ``END``."""
        return Header(self._cards[:-1] + cards)

    def validate(self, *, primary: bool) -> None:
        """Check the mandatory structural keywords.

        Parameters
        ----------
        primary
            Whether this is the header of the primary HDU (which must begin
            with ``SIMPLE``) rather than an extension (``XTENSION``).

        Raises
        ------
        StructuralError
            Raised if a mandatory keyword is missing, duplicated, out of
            order, or has an invalid value, if the number of ``NAXISn`` cards
            does not match ``NAXIS``, or if ``BITPIX`` is unsupported.
        """
        first = "SIMPLE" if primary else "XTENSION"
        naxis_cards = [card for card in self._cards if _NAXIS_N_RE.fullmatch(card.keyword)]
        structural = {first, "BITPIX", "NAXIS"} | {card.keyword for card in naxis_cards}
        seen: set[str] = set()
        for card in self._cards:
            if card.keyword in structural and not card.commentary:
                if card.keyword in seen:
                    raise StructuralError(
                        StructuralErrorReason.DUPLICATE_KEYWORD,
                        f"Keyword {card.keyword!r} appears more than once.",
                        keyword=card.keyword,
                    )
                seen.add(card.keyword)
        match self._cards[0]:
            case Card(keyword="SIMPLE", value=Logical(value=simple)) if primary:
                if not simple:
                    _LOG.warning("Primary header has SIMPLE = F; reading it anyway.")
            case Card(keyword="XTENSION", value=String()) if not primary:
                pass
            case Card(keyword=keyword) if keyword == first:
                raise StructuralError(
                    StructuralErrorReason.INVALID_VALUE,
                    f"Invalid {first} value {self._cards[0].value!r}.",
                    keyword=first,
                )
            case _:
                reason = (
                    StructuralErrorReason.MISORDERED_KEYWORD
                    if first in seen
                    else StructuralErrorReason.MISSING_KEYWORD
                )
                raise StructuralError(reason, f"Header does not begin with {first}.", keyword=first)
        bitpix_value = self._require_integer(1, "BITPIX", seen)
        if bitpix_value not in Bitpix:
            raise StructuralError(
                StructuralErrorReason.UNSUPPORTED_BITPIX,
                f"BITPIX = {bitpix_value} is not one of {[b.value for b in Bitpix]}.",
                keyword="BITPIX",
            )
        naxis = self._require_integer(2, "NAXIS", seen)
        if not 0 <= naxis <= _MAX_NAXIS:
            raise StructuralError(
                StructuralErrorReason.INVALID_VALUE, f"NAXIS = {naxis} is out of range.", keyword="NAXIS"
            )
        if len(naxis_cards) != naxis:
            raise StructuralError(
                StructuralErrorReason.NAXIS_MISMATCH,
                f"NAXIS = {naxis}, but {len(naxis_cards)} NAXISn card(s) are present.",
                keyword="NAXIS",
            )
        for n in range(1, naxis + 1):
            keyword = f"NAXIS{n}"
            if keyword not in seen:
                raise StructuralError(
                    StructuralErrorReason.NAXIS_MISMATCH,
                    f"NAXIS = {naxis}, but {keyword} is missing.",
                    keyword=keyword,
                )
            if self._require_integer(2 + n, keyword, seen) < 0:
                raise StructuralError(
                    StructuralErrorReason.INVALID_VALUE, f"{keyword} is negative.", keyword=keyword
                )
        if not primary:
            self._validate_extension(naxis, bitpix_value)

    def _require_integer(self, position: int, keyword: str, seen: set[str]) -> int:
        card = self._cards[position] if position < len(self._cards) else None
        if card is None or card.keyword != keyword:
            reason = (
                StructuralErrorReason.MISORDERED_KEYWORD
                if keyword in seen
                else StructuralErrorReason.MISSING_KEYWORD
            )
            raise StructuralError(
                reason, f"Expected {keyword} as card {position + 1} of the header.", keyword=keyword
            )
        match card.value:
            case Integer(value=value):
                return value
        raise StructuralError(
            StructuralErrorReason.INVALID_VALUE,
            f"{keyword} has non-integer value {card.value!r}.",
            keyword=keyword,
        )

    def _validate_extension(self, naxis: int, bitpix: int) -> None:
        for keyword, minimum in (("PCOUNT", 0), ("GCOUNT", 0)):
            match self.get(keyword):
                case None:
                    pass
                case Integer(value=value) if value >= minimum:
                    pass
                case other:
                    raise StructuralError(
                        StructuralErrorReason.INVALID_VALUE,
                        f"Invalid {keyword} value {other!r}.",
                        keyword=keyword,
                    )
        xtension = self.get_str("XTENSION", "")
        assert xtension is not None, "Guaranteed by default."
        if xtension.strip().upper() in ("BINTABLE", "TABLE"):
            if naxis != 2 or bitpix != 8:
                raise StructuralError(
                    StructuralErrorReason.INVALID_VALUE,
                    f"Table extensions require BITPIX = 8 and NAXIS = 2, not {bitpix} and {naxis}.",
                    keyword="NAXIS",
                )
            match self.get("TFIELDS"):
                case Integer(value=value) if 0 <= value <= _MAX_NAXIS:
                    pass
                case None:
                    raise StructuralError(
                        StructuralErrorReason.MISSING_KEYWORD,
                        "Table extension has no TFIELDS card.",
                        keyword="TFIELDS",
                    )
                case other:
                    raise StructuralError(
                        StructuralErrorReason.INVALID_VALUE,
                        f"Invalid TFIELDS value {other!r}.",
                        keyword="TFIELDS",
                    )
