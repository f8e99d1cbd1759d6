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

__all__ = ("read_header",)

from logging import getLogger

from ._card import CARD_LENGTH, Card, lex_card
from ._errors import LexError, StructuralError, StructuralErrorReason
from ._header import BLOCK_LENGTH, CARDS_PER_BLOCK, Header
from ._options import ReadOptions
from ._sources import DataSource

_LOG = getLogger(__name__)


def read_header(
    source: DataSource,
    offset: int,
    *,
    primary: bool,
    options: ReadOptions = ReadOptions.DEFAULT,
) -> tuple[Header, int]:
    """Read and validate the header that starts at the given offset.

    Parameters
    ----------
    source
        Source to read from.
    offset
        Byte offset of the first header block.
    primary
        Whether this is the primary header.
    options, optional
        Reading options; ``max_header_blocks`` bounds the read.

    Returns
    -------
    header
        The validated header.
    block_count
        Number of 2880-byte blocks the header occupies in the source.

    Raises
    ------
    StructuralError
        Raised if no ``END`` card is found within ``options.max_header_blocks``
        blocks or before the end of the source, if the source ends partway
        through a block, or if the header fails `Header.validate`.
    LexError
        Raised if a card cannot be parsed.
    SourceError
        Raised if the source cannot be read.
    """
    cards: list[Card] = []
    for block_index in range(options.max_header_blocks):
        block_offset = offset + block_index * BLOCK_LENGTH
        block = source.read_at(block_offset, BLOCK_LENGTH)
        if not block:
            raise StructuralError(
                StructuralErrorReason.MISSING_END,
                f"Source ended after {block_index} header block(s) without an END card.",
                keyword="END",
            )
        if len(block) < BLOCK_LENGTH:
            raise StructuralError(
                StructuralErrorReason.MISALIGNED_HEADER,
                f"Header block at offset {block_offset} has only {len(block)} of {BLOCK_LENGTH} bytes.",
            )
        for n in range(CARDS_PER_BLOCK):
            position = block_index * CARDS_PER_BLOCK + n
            record = block[n * CARD_LENGTH : (n + 1) * CARD_LENGTH]
            try:
                card = lex_card(
                    record,
                    position=position,
                    strict=options.strict_values,
                    allow_lowercase=options.allow_lowercase_keywords,
                )
            except LexError as err:
                raise err.at_card(position) from err
            if card.is_end:
                remainder = block[(n + 1) * CARD_LENGTH :]
                if remainder.strip(b" "):
                    _LOG.warning(
                        "Ignoring non-blank content after END in header at offset %d.", offset
                    )
                cards.append(card)
                header = Header(cards)
                header.validate(primary=primary)
                return header, block_index + 1
            cards.append(card)
    raise StructuralError(
        StructuralErrorReason.MISSING_END,
        f"No END card within {options.max_header_blocks} header block(s).",
        keyword="END",
    )
