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

__all__ = ("ReadOptions",)

from typing import ClassVar

import pydantic


class ReadOptions(pydantic.BaseModel):
    """Configuration for how strictly FITS content is interpreted while
    reading.
    """

    model_config = pydantic.ConfigDict(frozen=True, extra="forbid")

    max_header_blocks: int = pydantic.Field(
        default=1000,
        gt=0,
        description=(
            "Maximum number of 2880-byte blocks a single header may span before it is "
            "considered corrupt (missing END)."
        ),
    )
    strict_values: bool = pydantic.Field(
        default=False,
        description=(
            "Whether a card value that does not match the FITS value grammar is an error, "
            "rather than being kept as an opaque value."
        ),
    )
    allow_lowercase_keywords: bool = pydantic.Field(
        default=True,
        description="Whether keywords with lower-case letters are accepted (with case preserved).",
    )
    require_data_padding: bool = pydantic.Field(
        default=True,
        description=(
            "Whether the data unit must be present up to its 2880-byte block boundary, "
            "rather than just up to the end of the declared payload."
        ),
    )

    DEFAULT: ClassVar[ReadOptions]
    """Default options."""


ReadOptions.DEFAULT = ReadOptions()
