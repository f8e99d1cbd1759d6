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

"""The closed set of typed values a header card can hold.

Numeric literals are kept in their textual form until a consumer asks for a
machine type, so that a header can be re-serialized without loss and values
like ``BZERO = 2147483648`` or ``1.0000000000000000001D0`` are never rounded
behind the caller's back.
"""

from __future__ import annotations

__all__ = (
    "Continuation",
    "Float",
    "Integer",
    "Logical",
    "Opaque",
    "String",
    "Undefined",
    "Value",
    "value_from_python",
)

import dataclasses
import decimal
import math
from typing import final

# Fixed-format values are right-justified to end in column 30, i.e. they
# occupy the 20 characters following the '= ' indicator.
FIXED_VALUE_WIDTH = 20


@final
@dataclasses.dataclass(frozen=True)
class Logical:
    """A FITS logical (``T`` or ``F``) value."""

    value: bool

    def to_python(self) -> bool:
        return self.value

    def to_card_text(self) -> str:
        return ("T" if self.value else "F").rjust(FIXED_VALUE_WIDTH)


@final
@dataclasses.dataclass(frozen=True)
class Integer:
    """A FITS integer value of arbitrary precision."""

    value: int

    def to_python(self) -> int:
        return self.value

    def to_card_text(self) -> str:
        return str(self.value).rjust(FIXED_VALUE_WIDTH)

    def to_decimal(self) -> decimal.Decimal:
        return decimal.Decimal(self.value)

    def to_float(self) -> float:
        return float(self.value)


@final
@dataclasses.dataclass(frozen=True)
class Float:
    """A FITS real value, held as its literal text.

    Notes
    -----
    The FITS standard permits ``D`` as the exponent character; it is
    preserved in `text` and translated only by the conversion methods.
    Equality compares the literal text, so ``1.0`` and ``1.00`` are distinct
    values (they serialize differently).
    """

    text: str

    @classmethod
    def from_float(cls, value: float) -> Float:
        """Construct from a Python `float`, formatting it the way FITS
        writers conventionally do (always with a decimal point, upper-case
        exponent).
        """
        if not math.isfinite(value):
            raise ValueError(f"FITS header values cannot represent {value!r}.")
        text = repr(float(value))
        if "e" in text:
            mantissa, exponent = text.split("e")
            if "." not in mantissa:
                mantissa += ".0"
            text = f"{mantissa}E{exponent}"
        return cls(text)

    def to_decimal(self) -> decimal.Decimal:
        """Convert to `decimal.Decimal` without loss of precision."""
        return decimal.Decimal(self.text.upper().replace("D", "E"))

    def to_float(self) -> float:
        """Convert to the nearest `float`."""
        return float(self.text.upper().replace("D", "E"))

    def to_python(self) -> decimal.Decimal:
        return self.to_decimal()

    def to_card_text(self) -> str:
        return self.text.rjust(FIXED_VALUE_WIDTH)


@final
@dataclasses.dataclass(frozen=True)
class String:
    """A FITS character-string value (quotes removed, doubled quotes
    collapsed, trailing spaces stripped).
    """

    text: str

    @property
    def continues(self) -> bool:
        """Whether this string follows the long-string convention of ending
        in ``&`` to signal that ``CONTINUE`` cards follow.
        """
        return self.text.endswith("&")

    def to_python(self) -> str:
        return self.text

    def to_card_text(self) -> str:
        return quote_string(self.text).ljust(FIXED_VALUE_WIDTH)


@final
@dataclasses.dataclass(frozen=True)
class Undefined:
    """A keyword with a value indicator but no value, or a commentary card."""

    def to_python(self) -> None:
        return None

    def to_card_text(self) -> str:
        return ""


@final
@dataclasses.dataclass(frozen=True)
class Continuation:
    """The string fragment held by a ``CONTINUE`` card."""

    fragment: str

    @property
    def continues(self) -> bool:
        """Whether yet another ``CONTINUE`` card follows."""
        return self.fragment.endswith("&")

    def to_python(self) -> str:
        return self.fragment

    def to_card_text(self) -> str:
        return quote_string(self.fragment)


@final
@dataclasses.dataclass(frozen=True)
class Opaque:
    """Value text that does not match the FITS value grammar (or uses a
    form, such as complex numbers, that has no dedicated variant).

    Retaining it instead of failing lets a header with a single malformed
    informational card still be read.
    """

    text: str

    def to_python(self) -> str:
        return self.text

    def to_card_text(self) -> str:
        return self.text.rjust(FIXED_VALUE_WIDTH)


type Value = Logical | Integer | Float | String | Undefined | Continuation | Opaque


def quote_string(text: str) -> str:
    """Quote a string for a card, doubling embedded quotes and padding to the
    conventional minimum of eight characters between the quotes.
    """
    return "'" + text.replace("'", "''").ljust(8) + "'"


def value_from_python(value: object) -> Value:
    """Convert a Python object to the corresponding `Value` variant.

    Parameters
    ----------
    value
        A `bool`, `int`, `float`, `decimal.Decimal`, `str`, `None`, or an
        existing `Value`.

    Returns
    -------
    Value
        The typed value.
    """
    match value:
        case Logical() | Integer() | Float() | String() | Undefined() | Continuation() | Opaque():
            return value
        case None:
            return Undefined()
        # bool must be tested before int.
        case bool():
            return Logical(value)
        case int():
            return Integer(value)
        case float():
            return Float.from_float(value)
        case decimal.Decimal():
            if not value.is_finite():
                raise ValueError(f"FITS header values cannot represent {value!r}.")
            text = str(value).replace("e", "E")
            if "." not in text and "E" not in text:
                text += "."
            return Float(text)
        case str():
            return String(value.rstrip(" "))
    # numpy scalars and similar.
    if hasattr(value, "item"):
        return value_from_python(value.item())
    raise TypeError(f"Cannot represent {value!r} as a FITS header value.")
