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

"""Small helpers shared across the package."""

from __future__ import annotations

__all__ = ("is_none", "round_up")


def is_none(value: object) -> bool:
    """Test whether a value is `None`, for pydantic ``exclude_if``
    predicates.
    """
    return value is None


def round_up(n: int, multiple: int) -> int:
    """Round a non-negative integer up to a whole number of ``multiple``."""
    return -(-n // multiple) * multiple
