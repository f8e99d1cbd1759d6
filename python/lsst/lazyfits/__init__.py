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

"""Lazy reading of FITS files.

This package reads the Header/Data Units (HDUs) of a FITS file on demand:
headers are lexed into a typed value model and validated as they are reached,
data-unit geometry is computed from the header alone, and pixel or table
bytes are only read and decoded when a view is asked for them.

The main entry point is `FitsFile`::

    with FitsFile.open("image.fits") as fits_file:
        hdu = fits_file["SCI"]
        print(hdu.header.get("EXPTIME"))
        pixel = hdu.view[100, 200]

HDUs are a closed set of variants (`ImageHdu`, `BinaryTableHdu`,
`AsciiTableHdu` and `GenericHdu`, the last for any extension type without
typed decoding), best dispatched with ``match``.
"""

from ._accumulator import *
from ._ascii_tables import *
from ._builders import *
from ._card import *
from ._data_unit import *
from ._dtypes import *
from ._errors import *
from ._fits_file import *
from ._geometry import *
from ._hdus import *
from ._header import *
from ._image_view import *
from ._options import *
from ._scaling import *
from ._sources import *
from ._tables import *
from ._values import *
