"""
model.py
========
Data models and constants shared across the datum transformation core.

Units
-----
- Public boundary: latitude/longitude in **radians**, height in metres.
- Mesh codec and grid arithmetic: **arc-minutes**.
- Correction values stored in the parameter table: **arc-seconds**.

All identifiers and comments are in English, and lines are <= 88 chars.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

# Maximum number of parameter records accepted from one .par file.
MAX_PARAMS = 400_000

# Grid cell size of the TKY2JGD mesh (arc-minutes).
CELL_LAT_ARCMIN = 0.5
CELL_LON_ARCMIN = 0.75

# Longitude origin of the mesh code (100 deg east, in arc-minutes).
LON_ORIGIN_ARCMIN = 6000.0

# Fixed number of fixed-point iterations for JGD2000 -> Tokyo.
INVERSE_ITERATIONS = 2

R2D = 180.0 / math.pi
D2R = math.pi / 180.0
# Radians to arc-minutes.
RAD2ARCMIN = R2D * 60.0

# Record layout of the in-memory parameter table.
PARAM_DTYPE = np.dtype([("code", np.int64), ("db", np.float64), ("dl", np.float64)])


@dataclass(frozen=True)
class ParamRecord:
    """One TKY2JGD grid node: mesh code and corrections in arc-seconds."""

    # Mesh code of the node (lower-left corner of its cell).
    code: int
    # Latitude correction JGD2000 - Tokyo [arcsec].
    db: float
    # Longitude correction JGD2000 - Tokyo [arcsec].
    dl: float


@dataclass(frozen=True)
class Position:
    """
    Geodetic position.

    Attributes
    ----------
    lat : float
        Geodetic latitude [rad], positive north.
    lon : float
        Geodetic longitude [rad], positive east.
    h : float
        Height [m]. Never modified by datum transformation.
    """

    lat: float
    lon: float
    h: float = 0.0

    @classmethod
    def from_degrees(cls, lat_deg: float, lon_deg: float, h: float = 0.0) -> "Position":
        return cls(lat_deg * D2R, lon_deg * D2R, h)

    def to_degrees(self) -> Tuple[float, float, float]:
        return self.lat * R2D, self.lon * R2D, self.h


@dataclass(frozen=True)
class CellCorners:
    """
    Corrections at the four corners of one grid cell.

    ``db[i][j]`` / ``dl[i][j]`` hold the value at the corner offset by
    ``i`` cells north and ``j`` cells east of the lower-left corner.
    """

    db: Tuple[Tuple[float, float], Tuple[float, float]]
    dl: Tuple[Tuple[float, float], Tuple[float, float]]

    def blend(self, a: float, b: float) -> Tuple[float, float]:
        """Bilinear blend at fractional position (a: north, b: east) [arcsec]."""
        c = 1.0 - a
        d = 1.0 - b
        db, dl = self.db, self.dl
        out_db = db[0][0] * c * d + db[1][0] * a * d + db[0][1] * c * b + db[1][1] * a * b
        out_dl = dl[0][0] * c * d + dl[1][0] * a * d + dl[0][1] * c * b + dl[1][1] * a * b
        return out_db, out_dl


__all__ = [
    "MAX_PARAMS",
    "CELL_LAT_ARCMIN",
    "CELL_LON_ARCMIN",
    "LON_ORIGIN_ARCMIN",
    "INVERSE_ITERATIONS",
    "R2D",
    "D2R",
    "RAD2ARCMIN",
    "PARAM_DTYPE",
    "ParamRecord",
    "Position",
    "CellCorners",
]
