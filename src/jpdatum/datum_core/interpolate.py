"""
interpolate.py
==============

Bilinear interpolation of TKY2JGD corrections over the 2x2 neighbourhood of
grid nodes surrounding a position.

The grid is indexed by **Tokyo datum** coordinates. Given the cell containing
the point, the four corners are

    (0,0) lower-left   (0,1) lower-right
    (1,0) upper-left   (1,1) upper-right

with ``i`` running north and ``j`` running east, and the correction is

    v = v00*c*d + v10*a*d + v01*c*b + v11*a*b

where ``a``/``b`` are the fractional north/east position in the cell and
``c = 1 - a``, ``d = 1 - b``. If any corner has no record, the point is out of
coverage and no partial result is produced.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .errors import OutOfCoverageError
from .meshcode import cell_fraction, in_mesh_domain, mesh_code, mesh_code_array
from .model import (
    CELL_LAT_ARCMIN,
    CELL_LON_ARCMIN,
    D2R,
    LON_ORIGIN_ARCMIN,
    R2D,
    CellCorners,
)
from .table import ParamTable

__all__ = ["GridInterpolator"]

_OFFSETS = ((0, 0), (0, 1), (1, 0), (1, 1))


class GridInterpolator:
    """Correction lookup over one ``ParamTable``."""

    def __init__(self, table: ParamTable) -> None:
        self.table = table

    def corners(self, lat: float, lon: float) -> CellCorners:
        """Corner corrections [arcsec] of the cell containing (lat, lon) [rad]."""
        lat_am = lat * R2D * 60.0
        lon_am = lon * R2D * 60.0
        if not in_mesh_domain(lat_am, lon_am):
            raise OutOfCoverageError(lat, lon)

        db = [[0.0, 0.0], [0.0, 0.0]]
        dl = [[0.0, 0.0], [0.0, 0.0]]
        for i, j in _OFFSETS:
            code = mesh_code(lat_am + i * CELL_LAT_ARCMIN, lon_am + j * CELL_LON_ARCMIN)
            k = self.table.lookup(code)
            if k is None:
                raise OutOfCoverageError(lat, lon)
            rec = self.table.at(k)
            db[i][j] = rec.db
            dl[i][j] = rec.dl
        return CellCorners(
            db=(tuple(db[0]), tuple(db[1])),
            dl=(tuple(dl[0]), tuple(dl[1])),
        )

    def correction_arcsec(self, lat: float, lon: float) -> Tuple[float, float]:
        """Interpolated (d_lat, d_lon) in arc-seconds."""
        cell = self.corners(lat, lon)
        a, b = cell_fraction(lat * R2D * 60.0, lon * R2D * 60.0)
        return cell.blend(a, b)

    def correction(self, lat: float, lon: float) -> Tuple[float, float]:
        """
        Interpolated (d_lat, d_lon) in radians at Tokyo-datum (lat, lon).

        Raises
        ------
        OutOfCoverageError
            If any corner of the enclosing cell is missing from the table.
        """
        db, dl = self.correction_arcsec(lat, lon)
        return db * D2R / 3600.0, dl * D2R / 3600.0

    def correction_arrays(self, lat, lon) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorized ``correction`` for arrays of radians.

        Returns
        -------
        (d_lat, d_lon, ok)
            Corrections in radians (NaN where not covered) and a boolean mask
            of covered points.
        """
        lat_am = np.asarray(lat, dtype=np.float64) * R2D * 60.0
        lon_am = np.asarray(lon, dtype=np.float64) * R2D * 60.0
        lat_am, lon_am = np.broadcast_arrays(lat_am, lon_am)

        shifted = lon_am - LON_ORIGIN_ARCMIN
        with np.errstate(invalid="ignore"):
            ok = (
                (lat_am >= 0.0)
                & (lat_am < 90.0 * 60.0)
                & (shifted >= 0.0)
                & (shifted < 100.0 * 60.0)
            )
        # Neutral inputs keep the integer casts below well defined.
        lat_safe = np.where(ok, lat_am, 0.0)
        lon_safe = np.where(ok, lon_am, LON_ORIGIN_ARCMIN)

        records = self.table.records
        db = {}
        dl = {}
        for i, j in _OFFSETS:
            codes = mesh_code_array(
                lat_safe + i * CELL_LAT_ARCMIN, lon_safe + j * CELL_LON_ARCMIN
            )
            idx = self.table.lookup_many(codes)
            ok &= idx >= 0
            take = np.where(idx >= 0, idx, 0)
            if records.size:
                db[i, j] = records["db"][take]
                dl[i, j] = records["dl"][take]
            else:
                db[i, j] = np.zeros(take.shape)
                dl[i, j] = np.zeros(take.shape)

        a, b = cell_fraction(lat_safe, lon_safe)
        c = 1.0 - a
        d = 1.0 - b
        out_db = db[0, 0] * c * d + db[1, 0] * a * d + db[0, 1] * c * b + db[1, 1] * a * b
        out_dl = dl[0, 0] * c * d + dl[1, 0] * a * d + dl[0, 1] * c * b + dl[1, 1] * a * b
        d_lat = np.where(ok, out_db * D2R / 3600.0, np.nan)
        d_lon = np.where(ok, out_dl * D2R / 3600.0, np.nan)
        return d_lat, d_lon, ok
