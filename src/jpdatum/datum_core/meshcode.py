"""
meshcode.py
===========

Mesh code arithmetic of the GSI TKY2JGD grid.

A mesh code identifies the lower-left corner of the 0.5' x 0.75' cell that
contains a point. It is built by successive radix decomposition of latitude
and of longitude shifted by 100 deg (6000 arc-minutes):

=========  ========  =========  ================
level      latitude  longitude  digits
=========  ========  =========  ================
primary    40'       60'        n1, m1 (2 each)
secondary  5'        7.5'       n2, m2 (1 each)
third      0.5'      0.75'      n3, m3 (1 each)
=========  ========  =========  ================

``code = n1*10^6 + m1*10^4 + n2*10^3 + m2*10^2 + n3*10 + m3``

Divisions truncate toward zero, which equals flooring only for positive
inputs. Points south of the equator or west of 100 deg E are outside the mesh
domain; see ``in_mesh_domain``.
"""

from __future__ import annotations

from typing import NamedTuple, Tuple

import numpy as np

from .model import CELL_LAT_ARCMIN, CELL_LON_ARCMIN, LON_ORIGIN_ARCMIN

__all__ = [
    "MeshDigits",
    "mesh_code",
    "mesh_code_array",
    "cell_fraction",
    "split_mesh_code",
    "mesh_origin",
    "in_mesh_domain",
]


class MeshDigits(NamedTuple):
    n1: int
    m1: int
    n2: int
    m2: int
    n3: int
    m3: int


def mesh_code(lat_arcmin: float, lon_arcmin: float) -> int:
    """
    Mesh code of the cell containing (lat_arcmin, lon_arcmin).

    Parameters
    ----------
    lat_arcmin : float
        Geodetic latitude [arcmin].
    lon_arcmin : float
        Geodetic east longitude [arcmin] (not shifted).
    """
    lat = lat_arcmin
    lon = lon_arcmin - LON_ORIGIN_ARCMIN
    n1 = int(lat / 40.0)
    lat -= n1 * 40.0
    m1 = int(lon / 60.0)
    lon -= m1 * 60.0
    n2 = int(lat / 5.0)
    lat -= n2 * 5.0
    m2 = int(lon / 7.5)
    lon -= m2 * 7.5
    n3 = int(lat / CELL_LAT_ARCMIN)
    m3 = int(lon / CELL_LON_ARCMIN)
    return n1 * 1000000 + m1 * 10000 + n2 * 1000 + m2 * 100 + n3 * 10 + m3


def mesh_code_array(lat_arcmin, lon_arcmin) -> np.ndarray:
    """Vectorized ``mesh_code`` over broadcastable arrays; returns int64 codes."""
    lat = np.asarray(lat_arcmin, dtype=np.float64)
    lon = np.asarray(lon_arcmin, dtype=np.float64) - LON_ORIGIN_ARCMIN
    n1 = np.trunc(lat / 40.0)
    lat = lat - n1 * 40.0
    m1 = np.trunc(lon / 60.0)
    lon = lon - m1 * 60.0
    n2 = np.trunc(lat / 5.0)
    lat = lat - n2 * 5.0
    m2 = np.trunc(lon / 7.5)
    lon = lon - m2 * 7.5
    n3 = np.trunc(lat / CELL_LAT_ARCMIN)
    m3 = np.trunc(lon / CELL_LON_ARCMIN)
    digits = [n1, m1, n2, m2, n3, m3]
    n1, m1, n2, m2, n3, m3 = (x.astype(np.int64) for x in digits)
    return n1 * 1000000 + m1 * 10000 + n2 * 1000 + m2 * 100 + n3 * 10 + m3


def cell_fraction(lat_arcmin, lon_arcmin) -> Tuple[float, float]:
    """
    Fractional position (a, b) inside the enclosing cell.

    ``a`` runs north, ``b`` runs east; both in [0, 1) for inputs in the mesh
    domain. Works on scalars and numpy arrays alike.
    """
    y = lat_arcmin / CELL_LAT_ARCMIN
    x = lon_arcmin / CELL_LON_ARCMIN
    if isinstance(y, np.ndarray) or isinstance(x, np.ndarray):
        return y - np.trunc(y), x - np.trunc(x)
    return y - int(y), x - int(x)


def split_mesh_code(code: int) -> MeshDigits:
    """
    Decompose a mesh code into its six radix digits.

    Raises
    ------
    ValueError
        If ``code`` is negative or a secondary digit (n2, m2) exceeds 7; such
        codes are never produced by ``mesh_code``.
    """
    code = int(code)
    if code < 0:
        raise ValueError(f"invalid mesh code: {code}")
    d = MeshDigits(
        n1=code // 1000000,
        m1=code // 10000 % 100,
        n2=code // 1000 % 10,
        m2=code // 100 % 10,
        n3=code // 10 % 10,
        m3=code % 10,
    )
    if d.n2 > 7 or d.m2 > 7:
        raise ValueError(f"invalid mesh code: {code} (secondary digits must be 0..7)")
    return d


def mesh_origin(code: int) -> Tuple[float, float]:
    """Lower-left corner (lat_arcmin, lon_arcmin) of the cell ``code``."""
    d = split_mesh_code(code)
    lat = d.n1 * 40.0 + d.n2 * 5.0 + d.n3 * CELL_LAT_ARCMIN
    lon = LON_ORIGIN_ARCMIN + d.m1 * 60.0 + d.m2 * 7.5 + d.m3 * CELL_LON_ARCMIN
    return lat, lon


def in_mesh_domain(lat_arcmin: float, lon_arcmin: float) -> bool:
    """True where the radix decomposition yields a meaningful code."""
    lon = lon_arcmin - LON_ORIGIN_ARCMIN
    return 0.0 <= lat_arcmin < 90.0 * 60.0 and 0.0 <= lon < 100.0 * 60.0
