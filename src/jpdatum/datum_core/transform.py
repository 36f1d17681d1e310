"""
transform.py
============

Tokyo datum <-> JGD2000 transformation.

``tokyo_to_jgd``
    One correction step: ``jgd = tokyo + correction(tokyo)``.

``jgd_to_tokyo``
    The correction grid is indexed by Tokyo coordinates, so the inverse is a
    fixed-point iteration starting from the JGD2000 coordinates::

        t = jgd
        repeat 2 times:
            t = jgd - correction(t)

    The iteration count is fixed at two. A tolerance-driven loop is available
    only when explicitly requested (``tolerance``).

Height is passed through unchanged by both directions. Positions are
immutable, so a failed transformation can never leave the input modified.

Example
-------
>>> from jpdatum.datum_core.transform import load, tokyo_to_jgd
>>> from jpdatum.datum_core.model import Position
>>> load("TKY2JGD.par")
>>> jgd = tokyo_to_jgd(Position.from_degrees(35.0, 139.0, 0.0))
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .interpolate import GridInterpolator
from .loader import ParameterStore, default_store, is_loaded, load
from .model import INVERSE_ITERATIONS, Position
from .table import ParamTable

__all__ = [
    "DatumTransformer",
    "load",
    "is_loaded",
    "tokyo_to_jgd",
    "jgd_to_tokyo",
]

PositionLike = Union[Position, Sequence[float]]


def _as_position(pos: PositionLike) -> Position:
    if isinstance(pos, Position):
        return pos
    lat, lon, h = pos
    return Position(float(lat), float(lon), float(h))


class DatumTransformer:
    """
    Datum transformations over a parameter table.

    Parameters
    ----------
    source : ParamTable or ParameterStore
        Table to read corrections from. A store is resolved on every call, so
        a transformer may be created before the store is loaded; calls made
        before that raise ``NotLoadedError``.
    tolerance : float, optional
        If set (> 0), ``jgd_to_tokyo`` iterates until the update is below
        this many radians instead of stopping after exactly two steps.
    max_iterations : int, default 10
        Upper bound for the tolerance-driven loop.
    """

    def __init__(
        self,
        source: Union[ParamTable, ParameterStore],
        *,
        tolerance: Optional[float] = None,
        max_iterations: int = 10,
    ) -> None:
        if tolerance is not None and tolerance <= 0:
            tolerance = None
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.source = source
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self._interp: Optional[GridInterpolator] = None

    def _interpolator(self) -> GridInterpolator:
        source = self.source
        table = source.require() if isinstance(source, ParameterStore) else source
        interp = self._interp
        if interp is None or interp.table is not table:
            interp = GridInterpolator(table)
            self._interp = interp
        return interp

    def correction(self, pos: PositionLike) -> Tuple[float, float]:
        """(d_lat, d_lon) [rad] at a Tokyo-datum position."""
        p = _as_position(pos)
        return self._interpolator().correction(p.lat, p.lon)

    def tokyo_to_jgd(self, pos: PositionLike) -> Position:
        """
        Transform a Tokyo-datum position to JGD2000.

        Raises
        ------
        NotLoadedError
            If the backing store has not been loaded.
        OutOfCoverageError
            If the position is outside the correction grid.
        """
        p = _as_position(pos)
        dlat, dlon = self._interpolator().correction(p.lat, p.lon)
        return Position(p.lat + dlat, p.lon + dlon, p.h)

    def jgd_to_tokyo(
        self, pos: PositionLike, *, tolerance: Optional[float] = None
    ) -> Position:
        """
        Transform a JGD2000 position to the Tokyo datum.

        Exactly two fixed-point iterations unless a tolerance is given here or
        at construction time.

        Raises
        ------
        NotLoadedError
            If the backing store has not been loaded.
        OutOfCoverageError
            If any iterate falls outside the correction grid.
        """
        p = _as_position(pos)
        interp = self._interpolator()
        tol = tolerance if tolerance is not None else self.tolerance
        if tol is not None and tol <= 0:
            tol = None

        lat, lon = p.lat, p.lon
        if tol is None:
            for _ in range(INVERSE_ITERATIONS):
                dlat, dlon = interp.correction(lat, lon)
                lat, lon = p.lat - dlat, p.lon - dlon
            return Position(lat, lon, p.h)

        for _ in range(self.max_iterations):
            dlat, dlon = interp.correction(lat, lon)
            new_lat, new_lon = p.lat - dlat, p.lon - dlon
            step = max(abs(new_lat - lat), abs(new_lon - lon))
            lat, lon = new_lat, new_lon
            if step < tol:
                break
        return Position(lat, lon, p.h)

    # ------------------------------------------------------------------
    # Batch conversion
    # ------------------------------------------------------------------

    def tokyo_to_jgd_arrays(self, lat, lon) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorized ``tokyo_to_jgd`` over arrays of radians.

        Returns ``(lat, lon, ok)``; points out of coverage are NaN with
        ``ok`` False. No exception is raised for coverage failures.
        """
        lat = np.asarray(lat, dtype=np.float64)
        lon = np.asarray(lon, dtype=np.float64)
        dlat, dlon, ok = self._interpolator().correction_arrays(lat, lon)
        return lat + dlat, lon + dlon, ok

    def jgd_to_tokyo_arrays(self, lat, lon) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vectorized ``jgd_to_tokyo`` (exact two iterations)."""
        lat0 = np.asarray(lat, dtype=np.float64)
        lon0 = np.asarray(lon, dtype=np.float64)
        interp = self._interpolator()
        t_lat, t_lon = lat0, lon0
        ok = np.ones(np.broadcast(lat0, lon0).shape, dtype=bool)
        for _ in range(INVERSE_ITERATIONS):
            dlat, dlon, step_ok = interp.correction_arrays(t_lat, t_lon)
            ok &= step_ok
            t_lat, t_lon = lat0 - dlat, lon0 - dlon
        t_lat = np.where(ok, t_lat, np.nan)
        t_lon = np.where(ok, t_lon, np.nan)
        return t_lat, t_lon, ok


_DEFAULT_TRANSFORMER: Optional[DatumTransformer] = None


def _default_transformer() -> DatumTransformer:
    global _DEFAULT_TRANSFORMER
    store = default_store()
    transformer = _DEFAULT_TRANSFORMER
    if transformer is None or transformer.source is not store:
        transformer = DatumTransformer(store)
        _DEFAULT_TRANSFORMER = transformer
    return transformer


def tokyo_to_jgd(pos: PositionLike) -> Position:
    """``DatumTransformer.tokyo_to_jgd`` on the process-wide table."""
    return _default_transformer().tokyo_to_jgd(pos)


def jgd_to_tokyo(pos: PositionLike) -> Position:
    """``DatumTransformer.jgd_to_tokyo`` on the process-wide table."""
    return _default_transformer().jgd_to_tokyo(pos)
