from __future__ import annotations

import numpy as np
import pytest
from hypothesis import given, settings

from conftest import (
    CELL_LAT0,
    CELL_LON0,
    arcmin_to_rad,
    heights,
    smooth_interior_arcmin,
)
from jpdatum.datum_core import loader, transform
from jpdatum.datum_core.errors import NotLoadedError, OutOfCoverageError
from jpdatum.datum_core.interpolate import GridInterpolator
from jpdatum.datum_core.loader import ParameterStore
from jpdatum.datum_core.model import D2R, Position
from jpdatum.datum_core.transform import DatumTransformer

AS2R = D2R / 3600.0


def _center() -> Position:
    return Position(arcmin_to_rad(CELL_LAT0 + 0.25), arcmin_to_rad(CELL_LON0 + 0.375), 42.0)


def test_tokyo_to_jgd_adds_correction(four_corner_table):
    tr = DatumTransformer(four_corner_table)
    p = _center()
    out = tr.tokyo_to_jgd(p)
    assert out.lat - p.lat == pytest.approx(2.5 * AS2R, rel=1e-9)
    assert out.lon - p.lon == pytest.approx(25.0 * AS2R, rel=1e-9)
    assert out.h == p.h


def test_jgd_to_tokyo_is_exactly_two_iterations(smooth_table):
    tr = DatumTransformer(smooth_table)
    interp = GridInterpolator(smooth_table)
    p = Position(arcmin_to_rad(2170.3), arcmin_to_rad(8355.1), 7.0)

    t_lat, t_lon = p.lat, p.lon
    for _ in range(2):
        d_lat, d_lon = interp.correction(t_lat, t_lon)
        t_lat, t_lon = p.lat - d_lat, p.lon - d_lon

    out = tr.jgd_to_tokyo(p)
    assert (out.lat, out.lon, out.h) == (t_lat, t_lon, 7.0)


def test_out_of_coverage_leaves_input_untouched(four_corner_table):
    tr = DatumTransformer(four_corner_table)
    p = Position(arcmin_to_rad(CELL_LAT0 + 0.75), arcmin_to_rad(CELL_LON0 + 0.375), 1.0)
    before = Position(p.lat, p.lon, p.h)
    with pytest.raises(OutOfCoverageError):
        tr.tokyo_to_jgd(p)
    with pytest.raises(OutOfCoverageError):
        tr.jgd_to_tokyo(p)
    assert p == before


def test_inverse_fails_when_iterate_leaves_coverage(four_corner_table):
    # The centre is covered, but the first iterate moves 25" west, which is
    # out of this one-cell grid.
    tr = DatumTransformer(four_corner_table)
    p = Position(arcmin_to_rad(CELL_LAT0 + 0.25), arcmin_to_rad(CELL_LON0 + 0.2), 0.0)
    tr.tokyo_to_jgd(p)
    with pytest.raises(OutOfCoverageError):
        tr.jgd_to_tokyo(p)


def test_accepts_plain_sequences(four_corner_table):
    tr = DatumTransformer(four_corner_table)
    p = _center()
    assert tr.tokyo_to_jgd((p.lat, p.lon, p.h)) == tr.tokyo_to_jgd(p)


def test_store_backed_transformer_requires_load(write_par):
    from conftest import FOUR_CORNER_LINES

    store = ParameterStore()
    tr = DatumTransformer(store)
    p = _center()
    with pytest.raises(NotLoadedError):
        tr.tokyo_to_jgd(p)
    with pytest.raises(NotLoadedError):
        tr.jgd_to_tokyo(p)
    store.load(write_par(FOUR_CORNER_LINES))
    assert tr.tokyo_to_jgd(p).lat > p.lat


def test_module_functions_use_process_wide_store(monkeypatch, write_par, smooth_table):
    from conftest import smooth_lines

    monkeypatch.setattr(loader, "_DEFAULT_STORE", ParameterStore())
    p = Position(arcmin_to_rad(2170.3), arcmin_to_rad(8355.1), 42.0)
    with pytest.raises(NotLoadedError):
        transform.tokyo_to_jgd(p)
    with pytest.raises(NotLoadedError):
        transform.jgd_to_tokyo(p)
    assert not transform.is_loaded()

    transform.load(write_par(smooth_lines()))
    assert transform.is_loaded()
    tr = DatumTransformer(smooth_table)
    jgd = transform.tokyo_to_jgd(p)
    assert jgd == tr.tokyo_to_jgd(p)
    back = transform.jgd_to_tokyo(jgd)
    assert back == tr.jgd_to_tokyo(jgd)
    assert abs(back.lat - p.lat) < 1e-10
    assert abs(back.lon - p.lon) < 1e-10
    assert back.h == p.h


def test_tolerance_mode_converges(smooth_table):
    p = Position(arcmin_to_rad(2168.0), arcmin_to_rad(8351.0), 0.0)
    exact = DatumTransformer(smooth_table)
    loose = DatumTransformer(smooth_table, tolerance=1e-15, max_iterations=20)
    jgd = exact.tokyo_to_jgd(p)
    back_tol = loose.jgd_to_tokyo(jgd)
    back_two = exact.jgd_to_tokyo(jgd)
    assert abs(back_tol.lat - p.lat) <= abs(back_two.lat - p.lat) + 1e-15
    assert back_tol.lat == pytest.approx(p.lat, abs=1e-13)
    assert back_tol.lon == pytest.approx(p.lon, abs=1e-13)
    # Per-call override of the default exact path.
    assert exact.jgd_to_tokyo(jgd, tolerance=1e-15) == back_tol


def test_tolerance_zero_keeps_exact_path(smooth_table):
    p = Position(arcmin_to_rad(2168.0), arcmin_to_rad(8351.0), 0.0)
    assert DatumTransformer(smooth_table, tolerance=0.0).jgd_to_tokyo(p) == (
        DatumTransformer(smooth_table).jgd_to_tokyo(p)
    )


def test_invalid_max_iterations(smooth_table):
    with pytest.raises(ValueError):
        DatumTransformer(smooth_table, max_iterations=0)


def test_array_transforms_match_scalar(smooth_table):
    tr = DatumTransformer(smooth_table)
    rng = np.random.default_rng(1)
    lat = np.radians((2162.0 + 16.0 * rng.random(30)) / 60.0)
    lon = np.radians((8342.0 + 26.0 * rng.random(30)) / 60.0)

    j_lat, j_lon, ok = tr.tokyo_to_jgd_arrays(lat, lon)
    assert ok.all()
    t_lat, t_lon, ok2 = tr.jgd_to_tokyo_arrays(j_lat, j_lon)
    assert ok2.all()
    for k in range(lat.size):
        p = Position(float(lat[k]), float(lon[k]), 0.0)
        j = tr.tokyo_to_jgd(p)
        t = tr.jgd_to_tokyo(j)
        assert j_lat[k] == pytest.approx(j.lat, abs=1e-15)
        assert j_lon[k] == pytest.approx(j.lon, abs=1e-15)
        assert t_lat[k] == pytest.approx(t.lat, abs=1e-15)
        assert t_lon[k] == pytest.approx(t.lon, abs=1e-15)


def test_array_transforms_flag_uncovered(four_corner_table):
    tr = DatumTransformer(four_corner_table)
    lat = np.array([arcmin_to_rad(CELL_LAT0 + 0.25), arcmin_to_rad(CELL_LAT0 + 0.75)])
    lon = np.array([arcmin_to_rad(CELL_LON0 + 0.375)] * 2)
    j_lat, j_lon, ok = tr.tokyo_to_jgd_arrays(lat, lon)
    assert ok.tolist() == [True, False]
    assert np.isnan(j_lat[1]) and np.isnan(j_lon[1])
    t_lat, t_lon, ok = tr.jgd_to_tokyo_arrays(lat, lon)
    assert ok.tolist() == [False, False]
    assert np.isnan(t_lat).all()


# ---------- Properties over the smooth synthetic grid ----------


@settings(max_examples=150)
@given(pt=smooth_interior_arcmin(), h=heights())
def test_round_trip_within_1e10_rad(smooth_table, pt, h):
    tr = DatumTransformer(smooth_table)
    p = Position(arcmin_to_rad(pt[0]), arcmin_to_rad(pt[1]), h)
    back = tr.jgd_to_tokyo(tr.tokyo_to_jgd(p))
    assert abs(back.lat - p.lat) < 1e-10
    assert abs(back.lon - p.lon) < 1e-10
    assert back.h == p.h


@given(pt=smooth_interior_arcmin(), h=heights())
def test_repeated_calls_are_bit_identical(smooth_table, pt, h):
    tr = DatumTransformer(smooth_table)
    p = Position(arcmin_to_rad(pt[0]), arcmin_to_rad(pt[1]), h)
    assert tr.tokyo_to_jgd(p) == tr.tokyo_to_jgd(p)
    assert tr.jgd_to_tokyo(p) == tr.jgd_to_tokyo(p)
    assert tr.jgd_to_tokyo(p).h == h
