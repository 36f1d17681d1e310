from __future__ import annotations

import math
from pathlib import Path
from typing import Callable, Iterable, List

import pytest
from hypothesis import strategies as st

from jpdatum.datum_core.loader import parse_parameter_lines
from jpdatum.datum_core.meshcode import mesh_code
from jpdatum.datum_core.model import CELL_LAT_ARCMIN, CELL_LON_ARCMIN, D2R
from jpdatum.datum_core.table import ParamTable

# ---------- Synthetic grids ----------

# Four-corner grid: one cell whose lower-left node is (2165', 8400').
CELL_LAT0 = 2165.0
CELL_LON0 = 8400.0
FOUR_CORNER_LINES = [
    "JGD2000-TokyoDatum Ver.2.1.2\n",
    "MeshCode   dB(sec)   dL(sec)\n",
    "54401011   4.00000   40.00000\n",
    "54401000   1.00000   10.00000\n",
    "54401010   3.00000   30.00000\n",
    "54401001   2.00000   20.00000\n",
    # Isolated neighbours: never complete another cell.
    "54401020   9.00000   90.00000\n",
    "54401003  -9.00000  -90.00000\n",
]

# Smooth grid: 41 x 41 nodes starting at (2160', 8340') i.e. 36N, 139E.
SMOOTH_LAT0 = 2160.0
SMOOTH_LON0 = 8340.0
SMOOTH_NODES = 41


def arcmin_to_rad(x: float) -> float:
    return x / 60.0 * D2R


def smooth_values(k: int, m: int) -> tuple:
    """Corrections [arcsec] at node (k north, m east); shaped like real TKY2JGD."""
    db = -11.6 + 0.002 * k - 0.001 * m + 0.0005 * math.sin(0.3 * k + 0.2 * m)
    dl = 11.9 + 0.001 * k + 0.002 * m + 0.0004 * math.cos(0.25 * k)
    return db, dl


def smooth_lines() -> List[str]:
    lines = ["JGD2000-TokyoDatum synthetic\n", "MeshCode dB(sec) dL(sec)\n"]
    for k in range(SMOOTH_NODES):
        for m in range(SMOOTH_NODES):
            lat = SMOOTH_LAT0 + k * CELL_LAT_ARCMIN
            lon = SMOOTH_LON0 + m * CELL_LON_ARCMIN
            # Quarter-cell offset keeps the code away from cell boundaries.
            code = mesh_code(lat + CELL_LAT_ARCMIN / 2, lon + CELL_LON_ARCMIN / 2)
            db, dl = smooth_values(k, m)
            lines.append(f"{code} {db:.5f} {dl:.5f}\n")
    return lines


# ---------- Shared fixtures ----------


@pytest.fixture
def write_par(tmp_path: Path) -> Callable[[Iterable[str], str], Path]:
    """Write .par lines to a file under tmp_path and return its path."""

    def _write(lines: Iterable[str], name: str = "TKY2JGD.par") -> Path:
        p = tmp_path / name
        p.write_text("".join(lines), encoding="ascii")
        return p

    return _write


@pytest.fixture
def four_corner_table() -> ParamTable:
    return parse_parameter_lines(FOUR_CORNER_LINES)


@pytest.fixture(scope="session")
def smooth_table() -> ParamTable:
    return parse_parameter_lines(smooth_lines())


# ---------- Hypothesis strategies ----------


def smooth_interior_arcmin():
    """(lat, lon) arc-minutes well inside the smooth grid coverage."""
    return st.tuples(
        st.floats(min_value=SMOOTH_LAT0 + 2.0, max_value=SMOOTH_LAT0 + 18.0),
        st.floats(min_value=SMOOTH_LON0 + 2.0, max_value=SMOOTH_LON0 + 28.0),
    )


def heights():
    return st.floats(min_value=-500.0, max_value=4000.0, allow_nan=False)
