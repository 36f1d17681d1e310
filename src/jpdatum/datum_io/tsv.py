"""
datum_io.tsv
============

Reading and writing geodetic positions as tab-separated values (TSV), and
batch datum conversion between two such files.

What this module provides
-------------------------
- `PositionRow`: one input point (id, latitude/longitude in **degrees**,
  height in metres).
- `ConvertedRow`: one output point, with a conversion `status`.
- `Metadata`: file-level metadata (source/target datum, parameter file,
  software version, creation timestamp).
- `read_positions_tsv(path)`: parse an input file.
- `write_positions_tsv(path, metadata, rows, append=True)`: write or append an
  output file with a commented header block.
- `convert_positions_tsv(src, dst, transformer, direction, metadata)`: read,
  convert point by point, write.
- `SchemaMismatchError`: raised when a column header differs from the
  expected schema.

Input format
------------
Comment lines (starting with '#') and blank lines are ignored. The first
remaining line is the header, then one point per line::

    id      lat_deg       lon_deg        height_m
    P001    35.000000000  139.000000000  12.5000

Output format
-------------
1) A commented metadata block. Its ``lat/lon/height=<datum>/ellipsoidal``
   line names the datum of the coordinates that follow.
2) The header ``id  lat_deg  lon_deg  height_m  status``.
3) One row per point. Degrees are written with **nine decimal places**
   (about 0.1 mm), heights with four. Points out of grid coverage are written
   with ``NaN`` coordinates and status ``out_of_coverage``.

When overwriting (`append=False`) the file is written to ``path + ".tmp"`` and
then moved into place with `os.replace`.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, TextIO, Tuple

from jpdatum.datum_core.errors import OutOfCoverageError
from jpdatum.datum_core.model import Position
from jpdatum.datum_core.transform import DatumTransformer

__all__ = [
    "DATUMS",
    "STATUS_OK",
    "STATUS_OUT_OF_COVERAGE",
    "PositionRow",
    "ConvertedRow",
    "Metadata",
    "SchemaMismatchError",
    "read_positions_tsv",
    "write_positions_tsv",
    "convert_positions_tsv",
]

DATUMS = ("Tokyo", "JGD2000")

STATUS_OK = "ok"
STATUS_OUT_OF_COVERAGE = "out_of_coverage"

_DIRECTIONS = {
    "tokyo_to_jgd": ("Tokyo", "JGD2000"),
    "jgd_to_tokyo": ("JGD2000", "Tokyo"),
}


# =============================================================================
# Exceptions
# =============================================================================


class SchemaMismatchError(ValueError):
    """
    Raised when a position file's column header does not match the expected
    schema (input header on read, output header on append).
    """

    pass


# =============================================================================
# Data models
# =============================================================================


@dataclass(frozen=True)
class PositionRow:
    """
    One input point.

    Attributes
    ----------
    point_id : str
        Free-form identifier, must not contain tabs.
    lat_deg, lon_deg : float
        Geodetic latitude/longitude [deg].
    height_m : float
        Height [m]; carried through conversion unchanged.
    """

    point_id: str
    lat_deg: float
    lon_deg: float
    height_m: float = 0.0

    def __post_init__(self) -> None:
        if not self.point_id or "\t" in self.point_id:
            raise ValueError("point_id must be a non-empty string without tabs")
        for name, val in (("lat_deg", self.lat_deg), ("lon_deg", self.lon_deg)):
            if not math.isfinite(val):
                raise ValueError(f"{name} must be a finite float (degrees)")
        if not -90.0 <= self.lat_deg <= 90.0:
            raise ValueError("lat_deg out of range [-90, 90]")

    def to_position(self) -> Position:
        return Position.from_degrees(self.lat_deg, self.lon_deg, self.height_m)


@dataclass(frozen=True)
class ConvertedRow:
    """One output point; coordinates are None when conversion failed."""

    point_id: str
    lat_deg: Optional[float]
    lon_deg: Optional[float]
    height_m: Optional[float]
    status: str = STATUS_OK


@dataclass(frozen=True)
class Metadata:
    """
    File-level metadata written as commented header lines.

    Attributes
    ----------
    source_datum, target_datum : str
        One of ``DATUMS``; must differ.
    parameter_file : str
        Name or path of the TKY2JGD parameter file used.
    software_version : str
        Version string of the converting software.
    created_at_iso : Optional[str], default None
        Creation instant; current UTC time when None.
    """

    source_datum: str
    target_datum: str
    parameter_file: str
    software_version: str
    created_at_iso: Optional[str] = None

    def __post_init__(self) -> None:
        for name, val in (
            ("source_datum", self.source_datum),
            ("target_datum", self.target_datum),
        ):
            if val not in DATUMS:
                raise ValueError(f"{name} must be one of {DATUMS}, got {val!r}")
        if self.source_datum == self.target_datum:
            raise ValueError("source_datum and target_datum must differ")


# =============================================================================
# Public API
# =============================================================================


def read_positions_tsv(path: str) -> List[PositionRow]:
    """
    Read an input position file.

    Raises
    ------
    SchemaMismatchError
        If the header is missing or differs from ``id lat_deg lon_deg height_m``.
    ValueError
        If a data row does not have four columns or holds invalid numbers.
    """
    rows: List[PositionRow] = []
    header: Optional[List[str]] = None
    with open(path, "r", encoding="utf-8", newline="") as f:
        for lineno, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            cols = [c.strip() for c in line.split("\t")]
            if header is None:
                header = cols
                if header != _input_columns():
                    raise SchemaMismatchError(
                        "Position file header does not match expected schema.\n"
                        f"Path:     {path}\n"
                        f"Expected: {chr(9).join(_input_columns())}\n"
                        f"Found:    {line}"
                    )
                continue
            if len(cols) != 4:
                raise ValueError(f"{path}:{lineno}: expected 4 columns, got {len(cols)}")
            try:
                lat, lon, h = float(cols[1]), float(cols[2]), float(cols[3])
            except ValueError as e:
                raise ValueError(f"{path}:{lineno}: {e}") from e
            rows.append(PositionRow(cols[0], lat, lon, h))

    if header is None:
        raise SchemaMismatchError(f"File '{path}' appears to contain no column header")
    return rows


def write_positions_tsv(
    path: str,
    metadata: Metadata,
    rows: Iterable[ConvertedRow],
    append: bool = True,
) -> None:
    """
    Write (or append) converted positions.

    Behavior
    --------
    - New file: metadata block, column header, one line per row.
    - Existing file with ``append=True``: the on-disk header is validated,
      then rows are appended.
    - ``append=False``: atomic overwrite (``.tmp`` then ``os.replace``).

    Raises
    ------
    SchemaMismatchError
        When appending to a file whose header does not match.
    """
    creating_new = not os.path.exists(path)

    if not append:
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8", newline="") as f:
            _write_metadata_block(f, metadata)
            _write_column_header(f)
            for r in rows:
                f.write(_row_to_tsv(r))
        os.replace(tmp_path, path)
        return

    if not creating_new:
        _check_header_or_raise(path)
    mode = "a" if not creating_new else "w"
    with open(path, mode, encoding="utf-8", newline="") as f:
        if creating_new:
            _write_metadata_block(f, metadata)
            _write_column_header(f)
        for r in rows:
            f.write(_row_to_tsv(r))


def convert_positions_tsv(
    src: str,
    dst: str,
    transformer: DatumTransformer,
    direction: str = "tokyo_to_jgd",
    metadata: Optional[Metadata] = None,
    append: bool = False,
) -> Tuple[int, int]:
    """
    Convert every point of ``src`` and write the result to ``dst``.

    A point outside grid coverage does not abort the run; it is written with
    status ``out_of_coverage``. Other errors (e.g. ``NotLoadedError``)
    propagate before anything is written.

    Returns
    -------
    (converted, out_of_coverage)
    """
    if direction not in _DIRECTIONS:
        raise ValueError(f"direction must be one of {sorted(_DIRECTIONS)}")
    source, target = _DIRECTIONS[direction]
    if metadata is None:
        metadata = Metadata(source, target, "", "unknown")
    elif (metadata.source_datum, metadata.target_datum) != (source, target):
        raise ValueError(
            f"metadata datums {metadata.source_datum}->{metadata.target_datum} "
            f"do not match direction {direction!r}"
        )

    fn = getattr(transformer, direction)
    out: List[ConvertedRow] = []
    n_out = 0
    for row in read_positions_tsv(src):
        try:
            p = fn(row.to_position())
        except OutOfCoverageError:
            n_out += 1
            out.append(
                ConvertedRow(row.point_id, None, None, row.height_m, STATUS_OUT_OF_COVERAGE)
            )
            continue
        lat, lon, h = p.to_degrees()
        out.append(ConvertedRow(row.point_id, lat, lon, h))

    write_positions_tsv(dst, metadata, out, append=append)
    return len(out) - n_out, n_out


# =============================================================================
# Internal helpers
# =============================================================================


def _input_columns() -> List[str]:
    return ["id", "lat_deg", "lon_deg", "height_m"]


def _output_columns() -> List[str]:
    return ["id", "lat_deg", "lon_deg", "height_m", "status"]


def _write_metadata_block(f: TextIO, md: Metadata) -> None:
    created = md.created_at_iso or datetime.now(timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )
    f.write(f"# Conversion: {md.source_datum} -> {md.target_datum}\n")
    f.write(f"# lat/lon/height={md.target_datum}/ellipsoidal\n")
    f.write(f"# Parameter file: {md.parameter_file}\n")

    f.write("# id: point identifier\n")
    f.write("# lat_deg: geodetic latitude, deg\n")
    f.write("# lon_deg: geodetic longitude, deg\n")
    f.write("# height_m: height (not transformed), m\n")
    f.write(f"# status: {STATUS_OK} | {STATUS_OUT_OF_COVERAGE}\n")

    f.write(f"# Generated with software version: {md.software_version}\n")
    f.write(f"# Created at: {created}\n")
    f.write("\n")


def _write_column_header(f: TextIO) -> None:
    f.write("\t".join(_output_columns()) + "\n")


def _fmt_or_nan(x: Optional[float], decimals: int) -> str:
    if x is None or not math.isfinite(x):
        return "NaN"
    return f"{x:.{decimals}f}"


def _row_to_tsv(r: ConvertedRow) -> str:
    fields = [
        r.point_id,
        _fmt_or_nan(r.lat_deg, 9),
        _fmt_or_nan(r.lon_deg, 9),
        _fmt_or_nan(r.height_m, 4),
        r.status,
    ]
    return "\t".join(fields) + "\n"


def _check_header_or_raise(path: str) -> None:
    """Ensure the first non-comment, non-blank line of ``path`` is the output header."""
    expected = _output_columns()
    header_line: Optional[str] = None
    with open(path, "r", encoding="utf-8", newline="") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            header_line = line
            break

    if header_line is None:
        raise SchemaMismatchError(f"File '{path}' appears to contain no column header")
    if header_line.split("\t") != expected:
        raise SchemaMismatchError(
            "Existing file schema does not match expected header.\n"
            f"Path:     {path}\n"
            f"Expected: {chr(9).join(expected)}\n"
            f"Found:    {header_line}\n"
            "Hint: If you intend to replace the file, "
            "call write_positions_tsv(..., append=False)."
        )
