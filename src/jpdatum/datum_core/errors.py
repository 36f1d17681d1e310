"""
errors.py
=========

Exceptions raised by the datum transformation core.

Every failure is surfaced to the caller; nothing is recovered internally and
inputs are never left in a partially transformed state.
"""

from __future__ import annotations

__all__ = [
    "DatumError",
    "ParameterFileError",
    "ParameterMemoryError",
    "NotLoadedError",
    "OutOfCoverageError",
]


class DatumError(RuntimeError):
    """Base class for all datum transformation errors."""

    pass


class ParameterFileError(DatumError, OSError):
    """
    Raised when the TKY2JGD parameter file cannot be opened or read.

    The parameter table stays uninitialized. The message names the file.
    """

    pass


class ParameterMemoryError(DatumError, MemoryError):
    """Raised when the parameter table cannot be allocated."""

    pass


class NotLoadedError(DatumError):
    """Raised when a transformation is requested before a successful load."""

    pass


class OutOfCoverageError(DatumError, ValueError):
    """
    Raised when a corner of the enclosing grid cell has no parameter record.

    Attributes
    ----------
    lat, lon : float
        Position (radians) whose correction could not be interpolated.
    """

    def __init__(self, lat: float, lon: float) -> None:
        self.lat = lat
        self.lon = lon
        super().__init__(
            f"position outside TKY2JGD coverage: lat={lat!r} rad, lon={lon!r} rad"
        )
