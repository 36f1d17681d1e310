"""
loader.py
=========

Loader for GSI TKY2JGD parameter files (``TKY2JGD.par``) and the process-wide
store that holds the loaded table.

File format
-----------
Plain text, one grid node per line::

    JGD2000-TokyoDatum Ver.2.1.2
    MeshCode   dB(sec)   dL(sec)
    46303582  12.79799  -8.13354
    46303583  12.79879  -8.13749
    ...

Each data line holds an integer mesh code and two decimal corrections in
arc-seconds, separated by whitespace. Lines that do not yield these three
fields (the textual header, blank lines) are skipped without error. Extra
trailing fields are ignored. Line order is irrelevant; records are sorted by
code after reading and the first occurrence of a duplicated code is kept.

A data line must start with an ASCII integer code followed by two decimal
numbers (optional sign, fraction and exponent). Anything after the third
number is ignored. The matched text is converted with ``int``/``float``, which
are locale independent and keep the full binary64 precision of the text.

One-shot semantics
------------------
``ParameterStore.load`` reads the file once. Later calls return immediately
without reopening the file, including calls racing with the first one: the
initialization path is serialized by a lock and the table is published with a
single attribute assignment after it is fully built.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from typing import Iterable, Optional, Tuple, Union

import numpy as np

from .errors import NotLoadedError, ParameterFileError, ParameterMemoryError
from .model import MAX_PARAMS, PARAM_DTYPE
from .table import ParamTable

__all__ = [
    "ParameterStore",
    "parse_parameter_lines",
    "read_parameter_file",
    "default_store",
    "load",
    "is_loaded",
]

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]
Line = Union[str, bytes]

_CODE_MIN = int(np.iinfo(np.int64).min)
_CODE_MAX = int(np.iinfo(np.int64).max)


# Mesh code and two decimal corrections, ASCII only. Text after the third
# number is ignored, as is anything that does not start with these fields.
_NUMBER = r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
_PAR_RE = re.compile(rf"\s*([+-]?\d+)\s+({_NUMBER})\s+({_NUMBER})", re.ASCII)


def _parse_line(line: Line) -> Optional[Tuple[int, float, float]]:
    if isinstance(line, bytes):
        line = line.decode("latin-1")
    m = _PAR_RE.match(line)
    if not m:
        return None
    code = int(m.group(1))
    if not _CODE_MIN <= code <= _CODE_MAX:
        return None
    return code, float(m.group(2)), float(m.group(3))


def _allocate(capacity: int) -> np.ndarray:
    try:
        return np.empty(capacity, dtype=PARAM_DTYPE)
    except MemoryError as e:
        logger.error("datum prm memory allocation error (%d records)", capacity)
        raise ParameterMemoryError(
            f"cannot allocate datum parameter table ({capacity} records)"
        ) from e


def parse_parameter_lines(
    lines: Iterable[Line], max_params: int = MAX_PARAMS
) -> ParamTable:
    """
    Build a ``ParamTable`` from TKY2JGD text lines.

    Parameters
    ----------
    lines : iterable of str or bytes
        Lines of a ``.par`` file.
    max_params : int, default MAX_PARAMS
        Reading stops once this many records have been accepted.

    Raises
    ------
    ParameterMemoryError
        If the record buffer cannot be allocated.
    """
    buf = _allocate(max_params)
    n = 0
    skipped = 0
    for line in lines:
        if n >= max_params:
            break
        rec = _parse_line(line)
        if rec is None:
            skipped += 1
            continue
        buf[n] = rec
        n += 1

    table = ParamTable.from_array(buf[:n])
    logger.debug(
        "parsed %d datum parameters (%d lines skipped, %d duplicates dropped)",
        len(table),
        skipped,
        table.duplicates_dropped,
    )
    return table


def read_parameter_file(path: PathLike, max_params: int = MAX_PARAMS) -> ParamTable:
    """
    Read a ``.par`` file into a new table, leaving process-wide state alone.

    Raises
    ------
    ParameterFileError
        If the file cannot be opened or read. One diagnostic naming the file
        is logged at ERROR level.
    ParameterMemoryError
        If the record buffer cannot be allocated.
    """
    path = os.fspath(path)
    try:
        # latin-1 never fails to decode; data lines are pure ASCII.
        with open(path, "r", encoding="latin-1") as f:
            return parse_parameter_lines(f, max_params)
    except OSError as e:
        logger.error("datum prm file open error : %s", path)
        raise ParameterFileError(f"datum prm file open error : {path}") from e


class ParameterStore:
    """
    Holder of one lazily loaded parameter table.

    States are ``uninitialized`` (``table is None``) and ``initialized``;
    there is no way back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._table: Optional[ParamTable] = None
        self.path: Optional[str] = None

    @property
    def table(self) -> Optional[ParamTable]:
        return self._table

    def is_loaded(self) -> bool:
        return self._table is not None

    def require(self) -> ParamTable:
        """Published table, or ``NotLoadedError`` before a successful load."""
        table = self._table
        if table is None:
            raise NotLoadedError("datum parameters not loaded; call load() first")
        return table

    def load(self, path: PathLike, max_params: int = MAX_PARAMS) -> None:
        """
        Load the parameter file once.

        Calls after a successful load are no-ops and do not reopen the file,
        whatever ``path`` they pass. A failed load leaves the store
        uninitialized so that a later call may retry.
        """
        if self._table is not None:
            logger.debug("datum parameters already loaded from %s", self.path)
            return
        with self._lock:
            if self._table is not None:
                return
            table = read_parameter_file(path, max_params)
            self.path = os.fspath(path)
            self._table = table
        logger.info("loaded %d datum parameters from %s", len(table), self.path)


_DEFAULT_STORE = ParameterStore()


def default_store() -> ParameterStore:
    """The process-wide store used by the module-level functions."""
    return _DEFAULT_STORE


def load(path: PathLike) -> None:
    """Load ``path`` into the process-wide store (one-shot)."""
    _DEFAULT_STORE.load(path)


def is_loaded() -> bool:
    return _DEFAULT_STORE.is_loaded()
