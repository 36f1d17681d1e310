"""
table.py
========

Sorted, immutable table of TKY2JGD parameter records keyed by mesh code.

The records live in one numpy structured array (``PARAM_DTYPE``) sorted
strictly ascending by ``code``. The buffer is flagged read-only once the table
is built, so a published table can be shared by any number of threads.
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from .model import PARAM_DTYPE, ParamRecord

__all__ = ["ParamTable"]


class ParamTable:
    """
    Read-only parameter table queried by binary search.

    Build instances with ``from_array``, ``from_records`` or ``empty``; the
    constructor expects an already sorted, duplicate-free array.
    """

    def __init__(self, records: np.ndarray, duplicates_dropped: int = 0) -> None:
        # Own copy; the caller's array stays writable.
        records = np.array(records, dtype=PARAM_DTYPE)
        codes = records["code"]
        if codes.size > 1 and not np.all(codes[1:] > codes[:-1]):
            raise ValueError("parameter records must be strictly sorted by code")
        records.flags.writeable = False
        self._records = records
        self._codes = records["code"]
        self.duplicates_dropped = duplicates_dropped

    @classmethod
    def from_array(cls, records: np.ndarray) -> "ParamTable":
        """
        Sort ``records`` by code and drop duplicates.

        The sort is stable, so the first occurrence of a code (in input order)
        is the one kept.
        """
        records = np.asarray(records, dtype=PARAM_DTYPE)
        if records.size == 0:
            return cls.empty()
        order = np.argsort(records["code"], kind="stable")
        ordered = records[order]
        codes = ordered["code"]
        keep = np.ones(codes.size, dtype=bool)
        keep[1:] = codes[1:] != codes[:-1]
        unique = np.ascontiguousarray(ordered[keep])
        return cls(unique, duplicates_dropped=int(codes.size - unique.size))

    @classmethod
    def from_records(cls, records: Iterable[ParamRecord]) -> "ParamTable":
        rows = [(r.code, r.db, r.dl) for r in records]
        return cls.from_array(np.array(rows, dtype=PARAM_DTYPE))

    @classmethod
    def empty(cls) -> "ParamTable":
        return cls(np.empty(0, dtype=PARAM_DTYPE))

    def __len__(self) -> int:
        return int(self._records.size)

    def __repr__(self) -> str:
        return f"ParamTable(n={len(self)})"

    @property
    def codes(self) -> np.ndarray:
        """Sorted mesh codes (read-only view)."""
        return self._codes

    @property
    def records(self) -> np.ndarray:
        """Underlying structured array (read-only)."""
        return self._records

    def lookup(self, code: int) -> Optional[int]:
        """
        Index of ``code`` in the table, or None when it is absent.

        Binary search followed by an explicit equality check on the landing
        index; returns the first matching index.
        """
        codes = self._codes
        i = int(np.searchsorted(codes, code, side="left"))
        if i < codes.size and codes[i] == code:
            return i
        return None

    def lookup_many(self, codes) -> np.ndarray:
        """Vectorized ``lookup``; missing codes map to -1."""
        needles = np.asarray(codes, dtype=np.int64)
        n = self._codes.size
        if n == 0:
            return np.full(needles.shape, -1, dtype=np.int64)
        idx = np.searchsorted(self._codes, needles, side="left")
        safe = np.minimum(idx, n - 1)
        found = (idx < n) & (self._codes[safe] == needles)
        return np.where(found, idx, -1).astype(np.int64)

    def at(self, index: int) -> ParamRecord:
        """Record at ``index`` (0 <= index < len(table))."""
        if not 0 <= index < self._records.size:
            raise IndexError(f"parameter index out of range: {index}")
        rec = self._records[index]
        return ParamRecord(int(rec["code"]), float(rec["db"]), float(rec["dl"]))
