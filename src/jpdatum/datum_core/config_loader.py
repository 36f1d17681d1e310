from __future__ import annotations

"""
config_loader.py
================

TOML configuration for the datum transformation core.

Example file::

    [datum]
    parameter_file = "data/TKY2JGD.par"   # relative to this file
    max_params = 400000

    [inverse]
    tolerance = 0.0        # radians; 0 keeps the exact two-iteration inverse
    max_iterations = 10

Values can be overridden with ``key=value`` strings (``--set`` style), e.g.
``inverse.tolerance=1e-12``. Overrides are applied after the file is merged
over the defaults.
"""

import copy
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

try:
    import tomllib as toml  # py311+
except ImportError:
    import tomli as toml  # fallback for older envs

from .loader import ParameterStore, default_store
from .model import MAX_PARAMS
from .transform import DatumTransformer

__all__ = [
    "DatumConfig",
    "load_toml",
    "merge_dicts",
    "apply_sets",
    "parse_scalar",
    "load_datum_config",
    "configure",
]

DEFAULTS: Dict[str, Any] = {
    "datum": {"parameter_file": None, "max_params": MAX_PARAMS},
    "inverse": {"tolerance": 0.0, "max_iterations": 10},
}


@dataclass(frozen=True)
class DatumConfig:
    # Path of the TKY2JGD .par file (absolute or relative to the CWD).
    parameter_file: Optional[str] = None
    # Upper bound of accepted parameter records.
    max_params: int = MAX_PARAMS
    # Inverse tolerance in radians; 0 selects the fixed two-step iteration.
    tolerance: float = 0.0
    # Bound for the tolerance-driven inverse loop.
    max_iterations: int = 10

    def __post_init__(self) -> None:
        if not 0 < self.max_params <= MAX_PARAMS:
            raise ValueError(f"max_params must be in (0, {MAX_PARAMS}]")
        if self.tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")


def load_toml(path: str) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return toml.load(f)


def merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_dicts(out[k], v)
        else:
            out[k] = v
    return out


def apply_sets(cfg: Dict[str, Any], sets: Iterable[str]) -> Dict[str, Any]:
    for item in sets:
        if "=" not in item:
            raise ValueError(f"--set requires key=value, got: {item}")
        key, val = item.split("=", 1)
        path = key.strip().split(".")
        cursor = cfg
        for p in path[:-1]:
            if p not in cursor or not isinstance(cursor[p], dict):
                cursor[p] = {}
            cursor = cursor[p]
        cursor[path[-1]] = parse_scalar(val.strip())
    return cfg


def parse_scalar(s: str):
    sl = s.lower()
    if sl in ("true", "false"):
        return sl == "true"
    try:
        return int(s)
    except ValueError:
        pass
    try:
        return float(s)
    except ValueError:
        return s


def _as_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"[{section}] {key} must be a number, got: {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"[{section}] {key} must be an integer, got: {value!r}")
    return int(value)


def _as_float(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"[{section}] {key} must be a number, got: {value!r}")
    return float(value)


def load_datum_config(
    path: Optional[str] = None,
    set_overrides: Iterable[str] = (),
) -> DatumConfig:
    """Compose defaults, the optional TOML file and --set overrides.

    A relative ``datum.parameter_file`` coming from the file is resolved
    against the directory of that file.
    """
    cfg = copy.deepcopy(DEFAULTS)
    base_dir = None
    if path is not None:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")
        cfg = merge_dicts(cfg, load_toml(path))
        base_dir = os.path.dirname(os.path.abspath(path))

    from_file = cfg["datum"].get("parameter_file")
    cfg = apply_sets(cfg, set_overrides)
    par = cfg["datum"].get("parameter_file")
    if par is not None:
        par = str(par)
        # Only paths written in the file are relative to it.
        if base_dir and par == from_file and not os.path.isabs(par):
            par = os.path.normpath(os.path.join(base_dir, par))

    return DatumConfig(
        parameter_file=par,
        max_params=_as_int("datum", "max_params", cfg["datum"]["max_params"]),
        tolerance=_as_float("inverse", "tolerance", cfg["inverse"]["tolerance"]),
        max_iterations=_as_int(
            "inverse", "max_iterations", cfg["inverse"]["max_iterations"]
        ),
    )


def configure(
    cfg: DatumConfig, store: Optional[ParameterStore] = None
) -> DatumTransformer:
    """Load the configured parameter file and return a matching transformer.

    ``store`` defaults to the process-wide store; loading is one-shot, so an
    already initialized store is reused as is.
    """
    if cfg.parameter_file is None:
        raise ValueError("datum.parameter_file is not configured")
    store = store if store is not None else default_store()
    store.load(cfg.parameter_file, max_params=cfg.max_params)
    return DatumTransformer(
        store,
        tolerance=cfg.tolerance or None,
        max_iterations=cfg.max_iterations,
    )
