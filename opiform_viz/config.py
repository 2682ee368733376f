"""
Run metadata loader.

Every result directory carries a ``metadata.toml`` written by the
simulation engine.  This module parses it, validates the fields the
plotting code relies on, and exposes a typed view of the micro-run
parameters used for figure annotations.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

MetadataDict = dict[str, Any]


# ---------------------------------------------------------------------------
# Schema constants
# ---------------------------------------------------------------------------

METADATA_FILENAME = "metadata.toml"
ADJ_MATRIX_INIT_METHODS = {"from_file", "from_sampling_alpha_init", "from_graph"}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def load_metadata(run_dir: str | Path) -> MetadataDict:
    """Load and validate ``metadata.toml`` from a run directory.

    Parameters
    ----------
    run_dir : str or Path
        Result directory of a meanfield or micro run.

    Returns
    -------
    MetadataDict
        Parsed metadata.

    Raises
    ------
    FileNotFoundError
        If the metadata file does not exist.
    ValueError
        If the file cannot be parsed or required fields are invalid.
    """
    path = Path(run_dir) / METADATA_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"Metadata file not found: {path}")

    try:
        with path.open("rb") as fh:
            meta: MetadataDict = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse '{path}': {exc}") from exc

    _validate_metadata(meta, path)
    return meta


def _validate_metadata(meta: MetadataDict, path: Path) -> None:
    """Check the fields every run must provide.

    Raises
    ------
    ValueError
        On any validation failure.
    """
    if "delta_t" not in meta:
        raise ValueError(f"{path}: metadata missing required field 'delta_t'")

    dt = meta["delta_t"]
    if isinstance(dt, bool) or not isinstance(dt, (int, float)):
        raise ValueError(f"{path}: delta_t must be a number, got {dt!r}")
    if dt <= 0:
        raise ValueError(f"{path}: delta_t must be > 0, got {dt}")

    method = meta.get("init_method_adj_matrix")
    if method is not None and _normalise_method(method) not in ADJ_MATRIX_INIT_METHODS:
        raise ValueError(
            f"{path}: init_method_adj_matrix must be one of "
            f"{sorted(ADJ_MATRIX_INIT_METHODS)}, got {method!r}"
        )


def _normalise_method(method: str) -> str:
    # Written as a symbol (":from_graph") or with the Greek letter by some engines.
    return str(method).lstrip(":").replace("α", "alpha")


def get_omega_inf_mfl(run_dir: str | Path) -> float:
    """Return the asymptotic meanfield opinion ``omega_inf_mfl`` of a run.

    Raises
    ------
    ValueError
        If the metadata does not define ``omega_inf_mfl``.
    """
    meta = load_metadata(run_dir)
    if "omega_inf_mfl" not in meta:
        raise ValueError(f"{run_dir}: metadata has no 'omega_inf_mfl' entry")
    return float(meta["omega_inf_mfl"])


# ---------------------------------------------------------------------------
# Typed parameters
# ---------------------------------------------------------------------------


@dataclass
class RunParams:
    """Subset of run parameters shown on figures."""

    delta_t: float
    init_method_adj_matrix: str | None = None
    connection_density: float | None = None
    init_micro_graph_type: str | None = None
    init_micro_graph_args: list = field(default_factory=list)
    init_micro_graph_kwargs: dict = field(default_factory=dict)
    N_micro: int | None = None
    omega_inf_mfl: float | None = None

    @classmethod
    def from_metadata(cls, meta: MetadataDict) -> "RunParams":
        method = meta.get("init_method_adj_matrix")
        args = meta.get("init_micro_graph_args", [])
        return cls(
            delta_t=float(meta["delta_t"]),
            init_method_adj_matrix=_normalise_method(method) if method is not None else None,
            connection_density=meta.get("connection_density"),
            init_micro_graph_type=meta.get("init_micro_graph_type"),
            init_micro_graph_args=list(args) if isinstance(args, (list, tuple)) else [args],
            init_micro_graph_kwargs=dict(meta.get("init_micro_graph_kwargs", {})),
            N_micro=meta.get("N_micro"),
            omega_inf_mfl=meta.get("omega_inf_mfl"),
        )

    @classmethod
    def from_toml(cls, run_dir: str | Path) -> "RunParams":
        return cls.from_metadata(load_metadata(run_dir))

    def graph_source(self) -> str:
        """Describe how the micro graph was built, for the graph panel title."""
        if self.init_method_adj_matrix == "from_file":
            return "(from file)"
        if self.init_method_adj_matrix == "from_sampling_alpha_init":
            return f"(from α_init, connection_density={self.connection_density})"
        if self.init_method_adj_matrix == "from_graph":
            args = ", ".join(str(a) for a in self.init_micro_graph_args)
            kwargs = ", ".join(f"{k}={v}" for k, v in self.init_micro_graph_kwargs.items())
            return f"({self.init_micro_graph_type}({args}; {kwargs}))"
        return ""
