"""
HDF5 loaders for meanfield and micro result directories.

Low-level readers return ``None`` when a dataset is absent so callers can
treat optional outputs (``alpha``, ``g/<iter>``, ``adj_matrix`` …)
uniformly.  The run-level loaders validate the mandatory datasets and
normalise the array orientation: the time axis is always the second one.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path

import h5py
import numpy as np
import scipy.sparse as sp

from .config import MetadataDict, RunParams, load_metadata
from .utils import symmetry_defect


DATA_FILENAME = "data.hdf5"


# ---------------------------------------------------------------------------
# Low-level readers
# ---------------------------------------------------------------------------


def _open(filename: str | Path) -> h5py.File:
    path = Path(filename)
    if not path.exists():
        raise FileNotFoundError(f"HDF5 file not found: {path}")
    return h5py.File(path, "r")


def load_hdf5_data(filename: str | Path, key: str) -> np.ndarray | None:
    """Read dataset ``key`` from ``filename`` into memory.

    Returns
    -------
    np.ndarray or None
        The dataset contents, or None when ``key`` is missing or names a
        group rather than a dataset.

    Raises
    ------
    FileNotFoundError
        If the file itself does not exist.
    """
    with _open(filename) as fh:
        obj = fh.get(key)
        if not isinstance(obj, h5py.Dataset):
            return None
        return obj[()]


def load_hdf5_sparse(filename: str | Path, key: str) -> sp.csc_matrix | None:
    """Read a sparse matrix stored under ``key``.

    Accepted layouts:

    * a group with ``data``, ``indices``, ``indptr`` and ``shape``
      (scipy CSC components, 0-based);
    * a group with ``nzval``, ``rowval``, ``colptr``, ``m`` and ``n``
      (CSC components with 1-based indices);
    * a plain dense dataset.

    Returns
    -------
    scipy.sparse.csc_matrix or None
        None when ``key`` is absent.

    Raises
    ------
    ValueError
        If ``key`` is a group that matches neither CSC layout.
    """
    with _open(filename) as fh:
        obj = fh.get(key)
        if obj is None:
            return None
        if isinstance(obj, h5py.Dataset):
            return sp.csc_matrix(np.asarray(obj[()]))

        members = set(obj.keys())
        if {"data", "indices", "indptr", "shape"} <= members:
            shape = tuple(int(s) for s in obj["shape"][()])
            return sp.csc_matrix(
                (obj["data"][()], obj["indices"][()], obj["indptr"][()]),
                shape=shape,
            )
        if {"nzval", "rowval", "colptr", "m", "n"} <= members:
            shape = (int(obj["m"][()]), int(obj["n"][()]))
            return sp.csc_matrix(
                (obj["nzval"][()], obj["rowval"][()] - 1, obj["colptr"][()] - 1),
                shape=shape,
            )

    raise ValueError(
        f"{filename}:{key} is a group but not a recognised sparse layout "
        f"(found members {sorted(members)})"
    )


def run_label(run_dir: str | Path) -> str:
    """Name of a run directory, tolerant of a trailing separator."""
    return Path(run_dir).name


def data_path(run_dir: str | Path) -> Path:
    return Path(run_dir) / DATA_FILENAME


def load_g_iter(run_dir: str | Path, iteration: int) -> np.ndarray | None:
    """Joint density ``g`` stored for ``iteration``, or None."""
    return load_hdf5_data(data_path(run_dir), f"g/{int(iteration)}")


def _time_as_columns(arr: np.ndarray, n_times: int, name: str, run_dir) -> np.ndarray:
    """Orient ``arr`` so that its second axis has length ``n_times``.

    Column-major producers store (space, time) arrays that h5py reads back
    transposed; the length of the iteration vector disambiguates.
    """
    arr = np.asarray(arr)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.shape[1] == n_times:
        return arr
    if arr.shape[0] == n_times:
        return arr.T
    raise ValueError(
        f"{run_dir}: dataset {name!r} has shape {arr.shape}, "
        f"incompatible with {n_times} recorded iterations"
    )


# ---------------------------------------------------------------------------
# Run records
# ---------------------------------------------------------------------------


@dataclass
class MeanfieldRun:
    """Continuum run: density ``f`` over the opinion grid."""

    path: Path
    label: str
    iterations: np.ndarray
    f: np.ndarray
    metadata: MetadataDict
    alpha: np.ndarray | None = None
    g_m1: np.ndarray | None = None
    f_var: np.ndarray | None = None

    @property
    def n_cells(self) -> int:
        return int(self.f.shape[0])

    @property
    def delta_t(self) -> float:
        return float(self.metadata["delta_t"])

    @property
    def times(self) -> np.ndarray:
        return self.iterations * self.delta_t

    def g_at(self, iteration: int) -> np.ndarray | None:
        return load_g_iter(self.path, iteration)


@dataclass
class MicroRun:
    """Agent-based run: per-agent opinions and the agent graph."""

    path: Path
    label: str
    iterations: np.ndarray
    omega: np.ndarray
    metadata: MetadataDict
    params: RunParams
    adj_matrix: sp.csc_matrix | None = None

    @property
    def n_agents(self) -> int:
        return int(self.omega.shape[0])

    @property
    def delta_t(self) -> float:
        return float(self.metadata["delta_t"])

    @property
    def times(self) -> np.ndarray:
        return self.iterations * self.delta_t


def _require_dir(run_dir: str | Path) -> Path:
    path = Path(run_dir)
    if not path.is_dir():
        raise FileNotFoundError(f"Result directory not found: {path}")
    return path


def _require(arr, name: str, run_dir: Path) -> np.ndarray:
    if arr is None:
        raise ValueError(f"{run_dir}: required dataset {name!r} missing from {DATA_FILENAME}")
    return arr


def load_meanfield_run(run_dir: str | Path) -> MeanfieldRun:
    """Load a meanfield result directory.

    Raises
    ------
    FileNotFoundError
        If the directory, its data file or its metadata are missing.
    ValueError
        If ``i`` or ``f`` are missing or have inconsistent shapes.
    """
    path = _require_dir(run_dir)
    h5 = data_path(path)

    iterations = np.asarray(_require(load_hdf5_data(h5, "i"), "i", path)).astype(np.int64).ravel()
    n_times = iterations.size
    f = _time_as_columns(_require(load_hdf5_data(h5, "f"), "f", path), n_times, "f", path)

    g_m1 = load_hdf5_data(h5, "g_M1_n")
    f_var = load_hdf5_data(h5, "f_var")

    return MeanfieldRun(
        path=path,
        label=run_label(path),
        iterations=iterations,
        f=f.astype(np.float64),
        metadata=load_metadata(path),
        alpha=load_hdf5_data(h5, "alpha"),
        g_m1=None if g_m1 is None else np.ravel(g_m1).astype(np.float64),
        f_var=None if f_var is None else np.ravel(f_var).astype(np.float64),
    )


def load_micro_run(run_dir: str | Path) -> MicroRun:
    """Load a micro (agent-based) result directory.

    Raises
    ------
    FileNotFoundError
        If the directory, its data file or its metadata are missing.
    ValueError
        If ``i`` or ``omega`` are missing or have inconsistent shapes, or
        the adjacency matrix is not square with one row per agent.
    """
    path = _require_dir(run_dir)
    h5 = data_path(path)

    iterations = np.asarray(_require(load_hdf5_data(h5, "i"), "i", path)).astype(np.int64).ravel()
    omega = _time_as_columns(
        _require(load_hdf5_data(h5, "omega"), "omega", path),
        iterations.size, "omega", path,
    ).astype(np.float64)

    adj = load_hdf5_sparse(h5, "adj_matrix")
    if adj is not None:
        if adj.shape != (omega.shape[0], omega.shape[0]):
            raise ValueError(
                f"{path}: adj_matrix has shape {adj.shape}, expected "
                f"({omega.shape[0]}, {omega.shape[0]})"
            )
        if (abs(adj - adj.T) > 1e-12).nnz > 0:
            defect, pair = symmetry_defect(adj.toarray())
            warnings.warn(
                f"{path}: adj_matrix is not symmetric (max |A[i,j] - A[j,i]| = "
                f"{defect:g} at {pair}); edge statistics assume an undirected graph.",
                UserWarning,
                stacklevel=2,
            )
        adj.sort_indices()

    metadata = load_metadata(path)
    return MicroRun(
        path=path,
        label=run_label(path),
        iterations=iterations,
        omega=omega,
        metadata=metadata,
        params=RunParams.from_metadata(metadata),
        adj_matrix=adj,
    )
