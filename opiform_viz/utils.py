"""
Numeric utilities shared by the loaders, observables and plotting code.

All functions are pure (no global state) apart from ``get_memory_usage``,
which inspects the running process.
"""

from __future__ import annotations

import math
import os
import subprocess
from typing import Sequence

import numpy as np
import scipy.sparse as sp
from numpy.random import Generator, default_rng


# ---------------------------------------------------------------------------
# Symmetry checks
# ---------------------------------------------------------------------------


def symmetry_defect(A: np.ndarray) -> tuple[float, tuple[int, int] | None]:
    """Largest asymmetry of a square matrix and where it occurs.

    Parameters
    ----------
    A : np.ndarray, shape (n, n)

    Returns
    -------
    (m, (i, j))
        ``m = max |A[i, j] - A[j, i]|`` over ``i <= j`` and the first pair
        (row-major over the upper triangle) reaching it.  The pair is
        ``None`` when ``m == 0``.  A non-square matrix gives ``(inf, None)``.
    """
    A = np.asarray(A)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        return math.inf, None

    D = np.triu(np.abs(A - A.T))
    if D.size == 0:
        return 0.0, None
    flat = int(np.argmax(D))
    m = float(D.flat[flat])
    if m == 0.0:
        return 0.0, None
    i, j = divmod(flat, A.shape[1])
    return m, (i, j)


def is_symmetric(A: np.ndarray, tol: float = 1e-8) -> bool:
    """Return True when ``|A[i, j] - A[j, i]| <= tol`` everywhere."""
    A = np.asarray(A)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        return False
    return bool(np.all(np.abs(A - A.T) <= tol))


# ---------------------------------------------------------------------------
# Support and range helpers
# ---------------------------------------------------------------------------


def find_support_bounds(
    f: np.ndarray,
    x: np.ndarray,
    tol: float = 1e-5,
) -> list[tuple[float, float]]:
    """Locate the support of every column of ``f`` on the grid ``x``.

    Parameters
    ----------
    f : np.ndarray, shape (N, T)
        One density per column.
    x : np.ndarray, shape (N,)
        Grid coordinates of the rows of ``f``.
    tol : float, optional
        Values strictly above ``tol`` count as support.  Default 1e-5.

    Returns
    -------
    list of (left, right)
        ``x`` at the first and last row above ``tol``.  A column with no
        such row yields ``(x[0], x[0])``.
    """
    f = np.asarray(f, dtype=np.float64)
    x = np.asarray(x)
    if f.ndim == 1:
        f = f[:, None]

    bounds: list[tuple[float, float]] = []
    for col in f.T:
        idc = np.flatnonzero(col > tol)
        if idc.size == 0:
            bounds.append((float(x[0]), float(x[0])))
        else:
            bounds.append((float(x[idc[0]]), float(x[idc[-1]])))
    return bounds


def find_support_bounds_all(
    fs: Sequence[np.ndarray],
    xs: Sequence[np.ndarray],
    tol: float = 1e-5,
) -> list[list[tuple[float, float]]]:
    """Apply :func:`find_support_bounds` to paired lists of densities and grids."""
    if len(fs) != len(xs):
        raise ValueError(
            f"fs and xs must have the same length; got {len(fs)} vs {len(xs)}."
        )
    return [find_support_bounds(f, x, tol=tol) for f, x in zip(fs, xs)]


def peak2peak(v: np.ndarray, axis: int | tuple[int, ...]) -> np.ndarray:
    """Max minus min of every slice along ``axis``, flattened to a vector."""
    v = np.asarray(v)
    return np.ravel(np.max(v, axis=axis) - np.min(v, axis=axis))


def clip(x, v: float):
    """Keep ``x`` where it is strictly above ``v``, zero elsewhere."""
    out = np.where(np.asarray(x) > v, x, 0.0)
    return float(out) if out.ndim == 0 else out


# ---------------------------------------------------------------------------
# Matrix builders
# ---------------------------------------------------------------------------


def rand_symmetric(
    n: int,
    delta: float,
    rng: Generator | None = None,
) -> np.ndarray:
    """Random symmetric boolean matrix with density roughly ``delta``.

    Uniform noise is symmetrised, rescaled to [0, 1] and folded with
    ``x -> 2x`` (``x <= 0.5``) / ``x -> 2x - 1`` before thresholding.
    """
    rng = rng if rng is not None else default_rng()
    v = rng.random((n, n))
    v = 0.5 * (v + v.T)

    lo, hi = float(v.min()), float(v.max())
    if hi > lo:
        v = (v - lo) / (hi - lo)
    else:
        v = np.zeros_like(v)

    v = np.where(v <= 0.5, 2.0 * v, 2.0 * v - 1.0)
    return v < delta


def group_sizes(n: int, n_groups: int) -> list[int]:
    """Split ``n`` into ``n_groups`` sizes differing by at most one."""
    if n_groups < 1:
        raise ValueError(f"n_groups must be >= 1; got {n_groups}.")
    d, r = divmod(n, n_groups)
    return [d + 1 if k < r else d for k in range(n_groups)]


def speyes(n: int, n_groups: int) -> sp.csc_matrix | np.ndarray:
    """Block-diagonal matrix of all-ones blocks (one block per group).

    The sparse representation is only kept when it saves memory, i.e.
    when ``nnz < 0.5 * (n * (n - 1) - 1)``; otherwise a dense array is
    returned.
    """
    sizes = group_sizes(n, n_groups)
    blocks = [sp.csc_matrix(np.ones((s, s))) for s in sizes if s > 0]
    M = sp.block_diag(blocks, format="csc") if blocks else sp.csc_matrix((n, n))

    nnz = sum(s * s for s in sizes)
    if nnz < 0.5 * (n * (n - 1) - 1):
        return M
    return M.toarray()


# ---------------------------------------------------------------------------
# Grids and shifts
# ---------------------------------------------------------------------------


def build_x(n: int) -> np.ndarray:
    """Cell centres of a uniform ``n``-cell grid on [-1, 1]."""
    if n < 1:
        raise ValueError(f"n must be >= 1; got {n}.")
    h = 2.0 / n
    return -1.0 + h * (np.arange(n) + 0.5)


def shift_left(v: np.ndarray, fill: float = 0.0) -> np.ndarray:
    """Left neighbour of every entry: ``out[k] = v[k - 1]``, ``out[0] = fill``."""
    v = np.asarray(v, dtype=np.float64)
    out = np.empty_like(v)
    out[0] = fill
    out[1:] = v[:-1]
    return out


def shift_right(v: np.ndarray, fill: float = 0.0) -> np.ndarray:
    """Right neighbour of every entry: ``out[k] = v[k + 1]``, ``out[-1] = fill``."""
    v = np.asarray(v, dtype=np.float64)
    out = np.empty_like(v)
    out[-1] = fill
    out[:-1] = v[1:]
    return out


# ---------------------------------------------------------------------------
# Process introspection
# ---------------------------------------------------------------------------


def _process_size_kb() -> int:
    proc = subprocess.run(
        ["ps", "-p", str(os.getpid()), "-h", "-o", "size"],
        capture_output=True, text=True, check=True,
    )
    return int(proc.stdout.strip())


def format_memory(mem_kb: int) -> str:
    """Render a size in kilobytes as ``"G.M GB"`` or ``"M MB"``."""
    gbs = mem_kb // 1_000_000
    mbs = math.ceil((mem_kb - gbs * 1_000_000) / 1_000)
    if gbs > 0:
        return f"{gbs}.{mbs} GB"
    return f"{mbs} MB"


def get_memory_usage(kind: type = str) -> str | int:
    """Memory used by the current process, as text or in kilobytes.

    Raises
    ------
    NotImplementedError
        For any ``kind`` other than ``str`` or ``int``.
    """
    if kind is str:
        return format_memory(_process_size_kb())
    if kind is int:
        return _process_size_kb()
    raise NotImplementedError(f"get_memory_usage not implemented for kind {kind!r}")
