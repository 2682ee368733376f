"""
Derived observables computed from loaded runs.

All functions are pure and operate on plain numpy / scipy.sparse inputs
so they can be reused outside the plotting drivers.

Conventions
-----------
* ``omega`` has shape (N, T): one agent per row, one recorded iteration
  per column.
* Meanfield densities live on the cell-centre grid of [-1, 1] built by
  :func:`opiform_viz.utils.build_x`, so the cell width is ``2 / N``.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import scipy.sparse as sp


# ---------------------------------------------------------------------------
# Decay rates
# ---------------------------------------------------------------------------


def compute_p2p_rate(
    i: np.ndarray,
    p2p: np.ndarray,
    delta_t: float,
    cutoff_time: float = 5.0,
) -> float:
    """Exponential decay rate of a peak-to-peak series.

    The first sample with ``i * delta_t >= cutoff_time`` is located and the
    rate ``-log(p2p[idx] / p2p[0]) / (delta_t * i[idx])`` returned.

    Parameters
    ----------
    i : np.ndarray, shape (T,)
        Recorded iteration numbers, ascending.
    p2p : np.ndarray, shape (T,)
        Peak-to-peak values at those iterations.
    delta_t : float
        Time step of the run.
    cutoff_time : float, optional
        Time at which the rate is evaluated.  Default 5.0.

    Raises
    ------
    ValueError
        If the cutoff lies beyond the last sample or falls on time zero.
    """
    i = np.asarray(i)
    p2p = np.asarray(p2p, dtype=np.float64)
    if i.shape != p2p.shape:
        raise ValueError(
            f"i and p2p must have the same shape; got {i.shape} vs {p2p.shape}."
        )

    idx = int(np.searchsorted(i * delta_t, cutoff_time, side="left"))
    if idx >= i.size:
        raise ValueError(
            f"cutoff_time={cutoff_time} is past the last sample "
            f"(t={float(i[-1] * delta_t) if i.size else 0.0})."
        )
    elapsed = delta_t * i[idx]
    if elapsed == 0:
        raise ValueError("cutoff_time selects the initial sample; no elapsed time to fit a rate.")
    return float(-np.log(p2p[idx] / p2p[0]) / elapsed)


# ---------------------------------------------------------------------------
# Graph-weighted statistics
# ---------------------------------------------------------------------------


def degrees(adj) -> np.ndarray:
    """Row sums of an adjacency matrix (dense or sparse) as a flat vector."""
    return np.asarray(adj.sum(axis=1)).ravel().astype(np.float64)


def weighted_average(omega: np.ndarray, adj=None) -> np.ndarray:
    """Degree-weighted mean opinion of every column of ``omega``.

    With an adjacency matrix the weights are the node degrees
    ``#I_i``: ``sum(omega * #I) / sum(#I)``.  Without one the mean is
    ``sum(omega) / (N - 1)``.
    """
    omega = np.asarray(omega, dtype=np.float64)
    if omega.ndim == 1:
        omega = omega[:, None]
    n = omega.shape[0]

    if adj is not None:
        sharp_i = degrees(adj)
        return (sharp_i @ omega) / sharp_i.sum()
    return omega.sum(axis=0) / (n - 1)


def variance(omega: np.ndarray, centers) -> np.ndarray:
    """Per-column spread of ``omega`` around ``centers``: ``sum((ω - c)^2) / (N - 1)``."""
    omega = np.asarray(omega, dtype=np.float64)
    if omega.ndim == 1:
        omega = omega[:, None]
    n = omega.shape[0]
    return np.sum((omega - np.asarray(centers)[None, :]) ** 2, axis=0) / (n - 1)


def edge_opinion_pairs(
    adj: sp.spmatrix,
    omega_t: np.ndarray,
    half: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """Opinion pairs across every stored edge of ``adj``.

    For each nonzero ``adj[r, j]`` the pair ``(omega_t[r], omega_t[j])`` is
    emitted, column by column.  With ``half`` only pairs where
    ``omega_t[r] >= omega_t[j]`` are kept, which for a symmetric matrix
    samples the upper half of the ``(ω, m)`` plane.

    Returns
    -------
    xs, ys : np.ndarray
        Neighbour and node opinions.
    """
    A = sp.csc_matrix(adj)
    omega_t = np.asarray(omega_t, dtype=np.float64)
    rows = A.indices
    cols = np.repeat(np.arange(A.shape[1]), np.diff(A.indptr))

    xs = omega_t[rows]
    ys = omega_t[cols]
    if half:
        keep = xs >= ys
        xs, ys = xs[keep], ys[keep]
    return xs, ys


# ---------------------------------------------------------------------------
# Hexbin scaling
# ---------------------------------------------------------------------------


def hexbin_cell_size(n_mfl: int, iteration: int) -> float:
    """Hexagon width, shrinking as the run progresses."""
    return 1.0 / n_mfl + 10.0 / (iteration + 100)


def hexagon_area(width: float) -> float:
    return 0.5 * np.sqrt(3.0) * width ** 2


def hexbin_particle_weight(cell_size: float, nnz: int) -> float:
    """Weight of one edge sample so that hexbin counts approximate ``g``.

    A homogeneous cloud of ``nnz`` samples on the square puts
    ``nnz * A / |Ω²|`` samples in a hexagon of area ``A``, which should map
    to the mean of ``g``, ``∫∫g / |Ω²|``.  Each sample is therefore worth
    ``1 / (A * nnz)``.
    """
    return 1.0 / (hexagon_area(cell_size) * nnz)


# ---------------------------------------------------------------------------
# Meanfield integrals and support
# ---------------------------------------------------------------------------


def first_mass(f_col: np.ndarray, n: int) -> float:
    """Total mass of a density column on an ``n``-cell grid of [-1, 1]."""
    return float(2.0 / n * np.sum(f_col))


def integrate_g(g: np.ndarray | None, n: int) -> float:
    """Double integral of ``g`` over the square; 0.0 when ``g`` is absent."""
    if g is None:
        return 0.0
    return float(np.sum(g) * (2.0 / n) ** 2)


def support_window(
    f_cols: Sequence[np.ndarray],
    xs: Sequence[np.ndarray],
    omega_t: np.ndarray | None = None,
    tol: float = 1e-5,
) -> tuple[float, float]:
    """Smallest interval containing the support of every density column.

    A column with no value above ``tol`` contributes the full grid.  When
    micro opinions are given the interval is widened to include them.
    """
    lefts, rights = [], []
    for f, x in zip(f_cols, xs):
        idc = np.flatnonzero(np.asarray(f) > tol)
        left_idx = int(idc[0]) if idc.size else 0
        right_idx = int(idc[-1]) if idc.size else len(f) - 1
        lefts.append(float(x[left_idx]))
        rights.append(float(x[right_idx]))

    if not lefts and omega_t is None:
        raise ValueError("support_window needs at least one density or opinion vector.")

    if omega_t is not None:
        lefts.append(float(np.min(omega_t)))
        rights.append(float(np.max(omega_t)))
    return min(lefts), max(rights)


def max_density(f_cols: Sequence[np.ndarray]) -> float:
    return float(max(np.max(f) for f in f_cols))


# ---------------------------------------------------------------------------
# Colours
# ---------------------------------------------------------------------------


def opinion_colors(omega_t: np.ndarray) -> np.ndarray:
    """RGB colour per agent: red for ω < 0, blue for ω > 0, white at 0.

    Opinions are clipped to [-1, 1] first.

    Returns
    -------
    np.ndarray, shape (N, 3)
    """
    w = np.clip(np.asarray(omega_t, dtype=np.float64), -1.0, 1.0)
    rgb = np.empty((w.size, 3), dtype=np.float64)
    neg = w < 0
    rgb[neg] = np.column_stack([np.ones(neg.sum()), 1 + w[neg], 1 + w[neg]])
    pos = ~neg
    rgb[pos] = np.column_stack([1 - w[pos], 1 - w[pos], np.ones(pos.sum())])
    return rgb
