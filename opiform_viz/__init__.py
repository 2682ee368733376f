"""
opiform_viz — Post-processing for opinion-formation simulations
================================================================

Loads finished result directories of two run types and renders them:

  Meanfield runs
      Density ``f`` over the opinion grid, joint edge density ``g(ω, m)``
      per recorded iteration, first-moment and variance series.

  Micro runs
      Per-agent opinions ``ω_i`` over time and the sparse agent graph.

Quick start
-----------
>>> from opiform_viz import plot_result, compare_variance
>>> plot_result(meanfield_dir="runs/mf", micro_dir="runs/micro")
>>> df = compare_variance(["runs/mf"], ["runs/micro"])
"""

from .utils import (
    symmetry_defect,
    is_symmetric,
    find_support_bounds,
    find_support_bounds_all,
    peak2peak,
    clip,
    rand_symmetric,
    speyes,
    build_x,
    shift_left,
    shift_right,
    get_memory_usage,
)
from .config import load_metadata, get_omega_inf_mfl, RunParams
from .loaders import (
    load_hdf5_data,
    load_hdf5_sparse,
    load_g_iter,
    load_meanfield_run,
    load_micro_run,
    MeanfieldRun,
    MicroRun,
)
from .observables import (
    compute_p2p_rate,
    weighted_average,
    variance,
    edge_opinion_pairs,
    support_window,
    opinion_colors,
)
from .plotting import (
    plot_results,
    plot_result,
    compare_variance,
    comparison_series,
    ResultMovie,
)

__all__ = [
    # utils
    "symmetry_defect", "is_symmetric", "find_support_bounds",
    "find_support_bounds_all", "peak2peak", "clip", "rand_symmetric",
    "speyes", "build_x", "shift_left", "shift_right", "get_memory_usage",
    # config
    "load_metadata", "get_omega_inf_mfl", "RunParams",
    # loaders
    "load_hdf5_data", "load_hdf5_sparse", "load_g_iter",
    "load_meanfield_run", "load_micro_run", "MeanfieldRun", "MicroRun",
    # observables
    "compute_p2p_rate", "weighted_average", "variance",
    "edge_opinion_pairs", "support_window", "opinion_colors",
    # plotting
    "plot_results", "plot_result", "compare_variance",
    "comparison_series", "ResultMovie",
]
