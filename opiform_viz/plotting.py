"""
Figures and movies for meanfield / micro result directories.

Two drivers are provided:

  1. **Result movie** (:func:`plot_results`): one frame per recorded
     iteration.  Left panel: meanfield densities ``f`` with the micro
     opinion histogram on top.  Middle panel: the joint density
     ``g(ω, m)`` as a heatmap with the micro edge pairs as a weighted
     hexbin.  Right panel: the agent graph coloured by opinion.

  2. **Variance comparison** (:func:`compare_variance`): variances over
     time on a log scale, and centre ± standard deviation bands, for any
     number of meanfield and micro runs.  The plotted series are also
     written as a tidy CSV table.
"""

from __future__ import annotations

import sys
import warnings
from pathlib import Path
from typing import Iterable, Sequence

import matplotlib
matplotlib.use("Agg")  # Non-interactive; safe for headless/CI environments
import matplotlib.pyplot as plt
import matplotlib.colors as mcolors
import matplotlib.cm as cm
from matplotlib.animation import FFMpegWriter, FuncAnimation, PillowWriter
import networkx as nx
import numpy as np
import pandas as pd
import seaborn as sns

from .config import get_omega_inf_mfl
from .loaders import MeanfieldRun, MicroRun, load_meanfield_run, load_micro_run
from .observables import (
    compute_p2p_rate,
    edge_opinion_pairs,
    first_mass,
    hexbin_cell_size,
    hexbin_particle_weight,
    integrate_g,
    max_density,
    opinion_colors,
    support_window,
    variance,
    weighted_average,
)
from .utils import build_x, peak2peak


# ---------------------------------------------------------------------------
# Style constants
# ---------------------------------------------------------------------------

MOVIE_FIGSIZE   = (19.2, 10.8)     # 1920x1080 at 100 dpi
MOVIE_DPI       = 100
MOVIE_FPS       = 24
COMPARE_FIGSIZE = (19.2, 10.8)
G_CMAP          = "mako"
HIST_COLOR      = "#4C72B0"
CENTER_COLOR    = "grey"
EDGE_COLOR      = "#CCCCCC"
EDGE_ALPHA      = 0.25
HEX_EDGE_COLOR  = "0.75"
DEFAULT_N_MFL   = 300              # histogram resolution when no meanfield run is given
SUPPORT_TOL     = 1e-5
RATE_CUTOFF_FRACTION = 0.25

sns.set_theme(style="whitegrid")


# ---------------------------------------------------------------------------
# Directory handling
# ---------------------------------------------------------------------------


def _as_dir_list(dirs: str | Path | Iterable[str | Path] | None) -> list[Path]:
    if dirs is None:
        return []
    if isinstance(dirs, (str, Path)):
        return [Path(dirs)]
    return [Path(d) for d in dirs]


def _check_dirs_exist(dirs: Sequence[Path]) -> None:
    for d in dirs:
        if not d.is_dir():
            raise FileNotFoundError(f"Result directory not found: {d}")


def default_output_path(dirs: Sequence[Path], filename: str) -> Path:
    """``filename`` placed next to the first result directory."""
    return Path(dirs[0]).parent / filename


def movie_writer(output_path: Path, fps: int):
    """Animation writer matching the file suffix."""
    suffix = Path(output_path).suffix.lower()
    if suffix == ".mp4":
        return FFMpegWriter(fps=fps)
    if suffix == ".gif":
        return PillowWriter(fps=fps)
    raise ValueError(f"Unsupported movie format {suffix!r} (use .mp4 or .gif)")


def initial_center(run: MicroRun) -> float:
    """Mean opinion at the first recorded iteration.

    Degree-weighted when the run has a graph, a plain mean otherwise.
    """
    omega0 = run.omega[:, 0]
    if run.adj_matrix is not None:
        return float(weighted_average(omega0, run.adj_matrix)[0])
    return float(np.mean(omega0))


# ---------------------------------------------------------------------------
# Movie
# ---------------------------------------------------------------------------


class ResultMovie:
    """Frame-stepping driver for the result movie.

    The figure and all artists are built once; :meth:`update` recomputes
    the derived observables of one recorded iteration and refreshes the
    artists in place.

    Parameters
    ----------
    meanfield_runs : list of MeanfieldRun
    micro_run : MicroRun or None
    half_connection_matrix : bool
        Only plot edge pairs with ``ω_neighbour >= ω_node``.
    omega_shift : float
        Added to every micro opinion before plotting (histogram centering).
    """

    def __init__(
        self,
        meanfield_runs: Sequence[MeanfieldRun],
        micro_run: MicroRun | None = None,
        half_connection_matrix: bool = False,
        omega_shift: float = 0.0,
    ) -> None:
        if not meanfield_runs and micro_run is None:
            raise ValueError("ResultMovie needs at least one meanfield or micro run.")

        self.mfl = list(meanfield_runs)
        self.micro = micro_run
        self.half = half_connection_matrix
        self.omega_shift = float(omega_shift)

        self.has_mfl = bool(self.mfl)
        self.adj = micro_run.adj_matrix if micro_run is not None else None
        self.has_graph = self.adj is not None
        self.has_g_panel = self.has_mfl or self.has_graph

        self.n_mfl = self.mfl[0].n_cells if self.has_mfl else DEFAULT_N_MFL
        self.xs = [build_x(run.n_cells) for run in self.mfl]
        self.iterations = self.mfl[0].iterations if self.has_mfl else micro_run.iterations

        if micro_run is not None:
            self.omega_inf_d = initial_center(micro_run)

        first_g = self.mfl[0].g_at(self.iterations[0]) if self.has_mfl else None
        self.constant_g = first_g is None

        self._skipped: set[int] = set()
        self._hist = None
        self._hexbin = None
        self._build_figure(first_g)

    # -- construction -------------------------------------------------------

    def _build_figure(self, first_g: np.ndarray | None) -> None:
        ncols = 3 if self.has_g_panel else 1
        self.fig = plt.figure(figsize=MOVIE_FIGSIZE)
        gs = self.fig.add_gridspec(5, ncols)

        self.ax_f = self.fig.add_subplot(gs[0:4, 0])
        self.ax_f.set_title("f / ω_i")
        self.ax_g = self.ax_graph = None
        self._g_norm = mcolors.Normalize(vmin=0.0, vmax=1.0)
        self._g_mesh = None

        palette = sns.color_palette("deep", max(len(self.mfl), 1))
        self._f_lines = []
        for k, run in enumerate(self.mfl):
            (line,) = self.ax_f.plot(self.xs[k], run.f[:, 0], color=palette[k], label=run.label)
            self._f_lines.append(line)
        if self._f_lines:
            self.ax_f.legend(loc="upper right", fontsize=9)

        if self.micro is not None:
            self.ax_f.axvline(self.omega_inf_d + self.omega_shift, color=CENTER_COLOR, linewidth=0.5)

        if not self.has_g_panel:
            return

        self.ax_g = self.fig.add_subplot(gs[0:4, 1])
        self.ax_g.set_aspect("equal")
        self.ax_g.set_title("g(ω,m)")
        self.ax_g.set_xlim(-1, 1)
        self.ax_g.set_ylim(-1, 1)
        if self.omega_shift != 0.0:
            self.ax_g.set_xlabel(" !!! The ω_i have been centered to ω_∞ (from MF initial data)")

        if self.has_mfl and not self.constant_g:
            x = self.xs[0]
            # g[i, j] is the density at (x[i], x[j]); pcolormesh wants rows along y.
            self._g_mesh = self.ax_g.pcolormesh(
                x, x, first_g.T, shading="nearest", cmap=G_CMAP, norm=self._g_norm,
            )
            self._set_g_range(float(np.max(first_g)))

        self.ax_graph = self.fig.add_subplot(gs[0:4, 2])
        self.ax_graph.axis("off")
        if self.has_graph:
            self._build_graph()

        cbar_ax = self.fig.add_subplot(gs[4, 1])
        sm = cm.ScalarMappable(norm=self._g_norm, cmap=G_CMAP)
        sm.set_array([])
        self.fig.colorbar(sm, cax=cbar_ax, orientation="horizontal")

    def _build_graph(self) -> None:
        G = nx.from_scipy_sparse_array(self.adj)
        G.remove_edges_from(list(nx.selfloop_edges(G)))
        n = G.number_of_nodes()

        # Spring layout for small graphs, spectral for large ones
        if n <= 200:
            pos = nx.spring_layout(G, seed=42, k=2.0 / max(np.sqrt(n), 1))
        else:
            try:
                pos = nx.spectral_layout(G)
            except nx.NetworkXException:
                pos = nx.spring_layout(G, seed=42)

        nx.draw_networkx_edges(
            G, pos, ax=self.ax_graph, alpha=EDGE_ALPHA, edge_color=EDGE_COLOR, width=0.6,
        )
        nodelist = list(range(n))
        self._nodes = nx.draw_networkx_nodes(
            G, pos, ax=self.ax_graph, nodelist=nodelist,
            node_color=opinion_colors(self._omega(0)), node_size=30,
            edgecolors="0.5", linewidths=0.3,
        )
        self.ax_graph.set_title(f"graph {self.micro.params.graph_source()}")

    # -- per-frame helpers ----------------------------------------------------

    def _omega(self, k: int) -> np.ndarray:
        kk = min(k, self.micro.omega.shape[1] - 1)
        return self.micro.omega[:, kk] + self.omega_shift

    def _set_g_range(self, max_g: float) -> None:
        if max_g > 0:
            self._g_norm.vmin, self._g_norm.vmax = 0.0, 1.05 * max_g

    def _draw_histogram(self, omega_t: np.ndarray) -> None:
        if self._hist is not None:
            self._hist.remove()
        # Pinning ±1 into the sample fixes the bin range across frames.
        _, _, self._hist = self.ax_f.hist(
            np.concatenate(([-1.0, 1.0], omega_t)),
            bins=2 * self.n_mfl, density=True, color=HIST_COLOR, alpha=0.6,
        )

    def _draw_hexbin(self, omega_t: np.ndarray, iteration: int) -> None:
        if self._hexbin is not None:
            self._hexbin.remove()
            self._hexbin = None

        xs, ys = edge_opinion_pairs(self.adj, omega_t, half=self.half)
        if xs.size == 0:
            return

        cell_size = hexbin_cell_size(self.n_mfl, int(iteration))
        weight = hexbin_particle_weight(cell_size, self.adj.nnz)
        self._hexbin = self.ax_g.hexbin(
            xs, ys,
            C=np.full(xs.size, weight), reduce_C_function=np.sum,
            gridsize=max(1, int(round(2.0 / cell_size))),
            extent=(-1.0, 1.0, -1.0, 1.0), mincnt=1,
            cmap=G_CMAP, norm=self._g_norm,
            edgecolors=HEX_EDGE_COLOR, linewidths=0.5,
        )
        if self.constant_g:
            values = self._hexbin.get_array()
            if values is not None and values.size:
                self._g_norm.vmin, self._g_norm.vmax = 0.0, 1.05 * float(np.max(values))

    @property
    def n_skipped(self) -> int:
        """Number of distinct frames skipped for a NaN meanfield density."""
        return len(self._skipped)

    def frames(self) -> list[tuple[int, int]]:
        return [(k, int(it)) for k, it in enumerate(self.iterations)]

    def update(self, frame: tuple[int, int]) -> None:
        """Refresh every artist for frame ``(k, iteration)``."""
        k, iteration = frame
        pct = int(round(100 * (k + 1) / len(self.iterations)))
        print(f"\r  [plotting] Creating movie: {pct:3d}%", end="", flush=True)

        if self.has_mfl and any(np.isnan(run.f[:, k]).any() for run in self.mfl):
            self._skipped.add(k)
            return

        f_cols = [run.f[:, k] for run in self.mfl]
        for line, col in zip(self._f_lines, f_cols):
            line.set_ydata(col)

        if self.has_mfl:
            mass = first_mass(f_cols[0], self.n_mfl)
            self.ax_f.set_title(f"{iteration}, M[1] = {mass:.6f}")
        else:
            self.ax_f.set_title(str(iteration))

        omega_t = None
        if self.micro is not None:
            omega_t = self._omega(k)
            self._draw_histogram(omega_t)
            if self.has_graph:
                self._nodes.set_facecolor(opinion_colors(omega_t))

        if self.has_g_panel:
            g = None
            if self._g_mesh is not None:
                g = self.mfl[0].g_at(iteration)
                if g is not None:
                    self._g_mesh.set_array(g.T)
                    self._set_g_range(float(np.max(g)))
            if self.has_graph:
                self._draw_hexbin(omega_t, iteration)
            self.ax_g.set_title(f"g(ω,m), ∫∫g = {integrate_g(g, self.n_mfl):.3f}")

        if self.has_mfl:
            left, right = support_window(f_cols, self.xs, omega_t, tol=SUPPORT_TOL)
            if right - left < 1e-9:
                left, right = left - 1e-3, right + 1e-3
            self.ax_f.set_ylim(0.0, 1.3 * max_density(f_cols))
            self.ax_f.set_xlim(left, right)
            if self.ax_g is not None:
                self.ax_g.set_xlim(left, right)
                self.ax_g.set_ylim(left, right)
        else:
            self.ax_f.relim()
            self.ax_f.autoscale_view()

    def record(self, output_path: Path, fps: int = MOVIE_FPS, dpi: int = MOVIE_DPI) -> Path:
        """Render every frame to ``output_path`` (``.mp4`` via ffmpeg, ``.gif`` via Pillow)."""
        output_path = Path(output_path)
        try:
            writer = movie_writer(output_path, fps)
        except ValueError:
            plt.close(self.fig)
            raise

        # A no-op init_func keeps save() from drawing frame 0 twice.
        anim = FuncAnimation(
            self.fig, self.update, frames=self.frames(),
            init_func=lambda: None, blit=False, repeat=False,
        )
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            anim.save(str(output_path), writer=writer, dpi=dpi)
        finally:
            plt.close(self.fig)
            print()

        if self.n_skipped:
            warnings.warn(
                f"{self.n_skipped} frame(s) skipped because a meanfield density contains NaN.",
                UserWarning,
                stacklevel=2,
            )
        return output_path


def plot_results(
    output_filename: str | Path = "",
    meanfield_dirs: Iterable[str | Path] = (),
    micro_dirs: Iterable[str | Path] = (),
    half_connection_matrix: bool = False,
    center_histogram: bool = False,
    fps: int = MOVIE_FPS,
    dpi: int = MOVIE_DPI,
) -> Path:
    """Render the result movie for meanfield and/or micro directories.

    Parameters
    ----------
    output_filename : str or Path, optional
        Destination; defaults to ``movie.mp4`` next to the first directory.
    meanfield_dirs, micro_dirs : iterable of paths
        Result directories.  At most one micro directory is supported.
    half_connection_matrix : bool
        Plot only edge pairs with ``ω_neighbour >= ω_node``.
    center_histogram : bool
        Shift the micro opinions so their weighted mean matches the
        meanfield ``omega_inf_mfl``.  Requires exactly one meanfield run.

    Returns
    -------
    Path
        Where the movie was written.

    Raises
    ------
    FileNotFoundError
        If a directory does not exist.
    ValueError
        On an invalid combination of directories and options.
    """
    mfl_dirs = _as_dir_list(meanfield_dirs)
    d_dirs = _as_dir_list(micro_dirs)

    _check_dirs_exist(mfl_dirs)
    _check_dirs_exist(d_dirs)

    if not mfl_dirs and not d_dirs:
        raise ValueError("No result directory provided.")
    if len(d_dirs) > 1:
        raise ValueError(f"Only a single micro result is supported, got {len(d_dirs)}.")
    if center_histogram and len(mfl_dirs) != 1:
        raise ValueError(
            f"Can center the histogram with exactly one meanfield solution, "
            f"you provided {len(mfl_dirs)}."
        )

    mfl_runs = [load_meanfield_run(d) for d in mfl_dirs]
    micro_run = load_micro_run(d_dirs[0]) if d_dirs else None

    omega_shift = 0.0
    if center_histogram:
        warnings.warn(
            "Histogram for the micro solution will be centered on ω_∞ given by "
            "the initial meanfield data!",
            UserWarning,
            stacklevel=2,
        )
    if center_histogram and micro_run is not None:
        omega_shift = get_omega_inf_mfl(mfl_dirs[0]) - initial_center(micro_run)

    output_path = (
        Path(output_filename) if str(output_filename)
        else default_output_path(mfl_dirs + d_dirs, "movie.mp4")
    )
    movie_writer(output_path, fps)

    movie = ResultMovie(
        mfl_runs, micro_run,
        half_connection_matrix=half_connection_matrix,
        omega_shift=omega_shift,
    )
    movie.record(output_path, fps=fps, dpi=dpi)
    print(f"  [plotting] Movie saved → {output_path}")
    return output_path


def plot_result(
    output_filename: str | Path = "",
    meanfield_dir: str | Path | None = None,
    micro_dir: str | Path | None = None,
    **kwargs,
) -> Path:
    """Single-directory form of :func:`plot_results`."""
    return plot_results(
        output_filename=output_filename,
        meanfield_dirs=_as_dir_list(meanfield_dir),
        micro_dirs=_as_dir_list(micro_dir),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Variance comparison
# ---------------------------------------------------------------------------


def _micro_series(run: MicroRun, run_index: int = 0) -> pd.DataFrame:
    centers = weighted_average(run.omega, run.adj_matrix)
    var = variance(run.omega, centers)
    p2p = peak2peak(run.omega, axis=0)
    cutoff = RATE_CUTOFF_FRACTION * run.delta_t * float(run.iterations[-1])
    rate = compute_p2p_rate(run.iterations, p2p, run.delta_t, cutoff_time=cutoff)

    return pd.DataFrame({
        "run_index": run_index,
        "run": run.label,
        "model": "micro",
        "time": run.times,
        "center": centers,
        "variance": var,
        "p2p": p2p,
        "rate": rate,
    })


def _meanfield_series(run: MeanfieldRun, run_index: int = 0) -> pd.DataFrame:
    missing = [name for name, v in (("g_M1_n", run.g_m1), ("f_var", run.f_var)) if v is None]
    if missing:
        raise ValueError(f"{run.path}: meanfield run lacks dataset(s) {missing} needed for comparison")
    return pd.DataFrame({
        "run_index": run_index,
        "run": run.label,
        "model": "meanfield",
        "time": run.times,
        "center": run.g_m1,
        "variance": run.f_var,
        "p2p": np.nan,
        "rate": np.nan,
    })


def comparison_series(
    meanfield_runs: Sequence[MeanfieldRun],
    micro_runs: Sequence[MicroRun],
) -> pd.DataFrame:
    """Tidy table of centre and variance over time for every run.

    Columns: ``run_index``, ``run``, ``model``, ``time``, ``center``,
    ``variance``, ``p2p`` and ``rate`` (the last two only for micro runs).
    ``run_index`` numbers the runs in order (micro first) and tells apart
    runs whose directories share a basename.
    """
    frames = [_micro_series(run, k) for k, run in enumerate(micro_runs)]
    frames += [
        _meanfield_series(run, len(micro_runs) + k) for k, run in enumerate(meanfield_runs)
    ]
    if not frames:
        raise ValueError("comparison_series needs at least one run.")
    return pd.concat(frames, ignore_index=True)


def compare_variance(
    meanfield_dirs: str | Path | Iterable[str | Path] = (),
    micro_dirs: str | Path | Iterable[str | Path] = (),
    output_filename: str | Path = "",
    show: bool = False,
    dpi: int = 120,
) -> pd.DataFrame:
    """Plot variances and centres of meanfield and micro runs side by side.

    Writes the figure (default ``comparison.png`` next to the first
    directory) and the plotted series as a CSV with the same stem.

    Returns
    -------
    pd.DataFrame
        The table from :func:`comparison_series`.

    Raises
    ------
    FileNotFoundError
        If a directory does not exist.
    ValueError
        If no directory is given or a run lacks the required datasets.
    """
    mfl_dirs = _as_dir_list(meanfield_dirs)
    d_dirs = _as_dir_list(micro_dirs)

    _check_dirs_exist(mfl_dirs)
    _check_dirs_exist(d_dirs)
    if not mfl_dirs and not d_dirs:
        raise ValueError("No result directory provided.")

    mfl_runs = [load_meanfield_run(d) for d in mfl_dirs]
    micro_runs = [load_micro_run(d) for d in d_dirs]
    df = comparison_series(mfl_runs, micro_runs)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=COMPARE_FIGSIZE)
    ax1.set_yscale("log")
    ax1.set_xlabel("time")
    ax1.set_title("Variances")
    ax2.set_xlabel("time")
    ax2.set_title(
        "∫∫ωg / ∫∫g ± √variance     Σ ω_i #I_i / Σ #I_i ± √variance"
    )

    palette = sns.color_palette("deep", len(mfl_runs) + len(micro_runs))
    for run_index, part in df.groupby("run_index", sort=True):
        color = palette[int(run_index)]
        label = part["run"].iloc[0]
        model = part["model"].iloc[0]
        t = part["time"].to_numpy()
        center = part["center"].to_numpy()
        spread = np.sqrt(part["variance"].to_numpy())

        legend = label
        if model == "micro":
            legend = f"{label} rate: {part['rate'].iloc[0]:.3f}"
        ax1.plot(t, part["variance"].to_numpy(), color=color, label=legend)
        ax2.plot(t, center, color=color, label=label)
        ax2.fill_between(t, center - spread, center + spread, color=color, alpha=0.2)

    ax1.legend(fontsize=9)
    ax2.legend(fontsize=9)

    output_path = (
        Path(output_filename) if str(output_filename)
        else default_output_path(mfl_dirs + d_dirs, "comparison.png")
    )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
    csv_path = output_path.with_suffix(".csv")
    df.to_csv(csv_path, index=False)
    print(f"  [plotting] Plot saved → {output_path}")
    print(f"  [plotting] Series saved → {csv_path}")

    if show:
        if matplotlib.get_backend().lower() == "agg":
            print("  [plotting] Cannot display plot window on a non-interactive backend.", file=sys.stderr)
        else:
            plt.show()
    plt.close(fig)
    return df
