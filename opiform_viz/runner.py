"""
Command-line entry point for the result plots.

Usage
-----
    python -m opiform_viz.runner movie --meanfield runs/mf --micro runs/micro \\
        [--output movie.mp4] [--half-connection-matrix] [--center-histogram]

    python -m opiform_viz.runner compare --meanfield runs/mf_a runs/mf_b \\
        --micro runs/micro [--output comparison.png] [--show]

Outputs default to the parent of the first result directory.
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

from .plotting import MOVIE_DPI, MOVIE_FPS, compare_variance, plot_results


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _add_dir_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--meanfield", "-m",
        dest="meanfield_dirs",
        nargs="+",
        type=Path,
        default=[],
        metavar="DIR",
        help="Meanfield result directories.",
    )
    p.add_argument(
        "--micro", "-d",
        dest="micro_dirs",
        nargs="+",
        type=Path,
        default=[],
        metavar="DIR",
        help="Micro (agent-based) result directories.",
    )
    p.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        metavar="PATH",
        help="Output file (default: next to the first result directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Plots and movies for meanfield / micro opinion-formation results.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_movie = sub.add_parser("movie", help="Render the result movie (.mp4 or .gif).")
    _add_dir_args(p_movie)
    p_movie.add_argument(
        "--half-connection-matrix",
        dest="half_connection_matrix",
        action="store_true",
        help="Only plot edge pairs with ω_neighbour >= ω_node.",
    )
    p_movie.add_argument(
        "--center-histogram",
        dest="center_histogram",
        action="store_true",
        help="Center the micro histogram on ω_∞ of the (single) meanfield run.",
    )
    p_movie.add_argument("--fps", type=int, default=MOVIE_FPS, help=f"Frames per second (default: {MOVIE_FPS}).")
    p_movie.add_argument("--dpi", type=int, default=MOVIE_DPI, help=f"Frame resolution (default: {MOVIE_DPI}).")

    p_cmp = sub.add_parser("compare", help="Compare variances and centres over time.")
    _add_dir_args(p_cmp)
    p_cmp.add_argument("--dpi", type=int, default=120, help="Output image resolution (default: 120).")
    p_cmp.add_argument("--show", action="store_true", help="Also open a plot window.")

    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    output = args.output if args.output is not None else ""

    t0 = time.perf_counter()
    try:
        if args.command == "movie":
            plot_results(
                output_filename=output,
                meanfield_dirs=args.meanfield_dirs,
                micro_dirs=args.micro_dirs,
                half_connection_matrix=args.half_connection_matrix,
                center_histogram=args.center_histogram,
                fps=args.fps,
                dpi=args.dpi,
            )
        else:
            compare_variance(
                meanfield_dirs=args.meanfield_dirs,
                micro_dirs=args.micro_dirs,
                output_filename=output,
                show=args.show,
                dpi=args.dpi,
            )
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(f"  [runner] {args.command} done in {time.perf_counter() - t0:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
