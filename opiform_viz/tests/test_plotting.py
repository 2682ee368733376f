"""
Tests for the plotting drivers.

Movies are rendered as small GIFs through Pillow so no ffmpeg binary is
needed.  Figures are kept tiny (low dpi, few frames) to stay fast.
"""

from __future__ import annotations

import sys
import tempfile
import unittest
import warnings
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from opiform_viz.loaders import load_meanfield_run, load_micro_run
from opiform_viz.observables import opinion_colors
from opiform_viz.plotting import (
    ResultMovie,
    compare_variance,
    comparison_series,
    default_output_path,
    initial_center,
    plot_result,
    plot_results,
)
from opiform_viz.tests.run_factory import write_meanfield_run, write_micro_run


class _TmpDirCase(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.root = self.tmp / "results"
        self.root.mkdir()

    def tearDown(self):
        plt.close("all")


# ---------------------------------------------------------------------------
# Variance comparison
# ---------------------------------------------------------------------------


class TestCompareVariance(_TmpDirCase):

    def test_writes_figure_and_table(self):
        mf = write_meanfield_run(self.root, n=10, n_times=5)
        d = write_micro_run(self.root, n=8, n_times=5, rate=0.5)
        df = compare_variance([mf], [d])

        self.assertTrue((self.root / "comparison.png").exists())
        self.assertTrue((self.root / "comparison.csv").exists())
        self.assertEqual(set(df["model"]), {"meanfield", "micro"})
        self.assertEqual(len(df), 10)

    def test_micro_rate_recovered(self):
        d = write_micro_run(self.root, n=8, n_times=5, rate=0.5)
        df = comparison_series([], [load_micro_run(d)])
        self.assertAlmostEqual(float(df["rate"].iloc[0]), 0.5, places=6)

    def test_micro_centre_and_variance(self):
        d = write_micro_run(self.root, n=8, n_times=3)
        run = load_micro_run(d)
        df = comparison_series([], [run])
        # Symmetric opinions on a regular ring: the weighted centre is zero.
        np.testing.assert_allclose(df["center"], 0.0, atol=1e-12)
        expected = np.sum(run.omega ** 2, axis=0) / (run.n_agents - 1)
        np.testing.assert_allclose(df["variance"], expected)

    def test_runs_with_same_basename_stay_separate(self):
        a = write_micro_run(self.root / "expA", n=8, n_times=5, rate=0.5)
        b = write_micro_run(self.root / "expB", n=8, n_times=5, rate=0.25)
        df = compare_variance([], [a, b], output_filename=self.tmp / "same.png")

        self.assertEqual(df.groupby("run_index").ngroups, 2)
        self.assertEqual(set(df["run"]), {"micro"})
        for _, part in df.groupby("run_index"):
            self.assertTrue(np.all(np.diff(part["time"].to_numpy()) > 0))
        rates = df.groupby("run_index")["rate"].first().to_numpy()
        np.testing.assert_allclose(rates, [0.5, 0.25], atol=1e-6)

    def test_single_directory_arguments(self):
        mf = write_meanfield_run(self.root, n=10, n_times=3)
        out = self.tmp / "figs" / "cmp.png"
        compare_variance(mf, None, output_filename=out)
        self.assertTrue(out.exists())
        self.assertTrue(out.with_suffix(".csv").exists())

    def test_meanfield_without_moments_raises(self):
        mf = write_meanfield_run(self.root, with_moments=False)
        with self.assertRaises(ValueError):
            compare_variance([mf], [])

    def test_missing_directory_raises(self):
        with self.assertRaises(FileNotFoundError):
            compare_variance([self.root / "nope"], [])

    def test_no_directory_raises(self):
        with self.assertRaises(ValueError):
            compare_variance([], [])


class TestDefaultOutputPath(unittest.TestCase):

    def test_parent_of_first_dir(self):
        self.assertEqual(
            default_output_path([Path("results/run_a/"), Path("other/run_b")], "movie.mp4"),
            Path("results/movie.mp4"),
        )


# ---------------------------------------------------------------------------
# Movie
# ---------------------------------------------------------------------------


class TestPlotResultsValidation(_TmpDirCase):

    def test_no_directory_raises(self):
        with self.assertRaises(ValueError):
            plot_results()

    def test_missing_directory_raises(self):
        with self.assertRaises(FileNotFoundError):
            plot_results(meanfield_dirs=[self.root / "nope"])

    def test_two_micro_runs_rejected(self):
        a = write_micro_run(self.root, name="a")
        b = write_micro_run(self.root, name="b")
        with self.assertRaises(ValueError):
            plot_results(micro_dirs=[a, b])

    def test_centering_needs_one_meanfield_run(self):
        d = write_micro_run(self.root)
        with self.assertRaises(ValueError):
            plot_results(micro_dirs=[d], center_histogram=True)

    def test_unsupported_format_rejected(self):
        mf = write_meanfield_run(self.root)
        with self.assertRaises(ValueError):
            plot_results(output_filename=self.tmp / "movie.avi", meanfield_dirs=[mf])


class TestResultMovie(_TmpDirCase):

    def test_frame_update_sets_titles_and_limits(self):
        mf = load_meanfield_run(write_meanfield_run(self.root, n=10, n_times=3))
        d = load_micro_run(write_micro_run(self.root, n=8, n_times=3))
        movie = ResultMovie([mf], d)

        movie.update((1, 10))
        self.assertTrue(movie.ax_f.get_title().startswith("10, M[1] = "))
        self.assertTrue(movie.ax_g.get_title().startswith("g(ω,m), ∫∫g = "))
        left, right = movie.ax_f.get_xlim()
        self.assertLessEqual(left, float(d.omega[:, 1].min()))
        self.assertGreaterEqual(right, float(d.omega[:, 1].max()))
        self.assertEqual(movie.n_skipped, 0)

    def test_nan_frame_skipped(self):
        mf = load_meanfield_run(write_meanfield_run(self.root, n=10, n_times=3, nan_column=2))
        movie = ResultMovie([mf])
        movie.update((2, 20))
        self.assertEqual(movie.n_skipped, 1)

    def test_micro_only_single_panel(self):
        d = load_micro_run(write_micro_run(self.root, n=8, adjacency=None))
        movie = ResultMovie([], d)
        self.assertIsNone(movie.ax_g)
        movie.update((0, 0))
        self.assertEqual(movie.ax_f.get_title(), "0")

    def test_micro_only_with_graph_draws_hexbin(self):
        d = load_micro_run(write_micro_run(self.root, n=8, n_times=3))
        movie = ResultMovie([], d)
        self.assertIsNotNone(movie.ax_g)

        movie.update((1, 10))
        self.assertIsNotNone(movie._hexbin)
        values = movie._hexbin.get_array()
        self.assertGreater(movie._g_norm.vmax, 0.0)
        self.assertAlmostEqual(movie._g_norm.vmax, 1.05 * float(np.max(values)))

    def test_short_micro_run_uses_last_column(self):
        mf = load_meanfield_run(write_meanfield_run(self.root, n=10, n_times=4))
        d = load_micro_run(write_micro_run(self.root, n=8, n_times=2))
        movie = ResultMovie([mf], d)

        movie.update((3, 30))
        np.testing.assert_allclose(movie._omega(3), d.omega[:, -1])
        np.testing.assert_allclose(
            movie._nodes.get_facecolor()[:, :3], opinion_colors(d.omega[:, -1]),
        )

    def test_initial_center_weighted(self):
        d = load_micro_run(write_micro_run(self.root, n=8))
        self.assertAlmostEqual(initial_center(d), 0.0)

    def test_needs_a_run(self):
        with self.assertRaises(ValueError):
            ResultMovie([])


class TestMovieRendering(_TmpDirCase):

    def test_gif_written(self):
        mf = write_meanfield_run(self.root, n=10, n_times=3)
        d = write_micro_run(self.root, n=8, n_times=3)
        out = self.tmp / "movie.gif"
        path = plot_results(output_filename=out, meanfield_dirs=[mf], micro_dirs=[d], fps=2, dpi=10)
        self.assertEqual(path, out)
        self.assertTrue(out.exists())
        self.assertGreater(out.stat().st_size, 0)

    def test_half_connection_without_g(self):
        mf = write_meanfield_run(self.root, n=10, n_times=2, with_g=False)
        d = write_micro_run(self.root, n=8, n_times=2)
        out = self.tmp / "half.gif"
        plot_result(output_filename=out, meanfield_dir=mf, micro_dir=d,
                    half_connection_matrix=True, fps=2, dpi=10)
        self.assertTrue(out.exists())

    def test_nan_first_frame_counted_once(self):
        mf = write_meanfield_run(self.root, n=10, n_times=3, nan_column=0)
        out = self.tmp / "nan.gif"
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            plot_results(output_filename=out, meanfield_dirs=[mf], fps=2, dpi=10)
        messages = [str(w.message) for w in caught if "skipped" in str(w.message)]
        self.assertEqual(len(messages), 1)
        self.assertTrue(messages[0].startswith("1 frame(s) skipped"))

    def test_centering_without_micro_run_warns(self):
        mf = write_meanfield_run(self.root, n=10, n_times=2)
        out = self.tmp / "mf_only.gif"
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            plot_results(output_filename=out, meanfield_dirs=[mf],
                         center_histogram=True, fps=2, dpi=10)
        self.assertTrue(any("centered" in str(w.message) for w in caught))
        self.assertTrue(out.exists())

    def test_centered_histogram_warns(self):
        mf = write_meanfield_run(self.root, n=10, n_times=2, omega_inf_mfl=0.2)
        d = write_micro_run(self.root, n=8, n_times=2)
        out = self.tmp / "centered.gif"
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            plot_results(output_filename=out, meanfield_dirs=[mf], micro_dirs=[d],
                         center_histogram=True, fps=2, dpi=10)
        self.assertTrue(any("centered" in str(w.message) for w in caught))
        self.assertTrue(out.exists())


if __name__ == "__main__":
    unittest.main()
