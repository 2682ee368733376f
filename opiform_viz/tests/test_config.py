"""Unit tests for the run metadata loader."""

from __future__ import annotations
import sys, tempfile, unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from opiform_viz.config import RunParams, get_omega_inf_mfl, load_metadata


def _write_meta(text: str) -> Path:
    d = Path(tempfile.mkdtemp())
    (d / "metadata.toml").write_text(text, encoding="utf-8")
    return d


class TestLoadMetadata(unittest.TestCase):

    def test_valid_metadata_loads(self):
        meta = load_metadata(_write_meta("delta_t = 0.01\nN_micro = 500\n"))
        self.assertEqual(meta["delta_t"], 0.01)
        self.assertEqual(meta["N_micro"], 500)

    def test_file_not_found_raises(self):
        with self.assertRaises(FileNotFoundError):
            load_metadata(Path(tempfile.mkdtemp()))

    def test_missing_delta_t_raises(self):
        with self.assertRaises(ValueError):
            load_metadata(_write_meta("N_micro = 10\n"))

    def test_non_positive_delta_t_raises(self):
        with self.assertRaises(ValueError):
            load_metadata(_write_meta("delta_t = 0\n"))

    def test_non_numeric_delta_t_raises(self):
        with self.assertRaises(ValueError):
            load_metadata(_write_meta('delta_t = "fast"\n'))

    def test_malformed_toml_raises_value_error(self):
        with self.assertRaises(ValueError):
            load_metadata(_write_meta("delta_t = = 1\n"))

    def test_unknown_adjacency_method_raises(self):
        with self.assertRaises(ValueError):
            load_metadata(_write_meta('delta_t = 1.0\ninit_method_adj_matrix = "magic"\n'))


class TestOmegaInf(unittest.TestCase):

    def test_reads_value(self):
        d = _write_meta("delta_t = 0.1\nomega_inf_mfl = -0.25\n")
        self.assertAlmostEqual(get_omega_inf_mfl(d), -0.25)

    def test_missing_value_raises(self):
        with self.assertRaises(ValueError):
            get_omega_inf_mfl(_write_meta("delta_t = 0.1\n"))


class TestRunParams(unittest.TestCase):

    def test_from_toml(self):
        d = _write_meta(
            "delta_t = 0.5\n"
            'init_method_adj_matrix = ":from_sampling_α_init"\n'
            "connection_density = 0.3\n"
        )
        params = RunParams.from_toml(d)
        self.assertEqual(params.delta_t, 0.5)
        self.assertEqual(params.init_method_adj_matrix, "from_sampling_alpha_init")
        self.assertEqual(params.graph_source(), "(from α_init, connection_density=0.3)")

    def test_graph_source_from_file(self):
        params = RunParams(delta_t=1.0, init_method_adj_matrix="from_file")
        self.assertEqual(params.graph_source(), "(from file)")

    def test_graph_source_from_graph(self):
        params = RunParams(
            delta_t=1.0,
            init_method_adj_matrix="from_graph",
            init_micro_graph_type="barabasi_albert",
            init_micro_graph_args=[100, 3],
            init_micro_graph_kwargs={"seed": 1},
        )
        self.assertEqual(params.graph_source(), "(barabasi_albert(100, 3; seed=1))")

    def test_graph_source_unknown(self):
        self.assertEqual(RunParams(delta_t=1.0).graph_source(), "")

    def test_scalar_graph_args_wrapped(self):
        params = RunParams.from_metadata({"delta_t": 1.0, "init_micro_graph_args": 50})
        self.assertEqual(params.init_micro_graph_args, [50])


if __name__ == "__main__":
    unittest.main()
