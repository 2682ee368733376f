from __future__ import annotations

from pathlib import Path

from opiform_viz.runner import main
from opiform_viz.tests.run_factory import write_meanfield_run, write_micro_run


def test_compare_writes_output(tmp_path):
    mf = write_meanfield_run(tmp_path, n=10, n_times=4)
    d = write_micro_run(tmp_path, n=8, n_times=4)
    out = tmp_path / "out" / "cmp.png"

    rc = main(["compare", "--meanfield", str(mf), "--micro", str(d), "--output", str(out)])
    assert rc == 0
    assert out.exists()
    assert out.with_suffix(".csv").exists()


def test_movie_gif(tmp_path):
    mf = write_meanfield_run(tmp_path, n=10, n_times=2)
    out = tmp_path / "movie.gif"

    rc = main(["movie", "--meanfield", str(mf), "--output", str(out), "--fps", "2", "--dpi", "10"])
    assert rc == 0
    assert out.exists()


def test_no_directories_is_an_error(capsys):
    assert main(["movie"]) == 1
    assert "No result directory" in capsys.readouterr().err


def test_missing_directory_is_an_error(tmp_path, capsys):
    rc = main(["compare", "--micro", str(tmp_path / "missing")])
    assert rc == 1
    assert "not found" in capsys.readouterr().err


def test_default_output_next_to_results(tmp_path):
    d = write_micro_run(tmp_path / "results", n=8, n_times=4)
    assert main(["compare", "--micro", str(d)]) == 0
    assert Path(tmp_path / "results" / "comparison.png").exists()
