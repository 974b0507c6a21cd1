from pathlib import Path

import polars as pl
import pytest
import toml
from click.testing import CliRunner
from loguru import logger

from gattools.cli import main


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger.remove()


@pytest.mark.parametrize("command", [[], ["neighbors"], ["pair"], ["two-types"], ["run"]])
def test_help(command: list[str]) -> None:
    runner = CliRunner()
    result = runner.invoke(main, [*command, "--help"])
    assert result.exit_code == 0, result.output
    assert "Usage" in result.output


def test_neighbors_writes_table(gut_field, tmp_path: Path) -> None:
    out = tmp_path / "tables" / "hu_neighbours.csv"
    runner = CliRunner()
    result = runner.invoke(
        main, ["neighbors", str(gut_field.hu_path), "--expansion-um", "2", "--output", str(out), "--parametric"]
    )

    assert result.exit_code == 0, result.output
    df = pl.read_csv(out)
    assert df["label_id"].to_list() == [1, 2, 3, 4, 5]
    assert df["n_neighbours"].to_list() == [1, 2, 1, 1, 1]
    assert out.with_suffix(".tif").exists()


def test_neighbors_requires_calibration(tmp_path: Path, gut_field) -> None:
    from gattools.io import write_tiff

    path = write_tiff(tmp_path / "uncalibrated.tif", gut_field.hu, None)
    runner = CliRunner()
    result = runner.invoke(main, ["neighbors", str(path)])

    assert result.exit_code != 0
    assert "calibrated" in result.output


def test_pair_writes_both_directions(gut_field, tmp_path: Path) -> None:
    out_dir = tmp_path / "pair"
    runner = CliRunner()
    result = runner.invoke(
        main,
        [
            "pair",
            str(gut_field.hu_path),
            str(gut_field.chat_path),
            "--ref-name", "Hu",
            "--marker-name", "ChAT",
            "-e", "2",
            "-o", str(out_dir),
        ],
    )

    assert result.exit_code == 0, result.output
    around_marker = pl.read_csv(out_dir / "Hu_around_ChAT.csv")
    around_ref = pl.read_csv(out_dir / "ChAT_around_Hu.csv")
    # Raw ChAT labels: 1 over Hu 2, 2 over Hu 3, 3 a single pixel of Hu 5
    assert around_marker["n_Hu_around_ChAT"].to_list() == [2, 1, 1]
    assert around_ref["n_ChAT_around_Hu"].to_list() == [1, 1, 1, 1, 0]
    assert (out_dir / "logs" / "pair.log").exists()


def test_two_types_writes_both_directions(gut_field, tmp_path: Path) -> None:
    out_dir = tmp_path / "two"
    runner = CliRunner()
    result = runner.invoke(
        main,
        [
            "two-types",
            str(gut_field.hu_path),
            str(gut_field.chat_path),
            "--first-name", "Hu",
            "--second-name", "ChAT",
            "-e", "2",
            "-o", str(out_dir),
        ],
    )

    assert result.exit_code == 0, result.output
    df = pl.read_csv(out_dir / "neighbours_Hu_ChAT.csv")
    assert df.columns == ["population", "label_id", "neighbour_population", "n_neighbours"]

    hu = df.filter(pl.col("population") == "Hu")
    assert hu["label_id"].to_list() == [1, 2, 3, 4, 5]
    assert hu["neighbour_population"].unique().to_list() == ["ChAT"]
    # Hu 5 reaches the lone ChAT pixel; every other overlap is the cell itself
    assert hu["n_neighbours"].to_list() == [0, 0, 0, 0, 1]

    chat = df.filter(pl.col("population") == "ChAT")
    assert chat["label_id"].to_list() == [1, 2, 3]
    assert chat["n_neighbours"].to_list() == [0, 0, 0]
    assert (out_dir / "logs" / "two-types.log").exists()


def test_two_types_rejects_identical_names(gut_field, tmp_path: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(
        main,
        ["two-types", str(gut_field.hu_path), str(gut_field.chat_path), "-o", str(tmp_path), "--second-name", "first"],
    )
    assert result.exit_code != 0


def test_run_from_config(gut_field, tmp_path: Path) -> None:
    config_path = gut_field.root / "spatial.toml"
    with open(config_path, "w") as f:
        toml.dump(
            {
                "output_dir": "results",
                "expansion_um": 2.0,
                "reference": {"name": "Hu", "labels": "hu.tif"},
                "markers": [{"name": "nNOS", "labels": "nnos.tif"}, {"name": "ChAT", "labels": "chat.tif"}],
            },
            f,
        )

    runner = CliRunner()
    result = runner.invoke(main, ["run", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    tables = gut_field.root / "results" / "tables"
    counts = pl.read_csv(tables / "counts.csv")
    assert counts["n_cells"].to_list() == [5, 3, 2, 1]
    assert (gut_field.root / "results" / "logs" / "run.log").exists()


def test_run_dry_run_writes_nothing(gut_field, tmp_path: Path) -> None:
    config_path = gut_field.root / "spatial.toml"
    config_path.write_text(
        'output_dir = "results"\n[reference]\nname = "Hu"\nlabels = "hu.tif"\n'
    )

    runner = CliRunner()
    result = runner.invoke(main, ["run", "-c", str(config_path), "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Dry run completed" in result.output
    assert not (gut_field.root / "results").exists()


def test_run_rejects_invalid_config(gut_field) -> None:
    config_path = gut_field.root / "spatial.toml"
    config_path.write_text('output_dir = "results"\noverlap_fraction = 2.0\n[reference]\nname = "Hu"\nlabels = "hu.tif"\n')

    runner = CliRunner()
    result = runner.invoke(main, ["run", "-c", str(config_path)])

    assert result.exit_code != 0
    assert "overlap_fraction" in result.output
