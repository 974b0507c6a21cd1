"""
Tests for gattools.spatial.config.

Validation of the spatial analysis configuration, TOML loading and
command-line overrides.
"""

from pathlib import Path
from typing import Any, Dict

import pytest
import toml
from pydantic import ValidationError

from gattools.spatial.config import PopulationSpec, SpatialAnalysisConfig, load_spatial_config


@pytest.fixture
def label_files(tmp_path: Path) -> Dict[str, Path]:
    files = {}
    for name in ("hu", "nnos", "chat", "ganglia"):
        path = tmp_path / f"{name}.tif"
        path.write_bytes(b"")
        files[name] = path
    return files


class TestSpatialAnalysisConfig:
    def create_valid_config_data(self, files: Dict[str, Path], tmp_path: Path) -> Dict[str, Any]:
        return {
            "output_dir": tmp_path / "out",
            "reference": {"name": "Hu", "labels": files["hu"]},
            "markers": [
                {"name": "nNOS", "labels": files["nnos"]},
                {"name": "ChAT", "labels": files["chat"]},
            ],
        }

    def test_defaults(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        config = SpatialAnalysisConfig(**self.create_valid_config_data(label_files, tmp_path))

        assert config.expansion_um == 6.5
        assert config.overlap_fraction == 0.4
        assert config.region_dilation_um == 12.0
        assert config.min_cells_per_region == 1
        assert config.neighbor_connectivity == 1
        assert config.relabel_connectivity == 2
        assert config.pixel_size_um is None
        assert config.save_parametric is False
        assert config.has_regions is False
        assert config.tables_dir == tmp_path / "out" / "tables"
        assert [m.name for m in config.markers] == ["nNOS", "ChAT"]

    def test_overlap_fraction_bounds(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        data = self.create_valid_config_data(label_files, tmp_path)
        data["overlap_fraction"] = 1.5
        with pytest.raises(ValidationError, match="less than or equal to 1"):
            SpatialAnalysisConfig(**data)

    def test_pixel_size_must_be_positive(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        data = self.create_valid_config_data(label_files, tmp_path)
        data["pixel_size_um"] = 0
        with pytest.raises(ValidationError, match="greater than 0"):
            SpatialAnalysisConfig(**data)

    def test_duplicate_marker_names(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        data = self.create_valid_config_data(label_files, tmp_path)
        data["markers"][1]["name"] = "nNOS"
        with pytest.raises(ValidationError, match="Duplicate marker names"):
            SpatialAnalysisConfig(**data)

    def test_marker_may_not_reuse_reference_name(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        data = self.create_valid_config_data(label_files, tmp_path)
        data["markers"][0]["name"] = "Hu"
        with pytest.raises(ValidationError, match="collides with reference"):
            SpatialAnalysisConfig(**data)

    def test_regions_sources_are_exclusive(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        data = self.create_valid_config_data(label_files, tmp_path)
        data["regions"] = label_files["ganglia"]
        data["define_regions_from_reference"] = True
        with pytest.raises(ValidationError, match="not both"):
            SpatialAnalysisConfig(**data)

    def test_missing_label_image(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        data = self.create_valid_config_data(label_files, tmp_path)
        data["markers"][0]["labels"] = tmp_path / "missing.tif"
        with pytest.raises(ValidationError, match="does not exist"):
            SpatialAnalysisConfig(**data)

    def test_population_name_characters(self, label_files: Dict[str, Path]) -> None:
        assert PopulationSpec(name=" Hu ", labels=label_files["hu"]).name == "Hu"
        with pytest.raises(ValidationError, match="invalid characters"):
            PopulationSpec(name="Hu/../x", labels=label_files["hu"])
        with pytest.raises(ValidationError, match="cannot be empty"):
            PopulationSpec(name="  ", labels=label_files["hu"])


class TestLoadSpatialConfig:
    def write_config(self, tmp_path: Path, data: Dict[str, Any]) -> Path:
        path = tmp_path / "spatial.toml"
        with open(path, "w") as f:
            toml.dump(data, f)
        return path

    def test_relative_paths_resolve_against_config_dir(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        path = self.write_config(
            tmp_path,
            {
                "output_dir": "results",
                "regions": "ganglia.tif",
                "reference": {"name": "Hu", "labels": "hu.tif"},
                "markers": [{"name": "nNOS", "labels": "nnos.tif"}],
            },
        )

        config = load_spatial_config(path)
        assert config.output_dir == tmp_path / "results"
        assert config.regions == tmp_path / "ganglia.tif"
        assert config.reference.labels == label_files["hu"]
        assert config.markers[0].labels == label_files["nnos"]
        assert config.has_regions

    def test_overrides(self, label_files: Dict[str, Path], tmp_path: Path) -> None:
        path = self.write_config(
            tmp_path,
            {"output_dir": "results", "pixel_size_um": 0.5, "reference": {"name": "Hu", "labels": "hu.tif"}},
        )

        config = load_spatial_config(path, output_override=Path("elsewhere"), pixel_size_override=0.25)
        assert config.output_dir == Path("elsewhere")
        assert config.pixel_size_um == 0.25

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="does not exist"):
            load_spatial_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.toml"
        path.write_text("output_dir = [unterminated")
        with pytest.raises(ValueError, match="Invalid TOML syntax"):
            load_spatial_config(path)
