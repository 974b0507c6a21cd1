"""
Configuration for the multi-marker spatial analysis workflow.

A run takes one reference population (typically all Hu+ neurons), any number
of marker populations segmented on the same field of view, and optionally a
region (ganglia) label image. Settings are loaded from TOML.

Example::

    output_dir = "results/sample1"
    pixel_size_um = 0.568

    [reference]
    name = "Hu"
    labels = "sample1_hu.tif"

    [[markers]]
    name = "nNOS"
    labels = "sample1_nnos.tif"

    [[markers]]
    name = "ChAT"
    labels = "sample1_chat.tif"
"""

from pathlib import Path
from typing import Any

import toml
from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator


class PopulationSpec(BaseModel):
    """A named cell population stored as a label TIFF."""

    name: str = Field(description="Population name used in table columns and file names")
    labels: Path = Field(description="Path to the 2D label image")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Population name cannot be empty")
        if not v.replace("_", "").replace("-", "").replace("+", "").isalnum():
            raise ValueError(f"Population name contains invalid characters: {v}")
        return v

    @field_validator("labels")
    @classmethod
    def validate_labels_path(cls, v: Path) -> Path:
        if not v.exists():
            raise ValueError(f"Label image does not exist: {v}")
        if not v.is_file():
            raise ValueError(f"Label image path is not a file: {v}")
        return v


class SpatialAnalysisConfig(BaseModel):
    """Parameters of one spatial analysis run."""

    output_dir: Path = Field(description="Directory receiving tables, images and logs")

    reference: PopulationSpec = Field(description="Reference population (e.g. Hu neurons)")

    markers: list[PopulationSpec] = Field(
        default_factory=list, description="Marker populations gated against the reference"
    )

    regions: Path | None = Field(default=None, description="Optional region (ganglia) label image")

    define_regions_from_reference: bool = Field(
        default=False, description="Derive regions by dilating the reference population"
    )

    pixel_size_um: float | None = Field(
        default=None, gt=0, description="Microns per pixel; overrides TIFF calibration when set"
    )

    expansion_um: float = Field(default=6.5, ge=0, description="Cell expansion radius for neighbour detection")

    overlap_fraction: float = Field(
        default=0.4, ge=0, le=1, description="Minimum fraction of a reference cell covered by a marker"
    )

    min_cells_per_region: int = Field(default=1, ge=0, description="Regions with fewer cells are discarded")

    region_dilation_um: float = Field(
        default=12.0, ge=0, description="Dilation used when deriving regions from the reference"
    )

    neighbor_connectivity: int = Field(
        default=1, ge=1, le=2, description="Pixel contact rule for adjacency (1 = edges, 2 = edges + corners)"
    )

    relabel_connectivity: int = Field(
        default=2, ge=1, le=2, description="Connectivity used when relabelling subsets and intersections"
    )

    save_parametric: bool = Field(default=False, description="Write neighbour-count parametric images")

    @field_validator("regions")
    @classmethod
    def validate_regions_path(cls, v: Path | None) -> Path | None:
        if v is not None and not v.is_file():
            raise ValueError(f"Region label image does not exist: {v}")
        return v

    @field_validator("markers")
    @classmethod
    def validate_marker_names(cls, v: list[PopulationSpec]) -> list[PopulationSpec]:
        names = [m.name for m in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate marker names: {duplicates}")
        return v

    @model_validator(mode="after")
    def validate_populations(self) -> "SpatialAnalysisConfig":
        if any(m.name == self.reference.name for m in self.markers):
            raise ValueError(f"Marker name collides with reference name '{self.reference.name}'")
        if self.regions is not None and self.define_regions_from_reference:
            raise ValueError("Provide either a region label image or define_regions_from_reference, not both")
        return self

    @property
    def has_regions(self) -> bool:
        return self.regions is not None or self.define_regions_from_reference

    @property
    def tables_dir(self) -> Path:
        return self.output_dir / "tables"

    @property
    def images_dir(self) -> Path:
        return self.output_dir / "images"


def _resolve(base: Path, value: Any) -> Any:
    if value is None:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def load_spatial_config(
    config_path: Path,
    output_override: Path | None = None,
    pixel_size_override: float | None = None,
) -> SpatialAnalysisConfig:
    """
    Load a spatial analysis configuration from TOML with optional overrides.

    Relative paths in the file are resolved against the file's directory.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the TOML is malformed or the configuration is invalid
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file does not exist: {config_path}")

    try:
        config_data = toml.load(config_path)
    except toml.TomlDecodeError as e:
        raise ValueError(f"Invalid TOML syntax in configuration file: {e}")

    base = config_path.parent
    if "output_dir" in config_data:
        config_data["output_dir"] = _resolve(base, config_data["output_dir"])
    if "regions" in config_data:
        config_data["regions"] = _resolve(base, config_data["regions"])
    for spec in [config_data.get("reference"), *config_data.get("markers", [])]:
        if isinstance(spec, dict) and "labels" in spec:
            spec["labels"] = _resolve(base, spec["labels"])

    # Overrides come from the command line and stay relative to the working directory.
    if output_override is not None:
        config_data["output_dir"] = Path(output_override)
    if pixel_size_override is not None:
        config_data["pixel_size_um"] = pixel_size_override

    config = SpatialAnalysisConfig(**config_data)
    logger.debug(f"Loaded configuration from {config_path}: {len(config.markers)} marker(s)")
    return config
