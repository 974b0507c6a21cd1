from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import polars as pl
from loguru import logger

from gattools.errors import CalibrationError, ShapeMismatchError


def as_label_array(labels: np.ndarray, name: str = "labels") -> np.ndarray:
    """Validate a 2D integer label raster and return it as an ndarray (no copy)."""
    arr = np.asarray(labels)
    if arr.ndim != 2:
        raise ValueError(f"{name} must be a 2D array, got shape {arr.shape}")
    if arr.dtype == np.bool_:
        return arr.astype(np.uint8)
    if not np.issubdtype(arr.dtype, np.integer):
        raise ValueError(f"{name} must have an integer dtype, got {arr.dtype}")
    if arr.size and arr.min() < 0:
        raise ValueError(f"{name} contains negative label ids")
    return arr


def check_same_shape(**rasters: np.ndarray | None) -> None:
    """Raise ``ShapeMismatchError`` unless every non-None raster shares one shape."""
    shapes = {name: np.shape(r) for name, r in rasters.items() if r is not None}
    if len(set(shapes.values())) > 1:
        detail = ", ".join(f"{name}={shape}" for name, shape in shapes.items())
        raise ShapeMismatchError(f"Rasters must share dimensions: {detail}")


def max_label(labels: np.ndarray) -> int:
    arr = np.asarray(labels)
    return int(arr.max()) if arr.size else 0


def require_calibration(pixel_size_um: float | None) -> float:
    if pixel_size_um is None or not np.isfinite(pixel_size_um) or pixel_size_um <= 0:
        raise CalibrationError(
            f"Image must be calibrated in microns (got pixel size {pixel_size_um!r})."
        )
    return float(pixel_size_um)


def microns_to_pixels(length_um: float, pixel_size_um: float | None) -> int:
    """Convert a physical radius to whole pixels, rounding to nearest."""
    if length_um < 0:
        raise ValueError(f"Length must be non-negative, got {length_um}")
    px = require_calibration(pixel_size_um)
    return int(round(length_um / px))


@dataclass(frozen=True, slots=True)
class LabelImage:
    """A label raster with its isotropic calibration.

    ``pixel_size_um`` is ``None`` when the source carried no calibration; the
    engine only complains once a physical-unit operation needs it.
    """

    data: np.ndarray
    pixel_size_um: float | None = None
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", as_label_array(self.data, self.name or "labels"))

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape  # type: ignore[return-value]

    @property
    def n_labels(self) -> int:
        return max_label(self.data)


def check_compatible(*images: LabelImage) -> float | None:
    """Ensure label images are co-registered; return their shared pixel size.

    Dimensions must match exactly. Pixel sizes must match among images that
    carry one; an uncalibrated image adopts the calibration of the others.
    """
    check_same_shape(**{f"{img.name or 'image'}[{i}]": img.data for i, img in enumerate(images)})
    sizes = {img.pixel_size_um for img in images if img.pixel_size_um is not None}
    if len(sizes) > 1:
        if not np.allclose(sorted(sizes), min(sizes), rtol=1e-6, atol=0):
            detail = ", ".join(f"{img.name}={img.pixel_size_um}" for img in images)
            raise CalibrationError(f"Label images disagree on pixel size: {detail}")
    if not sizes:
        return None
    px = min(sizes)
    for img in images:
        if img.pixel_size_um is None:
            logger.warning(f"{img.name or 'image'}: no calibration, adopting {px:.4f} µm/px from the other images")
    return px


@dataclass(frozen=True, slots=True)
class RegionAdjacencyGraph:
    """Undirected touch graph over the label ids of one raster.

    ``edges`` holds unique ``(p, q)`` rows with ``0 < p < q``.
    """

    edges: np.ndarray
    n_labels: int

    @classmethod
    def empty(cls, n_labels: int = 0) -> RegionAdjacencyGraph:
        return cls(np.empty((0, 2), dtype=np.int64), n_labels)

    def degree(self) -> np.ndarray:
        """Number of distinct neighbours per label id, indexed ``0..n_labels``."""
        return np.bincount(self.edges.ravel(), minlength=self.n_labels + 1).astype(np.int64)

    def count_flagged_neighbors(self, flags: np.ndarray) -> np.ndarray:
        """For every label, how many of its neighbours have ``flags[neighbour]`` set.

        Both endpoints of each edge are read from ``flags`` so the count is
        symmetric in the edge direction.
        """
        flags = np.asarray(flags, dtype=bool)
        padded = np.zeros(max(self.n_labels + 1, flags.size), dtype=bool)
        padded[: flags.size] = flags
        counts = np.zeros(self.n_labels + 1, dtype=np.int64)
        if self.edges.size == 0:
            return counts
        p, q = self.edges[:, 0], self.edges[:, 1]
        np.add.at(counts, p, padded[q])
        np.add.at(counts, q, padded[p])
        return counts


@dataclass(frozen=True, slots=True)
class RegionAggregate:
    """Per-region population counts and physical areas, indexed by region id.

    Index 0 is background and never reported.
    """

    counts: np.ndarray
    area_um2: np.ndarray
    pixel_size_um: float = field(default=1.0)

    @property
    def n_regions(self) -> int:
        return max(self.counts.size - 1, 0)

    @property
    def region_ids(self) -> np.ndarray:
        """Ids worth reporting: nonzero population or nonzero area."""
        ids = np.arange(self.counts.size)
        keep = (ids > 0) & ((self.counts > 0) | (self.area_um2 > 0))
        return ids[keep]

    def to_frame(self, population: str = "cells") -> pl.DataFrame:
        ids = self.region_ids
        return pl.DataFrame(
            {
                "region_id": ids.astype(np.int64),
                f"n_{population}": self.counts[ids].astype(np.int64),
                "area_um2": self.area_um2[ids].astype(np.float64),
            }
        )
