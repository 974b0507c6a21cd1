"""
Multi-marker spatial analysis pipeline.

Chains the label engine the way a typical enteric-neuron analysis runs:
regions first (so every later step can be restricted to ganglia), then
marker gating and combinations, then neighbour relationships. All tables
are written as CSV with polars; per-image outputs go under ``images/``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import reduce
from itertools import combinations
from pathlib import Path

import numpy as np
import polars as pl
from loguru import logger

from gattools.io import read_label_image, write_tiff
from gattools.labels.algebra import count_labels, intersect_many, keep_labels
from gattools.labels.backend import RasterBackend, get_backend
from gattools.labels.gating import and_positivity, positive_by_overlap
from gattools.labels.neighbors import marker_around_ref, neighbor_counts, parametric_map, ref_around_marker
from gattools.labels.regions import (
    assign_to_regions,
    count_per_region,
    keep_regions_with_at_least,
    regions_from_population,
)
from gattools.labels.types import (
    LabelImage,
    RegionAggregate,
    check_compatible,
    microns_to_pixels,
    require_calibration,
)

from .config import SpatialAnalysisConfig


@dataclass(slots=True)
class PopulationResult:
    """A gated marker population or a marker combination."""

    name: str
    labels: np.ndarray
    count: int
    positive: np.ndarray | None = None
    per_region: RegionAggregate | None = None


@dataclass(slots=True)
class SpatialAnalysisResult:
    output_dir: Path
    pixel_size_um: float
    radius_px: int
    reference_count: int
    markers: dict[str, PopulationResult] = field(default_factory=dict)
    combinations: dict[str, PopulationResult] = field(default_factory=dict)
    regions: RegionAggregate | None = None
    tables: dict[str, Path] = field(default_factory=dict)


def _present_ids(labels: np.ndarray) -> np.ndarray:
    ids = np.flatnonzero(np.bincount(labels.ravel()))
    return ids[ids > 0]


def label_table(
    labels: np.ndarray,
    values: dict[str, np.ndarray],
    region_of: np.ndarray | None = None,
) -> pl.DataFrame:
    """One row per present label id with the given per-label columns."""
    ids = _present_ids(labels)
    data: dict[str, np.ndarray] = {"label_id": ids.astype(np.int64)}
    if region_of is not None:
        data["region_id"] = region_of[ids].astype(np.int64)
    for column, arr in values.items():
        padded = np.zeros(max(arr.size, int(ids.max()) + 1 if ids.size else 0), dtype=arr.dtype)
        padded[: arr.size] = arr
        data[column] = padded[ids]
    return pl.DataFrame(data)


class SpatialAnalysisPipeline:
    """
    Run reference/marker gating, combinations and neighbour analysis for one image.

    Each call to ``run`` is independent; inputs are read fresh from disk and
    nothing is cached between runs.
    """

    def __init__(self, config: SpatialAnalysisConfig, backend: RasterBackend | None = None) -> None:
        self.config = config
        self.backend = get_backend(backend)
        logger.info(
            f"Initialized spatial analysis for '{config.reference.name}' with "
            f"{len(config.markers)} marker(s): {[m.name for m in config.markers]}"
        )

    def run(self) -> SpatialAnalysisResult:
        with logger.contextualize(image=self.config.reference.labels.name):
            return self._run()

    def _run(self) -> SpatialAnalysisResult:
        cfg = self.config
        logger.info("Starting spatial analysis pipeline")
        cfg.tables_dir.mkdir(parents=True, exist_ok=True)

        reference, markers, region_image = self._load_inputs()
        images = [reference, *markers.values()] + ([region_image] if region_image is not None else [])
        px = require_calibration(check_compatible(*images))
        radius = microns_to_pixels(cfg.expansion_um, px)
        logger.info(f"Pixel size {px:.4f} µm; expansion {cfg.expansion_um} µm = {radius} px")

        result = SpatialAnalysisResult(
            output_dir=cfg.output_dir,
            pixel_size_um=px,
            radius_px=radius,
            reference_count=count_labels(reference.data),
        )

        region_labels = self._prepare_regions(reference, region_image, px, result)
        mask = self.backend.binarize(region_labels) if region_labels is not None else None

        self._gate_markers(reference, markers, region_labels, px, result)
        self._combine_markers(region_labels, px, result)
        self._neighbour_tables(reference, region_labels, mask, radius, px, result)
        self._summary_tables(result)

        logger.success(f"Spatial analysis complete. Tables saved to: {cfg.tables_dir}")
        return result

    def _load_inputs(self) -> tuple[LabelImage, dict[str, LabelImage], LabelImage | None]:
        cfg = self.config
        reference = read_label_image(cfg.reference.labels, cfg.pixel_size_um, name=cfg.reference.name)
        markers = {m.name: read_label_image(m.labels, cfg.pixel_size_um, name=m.name) for m in cfg.markers}
        region_image = (
            read_label_image(cfg.regions, cfg.pixel_size_um, name="regions") if cfg.regions is not None else None
        )
        logger.info(f"Loaded {cfg.reference.name}: {reference.shape}, {reference.n_labels} max label id")
        return reference, markers, region_image

    def _prepare_regions(
        self,
        reference: LabelImage,
        region_image: LabelImage | None,
        px: float,
        result: SpatialAnalysisResult,
    ) -> np.ndarray | None:
        cfg = self.config
        if not cfg.has_regions:
            return None

        if region_image is not None:
            regions = region_image.data
        else:
            regions = regions_from_population(
                reference.data, cfg.region_dilation_um, px, backend=self.backend
            )

        initial = count_per_region(reference.data, regions, px)
        kept = keep_regions_with_at_least(regions, initial.counts, cfg.min_cells_per_region)
        regions = self.backend.connected_component_relabel(kept, connectivity=cfg.relabel_connectivity)
        result.regions = count_per_region(reference.data, regions, px)
        logger.info(
            f"Regions: {initial.region_ids.size} found, {result.regions.region_ids.size} kept "
            f"with >= {cfg.min_cells_per_region} {cfg.reference.name} cell(s)"
        )

        if cfg.save_parametric:
            write_tiff(cfg.images_dir / "regions.tif", regions, px)
        return regions

    def _gate_markers(
        self,
        reference: LabelImage,
        markers: dict[str, LabelImage],
        region_labels: np.ndarray | None,
        px: float,
        result: SpatialAnalysisResult,
    ) -> None:
        cfg = self.config
        for name, marker in markers.items():
            positive = positive_by_overlap(reference.data, marker.data, cfg.overlap_fraction)
            gated = keep_labels(
                reference.data, positive, connectivity=cfg.relabel_connectivity, backend=self.backend
            )
            pop = PopulationResult(name=name, labels=gated, count=count_labels(gated), positive=positive)
            if region_labels is not None:
                pop.per_region = count_per_region(gated, region_labels, px)
            result.markers[name] = pop
            logger.info(
                f"{name}: {int(positive.sum())} {cfg.reference.name} cell(s) pass "
                f"{cfg.overlap_fraction:.0%} overlap -> {pop.count} after relabelling"
            )

    def _combine_markers(self, region_labels: np.ndarray | None, px: float, result: SpatialAnalysisResult) -> None:
        gated = list(result.markers.values())
        for size in range(2, len(gated) + 1):
            for group in combinations(gated, size):
                name = "+".join(p.name for p in group)
                labels = intersect_many(
                    *(p.labels for p in group), connectivity=self.config.relabel_connectivity, backend=self.backend
                )
                positive = reduce(and_positivity, (p.positive for p in group))
                pop = PopulationResult(name=name, labels=labels, count=count_labels(labels), positive=positive)
                if region_labels is not None:
                    pop.per_region = count_per_region(labels, region_labels, px)
                result.combinations[name] = pop
                logger.info(
                    f"{name}: {int(positive.sum())} {self.config.reference.name} cell(s) carry all markers "
                    f"-> {pop.count} after relabelling"
                )

    def _neighbour_tables(
        self,
        reference: LabelImage,
        region_labels: np.ndarray | None,
        mask: np.ndarray | None,
        radius: int,
        px: float,
        result: SpatialAnalysisResult,
    ) -> None:
        cfg = self.config
        ref_name = cfg.reference.name
        conn = cfg.neighbor_connectivity

        def region_of(labels: np.ndarray) -> np.ndarray | None:
            return assign_to_regions(labels, region_labels) if region_labels is not None else None

        ref_counts = neighbor_counts(reference.data, radius, mask, connectivity=conn, backend=self.backend)
        self._write(
            f"neighbours_{ref_name}",
            label_table(reference.data, {f"n_{ref_name}_neighbours": ref_counts}, region_of(reference.data)),
            result,
        )
        self._write_parametric(f"{ref_name}_neighbours", reference.data, ref_counts, px)

        for name, pop in result.markers.items():
            same = neighbor_counts(pop.labels, radius, mask, connectivity=conn, backend=self.backend)
            around_marker = ref_around_marker(
                reference.data, pop.labels, radius, mask, connectivity=conn, backend=self.backend
            )
            around_ref = marker_around_ref(
                reference.data, pop.labels, radius, mask, connectivity=conn, backend=self.backend
            )
            self._write(
                f"neighbours_{name}",
                label_table(
                    pop.labels,
                    {f"n_{name}_neighbours": same, f"n_{ref_name}_around_{name}": around_marker},
                    region_of(pop.labels),
                ),
                result,
            )
            self._write(
                f"{name}_around_{ref_name}",
                label_table(reference.data, {f"n_{name}_around_{ref_name}": around_ref}, region_of(reference.data)),
                result,
            )
            self._write_parametric(f"{name}_neighbours", pop.labels, same, px)
            self._write_parametric(f"{name}_around_{ref_name}", reference.data, around_ref, px)

    def _summary_tables(self, result: SpatialAnalysisResult) -> None:
        ref_name = self.config.reference.name
        pops = [*result.markers.values(), *result.combinations.values()]
        n_ref = result.reference_count

        summary = pl.DataFrame({
            "population": [ref_name, *(p.name for p in pops)],
            "n_cells": [n_ref, *(p.count for p in pops)],
        }).with_columns(
            (pl.col("n_cells") / n_ref if n_ref else pl.lit(None, dtype=pl.Float64)).alias(
                f"fraction_of_{ref_name}"
            )
        )
        self._write("counts", summary, result)

        if result.regions is not None:
            ids = result.regions.region_ids
            table = result.regions.to_frame(ref_name)
            extra = [
                pl.Series(f"n_{p.name}", p.per_region.counts[ids].astype(np.int64))
                for p in pops
                if p.per_region is not None
            ]
            if extra:
                table = table.with_columns(extra)
            self._write("regions", table, result)

    def _write(self, key: str, df: pl.DataFrame, result: SpatialAnalysisResult) -> None:
        path = self.config.tables_dir / f"{key}.csv"
        df.write_csv(path)
        result.tables[key] = path
        logger.debug(f"Wrote {df.height} row(s) to {path.name}")

    def _write_parametric(self, key: str, labels: np.ndarray, values: np.ndarray, px: float) -> None:
        if not self.config.save_parametric:
            return
        path = write_tiff(self.config.images_dir / f"{key}.tif", parametric_map(labels, values).astype(np.uint16), px)
        logger.debug(f"Saved parametric image {path.name}")
