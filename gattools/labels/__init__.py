"""
gattools.labels

Spatial relationship engine over 2D integer label maps: neighbour counting,
overlap gating, label set algebra and per-region aggregation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Tuple

from gattools.utils.utils import make_lazy_getattr

_LAZY_ATTRS: Dict[str, Tuple[str, str]] = {
    # types
    "LabelImage": ("gattools.labels.types", "LabelImage"),
    "RegionAdjacencyGraph": ("gattools.labels.types", "RegionAdjacencyGraph"),
    "RegionAggregate": ("gattools.labels.types", "RegionAggregate"),
    "check_compatible": ("gattools.labels.types", "check_compatible"),
    "microns_to_pixels": ("gattools.labels.types", "microns_to_pixels"),
    # backend
    "RasterBackend": ("gattools.labels.backend", "RasterBackend"),
    "ScipyRasterBackend": ("gattools.labels.backend", "ScipyRasterBackend"),
    "get_backend": ("gattools.labels.backend", "get_backend"),
    # neighbors
    "dilate_within": ("gattools.labels.neighbors", "dilate_within"),
    "neighbor_counts": ("gattools.labels.neighbors", "neighbor_counts"),
    "touching_neighbor_count_map": ("gattools.labels.neighbors", "touching_neighbor_count_map"),
    "ref_around_marker": ("gattools.labels.neighbors", "ref_around_marker"),
    "marker_around_ref": ("gattools.labels.neighbors", "marker_around_ref"),
    "overlapping_label_counts": ("gattools.labels.neighbors", "overlapping_label_counts"),
    "parametric_map": ("gattools.labels.neighbors", "parametric_map"),
    # gating
    "positive_by_overlap": ("gattools.labels.gating", "positive_by_overlap"),
    "and_positivity": ("gattools.labels.gating", "and_positivity"),
    # algebra
    "count_labels": ("gattools.labels.algebra", "count_labels"),
    "keep_labels": ("gattools.labels.algebra", "keep_labels"),
    "intersect_labels": ("gattools.labels.algebra", "intersect_labels"),
    "intersect_many": ("gattools.labels.algebra", "intersect_many"),
    # regions
    "count_per_region": ("gattools.labels.regions", "count_per_region"),
    "keep_regions_with_at_least": ("gattools.labels.regions", "keep_regions_with_at_least"),
    "regions_from_population": ("gattools.labels.regions", "regions_from_population"),
}

if TYPE_CHECKING:
    from gattools.labels.algebra import count_labels as count_labels
    from gattools.labels.algebra import intersect_labels as intersect_labels
    from gattools.labels.algebra import intersect_many as intersect_many
    from gattools.labels.algebra import keep_labels as keep_labels
    from gattools.labels.backend import RasterBackend as RasterBackend
    from gattools.labels.backend import ScipyRasterBackend as ScipyRasterBackend
    from gattools.labels.backend import get_backend as get_backend
    from gattools.labels.gating import and_positivity as and_positivity
    from gattools.labels.gating import positive_by_overlap as positive_by_overlap
    from gattools.labels.neighbors import dilate_within as dilate_within
    from gattools.labels.neighbors import marker_around_ref as marker_around_ref
    from gattools.labels.neighbors import neighbor_counts as neighbor_counts
    from gattools.labels.neighbors import overlapping_label_counts as overlapping_label_counts
    from gattools.labels.neighbors import parametric_map as parametric_map
    from gattools.labels.neighbors import ref_around_marker as ref_around_marker
    from gattools.labels.neighbors import touching_neighbor_count_map as touching_neighbor_count_map
    from gattools.labels.regions import count_per_region as count_per_region
    from gattools.labels.regions import keep_regions_with_at_least as keep_regions_with_at_least
    from gattools.labels.regions import regions_from_population as regions_from_population
    from gattools.labels.types import LabelImage as LabelImage
    from gattools.labels.types import RegionAdjacencyGraph as RegionAdjacencyGraph
    from gattools.labels.types import RegionAggregate as RegionAggregate
    from gattools.labels.types import check_compatible as check_compatible
    from gattools.labels.types import microns_to_pixels as microns_to_pixels


__getattr__, __dir__, __all__ = make_lazy_getattr(globals(), _LAZY_ATTRS)
