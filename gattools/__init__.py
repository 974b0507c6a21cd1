from typing import TYPE_CHECKING, Dict, Tuple

from .errors import CalibrationError, ShapeMismatchError
from .utils.utils import make_lazy_getattr

# Lazy namespace exports (PEP 562)
# name -> (module, attribute)

_LAZY_ATTRS: Dict[str, Tuple[str, str]] = {
    # IO
    "read_label_image": ("gattools.io", "read_label_image"),
    "write_tiff": ("gattools.io", "write_tiff"),
    # Engine
    "LabelImage": ("gattools.labels.types", "LabelImage"),
    "neighbor_counts": ("gattools.labels.neighbors", "neighbor_counts"),
    "ref_around_marker": ("gattools.labels.neighbors", "ref_around_marker"),
    "marker_around_ref": ("gattools.labels.neighbors", "marker_around_ref"),
    "positive_by_overlap": ("gattools.labels.gating", "positive_by_overlap"),
    "keep_labels": ("gattools.labels.algebra", "keep_labels"),
    "intersect_labels": ("gattools.labels.algebra", "intersect_labels"),
    "count_per_region": ("gattools.labels.regions", "count_per_region"),
    # Workflow
    "SpatialAnalysisConfig": ("gattools.spatial.config", "SpatialAnalysisConfig"),
    "SpatialAnalysisPipeline": ("gattools.spatial.pipeline", "SpatialAnalysisPipeline"),
}

if TYPE_CHECKING:
    from gattools.io import read_label_image as read_label_image
    from gattools.io import write_tiff as write_tiff
    from gattools.labels.algebra import intersect_labels as intersect_labels
    from gattools.labels.algebra import keep_labels as keep_labels
    from gattools.labels.gating import positive_by_overlap as positive_by_overlap
    from gattools.labels.neighbors import marker_around_ref as marker_around_ref
    from gattools.labels.neighbors import neighbor_counts as neighbor_counts
    from gattools.labels.neighbors import ref_around_marker as ref_around_marker
    from gattools.labels.regions import count_per_region as count_per_region
    from gattools.labels.types import LabelImage as LabelImage
    from gattools.spatial.config import SpatialAnalysisConfig as SpatialAnalysisConfig
    from gattools.spatial.pipeline import SpatialAnalysisPipeline as SpatialAnalysisPipeline


__getattr__, __dir__, __all__ = make_lazy_getattr(
    globals(), _LAZY_ATTRS, extras=("CalibrationError", "ShapeMismatchError")
)
