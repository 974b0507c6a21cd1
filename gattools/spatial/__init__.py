"""
gattools.spatial

Config-driven workflow that chains the label engine over one field of view:
regions, marker gating, marker combinations and neighbour tables.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Tuple

from gattools.utils.utils import make_lazy_getattr

_LAZY_ATTRS: Dict[str, Tuple[str, str]] = {
    "PopulationSpec": ("gattools.spatial.config", "PopulationSpec"),
    "SpatialAnalysisConfig": ("gattools.spatial.config", "SpatialAnalysisConfig"),
    "load_spatial_config": ("gattools.spatial.config", "load_spatial_config"),
    "PopulationResult": ("gattools.spatial.pipeline", "PopulationResult"),
    "SpatialAnalysisPipeline": ("gattools.spatial.pipeline", "SpatialAnalysisPipeline"),
    "SpatialAnalysisResult": ("gattools.spatial.pipeline", "SpatialAnalysisResult"),
    "label_table": ("gattools.spatial.pipeline", "label_table"),
}

if TYPE_CHECKING:
    from gattools.spatial.config import PopulationSpec as PopulationSpec
    from gattools.spatial.config import SpatialAnalysisConfig as SpatialAnalysisConfig
    from gattools.spatial.config import load_spatial_config as load_spatial_config
    from gattools.spatial.pipeline import PopulationResult as PopulationResult
    from gattools.spatial.pipeline import SpatialAnalysisPipeline as SpatialAnalysisPipeline
    from gattools.spatial.pipeline import SpatialAnalysisResult as SpatialAnalysisResult
    from gattools.spatial.pipeline import label_table as label_table


__getattr__, __dir__, __all__ = make_lazy_getattr(globals(), _LAZY_ATTRS)
