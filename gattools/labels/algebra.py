"""
Subsetting and intersection of label maps.

Both operations binarize the surviving pixels and relabel connected
components. Touching survivors therefore merge into one new label:

    >>> a = np.array([[1, 2, 0, 3]])
    >>> keep_labels(a, np.array([False, True, True, True]))
    array([[1, 1, 0, 2]], dtype=int32)

Downstream counts (``count_labels``) are counts of relabelled components, not
of the original ids. Callers that need identity preservation must carry the
positivity set instead of the relabelled map.
"""

from __future__ import annotations

from functools import reduce

import numpy as np
from loguru import logger

from .backend import RasterBackend, get_backend
from .types import as_label_array, check_same_shape, max_label


def count_labels(labels: np.ndarray) -> int:
    """Population size of a contiguously relabelled map (its maximum id)."""
    return max_label(as_label_array(labels))


def keep_labels(
    labels: np.ndarray,
    keep: np.ndarray,
    *,
    connectivity: int = 2,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Keep only pixels whose id is flagged in ``keep`` and relabel to ``1..K``.

    Ids at or beyond ``len(keep)`` are dropped.
    """
    backend = get_backend(backend)
    labels = as_label_array(labels)
    keep = np.asarray(keep, dtype=bool)

    lut = np.zeros(max(max_label(labels) + 1, 1), dtype=bool)
    n = min(lut.size, keep.size)
    lut[:n] = keep[:n]
    lut[0] = False

    binary = backend.binarize(lut[labels])
    out = backend.connected_component_relabel(binary, connectivity=connectivity)
    logger.debug(f"Subset kept {int(lut.sum())} of {max_label(labels)} labels -> {max_label(out)} components")
    return out


def intersect_labels(
    a: np.ndarray,
    b: np.ndarray,
    *,
    connectivity: int = 2,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Pixels positive in both maps, relabelled to ``1..K``."""
    backend = get_backend(backend)
    a = as_label_array(a, "a")
    b = as_label_array(b, "b")
    check_same_shape(a=a, b=b)
    both = backend.multiply(backend.binarize(a), backend.binarize(b))
    return backend.connected_component_relabel(both, connectivity=connectivity)


def intersect_many(
    *maps: np.ndarray,
    connectivity: int = 2,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Fold ``intersect_labels`` pairwise over two or more maps."""
    if len(maps) < 2:
        raise ValueError(f"Need at least two label maps to intersect, got {len(maps)}")
    return reduce(
        lambda acc, nxt: intersect_labels(acc, nxt, connectivity=connectivity, backend=backend),
        maps,
    )
