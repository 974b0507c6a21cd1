"""
Touching-neighbour counts between segmented cells.

All counts are computed on the *dilated* label map: each cell is grown by a
radius (pixels) so that cells separated by a thin gap still register as
neighbours. An optional restricting mask (e.g. a ganglion silhouette) is
applied after dilation so cells do not reach across regions of no interest.

Three relations are provided:

- Same population (``neighbor_counts`` / ``touching_neighbor_count_map``):
  how many other cells of the same map touch each cell.
- REF-around-MARKER (``ref_around_marker``): sample the reference population's
  neighbour-count map at each marker centroid.
- MARKER-around-REF (``marker_around_ref``): for each reference cell, how many
  touching reference cells carry the marker.

``overlapping_label_counts`` is the overlap-based variant used when the two
populations are segmented independently (neither is a subset of the other).

Output arrays are indexed by label id with index 0 reserved for background
and always 0.
"""

from __future__ import annotations

import numpy as np
from loguru import logger

from .backend import RasterBackend, get_backend
from .types import RegionAdjacencyGraph, as_label_array, check_same_shape, max_label


def _pad(values: np.ndarray, length: int) -> np.ndarray:
    out = np.zeros(length, dtype=values.dtype)
    n = min(length, values.size)
    out[:n] = values[:n]
    return out


def dilate_within(
    labels: np.ndarray,
    radius: float,
    mask: np.ndarray | None = None,
    *,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Dilate ``labels`` by ``radius`` pixels, then zero everything outside ``mask``."""
    backend = get_backend(backend)
    labels = as_label_array(labels)
    check_same_shape(labels=labels, mask=mask)
    dilated = backend.dilate_labels(labels, radius)
    if mask is not None:
        dilated = backend.multiply(dilated, backend.binarize(mask))
    return dilated


def neighbor_graph(
    labels: np.ndarray,
    radius: float,
    mask: np.ndarray | None = None,
    *,
    connectivity: int = 1,
    backend: RasterBackend | None = None,
) -> tuple[np.ndarray, RegionAdjacencyGraph]:
    """Dilated (and masked) label map together with its region adjacency graph."""
    backend = get_backend(backend)
    dilated = dilate_within(labels, radius, mask, backend=backend)
    rag = backend.region_adjacency(dilated, connectivity=connectivity)
    logger.debug(f"Neighbour graph: {max_label(labels)} labels, {len(rag.edges)} edges at radius {radius}")
    return dilated, rag


def touching_neighbor_count_map(
    labels: np.ndarray,
    radius: float,
    mask: np.ndarray | None = None,
    *,
    connectivity: int = 1,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Paint every dilated cell footprint with its number of distinct touching cells.

    Background (and anything removed by ``mask``) stays 0. The footprint is the
    dilated one, so the map can be sampled anywhere inside a grown cell.
    """
    dilated, rag = neighbor_graph(labels, radius, mask, connectivity=connectivity, backend=backend)
    degree = rag.degree()
    return degree[dilated].astype(np.int32)


def neighbor_counts(
    labels: np.ndarray,
    radius: float,
    mask: np.ndarray | None = None,
    *,
    connectivity: int = 1,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Same-population touching-neighbour count per label id.

    Returns an array of length ``max_label(labels) + 1``. Labels that vanish
    under ``mask`` or touch nothing get 0.
    """
    labels = as_label_array(labels)
    _, rag = neighbor_graph(labels, radius, mask, connectivity=connectivity, backend=backend)
    return _pad(rag.degree(), max_label(labels) + 1)


def ref_around_marker(
    ref: np.ndarray,
    marker: np.ndarray,
    radius: float,
    mask: np.ndarray | None = None,
    *,
    connectivity: int = 1,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Number of reference cells around each marker cell (centroid sampling).

    The reference population is dilated and its neighbour-count map is read at
    every marker centroid. The result at marker id ``m`` is the neighbour count
    of the reference cell whose dilated footprint contains ``m``'s centroid.

    A 0 can also mean the centroid fell on background, i.e. no reference cell
    covers that marker. Callers that need to tell the two apart should check
    coverage separately.

    Returns:
        Array of length ``max_label(marker) + 1``.
    """
    backend = get_backend(backend)
    ref = as_label_array(ref, "ref")
    marker = as_label_array(marker, "marker")
    check_same_shape(ref=ref, marker=marker, mask=mask)

    out = np.zeros(max_label(marker) + 1, dtype=np.int64)
    if out.size == 1:
        return out

    count_map = touching_neighbor_count_map(ref, radius, mask, connectivity=connectivity, backend=backend)
    centroids = backend.reduce_to_centroids(marker)
    hit = centroids > 0
    out[centroids[hit]] = count_map[hit]
    out[0] = 0

    uncovered = int(np.count_nonzero(count_map[hit] == 0))
    if uncovered:
        logger.debug(f"{uncovered} marker centroid(s) have no neighbouring reference cell or no cover")
    return out


def positive_labels(labels: np.ndarray, signal: np.ndarray, *, backend: RasterBackend | None = None) -> np.ndarray:
    """Flag label ids that have at least one pixel where ``signal > 0``."""
    backend = get_backend(backend)
    labels = as_label_array(labels)
    check_same_shape(labels=labels, signal=signal)
    n = max_label(labels)
    hits = np.bincount(labels[backend.binarize(signal) > 0].ravel(), minlength=n + 1)
    flags = hits > 0
    flags[0] = False
    return flags


def marker_around_ref(
    ref: np.ndarray,
    marker: np.ndarray,
    radius: float,
    mask: np.ndarray | None = None,
    *,
    connectivity: int = 1,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Number of marker-carrying reference cells touching each reference cell.

    A reference cell carries the marker when any marker pixel lies under its
    original (un-dilated) footprint. The count is over distinct neighbouring
    reference cells, so several marker fragments over one neighbour count once.

    Returns:
        Array of length ``max_label(ref) + 1``.
    """
    backend = get_backend(backend)
    ref = as_label_array(ref, "ref")
    marker = as_label_array(marker, "marker")
    check_same_shape(ref=ref, marker=marker, mask=mask)

    n = max_label(ref)
    if n == 0:
        return np.zeros(1, dtype=np.int64)

    carrying = positive_labels(ref, marker, backend=backend)
    _, rag = neighbor_graph(ref, radius, mask, connectivity=connectivity, backend=backend)
    return _pad(rag.count_flagged_neighbors(carrying), n + 1)


def overlapping_label_counts(
    ref: np.ndarray,
    other: np.ndarray,
    radius: float,
    mask: np.ndarray | None = None,
    *,
    backend: RasterBackend | None = None,
) -> np.ndarray:
    """Distinct ``other`` cells overlapping each dilated reference cell.

    For two independently segmented populations. A reference cell that is
    itself ``other``-positive at its centroid would count itself, so one is
    subtracted in that case.

    Returns:
        Array of length ``max_label(ref) + 1``.
    """
    backend = get_backend(backend)
    ref = as_label_array(ref, "ref")
    other = as_label_array(other, "other")
    check_same_shape(ref=ref, other=other, mask=mask)

    n = max_label(ref)
    counts = np.zeros(n + 1, dtype=np.int64)
    if n == 0 or max_label(other) == 0:
        return counts

    dilated = dilate_within(ref, radius, mask, backend=backend)
    both = (dilated > 0) & (other > 0)
    if both.any():
        pairs = np.unique(
            np.stack([dilated[both].astype(np.int64), other[both].astype(np.int64)], axis=1), axis=0
        )
        counts += np.bincount(pairs[:, 0], minlength=n + 1)[: n + 1]

    centroids = backend.reduce_to_centroids(dilated)
    at = centroids > 0
    # Only a centroid that sits on its own footprint can be the cell overlapping itself.
    own = at & (dilated == centroids) & (backend.binarize(other) > 0)
    np.subtract.at(counts, centroids[own].astype(np.int64), 1)
    counts[0] = 0
    return np.maximum(counts, 0)


def parametric_map(labels: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Replace every label id with ``values[id]``; ids past the end map to 0."""
    labels = as_label_array(labels)
    values = np.asarray(values)
    lut = _pad(values, max(max_label(labels) + 1, values.size))
    lut[0] = 0
    return lut[labels]
