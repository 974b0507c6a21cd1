"""
Raster primitives required by the label engine.

The engine never calls scipy/scikit-image directly for the six operations
below; it goes through a ``RasterBackend`` so an accelerated implementation
can be swapped in without touching the neighbour/gating/region code.

Conventions
-----------
- Label rasters are 2D integer arrays, background = 0.
- Every primitive returns a fresh array and leaves its inputs untouched.
- Backend errors are not caught here. A failure inside scipy (e.g. MemoryError)
  propagates to the caller for the current image.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np
from scipy import ndimage
from skimage.measure import label as sk_label

from .types import RegionAdjacencyGraph, as_label_array, check_same_shape, max_label

# (dy, dx) forward offsets; the reverse directions are covered by symmetry.
_FACE_OFFSETS = ((0, 1), (1, 0))
_DIAGONAL_OFFSETS = ((1, 1), (1, -1))


@runtime_checkable
class RasterBackend(Protocol):
    """Capability set the engine needs from a raster library."""

    def dilate_labels(self, labels: np.ndarray, radius: float) -> np.ndarray: ...

    def binarize(self, raster: np.ndarray) -> np.ndarray: ...

    def connected_component_relabel(self, mask: np.ndarray, connectivity: int = 2) -> np.ndarray: ...

    def reduce_to_centroids(self, labels: np.ndarray) -> np.ndarray: ...

    def region_adjacency(self, labels: np.ndarray, connectivity: int = 1) -> RegionAdjacencyGraph: ...

    def multiply(self, raster: np.ndarray, mask: np.ndarray) -> np.ndarray: ...


def label_centroids(labels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Mean (row, col) position and pixel count of every label id.

    Returns:
        centroids: ``(max_label + 1, 2)`` float array; NaN rows for absent ids.
        counts: ``(max_label + 1,)`` pixel counts (index 0 counts background).
    """
    labels = as_label_array(labels)
    n = max_label(labels)
    flat = labels.ravel()
    counts = np.bincount(flat, minlength=n + 1)
    rows, cols = np.indices(labels.shape)
    sum_r = np.bincount(flat, weights=rows.ravel(), minlength=n + 1)
    sum_c = np.bincount(flat, weights=cols.ravel(), minlength=n + 1)
    with np.errstate(invalid="ignore", divide="ignore"):
        centroids = np.stack([sum_r / counts, sum_c / counts], axis=1)
    return centroids, counts


def centroid_pixels(labels: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Rounded, clamped centroid pixel of every present label.

    Rounding is half-up so ``x.5`` lands on the higher pixel.

    Returns:
        ``(ids, rows, cols)`` for labels ``>= 1`` with at least one pixel.
    """
    labels = as_label_array(labels)
    centroids, counts = label_centroids(labels)
    ids = np.flatnonzero(counts)
    ids = ids[ids > 0]
    if ids.size == 0:
        empty = np.empty(0, dtype=np.intp)
        return empty, empty, empty
    h, w = labels.shape
    rows = np.clip(np.floor(centroids[ids, 0] + 0.5).astype(np.intp), 0, h - 1)
    cols = np.clip(np.floor(centroids[ids, 1] + 0.5).astype(np.intp), 0, w - 1)
    return ids, rows, cols


class ScipyRasterBackend:
    """CPU implementation on top of scipy.ndimage and scikit-image."""

    def dilate_labels(self, labels: np.ndarray, radius: float) -> np.ndarray:
        """Grow every label isotropically by up to ``radius`` pixels.

        A background pixel goes to the nearest label within Euclidean distance
        ``radius`` (inclusive). Equidistant labels resolve to the lower id.
        Labelled pixels keep their own id.
        """
        labels = as_label_array(labels)
        if radius < 0:
            raise ValueError(f"Dilation radius must be non-negative, got {radius}")
        if radius == 0 or max_label(labels) == 0:
            return labels.copy()

        out = np.zeros_like(labels)
        best = np.full(labels.shape, np.inf, dtype=np.float64)
        pad = int(np.ceil(radius))

        # Ascending id order with a strict comparison gives ties to the lower id.
        for label_id, bbox in enumerate(ndimage.find_objects(labels.astype(np.intp, copy=False)), start=1):
            if bbox is None:
                continue
            window = tuple(
                slice(max(s.start - pad, 0), min(s.stop + pad, dim)) for s, dim in zip(bbox, labels.shape)
            )
            dist = ndimage.distance_transform_edt(labels[window] != label_id)
            claim = (dist <= radius) & (dist < best[window])
            best[window][claim] = dist[claim]
            out[window][claim] = label_id
        return out

    def binarize(self, raster: np.ndarray) -> np.ndarray:
        return (np.asarray(raster) > 0).astype(np.uint8)

    def connected_component_relabel(self, mask: np.ndarray, connectivity: int = 2) -> np.ndarray:
        """Label connected foreground components ``1..K`` in raster-scan order.

        ``connectivity=2`` (default) joins diagonal neighbours; ``1`` uses edges only.
        """
        mask = np.asarray(mask)
        if mask.ndim != 2:
            raise ValueError(f"mask must be a 2D array, got shape {mask.shape}")
        if connectivity not in (1, 2):
            raise ValueError(f"connectivity must be 1 or 2, got {connectivity}")
        return sk_label(mask > 0, connectivity=connectivity, background=0).astype(np.int32, copy=False)

    def reduce_to_centroids(self, labels: np.ndarray) -> np.ndarray:
        """One pixel per label at its rounded centroid, valued with the label id.

        If two centroids land on the same pixel the higher id is kept.
        """
        labels = as_label_array(labels)
        out = np.zeros_like(labels)
        ids, rows, cols = centroid_pixels(labels)
        if ids.size:
            np.maximum.at(out, (rows, cols), ids.astype(out.dtype))
        return out

    def region_adjacency(self, labels: np.ndarray, connectivity: int = 1) -> RegionAdjacencyGraph:
        """Edges between distinct nonzero labels that share a pixel boundary.

        ``connectivity=1`` counts edge contacts only; ``2`` also counts corners.
        """
        labels = as_label_array(labels)
        if connectivity not in (1, 2):
            raise ValueError(f"connectivity must be 1 or 2, got {connectivity}")
        n = max_label(labels)
        if n == 0:
            return RegionAdjacencyGraph.empty(0)

        offsets = _FACE_OFFSETS + (_DIAGONAL_OFFSETS if connectivity == 2 else ())
        h, w = labels.shape
        chunks: list[np.ndarray] = []
        for dy, dx in offsets:
            x0, x1 = max(0, -dx), w - max(0, dx)
            a = labels[0 : h - dy, x0:x1]
            b = labels[dy:h, x0 + dx : x1 + dx]
            touching = (a > 0) & (b > 0) & (a != b)
            if not touching.any():
                continue
            pa, pb = a[touching].astype(np.int64), b[touching].astype(np.int64)
            chunks.append(np.stack([np.minimum(pa, pb), np.maximum(pa, pb)], axis=1))

        if not chunks:
            return RegionAdjacencyGraph.empty(n)
        edges = np.unique(np.concatenate(chunks), axis=0)
        return RegionAdjacencyGraph(edges, n)

    def multiply(self, raster: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Zero ``raster`` wherever ``mask`` is zero; keeps the raster dtype."""
        raster = np.asarray(raster)
        mask = np.asarray(mask)
        check_same_shape(raster=raster, mask=mask)
        return np.where(mask > 0, raster, 0).astype(raster.dtype, copy=False)


_DEFAULT_BACKEND: RasterBackend = ScipyRasterBackend()


def get_backend(backend: RasterBackend | None = None) -> RasterBackend:
    return _DEFAULT_BACKEND if backend is None else backend
