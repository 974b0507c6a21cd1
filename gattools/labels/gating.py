from __future__ import annotations

import numpy as np
from loguru import logger

from .types import as_label_array, check_same_shape, max_label


def overlap_fractions(labels: np.ndarray, signal: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Pixel totals and signal-positive pixel counts per label id.

    Returns:
        ``(total, hit)``, both of length ``max_label(labels) + 1``.
    """
    labels = as_label_array(labels)
    signal = np.asarray(signal)
    check_same_shape(labels=labels, signal=signal)
    n = max_label(labels)
    flat = labels.ravel()
    total = np.bincount(flat, minlength=n + 1)
    hit = np.bincount(flat, weights=(signal.ravel() > 0).astype(np.float64), minlength=n + 1).astype(np.int64)
    return total, hit


def positive_by_overlap(labels: np.ndarray, signal: np.ndarray, threshold: float) -> np.ndarray:
    """Positivity set: labels whose area is at least ``threshold`` covered by ``signal > 0``.

    ``keep[id] = hit[id] / total[id] >= threshold`` (inclusive). Absent ids and
    background are never positive.

    Args:
        labels: Population label map (e.g. all Hu neurons).
        signal: Marker label map, mask or channel; positive where nonzero.
        threshold: Fraction in ``[0, 1]``.

    Returns:
        Boolean array of length ``max_label(labels) + 1``.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"Overlap threshold must be within [0, 1], got {threshold}")
    total, hit = overlap_fractions(labels, signal)
    keep = np.zeros(total.size, dtype=bool)
    present = total > 0
    keep[present] = hit[present] / total[present] >= threshold
    keep[0] = False
    logger.debug(f"Overlap gate at {threshold:.2f}: {int(keep.sum())}/{int(present[1:].sum())} labels positive")
    return keep


def and_positivity(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Elementwise AND of two positivity sets; the shorter one is padded with False."""
    a = np.asarray(a, dtype=bool)
    b = np.asarray(b, dtype=bool)
    out = np.zeros(max(a.size, b.size), dtype=bool)
    n = min(a.size, b.size)
    out[:n] = a[:n] & b[:n]
    return out
