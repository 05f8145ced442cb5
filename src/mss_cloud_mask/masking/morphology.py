"""Connected-component sieve, square dilation and circular buffering."""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.ndimage import binary_dilation, generate_binary_structure, label

# 8-connectivity
EIGHT_CONNECTED = generate_binary_structure(2, 2)


def label_components(mask: np.ndarray) -> Tuple[np.ndarray, int]:
    """Label 8-connected foreground regions of *mask*.

    Returns:
        ``(labels, count)``: int32 label grid (0 = background) and the
        number of components.
    """
    labels, count = label(np.asarray(mask, dtype=bool), structure=EIGHT_CONNECTED)
    return labels.astype(np.int32, copy=False), int(count)


def component_sizes(labels: np.ndarray, count: int) -> np.ndarray:
    """Pixel count per label id (index 0 is the background)."""
    return np.bincount(labels.ravel(), minlength=count + 1)


def sieve(mask: np.ndarray, min_size: int) -> np.ndarray:
    """Drop 8-connected components with fewer than *min_size* pixels.

    Only component size matters, so the result does not depend on the order
    in which labels are assigned.
    """
    mask = np.asarray(mask, dtype=bool)
    if min_size <= 1 or not mask.any():
        return mask.copy()
    labels, count = label_components(mask)
    keep = component_sizes(labels, count) >= min_size
    keep[0] = False
    return keep[labels]


def dilate(mask: np.ndarray, size: int = 5) -> np.ndarray:
    """Pixelwise max over a ``size x size`` window; outside the grid is 0."""
    structure = np.ones((size, size), dtype=bool)
    return binary_dilation(np.asarray(mask, dtype=bool), structure=structure, border_value=0)


def sieve_and_dilate(mask: np.ndarray, min_size: int, size: int = 5) -> np.ndarray:
    return dilate(sieve(mask, min_size), size=size)


def disk_kernel(radius: int) -> np.ndarray:
    """``(2r+1, 2r+1)`` boolean disk, True within *radius* pixels of the centre."""
    n = 2 * radius + 1
    r, c = np.mgrid[:n, :n]
    return np.sqrt((r - radius) ** 2 + (c - radius) ** 2) <= radius


def buffer(mask: np.ndarray, radius: int) -> np.ndarray:
    """Grow *mask* by a circular buffer of *radius* pixels (0 = no-op)."""
    mask = np.asarray(mask, dtype=bool)
    if radius <= 0:
        return mask.copy()
    return binary_dilation(mask, structure=disk_kernel(radius), border_value=0)
