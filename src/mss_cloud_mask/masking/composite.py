"""Combine cloud, shadow and water layers into the output mask.

Binary mode:     0 = obscured (cloud or shadow), 1 = clear.
Classified mode: 0 = clear, 1 = cloud shadow, 2 = cloud.
Reference nodata becomes the output nodata value in both modes.
"""

from __future__ import annotations

import numpy as np

from mss_cloud_mask.masking.morphology import sieve, sieve_and_dilate

CLEAR = 0
SHADOW = 1
CLOUD = 2

BINARY_OBSCURED = 0
BINARY_CLEAR = 1


def final_shadow(
    candidates: np.ndarray,
    projected: np.ndarray,
    water: np.ndarray,
    min_size: int = 10,
    dilation_size: int = 5,
) -> np.ndarray:
    """Shadow candidates inside the projected region, minus water, cleaned.

    Args:
        candidates: Raw shadow-candidate mask.
        projected: Shadow-search region from the cloud projection.
        water: Sieved and dilated water mask.
        min_size: Component size floor, applied before and after the
            intersection.
        dilation_size: Side of the square dilation window.
    """
    shadow = sieve(candidates, min_size) & projected & ~water
    return sieve_and_dilate(shadow, min_size, size=dilation_size)


def compose_mask(
    cloud: np.ndarray,
    shadow: np.ndarray,
    valid: np.ndarray,
    classify: bool = False,
    nodata: int = 255,
) -> np.ndarray:
    """Encode cloud/shadow into a uint8 mask.

    In classified mode the layers are merged by pixelwise maximum, so cloud
    wins where the two overlap.
    """
    cloud = np.asarray(cloud, dtype=bool)
    shadow = np.asarray(shadow, dtype=bool)
    if classify:
        out = np.maximum(cloud.astype(np.uint8) * CLOUD, shadow.astype(np.uint8) * SHADOW)
    else:
        out = np.where(cloud | shadow, BINARY_OBSCURED, BINARY_CLEAR).astype(np.uint8)
    out[~valid] = nodata
    return out
