"""Spectral cloud, water and shadow-candidate tests.

Inputs are TOA reflectance scaled by 10000.  Band numbering follows MSS:
b1 green, b2 red, b4 NIR 2.  Comparison operators are part of the model
and differ per test; keep them as they are.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger

from mss_cloud_mask.config import CloudConfig, ShadowConfig, WaterConfig


def _normalized_difference(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """``(x - y) / (x + y)``; NaN where the sum is 0."""
    with np.errstate(invalid="ignore", divide="ignore"):
        return (x - y) / (x + y)


def ndgr(b1: np.ndarray, b2: np.ndarray) -> np.ndarray:
    """Normalized difference green-red: ``(b1 - b2) / (b1 + b2)``."""
    return _normalized_difference(b1, b2)


def ndvi(b4: np.ndarray, b2: np.ndarray) -> np.ndarray:
    """NDVI = (NIR - Red) / (NIR + Red) using MSS band 4 and band 2."""
    return _normalized_difference(b4, b2)


def cloud_test(
    b1: np.ndarray,
    b2: np.ndarray,
    valid: np.ndarray,
    cfg: Optional[CloudConfig] = None,
) -> np.ndarray:
    """``(NDGR > 0 and b1 > 1750) or b1 > 3900`` on valid pixels."""
    cfg = cfg or CloudConfig()
    index = ndgr(b1, b2)
    cloud = ((index > cfg.ndgr_min) & (b1 > cfg.band1_min)) | (b1 > cfg.band1_bright)
    return cloud & valid


def water_test(
    b4: np.ndarray,
    b2: np.ndarray,
    slope: np.ndarray,
    valid: np.ndarray,
    cfg: Optional[WaterConfig] = None,
) -> np.ndarray:
    """``NDVI < 0.085 and slope < 0.5 deg`` on valid pixels.

    *slope* is in radians; NaN slope never qualifies.
    """
    cfg = cfg or WaterConfig()
    water = (ndvi(b4, b2) < cfg.ndvi_max) & (slope < math.radians(cfg.slope_max_deg))
    return water & valid


@dataclass
class ShadowThresholds:
    """Scene-adaptive thresholds from the two-pass shadow model."""

    pass1: Optional[int]
    pass2: Optional[int]
    n_reference: int = 0
    n_provisional: int = 0


def shadow_thresholds(
    corrected: np.ndarray,
    cloud: np.ndarray,
    cfg: Optional[ShadowConfig] = None,
) -> ShadowThresholds:
    """Derive the two shadow thresholds from the corrected band.

    Pass 1 averages every finite, non-cloud pixel; pixels brighter than the
    pass-1 threshold form the provisional clear set whose mean drives
    pass 2.  A pass with no pixels leaves its threshold as None.
    """
    cfg = cfg or ShadowConfig()
    usable = np.isfinite(corrected) & ~cloud
    n_reference = int(np.count_nonzero(usable))
    if n_reference == 0:
        logger.warning("No cloud-free pixels with a corrected value; shadow test skipped")
        return ShadowThresholds(None, None)

    mean1 = float(np.mean(corrected[usable]))
    pass1 = int(np.round(cfg.pass1_gain * mean1 + cfg.pass1_offset))

    provisional = usable & (corrected > pass1)
    n_provisional = int(np.count_nonzero(provisional))
    if n_provisional == 0:
        logger.warning(f"No pixels above provisional shadow threshold {pass1}; shadow test skipped")
        return ShadowThresholds(pass1, None, n_reference=n_reference)

    mean2 = float(np.mean(corrected[provisional]))
    pass2 = int(np.round(cfg.pass2_gain * mean2 + cfg.pass2_offset))
    logger.debug(
        f"Shadow thresholds: pass1={pass1} (mean {mean1:.1f}, n={n_reference}), "
        f"pass2={pass2} (mean {mean2:.1f}, n={n_provisional})"
    )
    return ShadowThresholds(pass1, pass2, n_reference, n_provisional)


def shadow_candidates(
    corrected: np.ndarray,
    cloud: np.ndarray,
    thresholds: ShadowThresholds,
) -> np.ndarray:
    """Non-cloud pixels with ``corrected <= pass2``."""
    if thresholds.pass2 is None:
        return np.zeros(corrected.shape, dtype=bool)
    with np.errstate(invalid="ignore"):
        dark = corrected <= thresholds.pass2
    return dark & np.isfinite(corrected) & ~cloud
