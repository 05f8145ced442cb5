"""Project the cloud mask along the anti-solar direction.

A cloud somewhere between the lowest and highest assumed cloud base casts
its shadow ``height / tan(sun_elevation)`` metres away from its footprint,
opposite the sun.  Shifting the cloud mask by a series of sampled
distances and OR-ing the copies gives the region where its shadow can
fall.

Offsets are ``(dx, dy)`` in whole pixels with x to the east and y to the
north; on the array that is ``+dx`` columns and ``-dy`` rows.
"""

from __future__ import annotations

import math
from functools import reduce
from typing import Iterable, List, Optional, Tuple

import numpy as np
from loguru import logger

from mss_cloud_mask.config import ProjectionConfig
from mss_cloud_mask.errors import InputError
from mss_cloud_mask.masking.morphology import buffer


def shadow_distances(
    sun_elevation: float,
    cfg: Optional[ProjectionConfig] = None,
) -> np.ndarray:
    """Ground distances (m) from cloud to shadow for the sampled heights.

    Samples start at ``cloud_base_min_m / tan(elev)`` and advance by
    ``step_m`` while not past ``cloud_base_max_m / tan(elev)``.  At least
    one sample is always returned.
    """
    cfg = cfg or ProjectionConfig()
    if not 0.0 < sun_elevation <= 90.0:
        raise InputError(f"Sun elevation must be in (0, 90], got {sun_elevation}")
    tan_elev = math.tan(math.radians(sun_elevation))
    start = cfg.cloud_base_min_m / tan_elev
    end = cfg.cloud_base_max_m / tan_elev
    n = int(math.floor((end - start) / cfg.step_m + 1e-9)) + 1
    return start + cfg.step_m * np.arange(max(n, 1))


def pixel_offset(distance: float, sun_azimuth: float, resolution: float) -> Tuple[int, int]:
    """Resolve a ground distance into a whole-pixel ``(dx, dy)`` shift.

    The azimuth range is split into four quadrants, each with its own
    reference angle and signs.  Quadrants are tested in the order below
    and the first match is used.
    """
    az = sun_azimuth
    if 90.0 < az <= 180.0:
        # sun in the SE, shadow falls NW
        angle, sy, sx = az - 90.0, 1.0, -1.0
    elif 0.0 < az <= 90.0:
        # sun in the NE, shadow falls SW
        angle, sy, sx = 90.0 - az, -1.0, -1.0
    elif -90.0 <= az <= 0.0:
        # sun in the NW, shadow falls SE
        angle, sy, sx = az + 90.0, -1.0, 1.0
    elif -180.0 <= az < -90.0:
        # sun in the SW, shadow falls NE
        angle, sy, sx = -90.0 - az, 1.0, 1.0
    else:
        raise InputError(f"Sun azimuth {az} is outside -180..180 degrees")

    rad = math.radians(angle)
    dy = int(round(math.sin(rad) * distance * sy / resolution))
    dx = int(round(math.cos(rad) * distance * sx / resolution))
    return dx, dy


def shift_mask(mask: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """Move *mask* by ``dx`` columns east and ``dy`` rows north.

    Cells shifted in from outside the grid are 0; cells shifted off the
    grid are dropped.
    """
    rows, cols = mask.shape
    drow, dcol = -dy, dx
    out = np.zeros_like(mask)
    if abs(drow) >= rows or abs(dcol) >= cols:
        return out
    src_r = slice(max(0, -drow), rows - max(0, drow))
    dst_r = slice(max(0, drow), rows - max(0, -drow))
    src_c = slice(max(0, -dcol), cols - max(0, dcol))
    dst_c = slice(max(0, dcol), cols - max(0, -dcol))
    out[dst_r, dst_c] = mask[src_r, src_c]
    return out


def combine_max(masks: Iterable[np.ndarray]) -> np.ndarray:
    """Pixelwise maximum of *masks*; commutative, so order is irrelevant."""
    return reduce(np.maximum, masks)


def projection_offsets(
    sun_elevation: float,
    sun_azimuth: float,
    resolution: float,
    cfg: Optional[ProjectionConfig] = None,
) -> List[Tuple[int, int]]:
    """Distinct pixel offsets for every sampled shadow distance."""
    offsets: List[Tuple[int, int]] = []
    for distance in shadow_distances(sun_elevation, cfg):
        offset = pixel_offset(float(distance), sun_azimuth, resolution)
        if offset not in offsets:
            offsets.append(offset)
    return offsets


def project_clouds(
    cloud: np.ndarray,
    sun_elevation: float,
    sun_azimuth: float,
    resolution: float,
    cfg: Optional[ProjectionConfig] = None,
) -> np.ndarray:
    """Union of the cloud mask shifted to every plausible shadow position.

    Args:
        cloud: ``(H, W)`` boolean cloud mask (already sieved and dilated).
        sun_elevation: Degrees above the horizon.
        sun_azimuth: Degrees clockwise from north, -180..180.
        resolution: Pixel size in metres.
        cfg: Height range, sampling step and optional circular buffer.

    Returns:
        ``(H, W)`` boolean shadow-search region on the same grid.
    """
    cfg = cfg or ProjectionConfig()
    source = buffer(cloud, cfg.buffer_px)
    offsets = projection_offsets(sun_elevation, sun_azimuth, resolution, cfg)
    logger.debug(
        f"Projecting clouds at {len(offsets)} offsets "
        f"from {offsets[0]} to {offsets[-1]} px"
    )
    return combine_max(shift_mask(source, dx, dy) for dx, dy in offsets)
