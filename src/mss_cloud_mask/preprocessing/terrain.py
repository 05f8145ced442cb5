"""Slope, aspect, illumination and Minnaert topographic correction.

Slope and aspect use Horn's 3x3 finite differences on a DEM that carries a
one-pixel halo around the image footprint (see ``dem_alignment.crop_dem``).
Any NaN in a pixel's window gives NaN slope/aspect for that pixel.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from loguru import logger

from mss_cloud_mask.config import TerrainConfig


def slope_aspect(
    elev: np.ndarray,
    xres: float,
    yres: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Horn slope and aspect, both in radians.

    Args:
        elev: ``(H + 2, W + 2)`` elevation with a one-pixel halo, north up.
        xres: Pixel width in map units.
        yres: Pixel height in map units.

    Returns:
        ``(slope, aspect)`` each ``(H, W)``.  Aspect is the downslope
        direction clockwise from north in ``[0, 2*pi)``; flat pixels get 0.
    """
    a, b, c = elev[:-2, :-2], elev[:-2, 1:-1], elev[:-2, 2:]
    d, f = elev[1:-1, :-2], elev[1:-1, 2:]
    g, h, i = elev[2:, :-2], elev[2:, 1:-1], elev[2:, 2:]

    dz_east = ((c + 2 * f + i) - (a + 2 * d + g)) / (8.0 * xres)
    dz_north = ((a + 2 * b + c) - (g + 2 * h + i)) / (8.0 * yres)

    slope = np.arctan(np.hypot(dz_east, dz_north))
    aspect = np.mod(np.arctan2(-dz_east, -dz_north), 2 * np.pi)
    return slope, aspect


def illumination(
    slope: np.ndarray,
    aspect: np.ndarray,
    sun_elevation: float,
    sun_azimuth: float,
) -> np.ndarray:
    """Cosine of the solar incidence angle (un-normalized hillshade).

    ``cos(slope) * cos(zen) + sin(slope) * sin(zen) * cos(az - aspect)``
    with ``zen = 90 - sun_elevation``.  Values can be <= 0 on slopes facing
    away from the sun.
    """
    zenith = math.radians(90.0 - sun_elevation)
    azimuth = math.radians(sun_azimuth)
    return (
        np.cos(slope) * math.cos(zenith)
        + np.sin(slope) * math.sin(zenith) * np.cos(azimuth - aspect)
    )


def minnaert_correction(
    band: np.ndarray,
    illum: np.ndarray,
    sun_zenith: float,
    cfg: TerrainConfig,
) -> Tuple[np.ndarray, np.ndarray]:
    """Topographically correct *band* with the Minnaert model.

    ``corrected = round(band * (cos(sun_zenith) / illum) ** k)``

    Pixels with ``illum <= 0`` have no defined correction.  Under the
    ``"mask"`` policy they come back as NaN; under ``"clamp"`` the
    illumination is raised to ``cfg.illumination_floor`` first.

    Returns:
        ``(corrected, unresolved)``: float64 corrected band (NaN where
        unresolved or where inputs are NaN) and a boolean mask of the pixels
        the policy had to handle.
    """
    unresolved = illum <= 0
    n_unresolved = int(np.count_nonzero(unresolved))

    illum = illum.astype(np.float64, copy=True)
    if cfg.illumination_policy == "clamp":
        illum[unresolved] = cfg.illumination_floor
    else:
        illum[unresolved] = np.nan
    if n_unresolved:
        logger.debug(
            f"{n_unresolved} pixels with illumination <= 0 handled by "
            f"'{cfg.illumination_policy}' policy"
        )

    with np.errstate(invalid="ignore", divide="ignore"):
        factor = (math.cos(math.radians(sun_zenith)) / illum) ** cfg.minnaert_k
    return np.round(band * factor), unresolved
