"""DN to TOA radiance / reflectance conversion for Landsat MSS.

ESUN values from Chander et al. 2009, "Summary of current radiometric
calibration coefficients for Landsat MSS, TM, ETM+, and EO-1 ALI sensors",
Remote Sensing of Environment 113.

Band order: MSS band 1 (green), 2 (red), 3 (NIR 1), 4 (NIR 2).
"""

from __future__ import annotations

import math
from typing import Dict, Tuple

import numpy as np
from loguru import logger

from mss_cloud_mask.errors import InputError
from mss_cloud_mask.scene import ImageUnits, SceneImage, SceneMetadata, Sensor

# fmt: off
ESUN: Dict[Sensor, Tuple[float, float, float, float]] = {
    Sensor.LANDSAT_1: (1823.0, 1559.0, 1276.0, 880.1),
    Sensor.LANDSAT_2: (1829.0, 1539.0, 1268.0, 886.6),
    Sensor.LANDSAT_3: (1839.0, 1555.0, 1291.0, 887.9),
    Sensor.LANDSAT_4: (1827.0, 1569.0, 1260.0, 866.4),
    Sensor.LANDSAT_5: (1824.0, 1570.0, 1249.0, 853.4),
}
# fmt: on

REFLECTANCE_SCALE = 10000
RADIANCE_SCALE = 100


def earth_sun_distance(day_of_year: int) -> float:
    """Earth-sun distance in astronomical units for *day_of_year* (1-366)."""
    if not 1 <= int(day_of_year) <= 366:
        raise InputError(f"day_of_year must be in 1..366, got {day_of_year}")
    return 1.0 - 0.01672 * math.cos(math.radians(0.9856 * (int(day_of_year) - 4)))


def dn_to_radiance(dn: np.ndarray, gain: float, bias: float) -> np.ndarray:
    """TOA radiance scaled by 100 and rounded.

    ``round(100 * (gain * DN + bias))`` with negative radiance set to 0.
    """
    rad = np.round(RADIANCE_SCALE * (gain * dn.astype(np.float64) + bias))
    rad[rad < 0] = 0.0
    return rad


def dn_to_reflectance(
    dn: np.ndarray,
    gain: float,
    bias: float,
    esun: float,
    sun_zenith: float,
    distance: float,
) -> np.ndarray:
    """TOA reflectance scaled by 10000 and rounded.

    Args:
        dn: Raw digital numbers for one band.
        gain: DN-to-radiance gain.
        bias: DN-to-radiance bias.
        esun: Mean exoatmospheric solar irradiance for the band.
        sun_zenith: Sun zenith angle in degrees.
        distance: Earth-sun distance in AU.

    Returns:
        float64 array of rounded reflectance values.
    """
    radiance = gain * dn.astype(np.float64) + bias
    radiance[radiance < 0] = 0.0
    refl = (math.pi * radiance * distance ** 2) / (esun * math.cos(math.radians(sun_zenith)))
    return np.round(refl * REFLECTANCE_SCALE)


def scene_reflectance(image: SceneImage, metadata: SceneMetadata) -> np.ndarray:
    """Return the ``(4, H, W)`` reflectance stack for *image*.

    DN input is converted band by band; reflectance input is passed through
    unchanged (as float64).
    """
    if image.units is ImageUnits.REFLECTANCE:
        return image.bands.astype(np.float64)

    esun = ESUN[metadata.sensor]
    logger.debug(
        f"Converting DN to TOA reflectance ({metadata.sensor.value}, "
        f"d={metadata.earth_sun_distance:.5f} AU, zenith={metadata.sun_zenith:.2f})"
    )
    out = np.empty(image.bands.shape, dtype=np.float64)
    for i in range(image.bands.shape[0]):
        out[i] = dn_to_reflectance(
            image.bands[i],
            metadata.gains[i],
            metadata.biases[i],
            esun[i],
            metadata.sun_zenith,
            metadata.earth_sun_distance,
        )
    return out
