"""Cloud-mask step: one scene in, one mask grid out.

Stages:

1. DEM preconditions and crop (fails before any pixel math)
2. TOA reflectance (DN input only)
3. Slope / aspect / illumination and Minnaert-corrected band 4
4. Spectral cloud, water and shadow-candidate tests
5. Sieve + dilate water and cloud
6. Project clouds along the anti-solar direction
7. Intersect shadow candidates with the projection, drop water, clean
8. Encode binary or classified output, propagate nodata
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger

from mss_cloud_mask.config import MaskConfig, validate_config
from mss_cloud_mask.errors import CloudMaskError, InputError
from mss_cloud_mask.logging import run_context
from mss_cloud_mask.masking.composite import compose_mask, final_shadow
from mss_cloud_mask.masking.morphology import sieve_and_dilate
from mss_cloud_mask.masking.shadow_projection import project_clouds
from mss_cloud_mask.masking.spectral import (
    ShadowThresholds,
    cloud_test,
    shadow_candidates,
    shadow_thresholds,
    water_test,
)
from mss_cloud_mask.preprocessing.dem_alignment import prepare_dem
from mss_cloud_mask.preprocessing.radiometry import scene_reflectance
from mss_cloud_mask.preprocessing.terrain import illumination, minnaert_correction, slope_aspect
from mss_cloud_mask.scene import RasterGrid, SceneImage, SceneMetadata


@dataclass
class MaskLayers:
    """Intermediate products of one masking run, all ``(H, W)``."""

    valid: np.ndarray
    corrected: np.ndarray  # Minnaert-corrected band 4, NaN where unresolved/nodata
    unresolved: np.ndarray  # illumination <= 0
    thresholds: ShadowThresholds
    cloud_raw: np.ndarray
    water_raw: np.ndarray
    shadow_candidates: np.ndarray
    cloud: np.ndarray  # sieved + dilated
    water: np.ndarray  # sieved + dilated
    projected: np.ndarray
    shadow: np.ndarray  # final, sieved + dilated


def _check_resolution(image: SceneImage, metadata: SceneMetadata) -> float:
    xres, yres = image.resolution
    if not math.isclose(xres, yres, rel_tol=1e-9):
        raise InputError(f"Non-square pixels are not supported: {xres} x {yres}")
    if not math.isclose(xres, metadata.resolution, rel_tol=1e-9):
        raise InputError(
            f"Metadata resolution {metadata.resolution} does not match the "
            f"image pixel size {xres}"
        )
    return xres


def compute_mask_layers(
    image: SceneImage,
    dem: RasterGrid,
    metadata: SceneMetadata,
    config: Optional[MaskConfig] = None,
) -> MaskLayers:
    """Run every masking stage and return the intermediate layers."""
    cfg = config or MaskConfig()
    validate_config(cfg)

    resolution = _check_resolution(image, metadata)
    elev = prepare_dem(image, dem)
    valid = image.valid_mask()
    logger.info(
        f"Masking {image.shape[1]}x{image.shape[0]} scene "
        f"({metadata.sensor.value}, {image.units.value}, "
        f"{np.count_nonzero(~valid)} nodata px)"
    )

    refl = scene_reflectance(image, metadata)
    b1, b2, b4 = refl[0], refl[1], refl[3]
    del refl

    slope, aspect = slope_aspect(elev, resolution, resolution)
    del elev
    illum = illumination(slope, aspect, metadata.sun_elevation, metadata.sun_azimuth)
    del aspect
    corrected, unresolved = minnaert_correction(b4, illum, metadata.sun_zenith, cfg.terrain)
    del illum
    corrected[~valid] = np.nan
    unresolved &= valid

    cloud_raw = cloud_test(b1, b2, valid, cfg.cloud)
    water_raw = water_test(b4, b2, slope, valid, cfg.water)
    del b1, b2, b4, slope

    thresholds = shadow_thresholds(corrected, cloud_raw, cfg.shadow)
    candidates = shadow_candidates(corrected, cloud_raw, thresholds)
    logger.info(
        f"Raw masks: cloud={np.count_nonzero(cloud_raw)} water={np.count_nonzero(water_raw)} "
        f"shadow candidates={np.count_nonzero(candidates)} "
        f"(thresholds {thresholds.pass1}/{thresholds.pass2})"
    )

    size = cfg.morphology.dilation_size
    water = sieve_and_dilate(water_raw, cfg.water.min_size, size=size)
    cloud = sieve_and_dilate(cloud_raw, cfg.cloud.min_size, size=size)

    if cloud.any():
        projected = project_clouds(
            cloud,
            metadata.sun_elevation,
            metadata.sun_azimuth,
            resolution,
            cfg.projection,
        )
    else:
        logger.info("No clouds survived the sieve; skipping shadow projection")
        projected = np.zeros_like(cloud)

    shadow = final_shadow(
        candidates, projected, water,
        min_size=cfg.shadow.min_size, dilation_size=size,
    )
    logger.info(
        f"Cleaned masks: cloud={np.count_nonzero(cloud)} water={np.count_nonzero(water)} "
        f"shadow={np.count_nonzero(shadow)}"
    )

    return MaskLayers(
        valid=valid,
        corrected=corrected,
        unresolved=unresolved,
        thresholds=thresholds,
        cloud_raw=cloud_raw,
        water_raw=water_raw,
        shadow_candidates=candidates,
        cloud=cloud,
        water=water,
        projected=projected,
        shadow=shadow,
    )


def run_cloud_mask(
    image: SceneImage,
    dem: RasterGrid,
    metadata: SceneMetadata,
    classify: bool = False,
    config: Optional[MaskConfig] = None,
    run_id: Optional[str] = None,
) -> RasterGrid:
    """Produce the cloud / cloud-shadow mask for one scene.

    Args:
        image: Reference image, 4 bands of DN or TOA reflectance.
        dem: Elevation grid in the image's projection and pixel size,
            covering at least the image extent.
        metadata: Sun geometry and calibration for the scene.
        classify: If True, output 0 = clear, 1 = shadow, 2 = cloud;
            otherwise 0 = obscured, 1 = clear.
        config: Thresholds and options; defaults when None.
        run_id: Tag for log records; generated when None.

    Returns:
        uint8 :class:`RasterGrid` on the image's grid with nodata set to
        ``config.output.nodata``.
    """
    cfg = config or MaskConfig()
    with run_context(run_id):
        try:
            layers = compute_mask_layers(image, dem, metadata, cfg)
        except CloudMaskError as e:
            logger.error(f"Cloud mask failed: {e}")
            raise
        # drop the float band and the other intermediates before encoding
        cloud, shadow, valid = layers.cloud, layers.shadow, layers.valid
        del layers

        out = compose_mask(cloud, shadow, valid, classify=classify, nodata=cfg.output.nodata)
        n_valid = max(int(np.count_nonzero(valid)), 1)
        obscured = np.count_nonzero((cloud | shadow) & valid)
        logger.info(
            f"Mask done ({'classified' if classify else 'binary'}): "
            f"{100.0 * obscured / n_valid:.1f}% of valid pixels obscured"
        )
        return image.like(out, nodata=cfg.output.nodata)
