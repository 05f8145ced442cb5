"""Elevation grid precondition checks and crop to the image footprint.

The DEM must already share the image's projection and pixel size and
cover its whole extent; nothing here resamples.  Checks run in a fixed
order (resolution, projection, extent) and the first failure raises a
:class:`~mss_cloud_mask.errors.PreconditionError` naming the check.
"""

from __future__ import annotations

import math

import numpy as np
from loguru import logger

from mss_cloud_mask.errors import PreconditionError
from mss_cloud_mask.scene import RasterGrid, SceneImage, same_crs


def _extent(bounds):
    """Return ``(xmin, ymin, xmax, ymax)`` whatever the transform's sign."""
    return (
        min(bounds.left, bounds.right),
        min(bounds.bottom, bounds.top),
        max(bounds.left, bounds.right),
        max(bounds.bottom, bounds.top),
    )


def check_dem(image: SceneImage, dem: RasterGrid) -> None:
    """Validate *dem* against *image*; raise on the first mismatch."""
    img_res = image.resolution
    dem_res = dem.resolution
    if not all(math.isclose(a, b, rel_tol=1e-9) for a, b in zip(img_res, dem_res)):
        raise PreconditionError(
            "resolution",
            f"DEM pixel size {dem_res} differs from image pixel size {img_res}",
        )

    if not same_crs(image.crs, dem.crs):
        raise PreconditionError(
            "projection",
            f"DEM CRS {dem.crs} differs from image CRS {image.crs}",
        )

    ixmin, iymin, ixmax, iymax = _extent(image.bounds)
    dxmin, dymin, dxmax, dymax = _extent(dem.bounds)
    tol = 1e-6 * img_res[0]
    covered = (
        dymax >= iymax - tol
        and dymin <= iymin + tol
        and dxmin <= ixmin + tol
        and dxmax >= ixmax - tol
    )
    if not covered:
        raise PreconditionError(
            "extent",
            f"DEM extent {(dxmin, dymin, dxmax, dymax)} does not cover "
            f"image extent {(ixmin, iymin, ixmax, iymax)}",
        )


def crop_dem(image: SceneImage, dem: RasterGrid, halo: int = 1) -> np.ndarray:
    """Cut the DEM window matching *image*, with *halo* extra pixels per side.

    The image origin is snapped to the nearest DEM pixel corner.  Halo
    pixels outside the DEM, and DEM nodata, become NaN.

    Returns:
        ``(H + 2*halo, W + 2*halo)`` float64 elevation array.
    """
    height, width = image.shape
    # both grids are north-up and unrotated, so the inverse transform is a
    # per-axis offset and scale
    col_f = (image.transform.c - dem.transform.c) / dem.transform.a
    row_f = (image.transform.f - dem.transform.f) / dem.transform.e
    row0, col0 = int(round(row_f)), int(round(col_f))
    if abs(row_f - row0) > 1e-6 or abs(col_f - col0) > 1e-6:
        logger.debug(f"Snapping image origin to DEM grid (offset {row_f:.3f}, {col_f:.3f})")

    elev = dem.data.astype(np.float64)
    elev[dem.nodata_mask()] = np.nan

    out = np.full((height + 2 * halo, width + 2 * halo), np.nan, dtype=np.float64)
    r_start, c_start = row0 - halo, col0 - halo
    r_end, c_end = row0 + height + halo, col0 + width + halo

    src_r0, src_c0 = max(r_start, 0), max(c_start, 0)
    src_r1, src_c1 = min(r_end, dem.height), min(c_end, dem.width)
    if src_r1 <= src_r0 or src_c1 <= src_c0:
        raise PreconditionError("extent", "DEM window does not intersect the image")
    out[src_r0 - r_start:src_r1 - r_start, src_c0 - c_start:src_c1 - c_start] = (
        elev[src_r0:src_r1, src_c0:src_c1]
    )
    return out


def prepare_dem(image: SceneImage, dem: RasterGrid, halo: int = 1) -> np.ndarray:
    """Run :func:`check_dem` then :func:`crop_dem`."""
    check_dem(image, dem)
    return crop_dem(image, dem, halo=halo)
