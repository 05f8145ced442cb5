"""GeoTIFF in/out for scenes, elevation grids and masks."""

from __future__ import annotations

import os
from typing import Optional

import numpy as np
import rasterio
from loguru import logger

from mss_cloud_mask.errors import InputError
from mss_cloud_mask.scene import N_BANDS, ImageUnits, RasterGrid, SceneImage


def read_scene(
    path: str,
    units: ImageUnits | str,
    nodata: Optional[float] = None,
) -> SceneImage:
    """Read a 4-band MSS GeoTIFF.

    Args:
        path: GeoTIFF with bands 1-4 in order.
        units: ``"dn"`` or ``"reflectance"``.
        nodata: Overrides the file's nodata value when given.
    """
    with rasterio.open(path) as src:
        if src.count != N_BANDS:
            raise InputError(f"{path}: expected {N_BANDS} bands, found {src.count}")
        bands = src.read()
        transform = src.transform
        crs = src.crs
        file_nodata = src.nodata

    nodata = nodata if nodata is not None else file_nodata
    logger.debug(f"Read scene {path} {bands.shape} nodata={nodata}")
    return SceneImage(bands=bands, units=units, transform=transform, crs=crs, nodata=nodata)


def read_elevation(path: str, band: int = 1) -> RasterGrid:
    """Read one band of a DEM GeoTIFF."""
    with rasterio.open(path) as src:
        data = src.read(band)
        grid = RasterGrid(data=data, transform=src.transform, crs=src.crs, nodata=src.nodata)
    logger.debug(f"Read elevation {path} {data.shape}")
    return grid


def write_mask(grid: RasterGrid, path: str) -> str:
    """Write a mask grid as a single-band LZW-compressed uint8 GeoTIFF."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    meta = {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": 1,
        "dtype": "uint8",
        "transform": grid.transform,
        "crs": grid.crs,
        "nodata": grid.nodata,
        "compress": "lzw",
    }
    with rasterio.open(path, "w", **meta) as dst:
        dst.write(grid.data.astype(np.uint8), 1)
    logger.info(f"Mask written: {path} ({grid.height}x{grid.width})")
    return path
