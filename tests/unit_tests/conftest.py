"""Synthetic MSS scenes shared by the test modules.

The reference scene is 200 x 200 pixels of 60 m on a flat DEM:

- background reflectance (800, 500, 1000, 1500)
- a 20 x 20 cloud at rows/cols 140-159 (band 1 = 4500)
- a dark 20 x 20 patch at rows/cols 110-129, inside the NW shadow path of
  the cloud for sun elevation 40, azimuth 135
- a second dark patch at rows 20-39, cols 160-179, outside that path
"""

from __future__ import annotations

import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import Affine

from mss_cloud_mask.scene import ImageUnits, RasterGrid, SceneImage, SceneMetadata

RES = 60.0
SIZE = 200
ORIGIN_X = 500000.0
ORIGIN_Y = 4500000.0
CRS_UTM = CRS.from_epsg(32612)

BACKGROUND = (800, 500, 1000, 1500)
CLOUD = (4500, 4000, 4500, 5000)
DARK = (400, 250, 350, 500)

CLOUD_BOX = (slice(140, 160), slice(140, 160))
SHADOW_BOX = (slice(110, 130), slice(110, 130))
CONTROL_BOX = (slice(20, 40), slice(160, 180))


def scene_transform(res: float = RES, x: float = ORIGIN_X, y: float = ORIGIN_Y) -> Affine:
    return Affine(res, 0.0, x, 0.0, -res, y)


def paint(bands: np.ndarray, box, values) -> None:
    for i, v in enumerate(values):
        bands[i][box] = v


def make_bands(size: int = SIZE) -> np.ndarray:
    bands = np.empty((4, size, size), dtype=np.int16)
    paint(bands, (slice(None), slice(None)), BACKGROUND)
    return bands


def make_dem(
    shape=(SIZE + 10, SIZE + 10),
    offset_px: int = 5,
    elevation: float = 1500.0,
    res: float = RES,
    crs=CRS_UTM,
) -> RasterGrid:
    """Flat DEM extending *offset_px* beyond the scene on every side."""
    transform = scene_transform(
        res, ORIGIN_X - offset_px * res, ORIGIN_Y + offset_px * res,
    )
    data = np.full(shape, elevation, dtype=np.float32)
    return RasterGrid(data=data, transform=transform, crs=crs, nodata=-32768)


def make_metadata(
    sun_elevation: float = 40.0,
    sun_azimuth: float = 135.0,
    sensor: str = "LANDSAT_2",
) -> SceneMetadata:
    return SceneMetadata(
        sensor=sensor,
        sun_elevation=sun_elevation,
        sun_azimuth=sun_azimuth,
        sun_zenith=90.0 - sun_elevation,
        earth_sun_distance=1.0,
        gains=(1.0, 1.0, 1.0, 1.0),
        biases=(0.0, 0.0, 0.0, 0.0),
        resolution=RES,
    )


@pytest.fixture
def cloud_scene_bands() -> np.ndarray:
    bands = make_bands()
    paint(bands, CLOUD_BOX, CLOUD)
    paint(bands, SHADOW_BOX, DARK)
    paint(bands, CONTROL_BOX, DARK)
    return bands


@pytest.fixture
def cloud_scene(cloud_scene_bands) -> SceneImage:
    return SceneImage(
        bands=cloud_scene_bands,
        units=ImageUnits.REFLECTANCE,
        transform=scene_transform(),
        crs=CRS_UTM,
        nodata=0,
    )


@pytest.fixture
def flat_dem() -> RasterGrid:
    return make_dem()


@pytest.fixture
def metadata() -> SceneMetadata:
    return make_metadata()
