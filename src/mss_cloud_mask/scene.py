"""In-memory scene model: raster grids, band stacks and scene metadata.

Everything the engine consumes is built by callers (or the helpers in
``storage``) and handed over as these dataclasses.  A grid carries its own
affine transform and CRS so alignment can be checked rather than assumed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np
from rasterio.coords import BoundingBox
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds

from mss_cloud_mask.errors import InputError

N_BANDS = 4


class Sensor(str, Enum):
    LANDSAT_1 = "LANDSAT_1"
    LANDSAT_2 = "LANDSAT_2"
    LANDSAT_3 = "LANDSAT_3"
    LANDSAT_4 = "LANDSAT_4"
    LANDSAT_5 = "LANDSAT_5"

    @classmethod
    def parse(cls, value: str | "Sensor") -> "Sensor":
        """Accept ``LANDSAT_1``, ``Landsat 1`` or an existing member."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise InputError(
                f"Unknown sensor {value!r}; expected one of {[s.value for s in cls]}"
            ) from None


class ImageUnits(str, Enum):
    DN = "dn"
    REFLECTANCE = "reflectance"


# ---------------------------------------------------------------------------
# Grids
# ---------------------------------------------------------------------------

def _check_north_up(transform: Affine) -> None:
    """Only unrotated north-up grids (x grows east, y grows north) are supported."""
    if transform.b != 0 or transform.d != 0:
        raise InputError("Rotated transforms are not supported")
    if transform.a <= 0 or transform.e >= 0:
        raise InputError(
            f"Expected a north-up transform (a > 0, e < 0), got a={transform.a}, e={transform.e}"
        )


@dataclass
class RasterGrid:
    """A single 2-D raster with its georeferencing.

    Args:
        data: ``(H, W)`` array.
        transform: Affine pixel-to-map transform (north-up).
        crs: Coordinate reference system, or None for unreferenced grids.
        nodata: Value marking missing pixels, or None.
    """

    data: np.ndarray
    transform: Affine
    crs: Optional[CRS] = None
    nodata: Optional[float] = None

    def __post_init__(self):
        self.data = np.asarray(self.data)
        if self.data.ndim != 2:
            raise InputError(f"RasterGrid expects a 2-D array, got shape {self.data.shape}")
        _check_north_up(self.transform)

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def resolution(self) -> Tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> BoundingBox:
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return BoundingBox(west, south, east, north)

    def nodata_mask(self) -> np.ndarray:
        """Boolean ``(H, W)``: True where the pixel is missing."""
        missing = np.zeros(self.shape, dtype=bool)
        if np.issubdtype(self.data.dtype, np.floating):
            missing |= np.isnan(self.data)
        if self.nodata is not None and not np.isnan(self.nodata):
            missing |= self.data == self.nodata
        return missing


@dataclass
class SceneImage:
    """Four co-registered MSS bands in one unit system.

    Args:
        bands: ``(4, H, W)`` band stack, band 1 first.
        units: ``ImageUnits.DN`` for raw digital numbers or
            ``ImageUnits.REFLECTANCE`` for TOA reflectance scaled by 10000.
        transform: Affine pixel-to-map transform shared by all bands.
        crs: Coordinate reference system.
        nodata: Value marking missing pixels in any band.
    """

    bands: np.ndarray
    units: ImageUnits
    transform: Affine
    crs: Optional[CRS] = None
    nodata: Optional[float] = None

    def __post_init__(self):
        self.bands = np.asarray(self.bands)
        if self.bands.ndim != 3 or self.bands.shape[0] != N_BANDS:
            raise InputError(
                f"Expected a ({N_BANDS}, H, W) band stack, got shape {self.bands.shape}"
            )
        if self.bands.shape[1] == 0 or self.bands.shape[2] == 0:
            raise InputError("Band stack has an empty spatial dimension")
        if not (np.issubdtype(self.bands.dtype, np.integer)
                or np.issubdtype(self.bands.dtype, np.floating)):
            raise InputError(f"Unsupported band dtype {self.bands.dtype}")
        _check_north_up(self.transform)
        try:
            self.units = ImageUnits(self.units)
        except ValueError:
            raise InputError(f"Unknown image units {self.units!r}") from None

    @property
    def shape(self) -> Tuple[int, int]:
        return self.bands.shape[1], self.bands.shape[2]

    @property
    def resolution(self) -> Tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> BoundingBox:
        west, south, east, north = array_bounds(*self.shape, self.transform)
        return BoundingBox(west, south, east, north)

    def valid_mask(self) -> np.ndarray:
        """Boolean ``(H, W)``: True where every band holds data."""
        missing = np.zeros(self.shape, dtype=bool)
        if np.issubdtype(self.bands.dtype, np.floating):
            missing |= np.any(np.isnan(self.bands), axis=0)
        if self.nodata is not None and not np.isnan(self.nodata):
            missing |= np.any(self.bands == self.nodata, axis=0)
        return ~missing

    def like(self, data: np.ndarray, nodata: Optional[float] = None) -> RasterGrid:
        """Wrap *data* in a grid sharing this image's georeferencing."""
        return RasterGrid(data=data, transform=self.transform, crs=self.crs, nodata=nodata)


def same_crs(a: Optional[CRS], b: Optional[CRS]) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return CRS.from_user_input(a) == CRS.from_user_input(b)


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

def normalize_azimuth(azimuth: float) -> float:
    """Map an azimuth in (180, 360] onto (-180, 0]; pass -180..180 through."""
    if -180.0 <= azimuth <= 180.0:
        return float(azimuth)
    if 180.0 < azimuth <= 360.0:
        return float(azimuth) - 360.0
    raise InputError(f"Sun azimuth {azimuth} is outside -180..360 degrees")


@dataclass
class SceneMetadata:
    """Per-scene acquisition geometry and calibration.

    Angles are in degrees. ``sun_azimuth`` is measured clockwise from north
    in the range -180..180. ``gains`` and ``biases`` hold the DN-to-radiance
    coefficients of the four bands.
    """

    sensor: Sensor
    sun_elevation: float
    sun_azimuth: float
    sun_zenith: float
    earth_sun_distance: float
    gains: Tuple[float, float, float, float]
    biases: Tuple[float, float, float, float]
    resolution: float

    def __post_init__(self):
        self.sensor = Sensor.parse(self.sensor)
        if not 0.0 < self.sun_elevation <= 90.0:
            raise InputError(f"Sun elevation must be in (0, 90], got {self.sun_elevation}")
        if not 0.0 <= self.sun_zenith < 90.0:
            raise InputError(f"Sun zenith must be in [0, 90), got {self.sun_zenith}")
        self.sun_azimuth = normalize_azimuth(self.sun_azimuth)
        if self.earth_sun_distance <= 0:
            raise InputError(f"Earth-sun distance must be positive, got {self.earth_sun_distance}")
        if self.resolution <= 0:
            raise InputError(f"Pixel resolution must be positive, got {self.resolution}")
        self.gains = _four_floats(self.gains, "gains")
        self.biases = _four_floats(self.biases, "biases")

    @classmethod
    def from_acquisition(
        cls,
        sensor: str | Sensor,
        sun_elevation: float,
        sun_azimuth: float,
        day_of_year: int,
        gains: Sequence[float],
        biases: Sequence[float],
        resolution: float = 60.0,
    ) -> "SceneMetadata":
        """Build metadata, deriving zenith and earth-sun distance."""
        from mss_cloud_mask.preprocessing.radiometry import earth_sun_distance

        return cls(
            sensor=sensor,
            sun_elevation=sun_elevation,
            sun_azimuth=sun_azimuth,
            sun_zenith=90.0 - sun_elevation,
            earth_sun_distance=earth_sun_distance(day_of_year),
            gains=tuple(gains),
            biases=tuple(biases),
            resolution=resolution,
        )


def _four_floats(values: Sequence[float], name: str) -> Tuple[float, float, float, float]:
    values = tuple(float(v) for v in values)
    if len(values) != N_BANDS:
        raise InputError(f"Expected {N_BANDS} {name}, got {len(values)}")
    return values  # type: ignore[return-value]
