import math

import numpy as np
import pytest

from mss_cloud_mask.errors import InputError
from mss_cloud_mask.preprocessing.radiometry import (
    ESUN,
    dn_to_radiance,
    dn_to_reflectance,
    earth_sun_distance,
    scene_reflectance,
)
from mss_cloud_mask.scene import ImageUnits, SceneImage, SceneMetadata, Sensor

from conftest import make_bands, make_metadata, scene_transform


def test_esun_table_covers_every_sensor():
    assert set(ESUN) == set(Sensor)
    assert ESUN[Sensor.LANDSAT_1] == (1823.0, 1559.0, 1276.0, 880.1)
    assert ESUN[Sensor.LANDSAT_5][3] == 853.4


def test_earth_sun_distance_extremes():
    # perihelion early January, aphelion early July
    assert earth_sun_distance(4) == pytest.approx(1 - 0.01672)
    assert earth_sun_distance(187) == pytest.approx(1.0167, abs=1e-4)
    with pytest.raises(InputError):
        earth_sun_distance(0)


def test_dn_to_reflectance_matches_formula():
    dn = np.array([[0, 10, 100, 255]], dtype=np.uint8)
    gain, bias, esun, zen, d = 0.8, 2.0, 1559.0, 50.0, 1.01
    out = dn_to_reflectance(dn, gain, bias, esun, zen, d)

    expected = [
        round(10000 * math.pi * d ** 2 * (gain * v + bias) / (esun * math.cos(math.radians(zen))))
        for v in (0, 10, 100, 255)
    ]
    assert out.tolist() == [expected]


def test_dn_to_reflectance_clamps_negative_radiance():
    dn = np.array([[0, 1]], dtype=np.uint8)
    out = dn_to_reflectance(dn, gain=1.0, bias=-5.0, esun=1800.0, sun_zenith=30.0, distance=1.0)
    assert out.tolist() == [[0.0, 0.0]]


def test_dn_to_radiance_scales_and_clamps():
    dn = np.array([0, 10, 100])
    out = dn_to_radiance(dn, gain=0.5, bias=-2.0)
    assert out.tolist() == [0.0, 300.0, 4800.0]


def test_reflectance_input_passes_through():
    bands = make_bands(10)
    image = SceneImage(bands=bands, units=ImageUnits.REFLECTANCE, transform=scene_transform())
    out = scene_reflectance(image, make_metadata())
    assert out.dtype == np.float64
    np.testing.assert_array_equal(out, bands)


def test_dn_input_uses_sensor_specific_esun():
    bands = np.full((4, 3, 3), 100, dtype=np.uint8)
    image = SceneImage(bands=bands, units="dn", transform=scene_transform())
    md1 = make_metadata(sensor="LANDSAT_1")
    md5 = make_metadata(sensor="LANDSAT_5")

    out1 = scene_reflectance(image, md1)
    out5 = scene_reflectance(image, md5)
    # band 4 ESUN is lower on Landsat 5, so reflectance is higher
    assert out5[3, 0, 0] > out1[3, 0, 0]
    assert out1[0, 0, 0] == dn_to_reflectance(
        np.array([100]), 1.0, 0.0, 1823.0, md1.sun_zenith, 1.0
    )[0]


def test_metadata_from_acquisition_derives_geometry():
    md = SceneMetadata.from_acquisition(
        sensor="Landsat 3",
        sun_elevation=35.0,
        sun_azimuth=250.0,
        day_of_year=187,
        gains=[1, 2, 3, 4],
        biases=[0, 0, 0, 0],
    )
    assert md.sensor is Sensor.LANDSAT_3
    assert md.sun_zenith == pytest.approx(55.0)
    assert md.sun_azimuth == pytest.approx(-110.0)
    assert md.earth_sun_distance == pytest.approx(earth_sun_distance(187))
    assert md.resolution == 60.0


@pytest.mark.parametrize("kwargs", [
    {"sensor": "LANDSAT_7"},
    {"sun_elevation": 0.0},
    {"sun_azimuth": 400.0},
])
def test_metadata_rejects_bad_values(kwargs):
    base = dict(
        sensor="LANDSAT_1", sun_elevation=40.0, sun_azimuth=135.0, sun_zenith=50.0,
        earth_sun_distance=1.0, gains=(1, 1, 1, 1), biases=(0, 0, 0, 0), resolution=60.0,
    )
    base.update(kwargs)
    with pytest.raises(InputError):
        SceneMetadata(**base)


def test_metadata_requires_four_gains():
    with pytest.raises(InputError, match="gains"):
        SceneMetadata(
            sensor="LANDSAT_1", sun_elevation=40.0, sun_azimuth=135.0, sun_zenith=50.0,
            earth_sun_distance=1.0, gains=(1, 1, 1), biases=(0, 0, 0, 0), resolution=60.0,
        )
