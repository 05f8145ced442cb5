import weakref

import numpy as np
import pytest

from mss_cloud_mask.config import MaskConfig
from mss_cloud_mask.errors import InputError, PreconditionError
from mss_cloud_mask.scene import ImageUnits, SceneImage
from mss_cloud_mask.steps import cloud_mask as step
from mss_cloud_mask.steps.cloud_mask import compute_mask_layers, run_cloud_mask

from conftest import (
    CLOUD_BOX,
    CONTROL_BOX,
    CRS_UTM,
    SHADOW_BOX,
    make_bands,
    make_dem,
    make_metadata,
    paint,
    scene_transform,
)

# Shadow block fully inside every projected copy for sun 40 / 135
SHADOW_CORE = (slice(115, 126), slice(115, 126))


def test_binary_mask(cloud_scene, flat_dem, metadata):
    grid = run_cloud_mask(cloud_scene, flat_dem, metadata)
    out = grid.data
    assert out.dtype == np.uint8
    assert set(np.unique(out)) == {0, 1}
    assert (out[CLOUD_BOX] == 0).all()
    assert (out[SHADOW_CORE] == 0).all()
    assert out[30, 170] == 1  # dark, but off the shadow path
    assert out[10, 10] == 1
    assert out[190, 20] == 1


def test_classified_mask(cloud_scene, flat_dem, metadata):
    out = run_cloud_mask(cloud_scene, flat_dem, metadata, classify=True).data
    assert set(np.unique(out)) == {0, 1, 2}
    assert (out[CLOUD_BOX] == 2).all()
    assert (out[SHADOW_CORE] == 1).all()
    assert (out[CONTROL_BOX] == 0).all()
    assert out[10, 10] == 0


def test_output_shares_image_grid(cloud_scene, flat_dem, metadata):
    grid = run_cloud_mask(cloud_scene, flat_dem, metadata)
    assert grid.shape == cloud_scene.shape
    assert grid.transform == cloud_scene.transform
    assert grid.crs == cloud_scene.crs
    assert grid.nodata == 255


def test_nodata_propagates(cloud_scene_bands, flat_dem, metadata):
    bands = cloud_scene_bands
    bands[:, :5, :] = 0
    bands[2, 50, 50] = 0  # missing in one band only
    image = SceneImage(bands, ImageUnits.REFLECTANCE, scene_transform(), CRS_UTM, nodata=0)
    missing = ~image.valid_mask()

    for classify in (False, True):
        out = run_cloud_mask(image, flat_dem, metadata, classify=classify).data
        np.testing.assert_array_equal(out == 255, missing)
        assert set(np.unique(out[~missing])) <= {0, 1, 2}


def test_layers_are_consistent(cloud_scene, flat_dem, metadata):
    layers = compute_mask_layers(cloud_scene, flat_dem, metadata)
    assert layers.thresholds.pass1 == 840
    assert layers.thresholds.pass2 == 778
    assert not layers.water.any()
    assert not layers.unresolved.any()
    # shadow never leaves the projected region by more than the dilation
    assert layers.projected[SHADOW_CORE].all()
    assert not layers.shadow[CONTROL_BOX].any()
    assert layers.shadow_candidates[CONTROL_BOX].all()


def test_dem_mismatch_fails_before_pixel_work(cloud_scene, metadata, monkeypatch):
    def _boom(*args, **kwargs):
        raise AssertionError("reflectance computed before DEM checks")

    monkeypatch.setattr(step, "scene_reflectance", _boom)
    dem = make_dem(shape=(420, 420), res=30.0)
    with pytest.raises(PreconditionError) as exc:
        run_cloud_mask(cloud_scene, dem, metadata)
    assert exc.value.check == "resolution"


def test_dem_not_covering_scene(cloud_scene, metadata):
    with pytest.raises(PreconditionError) as exc:
        run_cloud_mask(cloud_scene, make_dem(shape=(150, 150)), metadata)
    assert exc.value.check == "extent"


def test_metadata_resolution_must_match_image(cloud_scene, flat_dem):
    md = make_metadata()
    md.resolution = 30.0
    with pytest.raises(InputError):
        run_cloud_mask(cloud_scene, flat_dem, md)


def test_uniform_scene_is_clear(flat_dem, metadata):
    image = SceneImage(make_bands(), "reflectance", scene_transform(), CRS_UTM)
    out = run_cloud_mask(image, flat_dem, metadata).data
    assert (out == 1).all()


def test_dark_water_is_not_shadow(flat_dem, metadata):
    bands = make_bands()
    paint(bands, CLOUD_BOX, (4500, 4000, 4500, 5000))
    paint(bands, SHADOW_BOX, (400, 500, 450, 500))  # NDVI 0 on flat ground
    image = SceneImage(bands, "reflectance", scene_transform(), CRS_UTM)

    layers = compute_mask_layers(image, flat_dem, metadata)
    assert layers.water[SHADOW_BOX].all()
    assert not layers.shadow.any()

    out = run_cloud_mask(image, flat_dem, metadata).data
    assert (out[SHADOW_CORE] == 1).all()


def test_dn_scene(flat_dem, metadata):
    bands = np.full((4, 200, 200), 50, dtype=np.uint8)
    bands[(slice(None),) + CLOUD_BOX] = 200
    image = SceneImage(bands, ImageUnits.DN, scene_transform(), CRS_UTM)
    out = run_cloud_mask(image, flat_dem, metadata).data
    assert (out[CLOUD_BOX] == 0).all()
    assert out[10, 10] == 1
    assert out[190, 20] == 1


def test_no_cloud_skips_projection(flat_dem, metadata, monkeypatch):
    def _boom(*args, **kwargs):
        raise AssertionError("projection should not run without clouds")

    monkeypatch.setattr(step, "project_clouds", _boom)
    bands = make_bands()
    paint(bands, SHADOW_BOX, (400, 250, 350, 500))
    image = SceneImage(bands, "reflectance", scene_transform(), CRS_UTM)
    layers = compute_mask_layers(image, flat_dem, metadata)
    assert not layers.projected.any()
    assert not layers.shadow.any()


def test_custom_output_nodata(cloud_scene_bands, flat_dem, metadata):
    cloud_scene_bands[:, 0, 0] = 0
    image = SceneImage(cloud_scene_bands, "reflectance", scene_transform(), CRS_UTM, nodata=0)
    cfg = MaskConfig()
    cfg.output.nodata = 254
    grid = run_cloud_mask(image, flat_dem, metadata, config=cfg)
    assert grid.nodata == 254
    assert grid.data[0, 0] == 254


def test_intermediates_released_before_encoding(cloud_scene, flat_dem, metadata, monkeypatch):
    refs = {}
    real_compute = step.compute_mask_layers
    real_compose = step.compose_mask

    def _compute(*args, **kwargs):
        layers = real_compute(*args, **kwargs)
        refs["corrected"] = weakref.ref(layers.corrected)
        refs["candidates"] = weakref.ref(layers.shadow_candidates)
        return layers

    def _compose(*args, **kwargs):
        assert refs["corrected"]() is None
        assert refs["candidates"]() is None
        return real_compose(*args, **kwargs)

    monkeypatch.setattr(step, "compute_mask_layers", _compute)
    monkeypatch.setattr(step, "compose_mask", _compose)
    out = run_cloud_mask(cloud_scene, flat_dem, metadata).data
    assert (out[CLOUD_BOX] == 0).all()
