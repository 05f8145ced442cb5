"""Cloud, cloud-shadow and water masking for Landsat MSS scenes."""

from mss_cloud_mask.config import MaskConfig, load_config
from mss_cloud_mask.errors import CloudMaskError, ConfigError, InputError, PreconditionError
from mss_cloud_mask.scene import ImageUnits, RasterGrid, SceneImage, SceneMetadata, Sensor
from mss_cloud_mask.steps.cloud_mask import MaskLayers, compute_mask_layers, run_cloud_mask

__all__ = [
    "CloudMaskError",
    "ConfigError",
    "ImageUnits",
    "InputError",
    "MaskConfig",
    "MaskLayers",
    "PreconditionError",
    "RasterGrid",
    "SceneImage",
    "SceneMetadata",
    "Sensor",
    "compute_mask_layers",
    "load_config",
    "run_cloud_mask",
]
