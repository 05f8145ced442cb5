"""YAML config loading with dataclass defaults."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from loguru import logger

from mss_cloud_mask.errors import ConfigError


ILLUMINATION_POLICIES = ("mask", "clamp")
LOG_FORMATS = ("text", "json")
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass
class CloudConfig:
    ndgr_min: float = 0.0
    band1_min: float = 1750
    band1_bright: float = 3900
    min_size: int = 10


@dataclass
class WaterConfig:
    ndvi_max: float = 0.0850
    slope_max_deg: float = 0.5
    min_size: int = 7


@dataclass
class ShadowConfig:
    pass1_gain: float = 0.40
    pass1_offset: float = 247.97
    pass2_gain: float = 0.47
    pass2_offset: float = 73.23
    min_size: int = 10


@dataclass
class TerrainConfig:
    minnaert_k: float = 0.55
    illumination_policy: str = "mask"  # 'mask' | 'clamp'
    illumination_floor: float = 0.01  # only used by 'clamp'


@dataclass
class ProjectionConfig:
    cloud_base_min_m: float = 1000.0
    cloud_base_max_m: float = 7000.0
    step_m: float = 900.0
    buffer_px: int = 0  # circular cloud buffer applied before shifting


@dataclass
class MorphologyConfig:
    dilation_size: int = 5


@dataclass
class OutputConfig:
    nodata: int = 255


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "text"  # 'text' | 'json'


@dataclass
class MaskConfig:
    cloud: CloudConfig = field(default_factory=CloudConfig)
    water: WaterConfig = field(default_factory=WaterConfig)
    shadow: ShadowConfig = field(default_factory=ShadowConfig)
    terrain: TerrainConfig = field(default_factory=TerrainConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    morphology: MorphologyConfig = field(default_factory=MorphologyConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_CASTS = {"int": int, "float": float, "str": str}


def _coerce(name: str, value: Any, type_name: str) -> Any:
    """Cast a YAML scalar to the field's declared type or raise ConfigError."""
    cast = _CASTS[type_name]
    if isinstance(value, (bool, list, dict)):
        raise ConfigError(f"{name} must be a {type_name}, got {value!r}")
    try:
        out = cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a {type_name}, got {value!r}") from None
    if cast is int and isinstance(value, float) and value != out:
        raise ConfigError(f"{name} must be a whole number, got {value!r}")
    return out


def load_config(path: Optional[str] = None) -> MaskConfig:
    """Load config from YAML, falling back to defaults for missing keys.

    Values are cast to the type of the dataclass field they override, so
    ``nodata: "255"`` is accepted and ``nodata: lots`` is a ConfigError.
    Unknown keys are ignored.
    """
    if path is None:
        # Try default location
        default = Path("cloud_mask.yaml")
        if not default.exists():
            logger.warning("No config file found; using built-in defaults")
            return MaskConfig()
        path = str(default)

    logger.info(f"Using config: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must be a mapping of sections")

    cfg = MaskConfig()
    for section in fields(cfg):
        values = raw.get(section.name) or {}
        if not isinstance(values, dict):
            raise ConfigError(f"{path}: section '{section.name}' must be a mapping")
        target = getattr(cfg, section.name)
        for f in fields(target):
            value = values.get(f.name)
            if value is not None:
                setattr(target, f.name, _coerce(f"{section.name}.{f.name}", value, f.type))

    validate_config(cfg)
    return cfg


def validate_config(cfg: MaskConfig) -> None:
    """Reject settings the engine cannot run with."""
    if cfg.terrain.illumination_policy not in ILLUMINATION_POLICIES:
        raise ConfigError(
            f"terrain.illumination_policy must be one of {ILLUMINATION_POLICIES}, "
            f"got {cfg.terrain.illumination_policy!r}"
        )
    if cfg.terrain.illumination_policy == "clamp" and cfg.terrain.illumination_floor <= 0:
        raise ConfigError("terrain.illumination_floor must be > 0 when clamping")
    if cfg.projection.step_m <= 0:
        raise ConfigError("projection.step_m must be > 0")
    if cfg.projection.cloud_base_max_m < cfg.projection.cloud_base_min_m:
        raise ConfigError("projection.cloud_base_max_m must be >= cloud_base_min_m")
    if cfg.morphology.dilation_size < 1:
        raise ConfigError("morphology.dilation_size must be >= 1")
    if not 0 <= cfg.output.nodata <= 255 or cfg.output.nodata in (0, 1, 2):
        raise ConfigError("output.nodata must be a byte value outside the class codes 0-2")
    if cfg.logging.format not in LOG_FORMATS:
        raise ConfigError(f"logging.format must be one of {LOG_FORMATS}, got {cfg.logging.format!r}")
    if cfg.logging.level.upper() not in LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {LOG_LEVELS}, got {cfg.logging.level!r}")
