"""Exception hierarchy for the masking engine.

Everything derives from :class:`CloudMaskError`, itself a ``ValueError``,
so callers can catch the whole family or one specific failure::

    CloudMaskError
    ├── ConfigError          bad YAML / dataclass settings
    ├── InputError           malformed image, metadata or MTL file
    └── PreconditionError    DEM does not match the reference image
"""

from __future__ import annotations


class CloudMaskError(ValueError):
    """Base exception for the masking engine."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class ConfigError(CloudMaskError):
    """Raised when a :class:`~mss_cloud_mask.config.MaskConfig` is unusable."""


class InputError(CloudMaskError):
    """Raised when the image or its metadata lacks the expected structure."""


class PreconditionError(CloudMaskError):
    """Raised when the elevation grid cannot be used with the reference image.

    Args:
        check: Which check failed: ``"resolution"``, ``"projection"`` or
            ``"extent"``.
        message: Human-readable description including the offending values.
    """

    def __init__(self, check: str, message: str) -> None:
        super().__init__(f"DEM {check} check failed: {message}")
        self.check: str = check
