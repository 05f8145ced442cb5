"""Read scene metadata from a Landsat ``*_MTL.txt`` file.

Only the keys the masking engine needs are used.  MSS band numbering
differs by platform (4-7 on Landsat 1-3, 1-4 on Landsat 4-5), so the four
``RADIANCE_MULT_BAND_n`` entries are taken in ascending band order.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Dict

from mss_cloud_mask.errors import InputError
from mss_cloud_mask.scene import N_BANDS, SceneMetadata

_BAND_KEY = re.compile(r"^RADIANCE_(MULT|ADD)_BAND_(\d+)$")


def parse_mtl(text: str) -> Dict[str, str]:
    """Flatten ``KEY = VALUE`` lines, ignoring GROUP structure."""
    fields: Dict[str, str] = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if key in ("GROUP", "END_GROUP"):
            continue
        fields[key] = value.strip('"')
    return fields


def metadata_from_fields(fields: Dict[str, str]) -> SceneMetadata:
    """Build :class:`SceneMetadata` from parsed MTL fields."""
    required = ("SPACECRAFT_ID", "SUN_ELEVATION", "SUN_AZIMUTH", "DATE_ACQUIRED")
    missing = [k for k in required if k not in fields]
    if missing:
        raise InputError(f"MTL is missing keys: {missing}")

    gains: Dict[int, float] = {}
    biases: Dict[int, float] = {}
    for key, value in fields.items():
        m = _BAND_KEY.match(key)
        if m:
            target = gains if m.group(1) == "MULT" else biases
            target[int(m.group(2))] = float(value)
    if len(gains) != N_BANDS or sorted(gains) != sorted(biases):
        raise InputError(
            f"MTL must list gain and bias for {N_BANDS} bands, "
            f"found gains for {sorted(gains)} and biases for {sorted(biases)}"
        )
    bands = sorted(gains)

    try:
        acquired = date.fromisoformat(fields["DATE_ACQUIRED"])
        sun_elevation = float(fields["SUN_ELEVATION"])
        sun_azimuth = float(fields["SUN_AZIMUTH"])
        resolution = float(fields.get("GRID_CELL_SIZE_REFLECTIVE", 60.0))
    except ValueError as e:
        raise InputError(f"Malformed MTL value: {e}") from e

    return SceneMetadata.from_acquisition(
        sensor=fields["SPACECRAFT_ID"],
        sun_elevation=sun_elevation,
        sun_azimuth=sun_azimuth,
        day_of_year=acquired.timetuple().tm_yday,
        gains=[gains[b] for b in bands],
        biases=[biases[b] for b in bands],
        resolution=resolution,
    )


def read_mtl(path: str) -> SceneMetadata:
    """Parse the MTL file at *path* into :class:`SceneMetadata`."""
    with open(path) as f:
        return metadata_from_fields(parse_mtl(f.read()))
