"""
postfilter.py
=============
Spatial refinement of the raw flood classification.

Order matters and is fixed:

1. **Patch size** -- among pixels classified flooded, the size of each
   8-connected patch is counted (capped at ``max_patch_size``).  A flooded
   pixel survives only if its patch has at least ``min_patch_size``
   pixels.  ``min_patch_size == 0`` skips this rule.
2. **Slope** -- applied last, over the whole result: every pixel steeper
   than ``slope_threshold`` degrees (or with unknown slope) is masked, so
   steep terrain is never flood regardless of patch size.

The flood mask is 1 exactly where the final classification is 1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import xarray as xr
from scipy.ndimage import label as ndi_label

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

from .config import PATCH_RANGE, SLOPE_RANGE
from .raster import rename_band

logger = logging.getLogger("geoscripthub.flood_fusion.postfilter")

# 8-connectivity
_EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


@dataclass(frozen=True)
class PostFilterResult:
    """Outputs of :func:`apply_post_filters`.

    Attributes:
        final_classification: 0 / 1, NaN where unclassified or too steep.
        flood_mask: uint8, 1 where flooded, 0 elsewhere.
    """

    final_classification: xr.DataArray
    flood_mask: xr.DataArray


def slope_degrees(dem: xr.DataArray) -> xr.DataArray:
    """Terrain slope in degrees from an elevation raster (central differences).

    Pixel spacing is taken from the coordinate arrays.  NaN elevations give
    NaN slope for their neighbours.
    """
    elevation = np.asarray(dem.isel(band=0).values, dtype=np.float64)
    y_coords = dem["y"].values
    x_coords = dem["x"].values
    res_x = abs(float(x_coords[1] - x_coords[0])) if len(x_coords) > 1 else 10.0
    res_y = abs(float(y_coords[1] - y_coords[0])) if len(y_coords) > 1 else 10.0

    if min(elevation.shape) < 2:
        slope = np.full(elevation.shape, np.nan)
    else:
        dy, dx = np.gradient(elevation, res_y, res_x)
        slope = np.degrees(np.arctan(np.sqrt(dx ** 2 + dy ** 2)))

    return rename_band(dem.isel(band=[0]).copy(data=slope[np.newaxis].astype(np.float32)), "slope")


def patch_sizes(mask: np.ndarray, max_size: int = 100) -> np.ndarray:
    """Per-pixel size of the 8-connected patch containing it, capped at *max_size*.

    Pixels outside *mask* get 0.
    """
    mask = np.asarray(mask, dtype=bool)
    labeled, n_patches = ndi_label(mask, structure=_EIGHT_CONNECTED)
    if n_patches == 0:
        return np.zeros(mask.shape, dtype=np.int64)
    counts = np.bincount(labeled.ravel())
    counts[0] = 0
    return np.minimum(counts[labeled], max_size)


def check_thresholds(slope_threshold: float, min_patch_size: int) -> None:
    """Validate the user-facing post-filter parameters.

    Raises:
        InputValidationError: If either value is outside its range.
    """
    Validators.assert_in_range(slope_threshold, *SLOPE_RANGE, "Slope threshold (degrees)")
    if isinstance(min_patch_size, bool) or not isinstance(min_patch_size, (int, np.integer)):
        raise InputValidationError(
            f"Minimum patch size must be an integer, got {min_patch_size!r}."
        )
    Validators.assert_in_range(min_patch_size, *PATCH_RANGE, "Minimum patch size (pixels)")


def apply_post_filters(
    classified: xr.DataArray,
    slope: xr.DataArray,
    slope_threshold: float = 5.0,
    min_patch_size: int = 8,
    max_patch_size: int = 100,
) -> PostFilterResult:
    """Apply the patch-size rule, then the slope rule.

    Args:
        classified: One-band raster of 0 / 1 labels (NaN = unclassified).
        slope: One-band slope raster in degrees on the same grid.
        slope_threshold: Maximum slope (degrees) a flood pixel may have.
        min_patch_size: Minimum 8-connected patch size; 0 disables the rule.
        max_patch_size: Cap on counted patch size.
    """
    check_thresholds(slope_threshold, min_patch_size)
    if max_patch_size < min_patch_size:
        raise InputValidationError(
            f"Maximum patch size {max_patch_size} is below the minimum patch size "
            f"{min_patch_size}; no patch could pass."
        )

    labels = np.asarray(classified.isel(band=0).values, dtype=np.float32)
    slope_arr = np.asarray(slope.isel(band=0).values, dtype=np.float32)
    if labels.shape != slope_arr.shape:
        raise ValueError(
            f"Slope grid {slope_arr.shape} does not match classification grid {labels.shape}"
        )

    flooded = labels == 1
    if min_patch_size > 0:
        passes = flooded & (patch_sizes(flooded, max_patch_size) >= min_patch_size)
    else:
        passes = flooded

    # Flood pixels take the patch result; everything else keeps its label
    final = np.where(flooded, passes.astype(np.float32), labels)

    gentle = np.isfinite(slope_arr) & (slope_arr <= slope_threshold)
    final = np.where(gentle, final, np.nan).astype(np.float32)
    flood = (final == 1).astype(np.uint8)

    logger.info(
        "Post-filter: %d raw flood px -> %d after patch rule -> %d after slope rule.",
        int(flooded.sum()), int(passes.sum()), int(flood.sum()),
    )

    template = classified.isel(band=[0])
    return PostFilterResult(
        final_classification=template.copy(data=final[np.newaxis]),
        flood_mask=rename_band(template.copy(data=flood[np.newaxis]), "flood"),
    )
