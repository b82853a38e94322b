"""
speckle.py
==========
Refined Lee style adaptive speckle filter for SAR backscatter.

For every pixel the local mean and variance are taken over a square
window (7x7 by default).  The texture ratio ``variance / mean**2`` drives
the weight given to the original value::

    b = max(0, 1 - variance / mean**2)
    w = b / (1 + b)
    out = centre * w + mean * (1 - w)

Window statistics only use pixels that are inside the raster and not
masked, so edges and cloud/no-data holes shrink the window instead of
pulling the mean toward a fill value.  Where the local mean is exactly
zero the texture ratio is undefined and the pixel passes through
unchanged.  Masked pixels stay masked.
"""

from __future__ import annotations

import logging

import numpy as np
import xarray as xr
from scipy.ndimage import uniform_filter

from .raster import band_names, empty_like, rename_band, select_band, with_crs

logger = logging.getLogger("geoscripthub.flood_fusion.speckle")


def local_mean_variance(image: np.ndarray, size: int) -> tuple[np.ndarray, np.ndarray]:
    """Mean and population variance over a ``size x size`` window.

    Masked (NaN) and out-of-bounds pixels are ignored.  Pixels whose whole
    window is masked get NaN.
    """
    valid = np.isfinite(image)
    filled = np.where(valid, image, 0.0).astype(np.float64)

    # Window averages including zeros; dividing by the valid fraction
    # turns them into averages over valid pixels only.
    frac = uniform_filter(valid.astype(np.float64), size=size, mode="constant", cval=0.0)
    s1 = uniform_filter(filled, size=size, mode="constant", cval=0.0)
    s2 = uniform_filter(filled ** 2, size=size, mode="constant", cval=0.0)

    with np.errstate(invalid="ignore", divide="ignore"):
        mean = np.where(frac > 0, s1 / frac, np.nan)
        variance = np.where(frac > 0, s2 / frac - mean ** 2, np.nan)
    return mean, np.maximum(variance, 0.0)


def refined_lee(image: np.ndarray, size: int = 7) -> np.ndarray:
    """Apply the adaptive filter to a single 2-D band and return float32."""
    image = np.asarray(image, dtype=np.float64)
    valid = np.isfinite(image)
    mean, variance = local_mean_variance(image, size)

    with np.errstate(invalid="ignore", divide="ignore"):
        ratio = variance / (mean ** 2)
        b = np.maximum(1.0 - ratio, 0.0)
        w = b / (1.0 + b)
        out = image * w + mean * (1.0 - w)

    out = np.where(mean == 0.0, image, out)
    out = np.where(valid, out, np.nan)
    return out.astype(np.float32)


class SpeckleFilter:
    """Band-wise adaptive speckle filter.

    Parameters
    ----------
    window:
        Side length of the square neighbourhood (odd).
    """

    def __init__(self, window: int = 7) -> None:
        if window < 1 or window % 2 == 0:
            raise ValueError(f"window must be a positive odd integer, got {window}")
        self.window = window

    def filter_band(
        self, raster: xr.DataArray, band: str, output_name: str | None = None,
    ) -> xr.DataArray:
        """Filter one band of *raster*.

        Returns a one-band raster named *output_name* (default: *band*),
        or a zero-band placeholder when *band* is absent.
        """
        selected = select_band(raster, band)
        if selected.sizes["band"] == 0:
            logger.debug("Band %s absent -- returning empty placeholder", band)
            return empty_like(raster)

        values = refined_lee(selected.isel(band=0).values, self.window)
        out = selected.copy(data=values[np.newaxis, :, :])
        return rename_band(out, output_name or band)

    def apply(self, raster: xr.DataArray) -> xr.DataArray:
        """Filter every band of *raster* independently, keeping band names."""
        names = band_names(raster)
        if not names:
            return empty_like(raster)
        filtered = [self.filter_band(raster, name) for name in names]
        return with_crs(xr.concat(filtered, dim="band"), raster.rio.crs)
