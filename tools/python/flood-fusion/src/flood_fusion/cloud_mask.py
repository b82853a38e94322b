"""
cloud_mask.py
=============
Per-pixel cloud masking for optical (Sentinel-2) scenes.

Two strategies share the ``CloudMask`` interface:

``QABitCloudMask``
    Bit-encoded quality band (``QA60``): a pixel is clear when neither the
    opaque-cloud bit (10) nor the cirrus bit (11) is set.

``SCLCloudMask``
    Scene Classification Layer (``SCL``): a pixel is clear when its class
    is vegetation, bare soil, water, unclassified, or snow.  Used for
    catalogs that ship L2A products without ``QA60``.

Both return the reflectance bands only (names starting with ``B``),
rescaled from 0-10000 digital numbers to reflectance, with cloudy pixels
set to NaN so they drop out of every later median or region statistic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import xarray as xr

REFLECTANCE_SCALE = 10000.0


class CloudMask(ABC):
    """Strategy interface for optical cloud masking."""

    #: Band carrying the per-pixel quality information.
    quality_band: str

    @abstractmethod
    def clear(self, quality: xr.DataArray) -> xr.DataArray:
        """Boolean DataArray: True where the pixel is cloud free."""

    def apply(self, scenes: xr.DataArray) -> xr.DataArray:
        """Mask cloudy pixels and rescale reflectance.

        Args:
            scenes: ``(time, band, y, x)`` or ``(band, y, x)`` optical data
                including :attr:`quality_band`.

        Returns:
            Reflectance bands only, divided by 10000, NaN where cloudy.
        """
        names = [str(b) for b in scenes["band"].values]
        if self.quality_band not in names:
            raise KeyError(
                f"Quality band '{self.quality_band}' missing from optical "
                f"scenes; got {names}."
            )
        quality = scenes.sel(band=self.quality_band, drop=True)
        refl = scenes.sel(band=[b for b in names if b.startswith("B")])
        clear = self.clear(quality)
        return refl.where(clear) / REFLECTANCE_SCALE


class QABitCloudMask(CloudMask):
    """Cloud and cirrus bit test on a bit-encoded quality band.

    Parameters
    ----------
    quality_band:
        Name of the bit-encoded band.
    cloud_bit, cirrus_bit:
        Bit positions flagging opaque cloud and cirrus.
    """

    def __init__(
        self,
        quality_band: str = "QA60",
        cloud_bit: int = 10,
        cirrus_bit: int = 11,
    ) -> None:
        self.quality_band = quality_band
        self.cloud_bit = cloud_bit
        self.cirrus_bit = cirrus_bit

    def clear(self, quality: xr.DataArray) -> xr.DataArray:
        # Missing quality values count as not clear
        known = quality.notnull()
        qa = quality.fillna(0).astype("int64")
        flags = (1 << self.cloud_bit) | (1 << self.cirrus_bit)
        return known & ((qa & flags) == 0)


class SCLCloudMask(CloudMask):
    """Clear-sky test on the Sentinel-2 Scene Classification Layer."""

    # vegetation, non-vegetated, water, unclassified, snow
    CLEAR_CLASSES = (4, 5, 6, 7, 11)

    def __init__(self, quality_band: str = "SCL") -> None:
        self.quality_band = quality_band

    def clear(self, quality: xr.DataArray) -> xr.DataArray:
        return quality.isin(list(self.CLEAR_CLASSES))
