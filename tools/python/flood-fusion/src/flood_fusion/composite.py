"""
composite.py
============
Build per-sensor median composites and the multi-sensor feature stack.

Radar path::

    scenes --(window, mode, orbit, VV+VH)--> median --> clip to AOI
           --> speckle filter VV, VH --> VV_Filtered, VH_Filtered
           --> Ratio_Filtered = VV_Filtered / VH_Filtered

Optical path::

    scenes --(window)--> cloud mask every scene --> median over clear
           observations --> clip to AOI

Both paths return a ``Composite``: ``Present(raster)`` or
``Empty(sensor, reason)``.  ``build_stack`` refuses to stack anything but
two present composites, so a classification is never run on imagery that
is missing a sensor.
"""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence, Tuple

import dask
import numpy as np
import xarray as xr

from shared.python.exceptions import DataAvailabilityError

from .aoi import AreaOfInterest, TimeWindow
from .config import (
    DEFAULT_CONFIG,
    OPTICAL_BANDS,
    RADAR_POLARISATIONS,
    RATIO_FILTERED,
    VH_FILTERED,
    VV_FILTERED,
    FloodFusionConfig,
)
from .raster import (
    Composite,
    Empty,
    Present,
    band_count,
    band_names,
    clip_to_geometry,
    concat_bands,
    rename_band,
    snap_to_grid,
    strip_metadata_coords,
    with_crs,
)
from .sources import ImagerySource
from .speckle import SpeckleFilter

logger = logging.getLogger("geoscripthub.flood_fusion.composite")


def _crs_of(da: xr.DataArray, fallback: Any) -> Any:
    crs = da.rio.crs
    return crs if crs is not None else fallback


def ratio_band(numerator: xr.DataArray, denominator: xr.DataArray, name: str) -> xr.DataArray:
    """Pixel-wise ``numerator / denominator`` of two one-band rasters.

    A zero denominator gives a masked pixel rather than an infinity.
    """
    num = numerator.isel(band=0).values.astype(np.float64)
    den = denominator.isel(band=0).values.astype(np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = num / den
    ratio = np.where(np.isfinite(ratio), ratio, np.nan).astype(np.float32)
    return rename_band(numerator.copy(data=ratio[np.newaxis, :, :]), name)


class SensorCompositeBuilder:
    """Builds the radar and optical composites for one AOI and window.

    Parameters
    ----------
    source:
        Imagery collaborator.
    config:
        Pipeline parameters (orbit, mode, speckle window, scheduler).
    """

    def __init__(
        self,
        source: ImagerySource,
        config: FloodFusionConfig = DEFAULT_CONFIG,
    ) -> None:
        self.source = source
        self.config = config
        self.speckle = SpeckleFilter(config.speckle_window)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def build(self, aoi: AreaOfInterest, window: TimeWindow) -> Tuple[Composite, Composite]:
        """Build the radar and optical composites concurrently.

        Returns:
            ``(radar, optical)`` composites.
        """
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="composite") as pool:
            radar_future = pool.submit(self.radar_composite, aoi, window)
            optical_future = pool.submit(self.optical_composite, aoi, window)
            # .result() re-raises any worker exception in this thread
            return radar_future.result(), optical_future.result()

    def radar_composite(self, aoi: AreaOfInterest, window: TimeWindow) -> Composite:
        """Median radar composite with speckle-filtered bands and their ratio."""
        scenes = self.source.radar_collection(aoi, window)
        if scenes is None:
            return Empty("radar", f"no radar scenes in {window}")

        scenes = self._filter_radar(scenes, window)
        if scenes.sizes["time"] == 0:
            return Empty(
                "radar",
                f"no {self.config.instrument_mode} {self.config.orbit_direction} "
                f"VV+VH scenes in {window}",
            )
        logger.info("Radar composite from %d scene(s).", scenes.sizes["time"])

        median = self._median(scenes, aoi)
        vv, vh = RADAR_POLARISATIONS
        vv_f = self.speckle.filter_band(median, vv, VV_FILTERED)
        vh_f = self.speckle.filter_band(median, vh, VH_FILTERED)

        parts = [vv_f, vh_f]
        if band_count(vv_f) and band_count(vh_f):
            parts.append(ratio_band(vv_f, vh_f, RATIO_FILTERED))
        else:
            logger.warning("Only one polarisation survived -- ratio band skipped.")
        parts = [p for p in parts if band_count(p)]
        if not parts:
            return Empty("radar", "composite has no VV or VH data")
        return Present(concat_bands(parts))

    def optical_composite(self, aoi: AreaOfInterest, window: TimeWindow) -> Composite:
        """Cloud-masked median optical composite (reflectance 0-1)."""
        scenes = self.source.optical_collection(aoi, window)
        if scenes is None:
            return Empty("optical", f"no optical scenes in {window}")

        scenes = scenes.isel(time=np.flatnonzero(window.contains(scenes["time"].values)))
        if scenes.sizes["time"] == 0:
            return Empty("optical", f"no optical scenes in {window}")
        logger.info("Optical composite from %d scene(s).", scenes.sizes["time"])

        crs = _crs_of(scenes, aoi.utm_crs)
        reflectance = with_crs(self.source.cloud_mask.apply(scenes), crs)
        return Present(self._median(reflectance, aoi))

    def elevation_on_grid(self, aoi: AreaOfInterest, reference: xr.DataArray) -> xr.DataArray:
        """Elevation interpolated bilinearly onto *reference*'s grid."""
        dem = self.source.elevation(aoi)
        dem = with_crs(dem, _crs_of(dem, aoi.utm_crs))
        dem = snap_to_grid(dem, reference, method="linear")
        (dem,) = dask.compute(dem, scheduler=self.config.scheduler)
        return dem.astype(np.float32)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _filter_radar(self, scenes: xr.DataArray, window: TimeWindow) -> xr.DataArray:
        keep = window.contains(scenes["time"].values)
        if "instrument_mode" in scenes.coords:
            mode = np.char.upper(scenes["instrument_mode"].values.astype(str))
            keep &= mode == self.config.instrument_mode.upper()
        if "orbit_state" in scenes.coords:
            orbit = np.char.lower(scenes["orbit_state"].values.astype(str))
            keep &= orbit == self.config.orbit_direction.lower()
        if not set(RADAR_POLARISATIONS) <= set(band_names(scenes)):
            keep[:] = False
        return scenes.isel(time=np.flatnonzero(keep))

    def _median(self, scenes: xr.DataArray, aoi: AreaOfInterest) -> xr.DataArray:
        """Temporal median over unmasked observations, clipped to the AOI."""
        crs = _crs_of(scenes, aoi.utm_crs)
        with warnings.catch_warnings():
            # All-NaN pixels (fully clouded / outside swath) stay NaN
            warnings.simplefilter("ignore", RuntimeWarning)
            median = scenes.median(dim="time", skipna=True)
            (median,) = dask.compute(median, scheduler=self.config.scheduler)
        median = with_crs(strip_metadata_coords(median.astype(np.float32)), crs)
        return clip_to_geometry(median, aoi.geometry_in(crs))


def build_stack(
    radar: Composite,
    optical: Composite,
    optical_bands: Sequence[str] = OPTICAL_BANDS,
) -> xr.DataArray:
    """Concatenate the selected optical bands and the radar bands.

    The optical composite is snapped onto the radar grid first.

    Raises:
        DataAvailabilityError: If either composite is empty, the radar
            composite lacks one polarisation, or optical bands are missing.
    """
    for composite in (radar, optical):
        if isinstance(composite, Empty):
            raise DataAvailabilityError(composite.sensor, composite.reason)

    radar_names = radar.band_names
    if VV_FILTERED not in radar_names or VH_FILTERED not in radar_names:
        raise DataAvailabilityError(
            "radar", f"both polarisations are required, got {radar_names}",
        )

    missing = [b for b in optical_bands if b not in optical.band_names]
    if missing:
        raise DataAvailabilityError("optical", f"missing bands {missing}")

    selected = optical.raster.sel(band=list(optical_bands))
    selected = snap_to_grid(selected, radar.raster, method="nearest")
    stack = concat_bands([selected, radar.raster])
    logger.info("Stack: %d bands on a %dx%d grid.", stack.sizes["band"], stack.sizes["y"], stack.sizes["x"])
    return stack
