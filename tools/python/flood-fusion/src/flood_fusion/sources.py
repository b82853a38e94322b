"""
sources.py
==========
Collaborators that supply imagery and labelled training points.

``ImagerySource``
    Hands out raw, time-stamped scene stacks for the radar and optical
    sensors plus a terrain elevation raster.  Scene stacks are
    ``(time, band, y, x)`` DataArrays in the AOI's UTM CRS.  Radar stacks
    carry ``VV`` / ``VH`` bands in dB and may carry per-scene
    ``orbit_state`` and ``instrument_mode`` coordinates; optical stacks
    carry reflectance bands plus the quality band read by the source's
    ``cloud_mask``.  ``None`` means the catalog had no scenes.

``PlanetaryComputerSource``
    Streams Sentinel-1 RTC, Sentinel-2 L2A, and Copernicus GLO-30 from
    Microsoft Planetary Computer via the STAC API.  No full-scene
    downloads -- stackstac reads only the window covered by the AOI.

``TrainingPointSource``
    Lists the attribute columns of a labelled point asset and loads it.

``VectorFileTrainingSource``
    Any vector file geopandas can read; the asset id is the file path.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

import geopandas as gpd
import numpy as np
import xarray as xr

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

from .aoi import AreaOfInterest, TimeWindow
from .cloud_mask import CloudMask, SCLCloudMask

logger = logging.getLogger("geoscripthub.flood_fusion.sources")

PLANETARY_COMPUTER_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"

RADAR_COLLECTION = "sentinel-1-rtc"
OPTICAL_COLLECTION = "sentinel-2-l2a"
DEM_COLLECTION = "cop-dem-glo-30"

# Planetary Computer asset key -> pipeline band name
_S2_ASSETS = {
    "B02": "B2", "B03": "B3", "B04": "B4", "B05": "B5", "B06": "B6",
    "B07": "B7", "B08": "B8", "B8A": "B8A", "B11": "B11", "B12": "B12",
    "SCL": "SCL",
}
_S1_ASSETS = {"vv": "VV", "vh": "VH"}

VECTOR_EXTENSIONS = (".shp", ".geojson", ".json", ".gpkg", ".fgb", ".parquet")


# ---------------------------------------------------------------------------
# Imagery
# ---------------------------------------------------------------------------

class ImagerySource(ABC):
    """Supplier of raw radar and optical scenes and an elevation model."""

    @property
    @abstractmethod
    def cloud_mask(self) -> CloudMask:
        """Cloud mask matching the quality band of :meth:`optical_collection`."""

    @abstractmethod
    def radar_collection(
        self, aoi: AreaOfInterest, window: TimeWindow,
    ) -> Optional[xr.DataArray]:
        """Radar scenes (dB backscatter) intersecting *aoi* within *window*."""

    @abstractmethod
    def optical_collection(
        self, aoi: AreaOfInterest, window: TimeWindow,
    ) -> Optional[xr.DataArray]:
        """Optical scenes (raw 0-10000 DN plus quality band)."""

    @abstractmethod
    def elevation(self, aoi: AreaOfInterest) -> xr.DataArray:
        """Single-band elevation raster in metres covering *aoi*."""


class PlanetaryComputerSource(ImagerySource):
    """Streams Sentinel-1, Sentinel-2, and DEM data from Planetary Computer.

    Parameters
    ----------
    resolution:
        Output pixel size in metres for radar and optical stacks.
    chunk_size:
        Dask chunk size in pixels for x and y dimensions.
    """

    def __init__(self, resolution: float = 10.0, chunk_size: int = 1024) -> None:
        import planetary_computer  # noqa: PLC0415
        import pystac_client  # noqa: PLC0415

        self.resolution = resolution
        self.chunk_size = chunk_size
        self._mask = SCLCloudMask()
        # sign_inplace adds SAS tokens to asset hrefs
        self._catalog = pystac_client.Client.open(
            PLANETARY_COMPUTER_URL,
            modifier=planetary_computer.sign_inplace,
        )

    @property
    def cloud_mask(self) -> CloudMask:
        return self._mask

    # ------------------------------------------------------------------
    # Sentinel-1 RTC
    # ------------------------------------------------------------------

    def radar_collection(
        self, aoi: AreaOfInterest, window: TimeWindow,
    ) -> Optional[xr.DataArray]:
        """Search and stack Sentinel-1 RTC VV/VH, converted to dB."""
        items = self._search(RADAR_COLLECTION, aoi, window)
        # Dual-pol scenes only
        items = [
            it for it in items
            if {"VV", "VH"} <= set(it.properties.get("sar:polarizations", []))
        ]
        logger.info("Found %d dual-pol %s scenes.", len(items), RADAR_COLLECTION)
        if not items:
            return None

        stack = self._stack(items, list(_S1_ASSETS), self.resolution, aoi)
        stack = stack.assign_coords(band=[_S1_ASSETS[b] for b in stack["band"].values])
        stack = stack.assign_coords(
            orbit_state=("time", [str(it.properties.get("sat:orbit_state", "")) for it in items]),
            instrument_mode=("time", [str(it.properties.get("sar:instrument_mode", "")) for it in items]),
        )
        stack = mosaic_same_time(stack)

        # RTC values are linear gamma0; non-positive power has no dB value
        return 10.0 * np.log10(stack.where(stack > 0))

    # ------------------------------------------------------------------
    # Sentinel-2 L2A
    # ------------------------------------------------------------------

    def optical_collection(
        self, aoi: AreaOfInterest, window: TimeWindow,
    ) -> Optional[xr.DataArray]:
        """Search and stack Sentinel-2 L2A reflectance bands plus SCL."""
        items = self._search(OPTICAL_COLLECTION, aoi, window)
        logger.info("Found %d %s scenes.", len(items), OPTICAL_COLLECTION)
        if not items:
            return None

        stack = self._stack(items, list(_S2_ASSETS), self.resolution, aoi)
        stack = stack.assign_coords(band=[_S2_ASSETS[b] for b in stack["band"].values])
        return mosaic_same_time(stack)

    # ------------------------------------------------------------------
    # Copernicus DEM GLO-30
    # ------------------------------------------------------------------

    def elevation(self, aoi: AreaOfInterest) -> xr.DataArray:
        """Fetch and mosaic the GLO-30 tiles covering the AOI."""
        items = list(self._catalog.search(
            collections=[DEM_COLLECTION], bbox=aoi.bbox_wgs84,
        ).items())
        if not items:
            raise RuntimeError("No COP-DEM tiles found for the AOI.")
        logger.debug("Found %d DEM tile(s).", len(items))

        stack = self._stack(items, ["data"], 30, aoi)
        dem = stack.isel(band=0).median(dim="time", skipna=True)
        dem = dem.expand_dims("band").assign_coords(band=["elevation"])
        dem.attrs.update({"units": "metres", "long_name": "Elevation (m)"})
        return dem

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _search(self, collection: str, aoi: AreaOfInterest, window: TimeWindow) -> list:
        search = self._catalog.search(
            collections=[collection],
            bbox=aoi.bbox_wgs84,
            datetime=window.to_stac_range(),
        )
        # Stacked in item order so per-scene coords line up with the time axis
        return sorted(search.items(), key=lambda it: it.datetime)

    def _stack(self, items, assets: Sequence[str], resolution: float, aoi: AreaOfInterest) -> xr.DataArray:
        import stackstac  # noqa: PLC0415

        return stackstac.stack(
            items,
            assets=list(assets),
            bounds_latlon=aoi.bbox_wgs84,
            epsg=aoi.utm_crs.to_epsg(),
            resolution=resolution,
            dtype="float32",  # type: ignore[arg-type]
            fill_value=np.float32("nan"),  # type: ignore[arg-type]
            rescale=False,
            sortby_date=False,
            chunksize={"x": self.chunk_size, "y": self.chunk_size},  # type: ignore[arg-type]
        )


def mosaic_same_time(scenes: xr.DataArray) -> xr.DataArray:
    """Merge granules that share a timestamp into a single scene.

    A datatake crossing tile boundaries arrives as several granules with
    the same acquisition time.  Each pixel takes the first granule that
    has data; per-scene coordinates come from the first granule.
    """
    times, first, counts = np.unique(
        scenes["time"].values, return_index=True, return_counts=True,
    )
    if (counts == 1).all():
        return scenes

    import stackstac  # noqa: PLC0415

    per_scene = [
        name for name, coord in scenes.coords.items()
        if name != "time" and coord.dims == ("time",)
    ]
    scenes = scenes.drop_vars([
        name for name, coord in scenes.coords.items()
        if name != "time" and "time" in coord.dims and name not in per_scene
    ])
    parts = []
    for t, i, n in zip(times, first, counts):
        group = scenes.isel(time=np.flatnonzero(scenes["time"].values == t))
        if n == 1:
            parts.append(group)
            continue
        merged = stackstac.mosaic(group, dim="time").expand_dims(time=[t])
        merged = merged.assign_coords(
            {name: ("time", [scenes[name].values[i]]) for name in per_scene},
        )
        parts.append(merged.transpose(*scenes.dims))
    logger.debug("Mosaicked %d granules into %d scenes.", scenes.sizes["time"], len(times))
    return xr.concat(parts, dim="time")


# ---------------------------------------------------------------------------
# Training points
# ---------------------------------------------------------------------------

class TrainingPointSource(ABC):
    """Supplier of labelled training points.

    Attributes:
        reserved_properties: Property names never offered as label columns.
    """

    reserved_properties: tuple[str, ...] = ("system:index", "geometry")

    @abstractmethod
    def _read_properties(self, asset_id: str) -> list[str]:
        """Every attribute column of the asset, reserved ones included."""

    @abstractmethod
    def load(self, asset_id: str) -> gpd.GeoDataFrame:
        """Load the labelled points of *asset_id*."""

    def list_properties(self, asset_id: str) -> list[str]:
        """Attribute columns usable as a label, in asset order."""
        return [
            p for p in self._read_properties(asset_id)
            if p not in self.reserved_properties
        ]


class VectorFileTrainingSource(TrainingPointSource):
    """Training points read from a local vector file with geopandas.

    Files without a CRS are assumed to be in *default_crs*.
    """

    def __init__(
        self,
        reserved_properties: Sequence[str] | None = None,
        default_crs: str = "EPSG:4326",
    ) -> None:
        Validators.assert_crs_valid(default_crs)
        if reserved_properties is not None:
            self.reserved_properties = tuple(reserved_properties)
        self.default_crs = default_crs

    def _check(self, asset_id: str) -> Path:
        if not str(asset_id).strip():
            raise InputValidationError("No training asset given.")
        path = Path(asset_id)
        Validators.assert_file_exists(path)
        Validators.assert_supported_extension(path, VECTOR_EXTENSIONS)
        return path

    def _read(self, path: Path) -> gpd.GeoDataFrame:
        if path.suffix.lower() == ".parquet":
            return gpd.read_parquet(path)
        return gpd.read_file(path)

    def _read_properties(self, asset_id: str) -> list[str]:
        gdf = self._read(self._check(asset_id))
        return [str(c) for c in gdf.columns if c != gdf.geometry.name]

    def load(self, asset_id: str) -> gpd.GeoDataFrame:
        gdf = self._read(self._check(asset_id))
        if gdf.crs is None:
            logger.warning("Training points in %s have no CRS -- assuming %s.", asset_id, self.default_crs)
            gdf = gdf.set_crs(self.default_crs)
        logger.debug("Loaded %d training points from %s", len(gdf), asset_id)
        return gdf
