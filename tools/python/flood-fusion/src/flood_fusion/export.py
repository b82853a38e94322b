"""
export.py
=========
Write the final flood mask to disk.

GeoTIFF -- single band, uint8, flooded = 1, nodata = 0, clipped to the AOI
at the processing resolution.  A failed export raises ``ExportError`` and
never touches the analysis results already computed.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import rasterio
import xarray as xr
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import ExportError

from .raster import grid_transform, inside_mask

logger = logging.getLogger("geoscripthub.flood_fusion.export")

EXPORT_NAME = "flood_area_extraction"


def export_flood_mask(
    flood_mask: xr.DataArray,
    geometry: BaseGeometry,
    output_dir: Path,
    name: str = EXPORT_NAME,
) -> Path:
    """Write *flood_mask* clipped to *geometry* (mask CRS) as a GeoTIFF.

    Returns:
        Path of the written file.

    Raises:
        ExportError: If the file cannot be written.
    """
    path = Path(output_dir) / f"{name}.tif"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        values = np.asarray(flood_mask.isel(band=0).values)
        out = ((values == 1) & inside_mask(flood_mask, geometry)).astype(np.uint8)
        height, width = out.shape
        # Single partial tile is pointless for small rasters
        tiled = height >= 256 and width >= 256

        profile = dict(
            driver="GTiff",
            height=height,
            width=width,
            count=1,
            dtype="uint8",
            crs=flood_mask.rio.crs,
            transform=grid_transform(flood_mask),
            nodata=0,
            compress="lzw",
        )
        if tiled:
            profile.update(tiled=True, blockxsize=256, blockysize=256)

        with rasterio.open(path, "w", **profile) as dst:
            dst.write(out, 1)
            dst.update_tags(layer="flood", generator="flood-fusion")
    except Exception as exc:
        raise ExportError(str(path), str(exc)) from exc

    logger.info("Flood mask written to %s", path)
    return path
