"""
raster.py
=========
Small helpers around the pipeline's raster representation.

A raster is an ``xarray.DataArray`` with dims ``("band", "y", "x")``,
float32 values, ``NaN`` for masked pixels, pixel-centre coordinates in a
projected CRS, and the CRS attached through the ``rioxarray`` accessor.
Helpers never modify their input -- they always return a new DataArray.

``Composite`` is the result of building a per-sensor composite: either
``Present(raster)`` or ``Empty(sensor, reason)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence, Union

import numpy as np
import rasterio.transform
import xarray as xr
import rioxarray  # noqa: F401 -- activates the .rio accessor
from rasterio.features import geometry_mask
from rasterio.transform import Affine
from shapely.geometry.base import BaseGeometry


# ---------------------------------------------------------------------------
# Composite sum type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Present:
    """A composite that contributed at least one band."""

    raster: xr.DataArray

    @property
    def band_names(self) -> list[str]:
        return band_names(self.raster)


@dataclass(frozen=True)
class Empty:
    """A composite with no usable imagery."""

    sensor: str
    reason: str


Composite = Union[Present, Empty]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def make_raster(
    values: np.ndarray,
    band_names: Sequence[str],
    transform: Affine,
    crs: Any,
) -> xr.DataArray:
    """Wrap a ``(band, y, x)`` array in a georeferenced DataArray.

    Args:
        values: Pixel values; 2-D input is treated as a single band.
        band_names: One name per band.
        transform: Affine transform of the upper-left pixel corner.
        crs: Anything ``rioxarray`` accepts as a CRS.
    """
    arr = np.asarray(values, dtype=np.float32)
    if arr.ndim == 2:
        arr = arr[np.newaxis, :, :]
    _, h, w = arr.shape
    xs = transform.c + transform.a * (np.arange(w) + 0.5)
    ys = transform.f + transform.e * (np.arange(h) + 0.5)
    da = xr.DataArray(
        arr,
        dims=("band", "y", "x"),
        coords={"band": list(band_names), "y": ys, "x": xs},
    )
    return da.rio.write_crs(crs)


def with_crs(raster: xr.DataArray, crs: Any) -> xr.DataArray:
    """Attach *crs* to *raster* (no-op when *crs* is None)."""
    if crs is None:
        return raster
    return raster.rio.write_crs(crs)


def empty_like(raster: xr.DataArray) -> xr.DataArray:
    """Zero-band placeholder sharing *raster*'s grid."""
    return raster.isel(band=slice(0, 0))


# ---------------------------------------------------------------------------
# Band handling
# ---------------------------------------------------------------------------

def band_names(raster: xr.DataArray) -> list[str]:
    """Band names of *raster* (empty list for a zero-band raster)."""
    if "band" not in raster.dims:
        return [str(raster.name)] if raster.name is not None else []
    return [str(b) for b in raster["band"].values]


def band_count(raster: xr.DataArray) -> int:
    return raster.sizes.get("band", 1)


def select_band(raster: xr.DataArray, name: str) -> xr.DataArray:
    """Return band *name* as a one-band raster, or a zero-band placeholder."""
    if name not in band_names(raster):
        return empty_like(raster)
    return raster.sel(band=[name])


def rename_band(raster: xr.DataArray, name: str) -> xr.DataArray:
    """Rename the single band of *raster*."""
    return raster.assign_coords(band=[name])


GRID_COORDS = ("band", "y", "x", "spatial_ref")


def strip_metadata_coords(raster: xr.DataArray) -> xr.DataArray:
    """Drop every coordinate except the band/grid axes and ``spatial_ref``.

    Catalog stacks carry per-band metadata (``common_name``, ``title``,
    ``center_wavelength``...) that differs between sensors.
    """
    extra = [c for c in raster.coords if c not in GRID_COORDS]
    return raster.drop_vars(extra)


def concat_bands(rasters: Iterable[xr.DataArray]) -> xr.DataArray:
    """Concatenate rasters band-wise, skipping zero-band placeholders."""
    parts = [strip_metadata_coords(r) for r in rasters if band_count(r) > 0]
    if not parts:
        raise ValueError("Nothing to concatenate: every input has zero bands.")
    out = xr.concat(
        parts, dim="band", join="exact", coords="minimal", compat="override",
    )
    return with_crs(out, parts[0].rio.crs)


# ---------------------------------------------------------------------------
# Grid helpers
# ---------------------------------------------------------------------------

def grid_transform(raster: xr.DataArray) -> Affine:
    """Derive the Affine transform from the pixel-centre coordinates."""
    y_coords = raster["y"].values
    x_coords = raster["x"].values

    res_x = float(x_coords[1] - x_coords[0]) if len(x_coords) > 1 else 10.0
    res_y = float(y_coords[1] - y_coords[0]) if len(y_coords) > 1 else -10.0

    x_min = float(x_coords[0]) - res_x / 2.0
    y_max = float(y_coords[0]) - res_y / 2.0   # res_y is negative

    return rasterio.transform.from_origin(x_min, y_max, abs(res_x), abs(res_y))


def pixel_area_m2(raster: xr.DataArray) -> float:
    """Area of one pixel in square metres (projected grids only)."""
    t = grid_transform(raster)
    return abs(t.a * t.e)


def grid_shape(raster: xr.DataArray) -> tuple[int, int]:
    return raster.sizes["y"], raster.sizes["x"]


def inside_mask(raster: xr.DataArray, geometry: BaseGeometry) -> np.ndarray:
    """Boolean ``(y, x)`` array: True for pixels whose centre is inside *geometry*.

    *geometry* must already be in the raster CRS.
    """
    return geometry_mask(
        [geometry],
        out_shape=grid_shape(raster),
        transform=grid_transform(raster),
        invert=True,
    )


def clip_to_geometry(raster: xr.DataArray, geometry: BaseGeometry) -> xr.DataArray:
    """Mask every pixel outside *geometry* (raster CRS); the grid is kept."""
    inside = xr.DataArray(inside_mask(raster, geometry), dims=("y", "x"))
    return raster.where(inside)


def snap_to_grid(
    raster: xr.DataArray,
    reference: xr.DataArray,
    method: str = "nearest",
    tolerance: float = 0.5,
) -> xr.DataArray:
    """Put *raster* on *reference*'s pixel grid.

    Coordinates already within *tolerance* metres of the reference are
    relabelled exactly; otherwise the raster is interpolated with
    *method* (``"nearest"`` for reflectance and class codes, ``"linear"``
    for smooth surfaces such as elevation).
    """
    ref_y = reference["y"].values
    ref_x = reference["x"].values
    src_y = raster["y"].values
    src_x = raster["x"].values

    if len(ref_y) == len(src_y) and len(ref_x) == len(src_x):
        dy = float(np.abs(ref_y - src_y).max()) if len(ref_y) else 0.0
        dx = float(np.abs(ref_x - src_x).max()) if len(ref_x) else 0.0
    else:
        dy = dx = float("inf")

    if dy <= tolerance and dx <= tolerance:
        out = raster.assign_coords(y=ref_y, x=ref_x)
    else:
        out = raster.interp(y=ref_y, x=ref_x, method=method)
    return with_crs(out, reference.rio.crs)
