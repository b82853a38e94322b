"""
display.py
==========
Display descriptions handed to whatever renders the map.

Nothing here draws anything: each ``DisplayLayer`` pairs a raster with the
bands to show, the value range to stretch over, and an optional palette.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import xarray as xr

from .config import RATIO_FILTERED, VH_FILTERED, VV_FILTERED
from .raster import Composite, Present

FLOOD_COLOUR = "#0000FF"

LEGEND: Dict[str, str] = {"Flood/Water": FLOOD_COLOUR}


@dataclass(frozen=True)
class DisplayLayer:
    """One map layer: raster, bands, stretch, palette."""

    name: str
    raster: xr.DataArray
    bands: Tuple[str, ...]
    vmin: Tuple[float, ...]
    vmax: Tuple[float, ...]
    palette: Tuple[str, ...] = field(default_factory=tuple)

    def view(self) -> xr.DataArray:
        """The raster restricted to :attr:`bands`, in display order."""
        return self.raster.sel(band=list(self.bands))


def optical_layer(optical: Present) -> DisplayLayer:
    return DisplayLayer(
        name="Sentinel-2 RGB",
        raster=optical.raster,
        bands=("B4", "B3", "B2"),
        vmin=(0.0, 0.0, 0.0),
        vmax=(0.3, 0.3, 0.3),
    )


def radar_layer(radar: Present) -> DisplayLayer:
    return DisplayLayer(
        name="Sentinel-1 false colour",
        raster=radar.raster,
        bands=(VV_FILTERED, VH_FILTERED, RATIO_FILTERED),
        vmin=(-20.0, -25.0, 0.5),
        vmax=(0.0, -5.0, 5.0),
    )


def flood_layer(flood_mask: xr.DataArray) -> DisplayLayer:
    """Flood pixels only; non-flood pixels are left transparent."""
    return DisplayLayer(
        name="Flood area",
        raster=flood_mask.where(flood_mask == 1),
        bands=(str(flood_mask["band"].values[0]),),
        vmin=(0.0,),
        vmax=(1.0,),
        palette=(FLOOD_COLOUR,),
    )


def display_layers(
    optical: Composite,
    radar: Composite,
    flood_mask: Optional[xr.DataArray],
) -> List[DisplayLayer]:
    """Layers in drawing order (bottom first); missing inputs are skipped."""
    layers: List[DisplayLayer] = []
    if isinstance(optical, Present):
        layers.append(optical_layer(optical))
    if isinstance(radar, Present):
        layers.append(radar_layer(radar))
    if flood_mask is not None:
        layers.append(flood_layer(flood_mask))
    return layers
