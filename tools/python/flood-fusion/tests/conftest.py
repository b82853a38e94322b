"""
Shared fixtures for the flood-fusion tests.

Everything runs offline on a synthetic 2 km x 2 km scene in UTM 45N
(EPSG:32645), 200 x 200 pixels at 10 m.  The left half (x < 301000) is
flooded: low radar backscatter and low near-infrared reflectance.  The
right half is dry land.  Terrain is flat.
"""

from __future__ import annotations

import threading
from typing import Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import xarray as xr
from rasterio.transform import from_origin
from shapely.geometry import Point, box, mapping

from flood_fusion.aoi import AOIBuilder, AreaOfInterest, TimeWindow
from flood_fusion.cloud_mask import CloudMask, QABitCloudMask
from flood_fusion.config import OPTICAL_BANDS
from flood_fusion.raster import make_raster
from flood_fusion.sources import ImagerySource, TrainingPointSource

CRS = "EPSG:32645"
X0, Y0 = 300_000.0, 2_950_000.0
RES = 10.0
SIZE = 200
TRANSFORM = from_origin(X0, Y0, RES, RES)

# Column index where dry land starts
FLOOD_COLS = SIZE // 2

# Typical dB backscatter
VV_FLOOD, VV_DRY = -20.0, -8.0
VH_FLOOD, VH_DRY = -26.0, -14.0

# Sentinel-2 DN per band (B2 ... B12)
OPTICAL_FLOOD = [600, 700, 500, 400, 300, 250, 200, 180, 100, 80]
OPTICAL_DRY = [400, 700, 600, 1500, 2500, 2800, 3000, 3100, 2000, 1200]

SCENE_DATES = ["2021-06-05", "2021-06-17", "2021-06-29"]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def flood_half() -> np.ndarray:
    """Boolean (y, x) array, True over the flooded half."""
    mask = np.zeros((SIZE, SIZE), dtype=bool)
    mask[:, :FLOOD_COLS] = True
    return mask


def scene_stack(
    values: np.ndarray,
    bands: list[str],
    dates: list[str],
    **time_coords,
) -> xr.DataArray:
    """Wrap a (time, band, y, x) array as a georeferenced scene stack."""
    xs = X0 + RES * (np.arange(values.shape[-1]) + 0.5)
    ys = Y0 - RES * (np.arange(values.shape[-2]) + 0.5)
    coords = {
        "time": pd.to_datetime(dates, format="ISO8601").values,
        "band": bands,
        "y": ys,
        "x": xs,
    }
    for name, vals in time_coords.items():
        coords[name] = ("time", list(vals))
    da = xr.DataArray(values.astype(np.float32), dims=("time", "band", "y", "x"), coords=coords)
    return da.rio.write_crs(CRS)


def radar_scenes(
    dates: list[str] = SCENE_DATES,
    orbit: str = "descending",
    mode: str = "IW",
    seed: int = 0,
) -> xr.DataArray:
    rng = np.random.default_rng(seed)
    flood = flood_half()
    vv = np.where(flood, VV_FLOOD, VV_DRY)
    vh = np.where(flood, VH_FLOOD, VH_DRY)
    data = np.stack([np.stack([vv, vh]) for _ in dates])
    data = data + rng.normal(0.0, 0.3, size=data.shape)
    return scene_stack(
        data, ["VV", "VH"], dates,
        orbit_state=[orbit] * len(dates),
        instrument_mode=[mode] * len(dates),
    )


def optical_scenes(
    dates: list[str] = SCENE_DATES,
    cloud_block: Optional[tuple[slice, slice]] = None,
) -> xr.DataArray:
    """Optical DN scenes plus QA60; *cloud_block* is clouded in the first scene."""
    flood = flood_half()
    bands = np.stack([
        np.where(flood, f, d) for f, d in zip(OPTICAL_FLOOD, OPTICAL_DRY)
    ]).astype(np.float32)
    qa = np.zeros((1, SIZE, SIZE), dtype=np.float32)
    scenes = []
    for i, _ in enumerate(dates):
        refl = bands.copy()
        qa_i = qa.copy()
        if cloud_block is not None and i == 0:
            refl[:, cloud_block[0], cloud_block[1]] = 9000.0
            qa_i[0, cloud_block[0], cloud_block[1]] = 1 << 10
        scenes.append(np.concatenate([refl, qa_i]))
    return scene_stack(np.stack(scenes), [*OPTICAL_BANDS, "QA60"], dates)


def flat_dem(elevation: float = 50.0) -> xr.DataArray:
    return make_raster(np.full((SIZE, SIZE), elevation), ["elevation"], TRANSFORM, CRS)


def scene_aoi() -> AreaOfInterest:
    """AOI covering exactly the synthetic grid."""
    square = box(X0, Y0 - SIZE * RES, X0 + SIZE * RES, Y0)
    wgs84 = gpd.GeoSeries([square], crs=CRS).to_crs("EPSG:4326").iloc[0]
    return AOIBuilder.from_geojson(mapping(wgs84), label="synthetic")


def pixel_centre(row: int, col: int) -> tuple[float, float]:
    return X0 + RES * (col + 0.5), Y0 - RES * (row + 0.5)


def training_points(n_per_class: int = 10, seed: int = 3) -> gpd.GeoDataFrame:
    """Labelled points well away from the flood boundary."""
    rng = np.random.default_rng(seed)
    rows = rng.integers(10, SIZE - 10, size=2 * n_per_class)
    flood_cols = rng.integers(10, FLOOD_COLS - 20, size=n_per_class)
    dry_cols = rng.integers(FLOOD_COLS + 20, SIZE - 10, size=n_per_class)
    cols = np.concatenate([flood_cols, dry_cols])
    labels = [1] * n_per_class + [0] * n_per_class
    geoms = [Point(*pixel_centre(int(r), int(c))) for r, c in zip(rows, cols)]
    return gpd.GeoDataFrame(
        {"system:index": [f"{i:04d}" for i in range(len(labels))],
         "flooded": labels,
         "region": ["north"] * len(labels)},
        geometry=geoms,
        crs=CRS,
    )


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeImagerySource(ImagerySource):
    """In-memory imagery; ``None`` stands for an empty catalog."""

    def __init__(
        self,
        radar: Optional[xr.DataArray] = None,
        optical: Optional[xr.DataArray] = None,
        dem: Optional[xr.DataArray] = None,
        mask: Optional[CloudMask] = None,
    ) -> None:
        self.radar = radar
        self.optical = optical
        self.dem = dem if dem is not None else flat_dem()
        self._mask = mask or QABitCloudMask()

    @property
    def cloud_mask(self) -> CloudMask:
        return self._mask

    def radar_collection(self, aoi: AreaOfInterest, window: TimeWindow):
        return self.radar

    def optical_collection(self, aoi: AreaOfInterest, window: TimeWindow):
        return self.optical

    def elevation(self, aoi: AreaOfInterest) -> xr.DataArray:
        return self.dem


class GatedImagerySource(FakeImagerySource):
    """Blocks inside ``radar_collection`` until ``gate`` is set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.gate = threading.Event()

    def radar_collection(self, aoi: AreaOfInterest, window: TimeWindow):
        self.entered.set()
        self.gate.wait(timeout=30)
        return self.radar


class FakeTrainingSource(TrainingPointSource):
    """Serves one in-memory GeoDataFrame under any asset id."""

    def __init__(self, points: gpd.GeoDataFrame) -> None:
        self.points = points

    def _read_properties(self, asset_id: str) -> list[str]:
        return [c for c in self.points.columns if c != self.points.geometry.name]

    def load(self, asset_id: str) -> gpd.GeoDataFrame:
        return self.points.copy()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def aoi() -> AreaOfInterest:
    return scene_aoi()


@pytest.fixture
def window() -> TimeWindow:
    return TimeWindow.parse("2021-06-01", "2021-07-31")


@pytest.fixture
def imagery() -> FakeImagerySource:
    return FakeImagerySource(radar=radar_scenes(), optical=optical_scenes())


@pytest.fixture
def points() -> gpd.GeoDataFrame:
    return training_points()


@pytest.fixture
def training_source(points) -> FakeTrainingSource:
    return FakeTrainingSource(points)
