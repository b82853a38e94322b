"""
Tests for the flood mask GeoTIFF export.
"""

from __future__ import annotations

import numpy as np
import pytest
import rasterio
from shapely.geometry import box

from flood_fusion.export import EXPORT_NAME, export_flood_mask
from flood_fusion.raster import make_raster
from shared.python.exceptions import ExportError

from conftest import CRS, RES, SIZE, TRANSFORM, X0, Y0, flood_half


@pytest.fixture
def flood_mask():
    return make_raster(flood_half().astype(np.uint8), ["flood"], TRANSFORM, CRS)


def _scene_box():
    return box(X0, Y0 - SIZE * RES, X0 + SIZE * RES, Y0)


def test_written_as_uint8_with_nodata(flood_mask, tmp_path):
    path = export_flood_mask(flood_mask, _scene_box(), tmp_path)
    assert path == tmp_path / f"{EXPORT_NAME}.tif"
    with rasterio.open(path) as src:
        assert src.count == 1
        assert src.dtypes[0] == "uint8"
        assert src.nodata == 0
        assert src.crs.to_epsg() == 32645
        assert tuple(src.transform)[:6] == pytest.approx(tuple(TRANSFORM)[:6])
        data = src.read(1)
    assert data.sum() == flood_half().sum()


def test_clipped_to_geometry(flood_mask, tmp_path):
    top_half = box(X0, Y0 - SIZE * RES / 2, X0 + SIZE * RES, Y0)
    path = export_flood_mask(flood_mask, top_half, tmp_path, name="top")
    with rasterio.open(path) as src:
        data = src.read(1)
    assert data[SIZE // 2:, :].sum() == 0
    assert data[: SIZE // 2, : SIZE // 2].all()


def test_output_dir_created(flood_mask, tmp_path):
    path = export_flood_mask(flood_mask, _scene_box(), tmp_path / "a" / "b")
    assert path.exists()


def test_unwritable_target(flood_mask, tmp_path):
    blocker = tmp_path / "taken"
    blocker.write_text("not a directory")
    with pytest.raises(ExportError) as info:
        export_flood_mask(flood_mask, _scene_box(), blocker)
    assert info.value.category == "export"
