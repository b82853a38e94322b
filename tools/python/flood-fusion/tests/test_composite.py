"""
Tests for composite building and stacking (synthetic imagery only).
"""

from __future__ import annotations

import numpy as np
import pytest

from flood_fusion.composite import SensorCompositeBuilder, build_stack, ratio_band
from flood_fusion.config import (
    DEFAULT_CONFIG,
    OPTICAL_BANDS,
    RATIO_FILTERED,
    VH_FILTERED,
    VV_FILTERED,
)
from flood_fusion.raster import Empty, Present, band_names, make_raster
from shared.python.exceptions import DataAvailabilityError

from conftest import (
    CRS,
    SIZE,
    TRANSFORM,
    FakeImagerySource,
    optical_scenes,
    radar_scenes,
)


class TestRadarComposite:
    def test_bands_and_order(self, aoi, window, imagery):
        radar = SensorCompositeBuilder(imagery).radar_composite(aoi, window)
        assert isinstance(radar, Present)
        assert radar.band_names == [VV_FILTERED, VH_FILTERED, RATIO_FILTERED]

    def test_flooded_half_is_dark(self, aoi, window, imagery):
        radar = SensorCompositeBuilder(imagery).radar_composite(aoi, window)
        vv = radar.raster.sel(band=VV_FILTERED).values
        assert np.nanmean(vv[:, :50]) < -18
        assert np.nanmean(vv[:, 150:]) > -10

    def test_scenes_outside_window_are_empty(self, aoi, window):
        source = FakeImagerySource(radar=radar_scenes(dates=["2021-08-05", "2021-09-01"]))
        radar = SensorCompositeBuilder(source).radar_composite(aoi, window)
        assert isinstance(radar, Empty)
        assert radar.sensor == "radar"

    def test_window_end_is_exclusive(self, aoi, window):
        source = FakeImagerySource(radar=radar_scenes(dates=["2021-07-31"]))
        assert isinstance(SensorCompositeBuilder(source).radar_composite(aoi, window), Empty)

    def test_wrong_orbit_is_filtered(self, aoi, window):
        source = FakeImagerySource(radar=radar_scenes(orbit="ascending"))
        assert isinstance(SensorCompositeBuilder(source).radar_composite(aoi, window), Empty)

        cfg = DEFAULT_CONFIG.replace(orbit_direction="ascending")
        assert isinstance(SensorCompositeBuilder(source, cfg).radar_composite(aoi, window), Present)

    def test_wrong_mode_is_filtered(self, aoi, window):
        source = FakeImagerySource(radar=radar_scenes(mode="EW"))
        assert isinstance(SensorCompositeBuilder(source).radar_composite(aoi, window), Empty)

    def test_single_polarisation_collection_is_empty(self, aoi, window):
        source = FakeImagerySource(radar=radar_scenes().sel(band=["VV"]))
        assert isinstance(SensorCompositeBuilder(source).radar_composite(aoi, window), Empty)

    def test_no_catalog_scenes(self, aoi, window):
        radar = SensorCompositeBuilder(FakeImagerySource()).radar_composite(aoi, window)
        assert isinstance(radar, Empty)


class TestOpticalComposite:
    def test_reflectance_bands(self, aoi, window, imagery):
        optical = SensorCompositeBuilder(imagery).optical_composite(aoi, window)
        assert isinstance(optical, Present)
        assert optical.band_names == list(OPTICAL_BANDS)
        assert float(np.nanmax(optical.raster.values)) <= 1.0

    def test_clouded_observation_excluded_from_median(self, aoi, window):
        # Two scenes: the clouded one would otherwise pull the median up
        source = FakeImagerySource(
            optical=optical_scenes(
                dates=["2021-06-05", "2021-06-17"],
                cloud_block=(slice(20, 30), slice(150, 160)),
            ),
        )
        optical = SensorCompositeBuilder(source).optical_composite(aoi, window)
        b8 = optical.raster.sel(band="B8").values
        assert np.allclose(b8[20:30, 150:160], 0.3)

    def test_empty_window(self, aoi, window):
        source = FakeImagerySource(optical=optical_scenes(dates=["2020-01-01"]))
        optical = SensorCompositeBuilder(source).optical_composite(aoi, window)
        assert isinstance(optical, Empty)
        assert optical.sensor == "optical"


class TestBuild:
    def test_both_composites_built(self, aoi, window, imagery):
        radar, optical = SensorCompositeBuilder(imagery).build(aoi, window)
        assert isinstance(radar, Present) and isinstance(optical, Present)

    def test_elevation_on_grid(self, aoi, window, imagery):
        builder = SensorCompositeBuilder(imagery)
        radar, _ = builder.build(aoi, window)
        dem = builder.elevation_on_grid(aoi, radar.raster)
        assert dem.shape == (1, SIZE, SIZE)
        assert np.allclose(dem.values, 50.0)


class TestBuildStack:
    def _composites(self, aoi, window, imagery):
        return SensorCompositeBuilder(imagery).build(aoi, window)

    def test_band_order(self, aoi, window, imagery):
        radar, optical = self._composites(aoi, window, imagery)
        stack = build_stack(radar, optical)
        assert band_names(stack) == [*OPTICAL_BANDS, VV_FILTERED, VH_FILTERED, RATIO_FILTERED]
        assert stack.rio.crs == radar.raster.rio.crs

    def test_empty_radar_aborts(self, aoi, window, imagery):
        _, optical = self._composites(aoi, window, imagery)
        with pytest.raises(DataAvailabilityError, match="radar"):
            build_stack(Empty("radar", "no scenes"), optical)

    def test_empty_optical_aborts(self, aoi, window, imagery):
        radar, _ = self._composites(aoi, window, imagery)
        with pytest.raises(DataAvailabilityError, match="optical"):
            build_stack(radar, Empty("optical", "no scenes"))

    def test_one_sided_radar_aborts(self, aoi, window, imagery):
        radar, optical = self._composites(aoi, window, imagery)
        one_sided = Present(radar.raster.sel(band=[VV_FILTERED]))
        with pytest.raises(DataAvailabilityError, match="polarisations"):
            build_stack(one_sided, optical)

    def test_optical_snapped_to_radar_grid(self, aoi, window, imagery):
        radar, optical = self._composites(aoi, window, imagery)
        shifted = optical.raster.assign_coords(
            x=optical.raster["x"].values + 3.0,
            y=optical.raster["y"].values - 3.0,
        )
        stack = build_stack(radar, Present(shifted))
        assert np.array_equal(stack["x"].values, radar.raster["x"].values)
        assert np.array_equal(stack["y"].values, radar.raster["y"].values)

    def test_sensor_band_metadata_does_not_block_stacking(self, aoi, window):
        optical = optical_scenes()
        names = list(optical["band"].values)
        optical = optical.assign_coords(
            common_name=("band", [n.lower() for n in names]),
            center_wavelength=("band", np.linspace(0.49, 2.19, len(names))),
            title=("band", [f"Band {n}" for n in names]),
        )
        radar = radar_scenes().assign_coords(title=("band", ["VV: vertical", "VH: cross"]))
        source = FakeImagerySource(radar=radar, optical=optical)

        radar_c, optical_c = SensorCompositeBuilder(source).build(aoi, window)
        stack = build_stack(radar_c, optical_c)
        assert band_names(stack) == [*OPTICAL_BANDS, VV_FILTERED, VH_FILTERED, RATIO_FILTERED]
        assert "common_name" not in stack.coords
        assert "title" not in stack.coords

    def test_mismatched_band_coords_on_composites(self, aoi, window, imagery):
        radar, optical = self._composites(aoi, window, imagery)
        tagged = optical.raster.assign_coords(
            common_name=("band", [str(b).lower() for b in optical.raster["band"].values]),
        )
        stack = build_stack(radar, Present(tagged))
        assert stack.sizes["band"] == len(OPTICAL_BANDS) + 3
        assert stack.rio.crs == radar.raster.rio.crs


def test_ratio_band_masks_zero_denominator():
    num = make_raster(np.full((4, 4), 2.0), ["VV_Filtered"], TRANSFORM, CRS)
    den_values = np.full((4, 4), 4.0)
    den_values[0, 0] = 0.0
    den = make_raster(den_values, ["VH_Filtered"], TRANSFORM, CRS)
    ratio = ratio_band(num, den, RATIO_FILTERED)
    assert band_names(ratio) == [RATIO_FILTERED]
    assert np.isnan(ratio.values[0, 0, 0])
    assert np.allclose(ratio.values[0, 1:, 1:], 0.5)
