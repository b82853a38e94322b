"""
Tests for the adaptive speckle filter.

Pure numpy / xarray -- no imagery access.
"""

from __future__ import annotations

import numpy as np
import pytest

from flood_fusion.raster import band_names, make_raster
from flood_fusion.speckle import SpeckleFilter, local_mean_variance, refined_lee

from conftest import CRS, TRANSFORM


# ---------------------------------------------------------------------------
# Local statistics
# ---------------------------------------------------------------------------

class TestLocalMeanVariance:
    def test_uniform_has_zero_variance(self):
        mean, var = local_mean_variance(np.full((9, 9), 4.0), size=7)
        assert np.allclose(mean, 4.0)
        assert np.allclose(var, 0.0)

    def test_masked_neighbours_ignored(self):
        img = np.full((9, 9), 4.0)
        img[4, 5] = np.nan
        mean, _ = local_mean_variance(img, size=3)
        assert mean[4, 4] == pytest.approx(4.0)

    def test_fully_masked_window_is_nan(self):
        img = np.full((9, 9), np.nan)
        mean, var = local_mean_variance(img, size=3)
        assert np.isnan(mean).all()
        assert np.isnan(var).all()


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------

class TestRefinedLee:
    @pytest.mark.parametrize("value", [0.05, 1.0, -12.5, 250.0])
    def test_uniform_input_unchanged(self, value):
        # variance 0 -> b = 1 -> w = 0.5 -> 0.5 v + 0.5 v = v
        img = np.full((15, 15), value)
        out = refined_lee(img, size=7)
        assert np.allclose(out, value, rtol=1e-6)

    def test_zero_mean_passes_through(self):
        img = np.zeros((10, 10))
        out = refined_lee(img)
        assert np.array_equal(out, img.astype(np.float32))
        assert np.isfinite(out).all()

    def test_masked_pixel_stays_masked(self):
        img = np.full((10, 10), 3.0)
        img[5, 5] = np.nan
        out = refined_lee(img)
        assert np.isnan(out[5, 5])
        assert np.isfinite(np.delete(out.ravel(), 55)).all()
        assert np.allclose(np.delete(out.ravel(), 55), 3.0)

    def test_reduces_noise_in_homogeneous_area(self):
        rng = np.random.default_rng(1)
        img = 100.0 + rng.normal(0.0, 5.0, size=(60, 60))
        out = refined_lee(img)
        assert out[10:-10, 10:-10].std() < img[10:-10, 10:-10].std()

    def test_returns_float32(self):
        assert refined_lee(np.ones((5, 5))).dtype == np.float32


class TestSpeckleFilter:
    def _raster(self):
        rng = np.random.default_rng(0)
        values = rng.normal(-10.0, 1.0, size=(2, 20, 20))
        return make_raster(values, ["VV", "VH"], TRANSFORM, CRS)

    def test_even_window_rejected(self):
        with pytest.raises(ValueError):
            SpeckleFilter(window=6)

    def test_filter_band_renames(self):
        out = SpeckleFilter().filter_band(self._raster(), "VV", "VV_Filtered")
        assert band_names(out) == ["VV_Filtered"]
        assert out.shape == (1, 20, 20)

    def test_missing_band_gives_empty_placeholder(self):
        out = SpeckleFilter().filter_band(self._raster(), "HH")
        assert out.sizes["band"] == 0
        assert out.sizes["y"] == 20

    def test_apply_keeps_band_names_and_crs(self):
        raster = self._raster()
        out = SpeckleFilter().apply(raster)
        assert band_names(out) == ["VV", "VH"]
        assert out.rio.crs == raster.rio.crs

    def test_bands_filtered_independently(self):
        raster = self._raster()
        both = SpeckleFilter().apply(raster)
        alone = SpeckleFilter().filter_band(raster, "VH")
        assert np.allclose(both.sel(band="VH").values, alone.isel(band=0).values)
