"""
Tests for AOI resolution and the analysis time window.
"""

from __future__ import annotations

from datetime import date

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

from flood_fusion.aoi import AOIBuilder, TimeWindow
from shared.python.exceptions import InputValidationError


class TestAOIBuilder:
    def test_from_bbox(self):
        aoi = AOIBuilder.from_bbox(85.30, 26.60, 85.40, 26.70)
        assert aoi.bbox_wgs84 == pytest.approx((85.30, 26.60, 85.40, 26.70))
        assert aoi.utm_crs.to_epsg() == 32645

    def test_southern_hemisphere_zone(self):
        aoi = AOIBuilder.from_bbox(-47.1, -15.9, -47.0, -15.8)
        assert aoi.utm_crs.to_epsg() == 32723

    @pytest.mark.parametrize("bbox", [
        (85.40, 26.60, 85.30, 26.70),
        (85.30, 26.70, 85.40, 26.60),
        (85.30, 26.60, 85.30, 26.70),
    ])
    def test_bbox_order(self, bbox):
        with pytest.raises(InputValidationError, match="bounding box"):
            AOIBuilder.from_bbox(*bbox)

    def test_geodesic_area(self):
        # 0.1 deg x 0.1 deg at 26.65 N is about 11.08 km x 9.96 km
        aoi = AOIBuilder.from_bbox(85.30, 26.60, 85.40, 26.70)
        assert aoi.area_ha == pytest.approx(11_030, rel=0.01)

    def test_polygon_ring_is_closed(self):
        aoi = AOIBuilder.from_polygon([(0, 0), (1, 0), (1, 1), (0, 1)])
        assert aoi.geometry.is_valid
        assert aoi.geometry.exterior.coords[0] == aoi.geometry.exterior.coords[-1]

    def test_self_intersecting_polygon(self):
        bowtie = [(0, 0), (1, 1), (1, 0), (0, 1)]
        with pytest.raises(InputValidationError, match="invalid"):
            AOIBuilder.from_polygon(bowtie)

    def test_too_few_vertices(self):
        with pytest.raises(InputValidationError):
            AOIBuilder.from_polygon([(0, 0), (1, 1)])

    def test_geojson_point_rejected(self):
        with pytest.raises(InputValidationError, match="polygon"):
            AOIBuilder.from_geojson({"type": "Point", "coordinates": [85.3, 26.6]})

    def test_unreadable_geojson(self):
        with pytest.raises(InputValidationError):
            AOIBuilder.from_geojson({"type": "Nonsense"})

    def test_from_file_dissolves(self, tmp_path):
        path = tmp_path / "aoi.geojson"
        gpd.GeoDataFrame(
            geometry=[box(85.30, 26.60, 85.35, 26.70), box(85.35, 26.60, 85.40, 26.70)],
            crs="EPSG:4326",
        ).to_file(path, driver="GeoJSON")
        aoi = AOIBuilder.from_file(str(path))
        assert aoi.geometry.geom_type == "Polygon"
        assert aoi.label == "aoi.geojson"
        assert aoi.bbox_wgs84 == pytest.approx((85.30, 26.60, 85.40, 26.70))

    def test_geometry_in_projected_crs(self):
        aoi = AOIBuilder.from_bbox(85.30, 26.60, 85.40, 26.70)
        utm = aoi.geometry_in(aoi.utm_crs)
        assert utm.area / 10_000 == pytest.approx(aoi.area_ha, rel=0.01)


class TestTimeWindow:
    def test_parse(self):
        window = TimeWindow.parse("2021-06-01", "2021-07-31")
        assert window.start == date(2021, 6, 1)
        assert str(window) == "2021-06-01/2021-07-31"

    @pytest.mark.parametrize("start, end", [
        ("2021-06-01", "2021-06-01"),
        ("2021-07-31", "2021-06-01"),
        ("2021-13-01", "2021-07-31"),
        ("", "2021-07-31"),
    ])
    def test_invalid(self, start, end):
        with pytest.raises(InputValidationError):
            TimeWindow.parse(start, end)

    def test_half_open(self):
        window = TimeWindow.parse("2021-06-01", "2021-07-31")
        times = pd.to_datetime(
            ["2021-05-31T23:59", "2021-06-01T00:00", "2021-07-30T23:00", "2021-07-31T00:00"]
        ).values
        assert window.contains(times).tolist() == [False, True, True, False]

    def test_timezone_aware_times(self):
        window = TimeWindow.parse("2021-06-01", "2021-07-31")
        times = pd.DatetimeIndex(["2021-06-01T02:00"]).tz_localize("Asia/Kathmandu")
        # 2021-05-31T20:15 UTC
        assert window.contains(times).tolist() == [False]

    def test_stac_range_is_closed(self):
        window = TimeWindow.parse("2021-06-01", "2021-07-31")
        assert window.to_stac_range() == "2021-06-01/2021-07-30"

    def test_contains_empty(self):
        window = TimeWindow.parse("2021-06-01", "2021-07-31")
        assert window.contains(np.array([], dtype="datetime64[ns]")).size == 0
