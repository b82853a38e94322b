"""
aoi.py
======
Define the analysis area and the analysis time window.

The area of interest can be built from:
  - Bounding box [min_lon, min_lat, max_lon, max_lat]
  - Polygon as a list of (lon, lat) coordinate pairs
  - GeoJSON geometry mapping (e.g. drawn on a web map)
  - Shapefile / GeoPackage / GeoJSON file

All builders return a validated ``AreaOfInterest`` carrying the dissolved
WGS84 geometry, its local UTM projection, and the geodesic area used in
the final report.  ``TimeWindow`` holds the half-open ``[start, end)``
date range used to filter imagery.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS, Geod
from shapely.geometry import Polygon, box, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

_GEOD = Geod(ellps="WGS84")


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AreaOfInterest:
    """Holds the resolved analysis area in multiple representations."""

    # Dissolved geometry in WGS84 (EPSG:4326)
    gdf_wgs84: gpd.GeoDataFrame

    # Tight bounding box in WGS84 for catalog queries
    bbox_wgs84: Tuple[float, float, float, float]   # (min_lon, min_lat, max_lon, max_lat)

    # Best-fit projected CRS (UTM zone derived from AOI centroid)
    utm_crs: CRS

    # Dissolved geometry reprojected to UTM
    gdf_utm: gpd.GeoDataFrame

    # Human-readable description
    label: str

    @property
    def geometry(self) -> BaseGeometry:
        """Dissolved WGS84 geometry."""
        return self.gdf_wgs84.geometry.iloc[0]

    def geometry_in(self, crs: Any) -> BaseGeometry:
        """Return the dissolved geometry reprojected to *crs*."""
        return self.gdf_wgs84.to_crs(crs).geometry.iloc[0]

    @property
    def area_m2(self) -> float:
        """Geodesic area on the WGS84 ellipsoid, in square metres."""
        area, _ = _GEOD.geometry_area_perimeter(self.geometry)
        return abs(float(area))

    @property
    def area_ha(self) -> float:
        """Geodesic area in hectares."""
        return self.area_m2 / 10_000.0

    def __repr__(self) -> str:  # noqa: D105
        w = self.bbox_wgs84[2] - self.bbox_wgs84[0]
        h = self.bbox_wgs84[3] - self.bbox_wgs84[1]
        return (
            f"<AreaOfInterest '{self.label}' "
            f"bbox=({self.bbox_wgs84[0]:.4f},{self.bbox_wgs84[1]:.4f},"
            f"{self.bbox_wgs84[2]:.4f},{self.bbox_wgs84[3]:.4f}) "
            f"~{w:.3f}x{h:.3f} deg>"
        )


@dataclass(frozen=True)
class TimeWindow:
    """Half-open ``[start, end)`` calendar date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        Validators.assert_date_order(self.start, self.end)

    @classmethod
    def parse(cls, start: str, end: str) -> "TimeWindow":
        """Build a window from two ISO 8601 date strings.

        Raises:
            InputValidationError: If either date is unparseable or
                ``start >= end``.
        """
        return cls(
            start=Validators.parse_iso_date(start, "Start date"),
            end=Validators.parse_iso_date(end, "End date"),
        )

    def contains(self, times: Any) -> np.ndarray:
        """Boolean array: which of *times* fall inside ``[start, end)``."""
        t = pd.DatetimeIndex(np.asarray(times))
        if t.tz is not None:
            t = t.tz_convert("UTC").tz_localize(None)
        return np.asarray(
            (t >= pd.Timestamp(self.start)) & (t < pd.Timestamp(self.end))
        )

    def to_stac_range(self) -> str:
        """``start/end`` string accepted by STAC ``datetime`` searches.

        STAC ranges are closed, so the exclusive end is pulled back a day.
        """
        last = pd.Timestamp(self.end) - pd.Timedelta(days=1)
        return f"{self.start.isoformat()}/{last.date().isoformat()}"

    def __str__(self) -> str:
        return f"{self.start.isoformat()}/{self.end.isoformat()}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _utm_crs_from_lonlat(lon: float, lat: float) -> CRS:
    """Return the EPSG UTM CRS that covers *lon*, *lat*."""
    zone = min(int((lon + 180) / 6) + 1, 60)
    base = 32600 if lat >= 0 else 32700
    return CRS.from_epsg(base + zone)


def _build_result(gdf: gpd.GeoDataFrame, label: str) -> AreaOfInterest:
    """Validate, dissolve, reproject, and package a GeoDataFrame."""
    if gdf.crs is None:
        warnings.warn(
            "Input geometry has no CRS -- assuming WGS84 (EPSG:4326).",
            stacklevel=3,
        )
        gdf = gdf.set_crs("EPSG:4326")
    gdf_wgs84 = gdf.to_crs("EPSG:4326")

    geoms = [g for g in gdf_wgs84.geometry if g is not None and not g.is_empty]
    if not geoms:
        raise InputValidationError(
            "Area of interest is empty. Draw a rectangle or polygon first."
        )
    for geom in geoms:
        if geom.geom_type not in ("Polygon", "MultiPolygon"):
            raise InputValidationError(
                f"Area of interest must be a polygon, got {geom.geom_type}."
            )
        if not geom.is_valid:
            raise InputValidationError(
                "Area of interest polygon is invalid (self-intersecting or "
                "degenerate). Redraw it."
            )

    dissolved_geom = unary_union(geoms)
    if dissolved_geom.area <= 0:
        raise InputValidationError("Area of interest has zero area.")

    dissolved = gpd.GeoDataFrame(geometry=[dissolved_geom], crs="EPSG:4326")
    bbox = dissolved.total_bounds  # (minx, miny, maxx, maxy)
    bbox_wgs84 = (float(bbox[0]), float(bbox[1]), float(bbox[2]), float(bbox[3]))

    # Derive UTM CRS from centroid
    cx = (bbox[0] + bbox[2]) / 2.0
    cy = (bbox[1] + bbox[3]) / 2.0
    utm = _utm_crs_from_lonlat(cx, cy)

    return AreaOfInterest(
        gdf_wgs84=dissolved,
        bbox_wgs84=bbox_wgs84,
        utm_crs=utm,
        gdf_utm=dissolved.to_crs(utm),
        label=label,
    )


# ---------------------------------------------------------------------------
# Public builder class
# ---------------------------------------------------------------------------

class AOIBuilder:
    """Resolves an analysis AOI from various sources."""

    @staticmethod
    def from_bbox(
        min_lon: float,
        min_lat: float,
        max_lon: float,
        max_lat: float,
    ) -> AreaOfInterest:
        """Define the AOI from a WGS84 bounding box (a drawn rectangle)."""
        if not (min_lon < max_lon and min_lat < max_lat):
            raise InputValidationError(
                f"Invalid bounding box: ({min_lon}, {min_lat}, {max_lon}, {max_lat}). "
                "Expected min_lon < max_lon and min_lat < max_lat."
            )
        geom = box(min_lon, min_lat, max_lon, max_lat)
        gdf = gpd.GeoDataFrame(geometry=[geom], crs="EPSG:4326")
        label = f"bbox({min_lon:.3f},{min_lat:.3f},{max_lon:.3f},{max_lat:.3f})"
        return _build_result(gdf, label=label)

    @staticmethod
    def from_polygon(coordinates: Sequence[Tuple[float, float]]) -> AreaOfInterest:
        """Define the AOI from an explicit polygon of ``(lon, lat)`` pairs.

        The ring is closed automatically if the first and last points differ.
        """
        coords = list(coordinates)
        if len(coords) < 3:
            raise InputValidationError(
                f"A polygon AOI needs at least 3 vertices, got {len(coords)}."
            )
        if coords[0] != coords[-1]:
            coords.append(coords[0])
        geom = Polygon([(lon, lat) for lon, lat in coords])
        gdf = gpd.GeoDataFrame(geometry=[geom], crs="EPSG:4326")
        return _build_result(gdf, label="User-defined polygon")

    @staticmethod
    def from_geojson(geometry: Mapping[str, Any], label: str = "GeoJSON AOI") -> AreaOfInterest:
        """Define the AOI from a GeoJSON geometry mapping in WGS84."""
        try:
            geom = shape(geometry)
        except Exception as exc:
            raise InputValidationError(f"Unreadable AOI geometry: {exc}") from exc
        gdf = gpd.GeoDataFrame(geometry=[geom], crs="EPSG:4326")
        return _build_result(gdf, label=label)

    @staticmethod
    def from_file(path: str, layer: str | None = None) -> AreaOfInterest:
        """Read and dissolve every polygon in a vector file."""
        Validators.assert_file_exists(path)
        gdf = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
        name = layer or str(path).replace("\\", "/").split("/")[-1]
        return _build_result(gdf, label=name)
