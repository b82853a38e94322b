"""
config.py
=========
Default parameters for the flood-mapping pipeline.

Everything tunable lives in one frozen ``FloodFusionConfig``.  Callers
override individual values with ``DEFAULT_CONFIG.replace(n_trees=50)``;
``validate()`` enforces the documented parameter ranges and is called by
the pipeline before any imagery is requested.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Tuple

from shared.python.exceptions import InputValidationError
from shared.python.validators import Validators

# Bands stacked from the optical composite, in stack order
OPTICAL_BANDS: Tuple[str, ...] = (
    "B2", "B3", "B4", "B5", "B6", "B7", "B8", "B8A", "B11", "B12",
)

RADAR_POLARISATIONS: Tuple[str, str] = ("VV", "VH")

VV_FILTERED = "VV_Filtered"
VH_FILTERED = "VH_Filtered"
RATIO_FILTERED = "Ratio_Filtered"

CLASSIFICATION_BAND = "classification"

SLOPE_RANGE: Tuple[float, float] = (0.0, 30.0)
PATCH_RANGE: Tuple[int, int] = (0, 50)


@dataclass(frozen=True)
class FloodFusionConfig:
    """All pipeline parameters with their defaults.

    Attributes:
        start_date: Default start of the ``[start, end)`` window.
        end_date: Default (exclusive) end of the window.
        orbit_direction: Sentinel-1 pass direction kept by the radar filter.
        instrument_mode: Sentinel-1 acquisition mode kept by the radar filter.
        n_trees: Number of trees in the random forest.
        training_split: Fraction of samples assigned to training.
        seed: Seed for the sample split and the forest bootstrap.
        slope_threshold: Pixels steeper than this (degrees) are never flood.
        min_patch_size: Minimum 8-connected flood patch size in pixels;
            ``0`` disables the patch filter.
        max_patch_size: Cap on explored patch size.
        speckle_window: Side of the square speckle-filter window.
        scale: Processing resolution in metres.
        tile_scale: Number of batches the training points are sampled in.
        classify_tile_rows: Rows predicted per classification tile.
        area_tile_rows: Rows reduced per flood-area tile.
        max_pixels: Largest AOI pixel count the area reduction accepts.
        scheduler: dask scheduler used to materialise lazy collections.
        default_label_column: Label property pre-selected when present.
        reserved_properties: Properties never offered as label columns.
    """

    start_date: str = "2021-06-01"
    end_date: str = "2021-07-31"
    orbit_direction: str = "descending"
    instrument_mode: str = "IW"
    n_trees: int = 500
    training_split: float = 0.7
    seed: int = 42
    slope_threshold: float = 5.0
    min_patch_size: int = 8
    max_patch_size: int = 100
    speckle_window: int = 7
    scale: float = 10.0
    tile_scale: int = 8
    classify_tile_rows: int = 256
    area_tile_rows: int = 512
    max_pixels: float = 1e13
    scheduler: str = "threads"
    default_label_column: str = "Planet_flo"
    reserved_properties: Tuple[str, ...] = field(
        default=("system:index", "geometry"),
    )

    def replace(self, **overrides) -> "FloodFusionConfig":
        """Return a copy with *overrides* applied (unknown keys raise TypeError)."""
        return dataclasses.replace(self, **overrides)

    def validate(self) -> None:
        """Check every parameter against its allowed range.

        Raises:
            InputValidationError: On the first invalid parameter.
        """
        Validators.assert_positive_int(self.n_trees, "Random forest tree count")
        Validators.assert_in_range(
            self.slope_threshold, *SLOPE_RANGE, "Slope threshold (degrees)"
        )
        if isinstance(self.min_patch_size, bool) or not isinstance(self.min_patch_size, int):
            raise InputValidationError(
                f"Minimum patch size must be an integer, got {self.min_patch_size!r}."
            )
        Validators.assert_in_range(
            self.min_patch_size, *PATCH_RANGE, "Minimum patch size (pixels)"
        )
        Validators.assert_in_range(
            self.training_split, 0.0, 1.0, "Training split fraction"
        )
        Validators.assert_positive_int(self.max_patch_size, "Maximum patch size")
        if self.max_patch_size < PATCH_RANGE[1]:
            raise InputValidationError(
                f"Maximum patch size must be at least {PATCH_RANGE[1]} so every allowed "
                f"minimum patch size can be reached, got {self.max_patch_size}."
            )
        Validators.assert_positive_int(self.tile_scale, "Tile scale")
        Validators.assert_positive_int(self.classify_tile_rows, "Classification tile rows")
        Validators.assert_positive_int(self.area_tile_rows, "Area tile rows")
        Validators.assert_positive_int(self.speckle_window, "Speckle window")
        if self.speckle_window % 2 == 0:
            raise InputValidationError(
                f"Speckle window must be odd, got {self.speckle_window}."
            )
        Validators.assert_in_range(self.scale, 1e-6, float("inf"), "Scale (m)")
        Validators.assert_in_range(self.max_pixels, 1, float("inf"), "max_pixels")


DEFAULT_CONFIG = FloodFusionConfig()
