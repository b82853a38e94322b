"""
pipeline.py
===========
The flood-mapping tool: one ``FloodMapper.run()`` is one analysis.

Stages, strictly in order (each a cancellation point)::

    composites -> stack -> sampling -> split -> training
               -> classification -> post-filter -> accuracy

All inputs are validated before any imagery is requested.  Any failure
inside a stage surfaces as a ``GeoScriptHubError`` subclass; nothing is
retried.  Export runs after the analysis and a failed export is recorded
on the result instead of discarding it.

Usage::

    from flood_fusion import AOIBuilder, FloodMapper, PlanetaryComputerSource

    tool = FloodMapper(
        aoi=AOIBuilder.from_bbox(85.30, 26.60, 85.40, 26.70),
        training_asset="data/flood_points.gpkg",
        label_property="Planet_flo",
        source=PlanetaryComputerSource(),
        output_dir=Path("outputs"),
    )
    tool.run()
    tool.result.summary()
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import geopandas as gpd
import xarray as xr

from shared.python.base_tool import GeoTool, StatusCallback
from shared.python.exceptions import (
    ColumnNotFoundError,
    ExportError,
    GeoScriptHubError,
    InputValidationError,
)
from shared.python.validators import Validators

from .accuracy import ErrorMatrix, assess_validation, flood_area_ha
from .aoi import AreaOfInterest, TimeWindow
from .classifier import TrainedModel, classify_raster, train
from .composite import SensorCompositeBuilder, build_stack
from .config import DEFAULT_CONFIG, FloodFusionConfig
from .display import LEGEND, DisplayLayer, display_layers
from .export import EXPORT_NAME, export_flood_mask
from .postfilter import apply_post_filters, slope_degrees
from .raster import band_names
from .sampling import SampleSplit, sample_stack, split_samples
from .sources import ImagerySource, TrainingPointSource, VectorFileTrainingSource

logger = logging.getLogger("geoscripthub.flood_fusion")


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FloodMappingResult:
    """Everything one analysis run produces."""

    # ---- Headline numbers -------------------------------------------------
    aoi_area_ha: float
    flood_area_ha: float
    error_matrix: ErrorMatrix

    # ---- Rasters ----------------------------------------------------------
    stack: xr.DataArray = field(repr=False)
    classified: xr.DataArray = field(repr=False)
    final_classification: xr.DataArray = field(repr=False)
    flood_mask: xr.DataArray = field(repr=False)

    # ---- Model and samples -----------------------------------------------
    model: TrainedModel = field(repr=False)
    split: SampleSplit = field(repr=False)

    # ---- Display ---------------------------------------------------------
    layers: List[DisplayLayer] = field(default_factory=list, repr=False)
    legend: Dict[str, str] = field(default_factory=lambda: dict(LEGEND))

    # ---- Export (independent of the analysis) -----------------------------
    export_path: Optional[Path] = None
    export_error: Optional[str] = None

    @property
    def accuracy_percent(self) -> float:
        return self.error_matrix.overall_accuracy * 100.0

    @property
    def kappa(self) -> float:
        return self.error_matrix.kappa

    @property
    def band_names(self) -> list[str]:
        return band_names(self.stack)

    def summary_lines(self) -> list[str]:
        lines = [
            "=== Flood Mapping Summary ================================",
            f"  AOI area               : {self.aoi_area_ha:,.2f} ha",
            f"  Flood area             : {self.flood_area_ha:,.2f} ha",
            f"  Overall accuracy       : {self.accuracy_percent:.2f} %",
            f"  Kappa                  : {self.kappa:.3f}",
            f"  Error matrix           : {self.error_matrix.to_list()}",
            f"  Training / validation  : {len(self.split.training)} / {len(self.split.validation)}",
        ]
        if self.export_path is not None:
            lines.append(f"  Exported               : {self.export_path}")
        if self.export_error is not None:
            lines.append(f"  Export failed          : {self.export_error}")
        lines.append("==========================================================")
        return lines

    def summary(self) -> None:
        """Print the run summary to the console."""
        for line in self.summary_lines():
            print(line)


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------

class FloodMapper(GeoTool):
    """Map flood extent by fusing radar and optical imagery.

    Inherits the Template Method pipeline from :class:`~shared.python.GeoTool`.

    Args:
        aoi: Analysis area (``None`` is reported as an input error).
        training_asset: Identifier of the labelled point asset.
        label_property: 0/1 label column; ``None`` picks the configured
            default column when the asset has it.
        source: Imagery collaborator.
        training_source: Training-point collaborator (vector files by default).
        config: Pipeline parameters.
        start, end: ISO dates of the ``[start, end)`` window; default to
            the configured dates.
        output_dir: Where the flood mask GeoTIFF goes; ``None`` skips export.
    """

    def __init__(
        self,
        aoi: Optional[AreaOfInterest],
        training_asset: str,
        label_property: Optional[str] = None,
        *,
        source: ImagerySource,
        training_source: Optional[TrainingPointSource] = None,
        config: FloodFusionConfig = DEFAULT_CONFIG,
        start: Optional[str] = None,
        end: Optional[str] = None,
        output_dir: Optional[Path] = None,
        verbose: bool = False,
        status_callback: Optional[StatusCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        out_dir = Path(output_dir) if output_dir is not None else Path(".")
        super().__init__(
            Path(training_asset or "."),
            out_dir / f"{EXPORT_NAME}.tif",
            verbose=verbose,
            status_callback=status_callback,
            cancel_event=cancel_event,
        )
        self.aoi = aoi
        self.training_asset = training_asset
        self.label_property = label_property
        self.source = source
        self.training_source = training_source or VectorFileTrainingSource(config.reserved_properties)
        self.config = config
        self.start = start or config.start_date
        self.end = end or config.end_date
        self.output_dir = Path(output_dir) if output_dir is not None else None

        self.window: Optional[TimeWindow] = None
        self.points: Optional[gpd.GeoDataFrame] = None
        self.result: Optional[FloodMappingResult] = None

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Check parameters, AOI, window, asset, and label column.

        Nothing remote is evaluated here apart from reading the training
        asset's attribute table.

        Raises:
            InputValidationError: On the first invalid input.
            ColumnNotFoundError: If the label column is not in the asset.
        """
        self.config.validate()

        if self.aoi is None:
            raise InputValidationError(
                "No area of interest. Draw a rectangle or polygon first."
            )
        self.window = TimeWindow.parse(self.start, self.end)

        if not str(self.training_asset or "").strip():
            raise InputValidationError("No training asset given.")

        try:
            columns = self.training_source.list_properties(self.training_asset)
        except GeoScriptHubError:
            raise
        except Exception as exc:
            raise InputValidationError(
                f"Cannot read training asset '{self.training_asset}': {exc}"
            ) from exc

        label = self.label_property
        if not label:
            if self.config.default_label_column not in columns:
                raise InputValidationError(
                    f"Select a label column; available: {', '.join(columns) or 'none'}."
                )
            label = self.config.default_label_column
        if label not in columns:
            raise ColumnNotFoundError(label, columns)
        self.label_property = label

        try:
            points = self.training_source.load(self.training_asset)
        except GeoScriptHubError:
            raise
        except Exception as exc:
            raise InputValidationError(
                f"Cannot load training asset '{self.training_asset}': {exc}"
            ) from exc
        if points.empty:
            raise InputValidationError(
                f"Training asset '{self.training_asset}' has no points."
            )
        Validators.assert_binary_labels(points[label].tolist(), label)
        self.points = points

        if self.output_dir is not None:
            Validators.assert_output_dir_writable(self.output_path)

        logger.debug("Inputs validated: %r, window %s, label '%s'.", self.aoi, self.window, label)

    def process(self) -> None:
        """Run every stage and store a :class:`FloodMappingResult`."""
        cfg = self.config
        builder = SensorCompositeBuilder(self.source, cfg)
        self.result = None

        with self.stage("composites", "Building radar and optical composites..."):
            radar, optical = builder.build(self.aoi, self.window)

        with self.stage("stack"):
            stack = build_stack(radar, optical)

        with self.stage("sampling", "Sampling training data..."):
            samples = sample_stack(stack, self.points, self.label_property, cfg.tile_scale)

        with self.stage("split"):
            split = split_samples(samples, cfg.training_split, cfg.seed)

        with self.stage("training", f"Training random forest ({cfg.n_trees} trees)..."):
            model = train(
                split.training, self.label_property, band_names(stack),
                n_trees=cfg.n_trees, seed=cfg.seed,
            )

        with self.stage("classification", "Classifying..."):
            classified = classify_raster(stack, model, cfg.classify_tile_rows)

        with self.stage("post-filter", "Applying slope and patch-size filters..."):
            slope = slope_degrees(builder.elevation_on_grid(self.aoi, stack))
            filtered = apply_post_filters(
                classified, slope,
                slope_threshold=cfg.slope_threshold,
                min_patch_size=cfg.min_patch_size,
                max_patch_size=cfg.max_patch_size,
            )

        with self.stage("accuracy", "Assessing accuracy and area..."):
            matrix = assess_validation(split.validation, model)
            geometry = self.aoi.geometry_in(stack.rio.crs or self.aoi.utm_crs)
            flood_ha = flood_area_ha(
                filtered.flood_mask, geometry, cfg.area_tile_rows, cfg.max_pixels,
            )
            aoi_ha = self.aoi.area_ha

        result = FloodMappingResult(
            aoi_area_ha=aoi_ha,
            flood_area_ha=flood_ha,
            error_matrix=matrix,
            stack=stack,
            classified=classified,
            final_classification=filtered.final_classification,
            flood_mask=filtered.flood_mask,
            model=model,
            split=split,
            layers=display_layers(optical, radar, filtered.flood_mask),
        )

        if self.output_dir is not None:
            result = self._export(result, geometry)

        self.result = result
        self.report_status(
            f"Done: flood {flood_ha:,.2f} ha of {aoi_ha:,.2f} ha, "
            f"accuracy {result.accuracy_percent:.1f} %."
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _export(self, result: FloodMappingResult, geometry) -> FloodMappingResult:
        self.report_status("Exporting flood mask...")
        try:
            path = export_flood_mask(result.flood_mask, geometry, self.output_dir)
        except ExportError as exc:
            logger.error("Export failed: %s", exc.message)
            return dataclasses.replace(result, export_error=exc.message)
        return dataclasses.replace(result, export_path=path)

