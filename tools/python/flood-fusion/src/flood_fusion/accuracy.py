"""
accuracy.py
===========
Accuracy assessment and area statistics.

Convention: rows = actual (reference) label, columns = predicted label,
both ordered ``(0, 1)``.

Flood area is the sum of pixel areas where the flood mask is 1 inside the
AOI.  The reduction runs over row tiles and combines the partial sums with
``math.fsum`` so the total stays exact for very large pixel counts; an AOI
larger than ``max_pixels`` is refused rather than silently truncated.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd
import xarray as xr
from shapely.geometry.base import BaseGeometry

from shared.python.exceptions import ComputationError

from .classifier import TrainedModel, classify_samples
from .config import CLASSIFICATION_BAND
from .raster import inside_mask, pixel_area_m2

logger = logging.getLogger("geoscripthub.flood_fusion.accuracy")

M2_PER_HA = 10_000.0


@dataclass(frozen=True)
class ErrorMatrix:
    """Square confusion matrix with derived agreement metrics."""

    matrix: np.ndarray
    labels: Tuple[int, ...] = (0, 1)

    @property
    def total(self) -> int:
        return int(self.matrix.sum())

    @property
    def overall_accuracy(self) -> float:
        """Trace / total (NaN for an empty matrix)."""
        if self.total == 0:
            return float("nan")
        return float(np.trace(self.matrix)) / self.total

    @property
    def kappa(self) -> float:
        """Chance-corrected agreement ``(p_o - p_e) / (1 - p_e)``.

        ``p_e`` comes from the row and column marginals.  Undefined (NaN)
        when ``p_e == 1`` or the matrix is empty.
        """
        n = self.total
        if n == 0:
            return float("nan")
        rows = self.matrix.sum(axis=1).astype(float)
        cols = self.matrix.sum(axis=0).astype(float)
        p_o = float(np.trace(self.matrix)) / n
        p_e = float((rows * cols).sum()) / (n * n)
        if abs(1.0 - p_e) < 1e-15:
            return float("nan")
        return (p_o - p_e) / (1.0 - p_e)

    @property
    def producers_accuracy(self) -> Dict[int, float]:
        """Per-class recall: correct / actual total."""
        rows = self.matrix.sum(axis=1)
        diag = np.diag(self.matrix)
        return {
            label: float(diag[i]) / rows[i] if rows[i] else float("nan")
            for i, label in enumerate(self.labels)
        }

    @property
    def consumers_accuracy(self) -> Dict[int, float]:
        """Per-class precision (user's accuracy): correct / predicted total."""
        cols = self.matrix.sum(axis=0)
        diag = np.diag(self.matrix)
        return {
            label: float(diag[i]) / cols[i] if cols[i] else float("nan")
            for i, label in enumerate(self.labels)
        }

    def to_list(self) -> list[list[int]]:
        return self.matrix.astype(int).tolist()

    def __repr__(self) -> str:  # noqa: D105
        return (
            f"<ErrorMatrix {self.to_list()} "
            f"OA={self.overall_accuracy:.3f} kappa={self.kappa:.3f}>"
        )


def build_error_matrix(
    actual: Sequence[int],
    predicted: Sequence[int],
    labels: Tuple[int, ...] = (0, 1),
) -> ErrorMatrix:
    """Count (actual, predicted) pairs; values outside *labels* are ignored."""
    actual = np.asarray(actual)
    predicted = np.asarray(predicted)
    if actual.shape != predicted.shape:
        raise ValueError(
            f"Length mismatch: actual={actual.shape[0]}, predicted={predicted.shape[0]}"
        )

    k = len(labels)
    matrix = np.zeros((k, k), dtype=np.int64)
    for i, a in enumerate(labels):
        row = actual == a
        for j, p in enumerate(labels):
            matrix[i, j] = int(np.count_nonzero(row & (predicted == p)))
    return ErrorMatrix(matrix=matrix, labels=tuple(labels))


def assess_validation(validation: pd.DataFrame, model: TrainedModel) -> ErrorMatrix:
    """Classify the held-out samples and compare with their labels."""
    predicted = classify_samples(validation, model)
    matrix = build_error_matrix(
        predicted[model.label_property].to_numpy(),
        predicted[CLASSIFICATION_BAND].to_numpy(),
    )
    logger.info("Validation: %r", matrix)
    return matrix


def flood_area_ha(
    flood_mask: xr.DataArray,
    geometry: BaseGeometry,
    tile_rows: int = 512,
    max_pixels: float = 1e13,
) -> float:
    """Flooded area inside *geometry* (flood mask CRS), in hectares.

    Raises:
        ComputationError: If the AOI covers more than *max_pixels* pixels.
    """
    inside = inside_mask(flood_mask, geometry)
    n_region = int(np.count_nonzero(inside))
    if n_region > max_pixels:
        raise ComputationError(
            "flood area",
            f"AOI covers {n_region} pixels, above the {max_pixels:.0f} pixel limit",
        )

    mask = np.asarray(flood_mask.isel(band=0).values) if "band" in flood_mask.dims \
        else np.asarray(flood_mask.values)
    px_area = pixel_area_m2(flood_mask)

    partials = []
    for r0 in range(0, mask.shape[0], tile_rows):
        r1 = min(r0 + tile_rows, mask.shape[0])
        flooded = (mask[r0:r1] == 1) & inside[r0:r1]
        partials.append(np.count_nonzero(flooded) * px_area)

    area_m2 = math.fsum(partials)
    logger.debug("Flood area %.1f m2 over %d tile(s).", area_m2, len(partials))
    return area_m2 / M2_PER_HA
