"""
classifier.py
=============
Random-forest flood / no-flood classifier over the stack bands.

``train`` fits a scikit-learn ``RandomForestClassifier`` on the training
subset.  ``classify_raster`` predicts every unmasked pixel of the stack
(row tiles at a time to bound memory); pixels where any band is masked
stay masked.  ``classify_samples`` predicts a sample table and adds a
``classification`` column, which the accuracy assessment compares with the
label column.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
import xarray as xr
from sklearn.ensemble import RandomForestClassifier

from shared.python.validators import Validators

from .config import CLASSIFICATION_BAND
from .raster import band_names, rename_band

logger = logging.getLogger("geoscripthub.flood_fusion.classifier")


@dataclass(frozen=True)
class TrainedModel:
    """A fitted forest and the inputs it was trained on."""

    estimator: RandomForestClassifier
    band_names: tuple[str, ...]
    label_property: str
    n_trees: int


def train(
    samples: pd.DataFrame,
    label_property: str,
    input_bands: Sequence[str],
    n_trees: int = 500,
    seed: int = 42,
) -> TrainedModel:
    """Fit a random forest on *samples*.

    Args:
        samples: Training subset (one column per band plus the label).
        label_property: Name of the 0/1 label column.
        input_bands: Feature columns, in stack band order.
        n_trees: Number of trees; must be a positive integer.
        seed: Seed for the forest's bootstrap and feature sampling.
    """
    Validators.assert_positive_int(n_trees, "Random forest tree count")
    Validators.assert_columns_exist(samples, [*input_bands, label_property])

    X = samples[list(input_bands)].to_numpy(dtype=np.float32)
    y = samples[label_property].to_numpy(dtype=np.int64)

    estimator = RandomForestClassifier(
        n_estimators=n_trees,
        random_state=seed,
        n_jobs=-1,
    )
    estimator.fit(X, y)
    logger.info("Trained %d-tree forest on %d samples x %d bands.", n_trees, len(y), X.shape[1])
    return TrainedModel(
        estimator=estimator,
        band_names=tuple(input_bands),
        label_property=label_property,
        n_trees=n_trees,
    )


def classify_raster(
    stack: xr.DataArray,
    model: TrainedModel,
    tile_rows: int = 256,
) -> xr.DataArray:
    """Predict the class of every pixel of *stack*.

    Returns:
        One-band float32 raster named ``classification`` holding 0 / 1,
        NaN where any input band is masked.
    """
    missing = [b for b in model.band_names if b not in band_names(stack)]
    if missing:
        raise ValueError(f"Stack is missing model input bands {missing}")

    values = np.asarray(stack.sel(band=list(model.band_names)).values, dtype=np.float32)
    n_bands, height, width = values.shape
    out = np.full((height, width), np.nan, dtype=np.float32)

    for r0 in range(0, height, tile_rows):
        r1 = min(r0 + tile_rows, height)
        X = values[:, r0:r1, :].reshape(n_bands, -1).T
        valid = np.isfinite(X).all(axis=1)
        tile = np.full(X.shape[0], np.nan, dtype=np.float32)
        if valid.any():
            tile[valid] = model.estimator.predict(X[valid])
        out[r0:r1, :] = tile.reshape(r1 - r0, width)

    template = stack.isel(band=[0])
    classified = rename_band(template.copy(data=out[np.newaxis, :, :]), CLASSIFICATION_BAND)
    logger.debug("Classified %d of %d pixels.", int(np.isfinite(out).sum()), out.size)
    return classified


def classify_samples(samples: pd.DataFrame, model: TrainedModel) -> pd.DataFrame:
    """Return a copy of *samples* with a ``classification`` column."""
    Validators.assert_columns_exist(samples, list(model.band_names))
    X = samples[list(model.band_names)].to_numpy(dtype=np.float32)
    predicted = model.estimator.predict(X) if len(X) else np.empty(0, dtype=np.int64)
    return samples.assign(**{CLASSIFICATION_BAND: np.asarray(predicted, dtype=np.int64)})
