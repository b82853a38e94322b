"""
sampling.py
===========
Extract labelled feature vectors from the stack and split them once into
training and validation subsets.

Each training point is reprojected to the stack CRS and sampled at the
pixel containing it.  Points outside the grid, or over a pixel where any
band is masked, are dropped.  The surviving samples form a DataFrame::

    B2  B3  ...  VV_Filtered  VH_Filtered  Ratio_Filtered  <label>  x  y

The split draws one uniform value in ``[0, 1)`` per sample from a seeded
generator and stores it in a ``random`` column; ``random < fraction`` goes
to training, the rest to validation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr

from shared.python.exceptions import SamplingError
from shared.python.validators import Validators

from .raster import band_names, grid_shape, grid_transform

logger = logging.getLogger("geoscripthub.flood_fusion.sampling")

RANDOM_COLUMN = "random"


@dataclass(frozen=True)
class SampleSplit:
    """Disjoint training / validation partition of one sample set."""

    training: pd.DataFrame
    validation: pd.DataFrame
    fraction: float
    seed: int

    @property
    def size(self) -> int:
        return len(self.training) + len(self.validation)

    def __repr__(self) -> str:  # noqa: D105
        return (
            f"<SampleSplit training={len(self.training)} "
            f"validation={len(self.validation)} fraction={self.fraction}>"
        )


def _point_xy(points: gpd.GeoDataFrame) -> tuple[np.ndarray, np.ndarray]:
    """Point coordinates; polygons and lines are sampled at their centroid."""
    geoms = points.geometry
    if not (geoms.geom_type == "Point").all():
        geoms = geoms.centroid
    return geoms.x.to_numpy(dtype=np.float64), geoms.y.to_numpy(dtype=np.float64)


def sample_stack(
    stack: xr.DataArray,
    points: gpd.GeoDataFrame,
    label_property: str,
    tile_scale: int = 8,
) -> pd.DataFrame:
    """Sample every band of *stack* under each labelled point.

    Args:
        stack: Multi-band feature raster.
        points: Labelled points with a CRS.
        label_property: Column holding the 0/1 class label.
        tile_scale: Number of batches the points are sampled in.  Only
            bounds the size of intermediate arrays; results do not
            depend on it.

    Raises:
        SamplingError: If no point yields a complete feature vector.
    """
    Validators.assert_columns_exist(points, [label_property])
    names = band_names(stack)

    stack_crs = stack.rio.crs
    if stack_crs is not None and points.crs is not None:
        points = points.to_crs(stack_crs)

    xs, ys = _point_xy(points)
    labels = points[label_property].to_numpy()
    values = np.asarray(stack.values, dtype=np.float32)
    height, width = grid_shape(stack)

    # Continuous pixel coordinates -> integer row / col of the containing pixel
    inverse = ~grid_transform(stack)
    cols_f, rows_f = inverse * (xs, ys)
    cols = np.floor(np.asarray(cols_f)).astype(np.int64)
    rows = np.floor(np.asarray(rows_f)).astype(np.int64)

    frames = []
    for batch in np.array_split(np.arange(len(points)), max(int(tile_scale), 1)):
        if batch.size == 0:
            continue
        r, c = rows[batch], cols[batch]
        inside = (r >= 0) & (r < height) & (c >= 0) & (c < width)
        batch, r, c = batch[inside], r[inside], c[inside]

        features = values[:, r, c].T
        complete = np.isfinite(features).all(axis=1)
        batch, features = batch[complete], features[complete]

        frame = pd.DataFrame(features, columns=names)
        frame[label_property] = labels[batch].astype(np.int64)
        frame["x"] = xs[batch]
        frame["y"] = ys[batch]
        frames.append(frame)

    samples = (
        pd.concat(frames, ignore_index=True) if frames
        else pd.DataFrame(columns=[*names, label_property, "x", "y"])
    )
    dropped = len(points) - len(samples)
    if dropped:
        logger.info("Dropped %d of %d training points (outside imagery or masked).", dropped, len(points))

    if samples.empty:
        raise SamplingError(
            "No usable training data: every training point fell outside the "
            "imagery or over masked (e.g. cloudy) pixels."
        )
    logger.debug("Sampled %d labelled pixels over %d bands.", len(samples), len(names))
    return samples


def split_samples(samples: pd.DataFrame, fraction: float = 0.7, seed: int = 42) -> SampleSplit:
    """Partition *samples* once with a seeded uniform draw per sample.

    Raises:
        SamplingError: If either subset is empty.
    """
    rng = np.random.default_rng(seed)
    drawn = samples.assign(**{RANDOM_COLUMN: rng.random(len(samples))})
    is_training = drawn[RANDOM_COLUMN].to_numpy() < fraction

    training = drawn.loc[is_training].reset_index(drop=True)
    validation = drawn.loc[~is_training].reset_index(drop=True)

    if training.empty:
        raise SamplingError(
            f"Training subset is empty after a {fraction:.0%} split of "
            f"{len(samples)} samples. Add more training points."
        )
    if validation.empty:
        raise SamplingError(
            f"Validation subset is empty after a {fraction:.0%} split of "
            f"{len(samples)} samples. Add more training points."
        )

    split = SampleSplit(training=training, validation=validation, fraction=fraction, seed=seed)
    logger.info("Split %d samples: %d training / %d validation.", split.size, len(training), len(validation))
    return split
