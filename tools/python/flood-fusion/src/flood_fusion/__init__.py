"""
flood_fusion
============
Flood extent mapping by Sentinel-1 / Sentinel-2 fusion.

Builds median radar and optical composites over an AOI and time window,
trains a random forest on labelled points, classifies every pixel as
flooded or not, removes small patches and steep terrain, and reports
accuracy and flooded area.

Submodules
----------
aoi         -- AOI builders and the [start, end) time window
sources     -- Planetary Computer imagery and vector-file training points
speckle     -- Adaptive speckle filter for radar bands
cloud_mask  -- QA60 bit mask and SCL cloud masks for optical scenes
composite   -- Per-sensor composites and the feature stack
sampling    -- Training samples and the train / validation split
classifier  -- Random forest training and prediction
postfilter  -- Patch-size and slope refinement
accuracy    -- Error matrix, kappa, and flood area
display     -- Display layers and legend
export      -- Flood mask GeoTIFF
pipeline    -- ``FloodMapper`` tool tying the stages together
session     -- One-run-at-a-time controller with cancellation
"""

from .aoi import AOIBuilder, AreaOfInterest, TimeWindow
from .config import DEFAULT_CONFIG, FloodFusionConfig
from .pipeline import FloodMapper, FloodMappingResult
from .session import RunController, RunOutcome
from .sources import (
    ImagerySource,
    PlanetaryComputerSource,
    TrainingPointSource,
    VectorFileTrainingSource,
)

__version__ = "1.0.0"
__all__ = [
    "AOIBuilder",
    "AreaOfInterest",
    "TimeWindow",
    "FloodFusionConfig",
    "DEFAULT_CONFIG",
    "FloodMapper",
    "FloodMappingResult",
    "RunController",
    "RunOutcome",
    "ImagerySource",
    "PlanetaryComputerSource",
    "TrainingPointSource",
    "VectorFileTrainingSource",
]
