"""
GeoScriptHub: Custom Exception Hierarchy
==========================================
All GeoScriptHub tools raise exceptions from this module so callers can
catch them at the right level of granularity.

Hierarchy::

    GeoScriptHubError                    ← catch-all base
    ├── InputValidationError             ← bad AOI, dates, assets, parameters
    │   ├── ColumnNotFoundError          ← label / table column missing
    │   └── RunInProgressError           ← a run is already in flight
    ├── CRSError                         ← invalid / unknown CRS string
    ├── DataAvailabilityError            ← no usable imagery for AOI + window
    ├── SamplingError                    ← no usable labelled samples
    ├── ComputationError                 ← reduction / classification failed
    │   └── RunCancelledError            ← run cancelled at a stage boundary
    └── OutputWriteError                 ← cannot write to output path
        └── ExportError                  ← flood-mask export failed

Every class carries a short ``category`` string that presentation layers
use to route the single status message they show for a failed run.

Usage::

    from shared.python.exceptions import SamplingError

    raise SamplingError("No valid training data found.")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class GeoScriptHubError(Exception):
    """Base exception for all GeoScriptHub tools.

    Catch this to handle any tool-specific error without caring about
    the exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    category: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(GeoScriptHubError):
    """Raised when a tool's inputs fail pre-processing validation.

    Detected before any remote computation starts, so no partial state
    exists when it is raised.
    """

    category = "input"


class ColumnNotFoundError(InputValidationError):
    """Raised when an expected column is absent from a tabular dataset.

    Args:
        column: The name of the missing column.
        available: List of column names that ARE present, used to
                   generate a helpful error message.

    Example::

        raise ColumnNotFoundError("flooded", ["id", "class"])
    """

    def __init__(self, column: str, available: list[str]) -> None:
        available_str = ", ".join(f"'{c}'" for c in available)
        super().__init__(
            f"Column '{column}' not found. Available columns: {available_str}"
        )
        self.column: str = column
        self.available: list[str] = available


class RunInProgressError(InputValidationError):
    """Raised when a run is requested while another one is still in flight."""

    def __init__(self) -> None:
        super().__init__(
            "An analysis is already running. Wait for it to finish or cancel it."
        )


# ---------------------------------------------------------------------------
# CRS
# ---------------------------------------------------------------------------


class CRSError(GeoScriptHubError):
    """Raised when a coordinate reference system string cannot be parsed
    or matched to a known CRS.

    Args:
        crs_string: The raw CRS string that caused the error
                    (e.g. ``"EPSG:99999"``).
    """

    category = "input"

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Invalid or unrecognised CRS: '{crs_string}'. "
            "Use an EPSG code (e.g. 'EPSG:4326') or a valid WKT/PROJ string."
        )
        self.crs_string: str = crs_string


# ---------------------------------------------------------------------------
# Data availability / sampling
# ---------------------------------------------------------------------------


class DataAvailabilityError(GeoScriptHubError):
    """Raised when a sensor contributes no usable imagery for the AOI and
    time window.

    Args:
        sensor: Sensor name (``"radar"`` or ``"optical"``).
        reason: Why the composite is empty.

    Example::

        raise DataAvailabilityError("radar", "no scenes in 2021-06-01/2021-07-31")
    """

    category = "data_availability"

    def __init__(self, sensor: str, reason: str) -> None:
        super().__init__(f"No usable {sensor} imagery: {reason}")
        self.sensor: str = sensor
        self.reason: str = reason


class SamplingError(GeoScriptHubError):
    """Raised when intersecting the training points with the stack leaves
    no usable samples (or an empty training / validation subset)."""

    category = "sampling"


# ---------------------------------------------------------------------------
# Computation
# ---------------------------------------------------------------------------


class ComputationError(GeoScriptHubError):
    """Raised when evaluating a reduction, a classification, or a remote
    request fails.

    Never retried automatically.

    Args:
        stage: Pipeline stage that failed (e.g. ``"classification"``).
        reason: Underlying error message.
    """

    category = "computation"

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"{stage} failed: {reason}")
        self.stage: str = stage
        self.reason: str = reason


class RunCancelledError(ComputationError):
    """Raised at a stage boundary once cancellation has been requested."""

    category = "cancelled"

    def __init__(self, stage: str) -> None:
        super().__init__(stage, "run cancelled")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(GeoScriptHubError):
    """Raised when the tool cannot write its output to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.
    """

    category = "output"

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason


class ExportError(OutputWriteError):
    """Raised when the flood-mask download / export itself fails.

    A failed export never invalidates an already computed analysis.
    """

    category = "export"
