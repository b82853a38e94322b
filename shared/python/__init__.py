"""
GeoScriptHub: Shared Python Package
=====================================
Re-exports the shared base class, exception hierarchy, and validator
utilities so individual tools can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import SamplingError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    ColumnNotFoundError,
    ComputationError,
    CRSError,
    DataAvailabilityError,
    ExportError,
    GeoScriptHubError,
    InputValidationError,
    OutputWriteError,
    RunCancelledError,
    RunInProgressError,
    SamplingError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "GeoScriptHubError",
    "InputValidationError",
    "ColumnNotFoundError",
    "RunInProgressError",
    "CRSError",
    "DataAvailabilityError",
    "SamplingError",
    "ComputationError",
    "RunCancelledError",
    "OutputWriteError",
    "ExportError",
]
