"""
GeoScriptHub: Shared Base Tool
================================
Abstract base class that every GeoScriptHub Python tool inherits from.

Design Pattern:
    Template Method - the public ``run()`` method defines a fixed
    pipeline (validate → process → report) that subclasses fill in
    by implementing the abstract methods ``validate_inputs`` and
    ``process``.

    Long pipelines split ``process`` into named stages with
    :meth:`GeoTool.stage`.  Each stage boundary is a cancellation point,
    reports a status message, and converts foreign exceptions into
    :class:`~shared.python.exceptions.ComputationError` so that every
    failure reaching the caller belongs to the shared hierarchy.

Usage:
    Do NOT instantiate this class directly.  Subclass it and implement
    the two abstract methods::

        from shared.python.base_tool import GeoTool

        class MyTool(GeoTool):
            def validate_inputs(self) -> None:
                ...
            def process(self) -> None:
                with self.stage("sampling", "Sampling training data..."):
                    ...
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from shared.python.exceptions import (
    ComputationError,
    GeoScriptHubError,
    RunCancelledError,
)

# ---------------------------------------------------------------------------
# Module-level logger - each tool gets its own child logger via
#   logging.getLogger("geoscripthub.<tool>") inside its own module.
# ---------------------------------------------------------------------------
logger = logging.getLogger("geoscripthub")

StatusCallback = Callable[[str], None]


class GeoTool(ABC):
    """Abstract base class for all GeoScriptHub geospatial tools.

    Every concrete tool must inherit from this class and implement
    :meth:`validate_inputs` and :meth:`process`.  Calling :meth:`run`
    executes the full pipeline in the correct order.

    Attributes:
        input_path: Path to the primary input file or directory.
        output_path: Path where output will be written.
        verbose: When ``True`` the tool logs DEBUG-level messages in
            addition to INFO/WARNING/ERROR.
        cancel_event: Set it from another thread to stop the run at the
            next stage boundary.
    """

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        *,
        verbose: bool = False,
        status_callback: StatusCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialise the base tool.

        Args:
            input_path: Path to the primary input file or directory.
            output_path: Path where the tool will write its output.
            verbose: Set to ``True`` to enable debug-level console
                     logging during the run.  Defaults to ``False``.
            status_callback: Optional callable receiving one short
                     human-readable message per stage.
            cancel_event: Optional event shared with a controller that
                     may cancel the run.
        """
        self.input_path: Path = Path(input_path)
        self.output_path: Path = Path(output_path)
        self.verbose: bool = verbose
        self.status_callback: StatusCallback | None = status_callback
        self.cancel_event: threading.Event = cancel_event or threading.Event()
        self.stage_timings: dict[str, float] = {}

        self._configure_logging()

    # ------------------------------------------------------------------
    # Abstract interface - subclasses MUST implement these
    # ------------------------------------------------------------------

    @abstractmethod
    def validate_inputs(self) -> None:
        """Validate all inputs before processing begins.

        Subclasses should raise :class:`~shared.python.exceptions.InputValidationError`
        (or a subclass) when any input condition is not satisfied.
        """

    @abstractmethod
    def process(self) -> None:
        """Execute the core geospatial processing logic.

        This method is called by :meth:`run` after :meth:`validate_inputs`
        has succeeded.  Any exception raised here will propagate up
        through :meth:`run`.
        """

    # ------------------------------------------------------------------
    # Template method - the public API callers use
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Execute the full tool pipeline.

        Runs the steps in order:

        1. :meth:`validate_inputs` - verify all preconditions.
        2. :meth:`process` - perform the geospatial work.
        3. :meth:`_report_success` - log the elapsed time and output path.

        Raises:
            Any exception raised by ``validate_inputs`` or ``process``
            propagates unchanged so callers can handle it appropriately.
        """
        logger.info("Starting %s", self.__class__.__name__)
        start = time.perf_counter()
        self.stage_timings = {}

        self.validate_inputs()
        self.process()

        elapsed = time.perf_counter() - start
        self._report_success(elapsed)

    # ------------------------------------------------------------------
    # Stage helper
    # ------------------------------------------------------------------

    @contextmanager
    def stage(self, name: str, status: str | None = None) -> Iterator[None]:
        """Run one pipeline stage.

        Checks for cancellation before the stage starts, reports *status*,
        records the stage duration, and wraps any exception that is not a
        :class:`GeoScriptHubError` into :class:`ComputationError` with the
        underlying message appended.

        Args:
            name: Short stage identifier used in logs and error messages.
            status: Optional status message forwarded to the callback.

        Raises:
            RunCancelledError: If :attr:`cancel_event` is set.
            ComputationError: If the stage body raises a foreign exception.
        """
        self.check_cancelled(name)
        if status:
            self.report_status(status)
        logger.debug("Stage %s started", name)
        start = time.perf_counter()
        try:
            yield
        except GeoScriptHubError:
            logger.debug("Stage %s failed", name)
            raise
        except Exception as exc:
            logger.debug("Stage %s raised %s", name, type(exc).__name__)
            raise ComputationError(name, str(exc) or type(exc).__name__) from exc
        self.stage_timings[name] = time.perf_counter() - start
        logger.info("Stage %-14s done in %.2fs", name, self.stage_timings[name])

    def check_cancelled(self, stage: str) -> None:
        """Raise :class:`RunCancelledError` if cancellation was requested."""
        if self.cancel_event.is_set():
            raise RunCancelledError(stage)

    def report_status(self, message: str) -> None:
        """Log *message* and forward it to the status callback, if any."""
        logger.info(message)
        if self.status_callback is not None:
            self.status_callback(message)

    # ------------------------------------------------------------------
    # Protected helpers - subclasses may override if needed
    # ------------------------------------------------------------------

    def _report_success(self, elapsed: float) -> None:
        """Log a success message with the elapsed time and output path.

        Args:
            elapsed: Seconds taken for the full run, as returned by
                     ``time.perf_counter()``.
        """
        logger.info(
            "%s completed in %.2fs → %s",
            self.__class__.__name__,
            elapsed,
            self.output_path,
        )

    def _configure_logging(self) -> None:
        """Set up console logging for this tool instance.

        Attaches a :class:`logging.StreamHandler` to the root
        ``geoscripthub`` logger if no handlers are already present.
        Uses DEBUG level when ``self.verbose`` is ``True``, otherwise INFO.
        """
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                fmt="[%(asctime)s] %(levelname)-8s %(name)s - %(message)s",
                datefmt="%H:%M:%S",
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"input_path={self.input_path!r}, "
            f"output_path={self.output_path!r})"
        )
