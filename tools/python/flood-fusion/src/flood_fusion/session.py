"""
session.py
==========
Run guard for interactive front ends.

``RunController`` executes at most one ``FloodMapper`` run at a time on a
single background worker, so the caller's thread stays free to show
status or request cancellation.  A second ``submit()`` while a run is in
flight raises ``RunInProgressError``.  Every run ends in a ``RunOutcome``:
either the result, or an error category plus one human-readable message,
which is also emitted exactly once as an ``"Error: ..."`` status.

Usage::

    with RunController(status_callback=print) as controller:
        future = controller.submit(aoi=aoi, training_asset="pts.gpkg",
                                   label_property="flooded", source=source)
        outcome = future.result()
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

from shared.python.base_tool import StatusCallback
from shared.python.exceptions import ComputationError, GeoScriptHubError, RunInProgressError

from .pipeline import FloodMapper, FloodMappingResult

logger = logging.getLogger("geoscripthub.flood_fusion.session")


@dataclass(frozen=True)
class RunOutcome:
    """Result of one run, or why it failed."""

    result: Optional[FloodMappingResult] = None
    error_category: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class RunController:
    """Single-run-in-flight executor for :class:`FloodMapper`."""

    def __init__(self, status_callback: Optional[StatusCallback] = None) -> None:
        self.status_callback = status_callback
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="flood-run")
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self._cancel_event: Optional[threading.Event] = None

    @property
    def busy(self) -> bool:
        """True while a submitted run has not finished."""
        with self._lock:
            return self._future is not None and not self._future.done()

    def submit(self, **tool_kwargs: Any) -> "Future[RunOutcome]":
        """Start a run with *tool_kwargs* forwarded to :class:`FloodMapper`.

        Raises:
            RunInProgressError: If a previous run is still in flight.
        """
        with self._lock:
            if self._future is not None and not self._future.done():
                raise RunInProgressError()
            event = threading.Event()
            self._cancel_event = event
            self._future = self._executor.submit(self._execute, tool_kwargs, event)
            return self._future

    def run(self, **tool_kwargs: Any) -> RunOutcome:
        """Submit a run and block until it finishes."""
        return self.submit(**tool_kwargs).result()

    def cancel(self) -> bool:
        """Ask the current run to stop at its next stage boundary."""
        with self._lock:
            if self._future is None or self._future.done() or self._cancel_event is None:
                return False
            self._cancel_event.set()
            return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "RunController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _emit(self, message: str) -> None:
        if self.status_callback is not None:
            self.status_callback(message)

    def _execute(self, tool_kwargs: dict, event: threading.Event) -> RunOutcome:
        try:
            tool = FloodMapper(
                **tool_kwargs,
                status_callback=self._emit,
                cancel_event=event,
            )
            tool.run()
        except GeoScriptHubError as exc:
            return self._failed(exc)
        except Exception as exc:
            logger.exception("Unexpected failure during run")
            return self._failed(ComputationError("run", str(exc) or type(exc).__name__))
        return RunOutcome(result=tool.result)

    def _failed(self, exc: GeoScriptHubError) -> RunOutcome:
        logger.error("Run failed (%s): %s", exc.category, exc.message)
        self._emit(f"Error: {exc.message}")
        return RunOutcome(error_category=exc.category, error_message=exc.message)
