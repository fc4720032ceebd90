"""Thread-safe progress reporting for update runs."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime

from blacksmith.models import Progress

__all__ = ["ProgressTracker"]

log = logging.getLogger(__name__)


class ProgressTracker:
    """Owns the single Progress value and the id of the run allowed to write it.

    Within one run ``fraction`` never decreases.  Writes carrying a run id
    other than the one passed to :meth:`begin` are ignored, so a superseded
    run cannot overwrite its successor's progress.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._progress = Progress()
        self._run_id: str | None = None

    @property
    def run_id(self) -> str | None:
        with self._lock:
            return self._run_id

    def snapshot(self) -> Progress:
        with self._lock:
            return self._progress

    def begin(self, run_id: str, started_at: datetime) -> None:
        with self._lock:
            self._run_id = run_id
            self._progress = Progress(
                fraction=0.0,
                message="starting",
                is_running=True,
                started_at=started_at,
                error=None,
            )

    def advance(self, run_id: str, fraction: float, message: str) -> None:
        with self._lock:
            if run_id != self._run_id:
                return
            clamped = min(max(fraction, 0.0), 1.0)
            self._progress = replace(
                self._progress,
                fraction=max(clamped, self._progress.fraction),
                message=message,
            )
        log.debug("Progress %.0f%%: %s", clamped * 100, message)

    def finish(self, run_id: str, message: str) -> None:
        with self._lock:
            if run_id != self._run_id:
                return
            self._progress = replace(
                self._progress,
                fraction=1.0,
                message=message,
                is_running=False,
            )

    def fail(self, run_id: str, error: str) -> None:
        with self._lock:
            if run_id != self._run_id:
                return
            self._progress = replace(
                self._progress,
                message=f"Update failed: {error}",
                is_running=False,
                error=error,
            )

    def cancel(self, run_id: str, message: str = "Update cancelled") -> None:
        with self._lock:
            if run_id != self._run_id:
                return
            self._progress = replace(self._progress, message=message, is_running=False)
