"""
Background task runner for analysis runs.

Runs pipelines on a thread pool, tracking one future per record so a
second run of the same record is refused and callers can observe
completion. Manages the runner lifecycle for the application.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import UTC, datetime, timedelta
from typing import Callable

from cv_analyzer.config import settings
from cv_analyzer.db.store import AnalysisStore
from cv_analyzer.errors import SchedulingError

logger = logging.getLogger(__name__)

STUCK_REASON = "Analysis did not finish; the worker stopped before recording a result. Please reanalyze."


class AnalysisTaskRunner:
    """Thread-pool executor keyed by analysis id."""

    def __init__(self, max_workers: int | None = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.analysis_workers,
            thread_name_prefix="cv-analysis",
        )
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, analysis_id: str, fn: Callable, *args) -> Future:
        """
        Schedule `fn(*args)` as the run for `analysis_id`.

        Raises:
            SchedulingError: the runner is shut down or the record already
                has a live run
        """
        with self._lock:
            if self._closed:
                raise SchedulingError("Analysis runner is not accepting work")
            current = self._futures.get(analysis_id)
            if current is not None and not current.done():
                raise SchedulingError(f"Analysis {analysis_id} is already running")
            try:
                future = self._executor.submit(fn, *args)
            except RuntimeError as e:
                raise SchedulingError(f"Could not schedule analysis: {e}") from e
            self._futures[analysis_id] = future

        future.add_done_callback(lambda f: self._on_done(analysis_id, f))
        logger.info(f"[{analysis_id}] Scheduled analysis run")
        return future

    def _on_done(self, analysis_id: str, future: Future) -> None:
        if future.cancelled():
            logger.warning(f"[{analysis_id}] Run cancelled")
        elif future.exception() is not None:
            logger.error(f"[{analysis_id}] Run ended with error: {future.exception()}")
        with self._lock:
            if self._futures.get(analysis_id) is future:
                del self._futures[analysis_id]

    def is_running(self, analysis_id: str) -> bool:
        with self._lock:
            future = self._futures.get(analysis_id)
            return future is not None and not future.done()

    def active_ids(self) -> set[str]:
        with self._lock:
            return {aid for aid, f in self._futures.items() if not f.done()}

    def wait(self, analysis_id: str, timeout: float | None = None) -> bool:
        """Block until the run for `analysis_id` finishes. False on timeout."""
        with self._lock:
            future = self._futures.get(analysis_id)
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        except Exception:  # noqa: BLE001 - already logged by _on_done
            pass
        return True

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=not wait)


_runner: AnalysisTaskRunner | None = None


def init_runner(max_workers: int | None = None) -> AnalysisTaskRunner:
    """Create the process-wide runner. Call once at app startup."""
    global _runner
    if _runner is None:
        _runner = AnalysisTaskRunner(max_workers)
    return _runner


def get_runner() -> AnalysisTaskRunner:
    """Get the active runner. Raises if not initialized."""
    if _runner is None:
        raise RuntimeError("Task runner not initialized - call init_runner() first")
    return _runner


def close_runner(wait: bool = True) -> None:
    """Stop accepting work and drain the pool. Call at app shutdown."""
    global _runner
    if _runner is not None:
        _runner.shutdown(wait=wait)
    _runner = None


def reconcile_stuck_analyses(
    store: AnalysisStore,
    runner: AnalysisTaskRunner | None = None,
    older_than: timedelta | None = None,
) -> list[str]:
    """
    Fail records left in processing with no live run.

    Returns:
        Ids that were moved to failed
    """
    older_than = older_than or timedelta(minutes=settings.stuck_analysis_minutes)
    cutoff = datetime.now(UTC) - older_than
    live = runner.active_ids() if runner else set()

    reconciled = []
    for record in store.find_stuck(cutoff):
        if record.id in live:
            continue
        if store.mark_failed(record.id, record.version, STUCK_REASON):
            reconciled.append(record.id)
            logger.warning(f"[{record.id}] Marked stuck analysis as failed")

    if reconciled:
        logger.info(f"Reconciled {len(reconciled)} stuck analysis record(s)")
    return reconciled
