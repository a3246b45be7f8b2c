"""
ScheduleRunner -- In-process polling loop around the batch processor.

Contract:
    Calls ``BatchProcessor.process_scheduled_expenses()`` on a configurable
    interval.  When a run reports ``has_more_to_process`` the next run
    starts immediately instead of waiting out the interval.

Architecture: expense_schedules/services.  Drives
    expense_schedules.services.processor; owns no database state.

Invariants enforced:
    - A failing run is logged and never kills the loop.
    - Graceful shutdown: ``stop()`` signals the loop and waits for the
      current run to finish.
"""

from __future__ import annotations

import threading

from expense_kernel.logging_config import get_logger
from expense_schedules.domain.types import BatchRunSummary
from expense_schedules.services.processor import BatchProcessor

logger = get_logger("schedules.runner")


class ScheduleRunner:
    """Background runner for scheduled expense processing.

    Contract:
        - ``tick()`` performs one batch run and returns its summary, or
          None if the run failed.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler; several runners may share a database
          because claiming uses row locks, but nothing coordinates them.
    """

    def __init__(
        self,
        processor: BatchProcessor,
        tick_interval_seconds: float = 60,
        batch_size: int | None = None,
        max_schedules: int | None = None,
    ):
        self._processor = processor
        self._tick_interval = tick_interval_seconds
        self._batch_size = batch_size
        self._max_schedules = max_schedules
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> BatchRunSummary | None:
        """Run one batch (public for testing)."""
        try:
            return self._processor.process_scheduled_expenses(
                batch_size=self._batch_size,
                max_schedules=self._max_schedules,
            )
        except Exception:
            logger.exception("runner_tick_failed")
            return None

    def start(self) -> None:
        """Launch the polling thread; a no-op while one is alive."""
        if self.is_running:
            return
        self._stop_event.clear()
        worker = threading.Thread(
            target=self._run_loop,
            name="expense-schedule-runner",
            daemon=True,
        )
        self._thread = worker
        worker.start()
        logger.info("runner_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> bool:
        """
        Ask the loop to exit and wait up to ``timeout`` seconds for it.

        Returns:
            False if the thread was still running a batch when the wait
            ran out.
        """
        self._stop_event.set()
        worker = self._thread
        if worker is not None:
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning("runner_stop_timeout", extra={"timeout": timeout})
                return False
        logger.info("runner_stopped")
        return True

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            summary = self.tick()
            if summary is None or not summary.has_more_to_process:
                self._stop_event.wait(timeout=self._tick_interval)
