"""Background periodic runner with a skip-if-busy overlap guard."""

from __future__ import annotations

import logging
import threading
from typing import Callable, TypeVar


logger = logging.getLogger("disk_usage.scheduler")

T = TypeVar("T")


class PeriodicScheduler:
    """Runs ``job`` once on start and then every ``interval_seconds``.

    A run that is triggered while another is in progress is skipped, not
    queued. Exceptions raised by the job are logged and the loop keeps going.
    """

    def __init__(self, job: Callable[[], T], interval_seconds: float, *, name: str = "disk-usage-refresh") -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self.job = job
        self.interval_seconds = float(interval_seconds)
        self.name = name
        self._stop_event = threading.Event()
        self._busy = threading.Lock()
        self._thread: threading.Thread | None = None
        self.runs_completed = 0
        self.runs_skipped = 0
        self.runs_failed = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def on_worker_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def start(self, *, run_immediately: bool = True) -> None:
        """Start the worker thread.

        With ``run_immediately=False`` the first scheduled run happens one
        interval after start, for callers that already ran the job themselves.
        """
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(run_immediately,),
            name=self.name,
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Scheduler started name=%s interval_seconds=%s run_immediately=%s",
            self.name,
            self.interval_seconds,
            run_immediately,
        )

    def stop(self, timeout: float | None = None) -> bool:
        """Signal the loop to exit and wait for an in-flight run.

        Returns False when the worker thread is still alive after ``timeout``.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout)
        stopped = not thread.is_alive()
        logger.info("Scheduler stop requested name=%s stopped=%s", self.name, stopped)
        return stopped

    def run_now(self, job: Callable[[], T] | None = None) -> tuple[bool, T | None]:
        """Run ``job`` (default: the scheduled job) on the calling thread.

        Returns ``(False, None)`` without running when a run is already in flight.
        """
        if not self._busy.acquire(blocking=False):
            self.runs_skipped += 1
            logger.info("Scheduler run skipped; previous run still in progress name=%s", self.name)
            return False, None
        try:
            result = (job or self.job)()
            self.runs_completed += 1
            return True, result
        finally:
            self._busy.release()

    def trigger(self) -> bool:
        """Run the scheduled job on the calling thread; failures are logged, not raised."""
        try:
            ran, _ = self.run_now()
        except Exception:
            self.runs_failed += 1
            logger.exception("Scheduled job failed name=%s", self.name)
            return False
        return ran

    def _loop(self, run_immediately: bool = True) -> None:
        if not run_immediately and self._stop_event.wait(self.interval_seconds):
            return
        while not self._stop_event.is_set():
            self.trigger()
            if self._stop_event.wait(self.interval_seconds):
                break
