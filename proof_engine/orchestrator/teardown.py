# proof_engine/orchestrator/teardown.py
"""Delayed, cancellable teardown jobs keyed by container id."""

import logging
import threading
from typing import Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)


class TeardownScheduler:
    """
    Runs one deferred action per key after a delay.

    Each job runs inside its own failure containment: an exception is
    logged and dropped, never propagated to whoever scheduled it.
    Scheduling an existing key replaces the earlier job.
    """

    def __init__(self):
        self._jobs: Dict[str, Tuple[threading.Timer, Callable[[], object]]] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, delay_seconds: float, action: Callable[[], object]) -> None:
        timer = threading.Timer(delay_seconds, self._fire, args=(key,))
        timer.daemon = True

        with self._lock:
            previous = self._jobs.pop(key, None)
            if previous:
                previous[0].cancel()
            self._jobs[key] = (timer, action)

        timer.start()
        logger.info(f"Teardown of {key[:12]} scheduled in {delay_seconds:g}s")

    def cancel(self, key: str) -> bool:
        with self._lock:
            job = self._jobs.pop(key, None)
        if not job:
            return False
        job[0].cancel()
        return True

    def pending(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def shutdown(self, run_pending: bool = False) -> None:
        """Cancel every job, optionally running the actions right away."""
        with self._lock:
            jobs = list(self._jobs.items())
            self._jobs.clear()

        for key, (timer, action) in jobs:
            timer.cancel()
            if run_pending:
                self._run_contained(key, action)

    def _fire(self, key: str) -> None:
        with self._lock:
            job = self._jobs.get(key)
            if not job or job[0] is not threading.current_thread():
                return
            del self._jobs[key]

        self._run_contained(key, job[1])

    @staticmethod
    def _run_contained(key: str, action: Callable[[], object]) -> None:
        try:
            action()
        except Exception as e:
            logger.error(f"Teardown of {key[:12]} failed: {e}", exc_info=True)
