# proof_engine/executor/executor.py
"""Executor - claims work items and runs deployment pipelines."""

import logging
import threading
import time
from typing import Dict, Optional

from proof_engine.core.queue import WorkItem, WorkQueue
from proof_engine.executor.config import ExecutorConfig
from proof_engine.executor.slots import SlotManager
from proof_engine.orchestrator.pipeline_orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


class Executor:
    """
    Worker pool - claims items from the work queue and runs each one
    through the orchestrator in its own thread, bounded by slots.

    Items are acked once the orchestrator returns, whatever the outcome.
    Leases of running items are renewed on every loop tick; an item
    whose worker dies is redelivered when its lease runs out.
    """

    def __init__(
        self,
        *,
        config: ExecutorConfig,
        queue: WorkQueue,
        orchestrator: PipelineOrchestrator,
    ):
        self.config = config
        self.executor_id = config.worker_id
        self.queue = queue
        self.orchestrator = orchestrator
        self.poll_interval = config.poll_interval_seconds
        self.lease_seconds = config.lease_seconds

        self.slots = SlotManager(config.max_slots)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Track running items: {item_id: thread}
        self._running: Dict[str, threading.Thread] = {}
        self._running_lock = threading.Lock()

    def start(self):
        """Start executor main loop."""
        logger.info(f"[executor {self.executor_id}] 🚀 Starting executor")
        logger.info(f"[executor] Max slots: {self.slots.total_slots()}")
        logger.info(f"[executor] Poll interval: {self.poll_interval}s")
        logger.info(f"[executor] Lease duration: {self.lease_seconds}s")

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()

    def stop(self, wait_for_running: bool = True, timeout: Optional[float] = None):
        """Stop claiming; optionally wait for running pipelines."""
        logger.info(f"[executor {self.executor_id}] Stopping executor")
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

        if wait_for_running:
            for thread in self._running_threads():
                thread.join(timeout)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wait_idle(self, timeout: float = 10.0) -> bool:
        """Block until the queue is drained and nothing is running."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.queue.size() == 0 and not self._running_threads():
                return True
            time.sleep(0.01)
        return False

    def _running_threads(self):
        with self._running_lock:
            return list(self._running.values())

    # -------------------------
    # LOOP
    # -------------------------

    def _run_loop(self):
        """Main loop."""
        while not self._stop_event.is_set():
            try:
                self._renew_running_leases()
                while self.claim_and_execute():
                    pass
            except Exception as e:
                logger.error(f"[executor] Error in main loop: {e}", exc_info=True)

            self._stop_event.wait(self.poll_interval)

    def _renew_running_leases(self):
        """Renew leases for running items."""
        with self._running_lock:
            item_ids = list(self._running)

        for item_id in item_ids:
            try:
                renewed = self.queue.renew(
                    item_id,
                    self.executor_id,
                    self.lease_seconds,
                )
                if not renewed:
                    logger.warning(f"[executor] Lost lease for item {item_id}")
            except Exception as e:
                logger.error(f"[executor] Error renewing lease for {item_id}: {e}")

    def claim_and_execute(self) -> bool:
        """
        Claim one item into a free slot and start it.
        Returns True if an item was started.
        """
        if not self.slots.has_free_slot():
            return False

        item = self.queue.claim(self.executor_id, self.lease_seconds)
        if item is None:
            return False

        slot = self.slots.acquire(item.item_id, item.deployment_id)
        if slot is None:
            self.queue.nack(item.item_id)
            return False

        thread = threading.Thread(
            target=self._execute_in_thread,
            args=(item,),
            daemon=True,
        )
        with self._running_lock:
            self._running[item.item_id] = thread
        thread.start()

        logger.info(
            f"[executor] ✅ Started deployment {item.deployment_id} in slot {slot.slot_id} "
            f"(attempt {item.attempts})"
        )
        return True

    def _execute_in_thread(self, item: WorkItem):
        """Run one pipeline in a background thread."""
        deployment_id = item.deployment_id
        handled = False
        try:
            logger.info(f"[executor] [{deployment_id}] Starting pipeline")
            self.orchestrator.run(deployment_id)
            handled = True
        except Exception as e:
            logger.error(f"[executor] [{deployment_id}] ❌ Orchestrator crashed: {e}", exc_info=True)
        finally:
            try:
                if handled:
                    self.queue.ack(item.item_id)
                else:
                    self.queue.nack(item.item_id)
            except Exception as e:
                logger.error(f"[executor] [{deployment_id}] Could not settle item {item.item_id}: {e}")

            self.slots.release(item.item_id)
            with self._running_lock:
                self._running.pop(item.item_id, None)
