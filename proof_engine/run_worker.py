# proof_engine/run_worker.py
"""Run the pipeline worker pool against the shared queue."""

import logging
import signal
import sys
import time

from proof_engine.config import get_settings
from proof_engine.container import build_context

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    settings = get_settings()
    if settings.storage_backend == "memory":
        logger.warning(
            "STORAGE_BACKEND=memory: this worker only sees deployments created "
            "in its own process"
        )

    context = build_context(settings)
    executor = context.executor

    def signal_handler(sig, frame):
        """Handle Ctrl+C gracefully."""
        logger.info("🛑 Shutting down worker...")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("=" * 80)
    logger.info("🚀 PROOF ENGINE WORKER")
    logger.info("=" * 80)
    logger.info(f"Worker ID: {executor.executor_id}")
    logger.info(f"Max Slots: {executor.slots.total_slots()}")
    logger.info(f"Poll Interval: {executor.poll_interval}s")
    logger.info(f"Lease Duration: {executor.lease_seconds}s")
    logger.info(f"Workspace: {settings.workspace_dir}")
    logger.info(f"Teardown Delay: {settings.teardown_delay_seconds}s")
    logger.info("")
    logger.info("Press Ctrl+C to stop")
    logger.info("=" * 80)
    logger.info("")

    executor.start()

    # Keep running until the claim loop exits
    try:
        while executor.is_running():
            time.sleep(1)
        logger.error("Executor loop stopped unexpectedly")
    except KeyboardInterrupt:
        logger.info("🛑 Shutting down worker...")
    finally:
        context.shutdown()


if __name__ == "__main__":
    main()
