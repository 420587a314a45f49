"""Test the delayed teardown scheduler."""

import threading
import time

import pytest

from proof_engine.orchestrator.teardown import TeardownScheduler


@pytest.fixture
def scheduler():
    scheduler = TeardownScheduler()
    yield scheduler
    scheduler.shutdown()


class TestTeardownScheduler:
    def test_runs_after_delay(self, scheduler):
        """Test the action runs once the delay passes."""
        done = threading.Event()

        scheduler.schedule("container-1", 0.01, done.set)

        assert done.wait(timeout=2.0)
        assert scheduler.pending() == []

    def test_cancel(self, scheduler):
        """Test a cancelled job never runs."""
        ran = threading.Event()
        scheduler.schedule("container-1", 0.2, ran.set)

        assert scheduler.cancel("container-1") is True
        assert scheduler.cancel("container-1") is False
        assert not ran.wait(timeout=0.4)

    def test_reschedule_replaces(self, scheduler):
        """Test scheduling the same key again replaces the earlier job."""
        calls = []
        done = threading.Event()

        scheduler.schedule("container-1", 0.2, lambda: calls.append("first"))
        scheduler.schedule("container-1", 0.01, lambda: (calls.append("second"), done.set()))

        assert done.wait(timeout=2.0)
        time.sleep(0.3)
        assert calls == ["second"]

    def test_failing_action_is_contained(self, scheduler):
        """Test an exception in one job does not affect others."""
        done = threading.Event()

        def explode():
            raise RuntimeError("docker went away")

        scheduler.schedule("container-1", 0.01, explode)
        scheduler.schedule("container-2", 0.05, done.set)

        assert done.wait(timeout=2.0)

    def test_shutdown_runs_pending(self):
        """Test shutdown(run_pending=True) runs outstanding jobs immediately."""
        scheduler = TeardownScheduler()
        calls = []
        scheduler.schedule("container-1", 300, lambda: calls.append("container-1"))
        scheduler.schedule("container-2", 300, lambda: calls.append("container-2"))

        assert sorted(scheduler.pending()) == ["container-1", "container-2"]

        scheduler.shutdown(run_pending=True)

        assert sorted(calls) == ["container-1", "container-2"]
        assert scheduler.pending() == []
