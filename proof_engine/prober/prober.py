# proof_engine/prober/prober.py
"""Prober - timed HTTP health probe and a sequential load-test burst."""

import logging
import time
from typing import Callable, List, Optional

import requests

from proof_engine.core.models import HealthCheckResult, LoadTestResult

logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT = 10.0
LOAD_TEST_TIMEOUT = 5.0
LOAD_TEST_REQUESTS = 50


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _ms(seconds: float) -> float:
    return round(seconds * 1000, 2)


class Prober:
    """
    Read-only probes against a running endpoint.

    No request is ever retried. An unreachable endpoint is a measurement,
    not an error: both operations return data and never raise for transport
    failures.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        health_timeout: float = HEALTH_CHECK_TIMEOUT,
        load_timeout: float = LOAD_TEST_TIMEOUT,
        load_requests: int = LOAD_TEST_REQUESTS,
        clock: Callable[[], float] = time.perf_counter,
    ):
        if load_requests < 1:
            raise ValueError("load_requests must be at least 1")

        self._session = session or requests.Session()
        self.health_timeout = health_timeout
        self.load_timeout = load_timeout
        self.load_requests = load_requests
        self._clock = clock

    def health_check(self, url: str) -> HealthCheckResult:
        """
        Single GET with the health timeout.

        Transport failure or timeout -> success=False, status_code=0,
        response_time=0.
        """
        start = self._clock()
        try:
            response = self._session.get(url, timeout=self.health_timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"❌ Health check error for {url}: {e}")
            return HealthCheckResult(success=False, status_code=0, response_time=0.0)

        elapsed = _ms(self._clock() - start)
        success = _is_success(response.status_code)

        if success:
            logger.info(f"✅ Health check OK: {url} ({response.status_code}, {elapsed}ms)")
        else:
            logger.warning(f"❌ Health check FAIL: {url} returned {response.status_code}")

        return HealthCheckResult(
            success=success,
            status_code=response.status_code,
            response_time=elapsed,
        )

    def load_test(self, url: str) -> LoadTestResult:
        """
        Issue load_requests sequential GETs.

        A request that errors or times out counts as failed and is recorded
        at the timeout value; a non-2xx response counts as failed at its
        measured latency.
        """
        latencies: List[float] = []
        successful = 0
        failed = 0
        timeout_ms = _ms(self.load_timeout)

        for _ in range(self.load_requests):
            start = self._clock()
            try:
                response = self._session.get(url, timeout=self.load_timeout)
            except requests.exceptions.RequestException:
                failed += 1
                latencies.append(timeout_ms)
                continue

            latencies.append(_ms(self._clock() - start))
            if _is_success(response.status_code):
                successful += 1
            else:
                failed += 1

        result = LoadTestResult(
            total_requests=self.load_requests,
            successful_requests=successful,
            failed_requests=failed,
            average_latency=round(sum(latencies) / len(latencies), 2),
            min_latency=min(latencies),
            max_latency=max(latencies),
        )

        logger.info(
            f"Load test {url}: {successful}/{self.load_requests} successful, "
            f"avg {result.average_latency}ms"
        )
        return result
