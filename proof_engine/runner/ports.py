# proof_engine/runner/ports.py
"""Host port reservation for published container ports."""

import logging
import random
import socket
import threading
from typing import Callable, FrozenSet, Optional

from proof_engine.core.errors import RunError

logger = logging.getLogger(__name__)


def is_port_free(port: int, host: str = "0.0.0.0") -> bool:
    """True if nothing on this host is bound to port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
        return True
    except OSError:
        return False
    finally:
        sock.close()


class PortAllocator:
    """
    Hands out host ports that are never handed out twice in this process.

    Reservations are kept for the allocator's lifetime, so a port bound by
    a container started earlier is never reassigned even after teardown.
    """

    def __init__(
        self,
        low: int = 3000,
        high: int = 13000,
        max_attempts: int = 100,
        rng: Optional[random.Random] = None,
        probe: Callable[[int], bool] = is_port_free,
    ):
        if low >= high:
            raise ValueError("low must be below high")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.low = low
        self.high = high
        self.max_attempts = max_attempts
        self._rng = rng or random.Random()
        self._probe = probe
        self._reserved: set[int] = set()
        self._lock = threading.Lock()

    def reserve(self) -> int:
        """
        Atomically pick and reserve a free host port.

        Raises:
            RunError: If no free port was found within max_attempts.
        """
        with self._lock:
            for _ in range(self.max_attempts):
                candidate = self._rng.randrange(self.low, self.high)

                if candidate in self._reserved:
                    continue

                if not self._probe(candidate):
                    logger.debug(f"Port {candidate} is bound on the host, skipping")
                    continue

                self._reserved.add(candidate)
                return candidate

        raise RunError(
            f"No free host port found in [{self.low}, {self.high}) "
            f"after {self.max_attempts} attempts"
        )

    def reserved(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._reserved)
