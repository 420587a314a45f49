#proof_engine\executor\config.py
from dataclasses import dataclass


@dataclass(frozen=True)
class ExecutorConfig:
    worker_id: str

    poll_interval_seconds: float = 1.0
    max_slots: int = 2

    lease_seconds: int = 30
