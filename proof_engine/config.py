#proof_engine\config.py

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class PipelineSettings(BaseSettings):
    """Pipeline configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Certificates (NO DEFAULT)
    certificate_secret: str
    certificate_user_name: str = "Anonymous Developer"

    # Storage
    storage_backend: Literal["memory", "postgres"] = "memory"

    # Workspace
    workspace_dir: Path = Path("/tmp/proof-engine/workspaces")

    # Docker
    docker_network: str = "bridge"
    startup_grace_seconds: float = 5.0
    port_range_low: int = 3000
    port_range_high: int = 13000

    # Workers
    worker_id: str = "worker-1"
    worker_count: int = 2
    poll_interval_seconds: float = 1.0
    lease_seconds: int = 30

    # Probes
    health_check_timeout: float = 10.0
    load_test_timeout: float = 5.0
    load_test_requests: int = 50

    # Teardown
    teardown_delay_seconds: float = 300.0

    # Git
    clone_timeout_seconds: int = 300


@lru_cache
def get_settings() -> PipelineSettings:
    return PipelineSettings()
