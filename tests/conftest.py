#tests\conftest.py

"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from proof_engine.certificates.issuer import CertificateIssuer
from proof_engine.config import PipelineSettings
from proof_engine.core.models import (
    Classification,
    HealthCheckResult,
    LoadTestResult,
    Metrics,
    RuntimeBinding,
)
from proof_engine.core.service import DeploymentService
from proof_engine.core.validation import consistency_violations
from proof_engine.infrastructure.memory.queue import InMemoryWorkQueue
from proof_engine.infrastructure.memory.repository import (
    InMemoryCertificateRepository,
    InMemoryDeploymentRepository,
)
from proof_engine.infrastructure.postgres.database import (
    drop_db,
    get_session_factory,
    init_db,
)
from proof_engine.orchestrator.pipeline_orchestrator import PipelineOrchestrator
from proof_engine.runner.git_client import SourceFetcher

TEST_SECRET = "test-certificate-secret"
REPO_URL = "https://github.com/acme/hello-express"

EXPRESS_FILES = {
    "package.json": (
        '{"name": "hello", "scripts": {"start": "node server.js"}, '
        '"dependencies": {"express": "^4.18.2"}}'
    ),
    "server.js": "require('express')().listen(3000)",
}


# -------------------------
# Fakes for external collaborators
# -------------------------

class FakeFetcher(SourceFetcher):
    """Writes a fixed file set instead of cloning."""

    def __init__(self, files: Optional[Dict[str, str]] = None, error: Optional[Exception] = None):
        self.files = EXPRESS_FILES if files is None else files
        self.error = error
        self.calls: List[str] = []

    def clone(self, repo_url: str, destination: Path) -> Path:
        self.calls.append(repo_url)
        if self.error:
            raise self.error

        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        for name, content in self.files.items():
            (destination / name).write_text(content, encoding="utf-8")
        return destination


class FakeRunner:
    """Pretends to build and start a container."""

    def __init__(self, error: Optional[Exception] = None, host_port: int = 4321):
        self.error = error
        self.host_port = host_port
        self.started: List[str] = []
        self.stopped: List[str] = []

    def build_and_run(self, working_tree, deployment_id, classification) -> RuntimeBinding:
        if self.error:
            raise self.error
        self.started.append(deployment_id)
        return RuntimeBinding(
            container_id=f"container-{deployment_id}",
            host_port=self.host_port,
            url=f"http://localhost:{self.host_port}",
        )

    def stop(self, container_id: str) -> bool:
        self.stopped.append(container_id)
        return True


class FakeProber:
    def __init__(
        self,
        health: Optional[HealthCheckResult] = None,
        load: Optional[LoadTestResult] = None,
        error: Optional[Exception] = None,
    ):
        self.health = health or HealthCheckResult(success=True, status_code=200, response_time=12.5)
        self.load = load or LoadTestResult(
            total_requests=50,
            successful_requests=50,
            failed_requests=0,
            average_latency=8.4,
            min_latency=3.1,
            max_latency=20.0,
        )
        self.error = error
        self.urls: List[str] = []

    def health_check(self, url: str) -> HealthCheckResult:
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.health

    def load_test(self, url: str) -> LoadTestResult:
        return self.load


class RecordingTeardown:
    """Records teardown requests without starting timers."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, key, delay_seconds, action):
        self.scheduled.append((key, delay_seconds, action))


class AuditingDeploymentRepository(InMemoryDeploymentRepository):
    """Keeps every persisted status and any consistency violation seen."""

    def __init__(self):
        super().__init__()
        self.statuses = []
        self.violations = []

    def update(self, record):
        super().update(record)
        self.statuses.append(record.status)
        self.violations.extend(consistency_violations(record))


# -------------------------
# Fixtures
# -------------------------

@pytest.fixture
def deployment_repo():
    return AuditingDeploymentRepository()


@pytest.fixture
def certificate_repo():
    return InMemoryCertificateRepository()


@pytest.fixture
def queue():
    return InMemoryWorkQueue()


@pytest.fixture
def service(deployment_repo, certificate_repo, queue):
    return DeploymentService(
        deployment_repo=deployment_repo,
        certificate_repo=certificate_repo,
        queue=queue,
    )


@pytest.fixture
def issuer(deployment_repo, certificate_repo):
    return CertificateIssuer(
        deployment_repo=deployment_repo,
        certificate_repo=certificate_repo,
        secret=TEST_SECRET,
    )


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def prober():
    return FakeProber()


@pytest.fixture
def teardown():
    return RecordingTeardown()


@pytest.fixture
def orchestrator(deployment_repo, fetcher, runner, prober, issuer, teardown, tmp_path):
    return PipelineOrchestrator(
        deployment_repo=deployment_repo,
        source_fetcher=fetcher,
        runner=runner,
        prober=prober,
        issuer=issuer,
        teardown=teardown,
        workspace_dir=tmp_path / "workspaces",
        teardown_delay_seconds=300.0,
    )


@pytest.fixture
def settings(tmp_path):
    return PipelineSettings(
        certificate_secret=TEST_SECRET,
        storage_backend="memory",
        workspace_dir=tmp_path / "workspaces",
        poll_interval_seconds=0.01,
        lease_seconds=30,
        worker_count=2,
        teardown_delay_seconds=300.0,
    )


@pytest.fixture
def sample_classification():
    return Classification(
        language="Node.js",
        framework="Express",
        package_manager="npm",
        start_command="node server.js",
        port=3000,
    )


@pytest.fixture
def sample_metrics():
    return Metrics(
        health_check=HealthCheckResult(success=True, status_code=200, response_time=12.5),
        load_test=LoadTestResult(
            total_requests=50,
            successful_requests=48,
            failed_requests=2,
            average_latency=9.75,
            min_latency=2.0,
            max_latency=5000.0,
        ),
    )


# -------------------------
# SQLAlchemy on in-memory SQLite
# -------------------------

@pytest.fixture
def test_engine():
    """SQLite engine shared across sessions of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    yield engine

    drop_db(engine)
    engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    """Create session factory for tests."""
    return get_session_factory(test_engine)
