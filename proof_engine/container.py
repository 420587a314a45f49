#proof_engine\container.py

"""Dependency injection container - wires all services together."""

import logging
from dataclasses import dataclass
from typing import Optional

from proof_engine.certificates.issuer import CertificateIssuer
from proof_engine.config import PipelineSettings, get_settings
from proof_engine.core.queue import WorkQueue
from proof_engine.core.repository import CertificateRepository, DeploymentRepository
from proof_engine.core.service import DeploymentService
from proof_engine.executor.config import ExecutorConfig
from proof_engine.executor.executor import Executor
from proof_engine.orchestrator.pipeline_orchestrator import PipelineOrchestrator
from proof_engine.orchestrator.teardown import TeardownScheduler
from proof_engine.prober.prober import Prober
from proof_engine.runner.container_runner import ContainerRunner
from proof_engine.runner.git_client import GitClient
from proof_engine.runner.ports import PortAllocator

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Everything one process needs, built once and passed around."""

    settings: PipelineSettings
    deployment_repo: DeploymentRepository
    certificate_repo: CertificateRepository
    queue: WorkQueue
    service: DeploymentService
    issuer: CertificateIssuer
    teardown: TeardownScheduler
    orchestrator: PipelineOrchestrator
    executor: Executor

    def shutdown(self) -> None:
        self.executor.stop()
        self.teardown.shutdown(run_pending=True)


# ============================================
# REPOSITORIES
# ============================================

def _memory_storage():
    from proof_engine.infrastructure.memory.queue import InMemoryWorkQueue
    from proof_engine.infrastructure.memory.repository import (
        InMemoryCertificateRepository,
        InMemoryDeploymentRepository,
    )

    return (
        InMemoryDeploymentRepository(),
        InMemoryCertificateRepository(),
        InMemoryWorkQueue(),
    )


def _postgres_storage():
    from proof_engine.infrastructure.postgres.database import (
        create_db_engine,
        get_session_factory,
    )
    from proof_engine.infrastructure.postgres.queue import PostgresWorkQueue
    from proof_engine.infrastructure.postgres.repository import (
        PostgresCertificateRepository,
        PostgresDeploymentRepository,
    )

    session_factory = get_session_factory(create_db_engine())
    return (
        PostgresDeploymentRepository(session_factory),
        PostgresCertificateRepository(session_factory),
        PostgresWorkQueue(session_factory),
    )


# ============================================
# CONTEXT
# ============================================

def build_context(
    settings: Optional[PipelineSettings] = None,
    *,
    deployment_repo: Optional[DeploymentRepository] = None,
    certificate_repo: Optional[CertificateRepository] = None,
    queue: Optional[WorkQueue] = None,
    source_fetcher=None,
    runner=None,
    prober=None,
) -> PipelineContext:
    """
    Build the service graph.

    Storage comes from settings.storage_backend unless all three stores are
    passed in. The external collaborators (git, docker, HTTP) default to the
    real implementations; tests pass fakes.
    """
    settings = settings or get_settings()

    if deployment_repo is None or certificate_repo is None or queue is None:
        if settings.storage_backend == "postgres":
            storage = _postgres_storage()
        else:
            storage = _memory_storage()
        deployment_repo = deployment_repo or storage[0]
        certificate_repo = certificate_repo or storage[1]
        queue = queue or storage[2]

    logger.info(f"Storage backend: {settings.storage_backend}")

    # Services
    service = DeploymentService(
        deployment_repo=deployment_repo,
        certificate_repo=certificate_repo,
        queue=queue,
    )

    issuer = CertificateIssuer(
        deployment_repo=deployment_repo,
        certificate_repo=certificate_repo,
        secret=settings.certificate_secret,
        user_name=settings.certificate_user_name,
    )

    # Pipeline collaborators
    source_fetcher = source_fetcher or GitClient(timeout=settings.clone_timeout_seconds)
    runner = runner or ContainerRunner(
        port_allocator=PortAllocator(
            low=settings.port_range_low,
            high=settings.port_range_high,
        ),
        network=settings.docker_network,
        startup_grace_seconds=settings.startup_grace_seconds,
    )
    prober = prober or Prober(
        health_timeout=settings.health_check_timeout,
        load_timeout=settings.load_test_timeout,
        load_requests=settings.load_test_requests,
    )

    teardown = TeardownScheduler()

    orchestrator = PipelineOrchestrator(
        deployment_repo=deployment_repo,
        source_fetcher=source_fetcher,
        runner=runner,
        prober=prober,
        issuer=issuer,
        teardown=teardown,
        workspace_dir=settings.workspace_dir,
        teardown_delay_seconds=settings.teardown_delay_seconds,
    )

    executor = Executor(
        config=ExecutorConfig(
            worker_id=settings.worker_id,
            poll_interval_seconds=settings.poll_interval_seconds,
            max_slots=settings.worker_count,
            lease_seconds=settings.lease_seconds,
        ),
        queue=queue,
        orchestrator=orchestrator,
    )

    return PipelineContext(
        settings=settings,
        deployment_repo=deployment_repo,
        certificate_repo=certificate_repo,
        queue=queue,
        service=service,
        issuer=issuer,
        teardown=teardown,
        orchestrator=orchestrator,
        executor=executor,
    )
