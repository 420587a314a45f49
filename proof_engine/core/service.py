"""Deployment service - inbound operations."""

import logging
from typing import Optional

from proof_engine.core.errors import NotFoundError, PersistenceError, ProofEngineError
from proof_engine.core.factory import DeploymentFactory
from proof_engine.core.models import (
    CertificateRecord,
    DeploymentRecord,
    DeploymentStatus,
    LogLevel,
)
from proof_engine.core.queue import WorkQueue
from proof_engine.core.repository import CertificateRepository, DeploymentRepository
from proof_engine.core.state_machine import DeploymentStateMachine

logger = logging.getLogger(__name__)


class DeploymentService:
    """Creates deployments and serves lookups. Lifecycle belongs to the orchestrator."""

    def __init__(
        self,
        deployment_repo: DeploymentRepository,
        certificate_repo: CertificateRepository,
        queue: WorkQueue,
    ):
        self._deployments = deployment_repo
        self._certificates = certificate_repo
        self._queue = queue

    # -------------------------
    # CREATE
    # -------------------------

    def create_deployment(
        self,
        repo_url: str,
        platform: Optional[str] = None,
    ) -> DeploymentRecord:
        """
        Validate, persist a queued record and enqueue it.

        Raises ValidationError before anything is written. If the work item
        cannot be queued the record is marked failed and PersistenceError
        is raised.
        """
        record = DeploymentFactory.create(repo_url=repo_url, platform=platform)

        self._deployments.create(record)
        try:
            item = self._queue.enqueue(record.deployment_id)
        except Exception as e:
            logger.error(f"[{record.deployment_id}] ❌ Could not enqueue deployment: {e}")
            self._abandon(record, f"Could not queue deployment: {e}")
            raise PersistenceError(f"Failed to enqueue deployment: {e}") from e

        logger.info(
            f"[{record.deployment_id}] Deployment queued for {record.repo_url} "
            f"(work item {item.item_id})"
        )
        return record

    def _abandon(self, record: DeploymentRecord, reason: str) -> None:
        """Fail a record no worker will ever receive."""
        try:
            DeploymentStateMachine.transition(record, DeploymentStatus.FAILED)
            record.error = reason
            record.touch()
            self._deployments.update(record)
            entry = record.add_log(f"Deployment failed: {reason}", LogLevel.ERROR)
            self._deployments.append_log(record.deployment_id, entry)
        except ProofEngineError as e:
            logger.error(f"[{record.deployment_id}] Could not mark deployment failed: {e}")

    # -------------------------
    # READ
    # -------------------------

    def get_deployment(self, deployment_id: str) -> DeploymentRecord:
        record = self._deployments.get(deployment_id)
        if record is None:
            raise NotFoundError(f"Deployment {deployment_id} not found")
        return record

    def get_certificate(self, certificate_id: str) -> CertificateRecord:
        certificate = self._certificates.get(certificate_id)
        if certificate is None:
            raise NotFoundError(f"Certificate {certificate_id} not found")
        return certificate
