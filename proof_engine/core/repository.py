# proof_engine/core/repository.py

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from proof_engine.core.models import (
    CertificateRecord,
    DeploymentRecord,
    DeploymentStatus,
    LogEntry,
)


class DeploymentRepository(ABC):
    """
    Persistence contract for deployment records.
    """

    @abstractmethod
    def create(self, record: DeploymentRecord) -> None:
        """
        Persist a new deployment together with its initial log entries.
        Must fail if deployment_id already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, deployment_id: str) -> Optional[DeploymentRecord]:
        """
        Fetch deployment by ID, logs included.
        Returns None if not found.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, record: DeploymentRecord) -> None:
        """
        Persist every field except the log.
        The stored log is never overwritten from the caller's copy.
        """
        raise NotImplementedError

    @abstractmethod
    def append_log(self, deployment_id: str, entry: LogEntry) -> None:
        """
        Append one entry to the deployment log.
        Concurrent appends must all be kept, in arrival order.
        """
        raise NotImplementedError

    @abstractmethod
    def list_by_status(
        self,
        status: DeploymentStatus,
        limit: int,
    ) -> Iterable[DeploymentRecord]:
        raise NotImplementedError


class CertificateRepository(ABC):
    """
    Persistence contract for issued certificates (write once).
    """

    @abstractmethod
    def create(self, certificate: CertificateRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, certificate_id: str) -> Optional[CertificateRecord]:
        raise NotImplementedError

    @abstractmethod
    def list_by_deployment(self, deployment_id: str) -> List[CertificateRecord]:
        """Secondary lookup on the deployment back-reference."""
        raise NotImplementedError
