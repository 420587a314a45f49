# proof_engine/infrastructure/memory/repository.py

import copy
from threading import Lock
from typing import Iterable, List, Optional

from proof_engine.core.errors import AlreadyExists, DeploymentConcurrencyError, NotFoundError
from proof_engine.core.models import (
    CertificateRecord,
    DeploymentRecord,
    DeploymentStatus,
    LogEntry,
)
from proof_engine.core.repository import CertificateRepository, DeploymentRepository


class InMemoryDeploymentRepository(DeploymentRepository):
    """Stores copies, so callers never share a record with the store."""

    def __init__(self):
        self._store: dict[str, DeploymentRecord] = {}
        self._lock = Lock()

    def create(self, record: DeploymentRecord) -> None:
        with self._lock:
            if record.deployment_id in self._store:
                raise AlreadyExists(f"Deployment {record.deployment_id} already exists")
            self._store[record.deployment_id] = copy.deepcopy(record)

    def get(self, deployment_id: str) -> DeploymentRecord | None:
        with self._lock:
            stored = self._store.get(deployment_id)
            return copy.deepcopy(stored) if stored else None

    def update(self, record: DeploymentRecord) -> None:
        with self._lock:
            stored = self._store.get(record.deployment_id)
            if not stored:
                raise NotFoundError(f"Deployment {record.deployment_id} not found")

            if stored.version != record.version - 1:
                raise DeploymentConcurrencyError(
                    f"Update failed for {record.deployment_id} - concurrent modification "
                    f"(stored v{stored.version}, incoming v{record.version})"
                )

            updated = copy.deepcopy(record)
            updated.logs = stored.logs
            self._store[record.deployment_id] = updated

    def append_log(self, deployment_id: str, entry: LogEntry) -> None:
        with self._lock:
            stored = self._store.get(deployment_id)
            if not stored:
                raise NotFoundError(f"Deployment {deployment_id} not found")
            stored.logs.append(entry)
            if entry.timestamp > stored.updated_at:
                stored.updated_at = entry.timestamp

    def list_by_status(
        self,
        status: DeploymentStatus,
        limit: int = 100,
    ) -> Iterable[DeploymentRecord]:
        results = []
        with self._lock:
            for record in self._store.values():
                if record.status == status:
                    results.append(copy.deepcopy(record))
                if len(results) >= limit:
                    break
        return results


class InMemoryCertificateRepository(CertificateRepository):
    def __init__(self):
        self._store: dict[str, CertificateRecord] = {}
        self._lock = Lock()

    def create(self, certificate: CertificateRecord) -> None:
        with self._lock:
            if certificate.certificate_id in self._store:
                raise AlreadyExists(
                    f"Certificate {certificate.certificate_id} already exists"
                )
            self._store[certificate.certificate_id] = certificate

    def get(self, certificate_id: str) -> Optional[CertificateRecord]:
        return self._store.get(certificate_id)

    def list_by_deployment(self, deployment_id: str) -> List[CertificateRecord]:
        with self._lock:
            return [
                c for c in self._store.values()
                if c.deployment_id == deployment_id
            ]
