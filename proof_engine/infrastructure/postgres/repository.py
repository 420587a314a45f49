#proof_engine\infrastructure\postgres\repository.py

"""PostgreSQL repository implementations using SQLAlchemy."""

from typing import Iterable, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from proof_engine.core.errors import (
    AlreadyExists,
    DeploymentConcurrencyError,
    NotFoundError,
    PersistenceError,
)
from proof_engine.core.models import (
    Artifacts,
    CertificateRecord,
    CertificateSnapshot,
    Classification,
    DeploymentRecord,
    DeploymentStatus,
    LogEntry,
    Metrics,
    RuntimeBinding,
    as_utc,
)
from proof_engine.core.repository import CertificateRepository, DeploymentRepository
from proof_engine.infrastructure.postgres.models import (
    CertificateORM,
    DeploymentLogORM,
    DeploymentORM,
)


# ============================================
# Mapping Functions
# ============================================

def _apply_record(orm: DeploymentORM, record: DeploymentRecord) -> DeploymentORM:
    """Copy every non-log field of a record onto an ORM row."""
    classification = record.classification
    artifacts = record.artifacts
    runtime = record.runtime

    orm.repo_url = record.repo_url
    orm.platform = record.platform
    orm.status = record.status
    orm.detected_language = classification.language if classification else None
    orm.detected_framework = classification.framework if classification else None
    orm.package_manager = classification.package_manager if classification else None
    orm.start_command = classification.start_command if classification else None
    orm.port = classification.port if classification else None
    orm.dockerfile = artifacts.dockerfile if artifacts else None
    orm.ci_pipeline = artifacts.ci_pipeline if artifacts else None
    orm.container_id = runtime.container_id if runtime else None
    orm.host_port = runtime.host_port if runtime else None
    orm.url = runtime.url if runtime else None
    orm.metrics = record.metrics.to_dict() if record.metrics else None
    orm.certificate_id = record.certificate_id
    orm.error = record.error
    orm.created_at = record.created_at
    orm.updated_at = record.updated_at
    orm.version = record.version
    return orm


def deployment_to_orm(record: DeploymentRecord) -> DeploymentORM:
    """Convert deployment domain model to ORM."""
    return _apply_record(DeploymentORM(deployment_id=record.deployment_id), record)


def orm_to_deployment(
    orm: DeploymentORM,
    logs: Iterable[DeploymentLogORM] = (),
) -> DeploymentRecord:
    """Convert ORM model to deployment domain model."""
    classification = None
    if orm.detected_language is not None:
        classification = Classification(
            language=orm.detected_language,
            framework=orm.detected_framework,
            package_manager=orm.package_manager,
            start_command=orm.start_command,
            port=orm.port,
        )

    artifacts = None
    if orm.dockerfile is not None:
        artifacts = Artifacts(dockerfile=orm.dockerfile, ci_pipeline=orm.ci_pipeline or "")

    runtime = None
    if orm.container_id is not None:
        runtime = RuntimeBinding(
            container_id=orm.container_id,
            host_port=orm.host_port,
            url=orm.url,
        )

    return DeploymentRecord(
        deployment_id=orm.deployment_id,
        repo_url=orm.repo_url,
        platform=orm.platform,
        status=orm.status,
        classification=classification,
        artifacts=artifacts,
        runtime=runtime,
        metrics=Metrics.from_dict(orm.metrics) if orm.metrics else None,
        certificate_id=orm.certificate_id,
        error=orm.error,
        logs=[
            LogEntry(timestamp=as_utc(log.timestamp), level=log.level, message=log.message)
            for log in logs
        ],
        created_at=as_utc(orm.created_at),
        updated_at=as_utc(orm.updated_at),
        version=orm.version,
    )


def log_to_orm(deployment_id: str, entry: LogEntry) -> DeploymentLogORM:
    return DeploymentLogORM(
        deployment_id=deployment_id,
        timestamp=entry.timestamp,
        level=entry.level,
        message=entry.message,
    )


def certificate_to_orm(certificate: CertificateRecord) -> CertificateORM:
    """Convert certificate domain model to ORM."""
    snapshot = certificate.snapshot
    return CertificateORM(
        certificate_id=snapshot.certificate_id,
        deployment_id=snapshot.deployment_id,
        user_name=snapshot.user_name,
        repo_url=snapshot.repo_url,
        platform=snapshot.platform,
        detected_language=snapshot.detected_language,
        detected_framework=snapshot.detected_framework,
        issued_at=snapshot.issued_at,
        metrics=snapshot.metrics.to_dict(),
        format_version=snapshot.format_version,
        signature=certificate.signature,
    )


def orm_to_certificate(orm: CertificateORM) -> CertificateRecord:
    """Convert ORM model to certificate domain model."""
    return CertificateRecord(
        snapshot=CertificateSnapshot(
            certificate_id=orm.certificate_id,
            deployment_id=orm.deployment_id,
            user_name=orm.user_name,
            repo_url=orm.repo_url,
            platform=orm.platform,
            detected_language=orm.detected_language,
            detected_framework=orm.detected_framework,
            issued_at=as_utc(orm.issued_at),
            metrics=Metrics.from_dict(orm.metrics),
            format_version=orm.format_version,
        ),
        signature=orm.signature,
    )


# ============================================
# Repository Implementations
# ============================================

class PostgresDeploymentRepository(DeploymentRepository):
    """PostgreSQL implementation using SQLAlchemy with dependency injection."""

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize repository with a session factory.

        Args:
            session_factory: SQLAlchemy session factory (see get_session_factory).
        """
        self._session_factory = session_factory

    def _get_session(self) -> Session:
        """Get new session from the injected factory."""
        return self._session_factory()

    # -------------------------
    # CREATE
    # -------------------------

    def create(self, record: DeploymentRecord) -> None:
        """Create a new deployment with its initial log entries."""
        session = self._get_session()
        try:
            session.add(deployment_to_orm(record))
            session.flush()
            for entry in record.logs:
                session.add(log_to_orm(record.deployment_id, entry))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise AlreadyExists(
                f"Deployment {record.deployment_id} already exists"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to create deployment: {e}") from e
        finally:
            session.close()

    # -------------------------
    # READ
    # -------------------------

    def get(self, deployment_id: str) -> Optional[DeploymentRecord]:
        """Get deployment by ID, logs in insertion order."""
        session = self._get_session()
        try:
            orm = session.get(DeploymentORM, deployment_id)

            if orm is None:
                return None

            logs = session.execute(
                select(DeploymentLogORM)
                .where(DeploymentLogORM.deployment_id == deployment_id)
                .order_by(DeploymentLogORM.sequence)
            ).scalars().all()

            return orm_to_deployment(orm, logs)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load deployment: {e}") from e
        finally:
            session.close()

    def list_by_status(
        self,
        status: DeploymentStatus,
        limit: int = 100,
    ) -> Iterable[DeploymentRecord]:
        """List deployments in a given status (without logs)."""
        session = self._get_session()
        try:
            rows = session.execute(
                select(DeploymentORM)
                .where(DeploymentORM.status == status)
                .order_by(DeploymentORM.created_at)
                .limit(limit)
            ).scalars().all()
            return [orm_to_deployment(row) for row in rows]
        finally:
            session.close()

    # -------------------------
    # UPDATE
    # -------------------------

    def update(self, record: DeploymentRecord) -> None:
        """Persist record fields with optimistic locking; logs are untouched."""
        session = self._get_session()
        try:
            orm = session.execute(
                select(DeploymentORM)
                .where(
                    and_(
                        DeploymentORM.deployment_id == record.deployment_id,
                        DeploymentORM.version == record.version - 1,
                    )
                )
                .with_for_update()
            ).scalar_one_or_none()

            if orm is None:
                session.rollback()
                if session.get(DeploymentORM, record.deployment_id) is None:
                    raise NotFoundError(f"Deployment {record.deployment_id} not found")
                raise DeploymentConcurrencyError(
                    f"Update failed for {record.deployment_id} - concurrent modification"
                )

            _apply_record(orm, record)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to update deployment: {e}") from e
        finally:
            session.close()

    def append_log(self, deployment_id: str, entry: LogEntry) -> None:
        """Insert one log row; never rewrites existing rows."""
        session = self._get_session()
        try:
            orm = session.get(DeploymentORM, deployment_id)
            if orm is None:
                raise NotFoundError(f"Deployment {deployment_id} not found")

            session.add(log_to_orm(deployment_id, entry))
            if as_utc(orm.updated_at) < entry.timestamp:
                orm.updated_at = entry.timestamp
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to append log: {e}") from e
        finally:
            session.close()


class PostgresCertificateRepository(CertificateRepository):
    """Certificates are inserted once and never updated."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, certificate: CertificateRecord) -> None:
        session = self._session_factory()
        try:
            session.add(certificate_to_orm(certificate))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise AlreadyExists(
                f"Certificate {certificate.certificate_id} already exists"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to create certificate: {e}") from e
        finally:
            session.close()

    def get(self, certificate_id: str) -> Optional[CertificateRecord]:
        session = self._session_factory()
        try:
            orm = session.get(CertificateORM, certificate_id)
            return orm_to_certificate(orm) if orm else None
        finally:
            session.close()

    def list_by_deployment(self, deployment_id: str) -> List[CertificateRecord]:
        session = self._session_factory()
        try:
            rows = session.execute(
                select(CertificateORM)
                .where(CertificateORM.deployment_id == deployment_id)
                .order_by(CertificateORM.issued_at)
            ).scalars().all()
            return [orm_to_certificate(row) for row in rows]
        finally:
            session.close()
