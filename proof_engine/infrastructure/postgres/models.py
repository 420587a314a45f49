#proof_engine\infrastructure\postgres\models.py
"""SQLAlchemy ORM models for database tables."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from proof_engine.core.models import DeploymentStatus, LogLevel, Platform
from proof_engine.infrastructure.postgres.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentORM(Base):
    """
    Deployment table - one row per submitted repository.

    Indexes:
    - Primary key on deployment_id
    - Index on status for listing work by stage
    """

    __tablename__ = "deployments"

    # Identity
    deployment_id = Column(String(36), primary_key=True, nullable=False)
    repo_url = Column(Text, nullable=False)
    platform = Column(
        SQLEnum(Platform, name="deployment_platform"),
        nullable=False,
        default=Platform.LOCAL,
    )

    # State
    status = Column(
        SQLEnum(DeploymentStatus, name="deployment_status"),
        nullable=False,
        default=DeploymentStatus.QUEUED,
        index=True,
    )

    # Classification (detecting)
    detected_language = Column(String(50), nullable=True)
    detected_framework = Column(String(50), nullable=True)
    package_manager = Column(String(20), nullable=True)
    start_command = Column(Text, nullable=True)
    port = Column(Integer, nullable=True)

    # Artifacts (generating)
    dockerfile = Column(Text, nullable=True)
    ci_pipeline = Column(Text, nullable=True)

    # Runtime binding (building)
    container_id = Column(String(128), nullable=True)
    host_port = Column(Integer, nullable=True)
    url = Column(String(255), nullable=True)

    # Metrics (testing)
    metrics = Column(JSON, nullable=True)

    # Completion / failure
    certificate_id = Column(String(36), nullable=True)
    error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<DeploymentORM(deployment_id={self.deployment_id}, "
            f"status={self.status.value})>"
        )


class DeploymentLogORM(Base):
    """
    Deployment log table - append-only.

    Rows are only ever inserted; order is the autoincrement sequence.
    """

    __tablename__ = "deployment_logs"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    deployment_id = Column(
        String(36),
        ForeignKey("deployments.deployment_id", ondelete="CASCADE"),
        nullable=False,
    )
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    level = Column(SQLEnum(LogLevel, name="log_level"), nullable=False)
    message = Column(Text, nullable=False)

    __table_args__ = (
        Index("ix_deployment_logs_deployment_seq", "deployment_id", "sequence"),
    )


class CertificateORM(Base):
    """
    Certificate table - write once.

    Indexes:
    - Primary key on certificate_id
    - Index on deployment_id for back-reference lookups
    """

    __tablename__ = "certificates"

    certificate_id = Column(String(36), primary_key=True, nullable=False)
    deployment_id = Column(String(36), nullable=False, index=True)

    # Snapshot
    user_name = Column(String(255), nullable=False)
    repo_url = Column(Text, nullable=False)
    platform = Column(String(20), nullable=False)
    detected_language = Column(String(50), nullable=True)
    detected_framework = Column(String(50), nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    metrics = Column(JSON, nullable=False)
    format_version = Column(Integer, nullable=False, default=1)

    # HMAC-SHA256 hex digest
    signature = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class DeploymentJobORM(Base):
    """
    Work queue table - one row per undelivered or in-flight work item.

    Indexes:
    - Composite index on (lease_expires_at, enqueued_at) for claiming
    """

    __tablename__ = "deployment_jobs"

    job_id = Column(String(36), primary_key=True, nullable=False)
    deployment_id = Column(String(36), nullable=False, index=True)
    enqueued_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    attempts = Column(Integer, nullable=False, default=0)

    # Lease management
    lease_owner = Column(String(255), nullable=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_deployment_jobs_claim_lookup", "lease_expires_at", "enqueued_at"),
    )
