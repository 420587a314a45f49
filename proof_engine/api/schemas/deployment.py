from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from proof_engine.core.models import CertificateRecord, DeploymentRecord


class DeploymentCreateRequest(BaseModel):
    # Presence, URL shape and platform name are checked by the domain validator.
    repo_url: Optional[str] = None
    platform: Optional[str] = None


class DeploymentCreatedResponse(BaseModel):
    deployment_id: str
    status: str


class LogEntryResponse(BaseModel):
    timestamp: datetime
    level: str
    message: str


class DeploymentResponse(BaseModel):
    deployment_id: str
    repo_url: str
    platform: str
    status: str
    detected_language: Optional[str] = None
    detected_framework: Optional[str] = None
    package_manager: Optional[str] = None
    start_command: Optional[str] = None
    port: Optional[int] = None
    dockerfile: Optional[str] = None
    ci_pipeline: Optional[str] = None
    container_id: Optional[str] = None
    host_port: Optional[int] = None
    deployment_url: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    certificate_id: Optional[str] = None
    error: Optional[str] = None
    logs: List[LogEntryResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: DeploymentRecord) -> "DeploymentResponse":
        classification = record.classification
        artifacts = record.artifacts
        runtime = record.runtime

        return cls(
            deployment_id=record.deployment_id,
            repo_url=record.repo_url,
            platform=record.platform.value,
            status=record.status.value,
            detected_language=classification.language if classification else None,
            detected_framework=classification.framework if classification else None,
            package_manager=classification.package_manager if classification else None,
            start_command=classification.start_command if classification else None,
            port=classification.port if classification else None,
            dockerfile=artifacts.dockerfile if artifacts else None,
            ci_pipeline=artifacts.ci_pipeline if artifacts else None,
            container_id=runtime.container_id if runtime else None,
            host_port=runtime.host_port if runtime else None,
            deployment_url=runtime.url if runtime else None,
            metrics=record.metrics.to_dict() if record.metrics else None,
            certificate_id=record.certificate_id,
            error=record.error,
            logs=[
                LogEntryResponse(
                    timestamp=entry.timestamp,
                    level=entry.level.value,
                    message=entry.message,
                )
                for entry in record.logs
            ],
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class CertificateResponse(BaseModel):
    certificate_id: str
    deployment_id: str
    user_name: str
    repo_url: str
    platform: str
    detected_language: Optional[str] = None
    detected_framework: Optional[str] = None
    issued_at: datetime
    metrics: Dict[str, Any]
    signature: str
    format_version: int

    @classmethod
    def from_record(cls, certificate: CertificateRecord) -> "CertificateResponse":
        snapshot = certificate.snapshot
        return cls(
            certificate_id=snapshot.certificate_id,
            deployment_id=snapshot.deployment_id,
            user_name=snapshot.user_name,
            repo_url=snapshot.repo_url,
            platform=snapshot.platform,
            detected_language=snapshot.detected_language,
            detected_framework=snapshot.detected_framework,
            issued_at=snapshot.issued_at,
            metrics=snapshot.metrics.to_dict(),
            signature=certificate.signature,
            format_version=snapshot.format_version,
        )
