# proof_engine/certificates/issuer.py
"""Certificate issuer - signs an immutable snapshot of a completed deployment."""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Union

from proof_engine.core.errors import NotFoundError, SignatureError, ValidationError
from proof_engine.core.models import (
    CertificateRecord,
    CertificateSnapshot,
    DeploymentRecord,
    new_id,
    utcnow,
)
from proof_engine.core.repository import CertificateRepository, DeploymentRepository

logger = logging.getLogger(__name__)

# Bump when the signed field set or encoding changes; older signatures
# only verify against the serializer of their own version.
CERTIFICATE_FORMAT_VERSION = 1

DEFAULT_USER_NAME = "Anonymous Developer"


def _timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def snapshot_payload(snapshot: CertificateSnapshot) -> Dict[str, Any]:
    """Every signed field, as plain JSON types."""
    return {
        "format_version": snapshot.format_version,
        "certificate_id": snapshot.certificate_id,
        "deployment_id": snapshot.deployment_id,
        "user_name": snapshot.user_name,
        "repo_url": snapshot.repo_url,
        "platform": snapshot.platform,
        "detected_language": snapshot.detected_language,
        "detected_framework": snapshot.detected_framework,
        "issued_at": _timestamp(snapshot.issued_at),
        "metrics": snapshot.metrics.to_dict(),
    }


def serialize_snapshot(snapshot: CertificateSnapshot) -> bytes:
    """
    Canonical serialization: sorted keys, no whitespace, UTF-8.

    Reproducible byte for byte from the same snapshot, which is what makes
    the signature verifiable later.
    """
    if snapshot.format_version != CERTIFICATE_FORMAT_VERSION:
        raise ValidationError(
            f"Unsupported certificate format version {snapshot.format_version}"
        )

    return json.dumps(
        snapshot_payload(snapshot),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


class CertificateIssuer:
    """Issues and verifies HMAC-SHA256 signed deployment certificates."""

    def __init__(
        self,
        *,
        deployment_repo: DeploymentRepository,
        certificate_repo: CertificateRepository,
        secret: str,
        user_name: str = DEFAULT_USER_NAME,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret:
            raise ValueError("certificate secret must not be empty")

        self._deployments = deployment_repo
        self._certificates = certificate_repo
        self._key = secret.encode("utf-8")
        self.user_name = user_name
        self._clock = clock

    # -------------------------
    # ISSUE
    # -------------------------

    def issue(self, deployment_id: str) -> CertificateRecord:
        """
        Snapshot the deployment, sign it and persist the certificate.

        Raises:
            NotFoundError: If no such deployment exists.
            ValidationError: If the deployment is already terminal or has no
                metrics to attest.
        """
        record = self._deployments.get(deployment_id)
        if record is None:
            raise NotFoundError(f"Deployment {deployment_id} not found")
        if record.is_terminal():
            raise ValidationError(
                f"Deployment {deployment_id} is already {record.status.value}, nothing to certify"
            )

        snapshot = self.build_snapshot(record)
        certificate = CertificateRecord(snapshot=snapshot, signature=self.sign(snapshot))

        self._certificates.create(certificate)
        logger.info(
            f"[{deployment_id}] Certificate {certificate.certificate_id} issued"
        )
        return certificate

    def build_snapshot(self, record: DeploymentRecord) -> CertificateSnapshot:
        if record.metrics is None:
            raise ValidationError(
                f"Deployment {record.deployment_id} has no test metrics to certify"
            )

        classification = record.classification
        issued_at = self._clock().astimezone(timezone.utc)

        return CertificateSnapshot(
            certificate_id=new_id(),
            deployment_id=record.deployment_id,
            user_name=self.user_name,
            repo_url=record.repo_url,
            platform=record.platform.value,
            detected_language=classification.language if classification else None,
            detected_framework=classification.framework if classification else None,
            # Stored at millisecond precision, same as the serialized form.
            issued_at=issued_at.replace(microsecond=issued_at.microsecond // 1000 * 1000),
            metrics=record.metrics,
            format_version=CERTIFICATE_FORMAT_VERSION,
        )

    # -------------------------
    # SIGN / VERIFY
    # -------------------------

    def _digest(self, payload: bytes) -> str:
        return hmac.new(self._key, payload, hashlib.sha256).hexdigest()

    def sign(self, snapshot: CertificateSnapshot) -> str:
        return self._digest(serialize_snapshot(snapshot))

    def verify(
        self,
        snapshot: Union[CertificateSnapshot, bytes],
        signature: str,
    ) -> bool:
        """
        Recompute the HMAC over snapshot and compare in constant time.

        snapshot may be the snapshot object or its serialized bytes.
        """
        if isinstance(snapshot, CertificateSnapshot):
            try:
                payload = serialize_snapshot(snapshot)
            except ValidationError:
                return False
        else:
            payload = bytes(snapshot)

        if not isinstance(signature, str):
            return False

        return hmac.compare_digest(
            self._digest(payload).encode("ascii"),
            signature.encode("utf-8"),
        )

    def verify_certificate(self, certificate: CertificateRecord) -> bool:
        return self.verify(certificate.snapshot, certificate.signature)

    def verify_or_raise(self, certificate: CertificateRecord) -> None:
        if not self.verify_certificate(certificate):
            raise SignatureError(
                f"Signature mismatch for certificate {certificate.certificate_id}"
            )
