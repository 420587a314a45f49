#proof_engine\core\validation.py
from typing import List, Optional
from urllib.parse import urlparse

from proof_engine.core.errors import ValidationError
from proof_engine.core.models import (
    STAGE_ORDER,
    DeploymentRecord,
    DeploymentStatus,
    Platform,
)

ALLOWED_HOSTS = ("github.com", "www.github.com")


def validate_repo_url(repo_url) -> str:
    if repo_url is None or (isinstance(repo_url, str) and not repo_url.strip()):
        raise ValidationError("repo_url is required")

    if not isinstance(repo_url, str):
        raise ValidationError("repo_url must be a string")

    repo_url = repo_url.strip()

    if repo_url.startswith("git@"):
        host = repo_url[len("git@"):].split(":", 1)[0]
    else:
        parsed = urlparse(repo_url)
        if parsed.scheme not in ("http", "https"):
            raise ValidationError("repo_url must be an http(s) or ssh Git URL")
        host = (parsed.hostname or "").lower()

    if host not in ALLOWED_HOSTS:
        raise ValidationError("Only GitHub repositories are supported")

    return repo_url


def validate_platform(platform) -> Platform:
    if platform is None:
        return Platform.LOCAL

    if isinstance(platform, Platform):
        return platform

    try:
        return Platform(str(platform).lower())
    except ValueError:
        allowed = ", ".join(p.value for p in Platform)
        raise ValidationError(
            f"Unsupported platform '{platform}' (expected one of: {allowed})"
        ) from None


def validate_new_deployment(record: DeploymentRecord) -> None:
    # -------------------------
    # Identity
    # -------------------------
    if not record.deployment_id:
        raise ValidationError("deployment_id is required")

    validate_repo_url(record.repo_url)

    # -------------------------
    # Lifecycle invariants
    # -------------------------
    if record.status != DeploymentStatus.QUEUED:
        raise ValidationError("new deployment must start in queued state")

    violations = consistency_violations(record)
    if violations:
        raise ValidationError("; ".join(violations))


# -------------------------
# Status / field consistency
# -------------------------

# Field -> status that produces it.
_PRODUCED_BY = (
    ("classification", DeploymentStatus.DETECTING),
    ("artifacts", DeploymentStatus.GENERATING),
    ("runtime", DeploymentStatus.BUILDING),
    ("metrics", DeploymentStatus.TESTING),
)


def _stage_index(status: DeploymentStatus) -> Optional[int]:
    if status in STAGE_ORDER:
        return STAGE_ORDER.index(status)
    return None


def consistency_violations(record: DeploymentRecord) -> List[str]:
    """
    Check that dependent fields agree with the status.

    A field may be set while its producing stage is current, must be set
    once a later stage is reached, and must be empty before. Failed records
    keep whatever prefix of fields their completed stages produced.
    """
    violations = []
    status = record.status

    if status == DeploymentStatus.FAILED:
        seen_gap = False
        for name, _ in _PRODUCED_BY:
            present = getattr(record, name) is not None
            if present and seen_gap:
                violations.append(f"{name} set after an earlier stage produced nothing")
            if not present:
                seen_gap = True
        if record.certificate_id is not None:
            violations.append("certificate_id set on a failed deployment")
        if not record.error:
            violations.append("failed deployment has no error")
        return violations

    index = _stage_index(status)
    for name, producer in _PRODUCED_BY:
        present = getattr(record, name) is not None
        producer_index = _stage_index(producer)
        if index < producer_index and present:
            violations.append(f"{name} set before {producer.value}")
        if index > producer_index and not present:
            violations.append(f"{name} missing in {status.value}")

    if (record.certificate_id is not None) != (status == DeploymentStatus.COMPLETED):
        violations.append("certificate_id must be set exactly when completed")

    if record.error is not None:
        violations.append("error set on a deployment that has not failed")

    return violations
