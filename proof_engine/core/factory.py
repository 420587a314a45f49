#proof_engine\core\factory.py
from typing import Optional

from proof_engine.core.models import DeploymentRecord, DeploymentStatus, new_id, utcnow
from proof_engine.core.validation import (
    validate_new_deployment,
    validate_platform,
    validate_repo_url,
)


class DeploymentFactory:
    @staticmethod
    def create(
        *,
        repo_url: str,
        platform: Optional[str] = None,
    ) -> DeploymentRecord:
        repo_url = validate_repo_url(repo_url)
        now = utcnow()

        record = DeploymentRecord(
            deployment_id=new_id(),
            repo_url=repo_url,
            platform=validate_platform(platform),
            status=DeploymentStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        record.add_log("Deployment queued", now=now)

        validate_new_deployment(record)
        return record
