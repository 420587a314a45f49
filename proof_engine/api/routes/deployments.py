from fastapi import APIRouter, Depends

from proof_engine.api.dependencies import get_deployment_service
from proof_engine.api.schemas.deployment import (
    DeploymentCreatedResponse,
    DeploymentCreateRequest,
    DeploymentResponse,
)

router = APIRouter(prefix="/api/deployments", tags=["deployments"])


@router.post("", response_model=DeploymentCreatedResponse, status_code=201)
def create_deployment(
    request: DeploymentCreateRequest,
    service=Depends(get_deployment_service),
):
    record = service.create_deployment(
        repo_url=request.repo_url,
        platform=request.platform,
    )

    return DeploymentCreatedResponse(
        deployment_id=record.deployment_id,
        status=record.status.value,
    )


@router.get("/{deployment_id}", response_model=DeploymentResponse)
def get_deployment(
    deployment_id: str,
    service=Depends(get_deployment_service),
):
    record = service.get_deployment(deployment_id)
    return DeploymentResponse.from_record(record)
