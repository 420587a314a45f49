#proof_engine\api\dependencies.py

from fastapi import Request

from proof_engine.certificates.issuer import CertificateIssuer
from proof_engine.container import PipelineContext
from proof_engine.core.service import DeploymentService


def get_context(request: Request) -> PipelineContext:
    return request.app.state.context


def get_deployment_service(request: Request) -> DeploymentService:
    return get_context(request).service


def get_certificate_issuer(request: Request) -> CertificateIssuer:
    return get_context(request).issuer
