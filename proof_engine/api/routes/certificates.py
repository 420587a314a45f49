from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from proof_engine.api.dependencies import get_certificate_issuer, get_deployment_service
from proof_engine.api.schemas.deployment import CertificateResponse
from proof_engine.certificates.render import render_certificate_html, render_not_found_html
from proof_engine.core.errors import NotFoundError

router = APIRouter(prefix="/api/certificates", tags=["certificates"])

html_router = APIRouter(tags=["certificates"])


@router.get("/{certificate_id}", response_model=CertificateResponse)
def get_certificate(
    certificate_id: str,
    service=Depends(get_deployment_service),
):
    certificate = service.get_certificate(certificate_id)
    return CertificateResponse.from_record(certificate)


@router.get("/{certificate_id}/verify")
def verify_certificate(
    certificate_id: str,
    service=Depends(get_deployment_service),
    issuer=Depends(get_certificate_issuer),
):
    certificate = service.get_certificate(certificate_id)
    return {
        "certificate_id": certificate.certificate_id,
        "valid": issuer.verify_certificate(certificate),
    }


@html_router.get("/certificate/{certificate_id}", response_class=HTMLResponse)
def view_certificate(
    certificate_id: str,
    service=Depends(get_deployment_service),
):
    try:
        certificate = service.get_certificate(certificate_id)
    except NotFoundError:
        return HTMLResponse(render_not_found_html(certificate_id), status_code=404)

    return HTMLResponse(render_certificate_html(certificate))
