# src/modules/documents/controllers/signature_controller.py
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from modules.audit.context import RequestOrigin, get_request_origin
from modules.auth.controllers.auth_controller import get_current_user
from modules.documents.controllers.document_controller import build_signing_result, to_placement
from modules.documents.dependencies import get_document_service
from modules.documents.models.user import User
from modules.documents.schemas.document_schemas import (
    IntegrityReportResponse, SignatureSubmission, SigningContextResponse, SigningResultResponse
)
from modules.documents.services.document_service import DocumentService
from modules.documents.services.signature_service import (
    Placement, decode_signature_payload, payload_from_upload
)

router = APIRouter(
    tags=["signing"]
)

@router.get("/sign/{token}", response_model=SigningContextResponse)
def get_signing_context(
    token: str,
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    """
    Datos del documento para la página de firma. No consume el token.
    """
    context = service.get_signing_context(token, origin)
    document = context.document
    return SigningContextResponse(
        document_id=document.id,
        title=document.title,
        description=document.description,
        owner_name=document.owner.name,
        status=document.status,
        page_count=document.page_count,
        signer_name=context.signer.name,
        signer_email=context.signer.email,
    )

@router.post("/sign/{token}", response_model=SigningResultResponse, status_code=status.HTTP_201_CREATED)
def sign_with_token(
    token: str,
    submission: SignatureSubmission,
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    """
    Firma mediante enlace: el token identifica al firmante y se consume
    en la misma transacción que registra la firma.
    """
    outcome = service.submit_signature_by_token(
        token,
        decode_signature_payload(submission.signature_data, submission.method),
        to_placement(submission),
        signer_name=submission.signer_name,
        origin=origin,
    )
    return build_signing_result(outcome)

@router.post("/sign/{token}/upload", response_model=SigningResultResponse, status_code=status.HTTP_201_CREATED)
async def sign_with_token_image(
    token: str,
    signature: UploadFile = File(...),
    page_number: int = Form(1),
    x: float = Form(...),
    y: float = Form(...),
    width: Optional[float] = Form(None),
    height: Optional[float] = Form(None),
    signer_name: Optional[str] = Form(None, max_length=100),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    """
    Firma mediante enlace con una imagen subida en lugar de base64.
    """
    payload = payload_from_upload(await signature.read(), signature.content_type)
    outcome = await run_in_threadpool(
        service.submit_signature_by_token,
        token,
        payload,
        Placement(page_number=page_number, x=x, y=y, width=width, height=height),
        signer_name=signer_name,
        origin=origin,
    )
    return build_signing_result(outcome)

@router.get("/signatures/{signature_id}/verify", response_model=IntegrityReportResponse)
def verify_signature(
    signature_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    return service.verify_signature_integrity(current_user, signature_id)
