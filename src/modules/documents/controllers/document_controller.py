from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from modules.audit.context import RequestOrigin, get_request_origin
from modules.auth.controllers.auth_controller import get_current_user
from modules.auth.dependencies import require_permission
from modules.documents.dependencies import get_document_service
from modules.documents.errors import ValidationError
from modules.documents.models.document import DocumentStatus
from modules.documents.models.user import User
from modules.documents.schemas.document_schemas import (
    AuditEntryResponse, DocumentListResponse, DocumentResponse, DocumentUpdate, RejectRequest,
    SignatureResponse, SignatureSubmission, SignerIn, SigningResultResponse
)
from modules.documents.services.document_service import DocumentService, SignerInvite
from modules.documents.services.signature_service import (
    Placement, decode_signature_payload, payload_from_upload
)

router = APIRouter(
    tags=["documents"]
)

_signer_list = TypeAdapter(List[SignerIn])

def _parse_signers(raw: Optional[str]) -> List[SignerInvite]:
    """Signers arrive as a JSON array inside the multipart form."""
    if not raw:
        return []
    try:
        signers = _signer_list.validate_json(raw)
    except PydanticValidationError as e:
        raise ValidationError("signers must be a JSON list of {name, email} objects.") from e
    return [SignerInvite(name=s.name, email=str(s.email)) for s in signers]

def to_placement(submission: SignatureSubmission) -> Placement:
    position = submission.position
    return Placement(
        page_number=position.page_number,
        x=position.x,
        y=position.y,
        width=position.width,
        height=position.height,
    )

def build_signing_result(outcome) -> SigningResultResponse:
    return SigningResultResponse(
        signature=SignatureResponse.model_validate(outcome.signature),
        document_status=outcome.document.status,
        all_signed=outcome.all_signed,
        completed=outcome.completed,
    )

@router.get("", response_model=DocumentListResponse)
def list_documents(
    status_filter: Optional[DocumentStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    documents, total = service.list_documents(current_user, status_filter, page, limit)
    return DocumentListResponse(documents=documents, total=total, page=page, limit=limit)

@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    signers: Optional[str] = Form(None),
    current_user: User = Depends(require_permission("upload")),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    contents = await file.read()
    return await run_in_threadpool(
        service.create_draft,
        current_user,
        file_contents=contents,
        filename=file.filename,
        content_type=file.content_type,
        title=title,
        description=description,
        signers=_parse_signers(signers),
        origin=origin,
    )

@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    return service.get_document(current_user, document_id, origin)

@router.patch("/{document_id}", response_model=DocumentResponse)
def update_document(
    document_id: int,
    data: DocumentUpdate,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    signers = None
    if data.signers is not None:
        signers = [SignerInvite(name=s.name, email=str(s.email)) for s in data.signers]
    return service.update_draft(
        current_user, document_id,
        title=data.title, description=data.description, signers=signers, origin=origin
    )

@router.delete("/{document_id}")
def delete_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    service.delete_draft(current_user, document_id, origin)
    return {"message": "Document deleted successfully"}

@router.post("/{document_id}/send", response_model=DocumentResponse)
def send_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    return service.send(current_user, document_id, origin)

@router.post("/{document_id}/reject", response_model=DocumentResponse)
def reject_document(
    document_id: int,
    data: RejectRequest,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    return service.reject(current_user, document_id, data.reason, origin)

@router.post("/{document_id}/finalize", response_model=DocumentResponse)
def finalize_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    return service.finalize(current_user, document_id, origin)

@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    downloaded = service.download(current_user, document_id, origin)
    return Response(
        content=downloaded.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(downloaded.filename)}",
            "X-Document-Hash": downloaded.sha256,
        },
    )

@router.get("/{document_id}/signatures", response_model=List[SignatureResponse])
def list_signatures(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    return service.list_document_signatures(current_user, document_id)

@router.post("/{document_id}/sign", response_model=SigningResultResponse, status_code=status.HTTP_201_CREATED)
def sign_document(
    document_id: int,
    submission: SignatureSubmission,
    current_user: User = Depends(require_permission("sign")),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    """Firma autenticada: el firmante es el usuario de la sesión."""
    outcome = service.submit_signature_authenticated(
        current_user,
        document_id,
        decode_signature_payload(submission.signature_data, submission.method),
        to_placement(submission),
        origin,
    )
    return build_signing_result(outcome)

@router.post("/{document_id}/sign/upload", response_model=SigningResultResponse, status_code=status.HTTP_201_CREATED)
async def sign_document_with_image(
    document_id: int,
    signature: UploadFile = File(...),
    page_number: int = Form(1),
    x: float = Form(...),
    y: float = Form(...),
    width: Optional[float] = Form(None),
    height: Optional[float] = Form(None),
    current_user: User = Depends(require_permission("sign")),
    service: DocumentService = Depends(get_document_service),
    origin: RequestOrigin = Depends(get_request_origin)
):
    """Firma autenticada con una imagen subida (PNG o JPEG)."""
    payload = payload_from_upload(await signature.read(), signature.content_type)
    outcome = await run_in_threadpool(
        service.submit_signature_authenticated,
        current_user,
        document_id,
        payload,
        Placement(page_number=page_number, x=x, y=y, width=width, height=height),
        origin,
    )
    return build_signing_result(outcome)

@router.get("/{document_id}/history", response_model=List[AuditEntryResponse])
def document_history(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service)
):
    return service.get_history(current_user, document_id)
