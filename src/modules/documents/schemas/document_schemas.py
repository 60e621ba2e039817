from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Optional

from modules.audit.models.audit_log import AuditAction, AuditStatus
from modules.documents.models.document import DocumentStatus
from modules.documents.models.signature import SignatureMethod

class SignerIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr

class SignerResponse(BaseModel):
    id: int
    position: int
    name: str
    email: str
    signed: bool
    signed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class DocumentResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: DocumentStatus
    original_filename: str
    file_size: int
    page_count: int
    file_hash: str
    signed_file_hash: Optional[str] = None
    owner_id: int
    created_at: datetime
    updated_at: datetime
    sent_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    signers: List[SignerResponse] = []

    model_config = {"from_attributes": True}

class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total: int
    page: int
    limit: int

class DocumentUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    signers: Optional[List[SignerIn]] = None

class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class PlacementIn(BaseModel):
    page_number: int = 1
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None

    model_config = {"allow_inf_nan": False}

class SignatureSubmission(BaseModel):
    signature_data: str
    method: SignatureMethod = SignatureMethod.DRAWN
    position: PlacementIn
    signer_name: Optional[str] = Field(None, max_length=100)

class SignatureResponse(BaseModel):
    id: int
    document_id: int
    signer_email: str
    signer_name: str
    method: SignatureMethod
    page_number: int
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None
    signed_at: datetime
    ip_address: Optional[str] = None
    is_verified: bool
    event_hash: Optional[str] = None

    model_config = {"from_attributes": True}

class SigningResultResponse(BaseModel):
    signature: SignatureResponse
    document_status: DocumentStatus
    all_signed: bool
    completed: bool

class SigningContextResponse(BaseModel):
    document_id: int
    title: str
    description: Optional[str] = None
    owner_name: str
    status: DocumentStatus
    page_count: int
    signer_name: str
    signer_email: str

class IntegrityReportResponse(BaseModel):
    signature_id: int
    document_id: int
    document_intact: bool
    signature_intact: bool
    is_valid: bool
    expected_hash: Optional[str] = None
    actual_hash: Optional[str] = None
    checked_file: str

    model_config = {"from_attributes": True}

class AuditEntryResponse(BaseModel):
    id: int
    action: AuditAction
    status: AuditStatus
    user_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime

    model_config = {"from_attributes": True}
