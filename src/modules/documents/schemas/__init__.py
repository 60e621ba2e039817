from .document_schemas import (
    AuditEntryResponse, DocumentListResponse, DocumentResponse, DocumentUpdate,
    IntegrityReportResponse, PlacementIn, RejectRequest, SignatureResponse,
    SignatureSubmission, SignerIn, SignerResponse, SigningContextResponse, SigningResultResponse
)

__all__ = [
    'AuditEntryResponse', 'DocumentListResponse', 'DocumentResponse', 'DocumentUpdate',
    'IntegrityReportResponse', 'PlacementIn', 'RejectRequest', 'SignatureResponse',
    'SignatureSubmission', 'SignerIn', 'SignerResponse', 'SigningContextResponse',
    'SigningResultResponse'
]
