from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from modules.audit.services.audit_service import AuditTrailRecorder, get_audit_recorder
from modules.documents.services.document_service import DocumentService
from modules.documents.services.file_storage import FileStorage

def get_file_storage() -> FileStorage:
    return FileStorage()

def get_document_service(
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
    audit: AuditTrailRecorder = Depends(get_audit_recorder)
) -> DocumentService:
    return DocumentService(db, storage=storage, audit=audit)
