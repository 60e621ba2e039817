from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, JSON, String
from datetime import datetime
from enum import Enum as PyEnum
from database import Base

class AuditAction(PyEnum):
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_UPDATED = "document_updated"
    DOCUMENT_VIEWED = "document_viewed"
    DOCUMENT_SENT = "document_sent"
    DOCUMENT_SIGNED = "document_signed"
    DOCUMENT_REJECTED = "document_rejected"
    SIGNATURE_ADDED = "signature_added"
    SIGNATURE_REMOVED = "signature_removed"
    DOCUMENT_DOWNLOADED = "document_downloaded"
    DOCUMENT_DELETED = "document_deleted"
    EMAIL_SENT = "email_sent"
    TOKEN_GENERATED = "token_generated"
    TOKEN_VERIFIED = "token_verified"
    TOKEN_INVALIDATED = "token_invalidated"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"

class AuditStatus(PyEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"

class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    # Null for anonymous, token-based actions
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    # Not a foreign key: entries outlive deleted drafts
    document_id = Column(Integer, nullable=True, index=True)
    action = Column(Enum(AuditAction), nullable=False, index=True)
    details = Column(JSON, nullable=False, default=dict)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    status = Column(Enum(AuditStatus), nullable=False, default=AuditStatus.SUCCESS)
    error_message = Column(String(1024), nullable=True)
