from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Enum

from database import Base

class NotificationKind(PyEnum):
    SIGNING_REQUEST = "signing_request"
    DOCUMENT_SIGNED = "document_signed"
    DOCUMENT_REJECTED = "document_rejected"

class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True)
    recipient_email = Column(String, nullable=False, index=True)
    kind = Column(Enum(NotificationKind), nullable=False)
    subject = Column(String(255), nullable=False)
    message = Column(String(2048), nullable=False)
    link = Column(String(1024), nullable=True)
    document_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    read = Column(Boolean, default=False)
