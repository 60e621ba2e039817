# src/modules/documents/models/signature.py

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, LargeBinary, String,
    UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from database import Base

class SignatureMethod(PyEnum):
    DRAWN = "drawn"
    TYPED = "typed"
    UPLOADED = "uploaded"

class Signature(Base):
    __tablename__ = "signatures"
    __table_args__ = (
        # One signature per signer per document
        UniqueConstraint("document_id", "signer_email", name="uq_signature_document_signer"),
    )

    id           = Column(Integer, primary_key=True)
    document_id  = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    signer_email = Column(String, nullable=False)
    signer_name  = Column(String, nullable=False)
    payload      = Column(LargeBinary, nullable=False)
    method       = Column(Enum(SignatureMethod), nullable=False, default=SignatureMethod.DRAWN)

    page_number  = Column(Integer, nullable=False)
    x            = Column(Float, nullable=False)
    y            = Column(Float, nullable=False)
    width        = Column(Float, nullable=True)
    height       = Column(Float, nullable=True)

    signed_at    = Column(DateTime, default=datetime.utcnow, nullable=False)
    ip_address   = Column(String(64), nullable=True)
    user_agent   = Column(String(512), nullable=True)
    is_verified  = Column(Boolean, default=True, nullable=False)
    event_hash   = Column(String(64), nullable=True)

    document = relationship("Document", back_populates="signatures")
