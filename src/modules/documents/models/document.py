from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional
from database import Base

class DocumentStatus(PyEnum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"
    REJECTED = "rejected"

class Document(Base):
    __tablename__ = 'documents'

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(String(500), nullable=True)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.DRAFT)

    original_filename = Column(String, nullable=False)
    original_file_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    page_count = Column(Integer, nullable=False, default=1)
    file_hash = Column(String(64), nullable=False)

    signed_file_path = Column(String, nullable=True)
    signed_file_hash = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(500), nullable=True)

    # Optimistic concurrency stamp, checked on every UPDATE of the row
    version = Column(Integer, nullable=False, default=1)

    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    owner = relationship("User", back_populates="documents")

    signers = relationship(
        "Signer", back_populates="document", order_by="Signer.position",
        cascade="all, delete-orphan"
    )
    signatures = relationship(
        "Signature", back_populates="document", order_by="Signature.signed_at",
        cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    def signer_for(self, email: str) -> Optional["Signer"]:
        email = (email or "").strip().lower()
        return next((s for s in self.signers if s.email == email), None)

    @property
    def all_signed(self) -> bool:
        return bool(self.signers) and all(s.signed for s in self.signers)


class Signer(Base):
    __tablename__ = 'signers'
    __table_args__ = (
        UniqueConstraint('document_id', 'email', name='uq_signer_document_email'),
    )

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey('documents.id', ondelete='CASCADE'), nullable=False)
    position = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime, nullable=True)

    # Only the SHA-256 of the emailed token is kept
    token_hash = Column(String(64), nullable=True)
    token_expires = Column(DateTime, nullable=True)

    document = relationship("Document", back_populates="signers")
