from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from datetime import datetime
from database import Base

class SigningToken(Base):
    """Stored half of a signing link; the plaintext token never reaches the database."""
    __tablename__ = "signing_tokens"

    token_hash   = Column(String(64), primary_key=True)
    document_id  = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    signer_email = Column(String, nullable=False)
    expires_at   = Column(DateTime, nullable=False, index=True)
    used         = Column(Boolean, default=False, nullable=False)
    created_at   = Column(DateTime, default=datetime.utcnow, nullable=False)
