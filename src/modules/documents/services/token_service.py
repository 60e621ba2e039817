"""
Signing token business logic.

A signing token is a 256-bit random bearer value that lets one signer submit
one signature without an account. Only its SHA-256 is stored. Verification is
read-only and repeatable; consumption is a separate compare-and-swap step
performed in the same transaction that records the signature.
"""

import hashlib
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import config
from modules.documents.models.signing_token import SigningToken
from modules.documents.services.token_store import TokenStore

TOKEN_BYTES = 32
_TOKEN_FORMAT = re.compile(r"^[a-f0-9]{64}$")


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_hash: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    document_id: int
    signer_email: str


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def is_valid_token_format(token: str) -> bool:
    return bool(token) and bool(_TOKEN_FORMAT.match(token))


def signing_url(token: str, base_url: str = None) -> str:
    return f"{(base_url or config.SIGNING_BASE_URL).rstrip('/')}/sign/{token}"


class SigningTokenService:

    def __init__(self, store: TokenStore, default_ttl: timedelta = None):
        self.store = store
        self.default_ttl = default_ttl or config.SIGNING_TOKEN_TTL

    def issue(self, document_id: int, signer_email: str, ttl: timedelta = None) -> IssuedToken:
        """
        Mint a token for one (document, signer) pair.

        The plaintext is returned exactly once and is never persisted.
        """
        token = secrets.token_hex(TOKEN_BYTES)
        token_hash = hash_token(token)
        expires_at = datetime.utcnow() + (ttl or self.default_ttl)
        self.store.set(SigningToken(
            token_hash=token_hash,
            document_id=document_id,
            signer_email=signer_email.lower(),
            expires_at=expires_at,
            used=False,
            created_at=datetime.utcnow(),
        ))
        return IssuedToken(token=token, token_hash=token_hash, expires_at=expires_at)

    def verify(self, token: str) -> Optional[TokenClaims]:
        """Return the claims of a live token, or None if absent, expired or used."""
        if not is_valid_token_format(token):
            return None
        record = self.store.get(hash_token(token))
        if record is None or record.used or record.expires_at <= datetime.utcnow():
            return None
        return TokenClaims(document_id=record.document_id, signer_email=record.signer_email)

    def invalidate(self, token: str) -> bool:
        """Mark a token used. Returns whether this call consumed it; repeats are no-ops."""
        if not is_valid_token_format(token):
            return False
        return self.store.mark_used(hash_token(token))

    def revoke_for_document(self, document_id: int) -> int:
        return self.store.mark_all_used(document_id)

    def find_active_token(self, document_id: int, signer_email: str) -> Optional[SigningToken]:
        return self.store.find_active(document_id, signer_email.lower(), datetime.utcnow())

    def sweep_expired(self, now: datetime = None) -> int:
        return self.store.sweep(now or datetime.utcnow())
