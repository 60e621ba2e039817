"""
Durable storage for signing tokens.

Records are keyed by the SHA-256 of the token so a leaked table cannot be
replayed. Writes join the caller's session and are committed by the caller,
which lets token consumption share a transaction with the signature it
authorises.
"""

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modules.documents.errors import InfrastructureError
from modules.documents.models.signing_token import SigningToken


class TokenStore(Protocol):

    def get(self, token_hash: str) -> Optional[SigningToken]: ...

    def set(self, record: SigningToken) -> None: ...

    def mark_used(self, token_hash: str) -> bool: ...

    def mark_all_used(self, document_id: int) -> int: ...

    def delete(self, token_hash: str) -> None: ...

    def find_active(self, document_id: int, signer_email: str, now: datetime) -> Optional[SigningToken]: ...

    def sweep(self, now: datetime) -> int: ...


class SqlTokenStore:

    def __init__(self, session: Session):
        self.session = session

    def get(self, token_hash: str) -> Optional[SigningToken]:
        try:
            return self.session.get(SigningToken, token_hash)
        except SQLAlchemyError as e:
            raise InfrastructureError("Token store unavailable") from e

    def set(self, record: SigningToken) -> None:
        try:
            self.session.add(record)
        except SQLAlchemyError as e:
            raise InfrastructureError("Token store unavailable") from e

    def mark_used(self, token_hash: str) -> bool:
        """Compare-and-swap used=False -> True; True only for the call that flipped it."""
        try:
            updated = (
                self.session.query(SigningToken)
                .filter(SigningToken.token_hash == token_hash, SigningToken.used.is_(False))
                .update({SigningToken.used: True}, synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            raise InfrastructureError("Token store unavailable") from e
        return updated == 1

    def mark_all_used(self, document_id: int) -> int:
        try:
            return (
                self.session.query(SigningToken)
                .filter(SigningToken.document_id == document_id, SigningToken.used.is_(False))
                .update({SigningToken.used: True}, synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            raise InfrastructureError("Token store unavailable") from e

    def delete(self, token_hash: str) -> None:
        try:
            self.session.query(SigningToken).filter(
                SigningToken.token_hash == token_hash
            ).delete(synchronize_session="fetch")
        except SQLAlchemyError as e:
            raise InfrastructureError("Token store unavailable") from e

    def find_active(self, document_id: int, signer_email: str, now: datetime) -> Optional[SigningToken]:
        try:
            return (
                self.session.query(SigningToken)
                .filter(
                    SigningToken.document_id == document_id,
                    SigningToken.signer_email == signer_email,
                    SigningToken.used.is_(False),
                    SigningToken.expires_at > now,
                )
                .order_by(SigningToken.created_at.desc())
                .first()
            )
        except SQLAlchemyError as e:
            raise InfrastructureError("Token store unavailable") from e

    def sweep(self, now: datetime) -> int:
        """Delete every record past expiry, used or not."""
        try:
            return (
                self.session.query(SigningToken)
                .filter(SigningToken.expires_at <= now)
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise InfrastructureError("Token store unavailable") from e
