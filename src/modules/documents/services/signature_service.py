"""
Signature collection and aggregation.

Records one signature per signer and reports whether it was the last one
outstanding. The signer flag, the signature row, the document version bump
and (for link-based signing) the token consumption commit together, so two
concurrent submissions can never both observe themselves as the last signer,
and never both miss it.
"""

import base64
import binascii
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from modules.audit.context import RequestOrigin, UNKNOWN_ORIGIN
from modules.documents.errors import (
    AuthorizationError, ConflictError, InfrastructureError, NotFoundError,
    SigningWorkflowError, ValidationError
)
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.signature import Signature, SignatureMethod
from modules.documents.services.document_state_service import DocumentStateService
from modules.documents.services.hashing import compute_signature_event_hash
from modules.documents.services.token_service import SigningTokenService

logger = logging.getLogger(__name__)

MAX_SUBMIT_ATTEMPTS = 5
MAX_SIGNATURE_BYTES = 2 * 1024 * 1024
SIGNATURE_IMAGE_TYPES = {"image/png", "image/jpeg"}


@dataclass(frozen=True)
class Placement:
    page_number: int
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


@dataclass(frozen=True)
class SignaturePayload:
    data: bytes
    method: SignatureMethod = SignatureMethod.DRAWN


@dataclass
class SubmissionResult:
    signature: Signature
    document: Document
    all_signed: bool


def validate_placement(placement: Optional[Placement], page_count: Optional[int] = None) -> None:
    if placement is None:
        raise ValidationError("Signature position is required.")
    if placement.page_number is None or placement.page_number < 1:
        raise ValidationError("Page number must be 1 or greater.")
    if page_count and placement.page_number > page_count:
        raise ValidationError(
            f"Page {placement.page_number} does not exist; the document has {page_count} page(s)."
        )
    if placement.x is None or placement.y is None:
        raise ValidationError("Signature position requires x and y coordinates.")
    coordinates = (
        ("x", placement.x), ("y", placement.y),
        ("width", placement.width), ("height", placement.height),
    )
    for name, value in coordinates:
        if value is not None and not math.isfinite(value):
            raise ValidationError(f"Signature {name} must be a finite number.")
    if placement.x < 0 or placement.y < 0:
        raise ValidationError("Signature coordinates cannot be negative.")
    for name, value in (("width", placement.width), ("height", placement.height)):
        if value is not None and value <= 0:
            raise ValidationError(f"Signature {name} must be positive.")


def validate_payload(payload: Optional[SignaturePayload]) -> None:
    if payload is None or not payload.data:
        raise ValidationError("Signature data is required.")
    if not isinstance(payload.method, SignatureMethod):
        raise ValidationError("Unknown signature method.")
    if len(payload.data) > MAX_SIGNATURE_BYTES:
        raise ValidationError("Signature data is too large.")


def decode_signature_payload(data: str, method: SignatureMethod = SignatureMethod.DRAWN) -> SignaturePayload:
    """
    Turn the client's signature field into raw bytes.

    Typed signatures are the text itself. Drawn and uploaded signatures are
    base64 images, optionally wrapped in a ``data:image/...;base64,`` URL.
    """
    if not data or not data.strip():
        raise ValidationError("Signature data is required.")

    if method == SignatureMethod.TYPED:
        return SignaturePayload(data=data.strip().encode("utf-8"), method=method)

    encoded = data.strip()
    if encoded.startswith("data:"):
        _, _, encoded = encoded.partition(",")
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Signature image is not valid base64.") from e
    return SignaturePayload(data=raw, method=method)


def payload_from_upload(contents: bytes, content_type: Optional[str]) -> SignaturePayload:
    """Raw bytes of a multipart signature image, kept as uploaded."""
    if not contents:
        raise ValidationError("Please upload a signature image.")
    if content_type not in SIGNATURE_IMAGE_TYPES:
        raise ValidationError("Signature image must be a PNG or JPEG file.")
    return SignaturePayload(data=contents, method=SignatureMethod.UPLOADED)


class SignatureService:

    def __init__(self, session: Session, tokens: SigningTokenService):
        self.session = session
        self.tokens = tokens

    def submit(
        self,
        document_id: int,
        signer_email: str,
        payload: SignaturePayload,
        placement: Placement,
        *,
        signer_name: Optional[str] = None,
        origin: RequestOrigin = UNKNOWN_ORIGIN,
        consume_token: Optional[str] = None,
    ) -> SubmissionResult:
        """
        Record the signature of ``signer_email`` on a sent document.

        Identity is already resolved by the caller (authenticated user or
        verified token). When ``consume_token`` is given the token is marked
        used in the same transaction; losing that race is a conflict.
        """
        validate_payload(payload)
        validate_placement(placement)

        for attempt in range(1, MAX_SUBMIT_ATTEMPTS + 1):
            try:
                return self._submit_once(
                    document_id, signer_email.strip().lower(), payload, placement,
                    signer_name, origin, consume_token
                )
            except StaleDataError:
                # Another submission on this document committed first; re-read and re-check
                self.session.rollback()
                logger.info(
                    "Concurrent update on document %s, retrying submission (attempt %d)",
                    document_id, attempt
                )
        raise ConflictError("Document is being modified concurrently, please retry.")

    def _submit_once(self, document_id, signer_email, payload, placement, signer_name,
                     origin, consume_token) -> SubmissionResult:
        try:
            document = (
                self.session.query(Document)
                .filter(Document.id == document_id)
                .with_for_update()
                .populate_existing()
                .one_or_none()
            )
            if document is None:
                raise NotFoundError("Document not found.")

            DocumentStateService.ensure_state(document, DocumentStatus.SENT, "sign")

            signer = document.signer_for(signer_email)
            if signer is None:
                raise AuthorizationError("You are not authorized to sign this document.")
            if signer.signed:
                raise ConflictError("You have already signed this document.")

            validate_placement(placement, document.page_count)

            now = datetime.utcnow()
            signature = Signature(
                document_id=document.id,
                signer_email=signer.email,
                signer_name=(signer_name or "").strip() or signer.name,
                payload=payload.data,
                method=payload.method,
                page_number=placement.page_number,
                x=placement.x,
                y=placement.y,
                width=placement.width,
                height=placement.height,
                signed_at=now,
                ip_address=origin.ip_address,
                user_agent=origin.user_agent,
                is_verified=True,
            )
            signature.event_hash = compute_signature_event_hash(signature)
            self.session.add(signature)

            signer.signed = True
            signer.signed_at = now
            # Touch the row so the version stamp serialises concurrent signers
            document.updated_at = now

            if consume_token is not None and not self.tokens.invalidate(consume_token):
                raise ConflictError("This signing link has already been used.")

            self.session.flush()
            all_signed = document.all_signed
            self.session.commit()
        except StaleDataError:
            raise
        except SigningWorkflowError:
            self.session.rollback()
            raise
        except sa_exc.IntegrityError as e:
            self.session.rollback()
            raise ConflictError("You have already signed this document.") from e
        except sa_exc.SQLAlchemyError as e:
            self.session.rollback()
            raise InfrastructureError("Could not record signature.") from e

        logger.info(
            "Signature by %s recorded on document %s (all signed: %s)",
            signer_email, document_id, all_signed
        )
        return SubmissionResult(signature=signature, document=document, all_signed=all_signed)

    def list_for_document(self, document_id: int) -> list[Signature]:
        return (
            self.session.query(Signature)
            .filter(Signature.document_id == document_id)
            .order_by(Signature.signed_at.desc(), Signature.id.desc())
            .all()
        )

    def get(self, signature_id: int) -> Signature:
        signature = self.session.get(Signature, signature_id)
        if signature is None:
            raise NotFoundError("Signature not found.")
        return signature
