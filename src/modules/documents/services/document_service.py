"""
Document lifecycle.

Owns the draft -> sent -> (signed | rejected) workflow: validates every
precondition before touching a document, commits each transition together
with its side effects, then audits and notifies. Notification and audit
failures are logged and never undo a committed transition.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

import config
from modules.audit.context import RequestOrigin, UNKNOWN_ORIGIN
from modules.audit.models.audit_log import AuditAction, AuditLog
from modules.audit.services.audit_service import AuditTrailRecorder
from modules.documents.errors import (
    ConflictError, InfrastructureError, IntegrityError, NotFoundError,
    SigningWorkflowError, ValidationError
)
from modules.documents.models.document import Document, DocumentStatus, Signer
from modules.documents.models.signature import Signature
from modules.documents.models.user import User
from modules.documents.services import permission
from modules.documents.services.document_state_service import DocumentStateService
from modules.documents.services.file_storage import FileStorage, ORIGINALS, SIGNED
from modules.documents.services.hashing import (
    compute_signature_event_hash, sha256_file, sha256_hex
)
from modules.documents.services.pdf_assembly import PDFSignatureAssembler, SignatureStamp, read_page_count
from modules.documents.services.signature_service import (
    Placement, SignaturePayload, SignatureService
)
from modules.documents.services.token_service import SigningTokenService, signing_url
from modules.documents.services.token_store import SqlTokenStore
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignerInvite:
    name: str
    email: str


@dataclass
class SigningOutcome:
    signature: Signature
    document: Document
    all_signed: bool
    completed: bool


@dataclass
class SigningContext:
    document: Document
    signer: Signer


@dataclass
class IntegrityReport:
    signature_id: int
    document_id: int
    document_intact: bool
    signature_intact: bool
    is_valid: bool
    expected_hash: Optional[str]
    actual_hash: Optional[str]
    checked_file: str


@dataclass
class DownloadedFile:
    content: bytes
    filename: str
    sha256: str
    is_signed: bool


class DocumentService:

    def __init__(
        self,
        session: Session,
        *,
        storage: FileStorage = None,
        tokens: SigningTokenService = None,
        notifier: NotificationService = None,
        audit: AuditTrailRecorder = None,
        assembler: PDFSignatureAssembler = None,
    ):
        self.session = session
        self.storage = storage or FileStorage()
        self.tokens = tokens or SigningTokenService(SqlTokenStore(session))
        self.notifier = notifier or NotificationService(NotificationRepository(session))
        self.audit = audit or AuditTrailRecorder()
        self.assembler = assembler or PDFSignatureAssembler()
        self.signatures = SignatureService(session, self.tokens)

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_draft(
        self,
        owner: User,
        *,
        file_contents: bytes,
        filename: str,
        content_type: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        signers: Sequence[SignerInvite] = (),
        origin: RequestOrigin = UNKNOWN_ORIGIN,
    ) -> Document:
        """
        Procesa y guarda un documento nuevo en borrador:
        - Valida el archivo (tipo, extensión, tamaño, PDF legible)
        - Guarda el archivo físico y calcula su SHA-256
        - Crea el registro en BD con sus firmantes
        """
        page_count = self._validate_file(file_contents, filename, content_type, config.MAX_FILE_SIZE)
        title = self._clean_title(title or os.path.splitext(os.path.basename(filename))[0])
        description = self._clean_description(description)
        invites = self._normalize_signers(signers)

        file_path = self.storage.save(file_contents, ORIGINALS, filename)
        now = datetime.utcnow()
        document = Document(
            title=title,
            description=description,
            status=DocumentStatus.DRAFT,
            original_filename=os.path.basename(filename),
            original_file_path=file_path,
            file_size=len(file_contents),
            page_count=page_count,
            file_hash=sha256_hex(file_contents),
            owner_id=owner.id,
            created_at=now,
            updated_at=now,
        )
        document.signers = [
            Signer(position=i, name=invite.name, email=invite.email)
            for i, invite in enumerate(invites, start=1)
        ]
        self.session.add(document)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self.storage.delete(file_path)
            raise InfrastructureError("Could not create document.") from e

        logger.info("Draft %s created by user %s with %d signer(s)", document.id, owner.id, len(invites))
        self.audit.record(
            AuditAction.DOCUMENT_CREATED,
            document_id=document.id,
            user_id=owner.id,
            details={"title": title, "file_size": len(file_contents), "signers": len(invites)},
            origin=origin,
        )
        return document

    def update_draft(
        self,
        user: User,
        document_id: int,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        signers: Optional[Sequence[SignerInvite]] = None,
        origin: RequestOrigin = UNKNOWN_ORIGIN,
    ) -> Document:
        document = self._load_managed(user, document_id)
        DocumentStateService.ensure_state(document, DocumentStatus.DRAFT, "update")

        changes = {}
        if title is not None:
            changes["title"] = self._clean_title(title)
        if description is not None:
            changes["description"] = self._clean_description(description)
        invites = self._normalize_signers(signers) if signers is not None else None

        if "title" in changes:
            document.title = changes["title"]
        if "description" in changes:
            document.description = changes["description"]
        if invites is not None:
            # Remove old rows first so a kept email does not collide with itself
            document.signers.clear()
            self.session.flush()
            document.signers.extend(
                Signer(position=i, name=invite.name, email=invite.email)
                for i, invite in enumerate(invites, start=1)
            )
            changes["signers"] = [invite.email for invite in invites]

        document.updated_at = datetime.utcnow()
        self._commit("Could not update document.")

        self.audit.record(
            AuditAction.DOCUMENT_UPDATED,
            document_id=document_id,
            user_id=user.id,
            details={"changes": changes},
            origin=origin,
        )
        return document

    def delete_draft(self, user: User, document_id: int, origin: RequestOrigin = UNKNOWN_ORIGIN) -> None:
        document = self._load_managed(user, document_id)
        DocumentStateService.ensure_state(document, DocumentStatus.DRAFT, "delete")

        title = document.title
        paths = [document.original_file_path, document.signed_file_path]
        self.session.delete(document)
        self._commit("Could not delete document.")

        # Rows are gone; leftover files are only logged
        for path in paths:
            self.storage.delete(path)

        logger.info("Draft %s deleted by user %s", document_id, user.id)
        self.audit.record(
            AuditAction.DOCUMENT_DELETED,
            document_id=document_id,
            user_id=user.id,
            details={"title": title},
            origin=origin,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def send(self, user: User, document_id: int, origin: RequestOrigin = UNKNOWN_ORIGIN) -> Document:
        """
        Move a draft to sent: one signing token per signer, committed
        together with the status change, then one signing request each.
        """
        try:
            document = self._load_managed(user, document_id)
            DocumentStateService.ensure_state(document, DocumentStatus.DRAFT, "send")
            if not document.signers:
                raise ValidationError("Add at least one signer before sending the document.")

            links = []
            for signer in document.signers:
                issued = self.tokens.issue(document.id, signer.email)
                signer.token_hash = issued.token_hash
                signer.token_expires = issued.expires_at
                links.append((signer.name, signer.email, signing_url(issued.token)))

            DocumentStateService.change_document_state(document, DocumentStatus.SENT)
            self._commit("Could not send document.")
        except SigningWorkflowError as e:
            self.audit.record_failure(
                AuditAction.DOCUMENT_SENT, e, document_id=document_id, user_id=user.id, origin=origin
            )
            raise

        for _, email, _ in links:
            self.audit.record(
                AuditAction.TOKEN_GENERATED,
                document_id=document_id,
                user_id=user.id,
                details={"signer_email": email},
                origin=origin,
            )
        self.audit.record(
            AuditAction.DOCUMENT_SENT,
            document_id=document_id,
            user_id=user.id,
            details={"signers": [email for _, email, _ in links]},
            origin=origin,
        )

        title = document.title
        for name, email, url in links:
            self._notify(
                lambda: self.notifier.send_signing_request(
                    to=email, signer_name=name, document_name=title, signing_url=url,
                    sender_name=user.name, document_id=document_id,
                ),
                document_id=document_id,
                user_id=user.id,
                details={"to": email, "kind": "signing_request"},
                origin=origin,
            )
        return document

    def reject(
        self,
        user: User,
        document_id: int,
        reason: Optional[str] = None,
        origin: RequestOrigin = UNKNOWN_ORIGIN,
    ) -> Document:
        try:
            document = self._load_managed(user, document_id)
            DocumentStateService.ensure_state(document, DocumentStatus.SENT, "reject")
            reason = (reason or "").strip() or None
            if reason and len(reason) > 500:
                raise ValidationError("Rejection reason cannot exceed 500 characters.")

            revoked = self.tokens.revoke_for_document(document.id)
            document.rejection_reason = reason
            DocumentStateService.change_document_state(document, DocumentStatus.REJECTED)
            self._commit("Could not reject document.")
        except SigningWorkflowError as e:
            self.audit.record_failure(
                AuditAction.DOCUMENT_REJECTED, e, document_id=document_id, user_id=user.id, origin=origin
            )
            raise

        self.audit.record(
            AuditAction.DOCUMENT_REJECTED,
            document_id=document_id,
            user_id=user.id,
            details={"reason": reason},
            origin=origin,
        )
        if revoked:
            self.audit.record(
                AuditAction.TOKEN_INVALIDATED,
                document_id=document_id,
                user_id=user.id,
                details={"revoked": revoked},
                origin=origin,
            )

        owner_email, title = document.owner.email, document.title
        self._notify(
            lambda: self.notifier.send_rejection_notification(
                to=owner_email, document_name=title, reason=reason,
                rejected_by=user.name, document_id=document_id,
            ),
            document_id=document_id,
            user_id=user.id,
            details={"to": owner_email, "kind": "document_rejected"},
            origin=origin,
        )
        return document

    def finalize(self, user: User, document_id: int, origin: RequestOrigin = UNKNOWN_ORIGIN) -> Document:
        """Re-run completion for a sent document whose signers have all signed."""
        document = self._load_managed(user, document_id)
        DocumentStateService.ensure_state(document, DocumentStatus.SENT, "finalize")
        if not document.all_signed:
            raise ConflictError("Not every signer has signed this document yet.")
        return self._complete(document_id, user_id=user.id, origin=origin)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def submit_signature_authenticated(
        self,
        user: User,
        document_id: int,
        payload: SignaturePayload,
        placement: Placement,
        origin: RequestOrigin = UNKNOWN_ORIGIN,
    ) -> SigningOutcome:
        try:
            document = self._load(document_id)
            permission.ensure_is_signer(user, document)
            result = self.signatures.submit(
                document_id, user.email, payload, placement, origin=origin
            )
        except SigningWorkflowError as e:
            self.audit.record_failure(
                AuditAction.SIGNATURE_ADDED, e, document_id=document_id, user_id=user.id,
                details={"signer_email": user.email, "via": "account"}, origin=origin,
            )
            raise
        return self._after_submission(result, user_id=user.id, via="account", origin=origin)

    def submit_signature_by_token(
        self,
        token: str,
        payload: SignaturePayload,
        placement: Placement,
        *,
        signer_name: Optional[str] = None,
        origin: RequestOrigin = UNKNOWN_ORIGIN,
    ) -> SigningOutcome:
        claims = self.tokens.verify(token)
        if claims is None:
            error = NotFoundError("Invalid or expired signing link.")
            self.audit.record_failure(AuditAction.TOKEN_VERIFIED, error, origin=origin)
            raise error

        try:
            result = self.signatures.submit(
                claims.document_id, claims.signer_email, payload, placement,
                signer_name=signer_name, origin=origin, consume_token=token,
            )
        except SigningWorkflowError as e:
            self.audit.record_failure(
                AuditAction.SIGNATURE_ADDED, e, document_id=claims.document_id,
                details={"signer_email": claims.signer_email, "via": "token"}, origin=origin,
            )
            raise

        self.audit.record(
            AuditAction.TOKEN_INVALIDATED,
            document_id=claims.document_id,
            details={"signer_email": claims.signer_email},
            origin=origin,
        )
        return self._after_submission(result, user_id=None, via="token", origin=origin)

    def get_signing_context(self, token: str, origin: RequestOrigin = UNKNOWN_ORIGIN) -> SigningContext:
        claims = self.tokens.verify(token)
        if claims is None:
            error = NotFoundError("Invalid or expired signing link.")
            self.audit.record_failure(AuditAction.TOKEN_VERIFIED, error, origin=origin)
            raise error

        document = self._load(claims.document_id)
        signer = document.signer_for(claims.signer_email)
        if signer is None:
            raise NotFoundError("Invalid or expired signing link.")

        self.audit.record(
            AuditAction.TOKEN_VERIFIED,
            document_id=document.id,
            details={"signer_email": signer.email},
            origin=origin,
        )
        return SigningContext(document=document, signer=signer)

    def list_document_signatures(self, user: User, document_id: int) -> List[Signature]:
        document = self._load(document_id)
        permission.ensure_can_view_signatures(user, document)
        return self.signatures.list_for_document(document_id)

    def verify_signature_integrity(self, user: User, signature_id: int) -> IntegrityReport:
        """
        Check that the document file still matches its recorded hash and that
        the signature record still matches its event hash.

        Once signed, the assembled file is checked against ``signed_file_hash``;
        before that, the original upload against ``file_hash``.
        """
        signature = self.signatures.get(signature_id)
        document = self._load(signature.document_id)
        permission.ensure_can_view_signatures(user, document)

        if document.status == DocumentStatus.SIGNED and document.signed_file_path:
            path, expected = document.signed_file_path, document.signed_file_hash
        else:
            path, expected = document.original_file_path, document.file_hash

        try:
            actual = sha256_file(path)
        except FileNotFoundError:
            logger.warning("File for document %s missing during verification: %s", document.id, path)
            actual = None
        except OSError as e:
            raise InfrastructureError("Could not read document file.") from e

        document_intact = actual is not None and actual == expected
        signature_intact = compute_signature_event_hash(signature) == signature.event_hash
        return IntegrityReport(
            signature_id=signature.id,
            document_id=document.id,
            document_intact=document_intact,
            signature_intact=signature_intact,
            is_valid=document_intact and signature_intact and bool(signature.is_verified),
            expected_hash=expected,
            actual_hash=actual,
            checked_file="signed" if path == document.signed_file_path else "original",
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_documents(
        self,
        user: User,
        status: Optional[DocumentStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Document], int]:
        """
        Obtiene los documentos del usuario (todos para administradores)
        """
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError("page must be >= 1 and limit between 1 and 100.")

        query = self.session.query(Document)
        if not permission.can_perform_action(user.role, "manage_any"):
            query = query.filter(Document.owner_id == user.id)
        if status is not None:
            query = query.filter(Document.status == status)

        total = query.count()
        items = (
            query.order_by(Document.created_at.desc(), Document.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def get_document(self, user: User, document_id: int, origin: RequestOrigin = UNKNOWN_ORIGIN) -> Document:
        document = self._load_managed(user, document_id)
        self.audit.record(
            AuditAction.DOCUMENT_VIEWED, document_id=document_id, user_id=user.id, origin=origin
        )
        return document

    def download(self, user: User, document_id: int, origin: RequestOrigin = UNKNOWN_ORIGIN) -> DownloadedFile:
        """
        Return the signed artifact once signed, the original otherwise.

        The bytes are re-hashed and must match the recorded hash.
        """
        document = self._load_managed(user, document_id)
        is_signed = document.status == DocumentStatus.SIGNED and bool(document.signed_file_path)
        path = document.signed_file_path if is_signed else document.original_file_path
        expected = document.signed_file_hash if is_signed else document.file_hash

        content = self.storage.read(path)
        digest = sha256_hex(content)
        if digest != expected:
            logger.error("Hash mismatch on document %s file %s", document_id, path)
            error = IntegrityError("Stored document does not match its recorded hash.")
            self.audit.record_failure(
                AuditAction.DOCUMENT_DOWNLOADED, error, document_id=document_id,
                user_id=user.id, origin=origin,
            )
            raise error

        self.audit.record(
            AuditAction.DOCUMENT_DOWNLOADED,
            document_id=document_id,
            user_id=user.id,
            details={"file_type": "signed" if is_signed else "original"},
            origin=origin,
        )
        return DownloadedFile(
            content=content,
            filename=f"{document.title}.pdf",
            sha256=digest,
            is_signed=is_signed,
        )

    def get_history(self, user: User, document_id: int) -> List[AuditLog]:
        self._load_managed(user, document_id)
        return self.audit.list_for_document(document_id)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _after_submission(self, result, *, user_id: Optional[int], via: str,
                          origin: RequestOrigin) -> SigningOutcome:
        document_id = result.document.id
        self.audit.record(
            AuditAction.SIGNATURE_ADDED,
            document_id=document_id,
            user_id=user_id,
            details={
                "signer_email": result.signature.signer_email,
                "via": via,
                "page": result.signature.page_number,
                "all_signed": result.all_signed,
            },
            origin=origin,
        )
        document = result.document
        if result.all_signed:
            document = self._complete(document_id, user_id=user_id, origin=origin)
        return SigningOutcome(
            signature=result.signature,
            document=document,
            all_signed=result.all_signed,
            completed=document.status == DocumentStatus.SIGNED,
        )

    def _complete(self, document_id: int, *, user_id: Optional[int], origin: RequestOrigin) -> Document:
        """
        Assemble the signed PDF and move the document to signed.

        Runs only for the submission that observed the last signature (or an
        explicit finalize). On any failure the artifact is discarded and the
        document stays sent.
        """
        document = self._load(document_id, for_update=True)
        if document.status == DocumentStatus.SIGNED:
            return document
        DocumentStateService.ensure_state(document, DocumentStatus.SENT, "complete")
        if not document.all_signed:
            raise ConflictError("Not every signer has signed this document yet.")

        stamps = [SignatureStamp.from_signature(s) for s in document.signatures]
        signer_names = [s.name for s in document.signers]
        signed_path = None
        try:
            original = self.storage.read(document.original_file_path)
            artifact = self.assembler.assemble_signed(original, stamps)
            signed_path = self.storage.save(artifact, SIGNED, document.original_filename)
            document.signed_file_path = signed_path
            document.signed_file_hash = sha256_hex(artifact)
            DocumentStateService.change_document_state(document, DocumentStatus.SIGNED)
            self.session.commit()
        except StaleDataError as e:
            self.session.rollback()
            self.storage.delete(signed_path)
            raise ConflictError("Document was completed concurrently.") from e
        except Exception as e:
            self.session.rollback()
            self.storage.delete(signed_path)
            logger.exception("Completion of document %s failed; it remains sent", document_id)
            self.audit.record_failure(
                AuditAction.DOCUMENT_SIGNED, e, document_id=document_id, user_id=user_id, origin=origin
            )
            raise InfrastructureError(
                "The signature was recorded but the signed document could not be produced. "
                "It can be finalized later."
            ) from e

        logger.info("Document %s completed with %d signature(s)", document_id, len(stamps))
        self.audit.record(
            AuditAction.DOCUMENT_SIGNED,
            document_id=document_id,
            user_id=user_id,
            details={"signatures": len(stamps), "signed_file_hash": document.signed_file_hash},
            origin=origin,
        )

        owner_email, title = document.owner.email, document.title
        self._notify(
            lambda: self.notifier.send_signed_notification(
                to=owner_email, document_name=title, signed_by=", ".join(signer_names),
                document_id=document_id,
            ),
            document_id=document_id,
            user_id=user_id,
            details={"to": owner_email, "kind": "document_signed"},
            origin=origin,
        )
        return document

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify(self, send: Callable[[], object], *, document_id: int, user_id: Optional[int],
                details: dict, origin: RequestOrigin) -> bool:
        """Dispatch one notification after a committed transition; never raises."""
        try:
            send()
        except Exception as e:
            self.session.rollback()
            logger.exception("Notification %s for document %s failed", details.get("kind"), document_id)
            self.audit.record_failure(
                AuditAction.EMAIL_SENT, e, document_id=document_id, user_id=user_id,
                details=details, origin=origin,
            )
            return False
        self.audit.record(
            AuditAction.EMAIL_SENT, document_id=document_id, user_id=user_id,
            details=details, origin=origin,
        )
        return True

    def _load(self, document_id: int, for_update: bool = False) -> Document:
        query = self.session.query(Document).filter(Document.id == document_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        try:
            document = query.one_or_none()
        except SQLAlchemyError as e:
            raise InfrastructureError("Document store unavailable.") from e
        if document is None:
            raise NotFoundError("Document not found.")
        return document

    def _load_managed(self, user: User, document_id: int) -> Document:
        document = self._load(document_id)
        permission.ensure_can_manage(user, document)
        return document

    def _commit(self, failure_message: str) -> None:
        try:
            self.session.commit()
        except StaleDataError as e:
            self.session.rollback()
            raise ConflictError("Document was modified concurrently, please retry.") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise InfrastructureError(failure_message) from e

    @staticmethod
    def _validate_file(file_contents: bytes, filename: str, content_type: str, max_file_size: int) -> int:
        """Valida el archivo subido y devuelve su número de páginas"""

        if content_type != "application/pdf":
            raise ValidationError("File must be a PDF.")

        if not filename or not filename.lower().endswith(".pdf"):
            raise ValidationError("File extension must be .pdf.")

        if not file_contents:
            raise ValidationError("File is empty.")

        if len(file_contents) > max_file_size:
            raise ValidationError(f"Maximum file size is {max_file_size // (1024 * 1024)} MB.")

        try:
            page_count = read_page_count(file_contents)
        except Exception as e:
            raise ValidationError("Invalid or corrupted PDF.") from e
        if page_count < 1:
            raise ValidationError("PDF has no pages.")
        return page_count

    @staticmethod
    def _normalize_signers(signers: Sequence[SignerInvite]) -> List[SignerInvite]:
        normalized = []
        seen = set()
        for invite in signers or ():
            name = (invite.name or "").strip()
            email = (invite.email or "").strip().lower()
            if not name:
                raise ValidationError("Every signer needs a name.")
            if "@" not in email:
                raise ValidationError(f"Invalid signer email: {invite.email!r}.")
            if email in seen:
                raise ValidationError(f"Signer {email} is listed more than once.")
            seen.add(email)
            normalized.append(SignerInvite(name=name, email=email))
        return normalized

    @staticmethod
    def _clean_title(title: str) -> str:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Document title is required.")
        if len(title) > 200:
            raise ValidationError("Document title cannot exceed 200 characters.")
        return title

    @staticmethod
    def _clean_description(description: Optional[str]) -> Optional[str]:
        description = (description or "").strip() or None
        if description and len(description) > 500:
            raise ValidationError("Description cannot exceed 500 characters.")
        return description
