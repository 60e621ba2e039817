import logging
from datetime import datetime
from modules.documents.errors import ConflictError
from modules.documents.models.document import Document, DocumentStatus

logger = logging.getLogger(__name__)

# draft -> sent -> {signed, rejected}; signed and rejected are terminal
TRANSITIONS = {
    DocumentStatus.DRAFT: {DocumentStatus.SENT},
    DocumentStatus.SENT: {DocumentStatus.SIGNED, DocumentStatus.REJECTED},
    DocumentStatus.SIGNED: set(),
    DocumentStatus.REJECTED: set(),
}

TIMESTAMP_FIELDS = {
    DocumentStatus.SENT: "sent_at",
    DocumentStatus.SIGNED: "signed_at",
    DocumentStatus.REJECTED: "rejected_at",
}

class DocumentStateService:

    @staticmethod
    def can_change_state(document: Document, new_state: DocumentStatus) -> bool:
        return new_state in TRANSITIONS[document.status]

    @staticmethod
    def ensure_state(document: Document, expected: DocumentStatus, action: str) -> None:
        """Raise ConflictError unless the document is in ``expected`` status."""
        if document.status != expected:
            raise ConflictError(
                f"Cannot {action} a document in {document.status.value} status; "
                f"it must be {expected.value}."
            )

    @staticmethod
    def change_document_state(document: Document, new_state: DocumentStatus,
                              now: datetime = None) -> Document:
        """
        Apply a validated transition and stamp its timestamp.

        Nothing is committed here; the caller commits together with the
        side effects of the transition.
        """
        if not DocumentStateService.can_change_state(document, new_state):
            raise ConflictError(
                f"Document cannot change from {document.status.value} to {new_state.value}"
            )

        now = now or datetime.utcnow()
        previous_state = document.status
        document.status = new_state
        document.updated_at = now
        setattr(document, TIMESTAMP_FIELDS[new_state], now)

        logger.info(
            "Document %s changed from %s to %s",
            document.id, previous_state.value, new_state.value
        )
        return document

    @staticmethod
    def get_allowed_transitions(document: Document) -> list[DocumentStatus]:
        """
        Returns list of states the document can transition to
        """
        return [state for state in DocumentStatus if state in TRANSITIONS[document.status]]
