# modules/notifications/services/notification_service.py
import logging
from typing import List, Optional

from modules.notifications.models.notification import Notification, NotificationKind
from modules.notifications.repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)


class NotificationTemplate:
    kind: NotificationKind

    def __init__(self, to: str, subject: str, message: str, link: Optional[str] = None):
        self.to = to.lower()
        self.subject = subject
        self.message = message
        self.link = link

    def to_dict(self):
        return {
            'to': self.to,
            'kind': self.kind.value,
            'subject': self.subject,
            'message': self.message,
            'link': self.link,
        }


class SigningRequestNotification(NotificationTemplate):
    kind = NotificationKind.SIGNING_REQUEST

    def __init__(self, to: str, signer_name: str, document_name: str, signing_url: str,
                 sender_name: str):
        subject = f"Document Ready for Signature: {document_name}"
        message = (
            f"Hello {signer_name}, {sender_name} has sent you a document to sign: "
            f"'{document_name}'. Open the link to review and sign it. "
            f"The link expires and can only be used once."
        )
        super().__init__(to, subject, message, link=signing_url)


class DocumentSignedNotification(NotificationTemplate):
    kind = NotificationKind.DOCUMENT_SIGNED

    def __init__(self, to: str, document_name: str, signed_by: str):
        subject = f"Document Signed: {document_name}"
        message = (
            f"Your document '{document_name}' has been signed by: {signed_by}. "
            f"The fully signed document is ready to download."
        )
        super().__init__(to, subject, message)


class RejectionNotification(NotificationTemplate):
    kind = NotificationKind.DOCUMENT_REJECTED

    def __init__(self, to: str, document_name: str, reason: Optional[str], rejected_by: str):
        subject = f"Document Rejected: {document_name}"
        message = f"Your document '{document_name}' has been rejected by {rejected_by}."
        if reason:
            message += f" Reason provided: {reason}"
        super().__init__(to, subject, message)


class NotificationService:
    """Writes outgoing notifications to the outbox; errors propagate to the caller."""

    def __init__(self, repository: NotificationRepository):
        self.notification_repository = repository

    def send_signing_request(self, *, to: str, signer_name: str, document_name: str,
                             signing_url: str, sender_name: str,
                             document_id: Optional[int] = None) -> Notification:
        template = SigningRequestNotification(to, signer_name, document_name, signing_url, sender_name)
        return self._dispatch(template, document_id)

    def send_signed_notification(self, *, to: str, document_name: str, signed_by: str,
                                 document_id: Optional[int] = None) -> Notification:
        template = DocumentSignedNotification(to, document_name, signed_by)
        return self._dispatch(template, document_id)

    def send_rejection_notification(self, *, to: str, document_name: str, reason: Optional[str],
                                    rejected_by: str,
                                    document_id: Optional[int] = None) -> Notification:
        template = RejectionNotification(to, document_name, reason, rejected_by)
        return self._dispatch(template, document_id)

    def get_notifications(self, email: str) -> List[Notification]:
        return self.notification_repository.find_by_recipient(email)

    def mark_as_read(self, notification_id: int) -> Optional[Notification]:
        return self.notification_repository.update(notification_id, {'read': True})

    def _dispatch(self, template: NotificationTemplate, document_id: Optional[int]) -> Notification:
        notif = Notification(
            recipient_email=template.to,
            kind=template.kind,
            subject=template.subject,
            message=template.message,
            link=template.link,
            document_id=document_id,
        )
        saved = self.notification_repository.save(notif)
        logger.info("Queued %s notification for %s", template.kind.value, template.to)
        return saved
