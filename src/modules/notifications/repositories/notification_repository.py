from typing import List, Dict, Optional
from sqlalchemy.orm import Session

from modules.notifications.models.notification import Notification

class NotificationRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def find_by_recipient(self, email: str) -> List[Notification]:
        return (
            self.db
            .query(Notification)
            .filter(Notification.recipient_email == email.lower())
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    def get(self, notification_id: int) -> Optional[Notification]:
        return self.db.get(Notification, notification_id)

    def update(self, notification_id: int, data: Dict) -> Optional[Notification]:
        notif = self.db.get(Notification, notification_id)
        if not notif:
            return None
        for field, value in data.items():
            setattr(notif, field, value)
        self.db.commit()
        self.db.refresh(notif)
        return notif
