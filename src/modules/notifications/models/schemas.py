from pydantic import BaseModel
from datetime import datetime
from typing import Optional

from modules.notifications.models.notification import NotificationKind

class NotificationResponse(BaseModel):
    id: int
    recipient_email: str
    kind: NotificationKind
    subject: str
    message: str
    link: Optional[str] = None
    document_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    read: bool = False

    model_config = {"from_attributes": True}
