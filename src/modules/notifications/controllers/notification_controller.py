# modules/notifications/controllers/notification_controller.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.documents.errors import NotFoundError
from modules.documents.models.user import User
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService
from modules.notifications.models.schemas import NotificationResponse

router = APIRouter()


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    repo = NotificationRepository(db)
    return NotificationService(repo)


@router.get(
    "/me",
    response_model=List[NotificationResponse],
    summary="List notifications addressed to the current user"
)
def list_notifications(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    return service.get_notifications(current_user.email)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read"
)
def mark_notification_as_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    notif = service.notification_repository.get(notification_id)
    if not notif or notif.recipient_email != current_user.email.lower():
        raise NotFoundError("Notification not found")
    return service.mark_as_read(notification_id)
