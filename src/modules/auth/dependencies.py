from fastapi import Depends
from modules.documents.errors import AuthorizationError
from modules.documents.models.user import User
from modules.documents.services.permission import can_perform_action
from modules.auth.controllers.auth_controller import get_current_user

def require_permission(action: str):
    def dependency(current_user: User = Depends(get_current_user)):
        if not can_perform_action(current_user.role, action):
            raise AuthorizationError(
                f"User with role '{current_user.role.value}' cannot perform '{action}'"
            )
        return current_user
    return dependency
