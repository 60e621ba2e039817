from modules.documents.errors import AuthorizationError
from modules.documents.models.document import Document, Signer
from modules.documents.models.user import User, UserRole

ROLE_PERMISSIONS = {
    UserRole.USER: ["upload", "sign"],
    UserRole.ADMIN: ["upload", "sign", "manage_any"],
}

def can_perform_action(user_role: UserRole, action: str) -> bool:
    return action in ROLE_PERMISSIONS.get(user_role, [])

def can_manage(user: User, document: Document) -> bool:
    """Owners manage their own documents; administrators manage all of them."""
    return document.owner_id == user.id or can_perform_action(user.role, "manage_any")

def ensure_can_manage(user: User, document: Document) -> None:
    if not can_manage(user, document):
        raise AuthorizationError("You do not have permission to access this document.")

def ensure_is_signer(user: User, document: Document) -> Signer:
    signer = document.signer_for(user.email)
    if signer is None or not can_perform_action(user.role, "sign"):
        raise AuthorizationError("You are not authorized to sign this document.")
    return signer

def ensure_can_view_signatures(user: User, document: Document) -> None:
    if can_manage(user, document) or document.signer_for(user.email) is not None:
        return
    raise AuthorizationError("You do not have permission to view these signatures.")
