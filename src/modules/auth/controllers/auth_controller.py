from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

import config
from database import get_db
from modules.audit.context import RequestOrigin, get_request_origin
from modules.audit.models.audit_log import AuditAction
from modules.audit.services.audit_service import AuditTrailRecorder, get_audit_recorder
from modules.auth.services.auth_service import AuthService
from modules.auth.schemas.auth_schemas import LoginRequest, TokenResponse, UserCreate, UserResponse
from modules.documents.models.user import User, UserRole

router = APIRouter(prefix="/auth", tags=["authentication"])
security = HTTPBearer()

def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db)):
    """Dependency para obtener usuario autenticado"""
    user = AuthService.get_current_user(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user

def verify_admin(current_user: User = Depends(get_current_user)):
    """Verifica que el usuario actual sea administrador"""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can perform this action"
        )
    return current_user

@router.post("/login", response_model=TokenResponse)
def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db),
    origin: RequestOrigin = Depends(get_request_origin),
    audit: AuditTrailRecorder = Depends(get_audit_recorder)
):
    """Endpoint de login"""
    user = AuthService.authenticate_user(db, login_data.email, login_data.password)
    if not user:
        audit.record_failure(
            AuditAction.LOGIN_FAILED,
            ValueError("Invalid email or password"),
            details={"email": login_data.email.lower()},
            origin=origin,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = AuthService.create_access_token(
        data={"sub": user.email},
        expires_delta=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    audit.record(AuditAction.LOGIN_SUCCEEDED, user_id=user.id, origin=origin)

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        user_name=user.name,
        user_role=user.role.value
    )

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(verify_admin)
):
    """Registro de usuarios (solo para administradores)"""
    if AuthService.find_by_email(db, user_data.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is already registered"
        )

    new_user = User(
        name=user_data.name,
        email=user_data.email.lower(),
        password_hash=AuthService.get_password_hash(user_data.password),
        role=user_data.role,
        is_active=True
    )

    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    return new_user

@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Obtener información del usuario actual"""
    return current_user
