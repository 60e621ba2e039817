import logging
from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import config
from modules.documents.models.user import User, UserRole

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

class AuthService:

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verifica si la contraseña coincide con el hash"""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Genera hash de la contraseña"""
        return pwd_context.hash(password)

    @staticmethod
    def find_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == (email or "").strip().lower()).first()

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """Autentica usuario por email y contraseña"""
        user = AuthService.find_by_email(db, email)
        if not user:
            return None
        if not AuthService.verify_password(password, user.password_hash):
            return None
        if not user.is_active:
            return None
        return user

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Crea token JWT"""
        to_encode = data.copy()
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Optional[str]:
        """Verifica token JWT y retorna el email del usuario"""
        try:
            payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        except JWTError:
            return None
        return payload.get("sub")

    @staticmethod
    def get_current_user(db: Session, token: str) -> Optional[User]:
        """Obtiene usuario actual desde token"""
        email = AuthService.verify_token(token)
        if email is None:
            return None
        user = AuthService.find_by_email(db, email)
        if user is None or not user.is_active:
            return None
        return user

    @staticmethod
    def seed_admin(db: Session, email: str = None, password: str = None) -> Optional[User]:
        """Crea el administrador inicial si todavía no hay usuarios."""
        if db.query(User).count() > 0:
            return None

        admin = User(
            name="Administrator",
            email=(email or config.ADMIN_EMAIL).lower(),
            password_hash=AuthService.get_password_hash(password or config.ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            is_active=True
        )
        db.add(admin)
        db.commit()
        logger.info("Seeded administrator %s", admin.email)
        return admin
