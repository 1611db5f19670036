from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging
import secrets

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlmodel import Session, select

from config import settings
from database import get_session
from models import User, UserRole

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticationError(Exception):
    """Raised when a token cannot be turned into a session"""


@dataclass(frozen=True)
class SessionContext:
    """The authenticated caller of one request"""
    user_id: int
    username: str
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.STAFF, UserRole.ADMIN)

    def has_role(self, *roles: UserRole) -> bool:
        return self.role in roles

    def can_act_for(self, student_id: int) -> bool:
        """Students act only for themselves; staff and admins act for anyone"""
        return self.is_staff or self.user_id == student_id


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def authenticate(session: Session, username: str, password: str) -> Optional[User]:
    """Return the active user matching the credentials, or None"""
    user = session.exec(select(User).where(User.username == username)).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))
    payload: Dict[str, Any] = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role.value,
        "iat": now,
        "exp": expire,
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> SessionContext:
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except jwt.PyJWTError as e:
        raise AuthenticationError("Invalid token") from e

    try:
        return SessionContext(
            user_id=int(claims["sub"]),
            username=claims["username"],
            role=UserRole(claims["role"]),
        )
    except (KeyError, ValueError) as e:
        raise AuthenticationError("Token is missing required claims") from e


def get_current_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> SessionContext:
    """Resolve the bearer token into a SessionContext for an active user"""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    try:
        ctx = decode_access_token(credentials.credentials)
    except AuthenticationError as e:
        logger.warning(f"Rejected bearer token: {e}")
        unauthorized.detail = str(e)
        raise unauthorized

    user = session.get(User, ctx.user_id)
    if not user or not user.is_active:
        logger.warning(f"Token for unknown or inactive user {ctx.user_id}")
        raise unauthorized
    return ctx


def require_roles(*roles: UserRole):
    """Dependency factory admitting only callers with one of ``roles``"""
    def role_checker(ctx: SessionContext = Depends(get_current_context)) -> SessionContext:
        if not ctx.has_role(*roles):
            logger.warning(f"User {ctx.username} ({ctx.role.value}) denied; requires {[r.value for r in roles]}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return ctx

    return role_checker


def ensure_can_act_for(ctx: SessionContext, student_id: int) -> None:
    if not ctx.can_act_for(student_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own records",
        )
