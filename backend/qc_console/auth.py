"""
Game QC Console - Authentication Utilities
Password hashing, JWT tokens, auth dependencies and role permissions
"""
import os
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .models.db_models import UserDB

# Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "game-qc-console-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 24

# Bearer token security
security = HTTPBearer()


# =============================================================================
# ROLES AND PERMISSIONS
# =============================================================================

GAMES_VIEW = "games:view"
GAMES_CREATE = "games:create"
GAMES_UPDATE = "games:update"
GAMES_SUBMIT = "games:submit"
GAMES_REVIEW = "games:review"
GAMES_APPROVE = "games:approve"
GAMES_PUBLISH = "games:publish"
GAMES_ARCHIVE = "games:archive"
SYSTEM_AUDIT_VIEW = "system:audit_view"

ALL_PERMISSIONS = frozenset({
    GAMES_VIEW, GAMES_CREATE, GAMES_UPDATE, GAMES_SUBMIT, GAMES_REVIEW,
    GAMES_APPROVE, GAMES_PUBLISH, GAMES_ARCHIVE, SYSTEM_AUDIT_VIEW,
})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "dev": frozenset({GAMES_VIEW, GAMES_CREATE, GAMES_UPDATE, GAMES_SUBMIT}),
    "qc": frozenset({GAMES_VIEW, GAMES_REVIEW}),
    "cto": frozenset({GAMES_VIEW, GAMES_APPROVE, SYSTEM_AUDIT_VIEW}),
    "ceo": frozenset({GAMES_VIEW, GAMES_APPROVE}),
    "admin": ALL_PERMISSIONS,
}

APPROVER_ROLES = ("cto", "ceo", "admin")


def permissions_for(roles: Optional[Iterable[str]]) -> FrozenSet[str]:
    """Union of the permissions granted by `roles`. Unknown roles grant nothing."""
    granted = set()
    for role in roles or []:
        granted |= ROLE_PERMISSIONS.get(role, frozenset())
    return frozenset(granted)


def has_permission(user: Optional[UserDB], permission: str) -> bool:
    """True iff the user is active and one of its roles grants `permission`."""
    if user is None or user.is_active is False:
        return False
    return permission in permissions_for(user.roles)


class PermissionOracle:
    """
    Answers "does actor X hold permission P" by looking the actor up.

    Callable as oracle(actor_id, permission).
    """

    def __init__(self, db: Session):
        self.db = db

    def __call__(self, actor_id: str, permission: str) -> bool:
        user = self.db.query(UserDB).filter(UserDB.id == actor_id).first()
        return has_permission(user, permission)


# =============================================================================
# PASSWORDS AND TOKENS
# =============================================================================

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def create_access_token(user_id: str, email: str, roles: Optional[List[str]] = None) -> str:
    """Create a JWT access token with a roles claim."""
    expire = datetime.utcnow() + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    to_encode = {
        "sub": user_id,
        "email": email,
        "roles": list(roles or []),
        "exp": expire
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> UserDB:
    """
    Dependency to get the current authenticated user.
    Validates JWT token and fetches user from database.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    user_id: str = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if user is None or user.is_active is False:
        raise credentials_exception

    return user


def require_permission(permission: str):
    """
    Dependency factory: the current user must hold `permission`.

    The 403 names the missing permission.
    """
    async def dependency(current_user: UserDB = Depends(get_current_user)) -> UserDB:
        if not has_permission(current_user, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "PermissionDeniedError",
                    "reason": f"Actor {current_user.id} lacks {permission}",
                    "permission": permission,
                },
            )
        return current_user

    return dependency
