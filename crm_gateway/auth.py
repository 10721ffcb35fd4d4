"""
Authentication Module

- Password hashing (passlib, PBKDF2-SHA256)
- Credential check scoped to one tenant: the same username may belong to
  different accounts in different tenants
- Bearer session tokens bound to the tenant they were issued for
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from passlib.context import CryptContext

from .models import User, UserPublic
from .storage import Storage
from .tenancy import TenantId

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """
    Hash a plain text password.

    Raises:
        ValueError: If password is empty
    """
    if not plain_password:
        raise ValueError("Password cannot be empty")
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


def generate_token() -> str:
    """Generate a URL-safe session token."""
    return secrets.token_urlsafe(32)


def to_public(user: User) -> UserPublic:
    return UserPublic(**user.model_dump(exclude={"password_hash", "created_at", "updated_at"}))


def authenticate(storage: Storage, username: str, password: str, tenant_id: TenantId) -> Optional[User]:
    """
    Check credentials inside one tenant.

    Returns:
        The user on success, None on unknown user or wrong password
    """
    user = storage.users.get_by_username(username, tenant_id)
    if user is None:
        logger.info(f"Login rejected: unknown user {username} on tenant {tenant_id}")
        return None
    if not verify_password(password, user.password_hash):
        logger.info(f"Login rejected: wrong password for {username} on tenant {tenant_id}")
        return None
    return user


# =============================================================================
# SESSIONS
# =============================================================================

@dataclass(frozen=True)
class Session:
    token: str
    user_id: int
    tenant_id: TenantId
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at


class SessionStore:
    """Token -> Session map. Expired sessions are dropped on lookup and swept on create."""

    def __init__(self, ttl_hours: int = 24):
        self.ttl = timedelta(hours=ttl_hours)
        self._sessions: Dict[str, Session] = {}

    def create(self, user: User, tenant_id: TenantId) -> Session:
        now = datetime.now(timezone.utc)
        self.sweep(now)
        session = Session(
            token=generate_token(),
            user_id=user.id,
            tenant_id=tenant_id,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self._sessions[session.token] = session
        return session

    def get(self, token: str) -> Optional[Session]:
        session = self._sessions.get(token)
        if session is None:
            return None
        if session.is_expired():
            del self._sessions[token]
            return None
        return session

    def revoke(self, token: str) -> bool:
        return self._sessions.pop(token, None) is not None

    def sweep(self, now: Optional[datetime] = None) -> int:
        expired = [token for token, session in self._sessions.items() if session.is_expired(now)]
        for token in expired:
            del self._sessions[token]
        return len(expired)
