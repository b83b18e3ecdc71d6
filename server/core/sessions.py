"""
Session store
- Opaque bearer tokens mapped to (user, role, expiry)
- Expiry fixed at issue time, checked lazily on access
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Mapping, Optional
from uuid import uuid4

from core.models import AuthSession, User, UserRole, utcnow
from core.store import EntityStore

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_token() -> str:
    return f"{uuid4()}-{_base36(int(time.time() * 1000))}"


def extract_token(headers: Mapping[str, str]) -> Optional[str]:
    """Reads `Authorization: Bearer <token>` or a raw token in the same header."""
    value = None
    for name, header_value in headers.items():
        if name.lower() == "authorization":
            value = header_value
            break
    if not value:
        return None
    parts = value.split(None, 1)
    if parts and parts[0].lower() == "bearer":
        return parts[1].strip() if len(parts) > 1 else None
    return value.strip() or None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, threaded through every protected operation."""

    user_id: str
    username: str
    role: UserRole
    display_name: Optional[str] = None
    student_id: Optional[str] = None
    token: Optional[str] = None

    @classmethod
    def from_user(cls, user: User, token: Optional[str] = None) -> "Identity":
        return cls(
            user_id=user.id,
            username=user.username,
            role=UserRole(user.role),
            display_name=user.display_name,
            student_id=user.student_id,
            token=token,
        )


class SessionStore:
    def __init__(
        self,
        store: EntityStore,
        session_days: int = 7,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.duration = timedelta(days=session_days)
        self.clock = clock

    def create_session(self, user_id: str, role: UserRole) -> AuthSession:
        now = self.clock()
        session = AuthSession(
            user_id=user_id,
            token=generate_token(),
            role=role,
            created_at=now,
            expires_at=now + self.duration,
        )
        session = self.store.create("sessions", session)
        logger.info(f"🔑 Session created - user_id: {user_id}, role: {UserRole(role).value}")
        return session

    def get_session(self, token: str) -> Optional[AuthSession]:
        if not token:
            return None
        session = self.store.find_one("sessions", token=token)
        if session is None:
            return None
        if session.expires_at < self.clock():
            # read-triggered write: expired sessions are purged on first access
            self.store.delete("sessions", session.id)
            logger.info(f"⌛ Expired session purged - user_id: {session.user_id}")
            return None
        return session

    def delete_session(self, token: str) -> None:
        session = self.store.find_one("sessions", token=token)
        if session is not None:
            self.store.delete("sessions", session.id)

    def get_user_from_session(self, token: str) -> Optional[User]:
        session = self.get_session(token)
        if session is None:
            return None
        user = self.store.get("users", session.user_id)
        if user is None:
            logger.warning(f"⚠️ Session for missing user {session.user_id} dropped")
            self.store.delete("sessions", session.id)
            return None
        return user

    def clean_expired_sessions(self) -> int:
        now = self.clock()
        removed = 0
        for session in self.store.list("sessions"):
            if session.expires_at <= now:
                self.store.delete("sessions", session.id)
                removed += 1
        if removed:
            logger.info(f"🧹 Removed {removed} expired sessions")
        return removed
