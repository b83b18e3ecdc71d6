"""
Authentication
- bcrypt password hashing
- Login resolution (stored users, legacy file store, students by phone, bootstrap accounts)
- FastAPI dependencies resolving the bearer token to an Identity
"""
import logging
import secrets
import string
from typing import Optional

import bcrypt
from fastapi import Depends, Request

from core.config import AppSettings
from core.errors import AuthenticationError, AuthorizationError
from core.models import User, UserRole
from core.permissions import has_role, is_one_of
from core.sessions import Identity, SessionStore, extract_token
from core.store import EntityStore

logger = logging.getLogger(__name__)

# login name -> (user id, display name, role)
BOOTSTRAP_ACCOUNTS: dict[str, tuple[str, str, UserRole]] = {
    "admin": ("admin", "Administrator", UserRole.ADMIN),
    "teacher": ("teacher", "Teacher", UserRole.TEACHER),
    "sales": ("sales1", "Sales Agent", UserRole.SALES),
    "omar.samy": ("omar.samy", "Omar Samy", UserRole.TEACHER),
    "abdelatif.reda": ("abdelatif.reda", "Abdelatif Reda", UserRole.TEACHER),
    "karim.ali": ("karim.ali", "Karim Ali", UserRole.TEACHER),
}


def _truncate_password(password: str) -> bytes:
    """bcrypt only looks at the first 72 bytes; cut on a UTF-8 character boundary."""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) <= 72:
        return password_bytes
    return password_bytes[:72].decode("utf-8", errors="ignore").encode("utf-8")


def get_password_hash(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    return bcrypt.hashpw(_truncate_password(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_truncate_password(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # malformed hash in storage
        logger.warning("⚠️ Stored password hash is not a valid bcrypt hash")
        return False


def generate_password(length: int = 12) -> str:
    """Random password with at least one upper, lower, digit and symbol."""
    symbols = "!@#$%^&*"
    alphabet = string.ascii_letters + string.digits + symbols
    chars = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(symbols),
    ]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def _check_stored(store: EntityStore, username: str, password: str) -> Optional[User]:
    """A stored user with a password hash must match it; no later step may override."""
    user = store.find_one("users", username=username)
    if user is None or not user.password_hash:
        return None
    if not verify_password(password, user.password_hash):
        logger.info(f"🔒 Wrong password for {username}")
        raise AuthenticationError("Invalid credentials")
    return user


def _student_login(store: EntityStore, username: str, password: str) -> Optional[User]:
    student = store.find_one("students", phone=username)
    if student is None or password != student.phone:
        return None
    user = store.get("users", student.id)
    if user is None:
        user = store.create(
            "users",
            User(
                id=student.id,
                username=student.phone,
                display_name=student.name,
                role=UserRole.STUDENT,
                student_id=student.id,
            ),
        )
        logger.info(f"➕ Student account provisioned - student_id: {student.id}")
    return user


def _bootstrap_login(store: EntityStore, username: str, password: str, settings: AppSettings) -> Optional[User]:
    account = BOOTSTRAP_ACCOUNTS.get(username)
    if account is None or password != settings.bootstrap_password:
        return None
    user_id, display_name, role = account
    user = store.get("users", user_id)
    if user is None:
        user = store.create(
            "users",
            User(
                id=user_id,
                username=username,
                display_name=display_name,
                role=role,
                password_hash=get_password_hash(password),
            ),
        )
        logger.info(f"➕ Bootstrap account provisioned - {username} ({role.value})")
    return user


def authenticate(
    store: EntityStore,
    username: str,
    password: str,
    settings: AppSettings,
    fallback_store: Optional[EntityStore] = None,
) -> User:
    username = (username or "").strip()
    password = (password or "").strip()

    user = _check_stored(store, username, password)

    if user is None and fallback_store is not None:
        user = _check_stored(fallback_store, username, password)
        if user is not None and store.get("users", user.id) is None:
            user = store.create("users", User.model_validate(user.model_dump()))
            logger.info(f"📥 Imported legacy user {username}")

    if user is None:
        user = _student_login(store, username, password)
    if user is None:
        user = _bootstrap_login(store, username, password, settings)

    if user is None:
        logger.info(f"🔒 Login rejected for {username!r}")
        raise AuthenticationError("Invalid credentials")
    return user


# ==================== FastAPI dependencies ====================

def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_fallback_store(request: Request) -> Optional[EntityStore]:
    return getattr(request.app.state, "fallback_store", None)


def get_current_user(
    request: Request,
    sessions: SessionStore = Depends(get_session_store),
) -> Identity:
    token = extract_token(request.headers)
    if not token:
        raise AuthenticationError()
    user = sessions.get_user_from_session(token)
    if user is None:
        raise AuthenticationError()
    return Identity.from_user(user, token=token)


def require_role(required_role: UserRole):
    """Hierarchical check (ADMIN > TEACHER > SALES/STUDENT)."""
    def role_checker(current_user: Identity = Depends(get_current_user)) -> Identity:
        if not has_role(current_user.role, required_role):
            raise AuthorizationError()
        return current_user
    return role_checker


def require_any_role(*roles: UserRole):
    """Explicit role-set membership, e.g. ADMIN or TEACHER or SALES."""
    def role_checker(current_user: Identity = Depends(get_current_user)) -> Identity:
        if not is_one_of(current_user.role, roles):
            raise AuthorizationError()
        return current_user
    return role_checker


def require_staff():
    return require_any_role(UserRole.ADMIN, UserRole.TEACHER)


def require_admin():
    return require_role(UserRole.ADMIN)
