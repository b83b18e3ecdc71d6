"""
Account and overview endpoints
- /auth: login, current user, logout
- /users: administrator account maintenance
- /dashboard: academy-wide financial and CRM figures
- /audit: payment review and override trail
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.schemas import AuditRead, DashboardRead, LoginRequest, UserRead, wire, wire_all
from core.audit import list_audit
from core.auth import (
    authenticate,
    generate_password,
    get_current_user,
    get_fallback_store,
    get_password_hash,
    get_session_store,
    get_settings,
    get_store,
    require_admin,
    require_any_role,
)
from core.config import AppSettings
from core.errors import AuthenticationError, NotFoundError, ValidationError
from core.finance import summarize_dashboard
from core.models import UserRole
from core.permissions import CRM_ROLES
from core.sessions import Identity, SessionStore, extract_token
from core.store import EntityStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["accounts"])


@router.get("/health")
def health_check() -> dict:
    return {"status": "ok", "service": "academy"}


# ==================== Auth ====================

@router.post("/auth")
def login(
    payload: LoginRequest,
    store: EntityStore = Depends(get_store),
    settings: AppSettings = Depends(get_settings),
    sessions: SessionStore = Depends(get_session_store),
    fallback_store: Optional[EntityStore] = Depends(get_fallback_store),
) -> dict:
    username = (payload.username or "").strip()
    password = (payload.password or "").strip()
    if not username or not password:
        raise ValidationError("Username and password are required")

    user = authenticate(store, username, password, settings, fallback_store)
    session = sessions.create_session(user.id, user.role)
    logger.info(f"✅ Login - user_id: {user.id}, role: {UserRole(user.role).value}")
    return {
        "user": wire(UserRead, user),
        "token": session.token,
        "expiresAt": session.expires_at.isoformat(),
    }


@router.get("/auth")
def current_user(
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    user = store.get("users", identity.user_id)
    if user is None:
        # account removed after the token was resolved
        raise AuthenticationError()
    return {"user": wire(UserRead, user)}


@router.delete("/auth")
def logout(request: Request, sessions: SessionStore = Depends(get_session_store)) -> dict:
    """Idempotent; an unknown or missing token still answers 200."""
    token = extract_token(request.headers)
    if token:
        sessions.delete_session(token)
    return {"message": "Logged out successfully"}


# ==================== Users (ADMIN) ====================

@router.get("/users")
def list_users(
    _: Identity = Depends(require_admin()),
    store: EntityStore = Depends(get_store),
) -> dict:
    users = wire_all(UserRead, store.list("users"))
    return {"users": users, "count": len(users)}


@router.post("/users/update-passwords")
def update_passwords(
    identity: Identity = Depends(require_admin()),
    store: EntityStore = Depends(get_store),
) -> dict:
    """New random password for every user that logs in with one; students keep phone login."""
    users = [user for user in store.list("users") if user.password_hash]
    if not users:
        raise NotFoundError("No users found")

    passwords = {}
    for user in sorted(users, key=lambda u: u.username):
        new_password = generate_password()
        store.update("users", user.id, {"password_hash": get_password_hash(new_password)})
        passwords[user.username] = new_password

    logger.warning(f"⚠️ Passwords rotated for {len(passwords)} user(s) by {identity.username}")
    return {
        "message": f"Successfully updated passwords for {len(passwords)} user(s)",
        "passwords": passwords,
    }


# ==================== Dashboard ====================

@router.get("/dashboard")
def dashboard(
    _: Identity = Depends(require_any_role(*CRM_ROLES)),
    store: EntityStore = Depends(get_store),
) -> dict:
    summary = summarize_dashboard(store.list("students"), store.list("leads"))
    return wire(DashboardRead, summary)


# ==================== Audit (ADMIN) ====================

@router.get("/audit")
def audit_log(
    entity_id: Optional[str] = Query(default=None, alias="entityId"),
    _: Identity = Depends(require_admin()),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"entries": wire_all(AuditRead, list_audit(store, entity_id))}
