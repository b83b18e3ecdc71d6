"""
Audit trail
- One entry per payment review decision or administrative override
"""
import logging
from typing import Any, Optional

from core.models import AuditEntry
from core.sessions import Identity
from core.store import EntityStore

logger = logging.getLogger(__name__)


def record_audit(
    store: EntityStore,
    identity: Identity,
    action: str,
    entity: str,
    entity_id: str,
    detail: Optional[dict[str, Any]] = None,
) -> AuditEntry:
    entry = AuditEntry(
        actor_id=identity.user_id,
        actor_role=identity.role,
        action=action,
        entity=entity,
        entity_id=entity_id,
        detail=detail or {},
    )
    entry = store.create("audit", entry)
    logger.debug(f"📝 Audit {action} on {entity}/{entity_id} by {identity.username}")
    return entry


def list_audit(store: EntityStore, entity_id: Optional[str] = None) -> list[AuditEntry]:
    """Newest first."""
    filters = {"entity_id": entity_id} if entity_id else {}
    return list(reversed(store.list("audit", **filters)))
