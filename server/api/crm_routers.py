"""
CRM lead endpoints (ADMIN, TEACHER, SALES)
"""
import logging

from fastapi import APIRouter, Depends, status

from api.schemas import LeadCreate, LeadRead, LeadUpdate, StudentRead, wire, wire_all
from core.auth import get_store, require_any_role
from core.errors import NotFoundError
from core.leads import create_lead, delete_lead, update_lead
from core.permissions import CRM_ROLES
from core.sessions import Identity
from core.store import EntityStore
from core.validation import require_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])

require_crm = require_any_role(*CRM_ROLES)


@router.get("")
def list_leads(
    _: Identity = Depends(require_crm),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"leads": wire_all(LeadRead, store.list("leads"))}


@router.get("/{lead_id}")
def get_lead(
    lead_id: str,
    _: Identity = Depends(require_crm),
    store: EntityStore = Depends(get_store),
) -> dict:
    lead = store.get("leads", lead_id)
    if lead is None:
        raise NotFoundError("Lead not found")
    return {"lead": wire(LeadRead, lead)}


@router.post("", status_code=status.HTTP_201_CREATED)
def add_lead(
    payload: LeadCreate,
    _: Identity = Depends(require_crm),
    store: EntityStore = Depends(get_store),
) -> dict:
    lead = create_lead(store, payload.name, payload.phone, payload.source, payload.notes)
    return {"lead": wire(LeadRead, lead)}


@router.put("")
def edit_lead(
    payload: LeadUpdate,
    identity: Identity = Depends(require_crm),
    store: EntityStore = Depends(get_store),
) -> dict:
    """A move to CONVERTED runs the conversion; `confirmConversion` gates creating a student."""
    lead_id = require_uuid(payload.id, "lead")
    changes = {name: getattr(payload, name) for name in payload.model_fields_set - {"id", "confirm_conversion"}}
    lead, student, outcome = update_lead(store, lead_id, changes, payload.confirm_conversion)
    logger.info(f"✏️ Lead updated - lead_id: {lead_id}, outcome: {outcome.value}, by: {identity.username}")
    return {
        "lead": wire(LeadRead, lead),
        "student": wire(StudentRead, student) if student is not None else None,
        "outcome": outcome.value,
    }


@router.delete("/{lead_id}")
def remove_lead(
    lead_id: str,
    _: Identity = Depends(require_crm),
    store: EntityStore = Depends(get_store),
) -> dict:
    require_uuid(lead_id, "lead")
    delete_lead(store, lead_id)
    return {"message": "Lead deleted successfully"}
