"""
CRM leads
- Creation with defaults
- Status updates, with CONVERTED handled by the conversion workflow
- CONVERTED is terminal
"""
import logging
from enum import Enum
from typing import Any, Optional

from core.errors import ConflictError, NotFoundError, ValidationError
from core.models import Lead, LeadStatus, PaymentPlan, Student, empty_installments, utcnow
from core.store import EntityStore
from core.validation import require_text

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "phone", "status", "source", "notes")


class ConversionOutcome(str, Enum):
    UPDATED = "updated"  # plain field/status update, no conversion involved
    LINKED = "linked"  # a student with the same phone already existed
    CREATED = "created"  # confirmed, new student enrolled
    DECLINED = "declined"  # confirmation withheld, nothing written


def create_lead(
    store: EntityStore,
    name: Optional[str],
    phone: Optional[str],
    source: Optional[str] = None,
    notes: Optional[str] = None,
) -> Lead:
    if not name or not phone:
        raise ValidationError("Name and phone are required")
    lead = Lead(
        name=require_text(name, "Name"),
        phone=require_text(phone, "Phone"),
        status=LeadStatus.NEW,
        source=(source or "").strip() or "Direct",
        notes=notes or "",
    )
    lead = store.create("leads", lead)
    logger.info(f"➕ Lead created - lead_id: {lead.id}")
    return lead


def _clean_changes(changes: dict[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for name, value in changes.items():
        if name not in EDITABLE_FIELDS:
            continue
        if name in ("name", "phone"):
            value = require_text(value, name.capitalize())
        elif name == "status":
            try:
                value = LeadStatus(value)
            except ValueError:
                raise ValidationError(f"Unknown lead status: {value}") from None
        elif name in ("source", "notes"):
            value = value or ""
        cleaned[name] = value
    return cleaned


def update_lead(
    store: EntityStore,
    lead_id: str,
    changes: dict[str, Any],
    confirm_conversion: bool = False,
) -> tuple[Lead, Optional[Student], ConversionOutcome]:
    lead = store.get("leads", lead_id)
    if lead is None:
        raise NotFoundError("Lead not found")
    if LeadStatus(lead.status) == LeadStatus.CONVERTED:
        raise ConflictError("Lead is already converted")

    changes = _clean_changes(changes)
    new_status = changes.get("status", LeadStatus(lead.status))
    status_changed = new_status != LeadStatus(lead.status)
    if status_changed and new_status != LeadStatus.NEW:
        changes["last_contacted_at"] = utcnow()

    if new_status != LeadStatus.CONVERTED:
        updated = store.update("leads", lead_id, changes)
        return updated, None, ConversionOutcome.UPDATED

    phone = changes.get("phone", lead.phone)
    name = changes.get("name", lead.name)
    student = store.find_one("students", phone=phone)
    if student is not None:
        updated = store.update("leads", lead_id, changes)
        logger.info(f"🔗 Lead converted, linked to existing student - lead_id: {lead_id}, student_id: {student.id}")
        return updated, student, ConversionOutcome.LINKED

    if not confirm_conversion:
        # abandoned entirely: no field of the request is written
        logger.info(f"↩️ Lead conversion declined - lead_id: {lead_id}")
        return lead, None, ConversionOutcome.DECLINED

    student = store.create(
        "students",
        Student(name=name, phone=phone, plan=PaymentPlan.HALF, installments=empty_installments()),
    )
    updated = store.update("leads", lead_id, changes)
    logger.info(f"🎓 Lead converted to new student - lead_id: {lead_id}, student_id: {student.id}")
    return updated, student, ConversionOutcome.CREATED


def delete_lead(store: EntityStore, lead_id: str) -> None:
    if not store.delete("leads", lead_id):
        raise NotFoundError("Lead not found")
