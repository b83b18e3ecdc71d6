"""
Installment state machine
- UNPAID -> PENDING (student upload) -> PAID | REJECTED (staff review)
- REJECTED -> PENDING (fresh upload)
- PAID <-> UNPAID administrative override, outside the proof review
"""
import copy
import logging
from typing import Any, Optional

from pydantic.alias_generators import to_snake

from core.audit import record_audit
from core.config import AppSettings
from core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from core.models import INSTALLMENT_SLOTS, InstallmentStatus, Student, UserRole, utcnow
from core.permissions import STAFF_ROLES, is_one_of
from core.sessions import Identity
from core.store import EntityStore
from core.validation import validate_data_url

logger = logging.getLogger(__name__)

ACCEPT = "accept"
REJECT = "reject"


def _blank_slot() -> dict[str, Any]:
    return {"status": InstallmentStatus.UNPAID.value, "proof_url": None, "paid_at": None}


def normalize_installments(raw: Optional[dict]) -> dict[str, dict[str, Any]]:
    """All three slots present, snake_case keys, status as plain string."""
    result = {}
    raw = raw or {}
    for slot in INSTALLMENT_SLOTS:
        data = _blank_slot()
        for key, value in (raw.get(slot) or {}).items():
            data[to_snake(key)] = value
        data["status"] = _parse_status(data.get("status") or InstallmentStatus.UNPAID).value
        result[slot] = data
    return result


def _parse_status(value) -> InstallmentStatus:
    try:
        return InstallmentStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown installment status: {value}") from None


def _check_slot(slot: str) -> None:
    if slot not in INSTALLMENT_SLOTS:
        raise ValidationError(f"Unknown installment slot: {slot}")


def _owns(identity: Identity, student: Student) -> bool:
    return identity.role == UserRole.STUDENT and identity.student_id == student.id


def upload_proof(student: Student, slot: str, proof_url: str, identity: Identity) -> dict:
    """Owning student submits a proof from UNPAID, REJECTED or PENDING; PAID is settled."""
    _check_slot(slot)
    if not _owns(identity, student):
        raise AuthorizationError("Only the student may upload a payment proof")
    if not proof_url:
        raise ValidationError("Proof image is required")
    installments = normalize_installments(copy.deepcopy(student.installments))
    if installments[slot]["status"] == InstallmentStatus.PAID.value:
        raise ConflictError(f"Installment {slot} is already PAID")
    installments[slot] = {
        "status": InstallmentStatus.PENDING.value,
        "proof_url": proof_url,
        "paid_at": None,
    }
    return installments


def review_installment(student: Student, slot: str, decision: str, identity: Identity) -> dict:
    _check_slot(slot)
    if not is_one_of(identity.role, STAFF_ROLES):
        raise AuthorizationError("Only staff may review payment proofs")
    if decision not in (ACCEPT, REJECT):
        raise ValidationError("Decision must be 'accept' or 'reject'")

    installments = normalize_installments(copy.deepcopy(student.installments))
    current = installments[slot]
    if current["status"] != InstallmentStatus.PENDING.value:
        raise ConflictError(f"Installment {slot} is {current['status']}, not PENDING")

    if decision == ACCEPT:
        current["status"] = InstallmentStatus.PAID.value
        current["paid_at"] = utcnow().isoformat()
    else:
        # proof stays so the rejection can be inspected
        current["status"] = InstallmentStatus.REJECTED.value
        current["paid_at"] = None
    return installments


def override_installment(student: Student, slot: str, target, identity: Identity) -> dict:
    """ADMIN toggles a settled slot between PAID and UNPAID without a proof."""
    _check_slot(slot)
    if identity.role != UserRole.ADMIN:
        raise AuthorizationError("Only an administrator may override an installment")
    target = _parse_status(target)
    if target not in (InstallmentStatus.PAID, InstallmentStatus.UNPAID):
        raise ValidationError("Override status must be PAID or UNPAID")

    installments = normalize_installments(copy.deepcopy(student.installments))
    current = installments[slot]
    if current["status"] == InstallmentStatus.PENDING.value:
        raise ConflictError(f"Installment {slot} is waiting for review")

    if target == InstallmentStatus.PAID:
        current["status"] = InstallmentStatus.PAID.value
        current["paid_at"] = utcnow().isoformat()
    else:
        installments[slot] = _blank_slot()
    return installments


def plan_installment_changes(student: Student, incoming: dict) -> list[tuple[str, str, Any]]:
    """
    Diff a submitted installments map against the stored one.
    Returns (slot, action, argument) steps; raises on the first illegal change.
    """
    if not isinstance(incoming, dict):
        raise ValidationError("installments must be an object")
    for slot in incoming:
        _check_slot(slot)

    stored = normalize_installments(student.installments)
    steps = []
    for slot in INSTALLMENT_SLOTS:
        if slot not in incoming:
            continue
        if not isinstance(incoming[slot], dict):
            raise ValidationError(f"Installment {slot} must be an object")
        before = stored[slot]
        submitted = {to_snake(k): v for k, v in incoming[slot].items()}
        # keys the client left out keep their stored value
        after = {**before, **submitted}
        status = _parse_status(after.get("status") or before["status"]).value
        if status == before["status"] and after.get("proof_url") == before.get("proof_url"):
            continue

        if status == InstallmentStatus.PENDING.value:
            # a move to PENDING is an upload and carries its own proof
            proof_url = submitted.get("proof_url")
            if not proof_url:
                raise ValidationError(f"Installment {slot} needs a proof image to go to PENDING")
            if before["status"] == InstallmentStatus.REJECTED.value and proof_url == before.get("proof_url"):
                raise ValidationError(f"Installment {slot} needs a new proof after a rejection")
            steps.append((slot, "upload", proof_url))
        elif status == InstallmentStatus.REJECTED.value:
            steps.append((slot, "review", REJECT))
        elif status == InstallmentStatus.PAID.value and before["status"] == InstallmentStatus.PENDING.value:
            steps.append((slot, "review", ACCEPT))
        elif status == before["status"]:
            raise ValidationError(f"Installment {slot} proof can only change through an upload")
        else:
            steps.append((slot, "override", status))
    return steps


class InstallmentService:
    """Loads the student, runs a transition, persists it and leaves an audit trail."""

    def __init__(self, store: EntityStore, settings: AppSettings):
        self.store = store
        self.settings = settings

    def _load(self, student_id: str) -> Student:
        student = self.store.get("students", student_id)
        if student is None:
            raise NotFoundError("Student not found")
        return student

    def _transition(self, student: Student, identity: Identity, slot: str, action: str, argument):
        """Returns (installments, audit entry or None). Writes nothing."""
        if action == "upload":
            installments = upload_proof(student, slot, argument, identity)
            validate_data_url(argument, "Proof image", self.settings.max_proof_bytes)
            logger.info(f"📎 Proof uploaded - student_id: {student.id}, slot: {slot}")
            return installments, None

        if action == "review":
            installments = review_installment(student, slot, argument, identity)
            logger.info(
                f"✅ Installment reviewed - student_id: {student.id}, slot: {slot}, "
                f"decision: {argument}, by: {identity.username}"
            )
            detail = {"slot": slot, "status": installments[slot]["status"]}
            return installments, (f"installment.{argument}", student.id, detail)

        previous = normalize_installments(student.installments)[slot]["status"]
        installments = override_installment(student, slot, argument, identity)
        logger.warning(
            f"⚠️ Installment override - student_id: {student.id}, slot: {slot}, "
            f"{previous} -> {installments[slot]['status']}, by: {identity.username}"
        )
        detail = {"slot": slot, "from": previous, "to": installments[slot]["status"]}
        return installments, ("installment.override", student.id, detail)

    def record(self, identity: Identity, audits: list) -> None:
        for action, entity_id, detail in audits:
            record_audit(self.store, identity, action, "students", entity_id, detail)

    def _run(self, identity: Identity, student_id: str, slot: str, action: str, argument) -> Student:
        student = self._load(student_id)
        installments, audit = self._transition(student, identity, slot, action, argument)
        updated = self.store.update("students", student.id, {"installments": installments})
        if updated is None:
            raise NotFoundError("Student not found")
        if audit is not None:
            self.record(identity, [audit])
        return updated

    def upload(self, identity: Identity, student_id: str, slot: str, proof_url: Optional[str]) -> Student:
        return self._run(identity, student_id, slot, "upload", proof_url)

    def review(self, identity: Identity, student_id: str, slot: str, decision: str) -> Student:
        return self._run(identity, student_id, slot, "review", decision)

    def override(self, identity: Identity, student_id: str, slot: str, status: str) -> Student:
        return self._run(identity, student_id, slot, "override", status)

    def prepare_changes(self, identity: Identity, student: Student, incoming: dict) -> tuple[dict, list]:
        """
        Run every changed slot through the machine without writing.
        The caller persists the returned installments, then passes the audits to record().
        """
        final = normalize_installments(student.installments)
        audits = []
        for slot, action, argument in plan_installment_changes(student, incoming):
            installments, audit = self._transition(student, identity, slot, action, argument)
            # each step touches only its own slot
            final[slot] = installments[slot]
            if audit is not None:
                audits.append(audit)
        return final, audits
