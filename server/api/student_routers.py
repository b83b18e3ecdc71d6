"""
Student endpoints
- ADMIN/TEACHER: full CRUD
- STUDENT: own record only, and only its installments
- Installment transitions: proof upload, review, administrative override
"""
import logging

from fastapi import APIRouter, Depends, status

from api.schemas import (
    FinancialsRead,
    OverrideRequest,
    ProofUpload,
    ReviewDecision,
    StudentCreate,
    StudentRead,
    StudentUpdate,
    wire,
    wire_all,
)
from core.auth import get_current_user, get_settings, get_store, require_admin, require_staff
from core.config import AppSettings
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.finance import calculate_financials
from core.installments import InstallmentService
from core.models import PaymentPlan, Student, UserRole, empty_installments
from core.permissions import STAFF_ROLES, is_one_of
from core.sessions import Identity
from core.store import EntityStore
from core.validation import require_text, require_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["students"])

STUDENT_EDITABLE = {"installments"}


def get_installment_service(
    store: EntityStore = Depends(get_store),
    settings: AppSettings = Depends(get_settings),
) -> InstallmentService:
    return InstallmentService(store, settings)


def _is_owner(identity: Identity, student_id: str) -> bool:
    return identity.role == UserRole.STUDENT and identity.student_id == student_id


def _ensure_can_read(identity: Identity, student_id: str) -> None:
    if is_one_of(identity.role, STAFF_ROLES) or _is_owner(identity, student_id):
        return
    raise AuthorizationError()


def _load(store: EntityStore, student_id: str) -> Student:
    student = store.get("students", student_id)
    if student is None:
        raise NotFoundError("Student not found")
    return student


@router.get("")
def list_students(
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    if is_one_of(identity.role, STAFF_ROLES):
        return {"students": wire_all(StudentRead, store.list("students"))}
    if identity.role == UserRole.STUDENT:
        own = store.get("students", identity.student_id) if identity.student_id else None
        return {"students": wire_all(StudentRead, [own] if own else [])}
    raise AuthorizationError()


@router.get("/{student_id}")
def get_student(
    student_id: str,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    _ensure_can_read(identity, student_id)
    return {"student": wire(StudentRead, _load(store, student_id))}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_student(
    payload: StudentCreate,
    identity: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    if not payload.name or not payload.phone:
        raise ValidationError("Name and phone are required")
    student = store.create(
        "students",
        Student(
            name=require_text(payload.name, "Name"),
            phone=require_text(payload.phone, "Phone"),
            plan=payload.plan or PaymentPlan.HALF,
            installments=empty_installments(),
        ),
    )
    logger.info(f"➕ Student created - student_id: {student.id}, by: {identity.username}")
    return {"student": wire(StudentRead, student)}


@router.put("")
def update_student(
    payload: StudentUpdate,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
    service: InstallmentService = Depends(get_installment_service),
) -> dict:
    is_staff = is_one_of(identity.role, STAFF_ROLES)
    if not is_staff and identity.role != UserRole.STUDENT:
        raise AuthorizationError()
    student_id = require_uuid(payload.id, "student")

    provided = payload.model_fields_set - {"id"}
    if not is_staff:
        if not _is_owner(identity, student_id):
            raise AuthorizationError()
        if provided - STUDENT_EDITABLE:
            raise AuthorizationError("Students may only update their installments")

    student = _load(store, student_id)
    changes = {}
    if "name" in provided:
        changes["name"] = require_text(payload.name, "Name")
    if "phone" in provided:
        changes["phone"] = require_text(payload.phone, "Phone")
    if "plan" in provided and payload.plan is not None:
        changes["plan"] = payload.plan

    audits = []
    if "installments" in provided and payload.installments is not None:
        # any illegal slot change raises here, before anything is written
        changes["installments"], audits = service.prepare_changes(identity, student, payload.installments)

    updated = store.update("students", student_id, changes) if changes else student
    if updated is None:
        raise NotFoundError("Student not found")
    service.record(identity, audits)
    return {"student": wire(StudentRead, updated)}


@router.delete("/{student_id}")
def delete_student(
    student_id: str,
    identity: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    require_uuid(student_id, "student")
    if not store.delete("students", student_id):
        raise NotFoundError("Student not found")
    logger.info(f"🗑️ Student deleted - student_id: {student_id}, by: {identity.username}")
    return {"message": "Student deleted successfully"}


# ==================== Installments ====================

@router.post("/{student_id}/installments/{slot}/proof")
def upload_proof(
    student_id: str,
    slot: str,
    payload: ProofUpload,
    identity: Identity = Depends(get_current_user),
    service: InstallmentService = Depends(get_installment_service),
) -> dict:
    student = service.upload(identity, student_id, slot, payload.proof_url)
    return {"student": wire(StudentRead, student)}


@router.post("/{student_id}/installments/{slot}/review")
def review_installment(
    student_id: str,
    slot: str,
    payload: ReviewDecision,
    identity: Identity = Depends(require_staff()),
    service: InstallmentService = Depends(get_installment_service),
) -> dict:
    student = service.review(identity, student_id, slot, payload.decision)
    return {"student": wire(StudentRead, student)}


@router.post("/{student_id}/installments/{slot}/override")
def override_installment(
    student_id: str,
    slot: str,
    payload: OverrideRequest,
    identity: Identity = Depends(require_admin()),
    service: InstallmentService = Depends(get_installment_service),
) -> dict:
    student = service.override(identity, student_id, slot, payload.status)
    return {"student": wire(StudentRead, student)}


@router.get("/{student_id}/financials")
def student_financials(
    student_id: str,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    _ensure_can_read(identity, student_id)
    figures = calculate_financials(_load(store, student_id))
    return {"financials": wire(FinancialsRead, figures)}
