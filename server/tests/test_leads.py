import pytest

from core.errors import ConflictError, NotFoundError, ValidationError
from core.leads import ConversionOutcome, create_lead, delete_lead, update_lead
from core.models import INSTALLMENT_SLOTS, LeadStatus, PaymentPlan, Student


def test_create_lead_defaults(store):
    lead = create_lead(store, "Nour", "01223344556")
    assert lead.status == LeadStatus.NEW
    assert lead.source == "Direct"
    assert lead.notes == ""
    with pytest.raises(ValidationError):
        create_lead(store, "Nour", "")


def test_status_change_stamps_last_contact(store):
    lead = create_lead(store, "Nour", "0122")
    updated, student, outcome = update_lead(store, lead.id, {"status": "CONTACTED"})
    assert outcome == ConversionOutcome.UPDATED
    assert student is None
    assert updated.last_contacted_at is not None

    notes_only, _, _ = update_lead(store, lead.id, {"notes": "called twice"})
    assert notes_only.notes == "called twice"
    assert notes_only.status == LeadStatus.CONTACTED


def test_conversion_links_existing_student(store):
    store.create("students", Student(name="Kid", phone="0155", plan=PaymentPlan.FULL))
    lead = create_lead(store, "Kid's parent", "0155")

    updated, student, outcome = update_lead(store, lead.id, {"status": "CONVERTED"})
    assert outcome == ConversionOutcome.LINKED
    assert updated.status == LeadStatus.CONVERTED
    assert len(store.list("students", phone="0155")) == 1
    assert student.plan == PaymentPlan.FULL


def test_confirmed_conversion_creates_one_student(store):
    lead = create_lead(store, "Hany", "0177")
    updated, student, outcome = update_lead(store, lead.id, {"status": "CONVERTED"}, confirm_conversion=True)

    assert outcome == ConversionOutcome.CREATED
    assert updated.status == LeadStatus.CONVERTED
    students = store.list("students", phone="0177")
    assert len(students) == 1
    assert students[0].plan == PaymentPlan.HALF
    assert all(students[0].installments[slot]["status"] == "UNPAID" for slot in INSTALLMENT_SLOTS)
    assert student.id == students[0].id


def test_declined_conversion_writes_nothing(store):
    lead = create_lead(store, "Hany", "0177")
    update_lead(store, lead.id, {"status": "NEGOTIATION"})

    returned, student, outcome = update_lead(store, lead.id, {"status": "CONVERTED", "notes": "maybe"})
    assert outcome == ConversionOutcome.DECLINED
    assert student is None
    assert returned.status == LeadStatus.NEGOTIATION
    stored = store.get("leads", lead.id)
    assert stored.status == LeadStatus.NEGOTIATION
    assert stored.notes == ""
    assert store.list("students") == []


def test_converted_lead_is_terminal(store):
    lead = create_lead(store, "Hany", "0177")
    update_lead(store, lead.id, {"status": "CONVERTED"}, confirm_conversion=True)
    with pytest.raises(ConflictError):
        update_lead(store, lead.id, {"status": "LOST"})
    with pytest.raises(ConflictError):
        update_lead(store, lead.id, {"notes": "edit"})


def test_missing_lead(store):
    with pytest.raises(NotFoundError):
        update_lead(store, "00000000-0000-4000-8000-000000000000", {"status": "LOST"})
    with pytest.raises(NotFoundError):
        delete_lead(store, "00000000-0000-4000-8000-000000000000")
