import pytest

from core.finance import (
    COURSE_COST,
    calculate_financials,
    percentage,
    summarize_dashboard,
    summarize_financials,
    summarize_leads,
)
from core.models import Lead, LeadStatus, PaymentPlan, Student, empty_installments


def student(plan=PaymentPlan.HALF, **slots) -> Student:
    installments = empty_installments()
    for slot, status in slots.items():
        installments[slot]["status"] = status
    return Student(name="Kid", phone="0100", plan=plan, installments=installments)


@pytest.mark.parametrize("slots", [{}, {"inst1": "PENDING"}, {"inst1": "REJECTED", "inst2": "UNPAID"}])
def test_full_plan_is_always_paid(slots):
    figures = calculate_financials(student(PaymentPlan.FULL, **slots))
    assert (figures.paid, figures.remaining, figures.is_fully_paid) == (6000, 0, True)


@pytest.mark.parametrize(
    "slots,paid,remaining,fully_paid",
    [
        ({}, 3000, 3000, False),
        ({"inst1": "PAID", "inst2": "PAID"}, 5000, 1000, False),
        ({"inst1": "PAID", "inst2": "PAID", "inst3": "PAID"}, 6000, 0, True),
        ({"inst1": "REJECTED", "inst2": "PENDING"}, 3000, 3000, False),
    ],
)
def test_half_plan(slots, paid, remaining, fully_paid):
    figures = calculate_financials(student(**slots))
    assert (figures.paid, figures.remaining, figures.is_fully_paid) == (paid, remaining, fully_paid)


def test_pending_is_informational():
    figures = calculate_financials(student(inst1="PENDING", inst3="PENDING"))
    assert figures.pending == 2000
    assert figures.paid == 3000


def test_percentage_rounds_half_up():
    assert percentage(1, 8) == 13  # 12.5
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67
    assert percentage(5, 0) == 0


def test_dashboard_roll_up():
    students = [
        student(PaymentPlan.FULL),
        student(inst1="PAID", inst2="PENDING"),
        student(inst1="PAID", inst2="PAID", inst3="PAID"),
    ]
    summary = summarize_financials(students)
    assert summary == {
        "total_expected": 3 * COURSE_COST,
        "total_collected": 6000 + 4000 + 6000,
        "total_remaining": 2000,
        "full_paid_count": 2,
        "pending_reviews": 1,
        "total_students": 3,
    }


def test_lead_stats():
    leads = [
        Lead(name="a", phone="1", status=LeadStatus.NEW),
        Lead(name="b", phone="2", status=LeadStatus.INTERESTED),
        Lead(name="c", phone="3", status=LeadStatus.CONVERTED),
    ]
    assert summarize_leads(leads) == {
        "total_leads": 3,
        "new_leads": 1,
        "interested": 1,
        "converted": 1,
        "conversion_rate": 33,
    }
    assert summarize_leads([])["conversion_rate"] == 0


def test_dashboard_is_idempotent():
    students = [student(inst1="PAID"), student(PaymentPlan.FULL)]
    leads = [Lead(name="a", phone="1", status=LeadStatus.CONVERTED)]
    assert summarize_dashboard(students, leads) == summarize_dashboard(students, leads)
