"""
Financial aggregation
- Per-student paid / pending / remaining amounts
- Academy-wide dashboard roll-up (financial + CRM)
All amounts are integers in the academy's currency unit.
"""
import math
from dataclasses import asdict, dataclass
from typing import Iterable

from core.installments import normalize_installments
from core.models import INSTALLMENT_SLOTS, InstallmentStatus, Lead, LeadStatus, PaymentPlan, Student

COURSE_COST = 6000
HALF_PAYMENT_INITIAL = 3000
INSTALLMENT_VALUE = 1000


def percentage(part: float, whole: float) -> int:
    """Whole-number percentage, halves rounded up; 0 when whole is 0."""
    if not whole:
        return 0
    return int(math.floor(part / whole * 100 + 0.5))


@dataclass(frozen=True)
class Financials:
    paid: int
    pending: int
    remaining: int
    is_fully_paid: bool

    def to_dict(self) -> dict:
        return asdict(self)


def _count(student: Student, status: InstallmentStatus) -> int:
    installments = normalize_installments(student.installments)
    return sum(1 for slot in INSTALLMENT_SLOTS if installments[slot]["status"] == status.value)


def calculate_financials(student: Student) -> Financials:
    if PaymentPlan(student.plan) == PaymentPlan.FULL:
        # slot contents are irrelevant under the flat fee
        return Financials(paid=COURSE_COST, pending=0, remaining=0, is_fully_paid=True)

    paid = HALF_PAYMENT_INITIAL + INSTALLMENT_VALUE * _count(student, InstallmentStatus.PAID)
    pending = INSTALLMENT_VALUE * _count(student, InstallmentStatus.PENDING)
    remaining = COURSE_COST - paid
    return Financials(paid=paid, pending=pending, remaining=remaining, is_fully_paid=remaining == 0)


def summarize_financials(students: Iterable[Student]) -> dict:
    students = list(students)
    total_collected = 0
    total_remaining = 0
    full_paid = 0
    pending_reviews = 0
    for student in students:
        figures = calculate_financials(student)
        total_collected += figures.paid
        total_remaining += figures.remaining
        full_paid += 1 if figures.is_fully_paid else 0
        # review workload counts PENDING slots whatever the plan
        pending_reviews += _count(student, InstallmentStatus.PENDING)
    return {
        "total_expected": len(students) * COURSE_COST,
        "total_collected": total_collected,
        "total_remaining": total_remaining,
        "full_paid_count": full_paid,
        "pending_reviews": pending_reviews,
        "total_students": len(students),
    }


def summarize_leads(leads: Iterable[Lead]) -> dict:
    leads = list(leads)
    statuses = [LeadStatus(lead.status) for lead in leads]
    converted = statuses.count(LeadStatus.CONVERTED)
    return {
        "total_leads": len(leads),
        "new_leads": statuses.count(LeadStatus.NEW),
        "interested": statuses.count(LeadStatus.INTERESTED),
        "converted": converted,
        "conversion_rate": percentage(converted, len(leads)),
    }


def summarize_dashboard(students: Iterable[Student], leads: Iterable[Lead]) -> dict:
    return {"financial": summarize_financials(students), "crm": summarize_leads(leads)}
