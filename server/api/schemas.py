"""
API schemas
- Requests accept camelCase (and snake_case) keys
- Responses are rendered in camelCase through wire()
"""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.installments import normalize_installments
from core.models import (
    AssignmentStatus,
    InstallmentStatus,
    LeadStatus,
    MaterialType,
    PaymentPlan,
    QuestionType,
    SubmissionStatus,
    UserRole,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def wire(schema: type[BaseModel], record: Any) -> dict:
    """Render a record (SQLModel row, dataclass-like object or dict) as a camelCase JSON dict."""
    if isinstance(record, dict):
        model = schema.model_validate(record)
    else:
        model = schema.model_validate(record, from_attributes=True)
    return model.model_dump(by_alias=True, mode="json")


def wire_all(schema: type[BaseModel], records) -> list[dict]:
    return [wire(schema, record) for record in records]


# ==================== Auth / users ====================

class LoginRequest(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UserRead(CamelModel):
    id: str
    username: str
    display_name: Optional[str] = None
    role: UserRole
    student_id: Optional[str] = None


# ==================== Students ====================

class InstallmentRead(CamelModel):
    status: InstallmentStatus
    proof_url: Optional[str] = None
    paid_at: Optional[str] = None


class StudentRead(CamelModel):
    id: str
    name: str
    phone: str
    plan: PaymentPlan
    installments: dict[str, InstallmentRead]
    created_at: datetime

    @field_validator("installments", mode="before")
    @classmethod
    def fill_slots(cls, v):
        return normalize_installments(v)


class StudentCreate(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    plan: Optional[PaymentPlan] = None


class StudentUpdate(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    plan: Optional[PaymentPlan] = None
    installments: Optional[dict[str, dict[str, Any]]] = None


class ProofUpload(CamelModel):
    proof_url: Optional[str] = None


class ReviewDecision(CamelModel):
    decision: Literal["accept", "reject"]


class OverrideRequest(CamelModel):
    status: Literal["PAID", "UNPAID"]


class FinancialsRead(CamelModel):
    paid: int
    pending: int
    remaining: int
    is_fully_paid: bool


class AuditRead(CamelModel):
    id: str
    actor_id: str
    actor_role: UserRole
    action: str
    entity: str
    entity_id: str
    detail: dict[str, Any] = {}
    created_at: datetime


# ==================== Leads / dashboard ====================

class LeadRead(CamelModel):
    id: str
    name: str
    phone: str
    status: LeadStatus
    source: str
    notes: str
    created_at: datetime
    last_contacted_at: Optional[datetime] = None


class LeadCreate(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None


class LeadUpdate(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[LeadStatus] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    confirm_conversion: bool = False


class FinancialSummary(CamelModel):
    total_expected: int
    total_collected: int
    total_remaining: int
    full_paid_count: int
    pending_reviews: int
    total_students: int


class CrmSummary(CamelModel):
    total_leads: int
    new_leads: int
    interested: int
    converted: int
    conversion_rate: int


class DashboardRead(CamelModel):
    financial: FinancialSummary
    crm: CrmSummary


# ==================== Classroom ====================

class MaterialRead(CamelModel):
    id: str
    title: str
    description: str
    file_url: str
    file_type: MaterialType
    created_at: datetime
    updated_at: datetime


class MaterialCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    file_url: Optional[str] = None
    file_type: Optional[MaterialType] = None


class MaterialUpdate(MaterialCreate):
    id: Optional[str] = None


class LessonRead(CamelModel):
    id: str
    title: str
    description: str
    content: str
    video_url: Optional[str] = None
    module_id: str
    order: int
    duration: Optional[int] = None
    prerequisites: list[str] = []
    created_at: datetime
    updated_at: datetime


class LessonCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None
    module_id: Optional[str] = None
    order: Optional[int] = None
    duration: Optional[int] = None
    prerequisites: Optional[list[str]] = None


class LessonUpdate(LessonCreate):
    id: Optional[str] = None


class AssignmentRead(CamelModel):
    id: str
    title: str
    description: str
    due_date: datetime
    status: AssignmentStatus
    max_score: int
    created_at: datetime
    updated_at: datetime


class AssignmentCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[AssignmentStatus] = None
    max_score: Optional[int] = Field(default=None, gt=0)


class AssignmentUpdate(AssignmentCreate):
    """Either an assignment edit (`id`) or a submission grading (`submissionId`)."""

    id: Optional[str] = None
    submission_id: Optional[str] = None
    score: Optional[float] = None
    feedback: Optional[str] = None


class AssignmentSubmit(CamelModel):
    assignment_id: Optional[str] = None
    file_url: Optional[str] = None


class SubmissionRead(CamelModel):
    id: str
    assignment_id: str
    student_id: str
    status: SubmissionStatus
    file_url: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None
    score: Optional[float] = None
    feedback: Optional[str] = None
    is_late: bool
    created_at: datetime


class Question(CamelModel):
    id: Optional[str] = None
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    question: str
    options: list[str] = []
    correct_answer: Any = None
    points: int = Field(default=1, ge=0)
    explanation: Optional[str] = None


class StudentQuestion(CamelModel):
    id: Optional[str] = None
    type: QuestionType
    question: str
    options: list[str] = []
    points: int = 1


class QuizRead(CamelModel):
    id: str
    title: str
    description: str
    questions: list[Question]
    time_limit: Optional[int] = None
    max_attempts: Optional[int] = None
    passing_score: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class StudentQuizRead(QuizRead):
    questions: list[StudentQuestion]


class QuizCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: Optional[list[Question]] = None
    time_limit: Optional[int] = None
    max_attempts: Optional[int] = Field(default=None, ge=0)
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)


class QuizUpdate(QuizCreate):
    id: Optional[str] = None


class QuizSubmit(CamelModel):
    quiz_id: Optional[str] = None
    answers: Optional[dict[str, Any]] = None
    time_spent: Optional[int] = None


class AttemptRead(CamelModel):
    id: str
    quiz_id: str
    student_id: str
    answers: dict[str, Any]
    score: float
    max_score: float
    percentage: float
    is_passed: bool
    started_at: datetime
    submitted_at: Optional[datetime] = None
    time_spent: int


class ProgressRead(CamelModel):
    id: str
    student_id: str
    lesson_id: str
    completed: bool
    progress: int
    time_spent: int
    last_accessed_at: datetime
    completed_at: Optional[datetime] = None


class ProgressUpdate(CamelModel):
    lesson_id: Optional[str] = None
    completed: Optional[bool] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    time_spent: Optional[int] = Field(default=None, ge=0)


class ProgressSummary(CamelModel):
    total_lessons: int
    completed_lessons: int
    completion_percentage: int
    total_time_spent: int
    last_activity_at: datetime


class GradeRead(CamelModel):
    id: str
    student_id: str
    assignment_id: Optional[str] = None
    quiz_id: Optional[str] = None
    score: float
    max_score: float
    percentage: float
    feedback: Optional[str] = None
    graded_by: Optional[str] = None
    graded_at: datetime
    created_at: datetime


class GradeCreate(CamelModel):
    student_id: Optional[str] = None
    assignment_id: Optional[str] = None
    quiz_id: Optional[str] = None
    score: Optional[float] = None
    max_score: Optional[float] = None
    feedback: Optional[str] = None


class GradeUpdate(CamelModel):
    id: Optional[str] = None
    score: Optional[float] = None
    max_score: Optional[float] = None
    feedback: Optional[str] = None
