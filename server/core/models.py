from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Text
from sqlmodel import Field, SQLModel

INSTALLMENT_SLOTS = ("inst1", "inst2", "inst3")


def utcnow() -> datetime:
    """Naive UTC timestamp. Stored columns are plain DateTime (no tz) in every backend."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    SALES = "SALES"
    STUDENT = "STUDENT"


class PaymentPlan(str, Enum):
    FULL = "FULL"
    HALF = "HALF"


class InstallmentStatus(str, Enum):
    UNPAID = "UNPAID"
    PENDING = "PENDING"  # proof uploaded, waiting for review
    PAID = "PAID"
    REJECTED = "REJECTED"


class LeadStatus(str, Enum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    INTERESTED = "INTERESTED"
    NEGOTIATION = "NEGOTIATION"
    CONVERTED = "CONVERTED"
    LOST = "LOST"


class MaterialType(str, Enum):
    PDF = "PDF"
    IMAGE = "IMAGE"


class AssignmentStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


class SubmissionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    SUBMITTED = "SUBMITTED"
    GRADED = "GRADED"
    LATE = "LATE"
    MISSING = "MISSING"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"
    ESSAY = "ESSAY"


def empty_installments() -> dict[str, dict[str, Any]]:
    return {
        slot: {"status": InstallmentStatus.UNPAID.value, "proof_url": None, "paid_at": None}
        for slot in INSTALLMENT_SLOTS
    }


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    username: str = Field(index=True, description="login name")
    display_name: Optional[str] = None
    role: UserRole
    student_id: Optional[str] = Field(default=None, index=True, description="set for STUDENT accounts")
    password_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class AuthSession(SQLModel, table=True):
    __tablename__ = "sessions"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    token: str = Field(index=True, unique=True)
    role: UserRole
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    expires_at: datetime = Field(sa_type=DateTime)


class Student(SQLModel, table=True):
    __tablename__ = "students"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    name: str
    phone: str = Field(index=True)
    plan: PaymentPlan = Field(default=PaymentPlan.HALF)
    installments: dict = Field(default_factory=empty_installments, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Lead(SQLModel, table=True):
    __tablename__ = "leads"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    name: str
    phone: str = Field(index=True)
    status: LeadStatus = Field(default=LeadStatus.NEW)
    source: str = "Direct"
    notes: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    last_contacted_at: Optional[datetime] = Field(default=None, sa_type=DateTime)


class CourseMaterial(SQLModel, table=True):
    __tablename__ = "materials"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    title: str
    description: str = ""
    file_url: str = Field(sa_column=Column(Text))  # base64 data URL
    file_type: MaterialType = Field(default=MaterialType.PDF)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Lesson(SQLModel, table=True):
    __tablename__ = "lessons"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    title: str
    description: str = ""
    content: str = Field(default="", sa_column=Column(Text))
    video_url: Optional[str] = None
    module_id: str = Field(index=True)
    order: int = 1
    duration: Optional[int] = Field(default=None, description="minutes")
    prerequisites: list = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Assignment(SQLModel, table=True):
    __tablename__ = "assignments"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    title: str
    description: str = ""
    due_date: datetime = Field(sa_type=DateTime)
    status: AssignmentStatus = Field(default=AssignmentStatus.PUBLISHED)
    max_score: int = 100
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Submission(SQLModel, table=True):
    __tablename__ = "submissions"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    assignment_id: str = Field(index=True)
    student_id: str = Field(index=True)
    status: SubmissionStatus = Field(default=SubmissionStatus.SUBMITTED)
    file_url: Optional[str] = Field(default=None, sa_column=Column(Text))
    submitted_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    graded_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    score: Optional[float] = None
    feedback: Optional[str] = None
    is_late: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Quiz(SQLModel, table=True):
    __tablename__ = "quizzes"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    title: str
    description: str = ""
    questions: list = Field(default_factory=list, sa_column=Column(JSON))
    time_limit: Optional[int] = Field(default=None, description="minutes")
    max_attempts: Optional[int] = None
    passing_score: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class QuizAttempt(SQLModel, table=True):
    __tablename__ = "attempts"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    quiz_id: str = Field(index=True)
    student_id: str = Field(index=True)
    answers: dict = Field(default_factory=dict, sa_column=Column(JSON))
    score: float = 0
    max_score: float = 0
    percentage: float = 0
    is_passed: bool = False
    started_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    submitted_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    time_spent: int = Field(default=0, description="seconds")


class StudentProgress(SQLModel, table=True):
    __tablename__ = "progress"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    student_id: str = Field(index=True)
    lesson_id: str = Field(index=True)
    completed: bool = False
    progress: int = Field(default=0, description="0-100")
    time_spent: int = Field(default=0, description="seconds")
    last_accessed_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)


class Grade(SQLModel, table=True):
    __tablename__ = "grades"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    student_id: str = Field(index=True)
    assignment_id: Optional[str] = Field(default=None, index=True)
    quiz_id: Optional[str] = Field(default=None, index=True)
    score: float
    max_score: float
    percentage: float
    feedback: Optional[str] = None
    graded_by: Optional[str] = None
    graded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class AuditEntry(SQLModel, table=True):
    """Who changed what, for payment reviews and administrative overrides."""

    __tablename__ = "audit"

    id: str = Field(default_factory=new_id, primary_key=True, index=True)
    actor_id: str
    actor_role: UserRole
    action: str
    entity: str
    entity_id: str = Field(index=True)
    detail: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


COLLECTIONS: dict[str, type[SQLModel]] = {
    "users": User,
    "sessions": AuthSession,
    "students": Student,
    "leads": Lead,
    "materials": CourseMaterial,
    "lessons": Lesson,
    "assignments": Assignment,
    "submissions": Submission,
    "quizzes": Quiz,
    "attempts": QuizAttempt,
    "progress": StudentProgress,
    "grades": Grade,
    "audit": AuditEntry,
}
