"""
Classroom endpoints
- Materials, lessons, assignments, quizzes: readable by any signed-in user,
  written by ADMIN/TEACHER
- Progress: per caller
- Grades: students read their own, staff read and write all
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status

from api.schemas import (
    AssignmentCreate,
    AssignmentRead,
    AssignmentSubmit,
    AssignmentUpdate,
    AttemptRead,
    GradeCreate,
    GradeRead,
    GradeUpdate,
    LessonCreate,
    LessonRead,
    LessonUpdate,
    MaterialCreate,
    MaterialRead,
    MaterialUpdate,
    ProgressRead,
    ProgressSummary,
    ProgressUpdate,
    Question,
    QuizCreate,
    QuizRead,
    QuizSubmit,
    QuizUpdate,
    StudentQuizRead,
    SubmissionRead,
    wire,
    wire_all,
)
from core.auth import get_current_user, get_settings, get_store, require_staff
from core.classroom import (
    create_grade,
    grade_submission,
    learner_id,
    progress_summary,
    record_progress,
    strip_answers,
    submit_assignment,
    submit_quiz,
    update_grade,
)
from core.config import AppSettings
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.models import (
    Assignment,
    AssignmentStatus,
    CourseMaterial,
    Lesson,
    MaterialType,
    Quiz,
    UserRole,
    new_id,
    utcnow,
)
from core.sessions import Identity
from core.store import EntityStore
from core.validation import parse_datetime, require_text, require_uuid, validate_data_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["classroom"])

MATERIAL_MIME_TYPES = {
    MaterialType.PDF: ("application/pdf",),
    MaterialType.IMAGE: ("image/",),
}


def _get_or_404(store: EntityStore, collection: str, record_id: str, label: str):
    record = store.get(collection, record_id)
    if record is None:
        raise NotFoundError(f"{label} not found")
    return record


def _update_or_404(store: EntityStore, collection: str, record_id: str, changes: dict, label: str):
    changes["updated_at"] = utcnow()
    updated = store.update(collection, record_id, changes)
    if updated is None:
        raise NotFoundError(f"{label} not found")
    return updated


def _delete_or_404(store: EntityStore, collection: str, record_id: str, label: str) -> dict:
    require_uuid(record_id, label.lower())
    if not store.delete(collection, record_id):
        raise NotFoundError(f"{label} not found")
    logger.info(f"🗑️ {label} deleted - id: {record_id}")
    return {"message": f"{label} deleted successfully"}


def _provided(payload, exclude: set[str]) -> dict[str, Any]:
    return {name: getattr(payload, name) for name in payload.model_fields_set - exclude}


# ==================== Materials ====================

def _check_material_file(file_url: str, file_type: MaterialType, settings: AppSettings) -> str:
    return validate_data_url(file_url, "File", settings.max_proof_bytes, MATERIAL_MIME_TYPES[file_type])


@router.get("/materials")
def list_materials(
    _: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"materials": wire_all(MaterialRead, store.list("materials"))}


@router.get("/materials/{material_id}")
def get_material(
    material_id: str,
    _: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"material": wire(MaterialRead, _get_or_404(store, "materials", material_id, "Material"))}


@router.post("/materials", status_code=status.HTTP_201_CREATED)
def create_material(
    payload: MaterialCreate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
    settings: AppSettings = Depends(get_settings),
) -> dict:
    if not payload.title or not payload.file_url:
        raise ValidationError("Title and file URL are required")
    file_type = payload.file_type or MaterialType.PDF
    material = store.create(
        "materials",
        CourseMaterial(
            title=require_text(payload.title, "Title"),
            description=payload.description or "",
            file_url=_check_material_file(payload.file_url, file_type, settings),
            file_type=file_type,
        ),
    )
    return {"material": wire(MaterialRead, material)}


@router.put("/materials")
def update_material(
    payload: MaterialUpdate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
    settings: AppSettings = Depends(get_settings),
) -> dict:
    material_id = require_uuid(payload.id, "material")
    current = _get_or_404(store, "materials", material_id, "Material")
    changes = _provided(payload, {"id"})
    if "title" in changes:
        changes["title"] = require_text(changes["title"], "Title")
    if changes.get("file_type") is None:
        changes.pop("file_type", None)
    if "file_url" in changes:
        file_type = changes.get("file_type") or current.file_type
        changes["file_url"] = _check_material_file(changes["file_url"], MaterialType(file_type), settings)
    if "description" in changes:
        changes["description"] = changes["description"] or ""
    return {"material": wire(MaterialRead, _update_or_404(store, "materials", material_id, changes, "Material"))}


@router.delete("/materials/{material_id}")
def delete_material(
    material_id: str,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    return _delete_or_404(store, "materials", material_id, "Material")


# ==================== Lessons ====================

@router.get("/lessons")
def list_lessons(
    _: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    lessons = sorted(store.list("lessons"), key=lambda lesson: (lesson.module_id, lesson.order))
    return {"lessons": wire_all(LessonRead, lessons)}


@router.get("/lessons/{lesson_id}")
def get_lesson(
    lesson_id: str,
    _: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"lesson": wire(LessonRead, _get_or_404(store, "lessons", lesson_id, "Lesson"))}


@router.post("/lessons", status_code=status.HTTP_201_CREATED)
def create_lesson(
    payload: LessonCreate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    if not payload.title or not payload.module_id:
        raise ValidationError("Title and module ID are required")
    order = payload.order or len(store.list("lessons", module_id=payload.module_id)) + 1
    lesson = store.create(
        "lessons",
        Lesson(
            title=require_text(payload.title, "Title"),
            description=payload.description or "",
            content=payload.content or "",
            video_url=payload.video_url or None,
            module_id=payload.module_id,
            order=order,
            duration=payload.duration or None,
            prerequisites=payload.prerequisites or [],
        ),
    )
    return {"lesson": wire(LessonRead, lesson)}


@router.put("/lessons")
def update_lesson(
    payload: LessonUpdate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    lesson_id = require_uuid(payload.id, "lesson")
    changes = _provided(payload, {"id"})
    for name in ("title", "module_id"):
        if name in changes:
            changes[name] = require_text(changes[name], name.replace("_", " ").capitalize())
    for name in ("description", "content"):
        if name in changes:
            changes[name] = changes[name] or ""
    if "prerequisites" in changes:
        changes["prerequisites"] = changes["prerequisites"] or []
    if changes.get("order") is None:
        changes.pop("order", None)
    return {"lesson": wire(LessonRead, _update_or_404(store, "lessons", lesson_id, changes, "Lesson"))}


@router.delete("/lessons/{lesson_id}")
def delete_lesson(
    lesson_id: str,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    return _delete_or_404(store, "lessons", lesson_id, "Lesson")


# ==================== Assignments ====================

@router.get("/assignments")
def list_assignments(
    _: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"assignments": wire_all(AssignmentRead, store.list("assignments"))}


@router.get("/assignments/{assignment_id}")
def get_assignment(
    assignment_id: str,
    _: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"assignment": wire(AssignmentRead, _get_or_404(store, "assignments", assignment_id, "Assignment"))}


@router.get("/assignments/{assignment_id}/submissions")
def list_submissions(
    assignment_id: str,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    filters = {"assignment_id": assignment_id}
    if identity.role == UserRole.STUDENT:
        filters["student_id"] = learner_id(identity)
    return {"submissions": wire_all(SubmissionRead, store.list("submissions", **filters))}


@router.post("/assignments", status_code=status.HTTP_201_CREATED)
def create_assignment(
    payload: AssignmentCreate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    if not payload.title or not payload.due_date:
        raise ValidationError("Title and due date are required")
    assignment = store.create(
        "assignments",
        Assignment(
            title=require_text(payload.title, "Title"),
            description=payload.description or "",
            due_date=parse_datetime(payload.due_date, "Due date"),
            status=payload.status or AssignmentStatus.PUBLISHED,
            max_score=payload.max_score or 100,
        ),
    )
    return {"assignment": wire(AssignmentRead, assignment)}


@router.post("/assignments/submit", status_code=status.HTTP_201_CREATED)
def submit(
    payload: AssignmentSubmit,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    if identity.role != UserRole.STUDENT:
        raise AuthorizationError()
    if not payload.assignment_id or not payload.file_url:
        raise ValidationError("Assignment ID and file URL are required")
    submission = submit_assignment(store, identity, payload.assignment_id, payload.file_url)
    return {"submission": wire(SubmissionRead, submission)}


@router.put("/assignments")
def update_assignment(
    payload: AssignmentUpdate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    if payload.submission_id:
        submission = grade_submission(store, payload.submission_id, payload.score, payload.feedback)
        return {"submission": wire(SubmissionRead, submission)}

    assignment_id = require_uuid(payload.id, "assignment")
    changes = _provided(payload, {"id", "submission_id", "score", "feedback"})
    if "title" in changes:
        changes["title"] = require_text(changes["title"], "Title")
    if "due_date" in changes:
        changes["due_date"] = parse_datetime(changes["due_date"], "Due date")
    if "description" in changes:
        changes["description"] = changes["description"] or ""
    for name in ("status", "max_score"):
        if changes.get(name) is None:
            changes.pop(name, None)
    updated = _update_or_404(store, "assignments", assignment_id, changes, "Assignment")
    return {"assignment": wire(AssignmentRead, updated)}


@router.delete("/assignments/{assignment_id}")
def delete_assignment(
    assignment_id: str,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    # submissions go with it (store cascade)
    return _delete_or_404(store, "assignments", assignment_id, "Assignment")


# ==================== Quizzes ====================

def _quiz_questions(questions: list[Question]) -> list[dict]:
    result = []
    for question in questions:
        data = question.model_dump(mode="json")
        data["id"] = data.get("id") or new_id()
        data["points"] = data.get("points") or 1
        result.append(data)
    return result


def _render_quiz(quiz: Quiz, identity: Identity) -> dict:
    if identity.role == UserRole.STUDENT:
        data = quiz.model_dump()
        data["questions"] = strip_answers(quiz.questions)
        return wire(StudentQuizRead, data)
    return wire(QuizRead, quiz)


@router.get("/quizzes")
def list_quizzes(
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"quizzes": [_render_quiz(quiz, identity) for quiz in store.list("quizzes")]}


@router.get("/quizzes/{quiz_id}")
def get_quiz(
    quiz_id: str,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"quiz": _render_quiz(_get_or_404(store, "quizzes", quiz_id, "Quiz"), identity)}


@router.get("/quizzes/{quiz_id}/attempts")
def list_attempts(
    quiz_id: str,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    filters = {"quiz_id": quiz_id}
    if identity.role == UserRole.STUDENT:
        filters["student_id"] = learner_id(identity)
    return {"attempts": wire_all(AttemptRead, store.list("attempts", **filters))}


@router.post("/quizzes", status_code=status.HTTP_201_CREATED)
def create_quiz(
    payload: QuizCreate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    if not payload.title or payload.questions is None:
        raise ValidationError("Title and questions array are required")
    quiz = store.create(
        "quizzes",
        Quiz(
            title=require_text(payload.title, "Title"),
            description=payload.description or "",
            questions=_quiz_questions(payload.questions),
            time_limit=payload.time_limit or None,
            max_attempts=payload.max_attempts,
            passing_score=payload.passing_score,
        ),
    )
    return {"quiz": wire(QuizRead, quiz)}


@router.post("/quizzes/submit", status_code=status.HTTP_201_CREATED)
def submit_attempt(
    payload: QuizSubmit,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    if not payload.quiz_id or payload.answers is None:
        raise ValidationError("Quiz ID and answers are required")
    attempt = submit_quiz(store, identity, payload.quiz_id, payload.answers, payload.time_spent or 0)
    return {"attempt": wire(AttemptRead, attempt)}


@router.put("/quizzes")
def update_quiz(
    payload: QuizUpdate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    quiz_id = require_uuid(payload.id, "quiz")
    changes = _provided(payload, {"id"})
    if "title" in changes:
        changes["title"] = require_text(changes["title"], "Title")
    if "questions" in changes:
        if changes["questions"] is None:
            raise ValidationError("Questions must be an array")
        changes["questions"] = _quiz_questions(payload.questions)
    if "description" in changes:
        changes["description"] = changes["description"] or ""
    return {"quiz": wire(QuizRead, _update_or_404(store, "quizzes", quiz_id, changes, "Quiz"))}


@router.delete("/quizzes/{quiz_id}")
def delete_quiz(
    quiz_id: str,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    # attempts go with it (store cascade)
    return _delete_or_404(store, "quizzes", quiz_id, "Quiz")


# ==================== Progress ====================

@router.get("/progress")
def list_progress(
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return {"progress": wire_all(ProgressRead, store.list("progress", student_id=learner_id(identity)))}


@router.get("/progress/summary")
def get_progress_summary(
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    return wire(ProgressSummary, progress_summary(store, learner_id(identity)))


@router.get("/progress/{lesson_id}")
def get_lesson_progress(
    lesson_id: str,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    require_uuid(lesson_id, "lesson")
    row = store.find_one("progress", student_id=learner_id(identity), lesson_id=lesson_id)
    return {"progress": wire(ProgressRead, row) if row is not None else None}


@router.post("/progress")
def save_progress(
    payload: ProgressUpdate,
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    lesson_id = require_uuid(payload.lesson_id, "lesson")
    row = record_progress(
        store,
        learner_id(identity),
        lesson_id,
        completed=payload.completed,
        progress=payload.progress,
        time_spent=payload.time_spent,
    )
    return {"progress": wire(ProgressRead, row)}


# ==================== Grades ====================

@router.get("/grades")
def list_grades(
    student_id: Optional[str] = Query(default=None, alias="studentId"),
    identity: Identity = Depends(get_current_user),
    store: EntityStore = Depends(get_store),
) -> dict:
    if identity.role == UserRole.STUDENT:
        grades = store.list("grades", student_id=learner_id(identity))
    elif student_id:
        grades = store.list("grades", student_id=student_id)
    else:
        grades = store.list("grades")
    return {"grades": wire_all(GradeRead, grades)}


@router.post("/grades", status_code=status.HTTP_201_CREATED)
def add_grade(
    payload: GradeCreate,
    identity: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    grade = create_grade(
        store,
        identity,
        payload.student_id,
        payload.score,
        payload.max_score,
        assignment_id=payload.assignment_id,
        quiz_id=payload.quiz_id,
        feedback=payload.feedback,
    )
    return {"grade": wire(GradeRead, grade)}


@router.put("/grades")
def edit_grade(
    payload: GradeUpdate,
    _: Identity = Depends(require_staff()),
    store: EntityStore = Depends(get_store),
) -> dict:
    grade_id = require_uuid(payload.id, "grade")
    grade = update_grade(store, grade_id, payload.score, payload.max_score, payload.feedback)
    return {"grade": wire(GradeRead, grade)}
