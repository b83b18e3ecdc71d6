"""
Classroom
- Quiz grading and answer stripping
- Assignment submissions and grading
- Per-lesson progress upsert and summary
- Grade book entries
"""
import logging
from typing import Any, Optional

from core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from core.finance import percentage
from core.models import (
    Assignment,
    Grade,
    Quiz,
    QuizAttempt,
    StudentProgress,
    Submission,
    SubmissionStatus,
    UserRole,
    utcnow,
)
from core.sessions import Identity
from core.store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_PASSING_SCORE = 60
HIDDEN_QUESTION_FIELDS = ("correct_answer", "explanation")


def learner_id(identity: Identity) -> str:
    """Progress and grades are keyed by the linked student, else by the user."""
    return identity.student_id or identity.user_id


# ==================== Quizzes ====================

def _is_correct(expected: Any, given: Any) -> bool:
    if isinstance(expected, list):
        # order-insensitive, no partial credit
        return isinstance(given, list) and set(map(str, given)) == set(map(str, expected))
    return given == expected


def grade_quiz(quiz: Quiz, answers: dict[str, Any]) -> dict[str, Any]:
    score = 0
    max_score = 0
    for question in quiz.questions:
        points = question.get("points") or 1
        max_score += points
        if _is_correct(question.get("correct_answer"), answers.get(question.get("id"))):
            score += points

    pct = score / max_score * 100 if max_score else 0
    passing = quiz.passing_score if quiz.passing_score is not None else DEFAULT_PASSING_SCORE
    return {
        "score": score,
        "max_score": max_score,
        "percentage": pct,
        "is_passed": pct >= passing,
    }


def strip_answers(questions: list[dict]) -> list[dict]:
    return [
        {key: value for key, value in question.items() if key not in HIDDEN_QUESTION_FIELDS}
        for question in questions
    ]


def submit_quiz(
    store: EntityStore,
    identity: Identity,
    quiz_id: str,
    answers: dict[str, Any],
    time_spent: int = 0,
) -> QuizAttempt:
    if identity.role != UserRole.STUDENT:
        raise AuthorizationError()
    quiz = store.get("quizzes", quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz not found")

    student_id = learner_id(identity)
    if quiz.max_attempts is not None:
        used = len(store.list("attempts", quiz_id=quiz_id, student_id=student_id))
        if used >= quiz.max_attempts:
            raise ConflictError("Maximum attempts reached")

    result = grade_quiz(quiz, answers)
    now = utcnow()
    attempt = store.create(
        "attempts",
        QuizAttempt(
            quiz_id=quiz_id,
            student_id=student_id,
            answers=answers,
            started_at=now,
            submitted_at=now,
            time_spent=time_spent or 0,
            **result,
        ),
    )
    logger.info(
        f"📝 Quiz attempt - quiz_id: {quiz_id}, student_id: {student_id}, "
        f"score: {result['score']}/{result['max_score']}, passed: {result['is_passed']}"
    )
    return attempt


# ==================== Assignments ====================

def submit_assignment(store: EntityStore, identity: Identity, assignment_id: str, file_url: str) -> Submission:
    if identity.role != UserRole.STUDENT:
        raise AuthorizationError()
    assignment: Optional[Assignment] = store.get("assignments", assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")

    now = utcnow()
    submission = store.create(
        "submissions",
        Submission(
            assignment_id=assignment_id,
            student_id=learner_id(identity),
            status=SubmissionStatus.SUBMITTED,
            file_url=file_url,
            submitted_at=now,
            is_late=now > assignment.due_date,
            created_at=now,
        ),
    )
    logger.info(f"📤 Assignment submitted - assignment_id: {assignment_id}, late: {submission.is_late}")
    return submission


def grade_submission(
    store: EntityStore,
    submission_id: str,
    score: Optional[float],
    feedback: Optional[str],
) -> Submission:
    if store.get("submissions", submission_id) is None:
        raise NotFoundError("Submission not found")
    return store.update(
        "submissions",
        submission_id,
        {
            "status": SubmissionStatus.GRADED,
            "score": score,
            "feedback": feedback,
            "graded_at": utcnow(),
        },
    )


# ==================== Progress ====================

def record_progress(
    store: EntityStore,
    student_id: str,
    lesson_id: str,
    completed: Optional[bool] = None,
    progress: Optional[int] = None,
    time_spent: Optional[int] = None,
) -> StudentProgress:
    """Upsert one (student, lesson) row; time accumulates, completion is stamped once."""
    now = utcnow()
    existing = store.find_one("progress", student_id=student_id, lesson_id=lesson_id)
    if existing is None:
        return store.create(
            "progress",
            StudentProgress(
                student_id=student_id,
                lesson_id=lesson_id,
                completed=bool(completed),
                progress=progress or 0,
                time_spent=time_spent or 0,
                last_accessed_at=now,
                completed_at=now if completed else None,
            ),
        )

    changes: dict[str, Any] = {
        "time_spent": (existing.time_spent or 0) + (time_spent or 0),
        "last_accessed_at": now,
    }
    if completed is not None:
        changes["completed"] = completed
    if progress is not None:
        changes["progress"] = progress
    if completed and existing.completed_at is None:
        changes["completed_at"] = now
    return store.update("progress", existing.id, changes)


def progress_summary(store: EntityStore, student_id: str) -> dict[str, Any]:
    rows = store.list("progress", student_id=student_id)
    total_lessons = len(store.list("lessons"))
    completed = sum(1 for row in rows if row.completed)
    last_activity = max((row.last_accessed_at for row in rows), default=None)
    return {
        "total_lessons": total_lessons,
        "completed_lessons": completed,
        "completion_percentage": percentage(completed, total_lessons),
        "total_time_spent": sum(row.time_spent or 0 for row in rows),
        "last_activity_at": last_activity or utcnow(),
    }


# ==================== Grades ====================

def _grade_percentage(score: float, max_score: float) -> float:
    if not max_score:
        raise ValidationError("Max score must be greater than zero")
    return score / max_score * 100


def create_grade(
    store: EntityStore,
    identity: Identity,
    student_id: Optional[str],
    score: Optional[float],
    max_score: Optional[float],
    assignment_id: Optional[str] = None,
    quiz_id: Optional[str] = None,
    feedback: Optional[str] = None,
) -> Grade:
    if not student_id or score is None or max_score is None:
        raise ValidationError("Student ID, score, and max score are required")
    if not assignment_id and not quiz_id:
        raise ValidationError("Either assignment ID or quiz ID is required")

    for grade in store.list("grades", student_id=student_id):
        if (assignment_id and grade.assignment_id == assignment_id) or (quiz_id and grade.quiz_id == quiz_id):
            raise ConflictError("Grade already exists for this assignment/quiz")

    grade = store.create(
        "grades",
        Grade(
            student_id=student_id,
            assignment_id=assignment_id,
            quiz_id=quiz_id,
            score=score,
            max_score=max_score,
            percentage=_grade_percentage(score, max_score),
            feedback=feedback,
            graded_by=identity.user_id,
        ),
    )
    logger.info(f"🏅 Grade recorded - student_id: {student_id}, grade_id: {grade.id}")
    return grade


def update_grade(
    store: EntityStore,
    grade_id: str,
    score: Optional[float] = None,
    max_score: Optional[float] = None,
    feedback: Optional[str] = None,
) -> Grade:
    grade = store.get("grades", grade_id)
    if grade is None:
        raise NotFoundError("Grade not found")
    new_score = grade.score if score is None else score
    new_max = grade.max_score if max_score is None else max_score
    changes = {
        "score": new_score,
        "max_score": new_max,
        "percentage": _grade_percentage(new_score, new_max),
        "graded_at": utcnow(),
    }
    if feedback is not None:
        changes["feedback"] = feedback
    return store.update("grades", grade_id, changes)
