"""Result views for submitted attempts."""

import uuid

from cbt.core.errors import NotFoundError, ValidationError
from cbt.schemas.attempt import (
    AnswerRecord,
    AnswerResultRead,
    AttemptRead,
    AttemptRecord,
    AttemptResult,
    AttemptStatus,
)
from cbt.schemas.exam import ExamRead, QuestionDefinition
from cbt.services.store import ExamRepository


def attempt_summary(attempt: AttemptRecord, exam: ExamRead) -> AttemptRead:
    visible = exam.show_result or attempt.status is AttemptStatus.GRADED
    return AttemptRead(
        id=attempt.id,
        exam_id=attempt.exam_id,
        exam_title=exam.title,
        status=attempt.status,
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
        score=attempt.score if visible else None,
        max_score=exam.max_score,
        time_spent_seconds=attempt.time_spent_seconds,
    )


def build_result(
    exam: ExamRead,
    attempt: AttemptRecord,
    questions: list[QuestionDefinition],
    answers: list[AnswerRecord],
) -> AttemptResult:
    """Assemble the result page; answer keys only when the exam shows results."""
    by_question = {a.question_id: a for a in answers}
    summary = attempt_summary(attempt, exam)
    answered = sum(1 for a in answers if a.answer is not None)

    details = []
    passed = None
    if summary.score is not None:
        if exam.passing_score is not None:
            passed = summary.score >= exam.passing_score
        for question in questions:
            record = by_question.get(question.id)
            details.append(
                AnswerResultRead(
                    question_id=question.id,
                    question_text=question.question_text,
                    student_answer=record.answer if record else None,
                    correct_answer=question.correct_answer,
                    is_correct=record.is_correct if record else None,
                    points_earned=record.points_earned if record else None,
                    points=question.points,
                )
            )

    return AttemptResult(
        **summary.model_dump(),
        passed=passed,
        answered_count=answered,
        total_questions=len(questions),
        answers=details,
    )


def load_result(
    store: ExamRepository, attempt_id: uuid.UUID, student_id: uuid.UUID
) -> AttemptResult:
    attempt = store.get_attempt(attempt_id)
    if attempt is None or attempt.student_id != student_id:
        raise NotFoundError("Attempt not found")
    if attempt.status is AttemptStatus.IN_PROGRESS:
        raise ValidationError("Attempt has not been submitted yet")
    exam = store.get_exam(attempt.exam_id)
    if exam is None:
        raise NotFoundError("Exam not found")
    return build_result(
        exam,
        attempt,
        store.list_questions(exam.id),
        store.list_answers(attempt.id),
    )
