"""Data access for exam delivery.

``ExamRepository`` is the single boundary between the attempt lifecycle and
the relational store. It plays two roles:

* Exam/question store (read-only): exam metadata and ordered questions.
* Attempt persistence store: attempts and per-question answers.

Everything it returns is a detached pydantic record, so callers may keep
results after the session is closed. Any ``SQLAlchemyError`` is rolled
back and re-raised as :class:`~cbt.core.errors.StoreError`.
"""

from __future__ import annotations

import functools
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, ContextManager, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cbt.core.errors import StoreError
from cbt.db.models import (
    AttemptStatusEnum,
    Exam,
    ExamAttempt,
    Question,
    StudentAnswer,
)
from cbt.db.session import session_scope
from cbt.schemas.attempt import AnswerRecord, AttemptRecord, AttemptStatus
from cbt.schemas.exam import ExamRead, QuestionDefinition

logger = logging.getLogger(__name__)


def _store_call(fn):
    """Translate driver/ORM failures into StoreError after a rollback."""

    @functools.wraps(fn)
    def wrapper(self: "ExamRepository", *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", fn.__name__, exc)
            self.db.rollback()
            raise StoreError(f"Store operation '{fn.__name__}' failed") from exc

    return wrapper


class ExamRepository:
    """Exam/question reads plus attempt/answer persistence over one Session."""

    def __init__(self, db: Session):
        self.db = db

    # ── Exam / question store ───────────────────────────────────────────

    @_store_call
    def get_exam(self, exam_id: uuid.UUID) -> ExamRead | None:
        exam = self.db.query(Exam).filter(Exam.id == exam_id).first()
        return ExamRead.model_validate(exam) if exam else None

    @_store_call
    def list_published_exams(self, now: datetime) -> list[ExamRead]:
        """Published exams whose window has not closed yet, soonest first."""
        rows = (
            self.db.query(Exam)
            .filter(
                Exam.is_published.is_(True),
                (Exam.end_time.is_(None)) | (Exam.end_time >= now),
            )
            .order_by(Exam.start_time.asc())
            .all()
        )
        return [ExamRead.model_validate(e) for e in rows]

    @_store_call
    def list_questions(self, exam_id: uuid.UUID) -> list[QuestionDefinition]:
        rows = (
            self.db.query(Question)
            .filter(Question.exam_id == exam_id)
            .order_by(Question.sort_order, Question.created_at)
            .all()
        )
        return [QuestionDefinition.model_validate(q) for q in rows]

    # ── Attempt store ───────────────────────────────────────────────────

    @_store_call
    def find_in_progress_attempt(
        self, exam_id: uuid.UUID, student_id: uuid.UUID
    ) -> AttemptRecord | None:
        attempt = (
            self.db.query(ExamAttempt)
            .filter(
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.student_id == student_id,
                ExamAttempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .order_by(ExamAttempt.started_at.desc())
            .first()
        )
        return AttemptRecord.model_validate(attempt) if attempt else None

    @_store_call
    def create_attempt(
        self, exam_id: uuid.UUID, student_id: uuid.UUID, started_at: datetime
    ) -> AttemptRecord:
        attempt = ExamAttempt(
            exam_id=exam_id,
            student_id=student_id,
            status=AttemptStatusEnum.IN_PROGRESS,
            started_at=started_at,
        )
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        logger.info(
            "Created attempt %s (exam=%s student=%s)", attempt.id, exam_id, student_id
        )
        return AttemptRecord.model_validate(attempt)

    @_store_call
    def get_attempt(self, attempt_id: uuid.UUID) -> AttemptRecord | None:
        attempt = self.db.get(ExamAttempt, attempt_id)
        return AttemptRecord.model_validate(attempt) if attempt else None

    @_store_call
    def list_attempts(
        self, student_id: uuid.UUID, skip: int = 0, limit: int = 20
    ) -> list[tuple[AttemptRecord, ExamRead]]:
        rows = (
            self.db.query(ExamAttempt, Exam)
            .join(Exam, Exam.id == ExamAttempt.exam_id)
            .filter(ExamAttempt.student_id == student_id)
            .order_by(ExamAttempt.started_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return [
            (AttemptRecord.model_validate(a), ExamRead.model_validate(e))
            for a, e in rows
        ]

    @_store_call
    def update_attempt(
        self,
        attempt_id: uuid.UUID,
        *,
        status: AttemptStatus,
        submitted_at: datetime | None,
        score: float | None,
        time_spent_seconds: int | None,
        commit: bool = True,
    ) -> None:
        attempt = self.db.get(ExamAttempt, attempt_id)
        if attempt is None:
            raise StoreError(f"Attempt {attempt_id} vanished from the store")
        attempt.status = AttemptStatusEnum(status.value)
        attempt.submitted_at = submitted_at
        attempt.score = score
        attempt.time_spent_seconds = time_spent_seconds
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    # ── Answer store ────────────────────────────────────────────────────

    @_store_call
    def upsert_answer(
        self,
        attempt_id: uuid.UUID,
        question_id: uuid.UUID,
        answer: str | None,
        is_correct: bool | None,
        points_earned: float | None,
        commit: bool = True,
    ) -> None:
        """Insert or overwrite the answer keyed by (attempt, question)."""
        row = (
            self.db.query(StudentAnswer)
            .filter(
                StudentAnswer.attempt_id == attempt_id,
                StudentAnswer.question_id == question_id,
            )
            .first()
        )
        if row is None:
            row = StudentAnswer(attempt_id=attempt_id, question_id=question_id)
            self.db.add(row)
        row.answer = answer
        row.is_correct = is_correct
        row.points_earned = points_earned
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    @_store_call
    def list_answers(self, attempt_id: uuid.UUID) -> list[AnswerRecord]:
        rows = (
            self.db.query(StudentAnswer)
            .filter(StudentAnswer.attempt_id == attempt_id)
            .all()
        )
        return [AnswerRecord.model_validate(r) for r in rows]

    # ── Transactions ────────────────────────────────────────────────────

    @_store_call
    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


StoreFactory = Callable[[], ContextManager[ExamRepository]]


@contextmanager
def open_repository() -> Iterator[ExamRepository]:
    """Default store factory: a fresh session per unit of work."""
    with session_scope() as db:
        yield ExamRepository(db)
