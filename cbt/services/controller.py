"""Attempt controller: one student's exam-taking session.

Lifecycle::

    uninitialized ──open()──▶ in_progress ──submit()/expiry──▶ submitted

``open`` resolves the student's in-progress attempt for the exam or
creates one. The countdown is derived from the stored ``started_at``, so
re-opening never resets it. Answers and flags live in memory on the
controller until submission, which is the only path that writes answers:
explicit submit and timer expiry both go through :meth:`submit`, guarded
so it runs at most once at a time.
"""

from __future__ import annotations

import enum
import logging
import random
import uuid
from typing import Callable

from starlette.concurrency import run_in_threadpool

from cbt.config import settings
from cbt.core.clock import Clock, utcnow
from cbt.core.errors import ExamError, NotFoundError, StoreError, ValidationError
from cbt.core.identity import StudentSession
from cbt.schemas.attempt import (
    AttemptRecord,
    AttemptState,
    AttemptStatus,
    SubmissionSummary,
)
from cbt.schemas.exam import ExamRead, QuestionDefinition, QuestionType
from cbt.services.scoring import GradeResult, grade_and_persist
from cbt.services.store import StoreFactory, open_repository
from cbt.services.timer import Ticker, format_clock, remaining_seconds

logger = logging.getLogger(__name__)

EXAM_UNAVAILABLE = "Exam not found or has no questions"


class ControllerStatus(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class AttemptController:
    """Owns the attempt, the answer buffer, flags, navigation and the timer."""

    def __init__(
        self,
        exam_id: uuid.UUID,
        session: StudentSession,
        store_factory: StoreFactory = open_repository,
        *,
        strategy: str | None = None,
        atomic: bool | None = None,
        clock: Clock = utcnow,
        tick_interval: float | None = None,
        on_finished: Callable[["AttemptController"], None] | None = None,
    ):
        self.exam_id = exam_id
        self.session = session
        self.strategy = strategy or settings.SCORING_STRATEGY
        self.atomic = settings.ATOMIC_SUBMISSION if atomic is None else atomic
        self.tick_interval = (
            settings.TIMER_TICK_SECONDS if tick_interval is None else tick_interval
        )
        self._store_factory = store_factory
        self._clock = clock
        self._on_finished = on_finished

        self.status = ControllerStatus.UNINITIALIZED
        self.exam: ExamRead | None = None
        self.questions: list[QuestionDefinition] = []
        self.attempt: AttemptRecord | None = None
        self.resumed = False
        self.answers: dict[uuid.UUID, str] = {}
        self.flagged: set[uuid.UUID] = set()
        self.current_index = 0
        self.result: GradeResult | None = None
        self.last_error: ExamError | None = None

        self._submitting = False
        self._closed = False
        self._ticker: Ticker | None = None

    # ── Properties ──────────────────────────────────────────────────────

    @property
    def attempt_id(self) -> uuid.UUID | None:
        return self.attempt.id if self.attempt else None

    @property
    def student_id(self) -> uuid.UUID | None:
        return self.attempt.student_id if self.attempt else None

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def is_live(self) -> bool:
        """In progress and not torn down."""
        return self.status is ControllerStatus.IN_PROGRESS and not self._closed

    @property
    def remaining_seconds(self) -> int:
        if self.attempt is None or self.exam is None:
            return 0
        if self.status is ControllerStatus.SUBMITTED:
            return 0
        return remaining_seconds(
            self.attempt.started_at, self.exam.duration_minutes, self._clock()
        )

    @property
    def current_question(self) -> QuestionDefinition:
        self._require_opened()
        return self.questions[self.current_index]

    # ── Resolve or create ───────────────────────────────────────────────

    async def open(self) -> AttemptRecord:
        """Resume the student's in-progress attempt or start a new one.

        Idempotent: calling it again returns the same attempt.
        """
        if self.attempt is not None:
            return self.attempt
        student_id = self.session.current_student_id

        exam, questions, attempt, resumed = await run_in_threadpool(
            self._resolve, student_id
        )
        self.exam = exam
        self.attempt = attempt
        self.resumed = resumed
        self.questions = self._ordered(questions, attempt.id, exam.shuffle_questions)
        self.status = ControllerStatus.IN_PROGRESS
        logger.info(
            "%s attempt %s for exam %s (%ds left)",
            "Resumed" if resumed else "Started",
            attempt.id,
            exam.id,
            self.remaining_seconds,
        )

        if self.remaining_seconds <= 0:
            await self._expire()
        else:
            self._start_ticker()
        return attempt

    def _resolve(self, student_id: uuid.UUID):
        with self._store_factory() as store:
            exam = store.get_exam(self.exam_id)
            if exam is None or not exam.is_published:
                raise NotFoundError(EXAM_UNAVAILABLE)
            questions = store.list_questions(exam.id)
            if not questions:
                raise NotFoundError(EXAM_UNAVAILABLE)

            attempt = store.find_in_progress_attempt(exam.id, student_id)
            if attempt is not None:
                return exam, questions, attempt, True

            now = self._clock()
            if exam.start_time is not None and now < exam.start_time:
                raise ValidationError(
                    "Exam has not started yet",
                    {"start_time": exam.start_time.isoformat()},
                )
            if exam.end_time is not None and now > exam.end_time:
                raise ValidationError(
                    "Exam has already closed",
                    {"end_time": exam.end_time.isoformat()},
                )
            attempt = store.create_attempt(exam.id, student_id, now)
            return exam, questions, attempt, False

    @staticmethod
    def _ordered(
        questions: list[QuestionDefinition], attempt_id: uuid.UUID, shuffle: bool
    ) -> list[QuestionDefinition]:
        ordered = list(questions)
        if shuffle:
            # Seeded by the attempt so a resumed attempt keeps its order
            random.Random(attempt_id.int).shuffle(ordered)
        return ordered

    # ── Timer ───────────────────────────────────────────────────────────

    def _start_ticker(self) -> None:
        if self.tick_interval and self.tick_interval > 0:
            self._ticker = Ticker(self.tick_interval, self.tick)
            self._ticker.start()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def tick(self) -> int:
        """One timer step; submits automatically once time runs out."""
        if not self.is_live or self._submitting:
            return self.remaining_seconds
        remaining = self.remaining_seconds
        if remaining <= 0:
            await self._expire()
        return remaining

    async def _expire(self) -> None:
        if not self.is_live or self._submitting:
            return
        logger.info("Time is up for attempt %s; submitting", self.attempt_id)
        self._stop_ticker()
        try:
            await self.submit(auto=True)
        except ExamError as exc:
            # No caller to report to: keep the error for the next request
            # and leave the attempt open for a manual retry.
            logger.error(
                "Automatic submission of attempt %s failed: %s", self.attempt_id, exc
            )
            self.last_error = exc

    # ── Answer buffer, flags, navigation ────────────────────────────────

    def _require_opened(self) -> None:
        if self.status is ControllerStatus.UNINITIALIZED:
            raise ValidationError("Attempt has not been opened")

    def _require_answerable(self) -> None:
        self._require_opened()
        if self.status is ControllerStatus.SUBMITTED:
            raise ValidationError("Attempt already submitted")
        if self._closed:
            raise ValidationError("Attempt session is closed")
        if self._submitting:
            raise ValidationError("Submission in progress")
        if self.remaining_seconds <= 0:
            raise ValidationError("Time is up")

    def _question(self, question_id: uuid.UUID) -> QuestionDefinition:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise NotFoundError("Question is not part of this exam")

    def answer(self, question_id: uuid.UUID, value: str | None) -> None:
        """Buffer (or overwrite) the answer to a question. Empty clears it."""
        self._require_answerable()
        question = self._question(question_id)
        if value is None or not value.strip():
            self.answers.pop(question_id, None)
            return
        if question.question_type in (
            QuestionType.MULTIPLE_CHOICE,
            QuestionType.TRUE_FALSE,
        ) and question.options:
            if question.option_text(value) is None:
                raise ValidationError(
                    "Unknown option", {"question_id": str(question_id), "value": value}
                )
        self.answers[question_id] = value

    def clear_answer(self, question_id: uuid.UUID) -> None:
        self.answer(question_id, None)

    def toggle_flag(self, question_id: uuid.UUID) -> bool:
        """Flip the review marker; returns whether the question is now flagged."""
        self._require_opened()
        self._question(question_id)
        if question_id in self.flagged:
            self.flagged.discard(question_id)
            return False
        self.flagged.add(question_id)
        return True

    def go_to(self, index: int) -> QuestionDefinition:
        self._require_opened()
        if not 0 <= index < len(self.questions):
            raise ValidationError(
                "Question index out of range",
                {"index": index, "total": len(self.questions)},
            )
        self.current_index = index
        return self.current_question

    def next(self) -> QuestionDefinition:
        self._require_opened()
        return self.go_to(min(len(self.questions) - 1, self.current_index + 1))

    def previous(self) -> QuestionDefinition:
        self._require_opened()
        return self.go_to(max(0, self.current_index - 1))

    # ── Views ───────────────────────────────────────────────────────────

    def summary(self) -> SubmissionSummary:
        """What the confirm-submit dialog shows."""
        self._require_opened()
        total = len(self.questions)
        answered = len(self.answers)
        return SubmissionSummary(
            attempt_id=self.attempt.id,
            answered_count=answered,
            total_questions=total,
            unanswered_count=total - answered,
            flagged_count=len(self.flagged),
            remaining_seconds=self.remaining_seconds,
            has_unanswered=answered < total,
        )

    def state(self) -> AttemptState:
        self._require_opened()
        remaining = self.remaining_seconds
        return AttemptState(
            attempt_id=self.attempt.id,
            exam_id=self.exam.id,
            exam_title=self.exam.title,
            status=AttemptStatus(self.status.value),
            started_at=self.attempt.started_at,
            duration_minutes=self.exam.duration_minutes,
            remaining_seconds=remaining,
            remaining_clock=format_clock(remaining),
            low_time=remaining < settings.LOW_TIME_WARNING_SECONDS,
            current_index=self.current_index,
            current_question=self.current_question.to_public(),
            questions=[q.to_public() for q in self.questions],
            answers={str(qid): v for qid, v in self.answers.items()},
            flagged=[q.id for q in self.questions if q.id in self.flagged],
            answered_count=len(self.answers),
            total_questions=len(self.questions),
            submitting=self._submitting,
            last_error=self.last_error.message if self.last_error else None,
        )

    # ── Submission ──────────────────────────────────────────────────────

    async def submit(self, auto: bool = False) -> GradeResult:
        """Grade the buffer, persist answers and close the attempt.

        On failure the attempt stays in progress and the error propagates so
        the student can retry.
        """
        self._require_opened()
        if self.status is ControllerStatus.SUBMITTED:
            raise ValidationError("Attempt already submitted")
        if self._closed:
            raise ValidationError("Attempt session is closed")
        if self._submitting:
            raise ValidationError("Submission in progress")

        self._submitting = True
        try:
            remaining = self.remaining_seconds
            submitted_at = self._clock()
            time_spent = self.exam.duration_minutes * 60 - remaining
            result = await run_in_threadpool(
                self._persist_submission, dict(self.answers), submitted_at, time_spent
            )
        except ExamError as exc:
            logger.warning(
                "%s submission of attempt %s failed: %s",
                "Automatic" if auto else "Manual",
                self.attempt_id,
                exc.message,
            )
            raise
        finally:
            self._submitting = False

        self.result = result
        self.last_error = None
        self.attempt = self.attempt.model_copy(
            update={
                "status": AttemptStatus.SUBMITTED,
                "submitted_at": submitted_at,
                "score": result.score,
                "time_spent_seconds": time_spent,
            }
        )
        self.status = ControllerStatus.SUBMITTED
        logger.info(
            "Attempt %s submitted (%s): score=%.2f time_spent=%ds",
            self.attempt_id,
            "auto" if auto else "manual",
            result.score,
            time_spent,
        )
        self.close()
        return result

    def _persist_submission(self, answers, submitted_at, time_spent) -> GradeResult:
        with self._store_factory() as store:
            current = store.get_attempt(self.attempt.id)
            if current is None:
                raise NotFoundError("Attempt not found")
            if current.status is not AttemptStatus.IN_PROGRESS:
                raise ValidationError("Attempt already submitted")
            try:
                result = grade_and_persist(
                    store,
                    self.attempt.id,
                    self.questions,
                    answers,
                    strategy=self.strategy,
                    atomic=self.atomic,
                )
                store.update_attempt(
                    self.attempt.id,
                    status=AttemptStatus.SUBMITTED,
                    submitted_at=submitted_at,
                    score=result.score,
                    time_spent_seconds=time_spent,
                )
            except StoreError:
                store.rollback()
                raise
            return result

    # ── Teardown ────────────────────────────────────────────────────────

    def close(self) -> None:
        """Stop the timer and detach; safe to call more than once."""
        self._stop_ticker()
        if self._closed:
            return
        self._closed = True
        if self._on_finished is not None:
            self._on_finished(self)

