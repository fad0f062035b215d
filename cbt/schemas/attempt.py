"""Attempt schemas."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, field_validator, model_validator

from cbt.core.clock import as_utc
from cbt.schemas.exam import QuestionRead


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"


class AttemptRecord(BaseModel):
    """Stored state of an attempt, detached from the DB session."""

    id: uuid.UUID
    exam_id: uuid.UUID
    student_id: uuid.UUID
    status: AttemptStatus
    started_at: datetime
    submitted_at: datetime | None = None
    score: float | None = None
    time_spent_seconds: int | None = None

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("started_at", "submitted_at")
    @classmethod
    def timestamps_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class AnswerRecord(BaseModel):
    """Stored answer row."""

    attempt_id: uuid.UUID
    question_id: uuid.UUID
    answer: str | None = None
    is_correct: bool | None = None
    points_earned: float | None = None

    model_config = {"from_attributes": True, "frozen": True}


# ── Requests ──────────────────────────────────────────────────────────────────


class AnswerSubmit(BaseModel):
    """PUT /api/attempts/{id}/answers/{question_id}"""

    value: str | None = None  # option id, or free text for essay / short answer


class NavigateRequest(BaseModel):
    """POST /api/attempts/{id}/navigate, either an index or a direction."""

    index: int | None = None
    direction: Literal["next", "previous"] | None = None

    @model_validator(mode="after")
    def exactly_one_target(self):
        if (self.index is None) == (self.direction is None):
            raise ValueError("Provide exactly one of 'index' or 'direction'")
        return self


# ── Responses ─────────────────────────────────────────────────────────────────


class AttemptState(BaseModel):
    """Live view of an in-progress attempt (what the exam page renders)."""

    attempt_id: uuid.UUID
    exam_id: uuid.UUID
    exam_title: str
    status: AttemptStatus
    started_at: datetime
    duration_minutes: int
    remaining_seconds: int
    remaining_clock: str  # HH:MM:SS
    low_time: bool = False
    current_index: int
    current_question: QuestionRead
    questions: list[QuestionRead]
    answers: dict[str, str] = {}  # {question_id: value}
    flagged: list[uuid.UUID] = []
    answered_count: int
    total_questions: int
    submitting: bool = False
    last_error: str | None = None  # set when an automatic submission failed


class SubmissionSummary(BaseModel):
    """Data for the confirm-submit dialog."""

    attempt_id: uuid.UUID
    answered_count: int
    total_questions: int
    unanswered_count: int
    flagged_count: int
    remaining_seconds: int
    has_unanswered: bool


class AnswerResultRead(BaseModel):
    """Per-question outcome in a result view."""

    question_id: uuid.UUID
    question_text: str
    student_answer: str | None = None
    correct_answer: str | None = None
    is_correct: bool | None = None
    points_earned: float | None = None
    points: int


class AttemptRead(BaseModel):
    """Attempt summary as listed in a student's history."""

    id: uuid.UUID
    exam_id: uuid.UUID
    exam_title: str | None = None
    status: AttemptStatus
    started_at: datetime
    submitted_at: datetime | None = None
    score: float | None = None
    max_score: int | None = None
    time_spent_seconds: int | None = None


class AttemptResult(AttemptRead):
    """Submitted attempt with per-question details (when the exam shows them)."""

    passed: bool | None = None
    answered_count: int = 0
    total_questions: int = 0
    answers: list[AnswerResultRead] = []
