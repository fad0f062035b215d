"""Exam & question schemas.

``QuestionDefinition`` is the grading-side view and carries the correct
answer. Anything sent to a student goes through ``QuestionRead``, which
has no such field.
"""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, field_validator

from cbt.core.clock import as_utc


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    ESSAY = "essay"
    SHORT_ANSWER = "short_answer"


class QuestionOption(BaseModel):
    """One selectable option: opaque id plus display text."""

    id: str
    text: str


def _normalise_options(value):
    """Accept ``[{"id", "text"}]`` or a bare list of strings (ids a, b, c…)."""
    if value is None:
        return None
    options = []
    for i, opt in enumerate(value):
        if isinstance(opt, str):
            options.append({"id": chr(97 + i), "text": opt})
        else:
            options.append(opt)
    return options


class ExamRead(BaseModel):
    """Exam metadata as exposed to students."""

    id: uuid.UUID
    course_id: uuid.UUID
    title: str
    description: str | None = None
    exam_type: str = "quiz"
    duration_minutes: int
    start_time: datetime | None = None
    end_time: datetime | None = None
    max_score: int
    passing_score: int | None = None
    shuffle_questions: bool = False
    show_result: bool = True
    is_published: bool = False

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("start_time", "end_time")
    @classmethod
    def window_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class QuestionRead(BaseModel):
    """Question served during an attempt (never includes the answer key)."""

    id: uuid.UUID
    question_type: QuestionType
    question_text: str
    options: list[QuestionOption] | None = None
    points: int

    model_config = {"frozen": True}


class QuestionDefinition(BaseModel):
    """Full question definition, used server-side for grading."""

    id: uuid.UUID
    exam_id: uuid.UUID
    sort_order: int = 0
    question_type: QuestionType
    question_text: str
    options: list[QuestionOption] | None = None
    correct_answer: str | None = None
    points: int = 1

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("options", mode="before")
    @classmethod
    def coerce_options(cls, value):
        return _normalise_options(value)

    def option_text(self, option_id: str) -> str | None:
        for opt in self.options or []:
            if opt.id == option_id:
                return opt.text
        return None

    def to_public(self) -> QuestionRead:
        return QuestionRead(
            id=self.id,
            question_type=self.question_type,
            question_text=self.question_text,
            options=self.options,
            points=self.points,
        )
