"""Pydantic schemas — re‑exported for convenience."""

from cbt.schemas.common import ErrorResponse, SuccessResponse  # noqa: F401
from cbt.schemas.exam import (  # noqa: F401
    ExamRead,
    QuestionDefinition,
    QuestionOption,
    QuestionRead,
    QuestionType,
)
from cbt.schemas.attempt import (  # noqa: F401
    AnswerRecord,
    AnswerResultRead,
    AnswerSubmit,
    AttemptRead,
    AttemptRecord,
    AttemptResult,
    AttemptState,
    AttemptStatus,
    NavigateRequest,
    SubmissionSummary,
)
