"""Attempt-taking routes: answer, flag, navigate, submit, review.

Flow:
  1. POST   /api/exams/{exam_id}/attempts          → start or resume
  2. PUT    /api/attempts/{id}/answers/{qid}       → buffer an answer
  3. POST   /api/attempts/{id}/flags/{qid}         → toggle review flag
  4. POST   /api/attempts/{id}/navigate            → move between questions
  5. GET    /api/attempts/{id}/summary             → confirm-submit dialog
  6. POST   /api/attempts/{id}/submit              → grade and close
  7. GET    /api/attempts/{id}/result              → submitted result
"""

import logging
import uuid

from fastapi import APIRouter, Depends

from cbt.api.deps import get_registry, get_store, get_student_session
from cbt.core.identity import StudentSession
from cbt.schemas.attempt import (
    AnswerRecord,
    AnswerSubmit,
    AttemptRead,
    AttemptResult,
    AttemptState,
    NavigateRequest,
    SubmissionSummary,
)
from cbt.schemas.common import SuccessResponse
from cbt.services.registry import AttemptRegistry
from cbt.services.results import attempt_summary, build_result, load_result
from cbt.services.store import ExamRepository

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[AttemptRead])
def list_attempts(
    skip: int = 0,
    limit: int = 20,
    session: StudentSession = Depends(get_student_session),
    store: ExamRepository = Depends(get_store),
):
    """List the current student's attempts, newest first."""
    rows = store.list_attempts(session.current_student_id, skip=skip, limit=limit)
    return [attempt_summary(attempt, exam) for attempt, exam in rows]


@router.get("/{attempt_id}", response_model=AttemptState)
async def get_attempt_state(
    attempt_id: uuid.UUID,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    """Live state of an in-progress attempt (timer, buffer, flags)."""
    controller = await registry.get(attempt_id, session)
    return controller.state()


@router.put("/{attempt_id}/answers/{question_id}", response_model=AttemptState)
async def save_answer(
    attempt_id: uuid.UUID,
    question_id: uuid.UUID,
    body: AnswerSubmit,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    controller = await registry.get(attempt_id, session)
    controller.answer(question_id, body.value)
    return controller.state()


@router.delete("/{attempt_id}/answers/{question_id}", response_model=AttemptState)
async def clear_answer(
    attempt_id: uuid.UUID,
    question_id: uuid.UUID,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    controller = await registry.get(attempt_id, session)
    controller.clear_answer(question_id)
    return controller.state()


@router.post("/{attempt_id}/flags/{question_id}", response_model=SuccessResponse)
async def toggle_flag(
    attempt_id: uuid.UUID,
    question_id: uuid.UUID,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    controller = await registry.get(attempt_id, session)
    flagged = controller.toggle_flag(question_id)
    return SuccessResponse(
        message="flagged" if flagged else "unflagged",
        data={"question_id": str(question_id), "flagged": flagged},
    )


@router.post("/{attempt_id}/navigate", response_model=AttemptState)
async def navigate(
    attempt_id: uuid.UUID,
    body: NavigateRequest,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    controller = await registry.get(attempt_id, session)
    if body.index is not None:
        controller.go_to(body.index)
    elif body.direction == "next":
        controller.next()
    else:
        controller.previous()
    return controller.state()


@router.get("/{attempt_id}/summary", response_model=SubmissionSummary)
async def submission_summary(
    attempt_id: uuid.UUID,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    """Answered / total counts shown before the student confirms submission."""
    controller = await registry.get(attempt_id, session)
    return controller.summary()


@router.post("/{attempt_id}/submit", response_model=AttemptResult)
async def submit_attempt(
    attempt_id: uuid.UUID,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    """Grade the buffered answers and close the attempt.

    A failed submission leaves the attempt in progress; the client may retry.
    """
    controller = await registry.get(attempt_id, session)
    result = await controller.submit()
    answers = [
        AnswerRecord(
            attempt_id=attempt_id,
            question_id=g.question_id,
            answer=g.answer,
            is_correct=g.is_correct,
            points_earned=g.points_earned,
        )
        for g in result.grades
    ]
    return build_result(controller.exam, controller.attempt, controller.questions, answers)


@router.get("/{attempt_id}/result", response_model=AttemptResult)
def get_result(
    attempt_id: uuid.UUID,
    session: StudentSession = Depends(get_student_session),
    store: ExamRepository = Depends(get_store),
):
    """Submitted attempt with per-question review (if the exam allows it)."""
    return load_result(store, attempt_id, session.current_student_id)
