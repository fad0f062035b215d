"""Exam listing and attempt entry routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, Response, status

from cbt.api.deps import get_registry, get_store, get_student_session
from cbt.core.clock import utcnow
from cbt.core.errors import NotFoundError
from cbt.core.identity import StudentSession
from cbt.schemas.attempt import AttemptState
from cbt.schemas.exam import ExamRead
from cbt.services.controller import EXAM_UNAVAILABLE
from cbt.services.registry import AttemptRegistry
from cbt.services.store import ExamRepository

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[ExamRead])
def list_open_exams(
    _session: StudentSession = Depends(get_student_session),
    store: ExamRepository = Depends(get_store),
):
    """Published exams whose window has not closed yet."""
    return store.list_published_exams(utcnow())


@router.get("/{exam_id}", response_model=ExamRead)
def get_exam(
    exam_id: uuid.UUID,
    _session: StudentSession = Depends(get_student_session),
    store: ExamRepository = Depends(get_store),
):
    exam = store.get_exam(exam_id)
    if exam is None or not exam.is_published:
        raise NotFoundError(EXAM_UNAVAILABLE)
    return exam


@router.post("/{exam_id}/attempts", response_model=AttemptState)
async def start_or_resume_attempt(
    exam_id: uuid.UUID,
    response: Response,
    session: StudentSession = Depends(get_student_session),
    registry: AttemptRegistry = Depends(get_registry),
):
    """Enter an exam: resume the in-progress attempt or start a new one.

    Returns 201 when a new attempt was created, 200 when resuming.
    """
    controller = await registry.open(exam_id, session)
    if not controller.resumed:
        response.status_code = status.HTTP_201_CREATED
    return controller.state()
