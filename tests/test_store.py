"""Repository tests against the SQLite test database."""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from cbt.core.errors import StoreError
from cbt.db.models import QuestionTypeEnum
from cbt.schemas.attempt import AttemptStatus
from cbt.schemas.exam import QuestionType


class TestExamReads:
    def test_get_exam_returns_detached_record(self, store, make_exam):
        exam = make_exam(title="Networks", duration_minutes=30)
        record = store.get_exam(exam.id)
        assert record.title == "Networks"
        assert record.duration_minutes == 30
        assert record.is_published is True

    def test_get_missing_exam(self, store):
        assert store.get_exam(uuid.uuid4()) is None

    def test_questions_in_sort_order(self, store, make_exam):
        exam = make_exam(
            questions=[
                {"question_type": QuestionTypeEnum.ESSAY, "question_text": "third", "sort_order": 3},
                {"question_type": QuestionTypeEnum.ESSAY, "question_text": "first", "sort_order": 1},
                {"question_type": QuestionTypeEnum.ESSAY, "question_text": "second", "sort_order": 2},
            ]
        )
        questions = store.list_questions(exam.id)
        assert [q.question_text for q in questions] == ["first", "second", "third"]
        assert questions[0].question_type is QuestionType.ESSAY

    def test_string_options_get_letter_ids(self, store, make_exam):
        exam = make_exam(
            questions=[
                {
                    "question_type": QuestionTypeEnum.MULTIPLE_CHOICE,
                    "question_text": "Pick",
                    "options": ["Red", "Green"],
                    "correct_answer": "a",
                }
            ]
        )
        (question,) = store.list_questions(exam.id)
        assert [(o.id, o.text) for o in question.options] == [("a", "Red"), ("b", "Green")]

    def test_published_listing_hides_drafts_and_closed(self, store, make_exam, clock):
        open_exam = make_exam(title="Open")
        draft = make_exam(title="Draft", is_published=False)
        closed = make_exam(title="Closed", end_time=clock.now - timedelta(hours=1))

        ids = {e.id for e in store.list_published_exams(clock.now)}

        assert open_exam.id in ids
        assert draft.id not in ids
        assert closed.id not in ids


class TestAttempts:
    def test_create_and_find_in_progress(self, store, make_exam, student, clock):
        exam = make_exam()
        created = store.create_attempt(exam.id, student.id, clock.now)

        found = store.find_in_progress_attempt(exam.id, student.id)

        assert found.id == created.id
        assert found.status is AttemptStatus.IN_PROGRESS
        assert found.started_at == clock.now

    def test_submitted_attempt_is_not_in_progress(self, store, make_exam, student, clock):
        exam = make_exam()
        attempt = store.create_attempt(exam.id, student.id, clock.now)
        store.update_attempt(
            attempt.id,
            status=AttemptStatus.SUBMITTED,
            submitted_at=clock.now,
            score=5.0,
            time_spent_seconds=12,
        )

        assert store.find_in_progress_attempt(exam.id, student.id) is None
        stored = store.get_attempt(attempt.id)
        assert stored.status is AttemptStatus.SUBMITTED
        assert stored.score == 5.0
        assert stored.time_spent_seconds == 12

    def test_update_missing_attempt(self, store):
        with pytest.raises(StoreError):
            store.update_attempt(
                uuid.uuid4(),
                status=AttemptStatus.SUBMITTED,
                submitted_at=None,
                score=None,
                time_spent_seconds=None,
            )

    def test_history_includes_exam(self, store, make_exam, student, clock):
        exam = make_exam(title="History Quiz")
        store.create_attempt(exam.id, student.id, clock.now)

        rows = store.list_attempts(student.id)

        assert any(e.title == "History Quiz" for _, e in rows)


class TestAnswers:
    def test_upsert_is_idempotent(self, store, make_exam, student, clock):
        exam = make_exam()
        question = store.list_questions(exam.id)[0]
        attempt = store.create_attempt(exam.id, student.id, clock.now)

        store.upsert_answer(attempt.id, question.id, "a", False, 0.0)
        store.upsert_answer(attempt.id, question.id, "b", True, 10.0)

        answers = store.list_answers(attempt.id)
        assert len(answers) == 1
        assert answers[0].answer == "b"
        assert answers[0].is_correct is True
        assert answers[0].points_earned == 10.0

    def test_uncommitted_upsert_rolls_back(self, store, make_exam, student, clock):
        exam = make_exam()
        question = store.list_questions(exam.id)[0]
        attempt = store.create_attempt(exam.id, student.id, clock.now)

        store.upsert_answer(attempt.id, question.id, "b", True, 10.0, commit=False)
        store.rollback()

        assert store.list_answers(attempt.id) == []


class TestStoreErrors:
    def test_driver_error_becomes_store_error(self, store, db):
        with patch.object(db, "query", side_effect=OperationalError("SELECT", {}, Exception("gone"))):
            with pytest.raises(StoreError) as exc_info:
                store.list_questions(uuid.uuid4())
        assert exc_info.value.status_code == 503
        assert exc_info.value.error_code == "store_unavailable"
