"""Unit tests for auto-grading and aggregate scoring."""

import uuid
from unittest.mock import MagicMock

import pytest

from cbt.core.errors import StoreError
from cbt.schemas.exam import QuestionDefinition, QuestionType
from cbt.services.scoring import (
    COMPLETION,
    CORRECTNESS,
    auto_grade,
    compute_score,
    grade_and_persist,
    grade_answers,
    is_auto_gradable,
)

EXAM_ID = uuid.uuid4()


def _mc(points: int = 1, key: str | None = "b") -> QuestionDefinition:
    return QuestionDefinition(
        id=uuid.uuid4(),
        exam_id=EXAM_ID,
        question_type=QuestionType.MULTIPLE_CHOICE,
        question_text="Pick one",
        options=[{"id": o, "text": f"Option {o}"} for o in "abcd"],
        correct_answer=key,
        points=points,
    )


def _tf(key: str = "false") -> QuestionDefinition:
    return QuestionDefinition(
        id=uuid.uuid4(),
        exam_id=EXAM_ID,
        question_type=QuestionType.TRUE_FALSE,
        question_text="RAM is persistent.",
        options=[{"id": "true", "text": "True"}, {"id": "false", "text": "False"}],
        correct_answer=key,
        points=2,
    )


def _short(key: str) -> QuestionDefinition:
    return QuestionDefinition(
        id=uuid.uuid4(),
        exam_id=EXAM_ID,
        question_type=QuestionType.SHORT_ANSWER,
        question_text="Name it",
        correct_answer=key,
        points=5,
    )


def _essay() -> QuestionDefinition:
    return QuestionDefinition(
        id=uuid.uuid4(),
        exam_id=EXAM_ID,
        question_type=QuestionType.ESSAY,
        question_text="Discuss",
        points=10,
    )


class TestAutoGrade:
    def test_multiple_choice_matching_key(self):
        assert auto_grade(_mc(), "b") is True

    def test_multiple_choice_wrong_option(self):
        assert auto_grade(_mc(), "a") is False

    def test_multiple_choice_case_insensitive(self):
        assert auto_grade(_mc(key="B"), "b") is True

    def test_multiple_choice_key_stored_as_option_text(self):
        assert auto_grade(_mc(key="Option c"), "c") is True

    def test_unanswered_is_incorrect(self):
        assert auto_grade(_mc(), None) is False
        assert auto_grade(_mc(), "   ") is False

    def test_essay_is_not_auto_gradable(self):
        essay = _essay()
        assert not is_auto_gradable(essay)
        assert auto_grade(essay, "A long answer") is None

    def test_question_without_key_is_not_auto_gradable(self):
        assert auto_grade(_mc(key=None), "b") is None

    def test_true_false(self):
        q = _tf("false")
        assert auto_grade(q, "false") is True
        assert auto_grade(q, "true") is False

    def test_true_false_key_as_word(self):
        assert auto_grade(_tf("No"), "false") is True

    def test_short_answer_spelling_variant(self):
        q = _short("World Health Organization")
        assert auto_grade(q, "the world health organisation") is True

    def test_short_answer_key_tokens(self):
        assert auto_grade(_short("Food and shelter"), "Food, Shelter") is True

    def test_short_answer_mismatch(self):
        assert auto_grade(_short("Photosynthesis"), "Respiration") is False


class TestComputeScore:
    def test_completion_uses_answered_fraction_of_total_points(self):
        questions = [_mc(points=p) for p in (10, 20, 30, 40)]
        answers = {questions[0].id: "a", questions[1].id: "b", questions[3].id: "c"}

        result = grade_answers(questions, answers, COMPLETION)

        assert result.score == pytest.approx(75.0)
        assert result.answered == 3
        assert result.total == 4
        assert result.total_points == 100

    def test_completion_ignores_correctness(self):
        questions = [_mc(points=10), _mc(points=10)]
        all_wrong = {q.id: "a" for q in questions}
        assert grade_answers(questions, all_wrong, COMPLETION).score == 20.0

    def test_correctness_sums_points_earned(self):
        questions = [_mc(points=10), _mc(points=20), _essay()]
        answers = {
            questions[0].id: "b",
            questions[1].id: "a",
            questions[2].id: "My essay",
        }

        result = grade_answers(questions, answers, CORRECTNESS)

        assert result.score == 10.0
        assert result.correct == 1
        grades = {g.question_id: g for g in result.grades}
        assert grades[questions[1].id].points_earned == 0.0
        assert grades[questions[2].id].is_correct is None
        assert grades[questions[2].id].points_earned is None

    def test_every_question_gets_a_grade(self):
        questions = [_mc(), _mc(), _essay()]
        result = grade_answers(questions, {questions[0].id: "b"})
        assert [g.question_id for g in result.grades] == [q.id for q in questions]
        assert result.grades[1].answer is None
        assert result.grades[1].is_correct is False

    def test_blank_answer_counts_as_unanswered(self):
        questions = [_mc(points=10), _mc(points=10)]
        result = grade_answers(questions, {questions[0].id: "  "})
        assert result.answered == 0
        assert result.score == 0.0

    def test_empty_exam_scores_zero(self):
        assert compute_score([], [], COMPLETION) == 0.0

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            compute_score([_mc()], [], "curve")


class TestGradeAndPersist:
    def test_upserts_one_row_per_question(self):
        store = MagicMock()
        questions = [_mc(points=10), _mc(points=10)]
        attempt_id = uuid.uuid4()

        result = grade_and_persist(
            store, attempt_id, questions, {questions[0].id: "b"}, atomic=True
        )

        assert result.score == 10.0
        assert store.upsert_answer.call_count == 2
        first = store.upsert_answer.call_args_list[0]
        assert first.args == (attempt_id, questions[0].id, "b", True, 10.0)
        assert first.kwargs == {"commit": False}

    def test_best_effort_commits_each_row(self):
        store = MagicMock()
        questions = [_mc()]
        grade_and_persist(store, uuid.uuid4(), questions, {}, atomic=False)
        assert store.upsert_answer.call_args.kwargs == {"commit": True}

    def test_store_failure_propagates(self):
        store = MagicMock()
        store.upsert_answer.side_effect = StoreError("down")
        with pytest.raises(StoreError):
            grade_and_persist(store, uuid.uuid4(), [_mc()], {})
