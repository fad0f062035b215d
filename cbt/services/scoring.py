"""Scoring engine: auto-grading and grade-and-persist at submission.

Multiple-choice compares the selected option id with the stored key
(case-insensitive; a key stored as option text also matches).
True/false compares normalised booleans.
Short-answer, when a key is stored, uses a two-tier text match:
  1. Normalised text comparison (case, punctuation, articles, spelling)
  2. Key-token matching (every key token present in the student answer)
Essays are never auto-graded.

Aggregate score strategies
--------------------------
- ``completion``: ``answered / total × sum(points)``. The default
  policy: answering counts, correctness does not.
- ``correctness``: ``sum(points_earned)`` over auto-graded items.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Mapping

from cbt.core.errors import StoreError
from cbt.schemas.exam import QuestionDefinition, QuestionType

logger = logging.getLogger(__name__)

COMPLETION = "completion"
CORRECTNESS = "correctness"
STRATEGIES = (COMPLETION, CORRECTNESS)

# ── Text normalisation helpers ────────────────────────────────────────────────

_STRIP_ARTICLES = re.compile(r"\b(the|a|an)\b", re.IGNORECASE)
_STRIP_PUNCT = re.compile(r"[^\w\s]")
_MULTI_SPACE = re.compile(r"\s+")


def _normalise(text: str) -> str:
    """Aggressively normalise text for comparison.

    Lowercases, strips articles, punctuation, and collapses whitespace.
    'World Health Organisation' → 'world health organisation'
    'Food, Shelter' → 'food shelter'
    """
    t = text.lower().strip()
    t = _STRIP_ARTICLES.sub(" ", t)
    t = _STRIP_PUNCT.sub(" ", t)
    t = _MULTI_SPACE.sub(" ", t).strip()
    return t


_SPELLING_EQUIVALENTS: list[tuple[str, str]] = [
    ("organization", "organisation"),
    ("recognize", "recognise"),
    ("analyze", "analyse"),
    ("center", "centre"),
    ("color", "colour"),
    ("behavior", "behaviour"),
    ("defense", "defence"),
    ("license", "licence"),
    ("program", "programme"),
]


def _unify_spelling(text: str) -> str:
    """Map British spelling variants onto the American form."""
    t = text.lower()
    for american, british in _SPELLING_EQUIVALENTS:
        t = t.replace(british, american)
    return t


def _text_match(student: str, correct: str) -> bool:
    """Tier 1: equal after normalisation + spelling unification."""
    return _unify_spelling(_normalise(student)) == _unify_spelling(_normalise(correct))


_NOISE = {"and", "or", "of", "for", "in", "to", "is", "are", "was", "were", "be"}


def _token_match(student: str, correct: str) -> bool:
    """Tier 2: every key token of the correct answer appears in the student's.

    'Food and shelter' matches 'Food, Shelter'; a trailing plural 's' on
    the student's tokens is tolerated.
    """
    student_tokens = set(_unify_spelling(_normalise(student)).split())
    correct_tokens = set(_unify_spelling(_normalise(correct)).split())

    correct_key = {t for t in correct_tokens - _NOISE if len(t) > 1}
    student_key = {t for t in student_tokens - _NOISE if len(t) > 1}
    if not correct_key:
        return False

    student_expanded = set(student_key)
    for token in student_key:
        if token.endswith("s") and len(token) > 2:
            student_expanded.add(token[:-1])
    return correct_key.issubset(student_expanded)


_TRUE_WORDS = {"true", "t", "yes", "y", "1", "benar"}
_FALSE_WORDS = {"false", "f", "no", "n", "0", "salah"}


def _as_bool(value: str) -> bool | None:
    v = value.strip().lower()
    if v in _TRUE_WORDS:
        return True
    if v in _FALSE_WORDS:
        return False
    return None


# ── Per-question grading ─────────────────────────────────────────────────────


def is_auto_gradable(question: QuestionDefinition) -> bool:
    """Whether the engine can decide correctness for *question*."""
    if question.correct_answer is None or not question.correct_answer.strip():
        return False
    return question.question_type in (
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.TRUE_FALSE,
        QuestionType.SHORT_ANSWER,
    )


def auto_grade(question: QuestionDefinition, value: str | None) -> bool | None:
    """Grade one answer.

    Returns ``None`` when the question cannot be graded automatically
    (essays, or no stored key). An unanswered auto-gradable question is
    ``False``: no answer does not match the key.
    """
    if not is_auto_gradable(question):
        return None

    student = (value or "").strip()
    if not student:
        return False
    correct = question.correct_answer.strip()

    if question.question_type == QuestionType.MULTIPLE_CHOICE:
        if student.lower() == correct.lower():
            return True
        # Keys authored as option text rather than option id
        chosen_text = question.option_text(student)
        return chosen_text is not None and chosen_text.strip().lower() == correct.lower()

    if question.question_type == QuestionType.TRUE_FALSE:
        chosen_text = question.option_text(student)
        chosen = _as_bool(chosen_text) if chosen_text is not None else _as_bool(student)
        expected = _as_bool(correct)
        if expected is None:
            expected_text = question.option_text(correct)
            expected = _as_bool(expected_text) if expected_text is not None else None
        if chosen is None or expected is None:
            return student.lower() == correct.lower()
        return chosen == expected

    if _text_match(student, correct):
        logger.debug("Text match: '%s' ≈ '%s'", student[:40], correct[:40])
        return True
    if _token_match(student, correct):
        logger.debug("Token match: '%s' ≈ '%s'", student[:40], correct[:40])
        return True
    return False


def points_for(question: QuestionDefinition, is_correct: bool | None) -> float | None:
    if is_correct is None:
        return None
    return float(question.points) if is_correct else 0.0


# ── Aggregate scoring ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class QuestionGrade:
    question_id: uuid.UUID
    answer: str | None
    is_correct: bool | None
    points_earned: float | None


@dataclass
class GradeResult:
    score: float
    answered: int
    total: int
    total_points: int
    correct: int
    strategy: str
    grades: list[QuestionGrade] = field(default_factory=list)


def _is_answered(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def compute_score(
    questions: list[QuestionDefinition],
    grades: list[QuestionGrade],
    strategy: str = COMPLETION,
) -> float:
    """Aggregate score for an attempt under *strategy*."""
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown scoring strategy: {strategy!r}")
    if not questions:
        return 0.0
    if strategy == CORRECTNESS:
        return float(sum(g.points_earned or 0.0 for g in grades))
    answered = sum(1 for g in grades if _is_answered(g.answer))
    total_points = sum(q.points for q in questions)
    return answered / len(questions) * total_points


def grade_answers(
    questions: list[QuestionDefinition],
    answers: Mapping[uuid.UUID, str],
    strategy: str = COMPLETION,
) -> GradeResult:
    """Grade every exam question (answered or not) without touching the store."""
    grades = []
    for question in questions:
        value = answers.get(question.id)
        if not _is_answered(value):
            value = None
        is_correct = auto_grade(question, value)
        grades.append(
            QuestionGrade(
                question_id=question.id,
                answer=value,
                is_correct=is_correct,
                points_earned=points_for(question, is_correct),
            )
        )
    return GradeResult(
        score=compute_score(questions, grades, strategy),
        answered=sum(1 for g in grades if g.answer is not None),
        total=len(questions),
        total_points=sum(q.points for q in questions),
        correct=sum(1 for g in grades if g.is_correct),
        strategy=strategy,
        grades=grades,
    )


def grade_and_persist(
    store,
    attempt_id: uuid.UUID,
    questions: list[QuestionDefinition],
    answers: Mapping[uuid.UUID, str],
    strategy: str = COMPLETION,
    atomic: bool = True,
) -> GradeResult:
    """Grade the buffer and upsert one answer row per exam question.

    With ``atomic`` the upserts are only flushed; the caller commits them
    together with the attempt update. Otherwise each row commits on its
    own and a failure leaves earlier rows in place.
    """
    result = grade_answers(questions, answers, strategy)
    for grade in result.grades:
        try:
            store.upsert_answer(
                attempt_id,
                grade.question_id,
                grade.answer,
                grade.is_correct,
                grade.points_earned,
                commit=not atomic,
            )
        except StoreError:
            logger.error(
                "Saving answer for question %s of attempt %s failed",
                grade.question_id,
                attempt_id,
            )
            raise
    logger.info(
        "Graded attempt %s: %d/%d answered, %d correct, score=%.2f (%s)",
        attempt_id,
        result.answered,
        result.total,
        result.correct,
        result.score,
        strategy,
    )
    return result
