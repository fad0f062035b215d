"""Shared pytest fixtures for backend tests."""

import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cbt.api.deps import get_registry
from cbt.core.identity import StudentSession
from cbt.core.security import create_access_token
from cbt.db.models import Course, Exam, Question, QuestionTypeEnum, RoleEnum, User
from cbt.db.session import Base, get_db
from cbt.main import app
from cbt.services.registry import AttemptRegistry
from cbt.services.store import ExamRepository


# Use an in-memory SQLite database for testing with static pool
SQLALCHEMY_TEST_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Use StaticPool to keep connection alive
    echo=False,
)
TestSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

# Create all tables once at startup
Base.metadata.create_all(bind=engine)


class FakeClock:
    """Controllable UTC clock injected wherever ``utcnow`` would be used."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(scope="function")
def db():
    """Get a fresh DB session for each test."""
    session = TestSession()
    try:
        yield session
    finally:
        session.rollback()  # Rollback changes after each test
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(db: Session) -> ExamRepository:
    return ExamRepository(db)


@pytest.fixture
def store_factory(db: Session):
    """Store factory bound to the test session (stands in for session_scope)."""

    @contextmanager
    def factory():
        yield ExamRepository(db)

    return factory


@pytest.fixture
def student(db: Session) -> User:
    user = User(
        email=f"student_{uuid.uuid4().hex[:8]}@ex.com",
        full_name="Test Student",
        role=RoleEnum.STUDENT,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def session(student: User) -> StudentSession:
    return StudentSession(student_id=student.id)


@pytest.fixture
def make_exam(db: Session):
    """Factory: ``make_exam(points=[10, 20], duration_minutes=1, ...)``.

    Questions are multiple choice with options a–d and key ``b`` unless
    ``questions`` is given as a list of Question keyword dicts.
    """

    def _make(
        points: list[int] | None = None,
        questions: list[dict] | None = None,
        **exam_kwargs,
    ) -> Exam:
        owner = User(
            email=f"instructor_{uuid.uuid4().hex[:8]}@ex.com",
            full_name="Test Instructor",
            role=RoleEnum.INSTRUCTOR,
        )
        db.add(owner)
        db.flush()
        course = Course(title="Algorithms", owner_id=owner.id)
        db.add(course)
        db.flush()

        exam_kwargs.setdefault("title", "Midterm")
        exam_kwargs.setdefault("duration_minutes", 60)
        exam_kwargs.setdefault("is_published", True)
        exam = Exam(course_id=course.id, **exam_kwargs)
        db.add(exam)
        db.flush()

        if questions is None:
            questions = [
                {
                    "question_type": QuestionTypeEnum.MULTIPLE_CHOICE,
                    "question_text": f"Question {i + 1}?",
                    "options": [{"id": o, "text": f"Option {o}"} for o in "abcd"],
                    "correct_answer": "b",
                    "points": p,
                }
                for i, p in enumerate(points or [10, 10])
            ]
        for i, q in enumerate(questions):
            q = dict(q)
            q.setdefault("sort_order", i + 1)
            db.add(Question(exam_id=exam.id, **q))
        db.commit()
        db.refresh(exam)
        return exam

    return _make


@pytest.fixture
def registry(store_factory, clock) -> AttemptRegistry:
    """Registry without background tickers; expiry is checked on access."""
    return AttemptRegistry(store_factory, clock=clock, tick_interval=0)


@pytest.fixture(scope="function")
def client(db: Session, registry: AttemptRegistry):
    """FastAPI test client with overridden DB and registry dependencies."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry

    # Remove TrustedHostMiddleware for tests to allow 'testserver' host
    app.user_middleware = [m for m in app.user_middleware if "TrustedHost" not in str(m)]

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(student: User) -> dict:
    token = create_access_token(data={"sub": str(student.id), "role": "student"})
    return {"Authorization": f"Bearer {token}"}
