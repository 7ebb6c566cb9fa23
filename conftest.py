"""
Shared pytest fixtures.

The app reads its settings at import time, so the environment is pinned here before
anything from ``app`` or ``main`` is imported: a throwaway SQLite file, in-process
session and rate-limit storage, and no background scheduler.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="exam-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'exams.db')}"
os.environ["SESSION_DRIVER"] = "memory"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["DEBUG"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.database import Base, SessionLocal, engine  # noqa: E402
from app.core.session import AttemptSession, MemorySessionStore  # noqa: E402
from app.schemas.practice import PracticeTestCreate, QuestionCreate  # noqa: E402
from app.services.practice import PracticeTestService, QuestionService  # noqa: E402
from main import app  # noqa: E402


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def attempt(store):
    return AttemptSession(store, "session-one")


@pytest.fixture
def make_test(db):
    """Create a test with the given questions: each item is (choices, correct_answer)."""

    def _make(title="Radiation Protection", questions=(), **fields):
        test = PracticeTestService(db).create_test(
            PracticeTestCreate(title=title, **fields)
        )
        created = []
        for i, (choices, correct) in enumerate(questions):
            created.append(
                QuestionService(db).create_question(
                    QuestionCreate(
                        test_id=test.id,
                        prompt_text=f"Question {i + 1}",
                        choices=list(choices),
                        correct_answer=correct,
                    )
                )
            )
        return test, created

    return _make
