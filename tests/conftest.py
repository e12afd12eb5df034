import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL") or "sqlite:///./test.db"
os.environ.setdefault("LOG_DIR", "./test_logs")
os.environ["TESTING"] = "true"
os.environ["AI_GRADING_PROVIDER"] = "mock"

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models.registry  # noqa: F401
from app.core.config import settings
from app.core.constants import QuestionTypeEnum, RoleEnum
from app.core.database import Base, engine, get_db
from app.core.security import create_access_token
from app.models.exam import Exam
from app.models.exam_assignment import ExamAssignment
from app.models.question import Question
from app.models.user import User
from app.schemas.user import UserContext
from app.utils import deps as deps_utils
from tests.helpers.clock import T0
import main

test_db_url = settings.DATABASE_URL

@pytest.fixture(scope="session")
def database_engine():
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()
    if test_db_url.startswith("sqlite") and os.path.exists("./test.db"):
        os.remove("./test.db")

@pytest.fixture(scope="function")
def session_factory(database_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=database_engine)

@pytest.fixture(scope="function")
def db_session(session_factory, database_engine):
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.close()
        # services commit on their own, so every test starts from empty tables
        with database_engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())

@pytest.fixture(scope="function")
def client(db_session):
    from importlib import reload
    reload(main)
    main.app.dependency_overrides[get_db] = lambda: db_session
    main.app.dependency_overrides[deps_utils.get_db] = lambda: db_session
    with TestClient(main.app) as test_client:
        yield test_client

@pytest.fixture
def make_user(db_session):
    def _make(role: RoleEnum = RoleEnum.CANDIDATE, **overrides) -> User:
        user = User(
            full_name=overrides.pop("full_name", f"{role.value.title()} User"),
            email=overrides.pop("email", f"{role.value}-{uuid.uuid4().hex[:8]}@test.com"),
            role=role,
            is_active=overrides.pop("is_active", True),
            is_blocked=overrides.pop("is_blocked", False),
            **overrides,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make

@pytest.fixture
def context_for():
    def _context(user: User) -> UserContext:
        return UserContext(user=user, role=user.role)
    return _context

@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
    return _headers

@pytest.fixture
def candidate(make_user):
    return make_user(RoleEnum.CANDIDATE, full_name="Ada Candidate")

@pytest.fixture
def admin(make_user):
    return make_user(RoleEnum.ADMIN, full_name="Grace Admin")

@pytest.fixture
def instructor(make_user):
    return make_user(RoleEnum.INSTRUCTOR, full_name="Alan Instructor")

@pytest.fixture
def proctor(make_user):
    return make_user(RoleEnum.PROCTOR, full_name="Edsger Proctor")

def _choice(position: int, correct: int, points=1) -> Question:
    return Question(
        position=position,
        question_text=f"Objective question {position}?",
        question_type=QuestionTypeEnum.SINGLE_CHOICE,
        points=Decimal(str(points)),
        options=[{"id": 1, "text": "A"}, {"id": 2, "text": "B"}, {"id": 3, "text": "C"}],
        correct_option_ids=[correct],
    )

@pytest.fixture
def make_exam(db_session):
    """Published exam with three 1-point objective questions and one 2-point essay."""
    def _make(*, essay: bool = True, **overrides) -> Exam:
        exam = Exam(
            title=overrides.pop("title", f"Exam {uuid.uuid4().hex[:6]}"),
            duration_minutes=overrides.pop("duration_minutes", 60),
            pass_score=Decimal(str(overrides.pop("pass_score", 3))),
            max_attempts=overrides.pop("max_attempts", 1),
            is_active=overrides.pop("is_active", True),
            is_published=overrides.pop("is_published", True),
            **overrides,
        )
        exam.questions = [_choice(1, 1), _choice(2, 2), _choice(3, 3)]
        if essay:
            exam.questions.append(
                Question(
                    position=4,
                    question_text="Explain optimistic locking.",
                    question_type=QuestionTypeEnum.ESSAY,
                    points=Decimal("2"),
                    model_answer="version column compared on every update",
                )
            )
        db_session.add(exam)
        db_session.commit()
        db_session.refresh(exam)
        return exam
    return _make

@pytest.fixture
def assign(db_session):
    def _assign(exam: Exam, user: User, **schedule) -> ExamAssignment:
        assignment = ExamAssignment(
            exam_id=exam.id,
            candidate_id=user.id,
            is_active=True,
            assigned_by="test",
            assigned_at=T0,
            **schedule,
        )
        db_session.add(assignment)
        db_session.commit()
        db_session.refresh(assignment)
        return assignment
    return _assign

@pytest.fixture
def exam(make_exam):
    return make_exam()

@pytest.fixture
def assigned_exam(exam, candidate, assign):
    assign(exam, candidate)
    return exam
