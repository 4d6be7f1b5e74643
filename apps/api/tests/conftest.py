"""
Pytest configuration and fixtures

Every test gets a fresh in-memory SQLite schema. Celery runs eagerly and
email, caching and rate limiting are switched off, so nothing leaves the
process. External collaborators (OpenAI, Resend) are replaced with fakes.
"""
import os
import sys

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from core.feature_flags import load_feature_flags  # noqa: E402
from core.security import create_access_token, get_password_hash  # noqa: E402
from models import AssessmentRound, CoachClientAssignment, Profile, UserRole  # noqa: E402
from services.ai_analysis import AnalysisResult  # noqa: E402

TEST_PASSWORD = "Correct-Horse-42"


class FakeAnalyzer:
    """Stands in for StefanAnalysisService; records every request."""

    def __init__(self, analysis="You are building steady habits.", recommendations=None):
        self.analysis = analysis
        self.recommendations = (
            ["Keep a fixed bedtime", "Take a ten minute walk after lunch"]
            if recommendations is None else recommendations
        )
        self.requests = []

    def analyze(self, request):
        self.requests.append(request)
        return AnalysisResult(success=True, analysis=self.analysis, recommendations=list(self.recommendations))


class FailingAnalyzer:
    def __init__(self):
        self.requests = []

    def analyze(self, request):
        self.requests.append(request)
        return AnalysisResult(success=False, error="upstream timeout")


@pytest.fixture(scope="function")
def db_session():
    """Fresh schema per test; dropped again afterwards."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_profile(db_session):
    """Factory: make_profile("coach@example.com", roles=["coach"])."""
    counter = {"n": 0}

    def _make(email=None, roles=("client",), first_name="Test", last_name="User", password=TEST_PASSWORD, is_active=True):
        counter["n"] += 1
        profile = Profile(
            email=(email or f"user{counter['n']}@example.com").lower(),
            password_hash=get_password_hash(password) if password else None,
            first_name=first_name,
            last_name=last_name,
            is_active=is_active,
            roles=[UserRole(role=r) for r in roles],
        )
        db_session.add(profile)
        db_session.flush()
        return profile

    return _make


@pytest.fixture
def client_profile(make_profile):
    return make_profile("client@example.com", roles=["client"], first_name="Anna")


@pytest.fixture
def coach_profile(make_profile):
    return make_profile("coach@example.com", roles=["coach"], first_name="Carl")


@pytest.fixture
def admin_profile(make_profile):
    return make_profile("admin@example.com", roles=["admin"], first_name="Ada")


@pytest.fixture
def superadmin_profile(make_profile):
    return make_profile("root@example.com", roles=["superadmin"], first_name="Sam")


@pytest.fixture
def assign(db_session):
    """Factory: active coach -> client assignment."""
    def _assign(coach, client, is_active=True):
        assignment = CoachClientAssignment(coach_id=coach.id, client_id=client.id, is_active=is_active)
        db_session.add(assignment)
        db_session.flush()
        return assignment

    return _assign


@pytest.fixture
def flags():
    return load_feature_flags()


@pytest.fixture
def fake_analyzer():
    return FakeAnalyzer()


@pytest.fixture
def failing_analyzer():
    return FailingAnalyzer()


@pytest.fixture
def client(db_session):
    """TestClient sharing the test session."""
    from main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """auth_headers(profile) -> bearer header dict."""
    def _headers(profile) -> dict:
        token = create_access_token(data={"sub": str(profile.id), "email": profile.email})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_round(db_session):
    """Factory: a stored round, without analysis unless one is given."""
    def _make(profile, kind="self_care", scores=None, created_at=None, ai_analysis=None, analysis_attempts=0):
        round_ = AssessmentRound(
            user_id=profile.id,
            pillar_key=kind,
            answers={},
            scores=scores or {"overall": 5.0},
            ai_analysis=ai_analysis,
            analysis_attempts=analysis_attempts,
        )
        if created_at is not None:
            round_.created_at = created_at
        db_session.add(round_)
        db_session.flush()
        return round_

    return _make
