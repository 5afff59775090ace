"""
Shared fixtures: a throwaway SQLite database per test, seeded users and
bearer headers. Redis points at a closed port so revocation uses the
database fallback.
"""

import os
import sys
from pathlib import Path

import pytest

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:1/0")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["OUTBOX_AUTOSTART"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from fastapi.testclient import TestClient

from lawbridge.config import get_settings

get_settings.cache_clear()

from lawbridge.auth import create_access_token, get_password_hash
from lawbridge.db.models import Role, User, UserStatus
from lawbridge.db.session import get_db_session, init_db, reset_engine
from lawbridge.token_blacklist import reset_redis_client


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    """Fresh SQLite database for one test"""
    url = f"sqlite:///{tmp_path / 'lawbridge_test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    reset_engine()
    reset_redis_client()
    init_db()
    yield url
    reset_engine()


@pytest.fixture
def make_user(db_url):
    """Create a user and return its id. Passwords are hashed only when given."""
    counter = {"n": 0}

    def _make(role=Role.ADVOCATE, name=None, password=None, status=UserStatus.ACTIVE, email=None):
        counter["n"] += 1
        role = Role(role)
        with get_db_session() as db:
            user = User(
                name=name or f"{role.value.title()} {counter['n']}",
                email=email or f"{role.value}{counter['n']}@example.com",
                role=role,
                status=status,
                password_hash=get_password_hash(password) if password else None,
            )
            db.add(user)
            db.flush()
            return user.id

    return _make


@pytest.fixture
def users(make_user):
    return {
        "admin": make_user(Role.ADMIN, "Ada Admin"),
        "advocate": make_user(Role.ADVOCATE, "Amani Advocate"),
        "other_advocate": make_user(Role.ADVOCATE, "Otieno Advocate"),
        "arbitrator": make_user(Role.ARBITRATOR, "Ari Arbitrator"),
        "paralegal": make_user(Role.PARALEGAL, "Pat Paralegal"),
        "client": make_user(Role.CLIENT, "Chloe Client"),
        "respondent": make_user(Role.RESPONDENT, "Rhys Respondent"),
    }


ROLE_OF_FIXTURE = {
    "admin": Role.ADMIN,
    "advocate": Role.ADVOCATE,
    "other_advocate": Role.ADVOCATE,
    "arbitrator": Role.ARBITRATOR,
    "paralegal": Role.PARALEGAL,
    "client": Role.CLIENT,
    "respondent": Role.RESPONDENT,
}


@pytest.fixture
def auth(users):
    """auth("advocate") -> Authorization header for that seeded user"""

    def _headers(who: str):
        token = create_access_token(users[who], ROLE_OF_FIXTURE[who])
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def app(db_url):
    from lawbridge.api import app as lawbridge_app

    lawbridge_app.state.outbox.clear()
    yield lawbridge_app
    lawbridge_app.state.outbox.clear()


@pytest.fixture
def client(app):
    """HTTP client without lifespan: the dispatcher stays idle and events remain queued."""
    return TestClient(app)


@pytest.fixture
def outbox(app):
    return app.state.outbox
