from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from tasklist.core.config import Settings
from tasklist.main import create_app
from tasklist.services.token_service import TokenService
from tasklist.services.token_store import RevocationRegistry

ACCESS_SECRET = "test-access-secret-for-automation-only-0123456789"
REFRESH_SECRET = "test-refresh-secret-for-automation-only-9876543210"


class FakeClock:
    """Controllable replacement for the token service clock."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        environment="test",
        jwt_access_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        bcrypt_rounds=4,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        seed_demo_user=True,
        demo_username="carlos",
        demo_password="secret123",
        rate_limit_enabled=False,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return RevocationRegistry()


@pytest.fixture
def token_service(settings, registry, clock):
    return TokenService(settings, registry, clock=clock)


@pytest.fixture
def client(settings, token_service):
    """Client for a fresh app; the token service shares the test clock."""
    with TestClient(create_app(settings, token_service=token_service)) as c:
        yield c


def register(client, username: str, password: str = "secret123"):
    return client.post("/auth/register", json={"username": username, "password": password})


def auth_header(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def alice(client):
    """Registered user alice: returns the register response body."""
    res = register(client, "alice")
    assert res.status_code == 201
    return res.json()
