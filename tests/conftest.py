import asyncio

import pytest
from fastapi.testclient import TestClient

from archetype_quiz.auth.crypto import hash_password
from archetype_quiz.config import DEFAULT_DEFINITION_PATH
from archetype_quiz.schemas.records import AdminAccount
from archetype_quiz.scoring.engine import ArchetypeEngine
from archetype_quiz.services.lifecycle import SubmissionLifecycleManager
from archetype_quiz.services.rate_limiter import InMemoryRateLimiter
from archetype_quiz.services.storage import InMemoryStorage

ADMIN_USERNAME = "admin"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "correct horse battery staple"


class FakeClock:
    """Manually advanced epoch clock for rate limiter tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def engine() -> ArchetypeEngine:
    return ArchetypeEngine.from_file(str(DEFAULT_DEFINITION_PATH))


@pytest.fixture(scope="session")
def admin_password_hash() -> str:
    # Argon2 is deliberately slow, hash once per session
    return hash_password(ADMIN_PASSWORD)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def rate_limiter(clock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(max_attempts=3, window_seconds=3600, clock=clock)


@pytest.fixture
def manager(engine, storage, rate_limiter) -> SubmissionLifecycleManager:
    return SubmissionLifecycleManager(engine=engine, storage=storage, rate_limiter=rate_limiter)


@pytest.fixture
def seeded_storage(storage, admin_password_hash) -> InMemoryStorage:
    account = AdminAccount(username=ADMIN_USERNAME, email=ADMIN_EMAIL, password_hash=admin_password_hash)
    asyncio.run(storage.upsert_admin(account))
    return storage


@pytest.fixture
def app(engine, seeded_storage):
    from main import create_app
    return create_app(
        storage=seeded_storage,
        rate_limiter=InMemoryRateLimiter(max_attempts=3, window_seconds=3600),
        engine=engine,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client):
    response = client.post("/api/admin/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
