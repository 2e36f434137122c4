"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import re
import tempfile
import itertools

# Settings are read at import time, so the environment must be ready first
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RANKING_SCOPE"] = "global"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="fanlist-test-logs-")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["YOUTUBE_API_KEY"] = ""

import pytest
from datetime import timedelta
from typing import AsyncGenerator
from faker import Faker
from httpx import ASGITransport, AsyncClient

from db.base import initialize_database
from db.session import build_engine, build_session_factory
from db.storage.database import DatabaseStorage
from db.storage.factory import get_storage
from db.storage.memory import MemoryStorage
from core.security import get_password_hash
from utils.dates import utcnow

# Initialize Faker for test data generation
fake = Faker()
_counter = itertools.count(1)

TEST_PASSWORD = "testpassword123"
# Hashing is slow with bcrypt; every fixture user shares one hash
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


def unique_username() -> str:
    base = re.sub(r"[^a-zA-Z0-9_-]", "", fake.user_name()) or "user"
    return f"{base[:40]}{next(_counter)}"


@pytest.fixture(params=["memory", "sql"])
async def storage(request) -> AsyncGenerator:
    """Every storage contract test runs against both backends."""
    if request.param == "memory":
        yield MemoryStorage(ranking_scope="global")
        return
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await initialize_database(bind=engine)
    yield DatabaseStorage(session_factory=build_session_factory(engine), ranking_scope="global")
    await engine.dispose()


@pytest.fixture
def make_user(storage):
    """Factory creating users straight in storage, optionally with a subscription state."""
    async def _make(role: str = "audience", subscription: str = None):
        username = unique_username()
        user = await storage.create_user(
            username=username,
            email=f"{username.lower()}@example.com",
            hashed_password=TEST_PASSWORD_HASH,
            role=role,
        )
        if subscription == "premium":
            user = await storage.update_user_subscription(user.id, {
                "subscription_status": "premium",
                "subscription_plan": "monthly",
                "subscription_start_date": utcnow(),
                "subscription_end_date": utcnow() + timedelta(days=30),
            })
        elif subscription == "trial":
            user = await storage.start_user_trial(user.id, 14)
        return user
    return _make


@pytest.fixture
async def creator(make_user):
    return await make_user(role="creator")


@pytest.fixture
async def premium_creator(make_user):
    return await make_user(role="creator", subscription="premium")


@pytest.fixture
async def audience(make_user):
    return await make_user()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage(ranking_scope="global")


@pytest.fixture
async def async_client(memory_storage) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app with storage swapped for a fresh in-memory one."""
    from main import app

    app.dependency_overrides[get_storage] = lambda: memory_storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def sample_user_data():
    """Sample signup payload."""
    username = unique_username()
    return {
        "username": username,
        "email": f"{username.lower()}@example.com",
        "password": TEST_PASSWORD,
        "role": "audience",
    }


@pytest.fixture
def sample_idea_data():
    return {
        "title": fake.sentence(nb_words=5)[:100],
        "description": fake.text(max_nb_chars=200),
    }
