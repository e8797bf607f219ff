"""
Pytest configuration and fixtures: an in-memory Mongo (mongomock-motor) per test,
an httpx client bound to the ASGI app, and an authenticated lending user.
"""
import os

# Required settings must exist before library_api.core.config is imported.
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_library_tests")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017/library_test")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from library_api.core.security import create_access_token, get_password_hash
from library_api.db.database import init_db
from library_api.main import app
from library_api.models.user import User

TEST_PASSWORD = "secret123"


@pytest.fixture
async def db():
    """Fresh in-memory database with every document model registered."""
    mongo_client = AsyncMongoMockClient()
    database = mongo_client["library_test"]
    await init_db(database=database)
    yield database


@pytest.fixture
async def client(db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def user(db):
    user = User(
        username="librarian",
        email="librarian@example.com",
        full_name="Acme Librarian",
        hashed_password=get_password_hash(TEST_PASSWORD),
        company="acme",
    )
    await user.insert()
    return user


@pytest.fixture
def auth_headers(user):
    token = create_access_token({"sub": user.username})
    return {"Authorization": f"Bearer {token}"}



@pytest.fixture
async def outsider(db):
    """A user of another tenant."""
    user = User(username="globex-clerk", hashed_password=get_password_hash(TEST_PASSWORD), company="globex")
    await user.insert()
    return user


@pytest.fixture
def outsider_headers(outsider):
    token = create_access_token({"sub": outsider.username})
    return {"Authorization": f"Bearer {token}"}
