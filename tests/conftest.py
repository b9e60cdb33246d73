import pytest
from httpx import AsyncClient, ASGITransport
import os
from datetime import timedelta

# Set up test environment variables before anything else
os.environ["ENV"] = "testing"
os.environ["DB_NAME"] = "taskflow_notifications_test"
os.environ["SECRET_KEY"] = "test_secret_key_12345"
os.environ["CONSUMER_ENABLED"] = "false"

from config import config
config.ENV = "testing"

from main import app
from database import client
from routes.deps import create_access_token
from realtime.manager import manager
from fakes import AsyncMongoMockClient


@pytest.fixture(scope="function", autouse=True)
def mongo():
    """Point the shared motor proxy at a fresh in-memory mongomock database per test."""
    fake_client = AsyncMongoMockClient()
    client._client = fake_client
    client._db = fake_client[config.DB_NAME]
    yield fake_client[config.DB_NAME]
    client._client = None
    client._db = None


@pytest.fixture(scope="function", autouse=True)
def clean_connections():
    manager.clear()
    yield
    manager.clear()


@pytest.fixture(scope="function")
async def async_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture(scope="function")
def token_factory():
    def make_token(user_id: str, role: str = "team_member", email: str = None) -> str:
        return create_access_token(
            data={"id": user_id, "email": email or f"{user_id}@test.com", "role": role},
            expires_delta=timedelta(minutes=60),
        )
    return make_token


@pytest.fixture(scope="function")
def admin_headers(token_factory):
    return {"Authorization": f"Bearer {token_factory('admin_user', role='admin')}"}


@pytest.fixture(scope="function")
def member_headers(token_factory):
    return {"Authorization": f"Bearer {token_factory('member_user')}"}
