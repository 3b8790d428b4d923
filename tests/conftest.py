import os
import tempfile
from datetime import timedelta
from types import SimpleNamespace

_DB_DIR = tempfile.mkdtemp(prefix="duesync-tests-")

# Settings are read at import time, so point them at a throwaway database first
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["CRON_SECRET"] = ""
os.environ["EMAIL_HOST"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from app.database import AsyncSessionLocal, Base, engine
from app.dependencies import get_calendar_adapter
from app.main import app
from app.models.user import Account, Session, User
from app.utils.cache import query_cache
from app.utils.rate_limit import rate_limiter
from app.utils.security import create_access_token, new_session_token
from app.utils.timeutils import utcnow

from fakes import FakeCalendar


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    query_cache.clear()
    rate_limiter.clear()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Connections are bound to this test's event loop
    await engine.dispose()


@pytest.fixture()
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture()
def fake_calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture()
async def client(fake_calendar):
    app.dependency_overrides[get_calendar_adapter] = lambda: fake_calendar
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user():
    """Create a signed-in user directly in the database and return its auth headers."""

    async def _make(email: str = "alice@example.com", timezone: str = "UTC", google: bool = True):
        async with AsyncSessionLocal() as session:
            user = User(email=email, name=email.split("@")[0], timezone=timezone, google_id=f"g-{email}")
            session.add(user)
            await session.flush()
            if google:
                session.add(Account(
                    user_id=user.user_id,
                    provider="google",
                    provider_account_id=f"g-{email}",
                    access_token="ya29.test",
                    refresh_token="1//refresh",
                ))
            token = new_session_token()
            expires_at = utcnow() + timedelta(days=1)
            session.add(Session(session_token=token, user_id=user.user_id, expires_at=expires_at))
            await session.commit()
            jwt = create_access_token(user.user_id, token, expires_at)
            return SimpleNamespace(
                user_id=user.user_id,
                email=email,
                session_token=token,
                headers={"Authorization": f"Bearer {jwt}"},
            )

    return _make


@pytest.fixture()
async def alice(make_user):
    return await make_user("alice@example.com")


@pytest.fixture()
async def bob(make_user):
    return await make_user("bob@example.com")


@pytest.fixture()
def create_task(client):
    async def _create(user, **fields):
        payload = {"title": "Write report", "dueDate": utcnow().date().isoformat(), **fields}
        resp = await client.post("/tasks", json=payload, headers=user.headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["task"]

    return _create
