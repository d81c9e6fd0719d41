# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Each test gets its own SQLite database file (aiosqlite)."""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./p3academy-test.db"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["MAILER"] = "console"

import re
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from p3academy_server.auth import hash_password
from p3academy_server.database import get_db, init_db, make_session_maker
from p3academy_server.main import app
from p3academy_server.models import User
from p3academy_server.rate_limit import reset_limits
from p3academy_server.services.email import EmailMessage
from p3academy_server.services.password_reset import PasswordResetService, get_password_reset_service
from p3academy_server.services.reset_tokens import ResetTokenStore

TOKEN_RE = re.compile(r"reset-password\?token=([A-Za-z0-9_\-]+)")


class RecordingNotifier:
    """Notifier that keeps messages in memory."""

    def __init__(self, fail: bool = False):
        self.sent: list[EmailMessage] = []
        self.fail = fail

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        self.sent.append(EmailMessage(to, subject, html_body, text_body))
        return not self.fail

    def last_token(self) -> str:
        match = TOKEN_RE.search(self.sent[-1].text_body)
        assert match, "no reset link in email"
        return match.group(1)


class ManualClock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_limits()
    yield
    reset_limits()


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def reset_service(session_maker, notifier, clock):
    return PasswordResetService(
        session_maker=session_maker,
        store=ResetTokenStore(ttl=timedelta(minutes=60)),
        notifier=notifier,
        client_base_url="http://client.test",
        revoke_other_tokens=True,
        clock=clock,
    )


@pytest.fixture
async def client(session_maker, reset_service):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_password_reset_service] = lambda: reset_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(session_maker, email: str, password: str, role: str = "student", **fields) -> User:
    async with session_maker() as session:
        user = User(email=email, password_hash=hash_password(password), role=role, **fields)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest.fixture
async def student(session_maker):
    return await create_user(session_maker, "user@x.com", "OldPass123", first_name="Mei")


@pytest.fixture
async def admin_user(session_maker):
    return await create_user(session_maker, "admin@x.com", "AdminPass1", role="admin")


async def login(client: AsyncClient, email: str, password: str) -> dict:
    r = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    # callers pass the token explicitly; drop the session cookie login just set
    client.cookies.clear()
    return r.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
