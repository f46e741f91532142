# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ddlog.auth import AuthService
from ddlog.config import Settings
from ddlog.database import init_db, make_engine, make_session_factory
from ddlog.main import create_app
from ddlog.tasks import TaskStore


class FakeClock:
    """Controllable UTC clock. Starts at real time so issued JWTs are not already expired."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    # bcrypt's minimum cost keeps hashing fast in tests.
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'ddlog.sqlite3'}",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def session(settings: Settings):
    engine = make_engine(settings.database_url)
    init_db(engine)
    s = make_session_factory(engine)()
    try:
        yield s
    finally:
        s.close()
        engine.dispose()


@pytest.fixture()
def auth(session, settings: Settings, clock: FakeClock) -> AuthService:
    return AuthService(session, settings, clock=clock)


@pytest.fixture()
def owner_id(auth: AuthService) -> str:
    return auth.setup("123456").id


@pytest.fixture()
def store(session, clock: FakeClock) -> TaskStore:
    return TaskStore(session, clock=clock)


@pytest.fixture()
def client(settings: Settings, clock: FakeClock):
    with TestClient(create_app(settings, clock=clock)) as c:
        yield c


@pytest.fixture()
def auth_headers(client: TestClient) -> dict:
    assert client.post("/api/auth/setup", json={"pin": "246810"}).status_code == 201
    token = client.post("/api/auth/login", json={"pin": "246810"}).json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}
