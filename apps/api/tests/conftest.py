from __future__ import annotations

import dataclasses

import pytest
from fastapi.testclient import TestClient

from capsule_api.config import Settings
from capsule_api.dependencies import get_settings
from capsule_api.store import KVStore, MemoryDatabase

USERS = "paula@example.com:lene,bruno@example.com:linho"


def make_settings(**overrides) -> Settings:
    base = Settings(
        db_url=None,
        session_secret="test-secret",
        session_ttl_s=3600,
        session_cookie_secure=False,
        store_timeout_s=2.0,
        bootstrap_users_file=None,
        bootstrap_users=USERS,
        bcrypt_rounds=4,
        note_require_body=True,
        notes_public=True,
        debug_routes=False,
        api_debug_log=False,
    )
    return dataclasses.replace(base, **overrides)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class CountingDatabase(MemoryDatabase):
    """Counts set/delete calls so tests can assert nothing was written."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.writes = 0

    async def set_raw(self, key, value) -> None:
        self.writes += 1
        await super().set_raw(key, value)

    async def delete_raw(self, key) -> None:
        self.writes += 1
        await super().delete_raw(key)


@pytest.fixture
def db() -> CountingDatabase:
    return CountingDatabase()


@pytest.fixture
def store(db: MemoryDatabase) -> KVStore:
    return KVStore(db, timeout_s=2.0)


@pytest.fixture
def app_factory(db: MemoryDatabase):
    from main import create_app

    def factory(**overrides):
        return create_app(make_settings(**overrides), transport=db)

    return factory


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as c:
        yield c


def login(client: TestClient, email: str = "paula@example.com", password: str = "lene"):
    return client.post("/login", data={"email": email, "password": password}, follow_redirects=False)
