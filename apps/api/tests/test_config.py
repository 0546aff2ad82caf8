from __future__ import annotations

import logging

from conftest import make_settings
from fastapi.testclient import TestClient

from capsule_api.config import DEFAULT_SESSION_SECRET, load_settings
from capsule_api.store import KVStore, MemoryDatabase, ReplitDatabase, build_store

_VARS = [
    "REPLIT_DB_URL",
    "SESSION_SECRET",
    "SESSION_TTL_S",
    "STORE_TIMEOUT_S",
    "BOOTSTRAP_USERS_FILE",
    "BOOTSTRAP_USERS",
    "NOTE_REQUIRE_BODY",
    "NOTES_PUBLIC",
    "DEBUG_ROUTES",
]


def test_defaults(monkeypatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.db_url is None
    assert settings.session_secret == DEFAULT_SESSION_SECRET
    assert settings.note_require_body is True
    assert settings.notes_public is True
    assert settings.debug_routes is False
    assert settings.bcrypt_rounds == 10
    assert settings.bootstrap_users_file is None


def test_env_overrides(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("REPLIT_DB_URL", "https://kv.example.com/db")
    monkeypatch.setenv("SESSION_SECRET", "s3cret")
    monkeypatch.setenv("STORE_TIMEOUT_S", "2.5")
    monkeypatch.setenv("NOTE_REQUIRE_BODY", "false")
    monkeypatch.setenv("NOTES_PUBLIC", "0")
    monkeypatch.setenv("BOOTSTRAP_USERS_FILE", str(tmp_path / "users.yaml"))
    settings = load_settings()
    assert settings.db_url == "https://kv.example.com/db"
    assert settings.session_secret == "s3cret"
    assert settings.store_timeout_s == 2.5
    assert settings.note_require_body is False
    assert settings.notes_public is False
    assert settings.bootstrap_users_file == (tmp_path / "users.yaml").resolve()


def test_missing_store_endpoint_warns_loudly(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="capsule.store"):
        kv = build_store(None, timeout_s=1.0)
    assert isinstance(kv.transport, MemoryDatabase)
    assert "REPLIT_DB_URL" in caplog.text


def test_store_endpoint_selects_http_transport() -> None:
    kv = build_store("https://kv.example.com/db", timeout_s=1.0)
    assert isinstance(kv, KVStore)
    assert isinstance(kv.transport, ReplitDatabase)
    assert kv.transport.url == "https://kv.example.com/db"


def test_bad_bootstrap_file_does_not_block_startup(tmp_path, db) -> None:
    from main import create_app

    users_file = tmp_path / "users.yaml"
    users_file.write_text("- email: [unclosed\n", encoding="utf-8")
    app = create_app(make_settings(bootstrap_users_file=users_file), transport=db)
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    assert db.data == {}
