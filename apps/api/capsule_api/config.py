from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SESSION_SECRET = "dev-secret"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    db_url: str | None
    session_secret: str
    session_ttl_s: int
    session_cookie_secure: bool
    store_timeout_s: float
    bootstrap_users_file: Path | None
    bootstrap_users: str
    bcrypt_rounds: int
    note_require_body: bool
    notes_public: bool
    debug_routes: bool
    api_debug_log: bool


def load_settings() -> Settings:
    db_url = os.environ.get("REPLIT_DB_URL") or None
    session_secret = os.environ.get("SESSION_SECRET") or DEFAULT_SESSION_SECRET
    session_ttl_s = int(os.environ.get("SESSION_TTL_S", "604800"))
    session_cookie_secure = _env_bool("SESSION_COOKIE_SECURE", "false")
    store_timeout_s = float(os.environ.get("STORE_TIMEOUT_S", "10"))
    users_file = os.environ.get("BOOTSTRAP_USERS_FILE")
    bootstrap_users_file = Path(users_file).resolve() if users_file else None
    bootstrap_users = os.environ.get("BOOTSTRAP_USERS", "")
    bcrypt_rounds = int(os.environ.get("BCRYPT_ROUNDS", "10"))
    note_require_body = _env_bool("NOTE_REQUIRE_BODY", "true")
    notes_public = _env_bool("NOTES_PUBLIC", "true")
    debug_routes = _env_bool("DEBUG_ROUTES", "false")
    api_debug_log = _env_bool("API_DEBUG_LOG", "false")
    return Settings(
        db_url=db_url,
        session_secret=session_secret,
        session_ttl_s=session_ttl_s,
        session_cookie_secure=session_cookie_secure,
        store_timeout_s=store_timeout_s,
        bootstrap_users_file=bootstrap_users_file,
        bootstrap_users=bootstrap_users,
        bcrypt_rounds=bcrypt_rounds,
        note_require_body=note_require_body,
        notes_public=notes_public,
        debug_routes=debug_routes,
        api_debug_log=api_debug_log,
    )
