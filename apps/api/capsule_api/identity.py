from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from pathlib import Path

import bcrypt
import yaml
from fastapi.concurrency import run_in_threadpool

from capsule_api.config import Settings
from capsule_api.domain.entities import User
from capsule_api.domain.exceptions import ValidationError
from capsule_api.store import KVStore

logger = logging.getLogger("capsule.identity")

USER_PREFIX = "user:"


@dataclass(frozen=True)
class BootstrapUser:
    email: str
    password: str


def user_key(email: str) -> str:
    return f"{USER_PREFIX}{email}"


def parse_bootstrap_yaml(text: str) -> list[BootstrapUser]:
    try:
        data = yaml.safe_load(text) or []
    except yaml.YAMLError as e:
        raise ValidationError("bootstrap_users_yaml_error") from e
    if isinstance(data, dict):
        data = data.get("users") or []
    if not isinstance(data, list):
        raise ValidationError("bootstrap_users_not_a_list")
    users: list[BootstrapUser] = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        email = entry.get("email")
        password = entry.get("password")
        if isinstance(email, str) and email.strip() and isinstance(password, str) and password:
            users.append(BootstrapUser(email=email.strip(), password=password))
    return users


def parse_bootstrap_inline(raw: str) -> list[BootstrapUser]:
    users: list[BootstrapUser] = []
    for chunk in raw.split(","):
        email, sep, password = chunk.strip().partition(":")
        if sep and email.strip() and password:
            users.append(BootstrapUser(email=email.strip(), password=password))
    return users


def load_bootstrap_users(settings: Settings) -> list[BootstrapUser]:
    users: list[BootstrapUser] = []
    path: Path | None = settings.bootstrap_users_file
    if path is not None:
        users.extend(parse_bootstrap_yaml(path.read_text(encoding="utf-8")))
    if settings.bootstrap_users:
        users.extend(parse_bootstrap_inline(settings.bootstrap_users))
    seen: set[str] = set()
    unique: list[BootstrapUser] = []
    for user in users:
        if user.email in seen:
            continue
        seen.add(user.email)
        unique.append(user)
    return unique


def hash_password(raw_password: str, *, rounds: int = 10) -> str:
    return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_password(raw_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash.
        return False


class IdentityStore:
    def __init__(self, store: KVStore, *, bcrypt_rounds: int = 10) -> None:
        self.store = store
        self.bcrypt_rounds = bcrypt_rounds
        # Checked against when the account is missing so both failure paths pay for one bcrypt check.
        self._dummy_hash = hash_password(secrets.token_urlsafe(16), rounds=bcrypt_rounds)

    async def get_user(self, email: str) -> User | None:
        return User.from_record(await self.store.get(user_key(email)))

    async def ensure_bootstrap_users(self, users: list[BootstrapUser]) -> list[str]:
        """Create missing accounts; existing credentials are never re-hashed. Returns the created emails."""
        created: list[str] = []
        for entry in users:
            if await self.store.get(user_key(entry.email)) is not None:
                logger.info("user_exists", extra={"email": entry.email})
                continue
            password_hash = await run_in_threadpool(hash_password, entry.password, rounds=self.bcrypt_rounds)
            await self.store.set(user_key(entry.email), User(entry.email, password_hash).to_record())
            logger.info("user_created", extra={"email": entry.email})
            created.append(entry.email)
        return created

    async def verify(self, email: str, raw_password: str) -> bool:
        user = await self.get_user(email) if email else None
        if user is None or not raw_password:
            await run_in_threadpool(check_password, raw_password or "", self._dummy_hash)
            return False
        return await run_in_threadpool(check_password, raw_password, user.password_hash)
