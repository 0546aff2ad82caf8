from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, TypeVar
from urllib.parse import parse_qs

import pydantic
from fastapi import Request

from capsule_api.comments import CommentThreadManager
from capsule_api.config import Settings, load_settings
from capsule_api.domain.exceptions import AuthError, ValidationError
from capsule_api.domain.ports import KVTransport
from capsule_api.identity import IdentityStore
from capsule_api.notes import NoteRepository
from capsule_api.sessions import SESSION_COOKIE, MemorySessionStore, SessionGate
from capsule_api.store import KVStore, build_store

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


@lru_cache()
def get_settings() -> Settings:
    return load_settings()


@dataclass
class Services:
    settings: Settings
    store: KVStore
    identity: IdentityStore
    notes: NoteRepository
    comments: CommentThreadManager
    gate: SessionGate


def build_services(settings: Settings, transport: Optional[KVTransport] = None) -> Services:
    if transport is not None:
        store = KVStore(transport, timeout_s=settings.store_timeout_s)
    else:
        store = build_store(settings.db_url, timeout_s=settings.store_timeout_s)
    notes = NoteRepository(store, require_body=settings.note_require_body)
    return Services(
        settings=settings,
        store=store,
        identity=IdentityStore(store, bcrypt_rounds=settings.bcrypt_rounds),
        notes=notes,
        comments=CommentThreadManager(notes),
        gate=SessionGate(MemorySessionStore(ttl_s=settings.session_ttl_s), settings.session_secret),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def wants_json(request: Request) -> bool:
    return "application/json" in (request.headers.get("accept") or "")


def optional_user(request: Request) -> Optional[str]:
    services = get_services(request)
    return services.gate.identity(request.cookies.get(SESSION_COOKIE))


def current_user(request: Request) -> str:
    user = optional_user(request)
    if not user:
        raise AuthError("Login required", code="login_required")
    return user


async def read_payload(request: Request, model: type[ModelT]) -> ModelT:
    """Parse a JSON or urlencoded form body into ``model``."""
    raw = await request.body()
    data: object = {}
    if raw:
        content_type = request.headers.get("content-type") or ""
        if "application/json" in content_type:
            try:
                data = json.loads(raw)
            except ValueError as e:
                raise ValidationError("Malformed JSON body", code="bad_json") from e
        else:
            form = parse_qs(raw.decode("utf-8", errors="replace"), keep_blank_values=True)
            data = {k: v[0] for k, v in form.items()}
    if not isinstance(data, dict):
        raise ValidationError("Body must be an object", code="bad_body")
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid request body", code="bad_body") from e
