from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from capsule_api.domain.entities import Note
from capsule_api.domain.exceptions import ConflictError, StoreError, ValidationError
from capsule_api.store import KVStore
from capsule_api.util import TimeIdGenerator, parse_rfc3339, rfc3339_now, split_csv

logger = logging.getLogger("capsule.notes")

NOTE_PREFIX = "note:"
_MAX_ID_ATTEMPTS = 50
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def note_key(note_id: str) -> str:
    return f"{NOTE_PREFIX}{note_id}"


@dataclass(frozen=True)
class NoteFields:
    title: str = ""
    content: str = ""
    tags: str = ""
    link: str = ""


class KeyedLocks:
    """
    One ``asyncio.Lock`` per key, dropped once nobody holds or waits on it.

    Serializes mutations of the same note inside this process. Writers in
    other processes sharing the store are not covered.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def sort_newest_first(notes: list[Note]) -> list[Note]:
    # sorted() is stable, so equal timestamps keep listing order.
    return sorted(notes, key=lambda n: parse_rfc3339(n.created_at) or _OLDEST, reverse=True)


class NoteRepository:
    """CRUD over ``note:<id>`` records. Nothing is cached; every read goes to the store."""

    def __init__(
        self,
        store: KVStore,
        *,
        require_body: bool = True,
        ids: TimeIdGenerator | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.store = store
        self.require_body = require_body
        self.ids = ids or TimeIdGenerator()
        self.locks = locks or KeyedLocks()

    async def _allocate_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self.ids.next_id()
            # Other deployments share the namespace and have their own counters.
            if await self.store.get(note_key(candidate)) is None:
                return candidate
            self.ids.bump_past(candidate)
        raise ConflictError("note_id_exhausted", code="note_id_conflict")

    async def create(self, fields: NoteFields, created_by: str) -> Note:
        title = (fields.title or "").strip()
        content = (fields.content or "").strip()
        link = (fields.link or "").strip()
        if self.require_body and not (title or content or link):
            raise ValidationError("Note needs a title, content or link", code="note_empty")

        note = Note(
            id=await self._allocate_id(),
            title=title,
            content=content,
            tags=split_csv(fields.tags),
            link=link,
            created_at=rfc3339_now(),
            created_by=created_by,
            comments=[],
        )
        await self.store.set(note_key(note.id), note.to_record())
        logger.info("note_create", extra={"id": note.id, "by": created_by})
        return note

    async def get(self, note_id: str) -> Note | None:
        if not note_id:
            return None
        record = await self.store.get(note_key(note_id))
        if record is None:
            return None
        note = Note.from_record(record)
        if note is None:
            logger.warning("note_unreadable", extra={"key": note_key(note_id)})
        return note

    async def save(self, note: Note) -> None:
        await self.store.set(note_key(note.id), note.to_record())

    async def get_all(self) -> list[Note]:
        try:
            keys = await self.store.list(NOTE_PREFIX)
        except StoreError:
            logger.exception("note_list_failed")
            return []

        notes: list[Note] = []
        for key in keys:
            try:
                record = await self.store.get(key)
            except StoreError:
                logger.warning("note_skip_unreadable", extra={"key": key})
                continue
            note = Note.from_record(record)
            if note is None:
                if record is not None:
                    logger.warning("note_skip_malformed", extra={"key": key})
                continue
            notes.append(note)
        return sort_newest_first(notes)

    async def delete(self, note_id: str) -> None:
        """Missing notes are already deleted."""
        if not note_id:
            return
        async with self.locks.hold(note_id):
            await self.store.delete(note_key(note_id))
        logger.info("note_delete", extra={"id": note_id})
