from __future__ import annotations

import logging

from capsule_api.domain.entities import Comment
from capsule_api.domain.exceptions import NotFoundError, ValidationError
from capsule_api.notes import KeyedLocks, NoteRepository
from capsule_api.util import TimeIdGenerator, local_part, rfc3339_now

logger = logging.getLogger("capsule.comments")


class CommentThreadManager:
    def __init__(self, notes: NoteRepository, *, ids: TimeIdGenerator | None = None) -> None:
        self.notes = notes
        self.ids = ids or TimeIdGenerator()

    @property
    def locks(self) -> KeyedLocks:
        return self.notes.locks

    async def append_comment(self, note_id: str, raw_text: str | None, identity: str) -> Comment:
        text = (raw_text or "").strip()
        if not text:
            raise ValidationError("Empty comment", code="comment_empty")

        # Same per-note lock as NoteRepository.delete: a delete either runs
        # before the read (NotFoundError) or after the write (note stays gone).
        async with self.locks.hold(note_id):
            note = await self.notes.get(note_id)
            if note is None:
                raise NotFoundError("Note not found", code="note_not_found")
            comment = Comment(
                id=self.ids.next_id(),
                author=local_part(identity),
                text=text,
                created_at=rfc3339_now(),
            )
            await self.notes.save(note.with_comment(comment))

        logger.info("comment_append", extra={"id": note_id, "comment_id": comment.id, "author": comment.author})
        return comment
