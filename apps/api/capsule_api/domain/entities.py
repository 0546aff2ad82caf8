from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class User:
    email: str
    password_hash: str

    def to_record(self) -> dict:
        return {"email": self.email, "passwordHash": self.password_hash}

    @classmethod
    def from_record(cls, record: Any) -> User | None:
        if not isinstance(record, dict):
            return None
        # Records written by the first deployments keep the hash under "password".
        password_hash = record.get("passwordHash") or record.get("password")
        email = record.get("email")
        if not isinstance(password_hash, str) or not password_hash or not isinstance(email, str):
            return None
        return cls(email=email, password_hash=password_hash)


@dataclass(frozen=True)
class Comment:
    id: str
    author: str
    text: str
    created_at: str

    def to_record(self) -> dict:
        return {"id": self.id, "author": self.author, "text": self.text, "createdAt": self.created_at}

    @classmethod
    def from_record(cls, record: Any) -> Comment | None:
        if not isinstance(record, dict):
            return None
        return cls(
            id=_as_str(record.get("id")),
            author=_as_str(record.get("author")),
            text=_as_str(record.get("text")),
            created_at=_as_str(record.get("createdAt")),
        )


@dataclass(frozen=True)
class Note:
    id: str
    title: str
    content: str
    tags: list[str]
    link: str
    created_at: str
    created_by: str
    comments: list[Comment] = field(default_factory=list)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "link": self.link,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
            "comments": [c.to_record() for c in self.comments],
        }

    @classmethod
    def from_record(cls, record: Any) -> Note | None:
        if not isinstance(record, dict) or not record.get("id"):
            return None
        raw_tags = record.get("tags")
        tags = [t for t in raw_tags if isinstance(t, str)] if isinstance(raw_tags, list) else []
        raw_comments = record.get("comments")
        comments: list[Comment] = []
        if isinstance(raw_comments, list):
            for raw in raw_comments:
                comment = Comment.from_record(raw)
                if comment is not None:
                    comments.append(comment)
        return cls(
            id=_as_str(record.get("id")),
            title=_as_str(record.get("title")),
            content=_as_str(record.get("content")),
            tags=tags,
            link=_as_str(record.get("link")),
            created_at=_as_str(record.get("createdAt")),
            created_by=_as_str(record.get("createdBy")),
            comments=comments,
        )

    def with_comment(self, comment: Comment) -> Note:
        return replace(self, comments=[*self.comments, comment])


@dataclass(frozen=True)
class Session:
    token: str
    user: str
    expires_at: float
