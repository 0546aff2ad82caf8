from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from capsule_api.domain.entities import Comment, Note


class CommentOut(BaseModel):
    id: str
    author: str
    text: str
    createdAt: str

    @classmethod
    def from_entity(cls, comment: Comment) -> CommentOut:
        return cls(id=comment.id, author=comment.author, text=comment.text, createdAt=comment.created_at)


class NoteOut(BaseModel):
    id: str
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    link: str = ""
    createdAt: str
    createdBy: str
    comments: list[CommentOut] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, note: Note) -> NoteOut:
        return cls(
            id=note.id,
            title=note.title,
            content=note.content,
            tags=list(note.tags),
            link=note.link,
            createdAt=note.created_at,
            createdBy=note.created_by,
            comments=[CommentOut.from_entity(c) for c in note.comments],
        )


class NoteListOut(BaseModel):
    page: str
    notes: list[NoteOut] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    search: str = ""
    description: str = ""
    user: Optional[str] = None


class AddPageOut(BaseModel):
    page: str = "add"
    tags: list[str] = Field(default_factory=list)
    user: Optional[str] = None


class LoginPageOut(BaseModel):
    page: str = "login"
    error: str = ""


# Form posts send every field as a string and may omit any of them.
class LoginIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str = ""
    password: str = ""


class NoteCreateIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    content: str = ""
    tags: str | list[str] = ""
    link: str = ""

    def tags_csv(self) -> str:
        return ",".join(self.tags) if isinstance(self.tags, list) else self.tags


class NoteDeleteIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    noteId: str = ""


class CommentIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = ""


class CommentCreatedOut(BaseModel):
    ok: bool = True
    comment: CommentOut


class NoteCreatedOut(BaseModel):
    ok: bool = True
    note: NoteOut
