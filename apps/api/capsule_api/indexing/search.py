from __future__ import annotations

from dataclasses import dataclass

from capsule_api.domain.entities import Note
from capsule_api.indexing.tags import tag_suggestions
from capsule_api.util import split_csv


@dataclass(frozen=True)
class SearchCriteria:
    tag: str | None = None
    author: str | None = None


@dataclass(frozen=True)
class SearchResult:
    notes: list[Note]
    tags: list[str]
    description: str


def _needle(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def matches_tag(note: Note, needle: str) -> bool:
    return any(needle in tag.lower() for tag in note.tags)


def matches_author(note: Note, needle: str) -> bool:
    return bool(note.created_by) and needle in note.created_by.lower()


def search(notes: list[Note], criteria: SearchCriteria) -> list[Note]:
    """
    Server-side search. Every supplied criterion must hold (AND); a tag
    criterion holds when any one tag contains it. Matching is
    case-insensitive substring. Input order is kept.
    """
    tag = _needle(criteria.tag)
    author = _needle(criteria.author)
    out = notes
    if tag:
        out = [n for n in out if matches_tag(n, tag)]
    if author:
        out = [n for n in out if matches_author(n, author)]
    return list(out)


def describe(criteria: SearchCriteria) -> str:
    parts: list[str] = []
    if _needle(criteria.tag):
        parts.append(f'tag "{criteria.tag.strip()}"')
    if _needle(criteria.author):
        parts.append(f'user "{criteria.author.strip()}"')
    return " and ".join(parts)


def run_search(notes: list[Note], criteria: SearchCriteria) -> SearchResult:
    found = search(notes, criteria)
    return SearchResult(notes=found, tags=tag_suggestions(found), description=describe(criteria))


def rendered_text(note: Note) -> str:
    parts = [note.title, note.content, note.link, note.created_by, *note.tags]
    for comment in note.comments:
        parts.append(comment.author)
        parts.append(comment.text)
    return "\n".join(p for p in parts if p).lower()


def free_text_filter(notes: list[Note], raw_query: str | None) -> list[Note]:
    """
    The browsing filter: comma-separated tokens, a note matches when ANY
    token appears in its rendered text. Looser than ``search`` on purpose.
    """
    tokens = [t.lower() for t in split_csv(raw_query)]
    if not tokens:
        return list(notes)
    out: list[Note] = []
    for note in notes:
        text = rendered_text(note)
        if any(token in text for token in tokens):
            out.append(note)
    return out
