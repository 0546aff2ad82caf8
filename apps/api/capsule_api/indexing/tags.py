from __future__ import annotations

from collections.abc import Iterable

from capsule_api.domain.entities import Note


def distinct_tags(notes: Iterable[Note]) -> set[str]:
    """Union of every note's tags. Recomputed per call; there is nothing to invalidate."""
    return {tag for note in notes for tag in note.tags}


def tag_suggestions(notes: Iterable[Note]) -> list[str]:
    """Distinct tags in first-seen order, which is newest-note-first for a ``get_all`` listing."""
    seen: dict[str, None] = {}
    for note in notes:
        for tag in note.tags:
            seen.setdefault(tag, None)
    return list(seen)
