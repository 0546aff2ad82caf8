from __future__ import annotations

import threading
import time
from datetime import datetime, timezone


def rfc3339_now() -> str:
    return rfc3339_from_timestamp(time.time())


def rfc3339_from_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_rfc3339(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def split_csv(raw: str | None) -> list[str]:
    """Comma-separated input to trimmed, non-empty tokens. Order and duplicates kept."""
    if not raw:
        return []
    return [token.strip() for token in raw.split(",") if token.strip()]


def local_part(identity: str) -> str:
    return identity.split("@", 1)[0]


class TimeIdGenerator:
    """
    Millisecond-timestamp ids that never repeat within a process.

    Two calls in the same millisecond get consecutive values, so ids stay
    numeric strings and still sort by creation time.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._last = 0
        self._mutex = threading.Lock()

    def next_id(self) -> str:
        with self._mutex:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return str(candidate)

    def bump_past(self, issued: str) -> None:
        try:
            value = int(issued)
        except ValueError:
            return
        with self._mutex:
            if value > self._last:
                self._last = value
