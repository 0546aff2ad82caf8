from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from capsule_api.domain.entities import Session


@runtime_checkable
class KVTransport(Protocol):
    """
    Raw access to the key-value service.

    Implementations may return either the bare value or an
    ``{"ok": bool, "value": ...}`` envelope from ``get_raw``/``list_raw``;
    ``KVStore`` is the only place that looks at the shape.
    """

    async def get_raw(self, key: str) -> Any:
        ...

    async def set_raw(self, key: str, value: Any) -> Any:
        ...

    async def delete_raw(self, key: str) -> Any:
        ...

    async def list_raw(self, prefix: str = "") -> Any:
        ...

    async def aclose(self) -> None:
        ...


@runtime_checkable
class SessionStore(Protocol):
    def create(self, user: str) -> Session:
        ...

    def get(self, token: str) -> Session | None:
        ...

    def destroy(self, token: str) -> None:
        ...
