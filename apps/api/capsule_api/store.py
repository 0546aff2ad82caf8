from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import quote, unquote

import httpx

from capsule_api.domain.exceptions import StoreError
from capsule_api.domain.ports import KVTransport

logger = logging.getLogger("capsule.store")

_ENVELOPE_KEYS = {"ok", "value", "error"}


def _is_envelope(raw: Any) -> bool:
    return isinstance(raw, dict) and "ok" in raw and set(raw) <= _ENVELOPE_KEYS


def unwrap_value(raw: Any) -> Any | None:
    """``value`` / ``{ok: true, value}`` -> value; ``{ok: false}`` / ``None`` -> None."""
    if _is_envelope(raw):
        return raw.get("value") if raw.get("ok") is True else None
    return raw


def unwrap_keys(raw: Any) -> list[str]:
    if _is_envelope(raw):
        if raw.get("ok") is not True:
            raise StoreError(f"list_failed: {raw.get('error') or 'unknown'}", code="store_list_failed")
        raw = raw.get("value")
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.splitlines()
    if not isinstance(raw, list):
        raise StoreError("list_bad_response", code="store_bad_response")
    return [k for k in raw if isinstance(k, str) and k]


class ReplitDatabase:
    """Transport for the Replit-style KV HTTP API. Values are stored JSON-encoded."""

    def __init__(self, url: str, *, timeout_s: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    def _key_url(self, key: str) -> str:
        return f"{self.url}/{quote(key, safe='')}"

    async def get_raw(self, key: str) -> Any:
        resp = await self._client.get(self._key_url(key))
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        if not resp.text:
            return None
        return json.loads(resp.text)

    async def set_raw(self, key: str, value: Any) -> None:
        resp = await self._client.post(self.url, data={key: json.dumps(value)})
        resp.raise_for_status()

    async def delete_raw(self, key: str) -> None:
        resp = await self._client.delete(self._key_url(key))
        if resp.status_code == 404:
            return
        resp.raise_for_status()

    async def list_raw(self, prefix: str = "") -> list[str]:
        resp = await self._client.get(self.url, params={"encode": "true", "prefix": prefix})
        resp.raise_for_status()
        return [unquote(line) for line in resp.text.splitlines() if line]

    async def aclose(self) -> None:
        await self._client.aclose()


class MemoryDatabase:
    """
    In-process transport used when no KV endpoint is configured, and in tests.

    Values round-trip through JSON like the real service. Every call yields
    to the event loop once so concurrent requests interleave the way they do
    against the network store. ``envelope=True`` answers with ``{ok, value}``.
    """

    def __init__(self, *, envelope: bool = False) -> None:
        self.data: dict[str, str] = {}
        self.envelope = envelope

    def _wrap(self, value: Any) -> Any:
        if not self.envelope:
            return value
        if value is None:
            return {"ok": False, "error": "not found"}
        return {"ok": True, "value": value}

    async def get_raw(self, key: str) -> Any:
        await asyncio.sleep(0)
        encoded = self.data.get(key)
        return self._wrap(json.loads(encoded) if encoded is not None else None)

    async def set_raw(self, key: str, value: Any) -> None:
        await asyncio.sleep(0)
        self.data[key] = json.dumps(value)

    async def delete_raw(self, key: str) -> None:
        await asyncio.sleep(0)
        self.data.pop(key, None)

    async def list_raw(self, prefix: str = "") -> Any:
        await asyncio.sleep(0)
        return self._wrap(sorted(k for k in self.data if k.startswith(prefix)))

    async def aclose(self) -> None:
        return None


class KVStore:
    """
    The only component that talks to the transport.

    Every call is bounded by ``timeout_s``; transport, parse and timeout
    failures come out as ``StoreError``.
    """

    def __init__(self, transport: KVTransport, *, timeout_s: float = 10.0) -> None:
        self.transport = transport
        self.timeout_s = timeout_s

    async def _call(self, op: str, key: str, awaitable) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_s)
        except StoreError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning("store_timeout", extra={"op": op, "key": key, "timeout_s": self.timeout_s})
            raise StoreError(f"{op}_timeout", code="store_timeout") from e
        except Exception as e:
            logger.warning("store_error", extra={"op": op, "key": key, "error": repr(e)})
            raise StoreError(f"{op}_failed", code="store_unavailable") from e

    async def get(self, key: str) -> Any | None:
        raw = await self._call("get", key, self.transport.get_raw(key))
        return unwrap_value(raw)

    async def set(self, key: str, value: Any) -> None:
        raw = await self._call("set", key, self.transport.set_raw(key, value))
        if _is_envelope(raw) and raw.get("ok") is not True:
            raise StoreError(f"set_failed: {raw.get('error') or 'unknown'}", code="store_write_failed")

    async def delete(self, key: str) -> None:
        raw = await self._call("delete", key, self.transport.delete_raw(key))
        if _is_envelope(raw) and raw.get("ok") is not True:
            raise StoreError(f"delete_failed: {raw.get('error') or 'unknown'}", code="store_write_failed")

    async def list(self, prefix: str = "") -> list[str]:
        raw = await self._call("list", prefix, self.transport.list_raw(prefix))
        return [k for k in unwrap_keys(raw) if k.startswith(prefix)]

    async def aclose(self) -> None:
        await self.transport.aclose()


def build_store(db_url: str | None, *, timeout_s: float) -> KVStore:
    if not db_url:
        logger.warning(
            "REPLIT_DB_URL is not set: notes and users are kept in process memory and lost on restart"
        )
        return KVStore(MemoryDatabase(), timeout_s=timeout_s)
    return KVStore(ReplitDatabase(db_url, timeout_s=timeout_s), timeout_s=timeout_s)
