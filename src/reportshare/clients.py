from __future__ import annotations

from typing import Any

import httpx

from .errors import StorageError


class KVClient:
    """Redis-style key-value store spoken over a REST endpoint.

    Each command is POSTed as a JSON array (``["SET", "k", "v", "NX"]``) and
    the store answers ``{"result": ...}`` or ``{"error": "..."}``.
    """

    def __init__(self, base_url: str, token: str = "", client: httpx.Client | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = headers

    def command(self, *args: Any) -> Any:
        try:
            resp = self._client.post(self.base_url, json=[str(a) for a in args], headers=self._headers)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.TransportError as e:
            raise StorageError(f"Key-value store unavailable: {e}")
        except httpx.HTTPStatusError as e:
            raise StorageError(f"Key-value store error {e.response.status_code}: {e.response.text}")
        if "error" in payload:
            raise StorageError(f"Key-value store error: {payload['error']}")
        return payload.get("result")

    def get(self, key: str) -> str | None:
        return self.command("GET", key)

    def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return self.command("MGET", *keys)

    def set_if_absent(self, key: str, value: str) -> bool:
        return self.command("SET", key, value, "NX") == "OK"

    def delete(self, key: str) -> int:
        return int(self.command("DEL", key) or 0)

    def zadd(self, key: str, score: float, member: str) -> None:
        self.command("ZADD", key, score, member)

    def zrem(self, key: str, member: str) -> None:
        self.command("ZREM", key, member)

    def zrange_desc(self, key: str) -> list[str]:
        return self.command("ZRANGE", key, 0, -1, "REV") or []

    def close(self) -> None:
        self._client.close()


class ObjectStoreClient:
    """Plain HTTP object store: PUT/GET/DELETE on ``{base_url}/{key}``."""

    def __init__(self, base_url: str, token: str = "", client: httpx.Client | None = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key.lstrip('/')}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        url = self.url_for(key)
        try:
            resp = self._client.put(url, content=data, headers={**self._headers, "Content-Type": content_type})
            resp.raise_for_status()
        except httpx.TransportError as e:
            raise StorageError(f"Object store unavailable: {e}")
        except httpx.HTTPStatusError as e:
            raise StorageError(f"Object store error {e.response.status_code}: {e.response.text}")
        return url

    def get(self, url: str) -> bytes:
        try:
            resp = self._client.get(url, headers=self._headers)
            resp.raise_for_status()
            return resp.content
        except httpx.TransportError as e:
            raise StorageError(f"Object store unavailable: {e}")
        except httpx.HTTPStatusError as e:
            raise StorageError(f"Object store error {e.response.status_code}: {e.response.text}")

    def delete(self, url: str) -> None:
        try:
            resp = self._client.delete(url, headers=self._headers)
            resp.raise_for_status()
        except httpx.TransportError as e:
            raise StorageError(f"Object store unavailable: {e}")
        except httpx.HTTPStatusError as e:
            raise StorageError(f"Object store error {e.response.status_code}: {e.response.text}")

    def close(self) -> None:
        self._client.close()
