from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx

from backoffice.core.config import Settings
from backoffice.core.errors import ErrorKind, RemoteError, classify_response


class SupabaseClient:
    """
    Async client for the hosted Supabase project (PostgREST + Storage).

    One instance per request: it carries the caller's access token so the
    platform's row-level security sees the real user. Built by
    backoffice.core.deps and passed explicitly to every service function.

    Every failure is raised as RemoteError with its ErrorKind already set.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
        }
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SupabaseClient":
        return cls(
            settings.supabase_base_url,
            settings.supabase_anon_key,
            access_token=access_token,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "SupabaseClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -------------------------
    # Transport
    # -------------------------
    async def _send(self, service: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise RemoteError(ErrorKind.NETWORK, f"{type(e).__name__}: {e}") from e

        if response.is_error:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            raise classify_response(service, response.status_code, body)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(ErrorKind.UNKNOWN, "Invalid JSON from remote", status=response.status_code) from e

    # -------------------------
    # Row store (PostgREST)
    # -------------------------
    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
        *,
        single: bool = False,
    ) -> Any:
        """
        Read rows from `table`. Filters are equality filters (`col=eq.value`).

        With single=True exactly one row is expected; zero rows raises a
        NOT_FOUND RemoteError.
        """
        params: Dict[str, str] = {"select": _compact(columns)}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"

        headers = {"Accept": "application/vnd.pgrst.object+json"} if single else None
        response = await self._send("rest", "GET", f"/rest/v1/{table}", params=params, headers=headers)
        return self._json(response)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> Any:
        response = await self._send(
            "rest",
            "POST",
            f"/rest/v1/{table}",
            json=list(rows),
            headers={"Prefer": "return=representation"},
        )
        return self._json(response)

    async def upsert(self, table: str, row: Mapping[str, Any]) -> Any:
        response = await self._send(
            "rest",
            "POST",
            f"/rest/v1/{table}",
            json=dict(row),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._json(response)

    async def rpc(self, function: str, params: Mapping[str, Any]) -> Any:
        response = await self._send("rest", "POST", f"/rest/v1/rpc/{function}", json=dict(params))
        return self._json(response)

    # -------------------------
    # Object storage
    # -------------------------
    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """Upload `content` to bucket/path without overwriting. Returns the storage key."""
        response = await self._send(
            "storage",
            "POST",
            _object_url(bucket, path),
            content=content,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "false",
            },
        )
        data = self._json(response)
        if isinstance(data, dict) and data.get("Key"):
            return str(data["Key"])
        return f"{bucket}/{path}"

    async def download(self, bucket: str, path: str) -> bytes:
        response = await self._send("storage", "GET", _object_url(bucket, path))
        return response.content


def _object_url(bucket: str, path: str) -> str:
    # Object keys are relative to the bucket; dot segments would escape it.
    if path.startswith("/") or any(part in (".", "..") for part in path.split("/")):
        raise RemoteError(ErrorKind.VALIDATION, f"invalid object path {path!r}")
    return f"/storage/v1/object/{quote(bucket, safe='')}/{quote(path, safe='/')}"


def _compact(columns: str) -> str:
    # PostgREST rejects whitespace inside the select expression.
    return "".join(columns.split())
