"""Async client for the PostgREST interface of the remote backend."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..errors import RemoteError

logger = logging.getLogger(__name__)

Filters = dict[str, Any]


def _quote(value: Any) -> str:
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _encode_filters(filters: Optional[Filters]) -> dict[str, str]:
    """Translate {column: value} into PostgREST query operators.

    Lists become ``in.(...)``, None becomes ``is.null``, anything else ``eq.``.
    """
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if isinstance(value, (list, tuple, set)):
            params[column] = f"in.({','.join(_quote(v) for v in value)})"
        elif value is None:
            params[column] = "is.null"
        elif isinstance(value, bool):
            params[column] = f"eq.{str(value).lower()}"
        else:
            params[column] = f"eq.{value}"
    return params


class BackendClient:
    """Client for the backend's REST tables and RPC functions.

    Every failure, HTTP or transport, raises RemoteError with a message
    prefixed by the operation so logs read like "update poems: ...".
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        access_token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Project URL; requests go to {base_url}/rest/v1
            anon_key: Project API key sent as the ``apikey`` header
            access_token: User session token; the anon key is used when absent
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.headers = {
            "apikey": anon_key,
            "Authorization": f"Bearer {access_token or anon_key}",
            "Content-Type": "application/json",
        }
        self.timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """The pooled client for the running event loop.

        Pooled connections belong to the loop that opened them, so a client
        left over from an earlier loop is dropped and a new one built.
        """
        loop = asyncio.get_running_loop()
        if self._client is not None and self._client_loop is not loop:
            logger.debug("Event loop changed; rebuilding the HTTP client")
            self._client = None
        if self._client is None:
            self._client_loop = loop
            self._client = httpx.AsyncClient(
                base_url=self.rest_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            if self._client_loop is asyncio.get_running_loop():
                await self._client.aclose()
            self._client = None
            self._client_loop = None

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self.client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.RequestError as e:
            raise RemoteError(f"{operation}: Network error: {e}") from e

        if response.status_code >= 400:
            message = f"HTTP {response.status_code}"
            code = None
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                message = data.get("message") or message
                code = data.get("code")
            raise RemoteError(
                f"{operation}: {message}", status_code=response.status_code, code=code
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"{operation}: invalid JSON response") from e

    async def select(
        self,
        table: str,
        *,
        filters: Optional[Filters] = None,
        columns: str = "*",
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return the rows of ``table`` matching ``filters``."""
        params = {"select": columns, **_encode_filters(filters)}
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)

        rows = await self._request(f"select {table}", "GET", f"/{table}", params=params)
        return rows or []

    async def select_one(
        self,
        table: str,
        *,
        filters: Optional[Filters] = None,
        columns: str = "*",
        order: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[dict[str, Any]]:
        """Return the first matching row, or None when nothing matches."""
        rows = await self.select(
            table,
            filters=filters,
            columns=columns,
            order=order,
            descending=descending,
            limit=1,
        )
        return rows[0] if rows else None

    async def insert(
        self, table: str, rows: dict[str, Any] | list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Insert one or more rows and return them as stored."""
        result = await self._request(
            f"insert {table}",
            "POST",
            f"/{table}",
            json=rows,
            prefer="return=representation",
        )
        return result or []

    async def insert_one(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = await self.insert(table, row)
        if not rows:
            raise RemoteError(f"insert {table}: no row returned")
        return rows[0]

    async def update(
        self, table: str, values: dict[str, Any], *, filters: Filters
    ) -> None:
        if not filters:
            raise ValueError(f"Refusing unfiltered update of {table}")
        await self._request(
            f"update {table}",
            "PATCH",
            f"/{table}",
            params=_encode_filters(filters),
            json=values,
            prefer="return=minimal",
        )

    async def delete(self, table: str, *, filters: Filters) -> None:
        if not filters:
            raise ValueError(f"Refusing unfiltered delete of {table}")
        await self._request(
            f"delete {table}",
            "DELETE",
            f"/{table}",
            params=_encode_filters(filters),
            prefer="return=minimal",
        )

    async def upsert(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        *,
        on_conflict: Optional[str] = None,
    ) -> None:
        """Insert rows, merging into existing ones on a key conflict."""
        params = {"on_conflict": on_conflict} if on_conflict else None
        await self._request(
            f"upsert {table}",
            "POST",
            f"/{table}",
            params=params,
            json=rows,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def rpc(self, function: str, args: Optional[dict[str, Any]] = None) -> Any:
        """Call a database function and return its JSON result."""
        return await self._request(
            f"rpc {function}", "POST", f"/rpc/{function}", json=args or {}
        )
