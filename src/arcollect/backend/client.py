"""Async client for the managed backend (REST tables, RPC, auth and functions)."""

import asyncio
from collections.abc import Iterable
from typing import Any, cast

import httpx
import structlog

from arcollect.backend.filters import Filter
from arcollect.config import get_settings

logger = structlog.get_logger(__name__)


class BackendError(Exception):
    """Base exception for backend errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(BackendError):
    """Authentication failed."""

    pass


class RateLimitError(BackendError):
    """Rate limit exceeded."""

    pass


class BackendClient:
    """Async client for the backend-as-a-service using the service role key."""

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self._service_key = service_key or settings.backend_service_key.get_secret_value()
        self._timeout = timeout or settings.backend_timeout
        self._max_retries = settings.backend_max_retries if max_retries is None else max_retries

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        """Get request headers carrying the service key."""
        headers = {
            "Content-Type": "application/json",
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    # === Generic Request Method ===

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make a request with retry on network errors."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=headers or self._get_headers(),
            )

            if response.status_code == 401:
                raise AuthenticationError("Backend rejected credentials", status_code=401)

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {
                        "raw": response.text[:500] if response.text else "empty response"
                    }
                raise BackendError(
                    f"Backend error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else None

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(
                    method, path, params, json, headers, retry_count + 1
                )
            raise BackendError(f"Request failed: {e}") from e

    # === Tables ===

    @staticmethod
    def _filter_params(filters: Iterable[Filter]) -> list[tuple[str, str]]:
        return [f.to_param() for f in filters]

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows from a table.

        Args:
            table: Table name.
            columns: Column list in PostgREST syntax.
            filters: Row filters, all of which must match.
            order: Ordering such as ``"due_date.asc"``.
            limit: Maximum rows to return.
            offset: Rows to skip.

        Returns:
            Matching rows (possibly empty).
        """
        params = [("select", columns), *self._filter_params(filters)]
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset is not None:
            params.append(("offset", str(offset)))

        result = await self._request("GET", f"/rest/v1/{table}", params=params)
        return result if isinstance(result, list) else []

    async def select_one(
        self,
        table: str,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        order: str | None = None,
    ) -> dict[str, Any] | None:
        """Select the first matching row, or None when nothing matches."""
        rows = await self.select(table, columns, filters, order=order, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return its stored representation."""
        result = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers=self._get_headers(prefer="return=representation"),
        )
        if isinstance(result, list):
            return cast(dict[str, Any], result[0]) if result else {}
        return result if isinstance(result, dict) else {}

    async def update(
        self, table: str, values: dict[str, Any], filters: Iterable[Filter]
    ) -> list[dict[str, Any]]:
        """Update matching rows and return them."""
        filter_params = self._filter_params(filters)
        if not filter_params:
            raise ValueError(f"Refusing unfiltered update on {table}")
        result = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=filter_params,
            json=values,
            headers=self._get_headers(prefer="return=representation"),
        )
        return result if isinstance(result, list) else []

    # === RPC, functions and auth ===

    async def rpc(self, function: str, params: dict[str, Any] | None = None) -> Any:
        """Call a database function."""
        return await self._request("POST", f"/rest/v1/rpc/{function}", json=params or {})

    async def invoke_function(
        self, name: str, body: dict[str, Any] | None = None
    ) -> Any:
        """Invoke another serverless function by name."""
        logger.debug("invoking_function", function=name)
        return await self._request("POST", f"/functions/v1/{name}", json=body or {})

    async def get_user(self, access_token: str) -> dict[str, Any]:
        """Resolve the user owning an access token."""
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {access_token}",
        }
        try:
            result = await self._request("GET", "/auth/v1/user", headers=headers)
        except AuthenticationError as e:
            raise AuthenticationError("User not authenticated", status_code=401) from e

        if not isinstance(result, dict) or not result.get("id"):
            raise AuthenticationError("User not authenticated", status_code=401)
        return result
