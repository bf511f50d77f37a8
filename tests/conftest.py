"""Pytest configuration and fixtures."""

import itertools
import os
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("BACKEND_URL", "http://backend.test")
os.environ.setdefault("BACKEND_SERVICE_KEY", "service-key-test")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("RESEND_API_KEY", "re_test")

from arcollect.backend import AuthenticationError, BackendError, Filter  # noqa: E402
from arcollect.clients import LLMResponse  # noqa: E402
from arcollect.rate_limit import RateLimitResult  # noqa: E402


def _norm(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return value.isoformat()
    if value is None:
        return None
    return str(value)


def _matches(row: dict[str, Any], f: Filter) -> bool:
    actual = row.get(f.column)
    if f.operator == "is":
        return actual is None
    if f.operator == "not.is":
        return actual is not None
    if f.operator == "in":
        return _norm(actual) in {_norm(v) for v in f.value}
    if actual is None:
        return False

    left, right = _norm(actual), _norm(f.value)
    if isinstance(actual, (int, float)) and not isinstance(actual, bool):
        left, right = float(actual), float(f.value)
    if f.operator == "eq":
        return left == right
    if f.operator == "neq":
        return left != right
    if f.operator == "gt":
        return left > right
    if f.operator == "gte":
        return left >= right
    if f.operator == "lt":
        return left < right
    if f.operator == "lte":
        return left <= right
    raise ValueError(f"Unsupported operator {f.operator}")


class InMemoryBackend:
    """Backend fake holding tables as lists of dicts.

    Exposes the ``BackendClient`` table, RPC, function and auth methods and
    records every write for assertions.
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None):
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for name, rows in (tables or {}).items():
            self.tables[name] = [dict(row) for row in rows]
        self.inserts: list[tuple[str, dict[str, Any]]] = []
        self.updates: list[tuple[str, dict[str, Any], list[Filter]]] = []
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []
        self.function_calls: list[tuple[str, dict[str, Any]]] = []
        self.rpc_results: dict[str, Any] = {}
        self.users_by_token: dict[str, dict[str, Any]] = {}
        self.fail: dict[tuple[str, str], Exception] = {}
        self._ids = itertools.count(1)

    def _maybe_fail(self, method: str, name: str) -> None:
        error = self.fail.get((method, name))
        if error is not None:
            raise error

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[table]

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        self._maybe_fail("select", table)
        filters = list(filters)
        rows = [dict(r) for r in self.tables[table] if all(_matches(r, f) for f in filters)]
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: _norm(r.get(column)) or "", reverse=direction == "desc")
        start = offset or 0
        end = start + limit if limit is not None else None
        return rows[start:end]

    async def select_one(
        self,
        table: str,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        order: str | None = None,
    ) -> dict[str, Any] | None:
        rows = await self.select(table, columns, filters, order=order, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        self._maybe_fail("insert", table)
        stored = {"id": f"{table}-{next(self._ids)}", **row}
        self.tables[table].append(stored)
        self.inserts.append((table, row))
        return dict(stored)

    async def update(
        self, table: str, values: dict[str, Any], filters: Iterable[Filter]
    ) -> list[dict[str, Any]]:
        self._maybe_fail("update", table)
        filters = list(filters)
        self.updates.append((table, values, filters))
        updated = []
        for row in self.tables[table]:
            if all(_matches(row, f) for f in filters):
                row.update(values)
                updated.append(dict(row))
        return updated

    async def rpc(self, function: str, params: dict[str, Any] | None = None) -> Any:
        self._maybe_fail("rpc", function)
        self.rpc_calls.append((function, params or {}))
        result = self.rpc_results.get(function)
        return result(params or {}) if callable(result) else result

    async def invoke_function(self, name: str, body: dict[str, Any] | None = None) -> Any:
        self._maybe_fail("function", name)
        self.function_calls.append((name, body or {}))
        return {"success": True}

    async def get_user(self, access_token: str) -> dict[str, Any]:
        user = self.users_by_token.get(access_token)
        if user is None:
            raise AuthenticationError("User not authenticated", status_code=401)
        return user

    async def close(self) -> None:
        pass


class StubRateLimiter:
    """Rate limiter that always allows or always denies, recording calls."""

    def __init__(self, allowed: bool = True, blocked_until: datetime | None = None):
        self.allowed = allowed
        self.blocked_until = blocked_until
        self.calls: list[tuple[str, str]] = []

    async def check(self, identifier: str, action_type: str, **overrides: int) -> RateLimitResult:
        self.calls.append((identifier, action_type))
        if self.allowed:
            return RateLimitResult(allowed=True, remaining=49)
        return RateLimitResult(
            allowed=False,
            blocked=True,
            blocked_until=self.blocked_until,
            remaining=0,
            message="Rate limit exceeded. Please try again later.",
        )


@pytest.fixture
def make_rate_limiter():
    return StubRateLimiter


@pytest.fixture
def make_backend():
    """Factory for in-memory backends seeded with table rows."""
    return InMemoryBackend


@pytest.fixture
def backend():
    """Empty in-memory backend."""
    return InMemoryBackend()


@pytest.fixture
def backend_error():
    return BackendError("Backend error: 500", status_code=500)


@pytest.fixture
def mock_llm():
    """LLM client returning a fixed email draft."""
    llm = AsyncMock()
    llm.generate = AsyncMock(
        return_value=LLMResponse(
            content=(
                "Subject: Friendly reminder about invoice #1042\n\n"
                "Hi Acme Corp,\n\nInvoice #1042 is now past due. "
                "Please let us know if you have any questions."
            ),
            stop_reason="end_turn",
            usage={"input_tokens": 120, "output_tokens": 60},
        )
    )
    return llm


@pytest.fixture
def mock_mailer():
    mailer = AsyncMock()
    mailer.send = AsyncMock(return_value={"id": "email-1"})
    mailer.close = AsyncMock()
    return mailer


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.post = AsyncMock()
    client.get = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def today():
    return date(2026, 3, 15)
