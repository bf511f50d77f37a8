"""Per-identifier action rate limiting.

``BackendRateLimiter`` delegates counting to the ``check_action_rate_limit``
database function so limits hold across function instances.
``InMemoryRateLimiter`` applies the same windows within a single process.
"""

import asyncio
import math
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Mapping, Protocol

import structlog

from arcollect.backend import BackendClient, BackendError

logger = structlog.get_logger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 900


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_minutes: int
    block_duration_minutes: int


DEFAULT_CONFIG = RateLimitConfig(max_requests=100, window_minutes=60, block_duration_minutes=15)

RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    "form_submit": RateLimitConfig(10, 5, 15),
    "ai_command": RateLimitConfig(50, 60, 30),
    "file_upload": RateLimitConfig(20, 60, 15),
    "api_call": RateLimitConfig(100, 60, 15),
    "contact_form": RateLimitConfig(3, 60, 60),
    "login_attempt": RateLimitConfig(5, 15, 15),
    "signup_attempt": RateLimitConfig(3, 60, 60),
    "email_send": RateLimitConfig(50, 60, 30),
    "data_import": RateLimitConfig(10, 60, 30),
}


@dataclass
class RateLimitResult:
    allowed: bool
    blocked: bool = False
    blocked_until: datetime | None = None
    remaining: int | None = None
    message: str | None = None

    @classmethod
    def from_row(cls, data: Mapping[str, Any]) -> "RateLimitResult":
        blocked_until = data.get("blocked_until")
        return cls(
            allowed=bool(data.get("allowed", True)),
            blocked=bool(data.get("blocked", False)),
            blocked_until=datetime.fromisoformat(blocked_until) if blocked_until else None,
            remaining=data.get("remaining"),
            message=data.get("message"),
        )


def config_for(action_type: str, **overrides: int) -> RateLimitConfig:
    """Named config for an action, with optional field overrides."""
    config = RATE_LIMIT_CONFIGS.get(action_type, DEFAULT_CONFIG)
    return replace(config, **overrides) if overrides else config


class RateLimiter(Protocol):
    async def check(
        self, identifier: str, action_type: str, **overrides: int
    ) -> RateLimitResult: ...


class BackendRateLimiter:
    """Rate limiter backed by the database's rate limit function."""

    def __init__(self, backend: BackendClient):
        self._backend = backend

    async def check(
        self, identifier: str, action_type: str, **overrides: int
    ) -> RateLimitResult:
        """Record one action and report whether it is allowed.

        Backend failures fail open: the action is allowed and logged.
        """
        config = config_for(action_type, **overrides)
        try:
            data = await self._backend.rpc(
                "check_action_rate_limit",
                {
                    "p_identifier": identifier,
                    "p_action_type": action_type,
                    "p_max_requests": config.max_requests,
                    "p_window_minutes": config.window_minutes,
                    "p_block_duration_minutes": config.block_duration_minutes,
                },
            )
        except BackendError as e:
            logger.error(
                "rate_limit_check_failed",
                identifier=identifier,
                action_type=action_type,
                error=str(e),
            )
            return RateLimitResult(allowed=True, remaining=0)

        if not isinstance(data, Mapping):
            return RateLimitResult(allowed=True, remaining=0)
        return RateLimitResult.from_row(data)


class InMemoryRateLimiter:
    """Sliding-window limiter kept in process memory.

    Keys whose block has lapsed and whose events have all left their window
    are evicted, at most once per ``sweep_interval``.
    """

    def __init__(self, sweep_interval: timedelta = timedelta(minutes=1)) -> None:
        self._events: dict[tuple[str, str], deque[datetime]] = defaultdict(deque)
        self._windows: dict[tuple[str, str], timedelta] = {}
        self._blocked_until: dict[tuple[str, str], datetime] = {}
        self._sweep_interval = sweep_interval
        self._last_sweep: datetime | None = None
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._events.keys() | self._blocked_until.keys())

    def _evict_stale(self, now: datetime) -> None:
        for key, until in list(self._blocked_until.items()):
            if now >= until:
                del self._blocked_until[key]
        for key, events in list(self._events.items()):
            window_start = now - self._windows.get(key, timedelta(0))
            while events and events[0] <= window_start:
                events.popleft()
            if not events:
                del self._events[key]
                self._windows.pop(key, None)
        self._last_sweep = now

    async def check(
        self,
        identifier: str,
        action_type: str,
        now: datetime | None = None,
        **overrides: int,
    ) -> RateLimitResult:
        config = config_for(action_type, **overrides)
        now = now or datetime.now(UTC)
        key = (identifier, action_type)

        async with self._lock:
            if self._last_sweep is None or now - self._last_sweep >= self._sweep_interval:
                self._evict_stale(now)

            blocked_until = self._blocked_until.get(key)
            if blocked_until is not None:
                if now < blocked_until:
                    return RateLimitResult(
                        allowed=False,
                        blocked=True,
                        blocked_until=blocked_until,
                        remaining=0,
                        message="Too many requests. Please try again later.",
                    )
                del self._blocked_until[key]
                self._events.pop(key, None)

            window = timedelta(minutes=config.window_minutes)
            events = self._events[key]
            self._windows[key] = window
            window_start = now - window
            while events and events[0] <= window_start:
                events.popleft()

            if len(events) >= config.max_requests:
                until = now + timedelta(minutes=config.block_duration_minutes)
                self._blocked_until[key] = until
                logger.warning(
                    "rate_limit_block",
                    identifier=identifier,
                    action_type=action_type,
                    blocked_until=until.isoformat(),
                )
                return RateLimitResult(
                    allowed=False,
                    blocked=True,
                    blocked_until=until,
                    remaining=0,
                    message="Rate limit exceeded. Please try again later.",
                )

            events.append(now)
            return RateLimitResult(allowed=True, remaining=config.max_requests - len(events))


def retry_after_seconds(result: RateLimitResult, now: datetime | None = None) -> int:
    """Seconds a caller should wait before retrying a denied action."""
    if result.blocked_until is None:
        return DEFAULT_RETRY_AFTER_SECONDS
    delta = result.blocked_until - (now or datetime.now(UTC))
    return max(0, math.ceil(delta.total_seconds()))


def client_ip(headers: Mapping[str, str]) -> str:
    """Best-effort client IP from proxy headers."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return headers.get("x-real-ip") or headers.get("cf-connecting-ip") or "unknown"


async def log_suspicious_activity(
    backend: BackendClient,
    user_id: str | None,
    ip_address: str,
    action_type: str,
    details: dict[str, Any],
    severity: str = "medium",
) -> None:
    """Record a suspicious request for review; failures are only logged."""
    try:
        await backend.insert(
            "suspicious_activity_log",
            {
                "user_id": user_id,
                "ip_address": ip_address,
                "action_type": action_type,
                "details": details,
                "severity": severity,
            },
        )
    except BackendError as e:
        logger.error("suspicious_activity_log_failed", action_type=action_type, error=str(e))
