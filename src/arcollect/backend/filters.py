"""Row filters rendered as PostgREST query parameters."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Filter:
    """A single column filter, e.g. ``status=in.(Open,InPaymentPlan)``."""

    column: str
    operator: str
    value: Any = None

    def to_param(self) -> tuple[str, str]:
        """Render as a (column, "op.value") query parameter pair."""
        if self.operator == "in":
            return self.column, f"in.({','.join(_render(v) for v in self.value)})"
        if self.operator in ("is", "not.is"):
            return self.column, f"{self.operator}.null"
        return self.column, f"{self.operator}.{_render(self.value)}"


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values: list[Any] | tuple[Any, ...]) -> Filter:
    return Filter(column, "in", tuple(values))


def gt(column: str, value: Any) -> Filter:
    return Filter(column, "gt", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def is_null(column: str) -> Filter:
    return Filter(column, "is")


def not_null(column: str) -> Filter:
    return Filter(column, "not.is")
