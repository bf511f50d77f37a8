"""Managed backend access for arcollect."""

from arcollect.backend.client import (
    AuthenticationError,
    BackendClient,
    BackendError,
    RateLimitError,
)
from arcollect.backend.filters import (
    Filter,
    eq,
    gt,
    gte,
    in_,
    is_null,
    lt,
    lte,
    neq,
    not_null,
)

__all__ = [
    "BackendClient",
    "BackendError",
    "AuthenticationError",
    "RateLimitError",
    "Filter",
    "eq",
    "neq",
    "in_",
    "gt",
    "gte",
    "lt",
    "lte",
    "is_null",
    "not_null",
]
