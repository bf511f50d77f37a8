"""Shared types for LLM clients."""

from dataclasses import dataclass
from typing import Any, Protocol


class LLMError(Exception):
    """The LLM provider failed or returned no usable content."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


@dataclass
class LLMResponse:
    """Normalized response from any provider."""

    content: str
    stop_reason: str
    usage: dict[str, int]


class LLMClient(Protocol):
    async def generate(
        self, system_prompt: str, messages: list[dict[str, Any]]
    ) -> LLMResponse: ...
