"""LLM client implementations for drafting collection messages."""

from arcollect.clients.base import LLMClient, LLMError, LLMResponse
from arcollect.clients.claude import ClaudeClient
from arcollect.clients.openai_client import OpenAIClient
from arcollect.config import get_settings


def create_llm_client(provider: str | None = None) -> LLMClient:
    """Build the client for the configured (or given) provider."""
    provider = provider or get_settings().llm_provider
    if provider == "claude":
        return ClaudeClient()
    if provider == "openai":
        return OpenAIClient()
    raise ValueError(f"Unknown LLM provider: {provider}")


__all__ = [
    "LLMClient",
    "LLMError",
    "LLMResponse",
    "ClaudeClient",
    "OpenAIClient",
    "create_llm_client",
]
