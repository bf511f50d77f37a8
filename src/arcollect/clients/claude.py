"""Claude (Anthropic) LLM client."""

from typing import Any

import anthropic
import structlog

from arcollect.clients.base import LLMError, LLMResponse
from arcollect.config import get_settings

logger = structlog.get_logger(__name__)


class ClaudeClient:
    """Client for Anthropic's Claude API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        if api_key is None and settings.anthropic_api_key is not None:
            api_key = settings.anthropic_api_key.get_secret_value()
        if not api_key:
            raise LLMError("ANTHROPIC_API_KEY is not configured", provider="claude")

        self._api_key = api_key
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._logger = logger.bind(client="claude", model=self._model)

    def _convert_messages_to_anthropic_format(
        self, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Keep only user/assistant turns; Anthropic takes the system prompt separately."""
        return [
            {"role": msg["role"], "content": msg["content"]}
            for msg in messages
            if msg["role"] in ("user", "assistant") and msg.get("content")
        ]

    def _parse_response(self, response: anthropic.types.Message) -> LLMResponse:
        """Parse Anthropic response into our format."""
        content = "".join(block.text for block in response.content if block.type == "text")

        return LLMResponse(
            content=content,
            stop_reason=response.stop_reason or "end_turn",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
    ) -> LLMResponse:
        """Generate a response from Claude.

        Args:
            system_prompt: The system prompt defining the persona.
            messages: Conversation as list of ``{"role", "content"}`` dicts.

        Returns:
            LLMResponse with content and usage info.

        Raises:
            LLMError: On API errors or an empty completion.
        """
        self._logger.debug("generating_response", message_count=len(messages))

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system_prompt,
                messages=self._convert_messages_to_anthropic_format(messages),
                temperature=self._temperature,
            )
        except anthropic.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise LLMError(f"AI generation failed: {e}", provider="claude") from e

        parsed = self._parse_response(response)
        if not parsed.content.strip():
            raise LLMError("AI generation returned no content", provider="claude")

        self._logger.info(
            "response_generated",
            stop_reason=parsed.stop_reason,
            input_tokens=parsed.usage["input_tokens"],
            output_tokens=parsed.usage["output_tokens"],
        )
        return parsed
