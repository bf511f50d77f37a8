"""OpenAI chat-completions client.

Also serves OpenAI-compatible AI gateways via a custom ``base_url``.
"""

from typing import Any

import openai
import structlog

from arcollect.clients.base import LLMError, LLMResponse
from arcollect.config import get_settings

logger = structlog.get_logger(__name__)


class OpenAIClient:
    """Client for OpenAI's chat completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        if api_key is None and settings.openai_api_key is not None:
            api_key = settings.openai_api_key.get_secret_value()
        if not api_key:
            raise LLMError("OPENAI_API_KEY is not configured", provider="openai")

        self._api_key = api_key
        self._base_url = base_url or settings.openai_base_url
        self._model = model or settings.gpt_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        client_kwargs: dict[str, Any] = {"api_key": self._api_key}
        if self._base_url:
            client_kwargs["base_url"] = self._base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        client_name = "gateway" if self._base_url else "openai"
        self._logger = logger.bind(client=client_name, model=self._model)

    def _convert_messages_to_openai_format(
        self, system_prompt: str, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Prepend the system prompt to user/assistant turns."""
        openai_messages = [{"role": "system", "content": system_prompt}]
        for msg in messages:
            if msg["role"] in ("user", "assistant"):
                openai_messages.append({"role": msg["role"], "content": msg["content"]})
        return openai_messages

    def _parse_response(
        self, response: openai.types.chat.ChatCompletion
    ) -> LLMResponse:
        """Parse OpenAI response into our format."""
        if not response.choices:
            return LLMResponse(content="", stop_reason="end_turn", usage={})

        choice = response.choices[0]
        stop_reason_map = {
            "stop": "end_turn",
            "length": "max_tokens",
            "content_filter": "content_filter",
        }
        return LLMResponse(
            content=choice.message.content or "",
            stop_reason=stop_reason_map.get(choice.finish_reason or "stop", "end_turn"),
            usage={
                "input_tokens": response.usage.prompt_tokens if response.usage else 0,
                "output_tokens": response.usage.completion_tokens if response.usage else 0,
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
    ) -> LLMResponse:
        """Generate a chat completion.

        Raises:
            LLMError: On API errors or an empty completion.
        """
        self._logger.debug("generating_response", message_count=len(messages))

        # GPT-5+ models use max_completion_tokens and nano models only
        # accept the default temperature
        is_gpt5_plus = self._model.startswith("gpt-5") or self._model.startswith("o3")
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": self._convert_messages_to_openai_format(system_prompt, messages),
        }
        if "nano" not in self._model:
            kwargs["temperature"] = self._temperature
        if is_gpt5_plus:
            kwargs["max_completion_tokens"] = self._max_tokens
        else:
            kwargs["max_tokens"] = self._max_tokens

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise LLMError(f"AI generation failed: {e}", provider="openai") from e

        parsed = self._parse_response(response)
        if not parsed.content.strip():
            raise LLMError("AI generation returned no content", provider="openai")

        self._logger.info(
            "response_generated",
            stop_reason=parsed.stop_reason,
            input_tokens=parsed.usage.get("input_tokens", 0),
            output_tokens=parsed.usage.get("output_tokens", 0),
        )
        return parsed
