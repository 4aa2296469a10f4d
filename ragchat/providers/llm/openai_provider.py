"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Model name and sampling parameters are supplied per call from the active
tier, so one provider instance serves every tier.  With ``llm_streaming``
enabled the reply is streamed and the deltas are accumulated before
returning.
"""

from __future__ import annotations

import openai
import structlog

from ragchat.config.settings import Settings
from ragchat.config.tiers import ModelConfig
from ragchat.interfaces.llm_provider import ILLMProvider, LLMMessage, LLMResponse
from ragchat.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        self._timeout = settings.llm_timeout_seconds
        self._streaming = settings.llm_streaming

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(self._timeout, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def invoke(self, messages: list[LLMMessage], model_config: ModelConfig) -> LLMResponse:
        """Run one chat completion with the tier's sampling parameters."""
        request = {
            "model": model_config.name,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": model_config.temperature,
            "max_tokens": model_config.max_tokens,
            "top_p": model_config.top_p,
        }
        try:
            if self._streaming:
                content, tokens = await self._stream(request)
            else:
                response = await self._client.chat.completions.create(**request)
                content = response.choices[0].message.content
                tokens = response.usage.total_tokens if response.usage else None
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out after {self._timeout:g}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not content:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "openai_completion",
            model=model_config.name,
            provider=self._provider_label,
            streamed=self._streaming,
            tokens=tokens,
        )
        return LLMResponse(content=content, model=model_config.name, total_tokens=tokens)

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _stream(self, request: dict) -> tuple[str, int | None]:
        """Consume a streamed completion; return the joined text and token usage."""
        parts: list[str] = []
        tokens: int | None = None
        stream = await self._client.chat.completions.create(
            **request,
            stream=True,
            stream_options={"include_usage": True},
        )
        async for event in stream:
            if event.choices and event.choices[0].delta.content:
                parts.append(event.choices[0].delta.content)
            if event.usage:
                tokens = event.usage.total_tokens
        return "".join(parts), tokens
