"""Abstract base class for LLM service providers.

Defines the contract for the chat model that turns a question plus retrieved
context into an answer.  Sampling parameters come from the active tier's
:class:`~ragchat.config.tiers.ModelConfig`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ragchat.config.tiers import ModelConfig


@dataclass(frozen=True)
class LLMMessage:
    """One chat message: ``role`` is ``system``, ``user`` or ``assistant``."""

    role: str
    content: str


@dataclass(frozen=True)
class LLMResponse:
    """The model's reply plus usage bookkeeping."""

    content: str
    model: str
    total_tokens: int | None = None


# Concrete implementation: OpenAILLMProvider (ragchat/providers/llm/)
class ILLMProvider(ABC):
    """Contract for chat-completion services used by the conversation layer."""

    @abstractmethod
    async def invoke(self, messages: list[LLMMessage], model_config: ModelConfig) -> LLMResponse:
        """Send *messages* to the model and return its reply.

        Parameters
        ----------
        messages:
            Ordered conversation: system prompt, prior exchanges, question.
        model_config:
            Model name, temperature, max_tokens and top_p to apply.

        Raises
        ------
        ragchat.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""
