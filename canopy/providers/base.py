"""Abstract LLM provider interface and the request/response types it speaks."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Literal

from pydantic import BaseModel

DEFAULT_MAX_TOKENS = 2048


class GenerationRequest(BaseModel):
    """A single-model call: the collaborator always sends one user message."""

    model: str
    messages: list[dict[str, str]]
    max_tokens: int = DEFAULT_MAX_TOKENS


class GenerationResult(BaseModel):
    content: str
    model: str
    finish_reason: str | None = None
    usage: dict[str, int] | None = None


class StreamChunk(BaseModel):
    """A text delta, or the final chunk carrying the full result (or an error)."""

    type: Literal["text_delta", "message_stop", "error"]
    text: str = ""
    is_final: bool = False
    result: GenerationResult | None = None


class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    suggested_models: list[str] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., 'anthropic')."""
        ...

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        ...

    @abstractmethod
    def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        """Yield text deltas, then one ``message_stop`` chunk with the result."""
        ...

    async def list_models(self) -> list[str]:
        """Models the provider's API offers. Defaults to the suggested list."""
        return list(self.suggested_models)
