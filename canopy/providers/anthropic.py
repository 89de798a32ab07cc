"""Anthropic (Claude) provider over the Messages API."""

from collections.abc import AsyncIterator
from typing import Any

from anthropic import AsyncAnthropic

from canopy.providers.base import (
    GenerationRequest,
    GenerationResult,
    LLMProvider,
    StreamChunk,
)


class AnthropicProvider(LLMProvider):
    suggested_models = [
        "claude-haiku-4-5-20251001",
        "claude-sonnet-4-5-20250929",
        "claude-opus-4-6",
    ]

    def __init__(self, client: AsyncAnthropic) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "anthropic"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        message = await self._client.messages.create(**_message_params(request))
        return _to_result(message)

    async def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        """Text deltas from the SDK's stream helper, then the assembled final message."""
        async with self._client.messages.stream(**_message_params(request)) as stream:
            async for text in stream.text_stream:
                yield StreamChunk(type="text_delta", text=text)
            message = await stream.get_final_message()
        yield StreamChunk(type="message_stop", is_final=True, result=_to_result(message))

    async def list_models(self) -> list[str]:
        return [model.id async for model in self._client.models.list()]


def _message_params(request: GenerationRequest) -> dict[str, Any]:
    return {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "messages": request.messages,
    }


def _to_result(message: Any) -> GenerationResult:
    text = "".join(block.text for block in message.content if block.type == "text")
    return GenerationResult(
        content=text,
        model=message.model,
        finish_reason=message.stop_reason,
        usage={
            "input_tokens": message.usage.input_tokens,
            "output_tokens": message.usage.output_tokens,
        },
    )
