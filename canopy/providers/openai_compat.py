"""Provider base for Chat Completions APIs (OpenAI itself and compatible endpoints)."""

from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from canopy.providers.base import (
    GenerationRequest,
    GenerationResult,
    LLMProvider,
    StreamChunk,
)


class OpenAICompatibleProvider(LLMProvider):
    """Shared Chat Completions logic. Subclasses set ``name``, the client, and model filtering."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        completion = await self._client.chat.completions.create(**_completion_params(request))
        choice = completion.choices[0]
        return GenerationResult(
            content=choice.message.content or "",
            model=completion.model,
            finish_reason=choice.finish_reason,
            usage=_usage(completion.usage),
        )

    async def generate_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamChunk]:
        stream = await self._client.chat.completions.create(
            **_completion_params(request),
            stream=True,
            stream_options={"include_usage": True},
        )
        parts: list[str] = []
        model = request.model
        finish_reason: str | None = None
        usage: dict[str, int] | None = None

        async for chunk in stream:
            model = chunk.model or model
            # The usage chunk arrives last and has no choices.
            if chunk.usage:
                usage = _usage(chunk.usage)
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.delta.content:
                parts.append(choice.delta.content)
                yield StreamChunk(type="text_delta", text=choice.delta.content)
            finish_reason = choice.finish_reason or finish_reason

        yield StreamChunk(
            type="message_stop",
            is_final=True,
            result=GenerationResult(
                content="".join(parts),
                model=model,
                finish_reason=finish_reason,
                usage=usage,
            ),
        )

    async def list_models(self) -> list[str]:
        ids = [self._model_id(model.id) async for model in self._client.models.list()]
        return sorted(i for i in ids if self._is_chat_model(i))

    def _model_id(self, raw_id: str) -> str:
        return raw_id

    def _is_chat_model(self, model_id: str) -> bool:
        return True


def _completion_params(request: GenerationRequest) -> dict[str, Any]:
    return {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "messages": request.messages,
    }


def _usage(usage: Any) -> dict[str, int] | None:
    if usage is None:
        return None
    return {"input_tokens": usage.prompt_tokens, "output_tokens": usage.completion_tokens}
