"""OpenAI provider: Chat Completions against api.openai.com."""

from openai import AsyncOpenAI

from canopy.providers.openai_compat import OpenAICompatibleProvider

# The models endpoint also lists embedding, audio and image models.
CHAT_MODEL_PREFIXES = ("gpt-", "o1", "o3", "o4", "chatgpt-")
NON_CHAT_MARKERS = ("audio", "realtime", "transcribe", "tts", "image", "embedding")


class OpenAIProvider(OpenAICompatibleProvider):
    suggested_models = [
        "gpt-5-mini",
        "gpt-5.2",
        "gpt-4o",
        "gpt-4o-mini",
    ]

    def __init__(self, *, client: AsyncOpenAI | None = None, api_key: str | None = None) -> None:
        super().__init__(client or AsyncOpenAI(api_key=api_key))

    @property
    def name(self) -> str:
        return "openai"

    def _is_chat_model(self, model_id: str) -> bool:
        return model_id.startswith(CHAT_MODEL_PREFIXES) and not any(
            marker in model_id for marker in NON_CHAT_MARKERS
        )
