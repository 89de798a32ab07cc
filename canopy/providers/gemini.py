"""Gemini provider via Google's OpenAI-compatible endpoint.

The endpoint speaks Chat Completions, so only the base URL, the model
list, and the ``models/`` id prefix differ from OpenAI.
"""

from openai import AsyncOpenAI

from canopy.providers.openai_compat import OpenAICompatibleProvider

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GeminiProvider(OpenAICompatibleProvider):
    suggested_models = [
        "gemini-2.5-flash-lite",
        "gemini-2.5-flash",
        "gemini-2.5-pro",
    ]

    def __init__(self, *, client: AsyncOpenAI | None = None, api_key: str | None = None) -> None:
        super().__init__(client or AsyncOpenAI(api_key=api_key, base_url=GEMINI_BASE_URL))

    @property
    def name(self) -> str:
        return "gemini"

    def _model_id(self, raw_id: str) -> str:
        return raw_id.removeprefix("models/")

    def _is_chat_model(self, model_id: str) -> bool:
        return model_id.startswith("gemini-") and "embedding" not in model_id
