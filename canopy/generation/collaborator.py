"""Model collaborator: the narrow interface the generation session uses to talk to LLMs.

Wraps the provider registry. Generation failures never raise past this
layer: ``generate`` returns an error string, ``stream`` yields an error
chunk, and summaries and titles fall back to text derived from the prompt.
"""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import yaml

from canopy.generation.context import build_prompt, fallback_line
from canopy.providers.base import GenerationRequest, LLMProvider, StreamChunk
from canopy.providers.registry import get_provider

logger = logging.getLogger(__name__)

PROMPTS_PATH = Path(__file__).resolve().parent.parent / "prompts.yml"

ERROR_PREFIX = "Error calling model: "
TITLE_MAX_CHARS = 80


def load_prompts(path: Path = PROMPTS_PATH) -> dict[str, str]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return {key: str(value) for key, value in data.items()}


class ModelCollaborator:
    """Resolves providers/models and degrades failures into text."""

    def __init__(
        self,
        *,
        default_provider: str | None = None,
        default_model: str | None = None,
        summary_provider: str | None = None,
        summary_model: str | None = None,
        prompts: dict[str, str] | None = None,
    ) -> None:
        self._default_provider = default_provider
        self._default_model = default_model
        self._summary_provider = summary_provider
        self._summary_model = summary_model
        self._prompts = prompts if prompts is not None else load_prompts()

    def resolve_provider(self, name: str | None = None) -> LLMProvider:
        """The named provider, else the configured default, else the first registered.

        Raises ProviderNotFoundError if nothing matches.
        """
        return get_provider(name or self._default_provider)

    def resolve_model(self, provider: LLMProvider, model: str | None = None) -> str:
        if model:
            return model
        if self._default_model and (
            self._default_provider is None or self._default_provider == provider.name
        ):
            return self._default_model
        if provider.suggested_models:
            return provider.suggested_models[0]
        raise ValueError(f"No model given and provider '{provider.name}' suggests none")

    async def generate(
        self,
        prompt: str,
        model: str | None = None,
        context: str | None = None,
        *,
        provider: str | None = None,
    ) -> str:
        """One-shot generation. Failures come back as an ``Error calling model:`` string."""
        try:
            llm = self.resolve_provider(provider)
            request = self._request(llm, model, build_prompt(context or "", prompt))
            result = await llm.generate(request)
        except Exception as e:
            logger.exception("Model call failed")
            return f"{ERROR_PREFIX}{e}"
        return result.content

    async def stream(
        self,
        prompt: str,
        model: str | None = None,
        context: str | None = None,
        *,
        provider: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream text fragments. A failure ends the stream with an ``error`` chunk."""
        try:
            llm = self.resolve_provider(provider)
            request = self._request(llm, model, build_prompt(context or "", prompt))
            async for chunk in llm.generate_stream(request):
                yield chunk
        except Exception as e:
            logger.exception("Model stream failed")
            yield StreamChunk(type="error", text=f"{ERROR_PREFIX}{e}", is_final=True)

    async def summarize(
        self, prior_summary: str | None, prompt: str, response: str | None
    ) -> str:
        """Summary of the conversation so far. Falls back to the prior summary or the prompt."""
        fallback = prior_summary or fallback_line(prompt)
        text = await self._derive(
            "summary",
            prior_summary=prior_summary or "No previous summary.",
            user_prompt=prompt,
            ai_response=response or "No response yet.",
        )
        return text or fallback

    async def title_for(self, prompt: str, response: str | None) -> str:
        """Short conversation title. Falls back to the truncated prompt."""
        text = await self._derive(
            "title",
            user_prompt=prompt,
            ai_response=response or "No response yet.",
        )
        if text:
            title = text.splitlines()[0].strip().strip("\"'").rstrip(".")
            if title:
                return title[:TITLE_MAX_CHARS]
        return fallback_line(prompt)

    async def _derive(self, template: str, **values: str) -> str | None:
        """Run a prompt template against the summary model. None on failure."""
        try:
            llm = self.resolve_provider(self._summary_provider)
            model = self._summary_model if self._summary_provider in (None, llm.name) else None
            request = self._request(llm, model, self._prompts[template].format(**values))
            result = await llm.generate(request)
        except Exception:
            logger.warning("Deriving %s failed, using fallback", template, exc_info=True)
            return None
        return result.content.strip() or None

    def _request(self, llm: LLMProvider, model: str | None, content: str) -> GenerationRequest:
        return GenerationRequest(
            model=self.resolve_model(llm, model),
            messages=[{"role": "user", "content": content}],
        )
