"""Tests for ModelCollaborator: provider resolution and failure degradation."""

import pytest

from canopy.errors import ProviderNotFoundError
from canopy.generation.collaborator import ModelCollaborator, load_prompts
from canopy.providers.registry import clear_providers, register_provider
from tests.fixtures import FakeProvider


@pytest.fixture
def provider():
    clear_providers()
    fake = FakeProvider(reply="A reply")
    register_provider(fake)
    yield fake
    clear_providers()


class TestResolution:
    def test_first_registered_is_default(self, provider):
        assert ModelCollaborator().resolve_provider() is provider

    def test_named_provider(self, provider):
        assert ModelCollaborator().resolve_provider("fake") is provider

    def test_unknown_provider(self, provider):
        with pytest.raises(ProviderNotFoundError, match="Available: fake"):
            ModelCollaborator().resolve_provider("nope")

    def test_no_providers(self):
        clear_providers()
        with pytest.raises(ProviderNotFoundError):
            ModelCollaborator().resolve_provider()

    def test_model_falls_back_to_suggested(self, provider):
        assert ModelCollaborator().resolve_model(provider) == "fake-model"

    def test_configured_default_model(self, provider):
        collab = ModelCollaborator(default_provider="fake", default_model="fake-large")
        assert collab.resolve_model(provider) == "fake-large"
        assert collab.resolve_model(provider, "explicit") == "explicit"


class TestGenerate:
    async def test_returns_content(self, provider):
        text = await ModelCollaborator().generate("Hi", context="Earlier stuff")
        assert text == "A reply"
        sent = provider.requests[0].messages[0]["content"]
        assert sent == "Conversation Context:\nEarlier stuff\n\nUser Message:\nHi"

    async def test_failure_becomes_error_string(self, provider):
        provider.fail_generate = True
        text = await ModelCollaborator().generate("Hi")
        assert text.startswith("Error calling model: ")


class TestStream:
    async def test_yields_chunks(self, provider):
        provider.chunks = ["a", "b"]
        chunks = [c async for c in ModelCollaborator().stream("Hi")]
        assert [c.text for c in chunks if c.type == "text_delta"] == ["a", "b"]
        assert chunks[-1].type == "message_stop"

    async def test_failure_ends_with_error_chunk(self, provider):
        provider.chunks = ["a", "b"]
        provider.fail_after = 1
        chunks = [c async for c in ModelCollaborator().stream("Hi")]
        assert [c.type for c in chunks] == ["text_delta", "error"]
        assert chunks[-1].text == "Error calling model: upstream exploded"


class TestSummaries:
    async def test_summarize_uses_template(self, provider):
        summary = await ModelCollaborator().summarize(None, "Question", "Answer")
        assert summary == "A reply"
        sent = provider.requests[0].messages[0]["content"]
        assert "User: Question" in sent
        assert "AI: Answer" in sent
        assert "No previous summary." in sent

    async def test_summarize_falls_back_to_prior(self, provider):
        provider.fail_generate = True
        summary = await ModelCollaborator().summarize("Before", "Question", "Answer")
        assert summary == "Before"

    async def test_summarize_falls_back_to_prompt(self, provider):
        provider.fail_generate = True
        summary = await ModelCollaborator().summarize(None, "Question", "Answer")
        assert summary == "Question"

    async def test_title_cleaned(self, provider):
        provider.reply = '"Rainbow Physics."\nextra'
        assert await ModelCollaborator().title_for("Why rainbows?", "Light") == "Rainbow Physics"

    async def test_title_falls_back_to_prompt(self, provider):
        provider.fail_generate = True
        title = await ModelCollaborator().title_for("p" * 70, "r")
        assert title == "p" * 50 + "..."

    async def test_summary_provider_and_model(self, provider):
        collab = ModelCollaborator(summary_provider="fake", summary_model="tiny")
        await collab.summarize(None, "q", "a")
        assert provider.requests[0].model == "tiny"


class TestPrompts:
    def test_templates_present(self):
        prompts = load_prompts()
        assert "{user_prompt}" in prompts["summary"]
        assert "{prior_summary}" in prompts["summary"]
        assert "{ai_response}" in prompts["title"]
