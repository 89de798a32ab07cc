"""Tests for the provider registry."""

import pytest

from canopy.errors import ProviderNotFoundError, ValidationError
from canopy.providers.registry import (
    clear_providers,
    get_all_providers,
    get_provider,
    register_provider,
)
from tests.fixtures import FakeProvider


@pytest.fixture(autouse=True)
def clean_registry():
    clear_providers()
    yield
    clear_providers()


class TestRegistry:
    def test_register_and_get(self):
        provider = FakeProvider()
        register_provider(provider)
        assert get_provider("fake") is provider

    def test_default_is_first_registered(self):
        first = FakeProvider()
        register_provider(first)
        assert get_provider() is first

    def test_unknown_lists_available(self):
        register_provider(FakeProvider())
        with pytest.raises(ProviderNotFoundError, match="Available: fake"):
            get_provider("missing")

    def test_empty_registry(self):
        with pytest.raises(ProviderNotFoundError, match=r"\(none\)"):
            get_provider("anything")
        with pytest.raises(ProviderNotFoundError, match="No LLM providers configured"):
            get_provider()

    def test_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            get_provider()

    def test_all_and_clear(self):
        provider = FakeProvider()
        register_provider(provider)
        assert get_all_providers() == [provider]
        clear_providers()
        assert get_all_providers() == []
