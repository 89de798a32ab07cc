"""Provider registry: the configured LLM providers, by name, in registration order."""

from canopy.errors import ProviderNotFoundError
from canopy.providers.base import LLMProvider

_providers: dict[str, LLMProvider] = {}


def register_provider(provider: LLMProvider) -> None:
    _providers[provider.name] = provider


def get_provider(name: str | None = None) -> LLMProvider:
    """The named provider, or the first registered one when ``name`` is None.

    Raises ProviderNotFoundError naming the available providers.
    """
    if name is None:
        if not _providers:
            raise ProviderNotFoundError("No LLM providers configured")
        return next(iter(_providers.values()))
    if name not in _providers:
        available = ", ".join(_providers) or "(none)"
        raise ProviderNotFoundError(f"Provider '{name}' not registered. Available: {available}")
    return _providers[name]


def get_all_providers() -> list[LLMProvider]:
    return list(_providers.values())


def clear_providers() -> None:
    """Forget every provider (app shutdown and tests)."""
    _providers.clear()
