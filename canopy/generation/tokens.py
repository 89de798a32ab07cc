"""Token counting for context size estimates.

Provides a TokenCounter interface and the approximate counter (len // 4)
used to report ``token_estimate`` on assembled contexts.
"""

from abc import ABC, abstractmethod


class TokenCounter(ABC):
    """Interface for counting tokens in text."""

    @abstractmethod
    def count(self, text: str) -> int:
        """Return the estimated token count for the given text."""
        ...


class ApproximateTokenCounter(TokenCounter):
    """len(text) // 4.

    Roughly 4 characters per token for English text. Good enough to show
    how large a context is; not a substitute for a provider tokenizer.
    """

    def count(self, text: str) -> int:
        return len(text) // 4
