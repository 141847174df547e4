"""Abstract base for all text-generation backends."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from src.models import TokenUsage


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass(frozen=True)
class GenerationRequest:
    system_instructions: str
    human_prompt: str
    max_output_tokens: int


@dataclass(frozen=True)
class Generation:
    content: str
    usage: TokenUsage | None = None
    latency_sec: float = 0.0


def _first_int(raw: Any, *keys: str) -> int | None:
    for key in keys:
        value = raw.get(key) if isinstance(raw, Mapping) else getattr(raw, key, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def usage_from_mapping(raw: Any) -> TokenUsage:
    """Normalise token counts reported under different names.

    Accepts a mapping or an SDK usage object. input_tokens/prompt_tokens and
    output_tokens/completion_tokens are synonyms; total falls back to the sum.
    Absent usage yields zeros.
    """
    if raw is None:
        return TokenUsage()
    input_tokens = _first_int(raw, "input_tokens", "prompt_tokens", "prompt_token_count") or 0
    output_tokens = _first_int(raw, "output_tokens", "completion_tokens", "candidates_token_count") or 0
    total_tokens = _first_int(raw, "total_tokens", "total_token_count")
    if total_tokens is None:
        total_tokens = input_tokens + output_tokens
    return TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total_tokens)


class TextGenerator(ABC):
    """Abstract base for all text-generation backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'anthropic')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> Generation:
        """Generate a completion for one request.

        Args:
            request: System instructions, human prompt and output token cap.

        Returns:
            Generation with content, optional usage and latency.

        Raises:
            ProviderError: On API failure, timeout, or empty content.
        """
        ...
