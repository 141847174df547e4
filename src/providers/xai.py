"""xAI Grok backend using openai SDK (OpenAI-compatible API)."""

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from src.providers.base import ProviderError
from src.providers.openai_provider import OpenAIProvider


class XAIProvider(OpenAIProvider):
    """xAI Grok backend via OpenAI-compatible API."""

    def __init__(self, config: ModelConfig) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for xAI provider")
        super().__init__(config)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
