"""Anthropic Claude backend using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from src.providers.base import Generation, GenerationRequest, ProviderError, TextGenerator, usage_from_mapping

logger = logging.getLogger(__name__)


class AnthropicProvider(TextGenerator):
    """Anthropic Claude backend via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, request: GenerationRequest) -> Generation:
        start = time.monotonic()
        kwargs = {}
        if request.system_instructions:
            kwargs["system"] = request.system_instructions
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._config.model,
                    max_tokens=min(request.max_output_tokens, self._config.max_tokens),
                    temperature=self._config.temperature,
                    messages=[{"role": "user", "content": request.human_prompt}],
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        usage = usage_from_mapping(response.usage)
        logger.debug("Anthropic: %.2fs, %d tokens", latency, usage.total_tokens)

        return Generation(content="\n".join(text_blocks), usage=usage, latency_sec=latency)
