"""OpenAI backend using openai SDK with native async. Also serves OpenAI-compatible APIs."""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from src.providers.base import Generation, GenerationRequest, ProviderError, TextGenerator, usage_from_mapping

logger = logging.getLogger(__name__)


def chat_messages(request: GenerationRequest) -> list[dict[str, str]]:
    messages = []
    if request.system_instructions:
        messages.append({"role": "system", "content": request.system_instructions})
    messages.append({"role": "user", "content": request.human_prompt})
    return messages


class OpenAIProvider(TextGenerator):
    """OpenAI backend via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, request: GenerationRequest) -> Generation:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=chat_messages(request),
                    max_tokens=min(request.max_output_tokens, self._config.max_tokens),
                    temperature=self._config.temperature,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        usage = usage_from_mapping(response.usage)
        logger.debug("%s: %.2fs, %d tokens", self._config.name, latency, usage.total_tokens)

        return Generation(content=choice.message.content, usage=usage, latency_sec=latency)
