"""Gemini backend using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from src.providers.base import Generation, GenerationRequest, ProviderError, TextGenerator, usage_from_mapping

logger = logging.getLogger(__name__)


class GeminiProvider(TextGenerator):
    """Google Gemini backend via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, request: GenerationRequest) -> Generation:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=request.human_prompt,
                    config=genai_types.GenerateContentConfig(
                        system_instruction=request.system_instructions or None,
                        max_output_tokens=min(request.max_output_tokens, self._config.max_tokens),
                        temperature=self._config.temperature,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        usage = usage_from_mapping(response.usage_metadata)
        logger.debug("Gemini: %.2fs, %d tokens", latency, usage.total_tokens)

        return Generation(content=response.text, usage=usage, latency_sec=latency)
