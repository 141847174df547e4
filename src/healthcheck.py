"""Backend health checks — ping each API before starting an evaluation."""

import asyncio
import logging

from src.providers.base import GenerationRequest, TextGenerator

logger = logging.getLogger(__name__)

_PING_REQUEST = GenerationRequest(
    system_instructions="",
    human_prompt="Reply with the word OK only.",
    max_output_tokens=16,
)
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, provider: TextGenerator) -> tuple[str, bool, str]:
    """Ping a single backend. Returns (name, ok, error_message)."""
    try:
        await asyncio.wait_for(provider.generate(_PING_REQUEST), timeout=_TIMEOUT_SEC)
        return name, True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", name, exc)
        return name, False, str(exc) or type(exc).__name__


async def run_health_checks(
    providers: dict[str, TextGenerator],
) -> dict[str, tuple[bool, str]]:
    """Ping all backends in parallel.

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, p) for n, p in providers.items()))
    return {name: (ok, err) for name, ok, err in results}
