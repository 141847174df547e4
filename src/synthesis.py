"""Final synthesis: build transcript, call synthesizer, return the consolidated FinalSynthesis."""

import logging

from config.config_loader import PromptsConfig
from src.agents import format_commit_section, format_result, metrics_schema
from src.interpreter import extract_json_object, parse_final_synthesis
from src.models import CommitInput, FinalSynthesis, TeamRound
from src.pillars import SEVEN_PILLARS
from src.providers.base import GenerationRequest, TextGenerator

logger = logging.getLogger(__name__)

SYNTHESIS_SYSTEM_INSTRUCTIONS = (
    "You consolidate a code review council's discussion into one evaluation. Output valid JSON only."
)
SYNTHESIS_MAX_TOKENS = 6000


def _format_full_transcript(rounds: list[TeamRound]) -> str:
    """Format all rounds into a single transcript string for synthesis."""
    parts: list[str] = []
    for rnd in rounds:
        parts.append(f"## Round {rnd.number}")
        for result in rnd.results:
            block = format_result(result)
            if result.final_synthesis is not None:
                fs = result.final_synthesis
                block += f"\nFinal position: {fs.summary}"
                if fs.unresolved_concerns:
                    block += "\nUnresolved: " + "; ".join(fs.unresolved_concerns)
            parts.append(block)
    return "\n\n".join(parts)


async def synthesize(
    commit: CommitInput,
    rounds: list[TeamRound],
    generator: TextGenerator,
    prompts: PromptsConfig,
    pillars: tuple[str, ...] = SEVEN_PILLARS,
) -> FinalSynthesis:
    """Run synthesis once over the whole transcript.

    Args:
        commit: The evaluated change.
        rounds: All completed rounds.
        generator: The backend that writes the synthesis.
        prompts: Prompt templates from config.
        pillars: Pillar set the synthesis metrics are reduced to.

    Returns:
        FinalSynthesis consolidating every agent's last position.

    Raises:
        ProviderError: If the synthesizer call fails.
        RuntimeError: If the synthesizer returns empty or unusable content.
    """
    agent_count = len(rounds[-1].results) if rounds else 0
    prompt = prompts.synthesis.format(
        agent_count=agent_count,
        rounds=len(rounds),
        commit_section=format_commit_section(commit),
        full_transcript=_format_full_transcript(rounds),
        metrics_schema=metrics_schema(pillars),
    )

    logger.info("Running synthesis via %s", generator.name())

    generation = await generator.generate(
        GenerationRequest(
            system_instructions=SYNTHESIS_SYSTEM_INSTRUCTIONS,
            human_prompt=prompt,
            max_output_tokens=SYNTHESIS_MAX_TOKENS,
        )
    )

    if not generation.content:
        raise RuntimeError(f"Synthesizer {generator.name()} returned empty content")

    try:
        parsed = extract_json_object(generation.content)
    except ValueError as exc:
        raise RuntimeError(f"Synthesizer {generator.name()} returned unparseable content: {exc}") from exc

    synthesis = parse_final_synthesis(parsed, pillars, agent_name="synthesizer")
    if synthesis is None:
        raise RuntimeError(f"Synthesizer {generator.name()} returned no summary")
    return synthesis
