"""Team consensus protocol: sequential rounds, agents in parallel, concerns carried forward."""

import asyncio
import logging
import re
from collections.abc import Callable

from src.agents import Agent
from src.models import AddressedConcern, AgentResult, CommitInput, Concern, RoundContext, TeamRound
from src.pillars import SEVEN_PILLARS, is_metric_value
from src.refinement import SelfRefinementLoop
from src.retrieval import RetrievalBackend

logger = logging.getLogger(__name__)

LoopFactory = Callable[[Agent], SelfRefinementLoop]

TEXT_SIMILARITY_WEIGHT = 0.7
METRIC_STABILITY_WEIGHT = 0.3
_METRIC_SCALE = 10.0
_MIN_WORD_CHARS = 4


def _normalise(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().lower()


def _words(result: AgentResult) -> set[str]:
    text = f"{result.summary} {result.details}".lower()
    return {w for w in text.split() if len(w) >= _MIN_WORD_CHARS}


def text_similarity(a: AgentResult, b: AgentResult) -> float:
    """Jaccard similarity of the longer words in summary + details."""
    words_a, words_b = _words(a), _words(b)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def metric_stability(
    current: list[AgentResult],
    previous: list[AgentResult],
    pillars: tuple[str, ...] = SEVEN_PILLARS,
) -> float:
    """1.0 when team-average pillar magnitudes did not move, lower as they drift."""
    differences = []
    for pillar in pillars:
        now = [abs(r.metrics[pillar]) for r in current if is_metric_value(r.metrics.get(pillar))]
        before = [abs(r.metrics[pillar]) for r in previous if is_metric_value(r.metrics.get(pillar))]
        if now and before:
            differences.append(abs(sum(now) / len(now) - sum(before) / len(before)) / _METRIC_SCALE)
    if not differences:
        return 1.0
    return max(0.0, 1.0 - sum(differences) / len(differences))


def convergence_score(current: list[AgentResult], previous: list[AgentResult]) -> float | None:
    """Blend of text similarity across all result pairs and metric stability. None for the first round."""
    if not previous or not current:
        return None
    pairs = [text_similarity(c, p) for c in current for p in previous]
    similarity = sum(pairs) / len(pairs)
    return TEXT_SIMILARITY_WEIGHT * similarity + METRIC_STABILITY_WEIGHT * metric_stability(current, previous)


def collect_concerns(results: list[AgentResult], round_index: int) -> list[Concern]:
    return [
        Concern(agent_name=r.agent_name, concern=c, round=round_index)
        for r in results
        for c in r.concerns
    ]


def match_acknowledgements(
    results: list[AgentResult],
    open_concerns: list[Concern],
    agents: list[Agent],
) -> list[tuple[Concern, AddressedConcern]]:
    """Pair each acknowledgement with the earlier concern it refers to.

    Matching is on raising agent (name or role) and concern text, ignoring case
    and whitespace. An acknowledgement without an agent matches on text alone.
    Unmatched acknowledgements are logged and dropped.
    """
    aliases: dict[str, str] = {}
    for agent in agents:
        aliases[_normalise(agent.name)] = agent.name
        aliases[_normalise(agent.role)] = agent.name

    matched: list[tuple[Concern, AddressedConcern]] = []
    for result in results:
        for ack in result.addressed_concerns:
            raiser = aliases.get(_normalise(ack.from_agent), ack.from_agent)
            text = _normalise(ack.concern)
            concern = next(
                (
                    c for c in open_concerns
                    if _normalise(c.concern) == text and (not ack.from_agent or c.agent_name == raiser)
                ),
                None,
            )
            if concern is None:
                logger.debug("%s acknowledged an unknown concern: %s", result.agent_name, ack.concern[:80])
                continue
            matched.append((concern, ack))
    return matched


async def run_consensus(
    commit: CommitInput,
    agents: list[Agent],
    loop_factory: LoopFactory,
    num_rounds: int,
    retriever: RetrievalBackend | None = None,
    on_round_complete: Callable[[TeamRound], None] | None = None,
) -> list[TeamRound]:
    """Run the full multi-round evaluation.

    Args:
        commit: The change under review.
        agents: Council members; all run in every round.
        loop_factory: Builds the self-refinement loop for an agent.
        num_rounds: Total number of rounds; the last one is the final round.
        retriever: Optional context retrieval backend shared by all agents.
        on_round_complete: Optional callback invoked after each round completes.

    Returns:
        List of TeamRound objects, one per round, numbered from 0.

    Raises:
        ValueError: If num_rounds < 1 or no agents are given.
    """
    if num_rounds < 1:
        raise ValueError(f"num_rounds must be >= 1, got {num_rounds}")
    if not agents:
        raise ValueError("At least one agent is required")

    rounds: list[TeamRound] = []

    for round_index in range(num_rounds):
        previous = rounds[-1] if rounds else None
        context = RoundContext(
            round_index=round_index,
            is_final_round=round_index == num_rounds - 1,
            prior_results=tuple(previous.results) if previous else (),
            team_concerns=tuple(previous.concerns_raised) if previous else (),
        )

        logger.info(
            "Starting round %d (%s) with %d agents",
            round_index,
            "final" if context.is_final_round else "initial" if context.is_initial else "discussion",
            len(agents),
        )

        results: list[AgentResult] = list(
            await asyncio.gather(
                *(loop_factory(agent).run(agent, commit, context, retriever) for agent in agents)
            )
        )

        open_concerns = [c for r in rounds for c in r.concerns_raised]
        current = TeamRound(
            number=round_index,
            results=results,
            concerns_raised=collect_concerns(results, round_index),
            acknowledgements=match_acknowledgements(results, open_concerns, agents),
            convergence_score=convergence_score(results, previous.results if previous else []),
        )
        rounds.append(current)

        logger.info(
            "Round %d complete: %d results, %d concerns raised, %d acknowledged%s",
            round_index,
            len(results),
            len(current.concerns_raised),
            len(current.acknowledgements),
            f", convergence {current.convergence_score:.2f}" if current.convergence_score is not None else "",
        )

        if on_round_complete:
            on_round_complete(current)

    return rounds
