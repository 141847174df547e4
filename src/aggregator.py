"""Expertise-weighted consensus score per pillar. Read-only over agent results."""

import logging
from collections.abc import Mapping

from src.expertise import ExpertiseProfile
from src.models import AgentResult
from src.pillars import SEVEN_PILLARS, is_metric_value

logger = logging.getLogger(__name__)


def weighted_average(values: list[tuple[float | None, float]]) -> float | None:
    """Weighted mean of (value, weight) pairs, skipping null values.

    All null -> None. Zero total weight -> simple mean of the values.
    """
    present = [(v, w) for v, w in values if is_metric_value(v)]
    if not present:
        return None
    total_weight = sum(w for _, w in present)
    if total_weight == 0:
        return sum(v for v, _ in present) / len(present)
    return sum(v * w for v, w in present) / total_weight


def aggregate_pillars(
    results: list[AgentResult],
    profiles: Mapping[str, ExpertiseProfile],
    pillars: tuple[str, ...] = SEVEN_PILLARS,
) -> dict[str, float | None]:
    """Combine one result per agent into a single score per pillar.

    Args:
        results: Typically the final round's results.
        profiles: Agent name -> expertise profile; an agent without one weighs 0.
    """
    scores: dict[str, float | None] = {}
    for pillar in pillars:
        pairs = []
        for result in results:
            profile = profiles.get(result.agent_name)
            weight = profile.weight(pillar) if profile is not None else 0.0
            pairs.append((result.metrics.get(pillar), weight))
        scores[pillar] = weighted_average(pairs)
    logger.debug("Aggregated %d results into %s", len(results), scores)
    return scores
