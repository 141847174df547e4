"""Per-agent expertise weights and the PRIMARY/SECONDARY/TERTIARY partition derived from them."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from src.pillars import PILLAR_DEFINITIONS

PRIMARY_MIN_WEIGHT = 0.4
SECONDARY_MIN_WEIGHT = 0.15


class Band(str, Enum):
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    TERTIARY = "TERTIARY"


@dataclass(frozen=True)
class ExpertiseBands:
    primary: tuple[str, ...]
    secondary: tuple[str, ...]
    tertiary: tuple[str, ...]

    def band_of(self, pillar: str) -> Band | None:
        if pillar in self.primary:
            return Band.PRIMARY
        if pillar in self.secondary:
            return Band.SECONDARY
        if pillar in self.tertiary:
            return Band.TERTIARY
        return None


@dataclass(frozen=True)
class ExpertiseProfile:
    """Immutable pillar -> weight mapping owned by an agent definition.

    Bands are recomputed from the weights on every call so they cannot drift.
    """

    weights: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for pillar, weight in self.weights.items():
            if pillar not in PILLAR_DEFINITIONS:
                raise ValueError(f"Unknown pillar in expertise profile: {pillar}")
            if not 0.0 <= float(weight) <= 1.0:
                raise ValueError(f"Expertise weight for {pillar} must be in [0, 1], got {weight}")
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))

    def weight(self, pillar: str) -> float:
        return float(self.weights.get(pillar, 0.0))

    def band_for(self, weight: float) -> Band:
        if weight >= PRIMARY_MIN_WEIGHT:
            return Band.PRIMARY
        if weight >= SECONDARY_MIN_WEIGHT:
            return Band.SECONDARY
        return Band.TERTIARY

    def bands(self, pillars: tuple[str, ...] | None = None) -> ExpertiseBands:
        """Partition pillars by weight.

        Args:
            pillars: Pillars to partition. Defaults to the pillars the profile
                weights; a pillar without a weight lands in TERTIARY.
        """
        names = pillars if pillars is not None else tuple(self.weights)
        grouped: dict[Band, list[str]] = {band: [] for band in Band}
        for pillar in names:
            grouped[self.band_for(self.weight(pillar))].append(pillar)
        return ExpertiseBands(
            primary=tuple(grouped[Band.PRIMARY]),
            secondary=tuple(grouped[Band.SECONDARY]),
            tertiary=tuple(grouped[Band.TERTIARY]),
        )
