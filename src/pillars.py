"""Pillar registry: the scored dimensions of a commit and their validity rules."""

from dataclasses import dataclass

SEVEN_PILLARS: tuple[str, ...] = (
    "functionalImpact",
    "idealTimeHours",
    "testCoverage",
    "codeQuality",
    "codeComplexity",
    "actualTimeHours",
    "technicalDebtHours",
)

# debtReductionHours is collected separately so net debt can be derived later
EIGHT_PILLARS: tuple[str, ...] = SEVEN_PILLARS + ("debtReductionHours",)


@dataclass(frozen=True)
class PillarDefinition:
    name: str
    display_name: str
    can_be_null: bool
    allow_negative: bool
    min_value: float
    max_value: float
    keywords: tuple[str, ...] = ()

    def in_range(self, value: float) -> bool:
        if value < 0 and not self.allow_negative:
            return False
        return self.min_value <= value <= self.max_value


PILLAR_DEFINITIONS: dict[str, PillarDefinition] = {
    "functionalImpact": PillarDefinition(
        name="functionalImpact",
        display_name="Functional Impact",
        can_be_null=True,
        allow_negative=False,
        min_value=0,
        max_value=10,
        keywords=("user", "business", "feature", "impact", "functional", "customer"),
    ),
    "idealTimeHours": PillarDefinition(
        name="idealTimeHours",
        display_name="Ideal Time Hours",
        can_be_null=True,
        allow_negative=False,
        min_value=0,
        max_value=160,
        keywords=("ideal", "estimate", "scope", "should take", "effort", "hours"),
    ),
    "testCoverage": PillarDefinition(
        name="testCoverage",
        display_name="Test Coverage",
        can_be_null=True,
        allow_negative=False,
        min_value=0,
        max_value=10,
        keywords=("test", "coverage", "assert", "fixture", "mock", "edge case"),
    ),
    "codeQuality": PillarDefinition(
        name="codeQuality",
        display_name="Code Quality",
        can_be_null=False,
        allow_negative=False,
        min_value=0,
        max_value=10,
        keywords=("quality", "readab", "maintainab", "clean", "naming", "smell", "solid"),
    ),
    "codeComplexity": PillarDefinition(
        name="codeComplexity",
        display_name="Code Complexity",
        can_be_null=False,
        allow_negative=False,
        min_value=0,
        max_value=10,
        keywords=("complex", "simple", "cognitive", "nesting", "coupling", "branch"),
    ),
    "actualTimeHours": PillarDefinition(
        name="actualTimeHours",
        display_name="Actual Time Hours",
        can_be_null=True,
        allow_negative=False,
        min_value=0,
        max_value=160,
        keywords=("actual", "spent", "implementation time", "took", "hours", "effort"),
    ),
    "technicalDebtHours": PillarDefinition(
        name="technicalDebtHours",
        display_name="Technical Debt Hours",
        can_be_null=True,
        allow_negative=True,
        min_value=-160,
        max_value=160,
        keywords=("debt", "todo", "shortcut", "refactor", "workaround", "legacy"),
    ),
    "debtReductionHours": PillarDefinition(
        name="debtReductionHours",
        display_name="Debt Reduction Hours",
        can_be_null=True,
        allow_negative=False,
        min_value=0,
        max_value=160,
        keywords=("cleanup", "removed", "refactor", "paid down", "simplif", "legacy"),
    ),
}


def get_definition(pillar: str) -> PillarDefinition:
    """Return the registry entry for a pillar.

    Raises:
        KeyError: If the pillar is not registered.
    """
    return PILLAR_DEFINITIONS[pillar]


def pillar_set(include_debt_reduction: bool = False) -> tuple[str, ...]:
    return EIGHT_PILLARS if include_debt_reduction else SEVEN_PILLARS


def is_metric_value(value: object) -> bool:
    """True for ints and floats; bools are rejected even though they subclass int."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def null_metrics(pillars: tuple[str, ...] = SEVEN_PILLARS) -> dict[str, float | None]:
    return {pillar: None for pillar in pillars}
