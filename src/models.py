"""Dataclasses for the commit evaluation pipeline. No logic beyond small helpers, no deps."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class CommitInput:
    diff: str
    files_changed: tuple[str, ...] = ()
    commit_message: str | None = None
    developer_overview: str | None = None
    source: str = "stdin"  # file path, "git:<rev>" or "stdin"


@dataclass(frozen=True)
class AddressedConcern:
    from_agent: str
    concern: str
    addressed: bool
    explanation: str | None = None


@dataclass(frozen=True)
class FinalSynthesis:
    summary: str
    details: str
    metrics: dict[str, float | None]
    unresolved_concerns: tuple[str, ...] = ()
    evolution_notes: str = ""


@dataclass(frozen=True)
class AgentResult:
    agent_name: str              # technical key, e.g. "sdet"
    agent_role: str              # display name, e.g. "SDET (Test Automation Engineer)"
    summary: str
    details: str
    metrics: dict[str, float | None]
    concerns: tuple[str, ...] = ()
    addressed_concerns: tuple[AddressedConcern, ...] = ()
    confidence_level: float | None = None
    round: int = 0
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    internal_iterations: int = 0
    clarity_score: int = 0
    missing_information: tuple[str, ...] = ()
    refinement_notes: tuple[str, ...] = ()
    final_synthesis: FinalSynthesis | None = None


@dataclass(frozen=True)
class Concern:
    agent_name: str
    concern: str
    round: int


@dataclass(frozen=True)
class RoundContext:
    round_index: int
    is_final_round: bool
    prior_results: tuple[AgentResult, ...] = ()
    team_concerns: tuple[Concern, ...] = ()

    @property
    def is_initial(self) -> bool:
        return self.round_index == 0


@dataclass
class TeamRound:
    number: int
    results: list[AgentResult] = field(default_factory=list)
    concerns_raised: list[Concern] = field(default_factory=list)
    acknowledgements: list[tuple[Concern, AddressedConcern]] = field(default_factory=list)
    convergence_score: float | None = None


@dataclass
class EvaluationResult:
    commit: CommitInput
    rounds: list[TeamRound]
    pillar_scores: dict[str, float | None]
    depth_mode: str
    total_duration_sec: float
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    synthesis: FinalSynthesis | None = None
    synthesizer: str | None = None
