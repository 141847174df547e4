"""Agent definitions built from config, and the prompts each agent sends to its backend."""

import json
import logging

from config.config_loader import AgentConfig, AppConfig, ConfigError, PromptsConfig
from src.expertise import ExpertiseProfile
from src.models import AgentResult, CommitInput, Concern, RoundContext
from src.pillars import PILLAR_DEFINITIONS, SEVEN_PILLARS
from src.retrieval import RetrievalQuery, queries_for_concerns

logger = logging.getLogger(__name__)

MAX_DIFF_CHARS = 60000

FINAL_ROUND_REMINDER = (
    "**This is the FINAL round.** Commit to decisive scores, keep your \"addressedConcerns\" "
    "and include the \"finalSynthesis\" object."
)

_FINAL_SYNTHESIS_SCHEMA = """,
  "finalSynthesis": {{
    "summary": "Consolidated summary across all {rounds} rounds from your perspective",
    "details": "Full analysis incorporating insights from all rounds and team discussions",
    "metrics": {metrics_schema},
    "unresolvedConcerns": ["Only concerns that remain unresolved for you"],
    "evolutionNotes": "How your analysis evolved across rounds"
  }}"""


def metrics_schema(pillars: tuple[str, ...]) -> str:
    """Render the expected metrics object, one placeholder per pillar."""
    lines = []
    for pillar in pillars:
        d = PILLAR_DEFINITIONS[pillar]
        unit = "hours" if "Hours" in pillar else "score"
        bound = f"<{unit} {d.min_value:g}-{d.max_value:g}"
        if d.can_be_null:
            bound += " or null"
        lines.append(f'    "{pillar}": {bound}>')
    return "{\n" + ",\n".join(lines) + "\n  }"


def format_commit_section(commit: CommitInput, include_overview: bool = True) -> str:
    parts = []
    if commit.commit_message:
        parts.append(f"**Commit Message:** {commit.commit_message.strip()}")
    files = ", ".join(commit.files_changed) if commit.files_changed else "unknown files"
    parts.append(f"**Files Changed:** {files}")
    if include_overview and commit.developer_overview:
        parts.append(f"**Developer Overview:**\n{commit.developer_overview.strip()}")
    return "\n\n".join(parts)


def format_diff_section(commit: CommitInput) -> str:
    diff = commit.diff
    if len(diff) > MAX_DIFF_CHARS:
        logger.warning("Diff truncated from %d to %d chars", len(diff), MAX_DIFF_CHARS)
        diff = diff[:MAX_DIFF_CHARS] + "\n... [truncated]"
    return f"**Commit Diff:**\n```diff\n{diff}\n```"


def format_result(result: AgentResult) -> str:
    """Render one result for a prompt: summary, details, metrics, concerns and acknowledgements."""
    lines = [
        f"### {result.agent_role} ({result.agent_name}) - round {result.round}",
        f"Summary: {result.summary}",
    ]
    if result.details:
        lines.append(f"Details: {result.details}")
    lines.append(f"Metrics: {json.dumps(result.metrics)}")
    if result.concerns:
        lines.append("Concerns:")
        lines.extend(f"- {c}" for c in result.concerns)
    if result.addressed_concerns:
        lines.append("Addressed concerns:")
        for ack in result.addressed_concerns:
            status = "addressed" if ack.addressed else "not addressed"
            line = f"- [{ack.from_agent}] {ack.concern}: {status}"
            if ack.explanation:
                line += f" ({ack.explanation})"
            lines.append(line)
    return "\n".join(lines)


def format_concerns(concerns: tuple[Concern, ...]) -> str:
    if not concerns:
        return "(none)"
    return "\n".join(f"{i}. [{c.agent_name}] {c.concern}" for i, c in enumerate(concerns, start=1))


def format_team_results(results: tuple[AgentResult, ...]) -> str:
    return "\n\n".join(format_result(r) for r in results) or "(none)"


def format_team_section(context: RoundContext) -> str:
    """Team results and concerns for a refinement prompt, plus the final-round reminder.

    Empty for a first round that is not also the last.
    """
    parts = []
    if not context.is_initial:
        parts.append(
            "## Team Results from Previous Round\n\n"
            f"{format_team_results(context.prior_results)}\n\n"
            f"**Concerns raised by the team:**\n{format_concerns(context.team_concerns)}"
        )
    if context.is_final_round:
        parts.append(FINAL_ROUND_REMINDER)
    return "\n\n".join(parts)


class Agent:
    """One council member: identity, expertise weights, instructions and prompt templates."""

    def __init__(self, config: AgentConfig | None, prompts: PromptsConfig | None) -> None:
        if config is None or prompts is None:
            raise ConfigError("Agent requires an agent config and prompt templates")
        self._config = config
        self._prompts = prompts
        self.profile = ExpertiseProfile(config.expertise)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def role(self) -> str:
        return self._config.role

    @property
    def system_instructions(self) -> str:
        return self._config.system_instructions

    def initial_queries(self) -> list[RetrievalQuery]:
        return [
            RetrievalQuery(query=q.query, top_k=q.top_k, source=q.source)
            for q in self._config.retrieval_queries
        ]

    def round_queries(self, context: RoundContext) -> list[RetrievalQuery]:
        """Initial round uses the configured queries; later rounds investigate team concerns."""
        if context.is_initial or not context.team_concerns:
            return self.initial_queries()
        return queries_for_concerns(context.team_concerns)

    def expertise_section(self, pillars: tuple[str, ...] = SEVEN_PILLARS) -> str:
        bands = self.profile.bands(pillars)
        lines = []
        if bands.primary:
            lines.append(f"- PRIMARY expertise (score rigorously): {', '.join(bands.primary)}")
        if bands.secondary:
            lines.append(f"- SECONDARY expertise: {', '.join(bands.secondary)}")
        if bands.tertiary:
            lines.append(f"- TERTIARY (your opinion): {', '.join(bands.tertiary)}")
        return "\n".join(lines)

    def response_format(self, pillars: tuple[str, ...], final_rounds: int | None = None) -> str:
        schema = metrics_schema(pillars)
        final_schema = ""
        if final_rounds is not None:
            final_schema = _FINAL_SYNTHESIS_SCHEMA.format(rounds=final_rounds, metrics_schema=schema)
        return self._prompts.response_format.format(
            metrics_schema=schema,
            final_synthesis_schema=final_schema,
        )

    def build_round_prompt(
        self,
        commit: CommitInput,
        context: RoundContext,
        pillars: tuple[str, ...] = SEVEN_PILLARS,
        retrieved_context: str | None = None,
    ) -> str:
        """Assemble the first prompt of a round.

        Args:
            retrieved_context: Excerpts from the retrieval backend; the raw diff is
                embedded when this is None or empty.
        """
        if retrieved_context:
            content = f"**Relevant Code for {self.role} Analysis:**\n{retrieved_context}"
        else:
            content = format_diff_section(commit)

        common = {
            "role": self.role,
            "round_number": context.round_index + 1,
            "commit_section": format_commit_section(commit, include_overview=context.is_initial),
            "content_section": content,
            "expertise_section": self.expertise_section(pillars),
        }
        final_rounds = context.round_index + 1 if context.is_final_round else None
        common["response_format"] = self.response_format(pillars, final_rounds)

        if context.is_initial:
            return self._prompts.initial.format(**common)

        template = self._prompts.final_round if context.is_final_round else self._prompts.discussion
        return template.format(
            team_results=format_team_results(context.prior_results),
            team_concerns=format_concerns(context.team_concerns),
            **common,
        )

    def build_refinement_prompt(
        self,
        commit: CommitInput,
        context: RoundContext,
        previous: AgentResult,
        questions: list[str],
        iteration: int,
        pillars: tuple[str, ...] = SEVEN_PILLARS,
        retrieved_context: str | None = None,
    ) -> str:
        final_rounds = context.round_index + 1 if context.is_final_round else None
        retrieved = f"**Additional context:**\n{retrieved_context}" if retrieved_context else ""
        return self._prompts.refinement.format(
            role=self.role,
            iteration=iteration,
            previous_result=format_result(previous),
            team_section=format_team_section(context),
            questions="\n".join(f"{i}. {q}" for i, q in enumerate(questions, start=1)),
            retrieved_context=retrieved,
            commit_section=format_commit_section(commit) + "\n\n" + format_diff_section(commit),
            response_format=self.response_format(pillars, final_rounds),
        )


def build_agents(config: AppConfig | None, names: list[str] | None = None) -> list[Agent]:
    """Build agents from configuration, optionally restricted to `names` (in that order).

    Raises:
        ConfigError: If no configuration is supplied or a name is not configured.
    """
    if config is None:
        raise ConfigError("No application config supplied to agents")
    selected = names if names is not None else list(config.agents)
    unknown = [n for n in selected if n not in config.agents]
    if unknown:
        raise ConfigError(f"Unknown agent(s): {', '.join(unknown)}")
    agents = [Agent(config.agents[n], config.prompts) for n in selected]
    logger.debug("Built %d agents: %s", len(agents), ", ".join(a.name for a in agents))
    return agents
