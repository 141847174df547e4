"""Per-agent self-refinement loop: generate, interpret, evaluate clarity, ask itself questions, regenerate."""

import logging
from dataclasses import dataclass, field, replace

from config.config_loader import DepthModeConfig
from src.agents import Agent
from src.clarity import ClarityEvaluation, ClarityEvaluator, SelfQuestionGenerator
from src.interpreter import InterpretedResponse, fallback_response, interpret_response
from src.models import AgentResult, CommitInput, RoundContext, TokenUsage
from src.pillars import SEVEN_PILLARS
from src.providers.base import GenerationRequest, ProviderError, TextGenerator
from src.retrieval import RetrievalBackend, RetrievalQuery, format_retrieved, queries_for_gaps

logger = logging.getLogger(__name__)


@dataclass
class RefinementState:
    current: AgentResult
    iteration: int = 0
    clarity_score: int = 0
    seen_gaps: list[str] = field(default_factory=list)
    token_totals: TokenUsage = field(default_factory=TokenUsage)
    notes: list[str] = field(default_factory=list)

    def record_gaps(self, gaps: list[str]) -> list[str]:
        """Add gaps to the seen set and return only those not seen before."""
        new = [g for g in gaps if g not in self.seen_gaps]
        self.seen_gaps.extend(new)
        return new


def merge_results(incumbent: AgentResult, candidate: AgentResult) -> AgentResult:
    """Keep whichever result has the longer details; ties keep the incumbent."""
    if len(candidate.details) > len(incumbent.details):
        return candidate
    return incumbent


class SelfRefinementLoop:
    """Drives one agent's generate/evaluate cycles for one round.

    The depth mode is treated as opaque limits. One instance holds no state
    between runs; each run owns its own RefinementState.
    """

    def __init__(
        self,
        generator: TextGenerator,
        evaluator: ClarityEvaluator,
        question_generator: SelfQuestionGenerator,
        depth_mode: DepthModeConfig,
        interpreter_pillars: tuple[str, ...] = SEVEN_PILLARS,
    ) -> None:
        self._generator = generator
        self._evaluator = evaluator
        self._questions = question_generator
        self._mode = depth_mode
        self._pillars = interpreter_pillars

    def _to_result(self, agent: Agent, interpreted: InterpretedResponse, round_index: int) -> AgentResult:
        return AgentResult(
            agent_name=agent.name,
            agent_role=agent.role,
            summary=interpreted.summary,
            details=interpreted.details,
            metrics=interpreted.metrics,
            concerns=tuple(interpreted.concerns),
            addressed_concerns=tuple(interpreted.addressed_concerns),
            confidence_level=interpreted.confidence_level,
            round=round_index,
            final_synthesis=interpreted.final_synthesis,
        )

    async def _cycle(self, agent: Agent, prompt: str, state_tokens: list[TokenUsage]) -> InterpretedResponse:
        """One generate+interpret cycle. A backend failure degrades to the fallback response."""
        request = GenerationRequest(
            system_instructions=agent.system_instructions,
            human_prompt=prompt,
            max_output_tokens=self._mode.token_budget_per_agent,
        )
        try:
            generation = await self._generator.generate(request)
        except ProviderError as exc:
            logger.warning("%s: generation failed, using fallback result: %s", agent.name, exc)
            return fallback_response("", self._pillars)
        except Exception as exc:
            err = ProviderError(self._generator.name(), f"Unexpected error: {exc}")
            logger.warning("%s: generation failed, using fallback result: %s", agent.name, err)
            return fallback_response("", self._pillars)
        state_tokens.append(generation.usage or TokenUsage())
        return interpret_response(generation.content, self._pillars, agent.name)

    async def _retrieve(self, retriever: RetrievalBackend | None, queries: list[RetrievalQuery]) -> str | None:
        if retriever is None or not self._mode.rag_enabled or not queries:
            return None
        results = await retriever.query_batch(queries)
        return format_retrieved(results) or None

    def _stop_reason(self, state: RefinementState, evaluation: ClarityEvaluation,
                     new_gaps: list[str], questions: list[str]) -> str | None:
        threshold = self._mode.internal_clarity_threshold
        if evaluation.clarity_score >= threshold:
            return f"Clarity target {evaluation.clarity_score}% >= {threshold}% threshold"
        if not new_gaps:
            return "No new gaps identified"
        if not questions:
            return "Cannot generate new questions"
        if state.iteration >= self._mode.max_internal_iterations:
            return f"Reached max iterations ({self._mode.max_internal_iterations})"
        if self._mode.skip_self_refinement:
            return "Self-refinement disabled by depth mode"
        return None

    async def run(
        self,
        agent: Agent,
        commit: CommitInput,
        context: RoundContext,
        retriever: RetrievalBackend | None = None,
    ) -> AgentResult:
        """Run the loop to completion and return the annotated result.

        Returns:
            The best result found, carrying internal_iterations, clarity_score,
            the gaps still open, one note per cycle plus the stop note, the summed
            token usage and the round index.
        """
        tokens: list[TokenUsage] = []

        retrieved = await self._retrieve(retriever, agent.round_queries(context))
        prompt = agent.build_round_prompt(commit, context, self._pillars, retrieved)
        first = await self._cycle(agent, prompt, tokens)
        state = RefinementState(current=self._to_result(agent, first, context.round_index))

        while True:
            evaluation = self._evaluator.evaluate(state.current, agent.profile)
            state.clarity_score = evaluation.clarity_score
            new_findings = [f for f in evaluation.findings if f.message not in state.seen_gaps]
            new_gaps = state.record_gaps(evaluation.gaps)
            questions = self._questions.questions_for(new_findings, self._mode.max_self_questions)

            reason = self._stop_reason(state, evaluation, new_gaps, questions)
            if reason is not None:
                state.notes.append(f"Stopped at iteration {state.iteration}: {reason}")
                logger.debug("%s round %d: %s", agent.name, context.round_index, state.notes[-1])
                break

            retrieved = await self._retrieve(retriever, queries_for_gaps(new_findings))
            prompt = agent.build_refinement_prompt(
                commit, context, state.current, questions, state.iteration + 1, self._pillars, retrieved,
            )
            refined = self._to_result(agent, await self._cycle(agent, prompt, tokens), context.round_index)
            state.current = merge_results(state.current, refined)
            state.iteration += 1
            state.notes.append(
                f"Iteration {state.iteration}: Clarity {evaluation.clarity_score}%, "
                f"identified {len(new_gaps)} gaps, asked {len(questions)} questions"
            )
            logger.debug("%s round %d: %s", agent.name, context.round_index, state.notes[-1])

        for usage in tokens:
            state.token_totals = state.token_totals + usage

        logger.info(
            "%s round %d: clarity %d%% after %d refinement(s)",
            agent.name,
            context.round_index,
            state.clarity_score,
            state.iteration,
        )
        return replace(
            state.current,
            round=context.round_index,
            token_usage=state.token_totals,
            internal_iterations=state.iteration,
            clarity_score=state.clarity_score,
            missing_information=tuple(evaluation.gaps),
            refinement_notes=tuple(state.notes),
        )
