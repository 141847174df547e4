"""Clarity scoring of one agent result against its expertise profile, plus self-question mapping."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from src.expertise import Band, ExpertiseProfile
from src.models import AgentResult
from src.pillars import PILLAR_DEFINITIONS, SEVEN_PILLARS, PillarDefinition, is_metric_value

logger = logging.getLogger(__name__)

BAND_WEIGHTS: dict[Band, float] = {
    Band.PRIMARY: 0.6,
    Band.SECONDARY: 0.3,
    Band.TERTIARY: 0.1,
}
EMPTY_BAND_CONFIDENCE = 100.0

JUSTIFIED_NULL_CONFIDENCE = 70.0
UNJUSTIFIED_NULL_CONFIDENCE = 30.0
OUT_OF_RANGE_CONFIDENCE = 20.0
JUSTIFIED_VALUE_CONFIDENCE = 100.0
UNJUSTIFIED_VALUE_CONFIDENCE: dict[Band, float] = {
    Band.PRIMARY: 50.0,
    Band.SECONDARY: 60.0,
    Band.TERTIARY: 70.0,
}

DETAIL_BONUS = 5.0
DETAIL_BONUS_SUMMARY_CHARS = 100
DETAIL_BONUS_DETAILS_CHARS = 200

# Gap kinds
MISSING = "missing"
REQUIRED = "required"
NULL = "null"
RANGE = "range"
REASONING = "reasoning"

DEFAULT_QUESTION_TEMPLATES: dict[str, str] = {
    MISSING: "What score do you give {display_name}, and which lines of the change support it?",
    REQUIRED: "{display_name} must always be scored. What value does the code itself support?",
    NULL: "Why can {display_name} not be assessed from this change? Name the evidence that is missing.",
    RANGE: "Your {display_name} value falls outside {min_value}..{max_value}. What is the corrected value?",
    REASONING: "What specific evidence in the diff justifies your {display_name} score?",
}


@dataclass(frozen=True)
class Gap:
    pillar: str
    kind: str
    band: Band
    critical: bool
    message: str


@dataclass(frozen=True)
class ClarityEvaluation:
    clarity_score: int
    gaps: list[str] = field(default_factory=list)
    findings: list[Gap] = field(default_factory=list)
    band_confidence: dict[Band, float] = field(default_factory=dict)


def _gap_message(pillar: str, kind: str, band: Band, critical: bool, value: object = None,
                 definition: PillarDefinition | None = None) -> str:
    prefix = "CRITICAL: " if critical else ""
    if kind == MISSING:
        return f"{prefix}Missing {band.value} metric {pillar}"
    if kind == REQUIRED:
        return f"{prefix}{band.value} metric {pillar} cannot be null"
    if kind == NULL:
        return f"{prefix}{band.value} metric {pillar} is null but not justified"
    if kind == RANGE and definition is not None:
        return (
            f"{prefix}{band.value} metric {pillar} value {value} is outside "
            f"{definition.min_value:g}..{definition.max_value:g}"
        )
    return f"{prefix}{band.value} metric {pillar} score needs justification"


class ClarityEvaluator:
    """Pure scorer: the same instance serves every agent.

    Role-specific behaviour comes only from the ExpertiseProfile passed to
    evaluate(); the pillar set and registry are fixed at construction.
    """

    def __init__(
        self,
        pillars: tuple[str, ...] = SEVEN_PILLARS,
        definitions: Mapping[str, PillarDefinition] = PILLAR_DEFINITIONS,
    ) -> None:
        missing = [p for p in pillars if p not in definitions]
        if missing:
            raise ValueError(f"No pillar definition for: {', '.join(missing)}")
        self._pillars = tuple(pillars)
        self._definitions = definitions

    @property
    def pillars(self) -> tuple[str, ...]:
        return self._pillars

    def is_justified(self, pillar: str, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self._definitions[pillar].keywords)

    def _assess(self, pillar: str, band: Band, metrics: Mapping[str, object], text: str) -> tuple[float, Gap | None]:
        definition = self._definitions[pillar]
        primary = band is Band.PRIMARY

        if pillar not in metrics:
            return 0.0, Gap(pillar, MISSING, band, primary, _gap_message(pillar, MISSING, band, primary))

        value = metrics[pillar]
        if value is None:
            if not definition.can_be_null:
                return 0.0, Gap(pillar, REQUIRED, band, True, _gap_message(pillar, REQUIRED, band, True))
            if self.is_justified(pillar, text):
                return JUSTIFIED_NULL_CONFIDENCE, None
            return UNJUSTIFIED_NULL_CONFIDENCE, Gap(pillar, NULL, band, primary, _gap_message(pillar, NULL, band, primary))

        if not is_metric_value(value):
            # Interpreted results never carry this; treat a stray value as absent.
            return 0.0, Gap(pillar, MISSING, band, primary, _gap_message(pillar, MISSING, band, primary))

        if not definition.in_range(float(value)):
            gap = Gap(pillar, RANGE, band, primary, _gap_message(pillar, RANGE, band, primary, value, definition))
            return OUT_OF_RANGE_CONFIDENCE, gap

        if self.is_justified(pillar, text):
            return JUSTIFIED_VALUE_CONFIDENCE, None
        gap = Gap(pillar, REASONING, band, primary, _gap_message(pillar, REASONING, band, primary))
        return UNJUSTIFIED_VALUE_CONFIDENCE[band], gap

    def evaluate(self, result: AgentResult, profile: ExpertiseProfile) -> ClarityEvaluation:
        """Score how complete and well-justified a result is for this profile.

        Each band's confidence is the mean of its pillars (100 for an empty
        band); the score is the 60/30/10 weighted sum plus a small bonus for
        substantial prose, clamped to 0..100.
        """
        bands = profile.bands(self._pillars)
        text = f"{result.summary} {result.details}"
        per_band: dict[Band, list[float]] = {band: [] for band in Band}
        findings: list[Gap] = []

        for pillar in self._pillars:
            band = bands.band_of(pillar) or Band.TERTIARY
            confidence, gap = self._assess(pillar, band, result.metrics, text)
            per_band[band].append(confidence)
            if gap is not None:
                findings.append(gap)

        band_confidence = {
            band: (sum(values) / len(values)) if values else EMPTY_BAND_CONFIDENCE
            for band, values in per_band.items()
        }
        score = sum(BAND_WEIGHTS[band] * band_confidence[band] for band in Band)
        if len(result.summary) > DETAIL_BONUS_SUMMARY_CHARS and len(result.details) > DETAIL_BONUS_DETAILS_CHARS:
            score += DETAIL_BONUS
        score = max(0.0, min(100.0, score))

        logger.debug(
            "%s clarity %.1f (primary %.1f, secondary %.1f, tertiary %.1f), %d gaps",
            result.agent_name or "agent",
            score,
            band_confidence[Band.PRIMARY],
            band_confidence[Band.SECONDARY],
            band_confidence[Band.TERTIARY],
            len(findings),
        )
        return ClarityEvaluation(
            clarity_score=int(round(score)),
            gaps=[gap.message for gap in findings],
            findings=findings,
            band_confidence=band_confidence,
        )


class SelfQuestionGenerator:
    """Deterministic gap kind -> follow-up question mapping."""

    def __init__(
        self,
        templates: Mapping[str, str] = DEFAULT_QUESTION_TEMPLATES,
        definitions: Mapping[str, PillarDefinition] = PILLAR_DEFINITIONS,
    ) -> None:
        self._templates = dict(templates)
        self._definitions = definitions

    def question_for(self, gap: Gap) -> str | None:
        template = self._templates.get(gap.kind)
        definition = self._definitions.get(gap.pillar)
        if template is None or definition is None:
            return None
        return template.format(
            pillar=gap.pillar,
            display_name=definition.display_name,
            min_value=f"{definition.min_value:g}",
            max_value=f"{definition.max_value:g}",
        )

    def questions_for(self, findings: list[Gap], limit: int) -> list[str]:
        """Return up to `limit` distinct questions, critical gaps first, order otherwise kept."""
        ordered = [g for g in findings if g.critical] + [g for g in findings if not g.critical]
        questions: list[str] = []
        for gap in ordered:
            if len(questions) >= limit:
                break
            question = self.question_for(gap)
            if question and question not in questions:
                questions.append(question)
        return questions
