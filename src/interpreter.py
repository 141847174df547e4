"""Turn raw backend text into a structured agent response. Never raises to the caller."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from src.models import AddressedConcern, FinalSynthesis
from src.pillars import SEVEN_PILLARS, is_metric_value, null_metrics

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY_CHARS = 500
MIN_FALLBACK_TEXT_CHARS = 10
PARSE_FAILURE_DETAILS = "Failed to parse"
MAX_CONCERNS = 5

_LEADING_FENCE = re.compile(r"^```(?:json|javascript)?\s*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?```\s*$", re.IGNORECASE)


@dataclass
class InterpretedResponse:
    summary: str
    details: str
    metrics: dict[str, float | None]
    concerns: list[str] = field(default_factory=list)
    addressed_concerns: list[AddressedConcern] = field(default_factory=list)
    confidence_level: float | None = None
    final_synthesis: FinalSynthesis | None = None
    parsed: bool = True


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract the first brace-balanced object from noisy text.

    Braces inside quoted strings are counted like any other brace, so a literal
    "{" in a string value can shift the detected boundary.

    Raises:
        ValueError: No object start, unbalanced braces, or invalid JSON in the span.
    """
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = cleaned.strip()

    start = cleaned.find("{")
    if start == -1:
        raise ValueError("No JSON object found in output")

    depth = 0
    end = -1
    for index in range(start, len(cleaned)):
        char = cleaned[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                end = index
                break

    if end == -1:
        raise ValueError("Incomplete JSON object - unmatched braces")

    try:
        value = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in balanced span: {exc}") from exc
    if not isinstance(value, dict):
        raise ValueError("Balanced span is not a JSON object")
    return value


def filter_metrics(
    raw_metrics: Any,
    pillars: tuple[str, ...] = SEVEN_PILLARS,
    agent_name: str = "",
) -> dict[str, float | None]:
    """Reduce a raw metrics value to exactly the given pillars.

    Numbers and explicit nulls are kept; anything else becomes None. Missing
    pillars stay None rather than receiving a fabricated default.
    """
    label = agent_name or "agent"
    if isinstance(raw_metrics, list):
        logger.warning("%s: metrics returned as array, discarding", label)
        raw_metrics = {}
    elif raw_metrics is None:
        raw_metrics = {}
    elif not isinstance(raw_metrics, dict):
        logger.warning("%s: metrics has unexpected type %s, discarding", label, type(raw_metrics).__name__)
        raw_metrics = {}

    filtered = null_metrics(pillars)
    for pillar in pillars:
        if pillar not in raw_metrics:
            logger.warning("%s: missing metric %s, setting to null", label, pillar)
            continue
        value = raw_metrics[pillar]
        if value is None or is_metric_value(value):
            filtered[pillar] = value
        else:
            logger.warning("%s: invalid type for %s (%s), setting to null", label, pillar, type(value).__name__)
    return filtered


def _string_list(value: Any, limit: int = MAX_CONCERNS) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()][:limit]


def _addressed_concerns(value: Any) -> list[AddressedConcern]:
    if not isinstance(value, list):
        return []
    items: list[AddressedConcern] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        if not isinstance(entry.get("concern"), str) or not isinstance(entry.get("addressed"), bool):
            continue
        explanation = entry.get("explanation")
        items.append(
            AddressedConcern(
                from_agent=str(entry.get("fromAgent") or entry.get("agentName") or ""),
                concern=entry["concern"],
                addressed=entry["addressed"],
                explanation=explanation if isinstance(explanation, str) else None,
            )
        )
    return items[:MAX_CONCERNS]


def parse_final_synthesis(
    value: Any,
    pillars: tuple[str, ...] = SEVEN_PILLARS,
    agent_name: str = "",
) -> FinalSynthesis | None:
    """Build a FinalSynthesis from a parsed object, or None when the shape is wrong."""
    if not isinstance(value, dict):
        return None
    summary = value.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        return None
    details = value.get("details")
    notes = value.get("evolutionNotes")
    return FinalSynthesis(
        summary=summary.strip(),
        details=details.strip() if isinstance(details, str) else "",
        metrics=filter_metrics(value.get("metrics"), pillars, agent_name),
        unresolved_concerns=tuple(_string_list(value.get("unresolvedConcerns"), limit=20)),
        evolution_notes=notes.strip() if isinstance(notes, str) else "",
    )


def fallback_response(raw: Any, pillars: tuple[str, ...] = SEVEN_PILLARS) -> InterpretedResponse:
    """The single degraded result used whenever interpretation fails."""
    text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    if len(text) > MIN_FALLBACK_TEXT_CHARS:
        return InterpretedResponse(
            summary=text[:FALLBACK_SUMMARY_CHARS],
            details="",
            metrics=null_metrics(pillars),
            parsed=False,
        )
    return InterpretedResponse(
        summary="",
        details=PARSE_FAILURE_DETAILS,
        metrics=null_metrics(pillars),
        parsed=False,
    )


def interpret_response(
    raw: Any,
    pillars: tuple[str, ...] = SEVEN_PILLARS,
    agent_name: str = "",
) -> InterpretedResponse:
    """Interpret one backend response.

    Args:
        raw: Generated content; usually a string but any value is accepted.
        pillars: The active pillar set every metrics mapping is reduced to.
        agent_name: Used only to label diagnostics.

    Returns:
        A parsed response, or the fallback response when no valid object with a
        non-empty summary could be recovered.
    """
    label = agent_name or "agent"
    if not isinstance(raw, str):
        logger.warning("%s: non-text backend output (%s)", label, type(raw).__name__)
        return fallback_response(raw, pillars)

    try:
        parsed = extract_json_object(raw)
    except ValueError as exc:
        logger.warning("%s: failed to parse backend output: %s", label, exc)
        logger.debug("%s: raw output (first 500 chars): %s", label, raw[:FALLBACK_SUMMARY_CHARS])
        return fallback_response(raw, pillars)

    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        logger.warning("%s: missing or invalid summary field", label)
        return fallback_response(raw, pillars)

    details = parsed.get("details")
    confidence = parsed.get("confidenceLevel")
    return InterpretedResponse(
        summary=summary.strip(),
        details=details.strip() if isinstance(details, str) else "",
        metrics=filter_metrics(parsed.get("metrics"), pillars, agent_name),
        concerns=_string_list(parsed.get("concerns")),
        addressed_concerns=_addressed_concerns(parsed.get("addressedConcerns")),
        confidence_level=float(confidence) if is_metric_value(confidence) else None,
        final_synthesis=parse_final_synthesis(parsed.get("finalSynthesis"), pillars, agent_name),
    )
