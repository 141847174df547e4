"""Rich console output plus markdown and JSON saves for evaluation results."""

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from src.models import AgentResult, EvaluationResult, FinalSynthesis, TeamRound
from src.pillars import PILLAR_DEFINITIONS

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "commit"


def format_value(value: float | None) -> str:
    """Null renders as 'unknown' so it is never mistaken for a zero score."""
    if value is None:
        return "unknown"
    return f"{value:g}" if isinstance(value, int) else f"{value:.1f}"


def _result_slug(result: EvaluationResult) -> str:
    if result.commit.commit_message:
        return _slug(result.commit.commit_message.splitlines()[0])
    return _slug(Path(result.commit.source).stem if result.commit.source else "commit")


def print_round_summary(rnd: TeamRound) -> None:
    """Print one row per agent: clarity, iterations and every pillar value."""
    title = f"[bold cyan]Round {rnd.number}[/bold cyan]"
    if rnd.convergence_score is not None:
        title += f" [dim](convergence {rnd.convergence_score:.2f})[/dim]"
    console.print(Rule(title))
    if not rnd.results:
        return

    pillars = list(rnd.results[0].metrics)
    table = Table(show_header=True, header_style="bold")
    table.add_column("Agent")
    table.add_column("Clarity", justify="right")
    table.add_column("Iter", justify="right")
    for pillar in pillars:
        table.add_column(PILLAR_DEFINITIONS[pillar].display_name, justify="right")
    for res in rnd.results:
        table.add_row(
            res.agent_role,
            f"{res.clarity_score}%",
            str(res.internal_iterations),
            *(format_value(res.metrics.get(p)) for p in pillars),
        )
    console.print(table)

    for concern in rnd.concerns_raised:
        console.print(Text(f"  [{concern.agent_name}] {concern.concern}", style="yellow"))


def print_agent_detail(res: AgentResult) -> None:
    console.print(
        Panel(
            res.summary or "(no summary)",
            title=f"[bold]{res.agent_role}[/bold]",
            subtitle=f"clarity {res.clarity_score}% | {res.token_usage.total_tokens} tokens",
            border_style="dim",
        )
    )


def print_pillar_scores(scores: dict[str, float | None]) -> None:
    table = Table(title="Consensus Pillar Scores", show_header=True, header_style="bold green")
    table.add_column("Pillar")
    table.add_column("Score", justify="right")
    for pillar, value in scores.items():
        table.add_row(PILLAR_DEFINITIONS[pillar].display_name, format_value(value))
    console.print(table)


def print_synthesis(synthesis: FinalSynthesis, synthesizer: str | None = None) -> None:
    """Print the final synthesis to the console using Rich markdown."""
    console.print(Rule("[bold green]Council Synthesis[/bold green]"))
    if synthesizer:
        console.print(Text(f"Synthesized by: {synthesizer}", style="dim"))
    console.print(Markdown(f"**{synthesis.summary}**\n\n{synthesis.details}"))
    if synthesis.unresolved_concerns:
        console.print(Markdown("**Unresolved concerns:**\n" + "\n".join(f"- {c}" for c in synthesis.unresolved_concerns)))


def _metrics_lines(metrics: dict[str, float | None]) -> list[str]:
    return [f"| {PILLAR_DEFINITIONS[p].display_name} | {format_value(v)} |" for p, v in metrics.items()]


def render_markdown(result: EvaluationResult) -> str:
    lines: list[str] = [
        f"# Commit Evaluation: {result.commit.commit_message or result.commit.source}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Source:** {result.commit.source}",
        f"**Files:** {', '.join(result.commit.files_changed) or 'unknown'}",
        f"**Rounds:** {len(result.rounds)}",
        f"**Depth mode:** {result.depth_mode}",
        f"**Duration:** {result.total_duration_sec:.1f}s",
        f"**Tokens:** {result.token_usage.total_tokens}",
        "",
        "## Consensus Scores",
        "",
        "| Pillar | Score |",
        "|---|---|",
        *_metrics_lines(result.pillar_scores),
        "",
        "---",
        "",
    ]

    for rnd in result.rounds:
        lines.append(f"## Round {rnd.number}")
        lines.append("")
        for res in rnd.results:
            lines += [
                f"### {res.agent_role}",
                "",
                f"**Summary:** {res.summary}",
                "",
                res.details,
                "",
                "| Pillar | Score |",
                "|---|---|",
                *_metrics_lines(res.metrics),
                "",
                f"*Clarity: {res.clarity_score}% | Iterations: {res.internal_iterations}"
                f" | Tokens: {res.token_usage.total_tokens}*",
                "",
            ]
            if res.concerns:
                lines += ["**Concerns:**", *(f"- {c}" for c in res.concerns), ""]
            if res.missing_information:
                lines += ["**Open gaps:**", *(f"- {g}" for g in res.missing_information), ""]

    if result.synthesis is not None:
        lines += [
            f"## Synthesis (by {result.synthesizer})",
            "",
            result.synthesis.summary,
            "",
            result.synthesis.details,
            "",
        ]
        if result.synthesis.unresolved_concerns:
            lines += ["**Unresolved concerns:**", *(f"- {c}" for c in result.synthesis.unresolved_concerns), ""]
        if result.synthesis.evolution_notes:
            lines += [f"*Evolution:* {result.synthesis.evolution_notes}", ""]

    return "\n".join(lines)


def save_to_file(result: EvaluationResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full evaluation transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _result_slug(result)
    filepath = output_dir / f"{timestamp}_{slug}.md"
    filepath.write_text(render_markdown(result), encoding="utf-8")
    logger.info("Evaluation saved to: %s", filepath)
    return filepath


def save_json(result: EvaluationResult, path: Path) -> Path:
    """Dump the evaluation as JSON; nulls stay null."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = asdict(result)
    path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    logger.info("Evaluation JSON saved to: %s", path)
    return path
