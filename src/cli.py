"""Click CLI — orchestrates config loading, backend selection, consensus rounds, and output."""

import asyncio
import logging
import subprocess
import sys
import time
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, ConfigError, DepthModeConfig, load_config, resolve_depth_mode
from src.agents import Agent, build_agents
from src.aggregator import aggregate_pillars
from src.clarity import ClarityEvaluator, SelfQuestionGenerator
from src.consensus import run_consensus
from src.healthcheck import run_health_checks
from src.models import CommitInput, EvaluationResult, TeamRound, TokenUsage
from src.output import (
    print_agent_detail,
    print_pillar_scores,
    print_round_summary,
    print_synthesis,
    save_json,
    save_to_file,
)
from src.pillars import pillar_set
from src.providers.anthropic import AnthropicProvider
from src.providers.base import ProviderError, TextGenerator
from src.providers.gemini import GeminiProvider
from src.providers.openai_provider import OpenAIProvider
from src.providers.xai import XAIProvider
from src.refinement import SelfRefinementLoop
from src.retrieval import DiffHunkRetriever, RetrievalBackend, changed_files
from src.synthesis import synthesize

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[TextGenerator]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "xai": XAIProvider,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_provider(config: AppConfig, name: str) -> TextGenerator:
    """Instantiate one backend by config name.

    Raises:
        ProviderError: Unknown name, unavailable API key, or SDK setup failure.
    """
    if name not in PROVIDER_CLASSES or name not in config.models:
        raise ProviderError(name, "Unknown provider")
    if name not in config.available_providers:
        raise ProviderError(name, f"No API key set ({config.models[name].api_key_env})")
    return PROVIDER_CLASSES[name](config.models[name])


def _read_commit(diff_file: str | None, rev: str | None, overview: str | None = None) -> CommitInput:
    """Read the change from a diff file, from git, or from stdin. A blank overview counts as none."""
    message: str | None = None
    if rev:
        try:
            diff = subprocess.run(
                ["git", "show", "--format=", rev],
                capture_output=True, text=True, check=True,
            ).stdout
            message = subprocess.run(
                ["git", "log", "-1", "--format=%B", rev],
                capture_output=True, text=True, check=True,
            ).stdout.strip() or None
        except (OSError, subprocess.CalledProcessError) as exc:
            raise click.ClickException(f"Could not read commit {rev}: {exc}") from exc
        source = f"git:{rev}"
    elif diff_file:
        diff = Path(diff_file).read_text(encoding="utf-8")
        source = diff_file
    elif not sys.stdin.isatty():
        diff = sys.stdin.read()
        source = "stdin"
    else:
        raise click.UsageError("Provide a DIFF_FILE argument, --commit, or pipe a diff on stdin.")

    if not diff.strip():
        raise click.UsageError("The diff is empty.")
    return CommitInput(
        diff=diff,
        files_changed=changed_files(diff),
        commit_message=message,
        developer_overview=overview.strip() if overview and overview.strip() else None,
        source=source,
    )


def _check_and_filter_providers(providers: dict[str, TextGenerator]) -> None:
    """Run health checks and exit if any backend in use fails."""
    console.print("\n[bold]Checking providers...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(providers))

    failed = False
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed = True

    if failed:
        console.print("\n[bold red]Error:[/bold red] A required provider failed the health check.")
        sys.exit(1)
    console.print()


async def _run_evaluation(
    commit: CommitInput,
    config: AppConfig,
    agents: list[Agent],
    generator: TextGenerator,
    synthesizer: TextGenerator | None,
    depth_mode: DepthModeConfig,
    rounds: int,
    pillars: tuple[str, ...],
) -> tuple[EvaluationResult, Exception | None]:
    """Run consensus rounds, aggregation and synthesis.

    A synthesis failure is returned alongside the result so the transcript can
    still be saved before the CLI exits non-zero.
    """
    evaluator = ClarityEvaluator(pillars)
    question_generator = SelfQuestionGenerator()

    def loop_factory(agent: Agent) -> SelfRefinementLoop:
        return SelfRefinementLoop(generator, evaluator, question_generator, depth_mode, pillars)

    retriever: RetrievalBackend | None = None
    if depth_mode.rag_enabled and len(commit.diff) > config.defaults.rag_threshold_chars:
        retriever = DiffHunkRetriever(commit.diff)
        console.print(f"[dim]Large diff: agents will query {retriever.chunk_count} hunks[/dim]")

    start = time.monotonic()
    synthesis_error: Exception | None = None
    synthesis = None

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_round_complete(rnd: TeamRound) -> None:
            progress.print(f"[green]OK[/green] Round {rnd.number} complete ({len(rnd.results)} agents)")

        task = progress.add_task("Running consensus rounds...", total=None)
        team_rounds = await run_consensus(
            commit=commit,
            agents=agents,
            loop_factory=loop_factory,
            num_rounds=rounds,
            retriever=retriever,
            on_round_complete=on_round_complete,
        )

        if synthesizer is not None:
            progress.update(task, description="Running synthesis...")
            try:
                synthesis = await synthesize(commit, team_rounds, synthesizer, config.prompts, pillars)
            except (ProviderError, RuntimeError) as exc:
                logger.error("Synthesis failed: %s", exc)
                synthesis_error = exc

    token_usage = TokenUsage()
    for rnd in team_rounds:
        for res in rnd.results:
            token_usage = token_usage + res.token_usage

    result = EvaluationResult(
        commit=commit,
        rounds=team_rounds,
        pillar_scores=aggregate_pillars(team_rounds[-1].results, {a.name: a.profile for a in agents}, pillars),
        depth_mode=depth_mode.name,
        total_duration_sec=time.monotonic() - start,
        token_usage=token_usage,
        synthesis=synthesis,
        synthesizer=synthesizer.name() if synthesizer is not None and synthesis is not None else None,
    )
    return result, synthesis_error


@click.command()
@click.argument("diff_file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--commit", "rev", default=None, help="Evaluate a git revision instead of a diff file")
@click.option("--rounds", default=None, type=int, help="Number of consensus rounds (default: from config)")
@click.option("--depth", default=None, help="Depth mode: fast, normal or deep (default: from config)")
@click.option("--provider", default=None, help="Backend used by every agent (default: from config)")
@click.option("--synthesizer", default=None, help="Backend that writes the final synthesis (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--overview", default=None, help="Developer's description of the change, shown to agents in round 1")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging and per-agent detail panels")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--no-synthesis", is_flag=True, default=False, help="Skip the final synthesis step")
@click.option("--debt-reduction", is_flag=True, default=False,
              help="Also score debtReductionHours (eight pillars)")
def main(
    diff_file: str | None,
    rev: str | None,
    rounds: int | None,
    depth: str | None,
    provider: str | None,
    synthesizer: str | None,
    output_path: str | None,
    overview: str | None,
    verbose: bool,
    skip_health_check: bool,
    no_synthesis: bool,
    debt_reduction: bool,
) -> None:
    """Commit Council -- multi-agent consensus scoring of a code change.

    \b
    Examples:
      git diff main | commit-council --rounds 2
      commit-council change.diff --depth deep
      commit-council --commit HEAD~1 --provider openai --no-synthesis
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
        agents = build_agents(config)
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    effective_rounds = rounds if rounds is not None else config.defaults.rounds
    if not 1 <= effective_rounds <= config.defaults.max_rounds:
        console.print(f"[bold red]Error:[/bold red] --rounds must be between 1 and {config.defaults.max_rounds}.")
        sys.exit(1)

    depth_mode = resolve_depth_mode(config, depth)
    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    provider_name = provider or config.defaults.provider
    synthesizer_name = synthesizer or config.defaults.synthesizer
    pillars = pillar_set(include_debt_reduction=debt_reduction)

    commit = _read_commit(diff_file, rev, overview)

    try:
        generator = _build_provider(config, provider_name)
        synth = None if no_synthesis else (
            generator if synthesizer_name == provider_name else _build_provider(config, synthesizer_name)
        )
    except ProviderError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        in_use = {generator.name(): generator}
        if synth is not None:
            in_use[synth.name()] = synth
        _check_and_filter_providers(in_use)

    console.print(
        f"\n[bold cyan]Commit Council[/bold cyan] — {len(agents)} agents, {effective_rounds} rounds, "
        f"depth {depth_mode.name}"
    )
    console.print(f"Backend: {generator.name()} ({generator.model_string()})")
    console.print(f"Source: {commit.source} ({len(commit.files_changed)} files)\n")

    result, synthesis_error = asyncio.run(
        _run_evaluation(commit, config, agents, generator, synth, depth_mode, effective_rounds, pillars)
    )

    for rnd in result.rounds:
        print_round_summary(rnd)
        if verbose:
            for res in rnd.results:
                print_agent_detail(res)
    print_pillar_scores(result.pillar_scores)
    if result.synthesis is not None:
        print_synthesis(result.synthesis, result.synthesizer)

    saved_path = save_to_file(result, effective_output)
    json_path = save_json(result, saved_path.with_suffix(".json"))
    console.print(f"\n[dim]Saved to: {saved_path} and {json_path.name}[/dim]")

    if synthesis_error is not None:
        console.print(f"[bold red]Synthesis failed:[/bold red] {synthesis_error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
