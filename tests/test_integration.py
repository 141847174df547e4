"""Integration tests — real API calls, no mocks. Requires .env with the default provider's API key."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

from tests.conftest import SAMPLE_DIFF

load_dotenv()

pytestmark = pytest.mark.integration

if not os.environ.get("ANTHROPIC_API_KEY", "").strip():
    pytestmark = pytest.mark.skip(reason="ANTHROPIC_API_KEY not set")


async def test_full_evaluation_pipeline(tmp_path: Path):
    """Run a real 1-round fast evaluation with two agents, verify the report is written."""
    from config.config_loader import load_config, resolve_depth_mode
    from src.agents import build_agents
    from src.cli import _build_provider, _run_evaluation
    from src.models import CommitInput
    from src.output import save_to_file
    from src.pillars import SEVEN_PILLARS
    from src.retrieval import changed_files

    config = load_config()
    generator = _build_provider(config, "anthropic")
    agents = build_agents(config, ["sdet", "developer-reviewer"])
    commit = CommitInput(
        diff=SAMPLE_DIFF,
        files_changed=changed_files(SAMPLE_DIFF),
        commit_message="Validate order totals",
        source="integration_test",
    )

    result, error = await _run_evaluation(
        commit, config, agents, generator, generator, resolve_depth_mode(config, "fast"), 1, SEVEN_PILLARS
    )

    assert error is None
    assert len(result.rounds) == 1
    for res in result.rounds[0].results:
        assert set(res.metrics) == set(SEVEN_PILLARS)
        assert res.token_usage.total_tokens > 0
    assert result.synthesis is not None

    saved = save_to_file(result, tmp_path / "output")
    content = saved.read_text(encoding="utf-8")
    assert "# Commit Evaluation" in content
    assert "## Consensus Scores" in content
