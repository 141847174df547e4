"""Tests for src/output.py."""

import json
from pathlib import Path

import pytest

from src.models import CommitInput, Concern, EvaluationResult, FinalSynthesis, TeamRound, TokenUsage
from src.output import _slug, format_value, print_agent_detail, render_markdown, save_json, save_to_file
from tests.conftest import all_metrics, make_result


def test_slug_basic():
    assert _slug("Validate order totals!") == "validate-order-totals"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_empty_falls_back():
    assert _slug("???") == "commit"


def test_format_value_keeps_null_distinct_from_zero():
    assert format_value(None) == "unknown"
    assert format_value(0) == "0"
    assert format_value(7.26) == "7.3"


@pytest.fixture
def sample_evaluation(sample_commit) -> EvaluationResult:
    result = make_result(
        concerns=("VIP discount untested",),
        missing_information=("TERTIARY metric codeQuality score needs justification",),
        clarity_score=74,
        token_usage=TokenUsage(10, 5, 15),
    )
    return EvaluationResult(
        commit=sample_commit,
        rounds=[TeamRound(number=0, results=[result], concerns_raised=[Concern("sdet", "VIP discount untested", 0)])],
        pillar_scores={**all_metrics(6), "functionalImpact": None},
        depth_mode="normal",
        total_duration_sec=10.5,
        token_usage=TokenUsage(10, 5, 15),
        synthesis=FinalSynthesis("Consolidated view", "All agreed.", all_metrics(6), ("VIP discount untested",)),
        synthesizer="anthropic",
    )


def test_render_markdown_sections(sample_evaluation):
    content = render_markdown(sample_evaluation)
    assert content.startswith("# Commit Evaluation: Validate order totals")
    assert "## Consensus Scores" in content
    assert "| Functional Impact | unknown |" in content
    assert "## Round 0" in content
    assert "*Clarity: 74% | Iterations: 0 | Tokens: 15*" in content
    assert "**Open gaps:**" in content
    assert "## Synthesis (by anthropic)" in content


def test_save_to_file_creates_output_dir(tmp_path: Path, sample_evaluation):
    output_dir = tmp_path / "nested" / "output"
    saved = save_to_file(sample_evaluation, output_dir)
    assert saved.exists()
    assert saved.suffix == ".md"
    assert saved.name.endswith("_validate-order-totals.md")


def test_save_to_file_slug_from_source(tmp_path: Path, sample_evaluation):
    sample_evaluation.commit = CommitInput(diff="+x", source="change.diff")
    saved = save_to_file(sample_evaluation, tmp_path)
    assert saved.name.endswith("_change.md")


def test_save_json_keeps_nulls(tmp_path: Path, sample_evaluation):
    path = save_json(sample_evaluation, tmp_path / "out" / "evaluation.json")
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["pillar_scores"]["functionalImpact"] is None
    assert payload["rounds"][0]["results"][0]["clarity_score"] == 74
    assert payload["synthesis"]["summary"] == "Consolidated view"


def test_print_agent_detail_shows_summary_and_clarity(capsys):
    print_agent_detail(make_result(summary="Guard is tested", clarity_score=74, token_usage=TokenUsage(10, 5, 15)))
    out = capsys.readouterr().out
    assert "Guard is tested" in out
    assert "SDET (Test Automation Engineer)" in out
    assert "clarity 74% | 15 tokens" in out
