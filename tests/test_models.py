"""Tests for src/models.py."""

import dataclasses

import pytest

from src.models import CommitInput, EvaluationResult, RoundContext, TeamRound, TokenUsage
from tests.conftest import make_result


def test_token_usage_adds():
    total = TokenUsage(10, 5, 15) + TokenUsage(1, 2, 3)
    assert total == TokenUsage(11, 7, 18)
    assert TokenUsage() == TokenUsage(0, 0, 0)


def test_commit_input_defaults():
    commit = CommitInput(diff="+x")
    assert commit.files_changed == ()
    assert commit.commit_message is None
    assert commit.source == "stdin"


def test_agent_result_is_frozen():
    result = make_result()
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.summary = "changed"  # type: ignore[misc]


def test_agent_result_defaults():
    result = make_result()
    assert result.round == 0
    assert result.token_usage == TokenUsage()
    assert result.clarity_score == 0
    assert result.final_synthesis is None
    assert result.confidence_level is None


def test_round_context_initial_flag():
    assert RoundContext(0, False).is_initial
    assert not RoundContext(1, True).is_initial


def test_team_round_defaults():
    rnd = TeamRound(number=0)
    assert rnd.results == []
    assert rnd.acknowledgements == []
    assert rnd.convergence_score is None


def test_evaluation_result_defaults():
    result = EvaluationResult(
        commit=CommitInput(diff="+x"),
        rounds=[],
        pillar_scores={},
        depth_mode="fast",
        total_duration_sec=1.0,
    )
    assert result.synthesis is None
    assert result.token_usage == TokenUsage()
