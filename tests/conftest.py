"""Shared pytest fixtures."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from config.config_loader import (
    AgentConfig,
    AppConfig,
    DefaultsConfig,
    DepthModeConfig,
    ModelConfig,
    PromptsConfig,
    RetrievalQueryConfig,
    load_config,
)
from src.agents import Agent
from src.clarity import ClarityEvaluator, SelfQuestionGenerator
from src.models import AgentResult, CommitInput, TokenUsage
from src.pillars import SEVEN_PILLARS
from src.providers.base import Generation, GenerationRequest, ProviderError, TextGenerator
from src.refinement import SelfRefinementLoop

SETTINGS_PATH = Path(__file__).parent.parent / "config" / "settings.yaml"

SAMPLE_DIFF = """diff --git a/app/orders.py b/app/orders.py
index 1111111..2222222 100644
--- a/app/orders.py
+++ b/app/orders.py
@@ -10,6 +10,12 @@ class OrderService:
     def submit(self, order):
+        if order.total <= 0:
+            raise ValueError("order total must be positive")
+        # TODO: move discount rules into a strategy
+        if order.customer.is_vip:
+            order.total *= 0.9
         return self._repo.save(order)
diff --git a/tests/test_orders.py b/tests/test_orders.py
index 3333333..4444444 100644
--- a/tests/test_orders.py
+++ b/tests/test_orders.py
@@ -1,3 +1,9 @@
+def test_submit_rejects_zero_total(service):
+    with pytest.raises(ValueError):
+        service.submit(make_order(total=0))
"""


# Justifies no pillar, so every pillar shows up as a gap.
NEUTRAL = "Looks fine overall."
# Mentions a justification keyword for every pillar.
JUSTIFIED = (
    "Business feature for the customer. Ideal estimate is small scope. Tests with assert and fixture. "
    "Clean readable naming. Low complexity, shallow nesting. Actual time spent was short. No debt or TODO."
)


def response_json(
    summary: str = "Adds order validation",
    details: str = "",
    metrics: dict | None = None,
    **extra,
) -> str:
    """Serialise a backend answer the way a well-behaved model would."""
    payload = {"summary": summary, "details": details, "metrics": metrics or {}}
    payload.update(extra)
    return json.dumps(payload)


def all_metrics(value: float = 5) -> dict[str, float]:
    return {pillar: value for pillar in SEVEN_PILLARS}


def make_result(**overrides) -> AgentResult:
    fields = {
        "agent_name": "sdet",
        "agent_role": "SDET (Test Automation Engineer)",
        "summary": "Adds order validation",
        "details": "",
        "metrics": all_metrics(5),
    }
    fields.update(overrides)
    return AgentResult(**fields)


class ScriptedGenerator(TextGenerator):
    """Test double backend: returns queued responses in order and records every request.

    A queued exception is raised instead of returned. When the queue runs dry the
    last entry is repeated.
    """

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        provider_name: str = "scripted",
        usage: TokenUsage | None = TokenUsage(10, 5, 15),
        responder: Callable[[GenerationRequest], str] | None = None,
    ) -> None:
        self._name = provider_name
        self._responses = list(responses or [response_json()])
        self._usage = usage
        self._responder = responder
        self.requests: list[GenerationRequest] = []

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "scripted-model"

    async def generate(self, request: GenerationRequest) -> Generation:
        self.requests.append(request)
        if self._responder is not None:
            return Generation(content=self._responder(request), usage=self._usage, latency_sec=0.01)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return Generation(content=item, usage=self._usage, latency_sec=0.01)


@pytest.fixture
def sample_commit() -> CommitInput:
    return CommitInput(
        diff=SAMPLE_DIFF,
        files_changed=("app/orders.py", "tests/test_orders.py"),
        commit_message="Validate order totals",
        source="test.diff",
    )


@pytest.fixture
def app_config() -> AppConfig:
    """The shipped settings.yaml, so prompt templates are exercised for real."""
    return load_config(SETTINGS_PATH)


@pytest.fixture
def sample_prompts_config(app_config: AppConfig) -> PromptsConfig:
    return app_config.prompts


@pytest.fixture
def fast_mode() -> DepthModeConfig:
    return DepthModeConfig("fast", 1, 65, 1, True, False, 1500)


@pytest.fixture
def normal_mode() -> DepthModeConfig:
    return DepthModeConfig("normal", 3, 80, 3, False, True, 3500)


@pytest.fixture
def deep_mode() -> DepthModeConfig:
    return DepthModeConfig("deep", 8, 88, 5, False, True, 6000)


@pytest.fixture
def sample_agent_config() -> AgentConfig:
    return AgentConfig(
        name="business-analyst",
        role="Business Analyst",
        description="Business perspective",
        expertise={
            "functionalImpact": 0.5,
            "idealTimeHours": 0.08,
            "testCoverage": 0.08,
            "codeQuality": 0.08,
            "codeComplexity": 0.08,
            "actualTimeHours": 0.08,
            "technicalDebtHours": 0.08,
        },
        system_instructions="You are a Business Analyst.",
        retrieval_queries=[RetrievalQueryConfig("What user-facing features changed?", 5, "diff")],
    )


@pytest.fixture
def sample_agent(sample_agent_config: AgentConfig, sample_prompts_config: PromptsConfig) -> Agent:
    return Agent(sample_agent_config, sample_prompts_config)


@pytest.fixture
def council(app_config: AppConfig) -> list[Agent]:
    return [Agent(cfg, app_config.prompts) for cfg in app_config.agents.values()]


@pytest.fixture
def evaluator() -> ClarityEvaluator:
    return ClarityEvaluator(SEVEN_PILLARS)


@pytest.fixture
def question_generator() -> SelfQuestionGenerator:
    return SelfQuestionGenerator()


@pytest.fixture
def make_loop(evaluator, question_generator) -> Callable[..., SelfRefinementLoop]:
    def _make(generator: TextGenerator, mode: DepthModeConfig) -> SelfRefinementLoop:
        return SelfRefinementLoop(generator, evaluator, question_generator, mode, SEVEN_PILLARS)
    return _make


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        rounds=2,
        max_rounds=3,
        depth_mode="normal",
        output_dir=tmp_path / "output",
        provider="anthropic",
        synthesizer="anthropic",
    )


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="anthropic",
        sdk="anthropic",
        model="claude-test",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
    )


@pytest.fixture
def failing_generator() -> ScriptedGenerator:
    return ScriptedGenerator([ProviderError("scripted", "API call failed: boom")])
