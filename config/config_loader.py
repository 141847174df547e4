"""Load settings.yaml into typed dataclasses. Validates API keys, depth modes and agents at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.pillars import PILLAR_DEFINITIONS

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


class ConfigError(Exception):
    """Raised when configuration is missing or malformed."""


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    temperature: float = 0.2


@dataclass
class DepthModeConfig:
    name: str
    max_internal_iterations: int
    internal_clarity_threshold: int
    max_self_questions: int
    skip_self_refinement: bool
    rag_enabled: bool
    token_budget_per_agent: int


@dataclass
class RetrievalQueryConfig:
    query: str
    top_k: int = 3
    source: str = "diff"


@dataclass
class AgentConfig:
    name: str
    role: str
    description: str
    expertise: dict[str, float]
    system_instructions: str
    retrieval_queries: list[RetrievalQueryConfig] = field(default_factory=list)


@dataclass
class PromptsConfig:
    initial: str
    discussion: str
    final_round: str
    refinement: str
    synthesis: str
    response_format: str


@dataclass
class DefaultsConfig:
    rounds: int
    max_rounds: int
    depth_mode: str
    output_dir: Path
    provider: str
    synthesizer: str
    rag_threshold_chars: int = 12000


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    depth_modes: dict[str, DepthModeConfig]
    agents: dict[str, AgentConfig]
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def _parse_depth_mode(name: str, raw: dict) -> DepthModeConfig:
    try:
        mode = DepthModeConfig(
            name=name,
            max_internal_iterations=int(raw["max_internal_iterations"]),
            internal_clarity_threshold=int(raw["internal_clarity_threshold"]),
            max_self_questions=int(raw["max_self_questions"]),
            skip_self_refinement=bool(raw["skip_self_refinement"]),
            rag_enabled=bool(raw["rag_enabled"]),
            token_budget_per_agent=int(raw["token_budget_per_agent"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Malformed depth mode '{name}': {exc}") from exc

    if not 0 <= mode.internal_clarity_threshold <= 100:
        raise ConfigError(f"Depth mode '{name}': clarity threshold must be in 0..100")
    if mode.max_internal_iterations < 0 or mode.max_self_questions < 0:
        raise ConfigError(f"Depth mode '{name}': iteration and question limits must be >= 0")
    if mode.token_budget_per_agent <= 0:
        raise ConfigError(f"Depth mode '{name}': token budget must be positive")
    return mode


def _parse_agent(name: str, raw: dict) -> AgentConfig:
    try:
        expertise = {str(k): float(v) for k, v in raw["expertise"].items()}
        queries = [
            RetrievalQueryConfig(
                query=str(q["query"]),
                top_k=int(q.get("top_k", 3)),
                source=str(q.get("source", "diff")),
            )
            for q in raw.get("retrieval_queries", []) or []
        ]
        agent = AgentConfig(
            name=name,
            role=str(raw["role"]),
            description=str(raw.get("description", "")),
            expertise=expertise,
            system_instructions=str(raw["system_instructions"]),
            retrieval_queries=queries,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Malformed agent '{name}': {exc}") from exc

    for pillar, weight in agent.expertise.items():
        if pillar not in PILLAR_DEFINITIONS:
            raise ConfigError(f"Agent '{name}': unknown pillar '{pillar}'")
        if not 0.0 <= weight <= 1.0:
            raise ConfigError(f"Agent '{name}': weight for {pillar} must be in [0, 1], got {weight}")
    return agent


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ConfigError if a depth
    mode, agent or required section is malformed.
    Logs missing API keys but does not raise — callers check
    available_providers count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file is empty or not a mapping: {settings_path}")

    try:
        defaults_raw = raw["defaults"]
        defaults = DefaultsConfig(
            rounds=int(defaults_raw["rounds"]),
            max_rounds=int(defaults_raw["max_rounds"]),
            depth_mode=str(defaults_raw["depth_mode"]),
            output_dir=Path(defaults_raw["output_dir"]),
            provider=str(defaults_raw["provider"]),
            synthesizer=str(defaults_raw["synthesizer"]),
            rag_threshold_chars=int(defaults_raw.get("rag_threshold_chars", 12000)),
        )

        prompts_raw = raw["prompts"]
        prompts = PromptsConfig(
            initial=prompts_raw["initial"],
            discussion=prompts_raw["discussion"],
            final_round=prompts_raw["final_round"],
            refinement=prompts_raw["refinement"],
            synthesis=prompts_raw["synthesis"],
            response_format=prompts_raw["response_format"],
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Malformed defaults/prompts section: {exc}") from exc

    depth_modes = {
        name: _parse_depth_mode(name, mode_raw)
        for name, mode_raw in (raw.get("depth_modes") or {}).items()
    }
    if defaults.depth_mode not in depth_modes:
        raise ConfigError(f"Default depth mode '{defaults.depth_mode}' is not defined")

    agents = {
        name: _parse_agent(name, agent_raw)
        for name, agent_raw in (raw.get("agents") or {}).items()
    }
    if not agents:
        raise ConfigError("No agents defined in settings")

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in (raw.get("models") or {}).items():
        try:
            model_cfg = ModelConfig(
                name=provider_name,
                sdk=model_raw["sdk"],
                model=model_raw["model"],
                api_key_env=model_raw["api_key_env"],
                timeout_sec=int(model_raw["timeout_sec"]),
                max_tokens=int(model_raw["max_tokens"]),
                base_url=model_raw.get("base_url"),
                temperature=float(model_raw.get("temperature", 0.2)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"Malformed model '{provider_name}': {exc}") from exc
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s — set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        depth_modes=depth_modes,
        agents=agents,
        prompts=prompts,
        available_providers=available_providers,
    )


def resolve_depth_mode(config: AppConfig, name: str | None = None) -> DepthModeConfig:
    """Return the named depth mode, falling back to the configured default.

    An unrecognised name is a recoverable mistake: it logs a warning and uses
    defaults.depth_mode instead of failing the run.
    """
    if name is None:
        return config.depth_modes[config.defaults.depth_mode]
    mode = config.depth_modes.get(name)
    if mode is None:
        logger.warning(
            "Unknown depth mode '%s', falling back to '%s'",
            name,
            config.defaults.depth_mode,
        )
        return config.depth_modes[config.defaults.depth_mode]
    return mode
