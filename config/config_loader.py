"""Load settings.yaml into typed dataclasses. Checks the API key at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from newsroom.models import Persona

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class PricingConfig:
    input_per_mtok: float = 0.0
    output_per_mtok: float = 0.0
    web_search_per_1k: float = 0.0


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    max_web_searches: int = 5
    pricing: PricingConfig = field(default_factory=PricingConfig)


@dataclass
class SessionConfig:
    max_turns: int
    max_tokens: int
    allowed_tools: frozenset[str] = frozenset()


@dataclass
class PromptsConfig:
    research: str
    debate: str


@dataclass
class DefaultsConfig:
    output_dir: Path
    database_path: Path
    heartbeat_interval_sec: float = 3.0
    history_limit: int = 20


@dataclass
class BudgetConfig:
    daily_limit: float


@dataclass
class RateLimitConfig:
    window_hours: float
    max_requests: int = 1


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    model: ModelConfig
    research: SessionConfig
    debate: SessionConfig
    prompts: PromptsConfig
    budget: BudgetConfig
    rate_limit: RateLimitConfig
    personas: dict[str, Persona] = field(default_factory=dict)
    api_key_available: bool = False


def _session(raw: dict) -> SessionConfig:
    return SessionConfig(
        max_turns=int(raw["max_turns"]),
        max_tokens=int(raw["max_tokens"]),
        allowed_tools=frozenset(raw.get("allowed_tools") or ()),
    )


def _env_override(name: str, current, cast):
    """Return cast(os.environ[name]) when set and valid, else current."""
    value = os.environ.get(name, "").strip()
    if not value:
        return current
    try:
        return cast(value)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, value)
        return current


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs a warning for a missing API key but does not raise. Each agent
    session reports the missing key as its own error.

    Environment overrides: MAX_TURNS (research turn budget), DAILY_BUDGET,
    DATABASE_PATH.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        database_path=Path(
            _env_override("DATABASE_PATH", defaults_raw["database_path"], str)
        ),
        heartbeat_interval_sec=float(defaults_raw.get("heartbeat_interval_sec", 3.0)),
        history_limit=int(defaults_raw.get("history_limit", 20)),
    )

    model_raw = raw["model"]
    model = ModelConfig(
        name=model_raw["name"],
        sdk=model_raw["sdk"],
        model=model_raw["model"],
        api_key_env=model_raw["api_key_env"],
        timeout_sec=int(model_raw["timeout_sec"]),
        max_tokens=int(model_raw["max_tokens"]),
        base_url=model_raw.get("base_url"),
        max_web_searches=int(model_raw.get("max_web_searches", 5)),
        pricing=PricingConfig(**(model_raw.get("pricing") or {})),
    )

    research = _session(raw["research"])
    research.max_turns = _env_override("MAX_TURNS", research.max_turns, int)
    debate = _session(raw["debate"])

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(research=prompts_raw["research"], debate=prompts_raw["debate"])

    budget = BudgetConfig(
        daily_limit=_env_override("DAILY_BUDGET", float(raw["budget"]["daily_limit"]), float),
    )
    rate_raw = raw["rate_limit"]
    rate_limit = RateLimitConfig(
        window_hours=float(rate_raw["window_hours"]),
        max_requests=int(rate_raw.get("max_requests", 1)),
    )

    personas = {
        persona_id: Persona(
            id=persona_id,
            name=str(p["name"]),
            tagline=str(p.get("tagline", "")),
            personality=str(p.get("personality", "")),
            style=str(p.get("style", "")),
            tone=str(p.get("tone", "")),
        )
        for persona_id, p in (raw.get("personas") or {}).items()
    }

    api_key_available = bool(os.environ.get(model.api_key_env, "").strip())
    if api_key_available:
        logger.info("Provider available: %s", model.name)
    else:
        logger.warning(
            "Provider not configured (no API key): %s, set %s in .env",
            model.name,
            model.api_key_env,
        )

    return AppConfig(
        defaults=defaults,
        model=model,
        research=research,
        debate=debate,
        prompts=prompts,
        budget=budget,
        rate_limit=rate_limit,
        personas=personas,
        api_key_available=api_key_available,
    )
