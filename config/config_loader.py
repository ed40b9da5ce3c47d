"""Load settings.yaml into typed dataclasses. Checks provider API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from deepthink.models import RunOptions, SearchProviderConfig, Stage

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ProviderConfig:
    name: str
    sdk: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    model_prefixes: list[str] = field(default_factory=list)
    base_url: str | None = None


@dataclass
class PromptsConfig:
    system: str
    self_improvement: str
    correction: str
    verification_system: str
    verification: str          # {problem}, {solution}
    verification_check: str    # {verdict}
    plan: str                  # {problem}
    agent_config: str          # {plan}
    synthesis: str             # {problem}, {agent_results}


@dataclass
class DefaultsConfig:
    thinking_model: str
    output_dir: Path
    max_iterations: int = 30
    required_successful_verifications: int = 3
    max_errors_before_give_up: int = 10
    enable_web_search: bool = False
    search_provider: SearchProviderConfig = field(default_factory=SearchProviderConfig)
    num_agents: int | None = None

    def to_run_options(self) -> RunOptions:
        return RunOptions(
            max_iterations=self.max_iterations,
            required_successful_verifications=self.required_successful_verifications,
            max_errors_before_give_up=self.max_errors_before_give_up,
            enable_web_search=self.enable_web_search,
            search_provider=SearchProviderConfig(
                provider=self.search_provider.provider,
                max_results=self.search_provider.max_results,
            ),
            num_agents=self.num_agents,
        )


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    providers: dict[str, ProviderConfig]
    prompts: PromptsConfig
    stages: dict[str, str | None] = field(default_factory=dict)
    available_providers: set[str] = field(default_factory=set)


def _load_stages(stages_raw: dict | None) -> dict[str, str | None]:
    known = {s.value for s in Stage}
    stages: dict[str, str | None] = {}
    for name, model in (stages_raw or {}).items():
        if name not in known:
            logger.warning("Unknown stage '%s' in settings, ignoring", name)
            continue
        stages[name] = str(model) if model else None
    return stages


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs providers whose API key is unset but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    search_raw = defaults_raw.get("search_provider") or {}
    num_agents = defaults_raw.get("num_agents")
    defaults = DefaultsConfig(
        thinking_model=str(defaults_raw["thinking_model"]),
        output_dir=Path(defaults_raw["output_dir"]),
        max_iterations=int(defaults_raw.get("max_iterations", 30)),
        required_successful_verifications=int(defaults_raw.get("required_successful_verifications", 3)),
        max_errors_before_give_up=int(defaults_raw.get("max_errors_before_give_up", 10)),
        enable_web_search=bool(defaults_raw.get("enable_web_search", False)),
        search_provider=SearchProviderConfig(
            provider=str(search_raw.get("provider", "model")),
            max_results=int(search_raw.get("max_results", 5)),
        ),
        num_agents=int(num_agents) if num_agents else None,
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        self_improvement=prompts_raw["self_improvement"],
        correction=prompts_raw["correction"],
        verification_system=prompts_raw["verification_system"],
        verification=prompts_raw["verification"],
        verification_check=prompts_raw["verification_check"],
        plan=prompts_raw["plan"],
        agent_config=prompts_raw["agent_config"],
        synthesis=prompts_raw["synthesis"],
    )

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        providers[provider_name] = ProviderConfig(
            name=provider_name,
            sdk=provider_raw["sdk"],
            api_key_env=provider_raw["api_key_env"],
            timeout_sec=int(provider_raw["timeout_sec"]),
            max_tokens=int(provider_raw["max_tokens"]),
            model_prefixes=[str(p) for p in provider_raw.get("model_prefixes", [])],
            base_url=provider_raw.get("base_url"),
        )

        api_key = os.environ.get(provider_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s — set %s in .env",
                provider_name,
                provider_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        providers=providers,
        prompts=prompts,
        stages=_load_stages(raw.get("stages")),
        available_providers=available_providers,
    )
