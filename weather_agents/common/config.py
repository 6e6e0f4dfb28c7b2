"""
Configuration Management for Weather Agents

Loads configuration from ~/.weather-agents/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("weather.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".weather-agents"
CONFIG_PATH = CONFIG_DIR / "config.json"
FACT_STORE_PATH = CONFIG_DIR / "facts.json"


@dataclass
class LLMConfig:
    """LLM provider configuration shared by the intent analyzer and synthesizer"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    intent_temperature: float = 0.1
    intent_max_tokens: int = 1000
    answer_temperature: float = 0.3
    answer_max_tokens: int = 500
    timeout: float = 30.0

    @property
    def model(self) -> str:
        """Model name for the selected provider"""
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    mode: str = "femb"  # fastembed (on-device)
    model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


@dataclass
class FactStoreConfig:
    """Fact store persistence"""
    path: str = str(FACT_STORE_PATH)
    retention_days: int = 30


@dataclass
class RetrieverConfig:
    """Retriever configuration"""
    window: int = 50  # candidates scored per query (brute-force cosine)
    widen_on_empty: bool = True


@dataclass
class OrchestratorConfig:
    """Orchestrator configuration"""
    timezone: str = "Asia/Seoul"
    default_location: str = "Seoul"
    timeout_seconds: float = 30.0


@dataclass
class WeatherAgentsConfig:
    """Main configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    fact_store: FactStoreConfig = field(default_factory=FactStoreConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    state: str = "active"  # "active" or "dormant"
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        intent_temperature=llm_data.get("intent_temperature", defaults.intent_temperature),
        intent_max_tokens=llm_data.get("intent_max_tokens", defaults.intent_max_tokens),
        answer_temperature=llm_data.get("answer_temperature", defaults.answer_temperature),
        answer_max_tokens=llm_data.get("answer_max_tokens", defaults.answer_max_tokens),
        timeout=llm_data.get("timeout", defaults.timeout),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        mode=embedding_data.get("mode", defaults.mode),
        model=embedding_data.get("model", defaults.model),
    )


def _parse_fact_store_config(data: dict) -> FactStoreConfig:
    """Parse fact_store section from config dict"""
    store_data = data.get("fact_store", {})
    return FactStoreConfig(
        path=store_data.get("path", str(FACT_STORE_PATH)),
        retention_days=store_data.get("retention_days", 30),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        window=retriever_data.get("window", 50),
        widen_on_empty=retriever_data.get("widen_on_empty", True),
    )


def _parse_orchestrator_config(data: dict) -> OrchestratorConfig:
    """Parse orchestrator section from config dict"""
    orch_data = data.get("orchestrator", {})
    defaults = OrchestratorConfig()
    return OrchestratorConfig(
        timezone=orch_data.get("timezone", defaults.timezone),
        default_location=orch_data.get("default_location", defaults.default_location),
        timeout_seconds=orch_data.get("timeout_seconds", defaults.timeout_seconds),
    )


def load_config() -> WeatherAgentsConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.weather-agents/config.json)
    3. Default values
    """
    config = WeatherAgentsConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.fact_store = _parse_fact_store_config(data)
            config.retriever = _parse_retriever_config(data)
            config.orchestrator = _parse_orchestrator_config(data)
            config.state = data.get("state", "active")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("WEATHER_FACT_STORE_PATH"):
        config.fact_store.path = os.getenv("WEATHER_FACT_STORE_PATH")
    if os.getenv("WEATHER_RETRIEVER_WINDOW"):
        config.retriever.window = int(os.getenv("WEATHER_RETRIEVER_WINDOW"))

    if os.getenv("WEATHER_TIMEZONE"):
        config.orchestrator.timezone = os.getenv("WEATHER_TIMEZONE")
    if os.getenv("WEATHER_DEFAULT_LOCATION"):
        config.orchestrator.default_location = os.getenv("WEATHER_DEFAULT_LOCATION")
    if os.getenv("WEATHER_TIMEOUT"):
        config.orchestrator.timeout_seconds = float(os.getenv("WEATHER_TIMEOUT"))

    # LLM env var overrides (track env-sourced keys so they are never persisted)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "WEATHER_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("WEATHER_AGENTS_STATE"):
        config.state = os.getenv("WEATHER_AGENTS_STATE")

    return config


def save_config(config: WeatherAgentsConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "intent_temperature": config.llm.intent_temperature,
        "intent_max_tokens": config.llm.intent_max_tokens,
        "answer_temperature": config.llm.answer_temperature,
        "answer_max_tokens": config.llm.answer_max_tokens,
        "timeout": config.llm.timeout,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
        },
        "fact_store": {
            "path": config.fact_store.path,
            "retention_days": config.fact_store.retention_days,
        },
        "retriever": {
            "window": config.retriever.window,
            "widen_on_empty": config.retriever.widen_on_empty,
        },
        "orchestrator": {
            "timezone": config.orchestrator.timezone,
            "default_location": config.orchestrator.default_location,
            "timeout_seconds": config.orchestrator.timeout_seconds,
        },
        "state": config.state,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
