"""Environment-bound configuration objects.

Every settings group is a Pydantic ``BaseSettings`` that loads from environment
variables (and ``.env``) with several accepted alias names, e.g. both
``AEGIS_PLANNING_ENABLED`` and ``PLANNING_ENABLED`` work.

Settings objects are frozen. Core components receive the group they need at
construction time; only the runtime assembly and the CLI call ``get_settings()``.

Example:
    from aegisAgent.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    max_depth = settings.delegation.max_depth
    ratios = settings.context.ratios()
"""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


DEFAULT_MAX_REFLECTION_RETRIES = 2
DEFAULT_MAX_DELEGATION_DEPTH = 3


def _settings_config(**extra) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
        **extra,
    )


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class ModelRoutingSettings(BaseSettings):
    """Provider/model identifiers, credentials and failover order.

    ``failover_chain`` is a comma separated list of provider names tried after
    the primary provider. ``context_window`` overrides the per-model lookup in
    ``aegisAgent.context.token_tracker`` when set.
    """

    provider: str = Field(
        default="openai",
        validation_alias=AliasChoices("AEGIS_PROVIDER", "MODEL_PROVIDER"),
    )
    model: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("AEGIS_MODEL", "MODEL_ID", "MODEL_CHAT_ID"),
    )
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AEGIS_API_KEY", "OPENAI_API_KEY", "MODEL_API_KEY"),
    )
    base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AEGIS_BASE_URL", "OPENAI_BASE_URL", "MODEL_BASE_URL"),
    )
    context_window: Optional[int] = Field(
        default=None,
        ge=256,
        validation_alias=AliasChoices("AEGIS_CONTEXT_WINDOW", "MODEL_CONTEXT_WINDOW"),
    )
    failover_chain: str = Field(
        default="",
        validation_alias=AliasChoices("AEGIS_FAILOVER_CHAIN", "MODEL_FAILOVER_CHAIN"),
    )
    # Extra providers, comma separated "name=model@base_url" entries
    extra_providers: str = Field(
        default="",
        validation_alias=AliasChoices("AEGIS_EXTRA_PROVIDERS"),
    )
    request_timeout: float = Field(
        default=120.0,
        gt=0,
        validation_alias=AliasChoices("AEGIS_REQUEST_TIMEOUT", "MODEL_TIMEOUT"),
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        validation_alias=AliasChoices("AEGIS_TEMPERATURE"),
    )
    summary_model: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AEGIS_SUMMARY_MODEL"),
    )

    model_config = _settings_config()

    def failover_providers(self) -> List[str]:
        return _split_csv(self.failover_chain)

    def extra_provider_specs(self) -> List[str]:
        return _split_csv(self.extra_providers)


class AgentSettings(BaseSettings):
    """Agent loop behavior.

    - planning_enabled: run the complexity check and planning persona
    - reflection_enabled: critique planned answers and retry on NEEDS_REVISION
    - max_steps: hard cap on generate/tool rounds per turn
    - max_reflection_retries: retry cap after a revision verdict
    """

    planning_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("AEGIS_PLANNING_ENABLED", "PLANNING_ENABLED"),
    )
    reflection_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("AEGIS_REFLECTION_ENABLED", "REFLECTION_ENABLED"),
    )
    max_steps: int = Field(
        default=10,
        ge=1,
        le=100,
        validation_alias=AliasChoices("AEGIS_MAX_STEPS", "MAX_TOOL_STEPS"),
    )
    max_reflection_retries: int = Field(
        default=DEFAULT_MAX_REFLECTION_RETRIES,
        ge=0,
        le=DEFAULT_MAX_REFLECTION_RETRIES,
        validation_alias=AliasChoices("AEGIS_MAX_REFLECTION_RETRIES"),
    )
    planning_timeout: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices("AEGIS_PLANNING_TIMEOUT"),
    )
    rate_limit_window: int = Field(
        default=60,
        ge=1,
        validation_alias=AliasChoices("AEGIS_RATE_LIMIT_WINDOW"),
    )
    rate_limit_max_requests: int = Field(
        default=120,
        ge=1,
        validation_alias=AliasChoices("AEGIS_RATE_LIMIT_MAX_REQUESTS"),
    )
    streaming: bool = Field(
        default=True,
        validation_alias=AliasChoices("AEGIS_STREAMING"),
    )
    agents_config_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AEGIS_AGENTS_CONFIG", "AGENTS_CONFIG_PATH"),
    )

    model_config = _settings_config()


class ContextSettings(BaseSettings):
    """Context-window budgeting.

    The five ratios split the model context window into prompt sections and must
    sum to 1.0.
    """

    default_context_window: int = Field(
        default=8000,
        ge=256,
        validation_alias=AliasChoices("AEGIS_DEFAULT_CONTEXT_WINDOW"),
    )
    system_prompt_ratio: float = Field(default=0.15, ge=0.0, le=1.0)
    memories_ratio: float = Field(default=0.10, ge=0.0, le=1.0)
    summary_ratio: float = Field(default=0.10, ge=0.0, le=1.0)
    messages_ratio: float = Field(default=0.60, ge=0.0, le=1.0)
    reserve_ratio: float = Field(default=0.05, ge=0.0, le=1.0)
    compress_threshold_chars: int = Field(
        default=200,
        ge=100,
        validation_alias=AliasChoices("AEGIS_COMPRESS_THRESHOLD"),
    )
    summarize_after_dropped: int = Field(
        default=10,
        ge=0,
        validation_alias=AliasChoices("AEGIS_SUMMARIZE_AFTER_DROPPED"),
    )
    summary_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("AEGIS_SUMMARY_ENABLED"),
    )

    model_config = _settings_config(env_prefix="AEGIS_CONTEXT_")

    @model_validator(mode="after")
    def _ratios_sum_to_one(self):
        total = sum(self.ratios().values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"context budget ratios must sum to 1.0, got {total:.4f}")
        return self

    def ratios(self) -> Dict[str, float]:
        return {
            "system_prompt": self.system_prompt_ratio,
            "memories": self.memories_ratio,
            "summary": self.summary_ratio,
            "messages": self.messages_ratio,
            "reserve": self.reserve_ratio,
        }


class DelegationSettings(BaseSettings):
    """Task delegation guard and background worker configuration."""

    max_depth: int = Field(
        default=DEFAULT_MAX_DELEGATION_DEPTH,
        ge=0,
        validation_alias=AliasChoices("AEGIS_DELEGATION_MAX_DEPTH", "DELEGATION_MAX_DEPTH"),
    )
    circular_check: bool = Field(
        default=True,
        validation_alias=AliasChoices("AEGIS_DELEGATION_CIRCULAR_CHECK", "DELEGATION_CIRCULAR_CHECK"),
    )
    max_attempts: int = Field(
        default=2,
        ge=1,
        validation_alias=AliasChoices("AEGIS_DELEGATION_MAX_ATTEMPTS"),
    )
    workers: int = Field(
        default=2,
        ge=1,
        le=32,
        validation_alias=AliasChoices("AEGIS_DELEGATION_WORKERS"),
    )
    # Priorities that auto-dispatch user-assigned tasks
    auto_dispatch_priorities: List[str] = Field(
        default_factory=lambda: ["high", "urgent"],
    )

    model_config = _settings_config()


class SecuritySettings(BaseSettings):
    """Tool permission policy."""

    auto_allow_read: bool = Field(
        default=True,
        validation_alias=AliasChoices("AEGIS_AUTO_ALLOW_READ"),
    )
    approval_timeout: float = Field(
        default=300.0,
        gt=0,
        validation_alias=AliasChoices("AEGIS_APPROVAL_TIMEOUT"),
    )
    permission_rules_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AEGIS_PERMISSION_RULES", "HITL_RULES_PATH"),
    )

    model_config = _settings_config()


class ObservabilitySettings(BaseSettings):
    """Logging and persistence configuration.

    - log_dir / log_level: file logging managed by ``utils.logging_utils``
    - log_prompt_max_length: truncation of prompts written to the log
    - conversation_db_path: SQLite file for conversations (unset = in memory)
    """

    log_dir: str = Field(default="logs", validation_alias=AliasChoices("AEGIS_LOG_DIR", "LOG_DIR"))
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("AEGIS_LOG_LEVEL", "LOG_LEVEL"))
    log_prompt_max_length: int = Field(
        default=500,
        ge=100,
        le=5000,
        validation_alias=AliasChoices("AEGIS_LOG_PROMPT_MAX_LENGTH", "LOG_PROMPT_MAX_LENGTH"),
    )
    conversation_db_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AEGIS_CONVERSATION_DB", "SESSION_DB_PATH"),
    )

    model_config = _settings_config()


class Settings(BaseSettings):
    """Root application settings loaded from the environment and .env.

    Groups:
    - models: provider routing and credentials (ModelRoutingSettings)
    - agent: agent loop controls (AgentSettings)
    - context: context budgeting (ContextSettings)
    - delegation: delegation guard and workers (DelegationSettings)
    - security: tool permission policy (SecuritySettings)
    - observability: logging and persistence (ObservabilitySettings)
    """

    environment: str = Field(default="dev", validation_alias=AliasChoices("AEGIS_ENV", "APP_ENV"))
    models: ModelRoutingSettings = Field(default_factory=ModelRoutingSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    delegation: DelegationSettings = Field(default_factory=DelegationSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = _settings_config(case_sensitive=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    return Settings()
