"""
config/settings.py — bgtasks Runtime Settings

Merges config.yaml (defaults/structure) with environment variables.
Pydantic-powered — all fields are validated and typed.

  - RetryConfig rejects unknown strategies and max_delay < base_delay
  - EventsConfig validates the overflow policy and buffer size
  - validate_all() performs cross-field startup validation and raises
    ConfigError listing every problem found
  - load_settings() respects BGTASKS_CONFIG as a fallback when no explicit
    config_path argument is given

There is no process-wide settings instance: the composition root loads
Settings once and hands it to the factories that need it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bgtasks.scheduler.types import BackoffStrategy, RetryPolicy


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_STRATEGIES = {s.value for s in BackoffStrategy}
_VALID_OVERFLOW   = {"drop_oldest", "drop_newest"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class RetryConfig(BaseModel):
    """Default backoff policy for tasks built from config."""
    strategy: str = "exponential"
    base_delay: float = 3.0
    max_delay: float = 300.0
    max_attempts: int = 5

    @field_validator("strategy")
    @classmethod
    def _known_strategy(cls, v: str) -> str:
        v = v.lower()
        if v not in _VALID_STRATEGIES:
            raise ValueError(
                f"scheduler.default_retry.strategy must be one of "
                f"{sorted(_VALID_STRATEGIES)}, got '{v}'"
            )
        return v

    @field_validator("base_delay", "max_delay")
    @classmethod
    def _non_negative_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry delays must be >= 0")
        return v

    @field_validator("max_attempts")
    @classmethod
    def _non_negative_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("scheduler.default_retry.max_attempts must be >= 0")
        return v

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            strategy=BackoffStrategy(self.strategy),
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            max_attempts=self.max_attempts,
        )


class SchedulerConfig(BaseModel):
    retain_exhausted_state: bool = True
    raise_on_unknown_task: bool = False
    history_limit: int = 100
    default_retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("history_limit")
    @classmethod
    def _positive_history(cls, v: int) -> int:
        if v < 1:
            raise ValueError("scheduler.history_limit must be >= 1")
        return v


class EventsConfig(BaseModel):
    buffer_size: int = 256
    overflow: str = "drop_oldest"

    @field_validator("buffer_size")
    @classmethod
    def _positive_buffer(cls, v: int) -> int:
        if v < 1:
            raise ValueError("events.buffer_size must be >= 1")
        return v

    @field_validator("overflow")
    @classmethod
    def _valid_overflow(cls, v: str) -> str:
        v = v.lower()
        if v not in _VALID_OVERFLOW:
            raise ValueError(
                f"events.overflow must be one of {sorted(_VALID_OVERFLOW)}, got '{v}'"
            )
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    bgtasks runtime settings.

    Priority (highest to lowest):
      1. Environment variables  (e.g. SCHEDULER__HISTORY_LIMIT=5)
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML values arrive as init kwargs; the environment must win over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("scheduler", mode="before")
    @classmethod
    def _coerce_scheduler(cls, v: Any) -> Any:
        return SchedulerConfig(**v) if isinstance(v, dict) else v

    @field_validator("events", mode="before")
    @classmethod
    def _coerce_events(cls, v: Any) -> Any:
        return EventsConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def default_retry_policy(self) -> RetryPolicy:
        return self.scheduler.default_retry.to_policy()

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def log_json_format(self) -> bool:
        return self.logging.json_format

    @property
    def log_console_output(self) -> bool:
        return self.logging.console_output

    @property
    def log_max_bytes(self) -> int:
        return self.logging.max_file_size_mb * 1024 * 1024

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches cross-field problems.
        """
        errors: list[str] = []

        retry = self.scheduler.default_retry
        if retry.max_delay < retry.base_delay:
            errors.append(
                f"scheduler.default_retry.max_delay ({retry.max_delay}) is smaller "
                f"than base_delay ({retry.base_delay}); every retry would be capped "
                f"below the base delay."
            )
        if retry.strategy != BackoffStrategy.FIXED.value and retry.base_delay == 0:
            errors.append(
                f"scheduler.default_retry.base_delay is 0 with strategy "
                f"'{retry.strategy}'; every retry would fire immediately."
            )

        if self.logging.max_file_size_mb < 1:
            errors.append("logging.max_file_size_mb must be >= 1.")
        if self.logging.backup_count < 0:
            errors.append("logging.backup_count must be >= 0.")

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nbgtasks startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your environment "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"scheduler", "events", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. BGTASKS_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("BGTASKS_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings by merging config.yaml with environment variables.

    A missing config file is not an error: defaults apply.
    """
    resolved_path = _resolve_config_path(config_path)
    yaml_data = _load_yaml(resolved_path)
    if not isinstance(yaml_data, dict):
        raise ConfigError(f"{resolved_path} must contain a YAML mapping at the top level")

    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
    return Settings(**init_kwargs)
