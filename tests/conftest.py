"""
Test conftest — isolate configuration environment variables so Settings()
behaves the same on every machine, and disable .env loading so a local
developer .env file never leaks into tests.
"""
import os

import pytest

_CONFIG_ENV_PREFIXES = ("SCHEDULER__", "EVENTS__", "LOGGING__")


@pytest.fixture(autouse=True)
def _isolate_config_env(monkeypatch):
    monkeypatch.delenv("BGTASKS_CONFIG", raising=False)
    for var in list(os.environ):
        if var.upper().startswith(_CONFIG_ENV_PREFIXES):
            monkeypatch.delenv(var, raising=False)

    import bgtasks.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
