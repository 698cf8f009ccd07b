"""
tests/unit/test_config.py — Settings and loader tests
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from bgtasks.config.settings import ConfigError, Settings, load_settings
from bgtasks.scheduler.types import BackoffStrategy


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:

    def test_defaults(self):
        s = Settings()
        assert s.scheduler.retain_exhausted_state is True
        assert s.scheduler.raise_on_unknown_task is False
        assert s.scheduler.history_limit == 100
        assert s.events.buffer_size == 256
        assert s.events.overflow == "drop_oldest"
        assert s.log_level == "INFO"
        s.validate_all()

    def test_default_retry_policy(self):
        policy = Settings().default_retry_policy
        assert policy.strategy is BackoffStrategy.EXPONENTIAL
        assert policy.base_delay == 3.0
        assert policy.max_delay == 300.0
        assert policy.max_attempts == 5

    def test_log_max_bytes(self):
        assert Settings(logging={"max_file_size_mb": 2}).log_max_bytes == 2 * 1024 * 1024


class TestFieldValidation:

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            Settings(scheduler={"default_retry": {"strategy": "linear"}})

    def test_strategy_case_insensitive(self):
        s = Settings(scheduler={"default_retry": {"strategy": "JITTERED"}})
        assert s.default_retry_policy.strategy is BackoffStrategy.JITTERED

    def test_negative_delay(self):
        with pytest.raises(ValidationError):
            Settings(scheduler={"default_retry": {"base_delay": -1}})

    def test_history_limit_positive(self):
        with pytest.raises(ValidationError):
            Settings(scheduler={"history_limit": 0})

    def test_overflow_policy(self):
        with pytest.raises(ValidationError):
            Settings(events={"overflow": "block"})

    def test_buffer_size_positive(self):
        with pytest.raises(ValidationError):
            Settings(events={"buffer_size": 0})

    def test_log_level(self):
        assert Settings(logging={"level": "debug"}).log_level == "DEBUG"
        with pytest.raises(ValidationError):
            Settings(logging={"level": "LOUD"})


class TestValidateAll:

    def test_max_below_base(self):
        s = Settings(scheduler={"default_retry": {"base_delay": 10, "max_delay": 5}})
        with pytest.raises(ConfigError, match="max_delay"):
            s.validate_all()

    def test_zero_base_with_exponential(self):
        s = Settings(scheduler={"default_retry": {"base_delay": 0, "max_delay": 0}})
        with pytest.raises(ConfigError, match="fire immediately"):
            s.validate_all()

    def test_zero_base_fixed_is_allowed(self):
        s = Settings(scheduler={"default_retry": {"strategy": "fixed", "base_delay": 0}})
        s.validate_all()

    def test_lists_every_problem(self):
        s = Settings(
            scheduler={"default_retry": {"base_delay": 10, "max_delay": 5}},
            logging={"max_file_size_mb": 0},
        )
        with pytest.raises(ConfigError) as exc_info:
            s.validate_all()
        message = str(exc_info.value)
        assert "1." in message and "2." in message


class TestLoadSettings:

    def test_missing_file_uses_defaults(self, tmp_path):
        s = load_settings(tmp_path / "nope.yaml")
        assert s.scheduler.history_limit == 100

    def test_yaml_values(self, tmp_path):
        path = _write(tmp_path, (
            "scheduler:\n"
            "  history_limit: 7\n"
            "  default_retry:\n"
            "    strategy: fixed\n"
            "    base_delay: 1\n"
            "events:\n"
            "  overflow: drop_newest\n"
            "unrelated:\n"
            "  key: value\n"
        ))
        s = load_settings(path)
        assert s.scheduler.history_limit == 7
        assert s.default_retry_policy.strategy is BackoffStrategy.FIXED
        assert s.events.overflow == "drop_newest"

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "scheduler:\n  history_limit: 11\n")
        monkeypatch.setenv("BGTASKS_CONFIG", str(path))
        assert load_settings().scheduler.history_limit == 11

    def test_explicit_path_beats_env_var(self, tmp_path, monkeypatch):
        explicit = _write(tmp_path, "scheduler:\n  history_limit: 3\n")
        other = tmp_path / "other.yaml"
        other.write_text("scheduler:\n  history_limit: 9\n", encoding="utf-8")
        monkeypatch.setenv("BGTASKS_CONFIG", str(other))
        assert load_settings(explicit).scheduler.history_limit == 3

    def test_environment_overrides_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "scheduler:\n  history_limit: 7\n")
        monkeypatch.setenv("SCHEDULER__HISTORY_LIMIT", "42")
        assert load_settings(path).scheduler.history_limit == 42

    def test_non_mapping_rejected(self, tmp_path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_settings(path)
