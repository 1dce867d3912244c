"""Unit tests for the Parley configuration system.

Tests cover loading configuration from file, handling missing/invalid files,
validation of ranges, singleton behavior, environment overrides, config
migration, and save functionality.
"""

import json
import os
import stat

import pytest
from pydantic import ValidationError

from parley import config as config_module
from parley.config import (
    CONFIG_VERSION,
    DEFAULT_PROMPT_BODY,
    ContextConfig,
    ParleyConfig,
    RetryConfig,
    get_config,
    load_config,
    reset_config,
    save_config,
    set_config,
)


class TestModels:
    """Tests for the configuration models."""

    def test_default_values(self):
        """Defaults describe an unconfigured OpenAI-compatible endpoint."""
        config = ParleyConfig()
        assert config.endpoint_url == ""
        assert config.provider == "openai"
        assert config.model == "gpt-4o-mini"
        assert config.ai_enabled is True
        assert config.retry.max_attempts == 5
        assert config.retry.delay_seconds == 0.5
        assert config.context.max_messages == 10
        assert [p.name for p in config.prompts] == ["Default"]
        assert config.prompts[0].body == DEFAULT_PROMPT_BODY
        assert not config.is_endpoint_configured

    def test_endpoint_configured(self):
        config = ParleyConfig(endpoint_url="https://x.test", api_key="k")
        assert config.is_endpoint_configured

    @pytest.mark.parametrize("value", [0, 21])
    def test_retry_attempts_out_of_range(self, value):
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=value)

    def test_context_must_be_non_negative(self):
        with pytest.raises(ValidationError):
            ContextConfig(max_messages=-1)

    def test_sampling_parameters_are_not_validated(self):
        """Out-of-range sampling values load and are dropped at request time."""
        config = ParleyConfig(temperature=9.0, max_tokens=100000)
        assert config.temperature == 9.0


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.json")
        assert config == ParleyConfig()

    def test_invalid_json_returns_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_config(path) == ParleyConfig()

    def test_non_object_returns_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        assert load_config(path) == ParleyConfig()

    def test_invalid_values_return_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": CONFIG_VERSION, "retry": {"max_attempts": 0}}))
        assert load_config(path).retry.max_attempts == 5

    def test_loads_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "config_version": CONFIG_VERSION,
                    "endpoint_url": "https://x.test",
                    "api_key": "k",
                    "model": "m",
                    "prompts": [{"name": "Work", "body": "b", "user_whitelist": "a, b"}],
                }
            )
        )
        config = load_config(path)
        assert config.endpoint_url == "https://x.test"
        assert config.model == "m"
        assert config.prompts[0].user_whitelist == {"a", "b"}

    def test_default_path(self, tmp_path):
        path = tmp_path / "parley" / "config.json"
        path.parent.mkdir()
        path.write_text(json.dumps({"config_version": CONFIG_VERSION, "model": "from-default-path"}))
        assert load_config().model == "from-default-path"


class TestMigration:
    """Tests for config version migration."""

    def test_v1_system_prompt_becomes_prompt_list(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"system_prompt": "Be nice.", "model": "m"}))

        config = load_config(path)

        assert config.config_version == CONFIG_VERSION
        assert [(p.name, p.body) for p in config.prompts] == [("Default", "Be nice.")]

        saved = json.loads(path.read_text())
        assert saved["config_version"] == CONFIG_VERSION
        assert "system_prompt" not in saved

    def test_v1_without_prompt_keeps_default(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"system_prompt": "  "}))
        assert load_config(path).prompts[0].body == DEFAULT_PROMPT_BODY

    def test_current_version_is_not_rewritten(self, tmp_path):
        path = tmp_path / "config.json"
        raw = json.dumps({"config_version": CONFIG_VERSION, "model": "m"})
        path.write_text(raw)
        load_config(path)
        assert path.read_text() == raw


class TestEnvironmentOverrides:
    """Credentials can come from the environment."""

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": CONFIG_VERSION, "api_key": "from-file"}))
        monkeypatch.setenv("PARLEY_API_KEY", "from-env")
        monkeypatch.setenv("PARLEY_ENDPOINT_URL", "https://env.test")

        config = load_config(path)

        assert config.api_key == "from-env"
        assert config.endpoint_url == "https://env.test"

    def test_env_applies_without_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PARLEY_API_KEY", "from-env")
        assert load_config(tmp_path / "missing.json").api_key == "from-env"


class TestSaveConfig:
    """Tests for save_config."""

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = ParleyConfig(api_key="secret", model="m", retry=RetryConfig(delay_ms=100))

        assert save_config(config, path)
        assert load_config(path) == config

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_file_is_owner_only(self, tmp_path):
        path = tmp_path / "config.json"
        save_config(ParleyConfig(api_key="secret"), path)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_write_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert save_config(ParleyConfig(), blocker / "config.json") is False


class TestSingleton:
    """Tests for get_config/set_config/reset_config."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_reloads(self):
        first = get_config()
        reset_config()
        assert get_config() is not first

    def test_set_config(self):
        config = ParleyConfig(model="custom")
        set_config(config)
        assert get_config() is config

    def test_config_path_is_isolated(self, tmp_path):
        assert config_module.CONFIG_PATH == tmp_path / "parley" / "config.json"
