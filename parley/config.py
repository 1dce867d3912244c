"""Parley Configuration System.

Loads and validates configuration from ~/.parley/config.json.
Uses Pydantic for schema validation with sensible defaults.

Supports migration from older config versions while preserving existing values.

Usage:
    from parley.config import get_config, save_config

    config = get_config()
    print(config.model)
    print(config.retry.max_attempts)

    # Modify and save
    config.ai_enabled = False
    save_config(config)
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from parley.prompts.models import PromptDefinition

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".parley" / "config.json"

# Current config schema version for migration tracking
CONFIG_VERSION = 2

ENV_API_KEY = "PARLEY_API_KEY"
ENV_ENDPOINT_URL = "PARLEY_ENDPOINT_URL"

DEFAULT_PROMPT_BODY = (
    "You help the user answer chat messages. Read the conversation and write "
    "three short, natural reply options for the message marked as needing "
    "reply options. Match the tone of the conversation and write in the "
    "language of the last message.\n"
    'Respond with JSON only, in the form {"options": ["reply 1", "reply 2", "reply 3"]}.'
)


def _default_prompts() -> list[PromptDefinition]:
    return [PromptDefinition(name="Default", body=DEFAULT_PROMPT_BODY)]


class RetryConfig(BaseModel):
    """Automatic retry policy for unusable model output.

    Attributes:
        max_attempts: Total automatic attempts per request (first try included).
        delay_ms: Delay between automatic attempts in milliseconds.
    """

    max_attempts: int = Field(default=5, ge=1, le=20)
    delay_ms: int = Field(default=500, ge=0, le=60000)

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


class TransportConfig(BaseModel):
    """HTTP timeouts for the model endpoint, in seconds."""

    connect_timeout: float = Field(default=10.0, ge=0.1, le=120.0)
    read_timeout: float = Field(default=15.0, ge=0.1, le=600.0)
    write_timeout: float = Field(default=10.0, ge=0.1, le=120.0)


class ContextConfig(BaseModel):
    """Conversation context sent along with the message.

    Attributes:
        max_messages: Prior messages kept per conversation (0 disables context).
    """

    max_messages: int = Field(default=10, ge=0, le=100)


class LoggingConfig(BaseModel):
    """Diagnostics settings.

    Attributes:
        verbose_requests: Log full request documents (API key masked) at DEBUG.
        ai_log_max_entries: Capacity of the in-memory AI request log.
    """

    verbose_requests: bool = False
    ai_log_max_entries: int = Field(default=200, ge=10, le=10000)


class ParleyConfig(BaseModel):
    """Root configuration.

    ``temperature`` and ``max_tokens`` are deliberately unbounded here: values
    outside what the endpoint accepts are dropped from the request instead of
    being rejected at load time.
    """

    config_version: int = CONFIG_VERSION
    endpoint_url: str = ""
    api_key: str = ""
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float | None = 0.8
    max_tokens: int | None = 300
    ai_enabled: bool = True
    prompts: list[PromptDefinition] = Field(default_factory=_default_prompts)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def is_endpoint_configured(self) -> bool:
        return bool(self.endpoint_url.strip()) and bool(self.api_key.strip())


# Singleton instance with thread-safe initialization
_config: ParleyConfig | None = None
_config_lock = threading.Lock()


def _migrate_v1_to_v2(data: dict[str, Any]) -> dict[str, Any]:
    """Migrate from v1 to v2: single system_prompt string becomes a prompt list."""
    legacy_prompt = data.pop("system_prompt", None)
    if "prompts" not in data:
        if isinstance(legacy_prompt, str) and legacy_prompt.strip():
            logger.info("Migrating system_prompt to prompts list")
            data["prompts"] = [{"name": "Default", "body": legacy_prompt}]
    return data


# Migration registry mapping target versions to migration functions
_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    2: _migrate_v1_to_v2,
}


def _migrate_config(data: dict[str, Any]) -> dict[str, Any]:
    """Migrate config data from older versions to current schema.

    Args:
        data: Raw config data loaded from file.

    Returns:
        Migrated config data compatible with current schema.
    """
    version = data.get("config_version", 1)

    for target_version in sorted(_MIGRATIONS.keys()):
        if version < target_version:
            logger.info("Migrating config from version %s to %s", version, target_version)
            data = _MIGRATIONS[target_version](data)
            version = target_version

    data["config_version"] = CONFIG_VERSION
    return data


def _apply_env_overrides(config: ParleyConfig) -> ParleyConfig:
    """Let the environment supply credentials without writing them to disk."""
    api_key = os.environ.get(ENV_API_KEY)
    endpoint_url = os.environ.get(ENV_ENDPOINT_URL)
    updates: dict[str, Any] = {}
    if api_key:
        updates["api_key"] = api_key
    if endpoint_url:
        updates["endpoint_url"] = endpoint_url
    if updates:
        logger.debug("Applying environment overrides: %s", sorted(updates))
        return config.model_copy(update=updates)
    return config


def load_config(config_path: Path | None = None) -> ParleyConfig:
    """Load configuration from file, return defaults if missing/invalid.

    Automatically migrates older config versions while preserving existing values.
    If migration occurs, the updated config is saved back to disk.

    Args:
        config_path: Optional path to config file. Defaults to ~/.parley/config.json.

    Returns:
        ParleyConfig instance with loaded or default values.
    """
    path = config_path or CONFIG_PATH

    if not path.exists():
        logger.debug("Config file not found at %s, using defaults", path)
        return _apply_env_overrides(ParleyConfig())

    try:
        with path.open(encoding="utf-8") as f:
            data: dict[str, Any] = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in config file %s: %s, using defaults", path, e)
        return _apply_env_overrides(ParleyConfig())
    except OSError as e:
        logger.warning("Cannot read config file %s: %s, using defaults", path, e)
        return _apply_env_overrides(ParleyConfig())

    if not isinstance(data, dict):
        logger.warning("Config file %s does not hold an object, using defaults", path)
        return _apply_env_overrides(ParleyConfig())

    original_version = data.get("config_version", 1)
    data = _migrate_config(data)

    try:
        config = ParleyConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Config validation failed: %s, using defaults", e)
        return _apply_env_overrides(ParleyConfig())

    # Persist migrated config so migration doesn't run on every startup
    if original_version < CONFIG_VERSION:
        logger.info("Persisting migrated config (v%s -> v%s)", original_version, CONFIG_VERSION)
        save_config(config, path)

    return _apply_env_overrides(config)


def save_config(config: ParleyConfig, config_path: Path | None = None) -> bool:
    """Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to config file. Defaults to ~/.parley/config.json.

    Returns:
        True if saved successfully, False otherwise.
    """
    path = config_path or CONFIG_PATH

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w", encoding="utf-8") as f:
            json.dump(config.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

        # Owner-only: the file holds the API key
        os.chmod(path, 0o600)

        logger.debug("Configuration saved to %s", path)
        return True

    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        return False


def get_config() -> ParleyConfig:
    """Get singleton configuration instance.

    Uses double-check locking for thread safety.

    Returns:
        Shared ParleyConfig instance.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def set_config(config: ParleyConfig) -> None:
    """Replace the singleton configuration (used by --config on the CLI)."""
    global _config
    with _config_lock:
        _config = config


def reset_config() -> None:
    """Reset singleton configuration for testing."""
    global _config
    with _config_lock:
        _config = None
