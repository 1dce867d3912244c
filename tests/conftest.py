"""Pytest configuration for Parley tests.

Isolates every test from the user's config file and environment and provides
the shared fixtures. Test doubles live in tests/helpers.py.
"""

from __future__ import annotations

import pytest

from parley.ai_log import AiLog, reset_ai_log
from parley.config import ParleyConfig, RetryConfig, reset_config
from parley.prompts import PromptDefinition
from tests.helpers import ManualScheduler


@pytest.fixture(autouse=True)
def isolate_environment(tmp_path, monkeypatch):
    """Keep tests away from ~/.parley and PARLEY_* variables."""
    monkeypatch.setattr("parley.config.CONFIG_PATH", tmp_path / "parley" / "config.json")
    monkeypatch.delenv("PARLEY_API_KEY", raising=False)
    monkeypatch.delenv("PARLEY_ENDPOINT_URL", raising=False)
    reset_config()
    reset_ai_log()
    yield
    reset_config()
    reset_ai_log()


@pytest.fixture
def config() -> ParleyConfig:
    """Configured endpoint, one default prompt, no retry delay."""
    return ParleyConfig(
        endpoint_url="https://llm.example.test/v1/chat/completions",
        api_key="sk-test-1234567890",
        model="test-model",
        prompts=[PromptDefinition(name="Default", body="Reply with JSON options.")],
        retry=RetryConfig(max_attempts=5, delay_ms=0),
    )


@pytest.fixture
def scheduler():
    manual = ManualScheduler()
    yield manual
    manual.close()


@pytest.fixture
def ai_log() -> AiLog:
    return AiLog(max_entries=50)
