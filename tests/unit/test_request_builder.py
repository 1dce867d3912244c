"""Unit tests for request construction."""

from datetime import UTC, datetime

import pytest

from contracts.conversation import ContextMessage
from parley.config import ParleyConfig
from parley.errors import ConfigurationError, ErrorCode, FailureKind
from parley.request_builder import (
    CURRENT_MESSAGE_MARKER,
    RequestPayload,
    build_headers,
    build_payload,
    build_request_log,
    format_time_label,
    mask_api_key,
    valid_max_tokens,
    valid_temperature,
)

# 2024-06-10 09:05:03 UTC
TS = int(datetime(2024, 6, 10, 9, 5, 3, tzinfo=UTC).timestamp() * 1000)


class TestRanges:
    """Tests for optional sampling parameters."""

    @pytest.mark.parametrize("value", [0.1, 1.0, 2.0])
    def test_valid_temperature(self, value):
        assert valid_temperature(value) == value

    @pytest.mark.parametrize("value", [None, 0, 0.0, -1.0, 2.01, 5])
    def test_invalid_temperature_omitted(self, value):
        assert valid_temperature(value) is None

    @pytest.mark.parametrize("value", [1, 300, 4096])
    def test_valid_max_tokens(self, value):
        assert valid_max_tokens(value) == value

    @pytest.mark.parametrize("value", [None, 0, -5, 4097])
    def test_invalid_max_tokens_omitted(self, value):
        assert valid_max_tokens(value) is None


class TestRequestPayload:
    """Tests for message rendering."""

    def test_time_label(self):
        assert format_time_label(TS, UTC) == "09:05:03"

    def test_context_roles_and_format(self):
        payload = RequestPayload(
            model="m",
            system_prompt="Be helpful.",
            current_message="See you?",
            context_messages=(
                ContextMessage("Alice", "Dinner at 8?", is_self=False, timestamp=TS),
                ContextMessage("Me", "Maybe!", is_self=True, timestamp=TS),
            ),
        )
        messages = payload.to_messages(UTC)
        assert messages[0] == {"role": "system", "content": "Be helpful."}
        assert messages[1] == {"role": "user", "content": "Alice [09:05:03]: Dinner at 8?"}
        assert messages[2] == {"role": "assistant", "content": "Me [09:05:03]: Maybe!"}
        assert messages[3]["role"] == "user"

    def test_current_message_with_sender_and_time(self):
        payload = RequestPayload(
            model="m",
            system_prompt="s",
            current_message="On my way",
            current_sender="Bob",
            current_timestamp=TS,
        )
        assert payload.format_current_message(UTC) == (
            f"{CURRENT_MESSAGE_MARKER} Bob [09:05:03]: On my way"
        )

    @pytest.mark.parametrize(("sender", "timestamp"), [("", TS), ("Bob", 0), ("", 0)])
    def test_current_message_without_sender_or_time(self, sender, timestamp):
        payload = RequestPayload(
            model="m",
            system_prompt="s",
            current_message="On my way",
            current_sender=sender,
            current_timestamp=timestamp,
        )
        assert payload.format_current_message() == f"{CURRENT_MESSAGE_MARKER} On my way"

    def test_time_label_out_of_range(self):
        assert format_time_label(10**18, UTC) is None

    def test_out_of_range_timestamps_drop_the_time_label(self):
        """Unrepresentable timestamps render without a label instead of raising."""
        payload = RequestPayload(
            model="m",
            system_prompt="s",
            current_message="On my way",
            current_sender="Bob",
            current_timestamp=10**18,
            context_messages=(ContextMessage("Alice", "Where are you?", timestamp=10**18),),
        )
        messages = payload.to_messages(UTC)
        assert messages[1]["content"] == "Alice: Where are you?"
        assert messages[2]["content"] == f"{CURRENT_MESSAGE_MARKER} On my way"

    def test_request_body_omits_missing_parameters(self):
        payload = RequestPayload(model="m", system_prompt="s", current_message="hi")
        body = payload.to_request_body()
        assert set(body) == {"model", "messages"}
        assert len(body["messages"]) == 2

    def test_request_body_includes_parameters(self):
        payload = RequestPayload(
            model="m", system_prompt="s", current_message="hi", temperature=0.7, max_tokens=200
        )
        body = payload.to_request_body()
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 200
        assert list(body) == ["model", "temperature", "max_tokens", "messages"]

    def test_payload_is_immutable(self):
        payload = RequestPayload(model="m", system_prompt="s", current_message="hi")
        with pytest.raises(AttributeError):
            payload.model = "other"  # type: ignore[misc]


class TestBuildPayload:
    """Tests for building payloads from configuration."""

    def test_builds_from_config(self, config):
        context = [ContextMessage("Alice", "hey", timestamp=TS)]
        payload = build_payload(
            config, "prompt", "hello", current_sender="Alice", current_timestamp=TS,
            context_messages=context,
        )
        assert payload.model == "test-model"
        assert payload.temperature == config.temperature
        assert payload.max_tokens == config.max_tokens
        assert payload.context_messages == tuple(context)

    def test_out_of_range_parameters_omitted(self, config):
        config = config.model_copy(update={"temperature": 3.5, "max_tokens": 10000})
        payload = build_payload(config, "prompt", "hello")
        assert payload.temperature is None
        assert payload.max_tokens is None

    @pytest.mark.parametrize(
        ("update", "key"),
        [({"endpoint_url": ""}, "endpoint_url"), ({"api_key": "   "}, "api_key")],
    )
    def test_missing_endpoint_or_key(self, config, update, key):
        with pytest.raises(ConfigurationError) as exc_info:
            build_payload(config.model_copy(update=update), "prompt", "hello")
        error = exc_info.value
        assert error.code is ErrorCode.CFG_MISSING
        assert error.kind is FailureKind.CONFIG
        assert error.details["config_key"] == key
        assert not error.retryable

    def test_default_config_is_not_configured(self):
        with pytest.raises(ConfigurationError):
            build_payload(ParleyConfig(), "prompt", "hello")


class TestHeadersAndLogging:
    """Tests for headers, key masking and verbose request logs."""

    def test_headers(self):
        assert build_headers("sk-abc") == {
            "Authorization": "Bearer sk-abc",
            "Content-Type": "application/json",
        }

    @pytest.mark.parametrize(
        ("key", "masked"),
        [(None, "****"), ("", "****"), ("short", "****"), ("12345678", "****"),
         ("sk-test-1234567890", "sk-t****7890")],
    )
    def test_mask_api_key(self, key, masked):
        assert mask_api_key(key) == masked

    def test_request_log_masks_key(self):
        log = build_request_log(
            "openai", "m", "https://x.test", "sk-test-1234567890", {"model": "m", "note": "ü"}
        )
        assert "sk-test-1234567890" not in log
        assert "Authorization: Bearer sk-t****7890" in log
        assert '"note": "ü"' in log
        assert log.startswith("Provider: openai\nModel: m\nURL: https://x.test")
