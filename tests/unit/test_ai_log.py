"""Unit tests for the in-memory AI request log."""

from parley.ai_log import AiLog, get_ai_log, reset_ai_log
from parley.config import LoggingConfig, ParleyConfig, set_config


class TestAiLog:
    """Tests for recording and rendering entries."""

    def test_record_success(self):
        log = AiLog()
        log.record_success("openai", "m", "Are you free tonight?", 3)

        entry = log.entries()[0]
        assert entry.level == "success"
        assert entry.url == ""
        assert entry.message == "Generated 3 options for: Are you free tonight?"

    def test_long_preview_is_truncated(self):
        log = AiLog()
        log.record_success("openai", "m", "x" * 80, 3)
        assert log.entries()[0].message.endswith("x" * 50 + "...")

    def test_record_error_and_render(self):
        log = AiLog()
        log.record_error("openai", "m", "https://x.test", "HTTP 500: boom")

        rendered = log.render()
        assert "ERROR openai / m @ https://x.test" in rendered
        assert rendered.endswith("\nHTTP 500: boom")

    def test_oldest_entries_dropped(self):
        log = AiLog(max_entries=2)
        for i in range(3):
            log.record_error("p", "m", "", f"error {i}")
        assert len(log) == 2
        assert [e.message for e in log.entries()] == ["error 1", "error 2"]
        assert log.max_entries == 2

    def test_clear(self):
        log = AiLog()
        log.record_error("p", "m", "", "e")
        log.clear()
        assert len(log) == 0
        assert log.render() == ""

    def test_to_dict(self):
        log = AiLog()
        log.record_error("p", "m", "u", "e")
        data = log.entries()[0].to_dict()
        assert set(data) == {"timestamp", "level", "provider", "model", "url", "message"}
        assert isinstance(data["timestamp"], str)


class TestSingleton:
    """Tests for the process-wide log."""

    def test_sized_from_config(self):
        set_config(ParleyConfig(logging=LoggingConfig(ai_log_max_entries=25)))
        reset_ai_log()
        assert get_ai_log().max_entries == 25

    def test_cached_until_reset(self):
        log = get_ai_log()
        assert get_ai_log() is log
        reset_ai_log()
        assert get_ai_log() is not log
