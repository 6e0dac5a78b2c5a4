"""Tests for trace context propagation, log formatters and runtime configuration."""

import asyncio
import json
import logging

import pytest

from turnflow.config import DEFAULT_MAX_FLOW_STEPS, RuntimeConfig, get_storage_path
from turnflow.observability import (
    clear_trace_context,
    get_trace_context,
    set_trace_context,
    trace_scope,
)
from turnflow.observability.logging import HumanReadableFormatter, StructuredFormatter


@pytest.fixture(autouse=True)
def _reset_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("turnflow.test", logging.WARNING, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges(self):
        set_trace_context(session_id="s1")
        set_trace_context(flow_id="f1")
        assert get_trace_context() == {"session_id": "s1", "flow_id": "f1"}

    def test_get_returns_copy(self):
        set_trace_context(session_id="s1")
        get_trace_context()["session_id"] = "changed"
        assert get_trace_context()["session_id"] == "s1"

    @pytest.mark.asyncio
    async def test_tasks_do_not_leak_context(self):
        async def worker(turn_id):
            set_trace_context(turn_id=turn_id)
            await asyncio.sleep(0)
            return get_trace_context()["turn_id"]

        results = await asyncio.gather(worker("a"), worker("b"))

        assert results == ["a", "b"]
        assert get_trace_context() == {}

    def test_scope_restores_previous_context(self):
        set_trace_context(session_id="s1")
        with trace_scope(turn_id="t1"):
            assert get_trace_context() == {"session_id": "s1", "turn_id": "t1"}
        assert get_trace_context() == {"session_id": "s1"}

    def test_scope_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with trace_scope(flow_id="f1"):
                raise RuntimeError("boom")
        assert get_trace_context() == {}


class TestFormatters:
    def test_structured_includes_context_and_extras(self):
        set_trace_context(session_id="session-123", flow_id="flow-9")
        record = make_record("\033[31mfallback\033[0m", event="detail_fallback", node_id="if-1")

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "fallback"
        assert entry["level"] == "warning"
        assert entry["session_id"] == "session-123"
        assert entry["event"] == "detail_fallback"
        assert entry["node_id"] == "if-1"

    def test_human_readable_prefix(self):
        set_trace_context(session_id="session-abcdefgh", turn_id="turn-12345678")
        output = HumanReadableFormatter().format(make_record("hello", event="x"))

        assert "session:abcdefgh" in output
        assert "turn:12345678" in output
        assert output.endswith("hello [x]")


class TestConfig:
    def test_defaults_without_config_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TURNFLOW_HOME", str(tmp_path))
        config = RuntimeConfig()

        assert config.storage_path == tmp_path / "data"
        assert config.log_level == "INFO"
        assert config.max_flow_steps == DEFAULT_MAX_FLOW_STEPS

    def test_reads_configuration_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TURNFLOW_HOME", str(tmp_path))
        (tmp_path / "configuration.json").write_text(
            json.dumps(
                {
                    "storage": {"path": str(tmp_path / "elsewhere")},
                    "logging": {"level": "DEBUG", "format": "json"},
                    "flow": {"max_steps": 25},
                }
            )
        )
        config = RuntimeConfig()

        assert get_storage_path() == tmp_path / "elsewhere"
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.max_flow_steps == 25

    def test_invalid_configuration_file_is_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TURNFLOW_HOME", str(tmp_path))
        (tmp_path / "configuration.json").write_text("{broken")
        assert RuntimeConfig().log_level == "INFO"
