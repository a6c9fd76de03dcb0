"""Tests for logging, configuration and tracing utilities."""

from __future__ import annotations

import json

import httpx
import pytest

from botsmith.errors import ConfigError
from botsmith.utils.config import load_config, reset_config
from botsmith.utils.logger import REDACTED, Logger, LogLevel, redact
from botsmith.utils.tracing import LangSmithTracer

from conftest import mock_http


class TestLogger:
    """Tests for the context logger."""

    def test_redact_nested_secrets(self) -> None:
        """Test secret-looking keys are masked at any depth."""
        data = {"auth_value": "s1", "nested": [{"Authorization": "Bearer x", "city": "Oslo"}]}
        assert redact(data) == {
            "auth_value": REDACTED,
            "nested": [{"Authorization": REDACTED, "city": "Oslo"}],
        }

    def test_structured_data_redacted_in_output(self, capsys: pytest.CaptureFixture) -> None:
        """Test printed data never contains the secret."""
        logger = Logger("Test")
        logger.set_level(LogLevel.DEBUG)

        logger.info("Calling endpoint", {"api_key": "sk-secret", "method": "POST"})

        out = capsys.readouterr().out
        assert "[Test]" in out
        assert "sk-secret" not in out
        assert "POST" in out

    def test_level_filter(self, capsys: pytest.CaptureFixture) -> None:
        """Test messages below the level are dropped."""
        logger = Logger("Test")
        logger.set_level(LogLevel.WARNING)

        logger.info("quiet")
        logger.error("loud", ValueError("bad"))

        captured = capsys.readouterr()
        assert "quiet" not in captured.out
        assert "ValueError" in captured.err

    def test_child_context(self) -> None:
        """Test child loggers nest their context."""
        assert Logger("Agent").child("Dispatch").context == "Agent:Dispatch"


class TestConfig:
    """Tests for environment configuration."""

    def test_missing_completion_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the completion key is required."""
        monkeypatch.setattr("botsmith.utils.config.load_dotenv", lambda: None)
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        reset_config()

        with pytest.raises(ConfigError):
            load_config()

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test defaults and numeric parsing."""
        monkeypatch.setattr("botsmith.utils.config.load_dotenv", lambda: None)
        monkeypatch.setenv("LLM_API_KEY", "k")
        monkeypatch.delenv("LLM_MODEL", raising=False)
        monkeypatch.setenv("HTTP_TIMEOUT_SECONDS", "not-a-number")

        config = load_config()

        assert config.completion.model == "google/gemini-2.5-flash"
        assert config.tools.http_timeout_seconds == 15.0


class TestLangSmithTracer:
    """Tests for LangSmithTracer."""

    @pytest.mark.asyncio
    async def test_start_and_complete(self) -> None:
        """Test an llm run is posted then patched."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        tracer = LangSmithTracer(mock_http(handler), api_key="ls-key", project="p")
        run_id = await tracer.start_llm_run("agent_iteration_1", {"message_count": 2})
        await tracer.complete_run(run_id, outputs={"content": "hi"})

        assert run_id
        created = json.loads(seen[0].content)
        assert created["run_type"] == "llm"
        assert created["project_name"] == "p"
        assert seen[1].method == "PATCH"
        assert seen[1].url.path == f"/runs/{run_id}"

    @pytest.mark.asyncio
    async def test_failures_return_none(self) -> None:
        """Test a rejected run gives no id and no exception."""
        tracer = LangSmithTracer(mock_http(lambda r: httpx.Response(401)), api_key="bad")

        assert await tracer.start_llm_run("x", {}) is None
        await tracer.complete_run(None)
