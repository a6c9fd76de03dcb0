"""Shared fixtures for the agent and tool tests."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from botsmith.storage import CustomToolConfig, InMemoryStorage
from botsmith.tools import ToolContext, ToolSettings


def tool_call(call_id: str, name: str, arguments: Any = None) -> SimpleNamespace:
    """A tool call as found on a completion message."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments or {})
    return SimpleNamespace(
        id=call_id,
        type="function",
        function=SimpleNamespace(name=name, arguments=raw),
    )


def completion_response(
    content: str | None = None,
    tool_calls: list[SimpleNamespace] | None = None,
    usage: dict[str, int] | None = None,
) -> SimpleNamespace:
    """A chat completion response shaped like the OpenAI client's."""
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(**usage) if usage else None,
    )


def completion_client(*responses: Any) -> MagicMock:
    """A completion client whose create() returns the responses in order."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=list(responses))
    return client


def mock_http(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
    """An httpx client whose requests all go to handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected request: {request.method} {request.url}")


@pytest.fixture
def storage() -> InMemoryStorage:
    """Empty in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def settings() -> ToolSettings:
    """Tool settings without any external keys."""
    return ToolSettings(http_timeout_seconds=2.0)


@pytest.fixture
def make_ctx(storage: InMemoryStorage, settings: ToolSettings) -> Callable[..., ToolContext]:
    """Factory for a tool context over the storage fixture."""

    def _make(handler: Callable[[httpx.Request], Any] = no_network, **kwargs: Any) -> ToolContext:
        kwargs.setdefault("settings", settings)
        return ToolContext(
            tenant_id="community-1",
            storage=storage,
            http=mock_http(handler),
            **kwargs,
        )

    return _make


@pytest.fixture
def custom_config() -> CustomToolConfig:
    """A POST custom tool with a request template."""
    return CustomToolConfig(
        id="tool-1",
        tenant_id="community-1",
        name="weather_lookup",
        display_name="Weather Lookup",
        description="Get the weather for a city",
        endpoint_url="https://api.example.com/weather",
        http_method="POST",
        auth_type="none",
        parameters={
            "city": {"type": "string", "description": "City name", "required": True},
            "units": {"type": "string", "description": "metric or imperial"},
        },
        request_template={"q": "{{city}}", "units": "{{units}}"},
        timeout_seconds=5,
    )
