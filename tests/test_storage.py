"""Tests for the storage backends."""

from __future__ import annotations

import json
from datetime import timedelta

import httpx
import pytest

from botsmith.storage import (
    ChatMessage,
    CustomToolConfig,
    ExecutionLogEntry,
    InMemoryStorage,
    MemberProfile,
    RestStorage,
    StorageError,
    utcnow,
)

from conftest import mock_http


def rest_storage(handler) -> RestStorage:
    return RestStorage(mock_http(handler), "https://db.example/", "service-key")


class TestInMemoryStorage:
    """Tests for InMemoryStorage."""

    @pytest.mark.asyncio
    async def test_custom_tools_scoped_and_copied(self, custom_config: CustomToolConfig) -> None:
        """Test listing returns copies of the tenant's tools only."""
        storage = InMemoryStorage()
        storage.custom_tools.append(custom_config)

        tools = await storage.list_custom_tools("community-1")
        tools[0].error_count = 99

        assert await storage.list_custom_tools("other") == []
        assert storage.custom_tools[0].error_count == 0

    @pytest.mark.asyncio
    async def test_update_custom_tool(self, custom_config: CustomToolConfig) -> None:
        """Test field updates by id."""
        storage = InMemoryStorage()
        storage.custom_tools.append(custom_config)

        await storage.update_custom_tool("tool-1", {"error_count": 2, "last_error": "x"})

        assert storage.custom_tools[0].error_count == 2
        assert storage.custom_tools[0].last_error == "x"

    @pytest.mark.asyncio
    async def test_messages_window(self) -> None:
        """Test messages are filtered by time and newest first."""
        storage = InMemoryStorage()
        now = utcnow()
        storage.messages.extend([
            ChatMessage("c", "older", now - timedelta(hours=5)),
            ChatMessage("c", "newer", now - timedelta(hours=1)),
            ChatMessage("c", "ancient", now - timedelta(days=10)),
        ])

        messages = await storage.list_messages("c", now - timedelta(days=1), 30)

        assert [m.content for m in messages] == ["newer", "older"]

    @pytest.mark.asyncio
    async def test_profile_search_stays_in_tenant(self) -> None:
        """Test similarity search never returns another tenant's members."""
        storage = InMemoryStorage()
        storage.members["c-1"] = [MemberProfile("u1", name="Ana", embedding=[0.0, 1.0])]
        storage.members["c-2"] = [MemberProfile("u2", name="Secret Person", embedding=[1.0, 0.0])]

        matches = await storage.search_profiles("c-1", [1.0, 0.0], 0.0, 10)

        assert [m.profile.name for m in matches] == ["Ana"]


class TestRestStorage:
    """Tests for RestStorage against a mocked PostgREST."""

    @pytest.mark.asyncio
    async def test_list_custom_tools(self) -> None:
        """Test rows are fetched by community and parsed."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{
                "id": "t1",
                "community_id": "c-1",
                "name": "crm_lookup",
                "display_name": "CRM Lookup",
                "endpoint_url": "https://crm.example",
                "http_method": "get",
                "auth_type": "bearer",
                "auth_value": "secret",
                "parameters": {"email": {"type": "string", "required": True}},
                "timeout_seconds": 20,
                "is_enabled": True,
                "last_test_at": "2026-01-01T00:00:00Z",
            }])

        tools = await rest_storage(handler).list_custom_tools("c-1")

        request = seen[0]
        assert request.url.path == "/rest/v1/custom_tools"
        assert request.url.params["community_id"] == "eq.c-1"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Authorization"] == "Bearer service-key"

        tool = tools[0]
        assert tool.tenant_id == "c-1"
        assert tool.http_method == "GET"
        assert tool.timeout_seconds == 20
        assert tool.last_test_at.year == 2026

    @pytest.mark.asyncio
    async def test_insert_tool_log(self) -> None:
        """Test log entries are posted as rows."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        entry = ExecutionLogEntry(
            tool_id="t1",
            tenant_id="c-1",
            input={"a": 1},
            execution_time_ms=12,
            executed_at=utcnow(),
            error_message="boom",
        )
        await rest_storage(handler).insert_tool_log(entry)

        body = json.loads(seen[0].content)
        assert seen[0].method == "POST"
        assert body["tool_id"] == "t1"
        assert body["community_id"] == "c-1"
        assert body["input_data"] == {"a": 1}
        assert body["error_message"] == "boom"
        assert seen[0].headers["Prefer"] == "return=minimal"

    @pytest.mark.asyncio
    async def test_update_serializes_datetimes(self) -> None:
        """Test datetime fields are sent as ISO strings."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        now = utcnow()
        await rest_storage(handler).update_custom_tool("t1", {"last_test_at": now, "error_count": 0})

        assert seen[0].method == "PATCH"
        assert seen[0].url.params["id"] == "eq.t1"
        assert json.loads(seen[0].content) == {"last_test_at": now.isoformat(), "error_count": 0}

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        """Test PostgREST errors raise StorageError."""
        storage = rest_storage(lambda request: httpx.Response(500, text="oops"))

        with pytest.raises(StorageError):
            await storage.list_knowledge("c-1", 200)


    @pytest.mark.asyncio
    async def test_semantic_search_scoped_to_community(self) -> None:
        """Test RPC matches outside the community's members are dropped."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/community_members"):
                return httpx.Response(200, json=[{"user_id": "u1"}, {"user_id": "u3"}])
            return httpx.Response(200, json=[
                {"user_id": "u2", "name": "Outsider", "similarity": 0.95},
                {"user_id": "u1", "name": "Ana", "similarity": 0.82},
            ])

        matches = await rest_storage(handler).search_profiles("c-1", [0.1, 0.2], 0.7, 10)

        assert seen[0].url.params["community_id"] == "eq.c-1"
        assert seen[1].url.path == "/rest/v1/rpc/semantic_search_users"
        assert json.loads(seen[1].content) == {
            "query_embedding": [0.1, 0.2],
            "match_threshold": 0.7,
            "match_count": 50,
        }
        assert [m.profile.name for m in matches] == ["Ana"]
        assert matches[0].similarity == pytest.approx(0.82)

    @pytest.mark.asyncio
    async def test_semantic_search_without_members(self) -> None:
        """Test a community with no members never calls the RPC."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        assert await rest_storage(handler).search_profiles("c-1", [0.1], 0.7, 10) == []
        assert len(seen) == 1
