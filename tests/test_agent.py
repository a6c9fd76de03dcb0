"""Tests for the agent control loop."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from botsmith.agent import (
    MAX_ITERATIONS_MESSAGE,
    Agent,
    AgentRequest,
    AgentState,
    ConversationTurn,
    InvocationConfig,
)
from botsmith.errors import CompletionServiceError
from botsmith.storage import CustomToolConfig, InMemoryStorage, KnowledgeEntry

from conftest import completion_client, completion_response, mock_http, no_network, tool_call


def make_agent(
    client: MagicMock,
    storage: InMemoryStorage,
    enabled: dict | None = None,
    handler=no_network,
    **kwargs,
) -> Agent:
    return Agent(
        completion=client,
        storage=storage,
        http=mock_http(handler),
        config=InvocationConfig(model="test-model", enabled_tools=enabled or {}),
        **kwargs,
    )


def request(**kwargs) -> AgentRequest:
    kwargs.setdefault("tenant_id", "community-1")
    kwargs.setdefault("user_message", "hello")
    kwargs.setdefault("system_prompt", "You are helpful.")
    return AgentRequest(**kwargs)


class TestFinalAnswer:
    """Tests for runs that end with plain text."""

    @pytest.mark.asyncio
    async def test_no_tool_calls_single_completion(self, storage: InMemoryStorage) -> None:
        """Test a plain answer ends the run after one call."""
        client = completion_client(completion_response(
            "Hi there!",
            usage={"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13},
        ))
        agent = make_agent(client, storage, {"web_search": True})

        result = await agent.run(request())

        assert result.response == "Hi there!"
        assert result.state == AgentState.DONE
        assert result.iterations == 1
        assert result.usage == {"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13}
        assert client.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_content_gets_fallback(self, storage: InMemoryStorage) -> None:
        """Test a None answer becomes a fixed apology."""
        agent = make_agent(completion_client(completion_response(None, tool_calls=[])), storage)
        result = await agent.run(request())
        assert result.state == AgentState.DONE
        assert result.response.startswith("I apologize")

    @pytest.mark.asyncio
    async def test_tools_omitted_when_registry_empty(self, storage: InMemoryStorage) -> None:
        """Test no tools or tool_choice are sent without tools."""
        client = completion_client(completion_response("ok"))
        await make_agent(client, storage).run(request())

        kwargs = client.chat.completions.create.await_args.kwargs
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs
        assert kwargs["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_tools_sent_when_enabled(self, storage: InMemoryStorage) -> None:
        """Test enabled tools are advertised with tool_choice auto."""
        client = completion_client(completion_response("ok"))
        await make_agent(client, storage, {"search_memory": True}).run(request())

        kwargs = client.chat.completions.create.await_args.kwargs
        assert [t["function"]["name"] for t in kwargs["tools"]] == ["search_memory"]
        assert kwargs["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_initial_messages_with_image(self, storage: InMemoryStorage) -> None:
        """Test system, history and user turns, with structured image content."""
        client = completion_client(completion_response("nice photo"))
        history = [
            ConversationTurn(role="user", content="earlier"),
            ConversationTurn(role="assistant", content="reply"),
        ]

        await make_agent(client, storage).run(request(
            history=history,
            user_message="rate this",
            image_url="https://img.example/1.jpg",
        ))

        messages = client.chat.completions.create.await_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "You are helpful."}
        assert messages[1] == {"role": "user", "content": "earlier"}
        assert messages[2] == {"role": "assistant", "content": "reply"}
        assert messages[3] == {
            "role": "user",
            "content": [
                {"type": "text", "text": "rate this"},
                {"type": "image_url", "image_url": {"url": "https://img.example/1.jpg"}},
            ],
        }


class TestToolLoop:
    """Tests for runs that call tools."""

    @pytest.mark.asyncio
    async def test_tool_result_fed_back(self, storage: InMemoryStorage) -> None:
        """Test a tool call is executed and its result sent on the next call."""
        storage.knowledge.append(KnowledgeEntry(tenant_id="community-1", content="Meetup Friday"))
        client = completion_client(
            completion_response(tool_calls=[tool_call("call-1", "search_memory")]),
            completion_response("The meetup is on Friday."),
        )
        notifier = MagicMock()
        notifier.send = AsyncMock()
        agent = make_agent(client, storage, {"search_memory": True}, notifier=notifier)

        result = await agent.run(request(chat_id="chat-1"))

        assert result.response == "The meetup is on Friday."
        assert result.iterations == 2
        assert result.tools_used == ["🧠 Let me check what I remember..."]
        notifier.send.assert_awaited_once_with("chat-1", "🧠 Let me check what I remember...")

        messages = client.chat.completions.create.await_args_list[1].kwargs["messages"]
        assert messages[-2]["role"] == "assistant"
        assert messages[-2]["tool_calls"][0]["id"] == "call-1"
        assert messages[-1]["role"] == "tool"
        assert messages[-1]["tool_call_id"] == "call-1"
        assert "Meetup Friday" in messages[-1]["content"]

    @pytest.mark.asyncio
    async def test_forged_tool_call_not_executed(self, storage: InMemoryStorage) -> None:
        """Test a call for a disabled tool is refused and the loop continues."""
        storage.insert_knowledge = AsyncMock()
        client = completion_client(
            completion_response(tool_calls=[tool_call("c1", "save_memory", {"content": "x"})]),
            completion_response("Sorry, I can't save that."),
        )
        agent = make_agent(client, storage, {"search_memory": True})

        result = await agent.run(request())

        assert result.state == AgentState.DONE
        storage.insert_knowledge.assert_not_awaited()
        tool_message = client.chat.completions.create.await_args_list[1].kwargs["messages"][-1]
        assert tool_message["content"] == (
            "Error: Tool save_memory is not available. Available tools: search_memory"
        )
        assert result.tools_used == []

    @pytest.mark.asyncio
    async def test_non_finite_argument_still_answered(self, storage: InMemoryStorage) -> None:
        """Test an Infinity argument gets a tool turn and the run finishes."""
        client = completion_client(
            completion_response(tool_calls=[
                tool_call("c1", "search_chat_history", '{"days_back": Infinity}'),
            ]),
            completion_response("Nothing new this week."),
        )
        agent = make_agent(client, storage, {"search_chat_history": True})

        result = await agent.run(request())

        assert result.state == AgentState.DONE
        assert result.response == "Nothing new this week."
        tool_message = client.chat.completions.create.await_args_list[1].kwargs["messages"][-1]
        assert tool_message["tool_call_id"] == "c1"
        assert tool_message["content"] == "No messages found in the last 7 days."

    @pytest.mark.asyncio
    async def test_max_iterations(self, storage: InMemoryStorage) -> None:
        """Test a model that always calls tools stops at exactly five calls."""
        responses = [
            completion_response(tool_calls=[tool_call(f"c{i}", "search_memory")])
            for i in range(10)
        ]
        client = completion_client(*responses)
        agent = make_agent(client, storage, {"search_memory": True})

        result = await agent.run(request())

        assert result.state == AgentState.MAX_ITERATIONS_REACHED
        assert result.response == MAX_ITERATIONS_MESSAGE
        assert result.iterations == 5
        assert result.to_dict()["maxReached"] is True
        assert client.chat.completions.create.await_count == 5

    @pytest.mark.asyncio
    async def test_custom_tool_dispatched(
        self, storage: InMemoryStorage, custom_config: CustomToolConfig
    ) -> None:
        """Test a tenant custom tool is advertised and called over HTTP."""
        storage.custom_tools.append(custom_config)
        client = completion_client(
            completion_response(tool_calls=[tool_call("c1", "weather_lookup", {"city": "Oslo"})]),
            completion_response("It is cold in Oslo."),
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"temp": -3})

        agent = make_agent(client, storage, handler=handler)
        result = await agent.run(request())

        first = client.chat.completions.create.await_args_list[0].kwargs
        assert [t["function"]["name"] for t in first["tools"]] == ["weather_lookup"]
        assert result.response == "It is cold in Oslo."
        assert result.tools_used == ["🔧 Using Weather Lookup..."]
        assert len(storage.tool_logs) == 1

    @pytest.mark.asyncio
    async def test_custom_tool_load_failure_uses_builtins(self, storage: InMemoryStorage) -> None:
        """Test a storage failure while loading custom tools is not fatal."""
        storage.list_custom_tools = AsyncMock(side_effect=RuntimeError("db down"))
        client = completion_client(completion_response("ok"))

        result = await make_agent(client, storage, {"web_search": True}).run(request())

        assert result.state == AgentState.DONE
        kwargs = client.chat.completions.create.await_args.kwargs
        assert [t["function"]["name"] for t in kwargs["tools"]] == ["web_search"]


class TestFailures:
    """Tests for completion service failures and tracing."""

    @pytest.mark.asyncio
    async def test_status_error_aborts(self, storage: InMemoryStorage) -> None:
        """Test a non-OK completion response raises CompletionServiceError."""
        error = openai.APIStatusError(
            "bad gateway",
            response=httpx.Response(502, request=httpx.Request("POST", "https://llm.example")),
            body=None,
        )
        client = completion_client(error)

        with pytest.raises(CompletionServiceError) as exc_info:
            await make_agent(client, storage).run(request())

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_connection_error_aborts(self, storage: InMemoryStorage) -> None:
        """Test an unreachable completion service raises CompletionServiceError."""
        error = openai.APIConnectionError(request=httpx.Request("POST", "https://llm.example"))
        client = completion_client(error)

        with pytest.raises(CompletionServiceError):
            await make_agent(client, storage).run(request())

    @pytest.mark.asyncio
    async def test_tracing_failures_swallowed(self, storage: InMemoryStorage) -> None:
        """Test a broken tracer never changes the outcome."""
        tracer = MagicMock()
        tracer.start_llm_run = AsyncMock(side_effect=RuntimeError("trace down"))
        tracer.complete_run = AsyncMock(side_effect=RuntimeError("trace down"))
        tracer.track_tool_call = AsyncMock(side_effect=RuntimeError("trace down"))
        client = completion_client(
            completion_response(tool_calls=[tool_call("c1", "search_memory")]),
            completion_response("done"),
        )

        result = await make_agent(client, storage, {"search_memory": True}, tracer=tracer).run(request())

        assert result.response == "done"
        assert tracer.start_llm_run.await_count == 2

    @pytest.mark.asyncio
    async def test_each_completion_traced(self, storage: InMemoryStorage) -> None:
        """Test every completion call starts and completes a trace run."""
        tracer = MagicMock()
        tracer.start_llm_run = AsyncMock(side_effect=["run-1", "run-2"])
        tracer.complete_run = AsyncMock()
        tracer.track_tool_call = AsyncMock()
        client = completion_client(
            completion_response(tool_calls=[tool_call("c1", "search_memory")]),
            completion_response("done"),
        )

        await make_agent(client, storage, {"search_memory": True}, tracer=tracer).run(request())

        assert [c.args[0] for c in tracer.complete_run.await_args_list] == ["run-1", "run-2"]
        assert tracer.track_tool_call.await_args.args[3] == "run-1"


class TestAgentRequest:
    """Tests for AgentRequest.from_payload."""

    def test_dashboard_payload(self) -> None:
        """Test the camelCase webhook body is parsed."""
        req = AgentRequest.from_payload({
            "communityId": "c-42",
            "userMessage": "hi",
            "systemPrompt": "Be nice",
            "conversationHistory": [{"role": "user", "content": "pic", "imageUrl": "https://i"}],
            "telegramChatId": -100123,
            "imageUrl": None,
        })

        assert req.tenant_id == "c-42"
        assert req.chat_id == "-100123"
        assert req.history[0].image_url == "https://i"
        assert req.image_url is None

    def test_missing_tenant(self) -> None:
        """Test a payload without a community is rejected."""
        with pytest.raises(ValueError):
            AgentRequest.from_payload({"userMessage": "hi"})
