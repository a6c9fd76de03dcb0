"""
Agent Core
==========

The control loop that turns one inbound message into one reply.

Agent Loop:
    User Message
         │
         ▼
    Build registry (enabled built-ins + tenant custom tools)
         │
         ▼
    ┌─► AWAITING_MODEL: completion request (tools only if any) ───┐
    │        │                                                    │
    │   Has tool calls?                                      5th visit
    │   Yes          No                                      with tools
    │    │            │                                           │
    │    ▼            ▼                                           ▼
    │  DISPATCHING   DONE: return the text         MAX_ITERATIONS_REACHED:
    │  _TOOLS                                      return a fixed apology
    │    │
    └────┘  validate → notify → invoke → one tool turn per call

Failure Modes:
- Unknown tool, bad URL, missing precondition: a tool result the model
  reads; the loop continues
- Tool timeout or non-2xx: same, plus the failure is logged and counted
- Completion service down or non-OK: the run aborts with
  CompletionServiceError
- Too many iterations: not an error, a fixed user-facing message

Nothing retries. The only retry is the model calling a tool again after
reading its failure, and the iteration ceiling bounds that.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import openai

from botsmith.agent.context import (
    AgentRequest,
    ConversationTurn,
    build_conversation,
    to_openai_messages,
)
from botsmith.agent.tools_executor import ToolExecutor, parse_tool_calls
from botsmith.errors import CompletionServiceError
from botsmith.notify import Notifier, NullNotifier
from botsmith.rag.embeddings import EmbeddingGenerator
from botsmith.storage import CustomToolConfig, Storage
from botsmith.tools import ToolContext, ToolRegistry, ToolSettings
from botsmith.tools.custom import CustomToolExecutor
from botsmith.utils.logger import Logger
from botsmith.utils.tracing import NullTracer, Tracer

logger = Logger("Agent")

MAX_ITERATIONS = 5

MAX_ITERATIONS_MESSAGE = "I tried to help but needed too many steps. Can you rephrase your question?"
EMPTY_RESPONSE_MESSAGE = "I apologize, but I could not generate a response."


class AgentState(str, Enum):
    """Where a run is in the loop."""
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"


@dataclass(frozen=True)
class InvocationConfig:
    """
    Per-run settings, passed in rather than read from the environment.

    Attributes:
        model: Completion model identifier
        enabled_tools: {tool_name: bool} from the tenant's agent settings
        max_iterations: Ceiling on completion calls per run
    """
    model: str = "google/gemini-2.5-flash"
    enabled_tools: dict[str, Any] = field(default_factory=dict)
    max_iterations: int = MAX_ITERATIONS


@dataclass
class AgentResult:
    """
    The outcome of one run.

    Attributes:
        response: Text for the end user
        state: DONE or MAX_ITERATIONS_REACHED
        iterations: Completion calls made
        tools_used: Progress messages of the tools that ran
        usage: Token usage summed over all completion calls
    """
    response: str
    state: AgentState
    iterations: int
    tools_used: list[str] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def max_reached(self) -> bool:
        return self.state == AgentState.MAX_ITERATIONS_REACHED

    def to_dict(self) -> dict:
        """Format as the JSON body returned to the bot."""
        data: dict[str, Any] = {
            "response": self.response,
            "toolsUsed": self.tools_used,
            "iterations": self.iterations,
            "usage": self.usage,
        }
        if self.max_reached:
            data["maxReached"] = True
        return data


def _add_usage(total: dict[str, int], usage: Any) -> None:
    if usage is None:
        return
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = getattr(usage, key, None)
        if isinstance(value, int):
            total[key] = total.get(key, 0) + value


class Agent:
    """
    Answers messages with one tenant's agent settings.

    Each call to `run` owns its conversation and registry; runs share no
    mutable state, so several may proceed concurrently.

    Example:
        agent = Agent(
            completion=AsyncOpenAI(api_key=..., base_url=..., timeout=60, max_retries=0),
            storage=storage,
            http=http,
            config=InvocationConfig(enabled_tools={"search_memory": True}),
            notifier=TelegramNotifier(http, bot_token)
        )

        result = await agent.run(AgentRequest(
            tenant_id="c-42",
            user_message="What did we decide about the meetup?",
            system_prompt="You are the community assistant.",
            chat_id="-100123"
        ))

        print(result.response)
    """

    def __init__(
        self,
        completion: openai.AsyncOpenAI,
        storage: Storage,
        http: httpx.AsyncClient,
        config: InvocationConfig | None = None,
        settings: ToolSettings | None = None,
        embeddings: EmbeddingGenerator | None = None,
        notifier: Notifier | None = None,
        tracer: Tracer | None = None
    ):
        """
        Initialize the agent.

        Args:
            completion: OpenAI-compatible client for chat completions
            storage: Data access for tools and custom tool configs
            http: Shared client for every outbound tool call
            config: Model, enabled built-ins and iteration ceiling
            settings: Built-in tool settings
            embeddings: Embedding service for semantic search
            notifier: Progress messages (no-op by default)
            tracer: Run tracing (no-op by default)
        """
        self.completion = completion
        self.storage = storage
        self.http = http
        self.config = config or InvocationConfig()
        self.settings = settings or ToolSettings()
        self.embeddings = embeddings
        self.notifier = notifier or NullNotifier()
        self.tracer = tracer or NullTracer()

        self.custom_executor = CustomToolExecutor(http, storage)

        logger.info(f"Agent initialized with model: {self.config.model}")

    async def _load_custom_tools(self, tenant_id: str) -> list[CustomToolConfig]:
        """The tenant's custom tools, or none if storage fails."""
        try:
            return await self.storage.list_custom_tools(tenant_id)
        except Exception as e:
            logger.error(f"Failed to load custom tools for {tenant_id}, using built-ins only", e)
            return []

    async def build_registry(self, request: AgentRequest) -> ToolRegistry:
        custom_configs = await self._load_custom_tools(request.tenant_id)
        return ToolRegistry.build(
            enabled_map=self.config.enabled_tools,
            custom_configs=custom_configs,
            executor=self.custom_executor,
        )

    async def _start_trace(self, iteration: int, turns: list[ConversationTurn]) -> str | None:
        try:
            return await self.tracer.start_llm_run(
                f"agent_iteration_{iteration}",
                {"model": self.config.model, "message_count": len(turns)}
            )
        except Exception as e:
            logger.error("Tracing start failed (non-fatal)", e)
            return None

    async def _complete_trace(
        self,
        run_id: str | None,
        outputs: dict[str, Any] | None = None,
        error: str | None = None
    ) -> None:
        try:
            await self.tracer.complete_run(run_id, outputs=outputs, error=error)
        except Exception as e:
            logger.error("Tracing completion failed (non-fatal)", e)

    async def _call_model(
        self,
        turns: list[ConversationTurn],
        registry: ToolRegistry,
        iteration: int
    ) -> tuple[Any, str | None]:
        """
        One AWAITING_MODEL visit.

        Tools (and tool_choice) are sent only when the registry has any.

        Returns:
            (response, trace run id)

        Raises:
            CompletionServiceError: If the completion service fails
        """
        request: dict[str, Any] = {
            "model": self.config.model,
            "messages": to_openai_messages(turns),
        }
        if len(registry) > 0:
            request["tools"] = registry.get_openai_functions()
            request["tool_choice"] = "auto"

        run_id = await self._start_trace(iteration, turns)

        try:
            response = await self.completion.chat.completions.create(**request)
        except openai.APIStatusError as e:
            logger.error(f"Completion service returned {e.status_code}", e)
            await self._complete_trace(run_id, error=str(e))
            raise CompletionServiceError(
                f"Completion service failed: {e.status_code}",
                status_code=e.status_code
            ) from e
        except openai.APIError as e:
            logger.error("Completion service unreachable", e)
            await self._complete_trace(run_id, error=str(e))
            raise CompletionServiceError(f"Completion service failed: {e}") from e

        if not getattr(response, "choices", None):
            await self._complete_trace(run_id, error="empty choices")
            raise CompletionServiceError("Completion service returned no choices")

        message = response.choices[0].message
        await self._complete_trace(run_id, outputs={
            "content": message.content,
            "tool_calls": len(getattr(message, "tool_calls", None) or []),
        })

        return response, run_id

    async def run(self, request: AgentRequest) -> AgentResult:
        """
        Answer one message.

        Args:
            request: The inbound message and its tenant settings

        Returns:
            AgentResult in state DONE or MAX_ITERATIONS_REACHED

        Raises:
            CompletionServiceError: If the completion service fails
        """
        logger.info(
            f"Processing message for tenant {request.tenant_id}: {request.user_message[:50]}...",
            {"has_image": bool(request.image_url), "history": len(request.history)}
        )

        registry = await self.build_registry(request)
        logger.info(f"Available tools: {registry.names()}")

        ctx = ToolContext(
            tenant_id=request.tenant_id,
            storage=self.storage,
            http=self.http,
            settings=self.settings,
            embeddings=self.embeddings,
            user_id=request.user_id,
            platform_user_id=request.platform_user_id,
            image_url=request.image_url,
        )
        executor = ToolExecutor(
            registry,
            ctx,
            notifier=self.notifier,
            tracer=self.tracer,
            chat_id=request.chat_id,
        )

        turns = build_conversation(request)
        tools_used: list[str] = []
        usage: dict[str, int] = {}
        state = AgentState.AWAITING_MODEL

        for iteration in range(1, self.config.max_iterations + 1):
            logger.debug(f"Agent iteration {iteration}", {"state": state.value})

            response, run_id = await self._call_model(turns, registry, iteration)
            _add_usage(usage, getattr(response, "usage", None))

            message = response.choices[0].message
            tool_calls = parse_tool_calls(message)

            if not tool_calls:
                state = AgentState.DONE
                final = message.content or EMPTY_RESPONSE_MESSAGE
                logger.info(
                    "Agent completed",
                    {"iterations": iteration, "tools_used": len(tools_used), "length": len(final)}
                )
                return AgentResult(
                    response=final,
                    state=state,
                    iterations=iteration,
                    tools_used=tools_used,
                    usage=usage,
                )

            state = AgentState.DISPATCHING_TOOLS
            logger.info(f"Model requested {len(tool_calls)} tool(s)")

            turns.append(ConversationTurn(
                role="assistant",
                content=message.content,
                tool_calls=[tc.to_openai_tool_call() for tc in tool_calls],
            ))

            results = await executor.execute_all(tool_calls, parent_run_id=run_id)

            for result in results:
                if result.progress_message:
                    tools_used.append(result.progress_message)
                turns.append(ConversationTurn(
                    role="tool",
                    content=result.to_text(),
                    tool_call_id=result.tool_call_id,
                ))

            state = AgentState.AWAITING_MODEL

        logger.warning("Max iterations reached", {"iterations": self.config.max_iterations})
        return AgentResult(
            response=MAX_ITERATIONS_MESSAGE,
            state=AgentState.MAX_ITERATIONS_REACHED,
            iterations=self.config.max_iterations,
            tools_used=tools_used,
            usage=usage,
        )
