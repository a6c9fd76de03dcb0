"""
Tool Executor
=============

Handles the tool calls the model requests in one iteration.

The executor:
1. Parses tool calls from the completion response
2. Checks each requested name against the run's registry
3. Sends a progress notification to the chat
4. Invokes the tool, turning any exception into an error result
5. Returns exactly one result per requested call, in request order

Validation:
    The model only sees the registry's tools, but nothing stops it from
    naming another one. A call for a name outside the registry is never
    executed; it gets an error result listing the available tools, and
    the remaining calls still run.

Ordering:
    Calls run one after another. A later call may depend on an earlier
    one's side effect (save_memory then search_memory), and progress
    messages must reach the chat in order.
"""

import json
from dataclasses import dataclass
from typing import Any

from botsmith.notify import Notifier, NullNotifier
from botsmith.tools import ToolContext, ToolRegistry, ToolResult
from botsmith.utils.logger import Logger
from botsmith.utils.tracing import NullTracer, Tracer

logger = Logger("Agent").child("Dispatch")


@dataclass
class ToolCall:
    """
    A parsed tool call from the model.

    Attributes:
        id: The tool call ID (for matching results)
        name: The tool name
        arguments: Parsed arguments dict
        raw_arguments: The JSON string as the model sent it
    """
    id: str
    name: str
    arguments: dict[str, Any]
    raw_arguments: str = "{}"

    def to_openai_tool_call(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }


@dataclass
class ToolCallResult:
    """
    Result of handling one tool call.

    Attributes:
        tool_call_id: The original tool call ID
        name: The tool name
        result: The tool result
        executed: False when the call was refused
        progress_message: The notification shown for this call
    """
    tool_call_id: str
    name: str
    result: ToolResult
    executed: bool = True
    progress_message: str | None = None

    def to_text(self) -> str:
        return self.result.to_message()


def parse_tool_calls(message: Any) -> list[ToolCall]:
    """
    Parse tool calls from a completion message.

    Tolerates `tool_calls` being absent, None or empty. Arguments that are
    not a JSON object parse to {}.

    Args:
        message: `response.choices[0].message`

    Returns:
        List of parsed ToolCall objects
    """
    raw_calls = getattr(message, "tool_calls", None) or []
    tool_calls = []

    for tc in raw_calls:
        raw_arguments = tc.function.arguments or "{}"
        try:
            arguments = json.loads(raw_arguments)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse tool arguments: {e}")
            arguments = {}

        if not isinstance(arguments, dict):
            arguments = {}

        tool_calls.append(ToolCall(
            id=tc.id,
            name=tc.function.name,
            arguments=arguments,
            raw_arguments=raw_arguments,
        ))

    logger.debug(f"Parsed {len(tool_calls)} tool calls")
    return tool_calls


class ToolExecutor:
    """
    Executes the tools called by the model during one run.

    Example:
        executor = ToolExecutor(registry, ctx, notifier, tracer, chat_id="-100123")

        tool_calls = parse_tool_calls(response.choices[0].message)
        results = await executor.execute_all(tool_calls, parent_run_id=run_id)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        ctx: ToolContext,
        notifier: Notifier | None = None,
        tracer: Tracer | None = None,
        chat_id: str | None = None
    ):
        self.registry = registry
        self.ctx = ctx
        self.notifier = notifier or NullNotifier()
        self.tracer = tracer or NullTracer()
        self.chat_id = chat_id

    async def _notify(self, text: str) -> None:
        """Best-effort message to the chat."""
        if not self.chat_id:
            return
        try:
            await self.notifier.send(self.chat_id, text)
        except Exception as e:
            logger.error("Notifier raised, continuing", e)

    async def _trace(
        self,
        tool_call: ToolCall,
        result_text: str,
        parent_run_id: str | None
    ) -> None:
        try:
            await self.tracer.track_tool_call(
                tool_call.name,
                tool_call.arguments,
                result_text,
                parent_run_id
            )
        except Exception as e:
            logger.error("Tool tracing failed (non-fatal)", e)

    def _unavailable(self, tool_call: ToolCall) -> ToolCallResult:
        available = ", ".join(self.registry.names()) or "none"
        logger.warning(
            f"Tool {tool_call.name} was called but is not available",
            {"tenant_id": self.ctx.tenant_id}
        )
        return ToolCallResult(
            tool_call_id=tool_call.id,
            name=tool_call.name,
            result=ToolResult(
                success=False,
                error=f"Tool {tool_call.name} is not available. Available tools: {available}"
            ),
            executed=False,
        )

    async def execute_one(
        self,
        tool_call: ToolCall,
        parent_run_id: str | None = None
    ) -> ToolCallResult:
        """
        Handle a single tool call.

        Never raises for tool failures: unknown names, tool errors and
        tool exceptions all come back as an unsuccessful result.

        Args:
            tool_call: The tool call to execute
            parent_run_id: Trace run of the iteration that requested it

        Returns:
            ToolCallResult with the execution result
        """
        tool = self.registry.get(tool_call.name)
        if tool is None:
            return self._unavailable(tool_call)

        try:
            progress = tool.progress_message(tool_call.arguments)
        except Exception as e:
            logger.error(f"Error building progress message for {tool_call.name}", e)
            progress = f"🔧 Using tool: {tool_call.name}"
        await self._notify(progress)

        logger.info(f"Executing tool: {tool_call.name}")

        try:
            result = await tool.invoke(tool_call.arguments, self.ctx)
        except Exception as e:
            logger.error(f"Error executing tool {tool_call.name}", e)
            result = ToolResult(success=False, error=f"{tool_call.name} failed: {e}")
            # The raw error goes to the model only
            await self._notify(f"⚠️ I had trouble using {tool_call.name}.")

        if result.success:
            logger.debug(f"Tool {tool_call.name} succeeded")
        else:
            logger.warning(f"Tool {tool_call.name} failed: {result.error}")

        await self._trace(tool_call, result.to_message(), parent_run_id)

        return ToolCallResult(
            tool_call_id=tool_call.id,
            name=tool_call.name,
            result=result,
            progress_message=progress,
        )

    async def execute_all(
        self,
        tool_calls: list[ToolCall],
        parent_run_id: str | None = None
    ) -> list[ToolCallResult]:
        """
        Execute tool calls sequentially, in request order.

        Args:
            tool_calls: List of tool calls to execute
            parent_run_id: Trace run of the current iteration

        Returns:
            One ToolCallResult per call, in the same order
        """
        results = []

        for tool_call in tool_calls:
            result = await self.execute_one(tool_call, parent_run_id)
            results.append(result)

        return results
