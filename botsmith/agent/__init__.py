"""
Agent System
============

The agent is the tool-calling orchestrator. For each inbound message it:
1. Builds the run's tool registry for the tenant
2. Assembles the conversation (system prompt, history, message)
3. Calls the completion service
4. Executes any requested tools and feeds the results back
5. Returns the final reply, or gives up after a fixed number of steps

This module provides:
- Agent: the control loop
- AgentRequest / AgentResult / InvocationConfig: its inputs and output
- ConversationTurn: one message in a run's conversation
- ToolExecutor: validation and dispatch of tool calls
"""

from botsmith.agent.context import AgentRequest, ConversationTurn, build_conversation
from botsmith.agent.core import (
    MAX_ITERATIONS_MESSAGE,
    Agent,
    AgentResult,
    AgentState,
    InvocationConfig,
)
from botsmith.agent.tools_executor import ToolCall, ToolCallResult, ToolExecutor, parse_tool_calls

__all__ = [
    "Agent",
    "AgentRequest",
    "AgentResult",
    "AgentState",
    "ConversationTurn",
    "InvocationConfig",
    "MAX_ITERATIONS_MESSAGE",
    "ToolCall",
    "ToolCallResult",
    "ToolExecutor",
    "build_conversation",
    "parse_tool_calls",
]
