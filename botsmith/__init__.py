"""
Botsmith - Tool-Calling Agent Orchestrator
==========================================

The agent behind the community chat bots configured in the dashboard.

For every inbound message the agent lets a language model decide whether
to call tools, runs those tools safely, feeds the results back, and stops
at a final answer or after a fixed number of steps.

This package provides:
- agent: the control loop and tool-call dispatch
- tools: the tool registry, built-in capabilities and the custom tool
  executor for tenant-defined HTTP tools
- storage: the data-access interface (in-memory and PostgREST backends)
- rag: embeddings for semantic profile search
- notify: progress messages to Telegram or Slack
"""

__version__ = "1.0.0"
