"""
Run Tracing
===========

Best-effort tracing of completion calls and tool calls to LangSmith.

Tracing is an observer: it must never change what the agent does. Every
method here swallows its own failures and logs them, and the no-op
`NullTracer` is the default so tests and unconfigured deployments never
touch the network.

Trace shape:
    agent_iteration_1   (run_type=llm)
        ├── web_search  (run_type=tool)
        └── save_memory (run_type=tool)
    agent_iteration_2   (run_type=llm)
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from botsmith.utils.logger import Logger

logger = Logger("Tracing")

LANGSMITH_API = "https://api.smith.langchain.com"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Tracer(Protocol):
    """What the orchestrator needs from an observability backend."""

    async def start_llm_run(self, name: str, inputs: dict[str, Any]) -> str | None:
        ...

    async def complete_run(
        self,
        run_id: str | None,
        outputs: dict[str, Any] | None = None,
        error: str | None = None
    ) -> None:
        ...

    async def track_tool_call(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        result: str,
        parent_run_id: str | None
    ) -> None:
        ...


class NullTracer:
    """Tracer that records nothing."""

    async def start_llm_run(self, name: str, inputs: dict[str, Any]) -> str | None:
        return None

    async def complete_run(
        self,
        run_id: str | None,
        outputs: dict[str, Any] | None = None,
        error: str | None = None
    ) -> None:
        return None

    async def track_tool_call(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        result: str,
        parent_run_id: str | None
    ) -> None:
        return None


class LangSmithTracer:
    """
    Posts runs to the LangSmith REST API.

    Example:
        tracer = LangSmithTracer(http, api_key="ls-...", project="telegram-bot")
        run_id = await tracer.start_llm_run("agent_iteration_1", {"messages": 4})
        await tracer.complete_run(run_id, outputs={"finish": "stop"})
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        project: str = "telegram-bot",
        timeout_seconds: float = 5.0
    ):
        self.http = http
        self.api_key = api_key
        self.project = project
        self.timeout = timeout_seconds

    @property
    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-api-key": self.api_key}

    async def _post_run(self, payload: dict[str, Any]) -> bool:
        try:
            response = await self.http.post(
                f"{LANGSMITH_API}/runs",
                headers=self._headers,
                json=payload,
                timeout=self.timeout
            )
            if response.status_code >= 400:
                logger.warning(f"LangSmith rejected run: {response.status_code}")
                return False
            return True
        except Exception as e:
            logger.error("LangSmith tracking error (non-fatal)", e)
            return False

    async def start_llm_run(self, name: str, inputs: dict[str, Any]) -> str | None:
        run_id = str(uuid.uuid4())
        ok = await self._post_run({
            "id": run_id,
            "project_name": self.project,
            "name": name,
            "run_type": "llm",
            "inputs": inputs,
            "start_time": _now(),
            "tags": ["telegram-bot", "agent"],
        })
        return run_id if ok else None

    async def complete_run(
        self,
        run_id: str | None,
        outputs: dict[str, Any] | None = None,
        error: str | None = None
    ) -> None:
        if not run_id:
            return

        payload: dict[str, Any] = {"end_time": _now()}
        if error:
            payload["error"] = error
        else:
            payload["outputs"] = outputs or {}

        try:
            await self.http.patch(
                f"{LANGSMITH_API}/runs/{run_id}",
                headers=self._headers,
                json=payload,
                timeout=self.timeout
            )
        except Exception as e:
            logger.error("LangSmith completion error (non-fatal)", e)

    async def track_tool_call(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        result: str,
        parent_run_id: str | None
    ) -> None:
        if not parent_run_id:
            return

        timestamp = _now()
        await self._post_run({
            "id": str(uuid.uuid4()),
            "parent_run_id": parent_run_id,
            "project_name": self.project,
            "name": tool_name,
            "run_type": "tool",
            "inputs": arguments,
            "outputs": {"result": result},
            "start_time": timestamp,
            "end_time": timestamp,
            "tags": ["tool", tool_name],
        })
