"""
Custom Tool Executor
====================

Runs tenant-defined tools: one authenticated HTTP call per invocation.

Execution Flow:
    config + model arguments
         │
         ▼
    Render body from request_template (skipped for GET)
         │
         ▼
    Inject auth header, call endpoint (bounded by timeout_seconds)
         │
         ├── timeout / network error ──► error text, error_count + 1
         ├── status >= 400 ──────────► error text, error_count + 1
         └── success ────────────────► render_response, error_count = 0
         │
         ▼
    Insert one execution log entry

Nothing here retries. A failed call is reported to the model as the tool
result, and the model decides whether to call the tool again.

Auth Types:
- none: no auth header
- api_key: `X-API-Key: <value>`
- bearer: `Authorization: Bearer <value>`
"""

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from botsmith.storage import CustomToolConfig, ExecutionLogEntry, Storage, utcnow
from botsmith.tools.templates import render_request, render_response
from botsmith.utils.logger import Logger

if TYPE_CHECKING:
    from botsmith.tools import ToolContext

logger = Logger("CustomTools")

DEFAULT_TIMEOUT_SECONDS = 10

# Error bodies are cut to this many characters in the tool result
MAX_ERROR_BODY = 500


@dataclass
class ExecutionOutcome:
    """
    Result of one custom tool call.

    Attributes:
        success: Whether the endpoint answered with status < 400
        text: What the model sees
        log_entry: The audit record written for this call
    """
    success: bool
    text: str
    log_entry: ExecutionLogEntry


def build_headers(config: CustomToolConfig) -> dict[str, str]:
    """Request headers for a config, including its auth header."""
    headers = {"Content-Type": "application/json"}

    if config.auth_value:
        if config.auth_type == "api_key":
            headers["X-API-Key"] = config.auth_value
        elif config.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {config.auth_value}"

    return headers


def _query_params(args: dict[str, Any]) -> dict[str, str]:
    return {
        key: value if isinstance(value, str) else str(value)
        for key, value in args.items()
        if value is not None
    }


class CustomToolExecutor:
    """
    Calls custom tool endpoints and keeps their health counters.

    Example:
        executor = CustomToolExecutor(http, storage)
        outcome = await executor.execute(config, {"city": "Paris"}, ctx)

        print(outcome.text)                  # "18°C in Paris"
        print(outcome.log_entry.status_code) # 200
    """

    def __init__(self, http: httpx.AsyncClient, storage: Storage):
        self.http = http
        self.storage = storage

    async def execute(
        self,
        config: CustomToolConfig,
        args: dict[str, Any],
        ctx: "ToolContext | None" = None
    ) -> ExecutionOutcome:
        """
        Call the tool's endpoint once.

        Never raises for endpoint failures; they come back as an
        unsuccessful outcome with readable text.

        Args:
            config: The tool to call
            args: Arguments supplied by the model
            ctx: The run context (tenant and user for the log entry)

        Returns:
            ExecutionOutcome with the text for the model and the log entry
        """
        method = config.http_method.upper()
        timeout = config.timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        headers = build_headers(config)

        request: dict[str, Any] = {"headers": headers, "timeout": timeout}
        if method == "GET":
            request["params"] = _query_params(args)
        else:
            request["json"] = render_request(config.request_template, args)

        logger.info(f"Calling {config.name}", {"method": method, "url": config.endpoint_url})

        started = time.monotonic()
        status_code: int | None = None
        output: Any = None
        success = False

        try:
            response = await asyncio.wait_for(
                self.http.request(method, config.endpoint_url, **request),
                timeout=timeout
            )
            status_code = response.status_code

            if status_code >= 400:
                text = (
                    f"{config.display_name} failed with status {status_code}: "
                    f"{response.text[:MAX_ERROR_BODY]}"
                )
            else:
                try:
                    output = response.json()
                    text = render_response(output, config.response_mapping)
                except ValueError:
                    output = response.text
                    text = response.text
                success = True

        except (asyncio.TimeoutError, httpx.TimeoutException):
            text = f"{config.display_name} timed out after {timeout} seconds"
        except httpx.HTTPError as e:
            text = f"{config.display_name} could not be reached: {e}"
        except Exception as e:
            logger.error(f"Unexpected error calling {config.name}", e)
            text = f"{config.display_name} failed: {e}"

        elapsed_ms = int((time.monotonic() - started) * 1000)

        if success:
            logger.debug(f"{config.name} succeeded in {elapsed_ms}ms")
        else:
            logger.warning(f"{config.name} failed: {text}")

        entry = ExecutionLogEntry(
            tool_id=config.id,
            tenant_id=config.tenant_id,
            user_id=ctx.user_id if ctx else None,
            input=args,
            output=output,
            status_code=status_code,
            error_message=None if success else text,
            execution_time_ms=elapsed_ms,
            executed_at=utcnow(),
        )

        await self._record_health(config, success, text, status_code)
        await self._write_log(entry)

        return ExecutionOutcome(success=success, text=text, log_entry=entry)

    async def _record_health(
        self,
        config: CustomToolConfig,
        success: bool,
        text: str,
        status_code: int | None
    ) -> None:
        """Update the config's health fields, in the run's copy and in storage."""
        if success:
            now = utcnow()
            fields: dict[str, Any] = {
                "error_count": 0,
                "last_error": None,
                "last_test_at": now,
                "last_test_result": {"success": True, "status_code": status_code},
            }
        else:
            fields = {
                "error_count": config.error_count + 1,
                "last_error": text,
            }

        for key, value in fields.items():
            setattr(config, key, value)

        try:
            await self.storage.update_custom_tool(config.id, fields)
        except Exception as e:
            logger.error(f"Failed to update health for {config.name}", e)

    async def _write_log(self, entry: ExecutionLogEntry) -> None:
        try:
            await self.storage.insert_tool_log(entry)
        except Exception as e:
            logger.error("Failed to write custom tool log", e)
