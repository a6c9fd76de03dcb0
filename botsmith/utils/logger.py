"""
Logger Utility
==============

Context-aware logging for the orchestrator and its tools.

Every component creates its own logger with a short context name, so a
single run can be followed through the output:

    [2026-01-31T10:30:00] [INFO] [Agent] Iteration 1 for tenant c-42
    [2026-01-31T10:30:01] [INFO] [Agent:Dispatch] Executing tool: web_search
    [2026-01-31T10:30:02] [WARN] [CustomTools] weather_lookup returned 502

Structured data passed alongside a message is printed as JSON underneath
it. Tool arguments and custom tool configs regularly carry credentials, so
values under secret-looking keys are redacted before printing.

Usage:
    from botsmith.utils.logger import Logger

    logger = Logger("CustomTools")
    logger.info("Calling endpoint", {"tool": "weather", "method": "POST"})
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Log levels, ordered by severity."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for colored terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


# Keys whose values never reach the log output
SECRET_KEYS = {
    "auth_value",
    "api_key",
    "authorization",
    "x-api-key",
    "token",
    "bot_token",
    "service_key",
}

REDACTED = "***"


def _get_log_level_from_env() -> LogLevel:
    """Parse LOG_LEVEL, defaulting to INFO."""
    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": LogLevel.DEBUG,
        "INFO": LogLevel.INFO,
        "WARNING": LogLevel.WARNING,
        "WARN": LogLevel.WARNING,
        "ERROR": LogLevel.ERROR,
    }
    return level_map.get(level_str, LogLevel.INFO)


def redact(data: Any) -> Any:
    """
    Return a copy of data with secret values replaced.

    Walks nested dicts and lists. Keys are matched case-insensitively.
    """
    if isinstance(data, dict):
        return {
            key: REDACTED if str(key).lower() in SECRET_KEYS else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data


class Logger:
    """
    A logger bound to a component context.

    Example:
        logger = Logger("Agent")
        logger.info("Run started")

        dispatch = logger.child("Dispatch")
        dispatch.debug("Tool arguments", {"query": "python"})
    """

    def __init__(self, context: str = ""):
        self.context = context
        self._min_level = _get_log_level_from_env()

    def child(self, child_context: str) -> "Logger":
        """Create a logger whose context is nested under this one."""
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context)

    def set_level(self, level: LogLevel) -> None:
        self._min_level = level

    def _format_message(self, level: str, message: str, color: str) -> str:
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if level < self._min_level:
            return

        formatted = self._format_message(level_name, message, color)

        stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout
        print(formatted, file=stream)

        if data:
            data_str = json.dumps(redact(data), indent=2, default=str)
            print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a debug message. Only shown when LOG_LEVEL=DEBUG."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a warning: something failed but the run carries on."""
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: Exception | None = None) -> None:
        """
        Log an error message.

        Args:
            message: The error message
            error: Optional exception whose type and message are attached
        """
        data = None
        if error:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


# Default logger for code without a more specific context
logger = Logger("Botsmith")
