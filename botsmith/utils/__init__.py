"""
Utilities Module
================

Common utilities shared across the package:
- logger: Context-aware logging with secret redaction
- config: Environment configuration for the entry point
- tracing: Best-effort run tracing
"""

from botsmith.utils.logger import Logger, logger
from botsmith.utils.config import get_config, Config
from botsmith.utils.tracing import Tracer, NullTracer, LangSmithTracer

__all__ = [
    "Logger",
    "logger",
    "get_config",
    "Config",
    "Tracer",
    "NullTracer",
    "LangSmithTracer",
]
