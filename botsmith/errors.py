"""
Exceptions
==========

Only failures the orchestrator cannot turn into a tool result surface as
exceptions. Everything a tool does wrong is reported back to the model as
text instead.
"""


class BotsmithError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(BotsmithError):
    """Required configuration is missing or invalid."""


class CompletionServiceError(BotsmithError):
    """
    The completion service failed (unreachable, timed out, non-OK status).

    This aborts the run: without the model there is nothing to loop on.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
