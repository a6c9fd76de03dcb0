"""
Progress Notifications
======================

Fire-and-forget "now doing X" messages sent to the chat while tools run.

A notification is a courtesy, not part of the answer: every notifier
catches and logs its own failures, and `send` never raises. The
orchestrator defaults to `NullNotifier`, so control-flow tests never
depend on a messaging platform being reachable.

Notifiers:
- NullNotifier: drops everything
- TelegramNotifier: Bot API `sendMessage` over httpx
- SlackNotifier: `chat.postMessage` via slack_sdk's AsyncWebClient
"""

from typing import Protocol

import httpx
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from botsmith.utils.logger import Logger

logger = Logger("Notify")

TELEGRAM_API = "https://api.telegram.org"


class Notifier(Protocol):
    """Sends a line of text to a chat. Must never raise."""

    async def send(self, chat_id: str, text: str) -> None:
        ...


class NullNotifier:
    """Notifier that sends nothing."""

    async def send(self, chat_id: str, text: str) -> None:
        return None


class TelegramNotifier:
    """
    Sends messages through the Telegram Bot API.

    Example:
        notifier = TelegramNotifier(http, bot_token="123:abc")
        await notifier.send("-100123", "🌐 Searching the web...")
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        bot_token: str,
        timeout_seconds: float = 5.0
    ):
        self.http = http
        self.bot_token = bot_token
        self.timeout = timeout_seconds

    async def send(self, chat_id: str, text: str) -> None:
        try:
            response = await self.http.post(
                f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage",
                json={"chat_id": chat_id, "text": text},
                timeout=self.timeout
            )
            if response.status_code >= 400:
                logger.warning(f"Telegram sendMessage returned {response.status_code}")
        except Exception as e:
            logger.error("Error sending tool notification", e)


class SlackNotifier:
    """
    Posts messages to a Slack channel.

    Example:
        notifier = SlackNotifier(AsyncWebClient(token="xoxb-..."))
        await notifier.send("C0123", "💾 Saving this to my memory...")
    """

    def __init__(self, client: AsyncWebClient):
        self.client = client

    async def send(self, chat_id: str, text: str) -> None:
        try:
            response = await self.client.chat_postMessage(channel=chat_id, text=text)
            if not response["ok"]:
                logger.warning(f"Slack rejected notification: {response.get('error')}")
        except SlackApiError as e:
            logger.warning(f"Slack API error: {e.response['error']}")
        except Exception as e:
            logger.error("Error sending tool notification", e)
