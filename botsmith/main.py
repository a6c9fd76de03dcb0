"""
Botsmith - Main Entry Point
===========================

Runs the agent for one inbound message. It:
1. Loads configuration
2. Reads the request payload (a JSON file, or stdin)
3. Wires storage, notifier, tracer and the completion client
4. Runs the agent loop
5. Prints the JSON result

Run with:
    python -m botsmith.main request.json

Or after installing:
    botsmith request.json
    cat request.json | botsmith

Request payload (the bot's webhook body):
    {
        "communityId": "c-42",
        "userMessage": "Who here knows Rust?",
        "systemPrompt": "You are the community assistant.",
        "conversationHistory": [{"role": "user", "content": "hi"}],
        "enabledTools": {"semantic_profile_search": true},
        "telegramChatId": "-100123",
        "botToken": "123:abc"
    }
"""

import argparse
import asyncio
import json
import sys

import httpx
from openai import AsyncOpenAI
from slack_sdk.web.async_client import AsyncWebClient

from botsmith.agent import Agent, AgentRequest, InvocationConfig
from botsmith.errors import BotsmithError
from botsmith.notify import Notifier, NullNotifier, SlackNotifier, TelegramNotifier
from botsmith.rag import EmbeddingGenerator
from botsmith.storage import InMemoryStorage, RestStorage, Storage
from botsmith.tools import ToolSettings
from botsmith.utils.config import Config, get_config
from botsmith.utils.logger import Logger
from botsmith.utils.tracing import LangSmithTracer, NullTracer, Tracer

main_logger = Logger("Main")


def _build_storage(config: Config, http: httpx.AsyncClient) -> Storage:
    if config.storage.url and config.storage.service_key:
        return RestStorage(http, config.storage.url, config.storage.service_key)

    main_logger.warning("SUPABASE_URL not set, using in-memory storage")
    return InMemoryStorage()


def _build_notifier(config: Config, http: httpx.AsyncClient, payload: dict) -> Notifier:
    """Telegram when a bot token is known, else Slack, else nothing."""
    bot_token = payload.get("botToken") or config.telegram_bot_token
    if bot_token:
        return TelegramNotifier(http, bot_token)
    if config.slack_bot_token:
        return SlackNotifier(AsyncWebClient(token=config.slack_bot_token))
    return NullNotifier()


def _build_tracer(config: Config, http: httpx.AsyncClient) -> Tracer:
    if config.tracing.api_key:
        return LangSmithTracer(http, config.tracing.api_key, config.tracing.project)
    return NullTracer()


def _build_embeddings(config: Config) -> EmbeddingGenerator | None:
    if not config.embedding.api_key:
        main_logger.warning("OPENAI_API_KEY not set, semantic profile search is unavailable")
        return None
    return EmbeddingGenerator(
        api_key=config.embedding.api_key,
        model=config.embedding.model,
        base_url=config.embedding.base_url,
        timeout_seconds=config.tools.http_timeout_seconds,
    )


async def run_request(payload: dict, config: Config | None = None) -> dict:
    """
    Answer one request payload.

    Args:
        payload: The webhook body (see module docstring)
        config: Configuration (loaded from the environment by default)

    Returns:
        The JSON-ready result: response, toolsUsed, iterations, usage

    Raises:
        BotsmithError: If configuration is missing or the completion
            service fails
    """
    config = config or get_config()
    request = AgentRequest.from_payload(payload)

    invocation = InvocationConfig(
        model=payload.get("model") or config.completion.model,
        enabled_tools=payload.get("enabledTools") or payload.get("enabled_tools") or {},
    )
    settings = ToolSettings(
        tavily_api_key=config.tools.tavily_api_key,
        http_timeout_seconds=config.tools.http_timeout_seconds,
        image_scoring_url=config.tools.image_scoring_url,
        image_scoring_api_key=config.tools.image_scoring_api_key,
        claim_base_url=config.tools.claim_base_url,
    )

    completion = AsyncOpenAI(
        api_key=config.completion.api_key,
        base_url=config.completion.base_url,
        timeout=config.completion.timeout_seconds,
        max_retries=0,
    )

    async with httpx.AsyncClient() as http:
        agent = Agent(
            completion=completion,
            storage=_build_storage(config, http),
            http=http,
            config=invocation,
            settings=settings,
            embeddings=_build_embeddings(config),
            notifier=_build_notifier(config, http, payload),
            tracer=_build_tracer(config, http),
        )
        result = await agent.run(request)

    return result.to_dict()


def _read_payload(path: str | None) -> dict:
    if path and path != "-":
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    return json.load(sys.stdin)


def run():
    """
    Synchronous entry point.

    This is called when running with the `botsmith` command.
    """
    parser = argparse.ArgumentParser(description="Answer one message with the tool-calling agent")
    parser.add_argument("request", nargs="?", help="Request JSON file (stdin when omitted)")
    args = parser.parse_args()

    try:
        payload = _read_payload(args.request)
        result = asyncio.run(run_request(payload))
    except (BotsmithError, ValueError, OSError) as e:
        main_logger.error("Agent run failed", e)
        print(json.dumps({"error": str(e)}))
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    print(json.dumps(result, ensure_ascii=False))


if __name__ == "__main__":
    run()
