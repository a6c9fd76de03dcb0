"""
Conversation Context
====================

The conversation one run works on, and the request that starts it.

A run's conversation is an ordered, append-only list of turns:

    [system]                      the tenant's system prompt
    [history...]                  earlier turns passed in by the caller
    [user]                        the current message (maybe with an image)
    [assistant + tool_calls]      ┐
    [tool] [tool] ...             ┘ repeated per iteration that uses tools

The turns exist only for the run. Persisting the conversation is the
caller's business.

Vision:
    A turn carrying an image is sent with structured content
    (`[{type: text}, {type: image_url}]`). Turns without an image stay
    plain strings, because not every model accepts the structured shape.
"""

from dataclasses import dataclass, field
from typing import Any

from botsmith.utils.logger import Logger

logger = Logger("Context")

ROLES = {"system", "user", "assistant", "tool"}


@dataclass
class ConversationTurn:
    """
    One message in the conversation.

    Attributes:
        role: system, user, assistant or tool
        content: The text (None for assistant turns that only call tools)
        tool_call_id: For tool turns, the call this answers
        image_url: Image attached to this turn, if any
        tool_calls: For assistant turns, the calls requested
    """
    role: str
    content: str | None
    tool_call_id: str | None = None
    image_url: str | None = None
    tool_calls: list[dict] | None = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown conversation role: {self.role}")

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationTurn":
        """Build a turn from a history entry (`imageUrl` or `image_url`)."""
        return cls(
            role=data.get("role", "user"),
            content=data.get("content") or "",
            image_url=data.get("image_url") or data.get("imageUrl"),
        )

    def to_openai_message(self) -> dict:
        """
        Format as a chat completions message.

        Returns:
            Message dict in the shape the completion service expects
        """
        if self.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": self.tool_call_id,
                "content": self.content or "",
            }

        if self.role == "assistant" and self.tool_calls:
            return {
                "role": "assistant",
                "content": self.content,
                "tool_calls": self.tool_calls,
            }

        if self.image_url:
            return {
                "role": self.role,
                "content": [
                    {"type": "text", "text": self.content or ""},
                    {"type": "image_url", "image_url": {"url": self.image_url}},
                ],
            }

        return {"role": self.role, "content": self.content or ""}


@dataclass
class AgentRequest:
    """
    Everything needed to answer one inbound message.

    Attributes:
        tenant_id: The community whose agent answers
        user_message: The current message text
        system_prompt: The tenant's agent prompt
        history: Earlier turns, oldest first
        image_url: Image attached to the current message
        user_id: Dashboard user id of the sender, if linked
        chat_id: Where progress notifications go (None disables them)
        platform_user_id: Messaging-platform id of the sender
    """
    tenant_id: str
    user_message: str
    system_prompt: str = ""
    history: list[ConversationTurn] = field(default_factory=list)
    image_url: str | None = None
    user_id: str | None = None
    chat_id: str | None = None
    platform_user_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "AgentRequest":
        """
        Parse the webhook payload the bot forwards for each message.

        Accepts the dashboard's camelCase keys (`userMessage`,
        `conversationHistory`, `communityId`, `telegramChatId`...) as well
        as snake_case.
        """
        def pick(*keys: str) -> Any:
            for key in keys:
                if payload.get(key) is not None:
                    return payload[key]
            return None

        tenant_id = pick("communityId", "tenant_id", "community_id")
        if not tenant_id:
            raise ValueError("Request is missing communityId")

        history = pick("conversationHistory", "history") or []

        chat_id = pick("telegramChatId", "chat_id")
        platform_user_id = pick("telegramUserId", "platform_user_id")

        return cls(
            tenant_id=str(tenant_id),
            user_message=pick("userMessage", "user_message") or "",
            system_prompt=pick("systemPrompt", "system_prompt") or "",
            history=[ConversationTurn.from_dict(turn) for turn in history],
            image_url=pick("imageUrl", "image_url"),
            user_id=pick("userId", "user_id"),
            chat_id=str(chat_id) if chat_id is not None else None,
            platform_user_id=str(platform_user_id) if platform_user_id is not None else None,
        )


def build_conversation(request: AgentRequest) -> list[ConversationTurn]:
    """
    Initial turns for a run: system prompt, history, current message.

    Args:
        request: The inbound request

    Returns:
        A fresh list the run may append to
    """
    turns = [ConversationTurn(role="system", content=request.system_prompt)]
    turns.extend(request.history)
    turns.append(ConversationTurn(
        role="user",
        content=request.user_message,
        image_url=request.image_url,
    ))

    logger.debug(
        f"Conversation built with {len(turns)} turns",
        {"history": len(request.history), "has_image": bool(request.image_url)}
    )
    return turns


def to_openai_messages(turns: list[ConversationTurn]) -> list[dict]:
    """Format all turns for the completion request."""
    return [turn.to_openai_message() for turn in turns]
