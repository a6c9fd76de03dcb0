"""
Knowledge Tools
===============

Built-in tools over what the community already knows:
- search_memory: the community knowledge base (saved memories)
- save_memory: add one entry to the knowledge base
- search_chat_history: recent messages from the community chat

All reads are scoped to the run's tenant.
"""

from datetime import datetime, timedelta

from botsmith.storage import KnowledgeEntry, utcnow
from botsmith.tools import BuiltinTool, ToolContext, ToolResult, ToolSpec
from botsmith.utils.logger import Logger

logger = Logger("KnowledgeTools")

MAX_MEMORIES = 200

DEFAULT_DAYS_BACK = 7
MIN_DAYS_BACK = 1
MAX_DAYS_BACK = 30
MAX_HISTORY_MESSAGES = 30
MAX_MESSAGE_CHARS = 100


# ==============================================================================
# Tool: Search Memory
# ==============================================================================

async def _search_memory(params: dict, ctx: ToolContext) -> ToolResult:
    """Return the tenant's most recent memories as a bulleted list."""
    logger.info("Gathering memories into context")

    try:
        memories = await ctx.storage.list_knowledge(ctx.tenant_id, MAX_MEMORIES)
    except Exception as e:
        logger.error("Failed to load memories", e)
        return ToolResult(success=False, error="Could not load the community knowledge base")

    if not memories:
        return ToolResult(success=True, data="No memories found in the community knowledge base.")

    lines = []
    for memory in memories:
        tags = f" [{', '.join(memory.tags)}]" if memory.tags else ""
        lines.append(f"• {memory.content} ({memory.created_at.date().isoformat()}){tags}")

    return ToolResult(
        success=True,
        data=f"Community Knowledge Base ({len(memories)} memories):\n" + "\n".join(lines)
    )


search_memory_tool = BuiltinTool(
    spec=ToolSpec(
        name="search_memory",
        description=(
            "Gather all memories from the community's knowledge base to provide "
            "context. Use this when you need to access saved community "
            "information, past facts, or stored knowledge."
        ),
        parameter_schema={"type": "object", "properties": {}},
    ),
    handler=_search_memory,
    progress=lambda params: "🧠 Let me check what I remember...",
)


# ==============================================================================
# Tool: Save Memory
# ==============================================================================

async def _save_memory(params: dict, ctx: ToolContext) -> ToolResult:
    """Append one entry to the tenant's knowledge base."""
    content = str(params.get("content") or "").strip()
    if not content:
        return ToolResult(success=False, error="Memory content is required")

    tags = params.get("tags") or []
    if not isinstance(tags, list):
        tags = [str(tags)]

    logger.info(f"Saving memory: {content[:50]!r}")

    entry = KnowledgeEntry(
        tenant_id=ctx.tenant_id,
        content=content,
        tags=[str(tag) for tag in tags],
        created_by=ctx.user_id,
        metadata={"source": "agent", "saved_at": utcnow().isoformat()},
    )

    try:
        await ctx.storage.insert_knowledge(entry)
    except Exception as e:
        logger.error("Error saving memory", e)
        return ToolResult(success=False, error=f"Failed to save memory: {e}")

    return ToolResult(success=True, data="✅ Memory saved successfully!")


save_memory_tool = BuiltinTool(
    spec=ToolSpec(
        name="save_memory",
        description=(
            "Save important information to the community's memory for future "
            "reference. Use this when users share important information that "
            "should be remembered."
        ),
        parameter_schema={
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": "The information to save"
                },
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Tags to categorize this memory (e.g., ['event', 'announcement', 'faq'])"
                }
            },
            "required": ["content"]
        },
    ),
    handler=_save_memory,
    progress=lambda params: "💾 Saving this to my memory...",
)


# ==============================================================================
# Tool: Search Chat History
# ==============================================================================

def clamp_days_back(value: object) -> int:
    """
    Bound a requested window to [1, 30] days.

    Missing or non-numeric values give the default of 7. Out-of-range
    values are clamped, not rejected.
    """
    if value is None or value == "":
        return DEFAULT_DAYS_BACK
    try:
        days = int(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_DAYS_BACK
    return min(max(days, MIN_DAYS_BACK), MAX_DAYS_BACK)


def time_ago(timestamp: datetime, now: datetime | None = None) -> str:
    """Short relative time: 5m ago, 3h ago, 2d ago."""
    now = now or utcnow()
    minutes = int((now - timestamp).total_seconds() // 60)
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 24 * 60:
        return f"{minutes // 60}h ago"
    return f"{minutes // (24 * 60)}d ago"


async def _search_chat_history(params: dict, ctx: ToolContext) -> ToolResult:
    """Return recent chat messages from the last N days."""
    days_back = clamp_days_back(params.get("days_back"))
    logger.info(f"Searching chat history: last {days_back} days")

    now = utcnow()
    since = now - timedelta(days=days_back)

    try:
        messages = await ctx.storage.list_messages(ctx.tenant_id, since, MAX_HISTORY_MESSAGES)
    except Exception as e:
        logger.error("Failed to load chat history", e)
        return ToolResult(success=False, error="Could not load chat history")

    if not messages:
        return ToolResult(success=True, data=f"No messages found in the last {days_back} days.")

    lines = [
        f"{time_ago(m.created_at, now)} | {m.sender_name or 'Someone'}: "
        f"{m.content[:MAX_MESSAGE_CHARS]}"
        for m in messages
    ]

    return ToolResult(
        success=True,
        data=f"Found {len(messages)} recent messages:\n" + "\n".join(lines)
    )


def _chat_history_progress(params: dict) -> str:
    return f"💬 Looking through the last {clamp_days_back(params.get('days_back'))} days of messages..."


search_chat_history_tool = BuiltinTool(
    spec=ToolSpec(
        name="search_chat_history",
        description=(
            "Search recent community chat messages to find relevant context or "
            "information from previous conversations."
        ),
        parameter_schema={
            "type": "object",
            "properties": {
                "days_back": {
                    "type": "integer",
                    "description": "Number of days to search back (default 7, max 30)",
                    "minimum": MIN_DAYS_BACK,
                    "maximum": MAX_DAYS_BACK
                }
            }
        },
    ),
    handler=_search_chat_history,
    progress=_chat_history_progress,
)
