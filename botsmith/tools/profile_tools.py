"""
Profile Tools
=============

Built-in tools about the people in a community:
- get_member_profiles: list member profiles into context
- semantic_profile_search: find members by meaning, via embeddings
- generate_claim_link: let a chat user claim their dashboard profile

Semantic Search:
    The query text is embedded first, then compared against stored profile
    embeddings by cosine similarity. Without an embedding there is nothing
    to compare, so a failed embedding call is reported to the model rather
    than silently falling back to a plain listing.
"""

import uuid
from datetime import timedelta

from botsmith.storage import utcnow
from botsmith.tools import BuiltinTool, ToolContext, ToolResult, ToolSpec
from botsmith.utils.logger import Logger

logger = Logger("ProfileTools")

DEFAULT_PROFILE_LIMIT = 20
MAX_PROFILE_LIMIT = 50

MATCH_THRESHOLD = 0.7
MATCH_COUNT = 10

CLAIM_LINK_TTL = timedelta(hours=24)


# ==============================================================================
# Tool: Get Member Profiles
# ==============================================================================

def clamp_profile_limit(value: object) -> int:
    try:
        limit = int(value) if value not in (None, "") else DEFAULT_PROFILE_LIMIT
    except (TypeError, ValueError, OverflowError):
        limit = DEFAULT_PROFILE_LIMIT
    return min(max(limit, 1), MAX_PROFILE_LIMIT)


async def _get_member_profiles(params: dict, ctx: ToolContext) -> ToolResult:
    """List the tenant's member profiles."""
    limit = clamp_profile_limit(params.get("limit"))
    logger.info(f"Fetching up to {limit} member profiles")

    try:
        profiles = await ctx.storage.list_member_profiles(ctx.tenant_id, limit)
    except Exception as e:
        logger.error("Failed to load member profiles", e)
        return ToolResult(success=False, error="Could not load community members")

    if not profiles:
        return ToolResult(success=True, data="No community members found.")

    blocks = []
    for index, profile in enumerate(profiles, start=1):
        lines = [f"{index}. {profile.name or 'Unknown'}"]
        if profile.headline:
            lines.append(f"   Headline: {profile.headline}")
        if profile.bio:
            lines.append(f"   Bio: {profile.bio}")
        if profile.interests_skills:
            lines.append(f"   Interests/Skills: {', '.join(profile.interests_skills)}")
        blocks.append("\n".join(lines))

    return ToolResult(
        success=True,
        data=f"Community Members ({len(blocks)}):\n\n" + "\n\n".join(blocks)
    )


get_member_profiles_tool = BuiltinTool(
    spec=ToolSpec(
        name="get_member_profiles",
        description=(
            "Fetch all community member profiles into context. Use this to get a "
            "comprehensive list of community members with their names, bios, "
            "interests, and skills. Best for general awareness of who's in the "
            "community."
        ),
        parameter_schema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of profiles to return (default 20, max 50)",
                    "minimum": 1,
                    "maximum": MAX_PROFILE_LIMIT
                }
            }
        },
    ),
    handler=_get_member_profiles,
    progress=lambda params: "👥 Looking at everyone's profiles...",
)


# ==============================================================================
# Tool: Semantic Profile Search
# ==============================================================================

async def _semantic_profile_search(params: dict, ctx: ToolContext) -> ToolResult:
    """Find profiles similar in meaning to the query."""
    query = str(params.get("query") or "").strip()
    if not query:
        return ToolResult(success=False, error="A search query is required")

    logger.info(f"Semantic profile search: {query!r}")

    if ctx.embeddings is None:
        return ToolResult(
            success=False,
            error="Failed to generate search embedding. Please try again."
        )

    try:
        embedding = await ctx.embeddings.generate(query)
    except Exception as e:
        logger.error("Error generating embedding", e)
        embedding = None

    if not embedding:
        return ToolResult(
            success=False,
            error="Failed to generate search embedding. Please try again."
        )

    try:
        matches = await ctx.storage.search_profiles(
            ctx.tenant_id, embedding, MATCH_THRESHOLD, MATCH_COUNT
        )
    except Exception as e:
        logger.error("Error searching profiles", e)
        return ToolResult(success=False, error=f"Failed to search profiles: {e}")

    if not matches:
        return ToolResult(
            success=True,
            data=(
                f'No profiles found matching "{query}" with sufficient similarity. '
                "Try a different search term or use get_member_profiles to see all members."
            )
        )

    blocks = []
    for index, match in enumerate(matches, start=1):
        profile = match.profile
        lines = [f"{index}. {profile.name or 'Unknown'} (similarity: {match.similarity * 100:.0f}%)"]
        if profile.bio:
            bio = profile.bio[:100] + ("..." if len(profile.bio) > 100 else "")
            lines.append(f"   Bio: {bio}")
        if profile.interests_skills:
            lines.append(f"   Skills: {', '.join(profile.interests_skills[:3])}")
        blocks.append("\n".join(lines))

    return ToolResult(
        success=True,
        data=f'Found {len(matches)} profile(s) matching "{query}":\n\n' + "\n\n".join(blocks)
    )


def _semantic_search_progress(params: dict) -> str:
    if params.get("query"):
        return f'🔍 Searching for people like "{params["query"]}"...'
    return "🔍 Searching member profiles..."


semantic_profile_search_tool = BuiltinTool(
    spec=ToolSpec(
        name="semantic_profile_search",
        description=(
            "Advanced semantic search of user profiles using AI embeddings. Use "
            "this to find people based on conceptual similarity (e.g., 'looking "
            "for someone interested in AI'). Better for matching based on "
            "meaning rather than exact keywords."
        ),
        parameter_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The semantic search query to find users based on meaning and context"
                }
            },
            "required": ["query"]
        },
    ),
    handler=_semantic_profile_search,
    progress=_semantic_search_progress,
)


# ==============================================================================
# Tool: Generate Claim Link
# ==============================================================================

async def _generate_claim_link(params: dict, ctx: ToolContext) -> ToolResult:
    """Issue a one-time link for the sender to claim their profile."""
    if not ctx.platform_user_id:
        return ToolResult(
            success=True,
            data="I can only create a claim link when I know who is asking. "
                 "Please message me directly from your own account."
        )

    try:
        user = await ctx.storage.get_user_by_platform_id(ctx.platform_user_id)
    except Exception as e:
        logger.error("Failed to look up user for claim link", e)
        return ToolResult(success=False, error="Could not look up your profile")

    if user is None:
        return ToolResult(
            success=True,
            data="I couldn't find a profile for you yet. Send a message in the "
                 "community first and try again."
        )

    if user.is_claimed:
        return ToolResult(success=True, data="This profile is already claimed!")

    token = str(uuid.uuid4())
    expires_at = utcnow() + CLAIM_LINK_TTL

    try:
        await ctx.storage.insert_claim_token(token, user.id, ctx.tenant_id, expires_at)
    except Exception as e:
        logger.error("Error creating claim token", e)
        return ToolResult(success=False, error="Failed to generate magic link")

    link = f"{ctx.settings.claim_base_url}?token={token}"
    logger.info(f"Issued claim link for user {user.id}")

    return ToolResult(
        success=True,
        data=f"Here is your profile claim link (valid for 24 hours): {link}"
    )


generate_claim_link_tool = BuiltinTool(
    spec=ToolSpec(
        name="generate_claim_link",
        description=(
            "Create a one-time link the current user can open to claim their "
            "community profile on the dashboard. Use this when someone asks how "
            "to claim, edit or log in to their profile."
        ),
        parameter_schema={"type": "object", "properties": {}},
    ),
    handler=_generate_claim_link,
    progress=lambda params: "🔗 Creating your profile claim link...",
)
