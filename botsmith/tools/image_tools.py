"""
Image Tools
===========

score_image: passes the image attached to the current message to an
external scoring service and returns its verdict.

The tool needs an image. The model can call it on a text-only message, so
the precondition is checked first and answered with guidance instead of
a pointless network call.
"""

import httpx

from botsmith.tools import BuiltinTool, ToolContext, ToolResult, ToolSpec
from botsmith.utils.logger import Logger

logger = Logger("ImageTools")


def _format_score(data: dict) -> str:
    parts = []
    if data.get("score") is not None:
        parts.append(f"Score: {data['score']}")
    if data.get("feedback"):
        parts.append(f"Feedback: {data['feedback']}")
    return "\n".join(parts) if parts else str(data)


async def _score_image(params: dict, ctx: ToolContext) -> ToolResult:
    """Score the run's image against optional criteria."""
    if not ctx.image_url:
        return ToolResult(
            success=True,
            data="There is no image to score. Ask the user to send the image "
                 "together with their message."
        )

    url = ctx.settings.image_scoring_url
    if not url:
        return ToolResult(success=False, error="Image scoring is not configured")

    headers = {"Content-Type": "application/json"}
    if ctx.settings.image_scoring_api_key:
        headers["Authorization"] = f"Bearer {ctx.settings.image_scoring_api_key}"

    logger.info("Scoring image")

    try:
        response = await ctx.http.post(
            url,
            headers=headers,
            json={
                "image_url": ctx.image_url,
                "criteria": params.get("criteria") or "",
                "community_id": ctx.tenant_id,
            },
            timeout=ctx.settings.http_timeout_seconds
        )
    except httpx.HTTPError as e:
        logger.warning(f"Image scoring request failed: {e}")
        return ToolResult(success=False, error="The image scoring service could not be reached")

    if response.status_code >= 400:
        logger.warning(f"Image scoring returned {response.status_code}")
        return ToolResult(
            success=False,
            error=f"The image scoring service returned status {response.status_code}"
        )

    try:
        data = response.json()
    except ValueError:
        return ToolResult(success=True, data=response.text)

    return ToolResult(success=True, data=_format_score(data) if isinstance(data, dict) else data)


score_image_tool = BuiltinTool(
    spec=ToolSpec(
        name="score_image",
        description=(
            "Score the image the user attached to their message. Use this when "
            "the user asks you to rate, judge or evaluate a picture."
        ),
        parameter_schema={
            "type": "object",
            "properties": {
                "criteria": {
                    "type": "string",
                    "description": "What the image should be judged on (optional)"
                }
            }
        },
    ),
    handler=_score_image,
    progress=lambda params: "🖼️ Taking a look at your image...",
)
