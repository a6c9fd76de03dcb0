"""
Web Tools
=========

Built-in tools that reach the open web:
- web_search: Tavily first, DuckDuckGo Instant Answer as fallback
- scrape_webpage: fetch one page and reduce it to readable text

Search Providers:
- Tavily is built for agents: it returns an answer plus sources. It needs
  an API key, so it is skipped when none is configured.
- DuckDuckGo Instant Answer needs no key but covers far less, especially
  for live events.

Both tools report every failure as a ToolResult instead of raising.
"""

import html
import re

import httpx

from botsmith.tools import BuiltinTool, ToolContext, ToolResult, ToolSpec
from botsmith.utils.logger import Logger

logger = Logger("WebTools")

TAVILY_API = "https://api.tavily.com/search"
DUCKDUCKGO_API = "https://api.duckduckgo.com/"

USER_AGENT = "Mozilla/5.0 (compatible; TelegramBot/1.0)"

# Page text handed to the model is cut to this many characters
MAX_PAGE_CHARS = 6000
TRUNCATION_MARKER = "\n\n[Content truncated...]"


# ==============================================================================
# Tool: Web Search
# ==============================================================================

async def _search_tavily(query: str, ctx: ToolContext) -> str | None:
    """
    Query Tavily.

    Returns:
        Formatted answer and sources, or None when Tavily is not
        configured, fails, or finds nothing
    """
    api_key = ctx.settings.tavily_api_key
    if not api_key:
        return None

    try:
        response = await ctx.http.post(
            TAVILY_API,
            json={
                "api_key": api_key,
                "query": query,
                "search_depth": "advanced",
                "include_answer": True,
                "max_results": 5,
            },
            timeout=ctx.settings.http_timeout_seconds
        )

        if response.status_code >= 400:
            logger.warning(f"Tavily API returned non-OK status: {response.status_code}")
            return None

        data = response.json()

    except Exception as e:
        logger.error("Tavily search failed, falling back to DuckDuckGo", e)
        return None

    parts = []
    if data.get("answer"):
        parts.append(f"Answer: {data['answer']}")

    results = data.get("results") or []
    if results:
        top = "\n".join(
            f"• {r.get('title') or r.get('url')} - {r.get('url')}"
            for r in results[:3]
        )
        parts.append(f"Top sources:\n{top}")

    return "\n\n".join(parts) if parts else None


async def _search_duckduckgo(query: str, ctx: ToolContext) -> str | None:
    """Query DuckDuckGo Instant Answer. Returns None on failure or no content."""
    try:
        response = await ctx.http.get(
            DUCKDUCKGO_API,
            params={"q": query, "format": "json", "no_html": "1"},
            timeout=ctx.settings.http_timeout_seconds
        )
        if response.status_code >= 400:
            logger.warning(f"DuckDuckGo returned non-OK status: {response.status_code}")
            return None
        data = response.json()

    except Exception as e:
        logger.error("DuckDuckGo search failed", e)
        return None

    parts = []
    if data.get("AbstractText"):
        parts.append(f"Summary: {data['AbstractText']}")

    topics = [
        f"• {topic['Text']}"
        for topic in data.get("RelatedTopics") or []
        if isinstance(topic, dict) and topic.get("Text")
    ][:5]
    if topics:
        parts.append("Related Info:\n" + "\n".join(topics))

    return "\n\n".join(parts) if parts else None


async def _web_search(params: dict, ctx: ToolContext) -> ToolResult:
    """Search the web, falling back from Tavily to DuckDuckGo."""
    query = str(params.get("query") or "").strip()
    if not query:
        return ToolResult(success=False, error="A search query is required")

    logger.info(f"Web searching: {query!r}")

    text = await _search_tavily(query, ctx)
    if text is None:
        text = await _search_duckduckgo(query, ctx)

    if text is None:
        text = f'No results found for "{query}". Try a different search term.'

    return ToolResult(success=True, data=text)


def _web_search_progress(params: dict) -> str:
    if params.get("query"):
        return f'🌐 Searching the web for "{params["query"]}"...'
    return "🌐 Searching the web..."


web_search_tool = BuiltinTool(
    spec=ToolSpec(
        name="web_search",
        description=(
            "Search the web for current information, news, facts, or any "
            "information not in your knowledge base. Use this when you need "
            "up-to-date information or external knowledge."
        ),
        parameter_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query to look up"
                }
            },
            "required": ["query"]
        },
    ),
    handler=_web_search,
    progress=_web_search_progress,
)


# ==============================================================================
# Tool: Scrape Webpage
# ==============================================================================

_TITLE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_SCRIPT = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_STYLE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")

# Block-level tags become line breaks before the remaining tags are dropped
_BLOCK_BREAKS = [
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</div>", re.IGNORECASE), "\n"),
    (re.compile(r"</h[1-6]>", re.IGNORECASE), "\n\n"),
    (re.compile(r"<li(\s[^>]*)?>", re.IGNORECASE), "• "),
    (re.compile(r"</li>", re.IGNORECASE), "\n"),
]


def extract_text(page: str) -> tuple[str, str]:
    """
    Reduce an HTML page to its title and readable text.

    Strips script and style blocks and all tags, decodes entities, trims
    every line, and drops empty and repeated lines.

    Returns:
        (title, text)
    """
    title_match = _TITLE.search(page)
    title = html.unescape(title_match.group(1).strip()) if title_match else "No title"

    cleaned = _SCRIPT.sub("", page)
    cleaned = _STYLE.sub("", cleaned)
    for pattern, replacement in _BLOCK_BREAKS:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = _TAG.sub(" ", cleaned)
    cleaned = html.unescape(cleaned).replace("\xa0", " ")

    lines: list[str] = []
    seen: set[str] = set()
    for line in cleaned.split("\n"):
        line = " ".join(line.split())
        if line and line not in seen:
            seen.add(line)
            lines.append(line)

    return title, "\n".join(lines)


def truncate(text: str, limit: int = MAX_PAGE_CHARS) -> str:
    """Cut text to `limit` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


async def _scrape_webpage(params: dict, ctx: ToolContext) -> ToolResult:
    """Fetch a page and return its readable text."""
    url = str(params.get("url") or "").strip()

    if not url.startswith(("http://", "https://")):
        return ToolResult(
            success=False,
            error=f'Invalid URL: "{url}". URL must start with http:// or https://'
        )

    logger.info(f"Scraping webpage: {url}")

    try:
        response = await ctx.http.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=ctx.settings.http_timeout_seconds,
            follow_redirects=True
        )
    except httpx.HTTPError as e:
        logger.warning(f"Failed to fetch {url}: {e}")
        return ToolResult(success=False, error=f"Failed to scrape {url}: {e}")

    if response.status_code >= 400:
        return ToolResult(
            success=False,
            error=f"Failed to fetch {url}: {response.status_code} {response.reason_phrase}"
        )

    title, text = extract_text(response.text)
    return ToolResult(success=True, data=f"📄 **{title}**\n\nURL: {url}\n\n{truncate(text)}")


def _scrape_progress(params: dict) -> str:
    if params.get("url"):
        return f"📄 Reading webpage: {params['url']}..."
    return "📄 Reading webpage..."


scrape_webpage_tool = BuiltinTool(
    spec=ToolSpec(
        name="scrape_webpage",
        description=(
            "Scrape and read the entire content of a specific webpage. Use this "
            "to extract detailed information from articles, documentation, blog "
            "posts, or any web page when you need the full content rather than "
            "just search results."
        ),
        parameter_schema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The full URL of the webpage to scrape (must start with http:// or https://)"
                }
            },
            "required": ["url"]
        },
    ),
    handler=_scrape_webpage,
    progress=_scrape_progress,
)
