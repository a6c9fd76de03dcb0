"""
Tools System
============

Tools are named capabilities the completion service may ask to invoke in
the middle of a conversation. There are two kinds:

1. Built-in tools: compiled into this package (web search, community
   memory, chat history, member profiles, webpage reading, image scoring,
   profile claim links). A tenant switches each one on or off.
2. Custom tools: defined by a tenant in the dashboard, each backed by an
   external HTTP endpoint (see `botsmith.tools.custom`).

How Tools Work:
1. At the start of a run the registry is built for one tenant
2. The registry's schemas are advertised to the completion service
3. The model requests a tool by name with JSON arguments
4. The orchestrator checks the name against the registry and invokes it
5. The result text goes back to the model as a `tool` message

This module provides:
- ToolSpec: the schema describing one callable tool
- ToolResult: standardized result of a tool invocation
- ToolContext / ToolSettings: what a tool may touch during one run
- BuiltinTool / CustomTool: the two tool variants, one `invoke` each
- ToolRegistry: the per-run set of tools, keyed by name
"""

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import httpx

from botsmith.storage import CustomToolConfig, Storage
from botsmith.utils.logger import Logger

if TYPE_CHECKING:
    from botsmith.rag.embeddings import EmbeddingGenerator
    from botsmith.tools.custom import CustomToolExecutor

logger = Logger("Tools")


@dataclass
class ToolResult:
    """
    Standardized result from tool execution.

    Attributes:
        success: Whether the tool executed successfully
        data: The result data (text for most tools)
        error: Error message if success is False
    """
    success: bool
    data: Any = None
    error: str | None = None

    def to_message(self) -> str:
        """Format as the content of a `tool` message."""
        if not self.success:
            return f"Error: {self.error}"
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, default=str)


@dataclass(frozen=True)
class ToolSpec:
    """
    Schema of one callable tool.

    Attributes:
        name: Unique name within one registry
        description: What the tool does (shown to the model)
        parameter_schema: {"type": "object", "properties": ..., "required": ...}
        is_custom: True for tenant-defined tools
        custom_config: The backing config for custom tools
    """
    name: str
    description: str
    parameter_schema: dict
    is_custom: bool = False
    custom_config: CustomToolConfig | None = None

    def to_openai_function(self) -> dict:
        """
        Convert to OpenAI function calling format.

        Returns:
            Dict in the format expected by the chat completions API
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameter_schema,
            }
        }


@dataclass(frozen=True)
class ToolSettings:
    """Per-deployment settings for the built-in tools."""
    tavily_api_key: str | None = None
    http_timeout_seconds: float = 15.0
    image_scoring_url: str | None = None
    image_scoring_api_key: str | None = None
    claim_base_url: str = "https://bot-builder.app/claim"


@dataclass
class ToolContext:
    """
    Everything a tool may use during one run.

    Attributes:
        tenant_id: The community the run belongs to
        storage: Data access for the tenant's records
        http: Shared HTTP client for outbound calls
        settings: Built-in tool settings
        embeddings: Embedding service for semantic search
        user_id: Dashboard user behind the message, if known
        platform_user_id: Messaging-platform id of the sender, if known
        image_url: Image attached to the current message, if any
    """
    tenant_id: str
    storage: Storage
    http: httpx.AsyncClient
    settings: ToolSettings = field(default_factory=ToolSettings)
    embeddings: "EmbeddingGenerator | None" = None
    user_id: str | None = None
    platform_user_id: str | None = None
    image_url: str | None = None


Handler = Callable[[dict, ToolContext], Awaitable[ToolResult]]


@dataclass(frozen=True)
class BuiltinTool:
    """
    A compiled-in capability.

    Attributes:
        spec: The advertised schema
        handler: Async function running the tool
        progress: Builds the "now doing X" message from the arguments
    """
    spec: ToolSpec
    handler: Handler
    progress: Callable[[dict], str] | None = None

    @property
    def name(self) -> str:
        return self.spec.name

    def progress_message(self, args: dict) -> str:
        if self.progress:
            return self.progress(args)
        return f"🔧 Using tool: {self.name}"

    async def invoke(self, args: dict, ctx: ToolContext) -> ToolResult:
        return await self.handler(args, ctx)


@dataclass(frozen=True)
class CustomTool:
    """A tenant-defined tool, invoked through the custom tool executor."""
    spec: ToolSpec
    config: CustomToolConfig
    executor: "CustomToolExecutor"

    @property
    def name(self) -> str:
        return self.spec.name

    def progress_message(self, args: dict) -> str:
        return f"🔧 Using {self.config.display_name}..."

    async def invoke(self, args: dict, ctx: ToolContext) -> ToolResult:
        outcome = await self.executor.execute(self.config, args, ctx)
        if outcome.success:
            return ToolResult(success=True, data=outcome.text)
        return ToolResult(success=False, error=outcome.text)


Tool = BuiltinTool | CustomTool


def custom_tool_schema(parameters: dict[str, Any]) -> dict:
    """
    Derive a JSON schema from a custom tool's stored parameter map.

    Each parameter is {"type", "description", "required"}; `required`
    defaults to false.
    """
    properties = {}
    required = []

    for name, param in (parameters or {}).items():
        param = param or {}
        properties[name] = {
            "type": param.get("type") or "string",
            "description": param.get("description") or "",
        }
        if param.get("required", False):
            required.append(name)

    return {"type": "object", "properties": properties, "required": required}


def builtin_tools() -> list[BuiltinTool]:
    """
    The full built-in catalogue, in advertisement order.

    Imported lazily: the tool modules import this package.
    """
    from botsmith.tools import image_tools, knowledge_tools, profile_tools, web_tools

    return [
        web_tools.web_search_tool,
        knowledge_tools.search_memory_tool,
        knowledge_tools.search_chat_history_tool,
        knowledge_tools.save_memory_tool,
        profile_tools.get_member_profiles_tool,
        profile_tools.semantic_profile_search_tool,
        web_tools.scrape_webpage_tool,
        image_tools.score_image_tool,
        profile_tools.generate_claim_link_tool,
    ]


class ToolRegistry:
    """
    The set of tools callable during one run.

    Built once per invocation and never changed afterwards. Names are
    unique; built-in names always win over custom tools.

    Example:
        registry = ToolRegistry.build(
            enabled_map={"web_search": True, "save_memory": True},
            custom_configs=await storage.list_custom_tools(tenant_id),
            executor=CustomToolExecutor(http, storage)
        )

        if registry.has("web_search"):
            tool = registry.get("web_search")

        functions = registry.get_openai_functions()
    """

    def __init__(self, tools: list[Tool] | None = None):
        """Initialize the registry with an ordered list of tools."""
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            if tool.name in self._tools:
                raise ValueError(f"Tool '{tool.name}' is already registered")
            self._tools[tool.name] = tool

    @classmethod
    def build(
        cls,
        enabled_map: dict[str, Any] | None,
        custom_configs: list[CustomToolConfig],
        executor: "CustomToolExecutor",
        catalogue: list[BuiltinTool] | None = None
    ) -> "ToolRegistry":
        """
        Assemble the registry for one tenant.

        Args:
            enabled_map: {tool_name: bool}; a built-in is kept only when
                its entry is present and exactly True
            custom_configs: The tenant's custom tool rows
            executor: Runs custom tools
            catalogue: Built-ins to filter (defaults to all of them)

        Returns:
            A registry of enabled built-ins followed by enabled custom tools
        """
        enabled_map = enabled_map or {}
        catalogue = builtin_tools() if catalogue is None else catalogue

        reserved = {tool.name for tool in catalogue}
        tools: list[Tool] = [
            tool for tool in catalogue
            if enabled_map.get(tool.name) is True
        ]

        seen: set[str] = set()
        for config in custom_configs:
            if not config.is_enabled:
                continue

            if config.name in reserved:
                logger.warning(
                    f"Custom tool '{config.name}' shadows a built-in tool, skipping",
                    {"tool_id": config.id, "tenant_id": config.tenant_id}
                )
                continue

            if config.name in seen:
                logger.warning(f"Duplicate custom tool name '{config.name}', keeping the first")
                continue
            seen.add(config.name)

            spec = ToolSpec(
                name=config.name,
                description=config.description,
                parameter_schema=custom_tool_schema(config.parameters),
                is_custom=True,
                custom_config=config,
            )
            tools.append(CustomTool(spec=spec, config=config, executor=executor))

        registry = cls(tools)
        logger.debug(f"Registry built with {len(registry)} tools", {"tools": registry.names()})
        return registry

    def get(self, name: str) -> Tool | None:
        """
        Get a tool by name.

        Returns:
            The tool, or None if not in this registry
        """
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        """Get list of all tool names."""
        return list(self._tools.keys())

    def specs(self) -> list[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def get_openai_functions(self) -> list[dict]:
        """
        Get all tools in OpenAI function format.

        Returns:
            List of function definitions for the completion request
        """
        return [spec.to_openai_function() for spec in self.specs()]

    def __len__(self) -> int:
        return len(self._tools)


__all__ = [
    "BuiltinTool",
    "CustomTool",
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "ToolResult",
    "ToolSettings",
    "ToolSpec",
    "builtin_tools",
    "custom_tool_schema",
]
