"""
Storage
=======

The typed data-access interface the orchestrator and its tools talk to.

The dashboard's database is an external collaborator. This module defines
the records the core reads and writes, and the `Storage` protocol every
backend implements:

- InMemoryStorage: lists in a process, used by tests and local runs
- RestStorage: the dashboard's PostgREST API over httpx

Every method is keyed by tenant id where the data is tenant-scoped. No
transactions are assumed across calls: the custom tool health update and
its execution log insert are two independent writes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from botsmith.errors import BotsmithError


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp from a row, tolerating the trailing Z."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CustomToolConfig:
    """
    A tenant-defined tool backed by an external HTTP endpoint.

    Attributes:
        id: Row id
        tenant_id: Owning community
        name: Function name advertised to the model
        display_name: Human name used in progress messages
        endpoint_url: URL called on every invocation
        http_method: GET, POST, PUT, PATCH or DELETE
        auth_type: "none", "api_key" or "bearer"
        auth_value: The key or token for auth_type
        parameters: {param_name: {"type", "description", "required"}}
        request_template: JSON body with {{param}} placeholders
        response_mapping: {"format": "template", "template": "..."} or None
        timeout_seconds: Upper bound for the whole HTTP call
        error_count: Consecutive failures, reset on success
        last_error: Most recent failure text
    """
    id: str
    tenant_id: str
    name: str
    display_name: str
    description: str
    endpoint_url: str
    http_method: str = "POST"
    auth_type: str = "none"
    auth_value: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    request_template: Any = None
    response_mapping: dict[str, Any] | None = None
    timeout_seconds: float = 10
    error_count: int = 0
    last_error: str | None = None
    is_enabled: bool = True
    last_test_at: datetime | None = None
    last_test_result: Any = None

    @classmethod
    def from_row(cls, row: dict) -> "CustomToolConfig":
        """Build a config from a `custom_tools` row."""
        auth_type = (row.get("auth_type") or "none").lower()
        if auth_type == "apikey":
            auth_type = "api_key"

        return cls(
            id=str(row["id"]),
            tenant_id=str(row.get("community_id") or row.get("tenant_id") or ""),
            name=row["name"],
            display_name=row.get("display_name") or row["name"],
            description=row.get("description") or "",
            endpoint_url=row["endpoint_url"],
            http_method=(row.get("http_method") or "POST").upper(),
            auth_type=auth_type,
            auth_value=row.get("auth_value"),
            parameters=row.get("parameters") or {},
            request_template=row.get("request_template"),
            response_mapping=row.get("response_mapping"),
            timeout_seconds=row.get("timeout_seconds") or 10,
            error_count=row.get("error_count") or 0,
            last_error=row.get("last_error"),
            is_enabled=bool(row.get("is_enabled", True)),
            last_test_at=_parse_timestamp(row.get("last_test_at")),
            last_test_result=row.get("last_test_result"),
        )


@dataclass
class ExecutionLogEntry:
    """One custom tool invocation, success or failure."""
    tool_id: str
    tenant_id: str
    input: dict[str, Any]
    execution_time_ms: int
    executed_at: datetime
    output: Any = None
    status_code: int | None = None
    error_message: str | None = None
    user_id: str | None = None

    def to_row(self) -> dict:
        """Format as a `custom_tool_logs` row."""
        return {
            "tool_id": self.tool_id,
            "community_id": self.tenant_id,
            "user_id": self.user_id,
            "input_data": self.input,
            "output_data": self.output,
            "status_code": self.status_code,
            "error_message": self.error_message,
            "execution_time_ms": self.execution_time_ms,
            "executed_at": self.executed_at.isoformat(),
        }


@dataclass
class KnowledgeEntry:
    """A saved community memory."""
    tenant_id: str
    content: str
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    created_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict, tenant_id: str = "") -> "KnowledgeEntry":
        return cls(
            tenant_id=str(row.get("community_id") or tenant_id),
            content=row.get("content") or "",
            tags=row.get("tags") or [],
            created_at=_parse_timestamp(row.get("created_at")) or utcnow(),
            created_by=row.get("created_by"),
            metadata=row.get("metadata") or {},
        )


@dataclass
class ChatMessage:
    """A message from the community chat history."""
    tenant_id: str
    content: str
    created_at: datetime
    sender_name: str | None = None

    @classmethod
    def from_row(cls, row: dict, tenant_id: str = "") -> "ChatMessage":
        sender = row.get("sender") or {}
        metadata = row.get("metadata") or {}
        sender_name = (
            sender.get("name")
            or metadata.get("telegram_first_name")
            or metadata.get("telegram_username")
            or row.get("sent_by")
        )
        return cls(
            tenant_id=str(row.get("community_id") or tenant_id),
            content=row.get("content") or "",
            created_at=_parse_timestamp(row.get("created_at")) or utcnow(),
            sender_name=sender_name,
        )


@dataclass
class MemberProfile:
    """A community member's public profile."""
    user_id: str
    name: str | None = None
    headline: str | None = None
    bio: str | None = None
    interests_skills: list[str] = field(default_factory=list)
    embedding: list[float] | None = None

    @classmethod
    def from_row(cls, row: dict) -> "MemberProfile":
        return cls(
            user_id=str(row.get("id") or row.get("user_id") or ""),
            name=row.get("name"),
            headline=row.get("headline"),
            bio=row.get("bio"),
            interests_skills=row.get("interests_skills") or [],
        )


@dataclass
class ProfileMatch:
    """A profile returned by similarity search."""
    profile: MemberProfile
    similarity: float


@dataclass
class PlatformUser:
    """A dashboard user linked to a messaging-platform account."""
    id: str
    platform_user_id: str
    is_claimed: bool = False


class Storage(Protocol):
    """Operations the orchestrator and built-in tools need from storage."""

    async def list_custom_tools(self, tenant_id: str) -> list[CustomToolConfig]:
        ...

    async def update_custom_tool(self, tool_id: str, fields: dict[str, Any]) -> None:
        ...

    async def insert_tool_log(self, entry: ExecutionLogEntry) -> None:
        ...

    async def list_knowledge(self, tenant_id: str, limit: int) -> list[KnowledgeEntry]:
        ...

    async def insert_knowledge(self, entry: KnowledgeEntry) -> None:
        ...

    async def list_messages(
        self,
        tenant_id: str,
        since: datetime,
        limit: int
    ) -> list[ChatMessage]:
        ...

    async def list_member_profiles(self, tenant_id: str, limit: int) -> list[MemberProfile]:
        ...

    async def search_profiles(
        self,
        tenant_id: str,
        embedding: list[float],
        threshold: float,
        count: int
    ) -> list[ProfileMatch]:
        ...

    async def get_user_by_platform_id(self, platform_user_id: str) -> PlatformUser | None:
        ...

    async def insert_claim_token(
        self,
        token: str,
        user_id: str,
        tenant_id: str,
        expires_at: datetime
    ) -> None:
        ...


class StorageError(BotsmithError):
    """A storage backend rejected or failed an operation."""


from botsmith.storage.memory import InMemoryStorage  # noqa: E402
from botsmith.storage.rest import RestStorage  # noqa: E402

__all__ = [
    "ChatMessage",
    "CustomToolConfig",
    "ExecutionLogEntry",
    "InMemoryStorage",
    "KnowledgeEntry",
    "MemberProfile",
    "PlatformUser",
    "ProfileMatch",
    "RestStorage",
    "Storage",
    "StorageError",
    "utcnow",
]
