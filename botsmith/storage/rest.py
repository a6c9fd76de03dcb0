"""
PostgREST Storage
=================

A `Storage` backend for the dashboard's Supabase database, spoken to over
its PostgREST API with httpx.

PostgREST Notes:
- Filters go in the query string: `community_id=eq.<id>`
- Embedded relations use select syntax: `sender:sender_id(name)`
- RPC functions live under /rest/v1/rpc/<name>
- The service role key is sent both as `apikey` and as a bearer token
"""

from datetime import datetime
from typing import Any

import httpx

from botsmith.storage import (
    ChatMessage,
    CustomToolConfig,
    ExecutionLogEntry,
    KnowledgeEntry,
    MemberProfile,
    PlatformUser,
    ProfileMatch,
    StorageError,
)
from botsmith.utils.logger import Logger

logger = Logger("Storage:Rest")

# semantic_search_users is not community-scoped; rows outside the tenant are dropped
SEARCH_OVERFETCH = 5


class RestStorage:
    """
    Storage over the PostgREST API.

    Example:
        async with httpx.AsyncClient() as http:
            storage = RestStorage(http, "https://abc.supabase.co", service_key)
            tools = await storage.list_custom_tools("community-1")
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str,
        service_key: str,
        timeout_seconds: float = 10.0
    ):
        self.http = http
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.service_key = service_key
        self.timeout = timeout_seconds

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None
    ) -> Any:
        """
        Make an authenticated request to PostgREST.

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            StorageError: On transport failures and statuses >= 400
        """
        headers = self._headers
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = await self.http.request(
                method,
                f"{self.base_url}/{path}",
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout
            )
        except httpx.HTTPError as e:
            raise StorageError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"PostgREST error: {response.status_code} - {response.text[:200]}")
            raise StorageError(f"{method} {path} returned {response.status_code}")

        if not response.content:
            return None
        return response.json()

    async def list_custom_tools(self, tenant_id: str) -> list[CustomToolConfig]:
        rows = await self._request("GET", "custom_tools", params={
            "select": "*",
            "community_id": f"eq.{tenant_id}",
        })
        return [CustomToolConfig.from_row(row) for row in rows or []]

    async def update_custom_tool(self, tool_id: str, fields: dict[str, Any]) -> None:
        body = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in fields.items()
        }
        await self._request(
            "PATCH",
            "custom_tools",
            params={"id": f"eq.{tool_id}"},
            json=body,
            prefer="return=minimal"
        )

    async def insert_tool_log(self, entry: ExecutionLogEntry) -> None:
        await self._request(
            "POST",
            "custom_tool_logs",
            json=entry.to_row(),
            prefer="return=minimal"
        )

    async def list_knowledge(self, tenant_id: str, limit: int) -> list[KnowledgeEntry]:
        rows = await self._request("GET", "memories", params={
            "select": "content,created_at,tags",
            "community_id": f"eq.{tenant_id}",
            "order": "created_at.desc",
            "limit": str(limit),
        })
        return [KnowledgeEntry.from_row(row, tenant_id) for row in rows or []]

    async def insert_knowledge(self, entry: KnowledgeEntry) -> None:
        await self._request(
            "POST",
            "memories",
            json={
                "community_id": entry.tenant_id,
                "content": entry.content,
                "tags": entry.tags,
                "created_by": entry.created_by,
                "metadata": entry.metadata,
            },
            prefer="return=minimal"
        )

    async def list_messages(
        self,
        tenant_id: str,
        since: datetime,
        limit: int
    ) -> list[ChatMessage]:
        rows = await self._request("GET", "messages", params={
            "select": "content,sent_by,created_at,metadata,sender:sender_id(name)",
            "community_id": f"eq.{tenant_id}",
            "created_at": f"gte.{since.isoformat()}",
            "order": "created_at.desc",
            "limit": str(limit),
        })
        return [ChatMessage.from_row(row, tenant_id) for row in rows or []]

    async def list_member_profiles(self, tenant_id: str, limit: int) -> list[MemberProfile]:
        rows = await self._request("GET", "community_members", params={
            "select": "user:user_id(id,name,bio,interests_skills,headline)",
            "community_id": f"eq.{tenant_id}",
            "limit": str(limit),
        })
        return [
            MemberProfile.from_row(row["user"])
            for row in rows or []
            if row.get("user")
        ]

    async def search_profiles(
        self,
        tenant_id: str,
        embedding: list[float],
        threshold: float,
        count: int
    ) -> list[ProfileMatch]:
        """
        Rank the tenant's members by similarity to the embedding.

        The RPC searches every user, so it is asked for extra rows and the
        matches are narrowed to the community's member list.
        """
        members = await self._request("GET", "community_members", params={
            "select": "user_id",
            "community_id": f"eq.{tenant_id}",
        })
        member_ids = {str(row["user_id"]) for row in members or [] if row.get("user_id")}
        if not member_ids:
            return []

        rows = await self._request("POST", "rpc/semantic_search_users", json={
            "query_embedding": embedding,
            "match_threshold": threshold,
            "match_count": count * SEARCH_OVERFETCH,
        })
        matches = [
            ProfileMatch(
                profile=MemberProfile.from_row(row),
                similarity=float(row.get("similarity") or 0.0)
            )
            for row in rows or []
        ]
        return [m for m in matches if m.profile.user_id in member_ids][:count]

    async def get_user_by_platform_id(self, platform_user_id: str) -> PlatformUser | None:
        rows = await self._request("GET", "users", params={
            "select": "id,is_claimed",
            "telegram_user_id": f"eq.{platform_user_id}",
            "limit": "1",
        })
        if not rows:
            return None
        return PlatformUser(
            id=str(rows[0]["id"]),
            platform_user_id=str(platform_user_id),
            is_claimed=bool(rows[0].get("is_claimed")),
        )

    async def insert_claim_token(
        self,
        token: str,
        user_id: str,
        tenant_id: str,
        expires_at: datetime
    ) -> None:
        await self._request(
            "POST",
            "magic_link_tokens",
            json={
                "token": token,
                "user_id": user_id,
                "community_id": tenant_id,
                "expires_at": expires_at.isoformat(),
                "used": False,
            },
            prefer="return=minimal"
        )
