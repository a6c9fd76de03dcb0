"""
In-Memory Storage
=================

A `Storage` backend that keeps every table in a Python list.

Used by the test suite and by local runs of the entry point without a
database. Profile similarity search computes cosine similarity with numpy
over the stored embeddings, the same way the dashboard's
`semantic_search_users` function does it in SQL.
"""

import copy
from dataclasses import replace
from datetime import datetime
from typing import Any

import numpy as np

from botsmith.storage import (
    ChatMessage,
    CustomToolConfig,
    ExecutionLogEntry,
    KnowledgeEntry,
    MemberProfile,
    PlatformUser,
    ProfileMatch,
)
from botsmith.utils.logger import Logger

logger = Logger("Storage:Memory")


class InMemoryStorage:
    """
    Process-local storage.

    Example:
        storage = InMemoryStorage()
        storage.custom_tools.append(CustomToolConfig(...))
        tools = await storage.list_custom_tools("community-1")
    """

    def __init__(self):
        self.custom_tools: list[CustomToolConfig] = []
        self.tool_logs: list[ExecutionLogEntry] = []
        self.knowledge: list[KnowledgeEntry] = []
        self.messages: list[ChatMessage] = []
        self.members: dict[str, list[MemberProfile]] = {}
        self.users: list[PlatformUser] = []
        self.claim_tokens: list[dict[str, Any]] = []

    async def list_custom_tools(self, tenant_id: str) -> list[CustomToolConfig]:
        # Copies, so a run never sees health updates made during it
        return [
            copy.deepcopy(tool)
            for tool in self.custom_tools
            if tool.tenant_id == tenant_id
        ]

    async def update_custom_tool(self, tool_id: str, fields: dict[str, Any]) -> None:
        for index, tool in enumerate(self.custom_tools):
            if tool.id == tool_id:
                self.custom_tools[index] = replace(tool, **fields)
                return
        logger.warning(f"update_custom_tool: no tool with id {tool_id}")

    async def insert_tool_log(self, entry: ExecutionLogEntry) -> None:
        self.tool_logs.append(entry)

    async def list_knowledge(self, tenant_id: str, limit: int) -> list[KnowledgeEntry]:
        entries = [e for e in self.knowledge if e.tenant_id == tenant_id]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    async def insert_knowledge(self, entry: KnowledgeEntry) -> None:
        self.knowledge.append(entry)

    async def list_messages(
        self,
        tenant_id: str,
        since: datetime,
        limit: int
    ) -> list[ChatMessage]:
        messages = [
            m for m in self.messages
            if m.tenant_id == tenant_id and m.created_at >= since
        ]
        messages.sort(key=lambda m: m.created_at, reverse=True)
        return messages[:limit]

    async def list_member_profiles(self, tenant_id: str, limit: int) -> list[MemberProfile]:
        return list(self.members.get(tenant_id, []))[:limit]

    async def search_profiles(
        self,
        tenant_id: str,
        embedding: list[float],
        threshold: float,
        count: int
    ) -> list[ProfileMatch]:
        candidates = [
            profile
            for profile in self.members.get(tenant_id, [])
            if profile.embedding
        ]
        if not candidates:
            return []

        query = np.array(embedding)
        matrix = np.array([p.embedding for p in candidates])

        # cos_sim = (A · B) / (||A|| * ||B||)
        query_norm = np.linalg.norm(query) or 1.0
        doc_norms = np.linalg.norm(matrix, axis=1)
        doc_norms = np.where(doc_norms == 0, 1, doc_norms)
        similarities = np.dot(matrix, query) / (doc_norms * query_norm)

        matches = [
            ProfileMatch(profile=profile, similarity=float(score))
            for profile, score in zip(candidates, similarities)
            if score >= threshold
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:count]

    async def get_user_by_platform_id(self, platform_user_id: str) -> PlatformUser | None:
        for user in self.users:
            if user.platform_user_id == str(platform_user_id):
                return user
        return None

    async def insert_claim_token(
        self,
        token: str,
        user_id: str,
        tenant_id: str,
        expires_at: datetime
    ) -> None:
        self.claim_tokens.append({
            "token": token,
            "user_id": user_id,
            "community_id": tenant_id,
            "expires_at": expires_at,
            "used": False,
        })
