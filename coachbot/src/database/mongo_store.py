"""
CoachBot - MongoDB Stores
==========================
Async persistence for conversation memory and coach configuration,
backed by ``motor``.

Collections
-----------
``messages``
    One document per chat message, keyed by ``message_id``.
``conversation_summaries``
    Append-only; newest ``created_at`` per (user, coach) is current.
``user_memories``
    One document per ``user_id``; written with ``upsert=True``.
``knowledge_bases``
    Per-coach ``KnowledgeEntry`` rows (``is_active``, ``priority``).
``coaches``
    Coach documents; only ``system_prompt`` is read here.

Every driver error is wrapped into ``PersistenceFailed``.

AWS Lambda Readiness
--------------------
The motor client is a **module-level singleton** and survives warm
invocations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from coachbot.config.settings import settings
from coachbot.src.core.errors import PersistenceFailed
from coachbot.src.core.models import ChatMessage, ConversationSummary, KnowledgeEntry, UserMemory
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)

MongoDocument = dict[str, Any]

# ══════════════════════════════════════════════════════════════════════
#  MONGODB SINGLETON CLIENT
# ══════════════════════════════════════════════════════════════════════

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def _get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value(), tz_aware=True)
        logger.info("MongoDB async client created (singleton).")
    return _mongo_client


def get_database(db: motor.motor_asyncio.AsyncIOMotorDatabase | None = None) -> motor.motor_asyncio.AsyncIOMotorDatabase:
    return db if db is not None else _get_mongo_client()[settings.MONGO_DB_NAME]


def _strip_id(doc: MongoDocument) -> MongoDocument:
    doc.pop("_id", None)
    return doc


# ══════════════════════════════════════════════════════════════════════
#  MESSAGES
# ══════════════════════════════════════════════════════════════════════


class MongoMessageStore:
    """Chat messages, isolated by (user_id, coach_id)."""

    __slots__ = ("_collection",)

    def __init__(self, db: motor.motor_asyncio.AsyncIOMotorDatabase | None = None, collection_name: str = "messages") -> None:
        self._collection = get_database(db)[collection_name]


    async def add_message(self, message: ChatMessage) -> None:
        try:
            await self._collection.insert_one(message.model_dump())
        except PyMongoError as exc:
            logger.error("[MONGO] Failed to store message %s: %s", message.message_id, exc)
            raise PersistenceFailed(f"Message write failed: {type(exc).__name__}") from exc


    async def list_since(self, user_id: str, coach_id: str, since: datetime | None) -> list[ChatMessage]:
        """Messages newer than *since* (all if ``None``), oldest first."""
        query: MongoDocument = {"user_id": user_id, "coach_id": coach_id}
        if since is not None:
            query["created_at"] = {"$gt": since}
        try:
            docs = await self._collection.find(query).sort("created_at", ASCENDING).to_list(length=None)
        except PyMongoError as exc:
            raise PersistenceFailed(f"Message read failed: {type(exc).__name__}") from exc
        return [ChatMessage(**_strip_id(doc)) for doc in docs]


    async def recent(self, user_id: str, coach_id: str, limit: int) -> list[ChatMessage]:
        """The last *limit* messages, oldest first."""
        try:
            cursor = self._collection.find({"user_id": user_id, "coach_id": coach_id}).sort("created_at", DESCENDING).limit(limit)
            docs = await cursor.to_list(length=limit)
        except PyMongoError as exc:
            raise PersistenceFailed(f"Message read failed: {type(exc).__name__}") from exc
        return [ChatMessage(**_strip_id(doc)) for doc in reversed(docs)]


# ══════════════════════════════════════════════════════════════════════
#  SUMMARIES
# ══════════════════════════════════════════════════════════════════════


class MongoSummaryStore:
    __slots__ = ("_collection",)

    def __init__(self, db: motor.motor_asyncio.AsyncIOMotorDatabase | None = None, collection_name: str = "conversation_summaries") -> None:
        self._collection = get_database(db)[collection_name]


    async def append(self, summary: ConversationSummary) -> None:
        try:
            await self._collection.insert_one(summary.model_dump())
        except PyMongoError as exc:
            logger.error("[MONGO] Failed to append summary for user=%s coach=%s: %s", summary.user_id, summary.coach_id, exc)
            raise PersistenceFailed(f"Summary write failed: {type(exc).__name__}") from exc


    async def latest(self, user_id: str, coach_id: str) -> ConversationSummary | None:
        try:
            doc = await self._collection.find_one({"user_id": user_id, "coach_id": coach_id}, sort=[("created_at", DESCENDING)])
        except PyMongoError as exc:
            raise PersistenceFailed(f"Summary read failed: {type(exc).__name__}") from exc
        return ConversationSummary(**_strip_id(doc)) if doc else None


# ══════════════════════════════════════════════════════════════════════
#  USER MEMORY
# ══════════════════════════════════════════════════════════════════════


class MongoMemoryStore:
    __slots__ = ("_collection",)

    def __init__(self, db: motor.motor_asyncio.AsyncIOMotorDatabase | None = None, collection_name: str = "user_memories") -> None:
        self._collection = get_database(db)[collection_name]


    async def get(self, user_id: str) -> UserMemory | None:
        try:
            doc = await self._collection.find_one({"user_id": user_id})
        except PyMongoError as exc:
            raise PersistenceFailed(f"Memory read failed: {type(exc).__name__}") from exc
        return UserMemory(**_strip_id(doc)) if doc else None


    async def upsert(self, memory: UserMemory) -> None:
        """Insert if absent, else update.  Idempotent."""
        payload = memory.model_dump()
        try:
            await self._collection.update_one({"user_id": memory.user_id}, {"$set": payload}, upsert=True)
        except PyMongoError as exc:
            logger.error("[MONGO] Failed to upsert memory for user=%s: %s", memory.user_id, exc)
            raise PersistenceFailed(f"Memory write failed: {type(exc).__name__}") from exc


# ══════════════════════════════════════════════════════════════════════
#  COACH KNOWLEDGE
# ══════════════════════════════════════════════════════════════════════


class MongoKnowledgeStore:
    """Read-only access to per-coach knowledge entries and prompts."""

    __slots__ = ("_entries", "_coaches")

    def __init__(self, db: motor.motor_asyncio.AsyncIOMotorDatabase | None = None) -> None:
        database = get_database(db)
        self._entries = database["knowledge_bases"]
        self._coaches = database["coaches"]


    async def list_entries(self, coach_id: str) -> list[KnowledgeEntry]:
        """Active entries for *coach_id*, highest priority first."""
        try:
            cursor = self._entries.find({"coach_id": coach_id, "is_active": True}).sort("priority", DESCENDING)
            docs = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise PersistenceFailed(f"Knowledge read failed: {type(exc).__name__}") from exc

        return [
            KnowledgeEntry(entry_id=str(doc.get("entry_id") or doc["_id"]), category=doc.get("category", "general"), trigger_patterns=tuple(doc.get("trigger_patterns", ())), answer_template=doc["answer_template"], min_confidence=doc.get("min_confidence", 0.5), priority=doc.get("priority", 0))
            for doc in docs
        ]


    async def get_system_prompt(self, coach_id: str) -> str | None:
        try:
            doc = await self._coaches.find_one({"coach_id": coach_id}, {"system_prompt": 1})
        except PyMongoError as exc:
            raise PersistenceFailed(f"Coach read failed: {type(exc).__name__}") from exc
        return (doc or {}).get("system_prompt") or None
