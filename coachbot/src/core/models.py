"""
CoachBot - Data Model
======================
Pydantic models shared by the ingestion, retrieval, memory and
response-assembly layers.

Ownership
---------
``DocumentChunk`` / ``EmbeddedDocument``
    Produced by the ingestion pipeline.  Frozen — a changed source is
    superseded (deleted then recreated), never edited in place.
``RetrievalResult``
    Ephemeral, one list per query, ranked by ``similarity_score``.
``ConversationSummary``
    Append-only; the newest row per (user, coach) is the current one.
``UserMemory``
    One mutable record per user, merged incrementally.
``KnowledgeEntry``
    Static per-coach configuration for the pattern matcher.
``CoachContext`` / ``UserProfile``
    Supplied by the caller.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "coach"]
AccessTier = Literal["free", "basic", "pro"]

# Ordered lowest → highest; a tier filter admits every tier at or below it.
ACCESS_TIERS: tuple[str, ...] = ("free", "basic", "pro")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════
#  CORPUS
# ══════════════════════════════════════════════════════════════════════


class DocumentChunk(BaseModel):
    """A boundary-aware slice ``content == text[start_char:end_char].strip()``."""

    model_config = ConfigDict(frozen=True)

    content: str
    source_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    start_char: int = Field(ge=0)
    end_char: int = Field(ge=0)


class DocumentMetadata(BaseModel):
    """Free-form metadata stored next to every embedded chunk."""

    model_config = ConfigDict(frozen=True, extra="allow")

    coach_id: str
    user_id: str = ""
    title: str = "Untitled"
    category: str = "General"
    access_tier: AccessTier = "free"
    source_type: str = "document"


class EmbeddedDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk: DocumentChunk
    vector: list[float]
    metadata: DocumentMetadata


class RetrievalFilters(BaseModel):
    coach_id: str
    user_id: str | None = None
    access_tier: AccessTier | None = None


class RetrievalResult(BaseModel):
    document_id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    similarity_score: float = Field(ge=0.0, le=1.0)
    is_fallback: bool = False

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or "Untitled")

    @property
    def category(self) -> str:
        return str(self.metadata.get("category") or "General")


# ══════════════════════════════════════════════════════════════════════
#  CONVERSATION & MEMORY
# ══════════════════════════════════════════════════════════════════════


class ChatMessage(BaseModel):
    message_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=utc_now)
    user_id: str | None = None
    coach_id: str | None = None


class ConversationSummary(BaseModel):
    user_id: str
    coach_id: str
    summary_text: str
    key_facts: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    last_message_id: str
    message_count: int = Field(ge=0)
    created_at: datetime = Field(default_factory=utc_now)


class UserMemory(BaseModel):
    user_id: str
    facts: dict[str, Any] = Field(default_factory=dict)
    preferences: dict[str, Any] = Field(default_factory=dict)
    health_data: dict[str, Any] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utc_now)


class ConversationContext(BaseModel):
    """Read-side view of memory handed to the response assembler."""

    recent_messages: list[ChatMessage] = Field(default_factory=list)
    summary: str | None = None
    key_facts: list[str] = Field(default_factory=list)
    previous_topics: list[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════
#  KNOWLEDGE MATCHING
# ══════════════════════════════════════════════════════════════════════


class KnowledgeEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_id: str
    category: str
    trigger_patterns: tuple[str, ...]
    answer_template: str
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    priority: int = 0


class MatchResult(BaseModel):
    entry: KnowledgeEntry
    confidence: float = Field(ge=0.0, le=1.0)


# ══════════════════════════════════════════════════════════════════════
#  CALLER-SUPPLIED CONTEXT
# ══════════════════════════════════════════════════════════════════════


class CoachContext(BaseModel):
    coach_id: str
    display_name: str
    coach_type: str = "general"
    specialties: list[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    name: str | None = None
    age: int | None = None
    gender: str | None = None
    height: int | None = None
    weight: float | None = None
    units: Literal["metric", "imperial"] = "metric"
    activity_level: str = ""
    goal: str | None = None
    health_goals: list[str] = Field(default_factory=list)
    dietary_preferences: list[str] = Field(default_factory=list)
    health_conditions: list[str] = Field(default_factory=list)


class GenerationRequest(BaseModel):
    """Prompt components for one generation call."""

    query: str
    system_prompt: str = ""
    user_context: str = ""
    conversation_context: str = ""
    knowledge_context: str = ""
    temperature: float = 0.7
    max_tokens: int = 256
