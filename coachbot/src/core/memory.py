"""
CoachBot - Conversation Memory Manager
=======================================
Per-(user, coach) conversation memory: read-side context assembly and
best-effort write-side summarization and fact merging.

State machine
-------------
``ACCUMULATING`` → once the number of persisted messages newer than the
latest summary reaches ``SUMMARY_THRESHOLD`` → ``SUMMARIZING`` → a new
``ConversationSummary`` is appended → back to ``ACCUMULATING`` with the
count at zero.  The count is re-derived from the message store on every
check, so it survives process restarts.  Concurrent updates for one pair are
serialized in-process, so reaching the threshold writes one summary.

Stores
------
The manager talks to three async stores described by the protocols
below.  ``coachbot.src.database.mongo_store`` provides the motor-backed
implementations; tests inject in-memory fakes.

Summarizers
-----------
``TemplateSummarizer`` (default) builds the canned summary text.
``LLMSummarizer`` asks the chat model and degrades to the template on
any failure.
"""

from __future__ import annotations

import asyncio
import time
import uuid
import weakref
from datetime import datetime
from typing import Callable, Protocol, runtime_checkable

from coachbot.config.prompt_templates import MEMORY_FACTS_LABEL, MEMORY_RECENT_LABEL, MEMORY_SUMMARY_LABEL, MEMORY_TOPICS_LABEL, SUMMARIZATION_PROMPT
from coachbot.config.settings import settings
from coachbot.src.core.errors import CoachError
from coachbot.src.core.fact_extraction import extract_key_facts, extract_topics, facts_from_memory, generate_summary_text, merge_facts
from coachbot.src.core.models import ChatMessage, ConversationContext, ConversationSummary, Role, UserMemory, utc_now
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  STORE PROTOCOLS
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class MessageStore(Protocol):
    async def add_message(self, message: ChatMessage) -> None: ...

    async def list_since(self, user_id: str, coach_id: str, since: datetime | None) -> list[ChatMessage]: ...

    async def recent(self, user_id: str, coach_id: str, limit: int) -> list[ChatMessage]: ...


@runtime_checkable
class SummaryStore(Protocol):
    async def append(self, summary: ConversationSummary) -> None: ...

    async def latest(self, user_id: str, coach_id: str) -> ConversationSummary | None: ...


@runtime_checkable
class MemoryStore(Protocol):
    async def get(self, user_id: str) -> UserMemory | None: ...

    async def upsert(self, memory: UserMemory) -> None: ...


# ══════════════════════════════════════════════════════════════════════
#  SUMMARIZERS
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class Summarizer(Protocol):
    async def summarize(self, messages: list[ChatMessage], topics: list[str]) -> str: ...


class TemplateSummarizer:
    """Deterministic canned summary (topics + first three user questions)."""

    async def summarize(self, messages: list[ChatMessage], topics: list[str]) -> str:
        return generate_summary_text(messages, topics)


class LLMSummarizer:
    """
    Generative summary via the chat model.

    Output text is non-deterministic; only the contract (non-empty text,
    template on failure) is stable.
    """

    __slots__ = ("_llm", "_fallback")

    def __init__(self, llm: object | None = None) -> None:
        self._llm = llm or self._init_llm()
        self._fallback = TemplateSummarizer()


    @staticmethod
    def _init_llm() -> object:
        """Create a low-temperature LLM for deterministic summarization."""
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=0.1, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())


    async def summarize(self, messages: list[ChatMessage], topics: list[str]) -> str:
        conversation_text = "\n".join(f"{m.role.upper()}: {m.content}" for m in messages)
        prompt = SUMMARIZATION_PROMPT.format(conversation=conversation_text)

        try:
            from langchain_core.messages import HumanMessage

            response = await self._llm.ainvoke([HumanMessage(content=prompt)])  # type: ignore[union-attr]
            text = response.content if hasattr(response, "content") else str(response)
        except Exception:
            logger.exception("[MEMORY] Summarization LLM call failed — using templated summary.")
            return await self._fallback.summarize(messages, topics)

        if not isinstance(text, str) or not text.strip():
            logger.warning("[MEMORY] Summarization LLM returned no text — using templated summary.")
            return await self._fallback.summarize(messages, topics)
        return text.strip()


# ══════════════════════════════════════════════════════════════════════
#  MEMORY MANAGER
# ══════════════════════════════════════════════════════════════════════


class ConversationMemoryManager:
    """
    Parameters
    ----------
    message_store, summary_store, memory_store
        Async persistence back-ends (see the protocols above).
    summarizer
        Defaults to ``TemplateSummarizer``.
    threshold
        Messages since the last summary that trigger a new one.
    context_window
        Number of recent messages quoted verbatim in the prompt.
    clock
        Returns the current UTC time; injectable for tests.
    """

    __slots__ = ("_messages", "_summaries", "_memories", "_summarizer", "_threshold", "_window", "_clock", "_locks")

    def __init__(self, message_store: MessageStore, summary_store: SummaryStore, memory_store: MemoryStore, summarizer: Summarizer | None = None, threshold: int | None = None, context_window: int | None = None, clock: Callable[[], datetime] = utc_now) -> None:
        self._messages = message_store
        self._summaries = summary_store
        self._memories = memory_store
        self._summarizer = summarizer or TemplateSummarizer()
        self._threshold = threshold or settings.SUMMARY_THRESHOLD
        self._window = context_window or settings.CONTEXT_WINDOW
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[tuple[str, ...], asyncio.Lock] = weakref.WeakValueDictionary()

    # ── Read side ──────────────────────────────────────────────────────

    async def get_context(self, user_id: str, coach_id: str, recent_messages: list[ChatMessage] | None = None) -> ConversationContext:
        """
        Summary, key facts, previous topics and the last W messages.

        Store failures degrade to a context holding only the recent
        window; they never propagate.
        """
        recent = list(recent_messages or [])[-self._window :]
        try:
            if recent_messages is None:
                summary, memory, recent = await asyncio.gather(self._summaries.latest(user_id, coach_id), self._memories.get(user_id), self._messages.recent(user_id, coach_id, self._window))
            else:
                summary, memory = await asyncio.gather(self._summaries.latest(user_id, coach_id), self._memories.get(user_id))
        except CoachError:
            logger.exception("[MEMORY] Context read failed for user=%s coach=%s — continuing without memory.", user_id, coach_id)
            return ConversationContext(recent_messages=recent)

        key_facts = list(dict.fromkeys([*(summary.key_facts if summary else []), *facts_from_memory(memory)]))
        return ConversationContext(recent_messages=recent[-self._window :], summary=summary.summary_text if summary else None, key_facts=key_facts, previous_topics=list(summary.topics) if summary else [])


    @staticmethod
    def format_context_for_prompt(context: ConversationContext) -> str:
        """Render *context* in prompt order: summary, facts, topics, recent turns."""
        prompt = ""
        if context.summary:
            prompt += MEMORY_SUMMARY_LABEL.format(summary=context.summary)
        if context.key_facts:
            prompt += MEMORY_FACTS_LABEL.format(facts="\n".join(f"- {fact}" for fact in context.key_facts))
        if context.previous_topics:
            prompt += MEMORY_TOPICS_LABEL.format(topics=", ".join(context.previous_topics))
        if context.recent_messages:
            prompt += MEMORY_RECENT_LABEL
            for message in context.recent_messages:
                role_label = "User" if message.role == "user" else "Coach"
                prompt += f"{role_label}: {message.content}\n"
            prompt += "\n"
        return prompt

    # ── Write side ─────────────────────────────────────────────────────

    async def record_message(self, user_id: str, coach_id: str, role: Role, content: str) -> ChatMessage:
        message = ChatMessage(message_id=uuid.uuid4().hex, role=role, content=content, created_at=self._clock(), user_id=user_id, coach_id=coach_id)
        await self._messages.add_message(message)
        return message


    async def messages_since_last_summary(self, user_id: str, coach_id: str) -> list[ChatMessage]:
        latest = await self._summaries.latest(user_id, coach_id)
        return await self._messages.list_since(user_id, coach_id, latest.created_at if latest else None)


    def _lock(self, *key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


    async def maybe_summarize(self, user_id: str, coach_id: str) -> ConversationSummary | None:
        """
        Append a new summary if the threshold is reached; return it, else ``None``.

        The check and the append run under a per-(user, coach) lock, so
        overlapping updates produce one summary.
        """
        async with self._lock("summary", user_id, coach_id):
            return await self._summarize_pending(user_id, coach_id)


    async def _summarize_pending(self, user_id: str, coach_id: str) -> ConversationSummary | None:
        pending = await self.messages_since_last_summary(user_id, coach_id)
        if len(pending) < self._threshold:
            logger.debug("[MEMORY] user=%s coach=%s: %d/%d message(s) since last summary.", user_id, coach_id, len(pending), self._threshold)
            return None

        t_start = time.perf_counter()
        topics = extract_topics(pending)
        summary = ConversationSummary(
            user_id=user_id,
            coach_id=coach_id,
            summary_text=await self._summarizer.summarize(pending, topics),
            key_facts=extract_key_facts(pending),
            topics=topics,
            last_message_id=pending[-1].message_id,
            message_count=len(pending),
            # Never earlier than the newest summarized message, so the count resets.
            created_at=max(self._clock(), pending[-1].created_at),
        )
        await self._summaries.append(summary)

        logger.info("[MEMORY] Summarized %d message(s) for user=%s coach=%s (%d fact(s), topics=%s) in %.1fms", len(pending), user_id, coach_id, len(summary.key_facts), topics, (time.perf_counter() - t_start) * 1000)
        return summary


    async def update_user_memory(self, user_id: str, messages: list[ChatMessage]) -> UserMemory | None:
        """Merge facts from *messages* into the user's memory.  Idempotent."""
        facts = extract_key_facts(messages)
        if not facts:
            return None

        async with self._lock("memory", user_id):
            existing = await self._memories.get(user_id)
            memory = UserMemory(user_id=user_id, facts=merge_facts(existing.facts if existing else {}, facts), preferences=existing.preferences if existing else {}, health_data=existing.health_data if existing else {}, last_updated=self._clock())
            await self._memories.upsert(memory)
        logger.debug("[MEMORY] Merged %d fact(s) into memory of user=%s.", len(facts), user_id)
        return memory


    async def update_conversation_memory(self, user_id: str, coach_id: str, recent_messages: list[ChatMessage]) -> None:
        """Summarize if due, then merge facts.  Best-effort: failures are logged only."""
        try:
            await self.maybe_summarize(user_id, coach_id)
            await self.update_user_memory(user_id, recent_messages)
        except CoachError:
            logger.exception("[MEMORY] Memory update failed for user=%s coach=%s.", user_id, coach_id)
