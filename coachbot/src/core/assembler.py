"""
CoachBot - Response Assembler (RAG Coach)
==========================================
Orchestrates one chat turn for a RAG-tier coach.

Flow
----
    1. Retrieval (+ relevance extraction) and the memory-context read
       run concurrently; both finish before assembly.
    2. Build the coach system prompt, the user-profile context and the
       knowledge context.
    3. Call the generator.  On ``GenerationFailed`` (or with no
       generator) answer deterministically from the gathered context.
    4. Return the answer, then record the turn and update memory in a
       background task.  That task is best-effort: it never fails or
       delays the returned turn, and it is not cancelled with it.

Usage:
    coach = RAGCoach(coach_ctx, retriever, memory_manager, GenerationClient())
    answer = await coach.process_message("How do I start keto?", user_id="u1", profile=profile)
    await coach.drain()   # e.g. before shutdown
"""

from __future__ import annotations

import asyncio
import time

from coachbot.config.prompt_templates import DEFAULT_SYSTEM_PROMPT, DIET_LEAD_INS, DIET_TYPE_NAMES, KEY_POINTS_HEADER, KNOWLEDGE_HEADER, KNOWLEDGE_PREVIEW_CHARS, NO_CONTEXT_RESPONSE, PROMPT_PLACEHOLDER_DIET_NAME, PROMPT_PLACEHOLDER_DIET_TYPE, PROMPT_PLACEHOLDER_SPECIALTIES, QUESTION_PREFIX
from coachbot.config.settings import settings
from coachbot.src.core.errors import GenerationFailed
from coachbot.src.core.generation import Generator
from coachbot.src.core.memory import ConversationMemoryManager
from coachbot.src.core.models import AccessTier, ChatMessage, CoachContext, ConversationContext, GenerationRequest, RetrievalFilters, RetrievalResult, UserProfile
from coachbot.src.core.relevance import extract_relevant_answer, extract_relevant_sentences
from coachbot.src.core.retriever import VectorRetriever
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)

_NOT_PROVIDED = "not provided"


# ══════════════════════════════════════════════════════════════════════
#  CONTEXT BUILDERS
# ══════════════════════════════════════════════════════════════════════


def build_system_prompt(coach: CoachContext, template: str | None = None) -> str:
    """Stored coach prompt with placeholders filled, else the default prompt."""
    if template:
        return template.replace(PROMPT_PLACEHOLDER_DIET_NAME, coach.display_name).replace(PROMPT_PLACEHOLDER_DIET_TYPE, coach.coach_type).replace(PROMPT_PLACEHOLDER_SPECIALTIES, ", ".join(coach.specialties))

    diet_name = DIET_TYPE_NAMES.get(coach.coach_type, coach.coach_type)
    return DEFAULT_SYSTEM_PROMPT.format(diet_name=diet_name, diet_name_lower=diet_name.lower())


def format_height(profile: UserProfile) -> str:
    if not profile.height:
        return _NOT_PROVIDED
    if profile.units == "imperial":
        return f"{profile.height // 12}' {profile.height % 12}\""
    return f"{profile.height}cm"


def format_weight(profile: UserProfile) -> str:
    if profile.weight is None:
        return _NOT_PROVIDED
    weight = f"{profile.weight:g}"
    return f"{weight} lbs" if profile.units == "imperial" else f"{weight}kg"


def build_user_context(profile: UserProfile | None) -> str:
    """Profile block for the prompt; empty when the profile has no name."""
    if profile is None or not profile.name:
        return ""

    def show(value: object) -> str:
        return _NOT_PROVIDED if value in (None, "") else str(value)

    return "\n".join([
        "User Profile:",
        f"- Name: {profile.name}",
        f"- Age: {show(profile.age)}",
        f"- Gender: {show(profile.gender)}",
        f"- Height: {format_height(profile)}",
        f"- Weight: {format_weight(profile)}",
        f"- Activity Level: {show(profile.activity_level.replace('_', ' '))}",
        f"- Health Goals: {', '.join(profile.health_goals)}",
        f"- Dietary Preferences: {', '.join(profile.dietary_preferences)}",
        f"- Health Conditions: {', '.join(profile.health_conditions)}",
    ])


def build_knowledge_context(results: list[RetrievalResult], relevant_points: list[str]) -> str:
    """``[category]`` previews of each document, then the key points."""
    context = ""
    if results:
        context += KNOWLEDGE_HEADER
        for result in results:
            context += f"[{result.category}]\n{result.content[:KNOWLEDGE_PREVIEW_CHARS]}...\n\n"
    if relevant_points:
        context += KEY_POINTS_HEADER
        context += "".join(f"• {point}\n" for point in relevant_points)
    return context


def deterministic_answer(message: str, coach_type: str, knowledge_context: str, conversation_context: str) -> str:
    """Coach-type templated answer used when generation is unavailable."""
    response = QUESTION_PREFIX.format(message=message)
    if not knowledge_context.strip() and not conversation_context.strip():
        return response + NO_CONTEXT_RESPONSE.format(message=message, coach_type=coach_type)

    full_context = f"{conversation_context}\n\n{knowledge_context}" if conversation_context.strip() else knowledge_context
    return response + DIET_LEAD_INS.get(coach_type, "") + extract_relevant_answer(full_context, message.lower(), coach_type)


# ══════════════════════════════════════════════════════════════════════
#  RAG COACH
# ══════════════════════════════════════════════════════════════════════


class RAGCoach:
    """
    Parameters
    ----------
    coach
        Identity of the coach answering.
    retriever
        ``VectorRetriever`` over the coach corpus.
    memory
        ``ConversationMemoryManager`` for context reads and updates.
    generator
        Any ``Generator``; ``None`` means always answer deterministically.
    system_prompt_template
        The coach's stored prompt, if any.
    access_tier
        Highest document tier this coach may retrieve.
    """

    __slots__ = ("coach", "_retriever", "_memory", "_generator", "_system_prompt_template", "_access_tier", "_temperature", "_max_tokens", "_pending")

    def __init__(self, coach: CoachContext, retriever: VectorRetriever, memory: ConversationMemoryManager, generator: Generator | None = None, system_prompt_template: str | None = None, access_tier: AccessTier | None = None, temperature: float | None = None, max_tokens: int | None = None) -> None:
        self.coach = coach
        self._retriever = retriever
        self._memory = memory
        self._generator = generator
        self._system_prompt_template = system_prompt_template
        self._access_tier = access_tier
        self._temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self._max_tokens = max_tokens or settings.LLM_MAX_OUTPUT_TOKENS
        self._pending: set[asyncio.Task[None]] = set()


    async def process_message(self, message: str, user_id: str | None = None, profile: UserProfile | None = None, recent_messages: list[ChatMessage] | None = None) -> str:
        t_start = time.perf_counter()
        context = ConversationContext(recent_messages=list(recent_messages or []))
        try:
            # ── 1. Retrieval ‖ memory read ────────────────────────────
            filters = RetrievalFilters(coach_id=self.coach.coach_id, user_id=user_id, access_tier=self._access_tier)
            (results, relevant_points), context = await asyncio.gather(self._retrieve(message, filters), self._read_memory(user_id, recent_messages, context))

            # ── 2. Assemble ───────────────────────────────────────────
            request = GenerationRequest(
                query=message,
                system_prompt=build_system_prompt(self.coach, self._system_prompt_template),
                user_context=build_user_context(profile),
                conversation_context=self._memory.format_context_for_prompt(context) if user_id else "",
                knowledge_context=build_knowledge_context(results, relevant_points),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )

            # ── 3. Generate or fall back ──────────────────────────────
            answer = await self._generate(request)
        except Exception:
            logger.exception("[COACH] Turn failed for coach=%s — using fallback answer.", self.coach.coach_id)
            answer = NO_CONTEXT_RESPONSE.format(message=message, coach_type=self.coach.coach_type)

        # ── 4. Background memory update ───────────────────────────────
        if user_id:
            self._schedule_memory_update(user_id, message, answer, context.recent_messages)

        logger.info("[COACH] Turn for coach=%s answered in %.1fms", self.coach.coach_id, (time.perf_counter() - t_start) * 1000)
        return answer


    async def _retrieve(self, message: str, filters: RetrievalFilters) -> tuple[list[RetrievalResult], list[str]]:
        results = await self._retriever.retrieve(message, filters)
        return results, extract_relevant_sentences(results, message)


    async def _read_memory(self, user_id: str | None, recent_messages: list[ChatMessage] | None, default: ConversationContext) -> ConversationContext:
        if not user_id:
            return default
        return await self._memory.get_context(user_id, self.coach.coach_id, recent_messages)


    async def _generate(self, request: GenerationRequest) -> str:
        if self._generator is not None:
            try:
                return await self._generator.generate(request)
            except GenerationFailed as exc:
                logger.warning("[COACH] Generation unavailable (%s) — using templated answer.", exc.kind.value)
        return deterministic_answer(request.query, self.coach.coach_type, request.knowledge_context, request.conversation_context)

    # ── Background work ────────────────────────────────────────────────

    def _schedule_memory_update(self, user_id: str, message: str, answer: str, recent: list[ChatMessage]) -> None:
        task = asyncio.create_task(self._update_memory(user_id, message, answer, recent))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


    async def _update_memory(self, user_id: str, message: str, answer: str, recent: list[ChatMessage]) -> None:
        try:
            user_message = await self._memory.record_message(user_id, self.coach.coach_id, "user", message)
            coach_message = await self._memory.record_message(user_id, self.coach.coach_id, "coach", answer)
            await self._memory.update_conversation_memory(user_id, self.coach.coach_id, [*recent, user_message, coach_message])
        except Exception:
            logger.exception("[MEMORY] Background update failed for user=%s coach=%s.", user_id, self.coach.coach_id)


    async def drain(self) -> None:
        """Wait for every in-flight background memory update."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
