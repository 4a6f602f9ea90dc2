"""
CoachBot - Knowledge Matcher (Basic Coach Tier)
================================================
Pattern/confidence responder used by coaches without a RAG corpus.

Confidence
----------
Per trigger pattern:
  • pattern is a verbatim substring of the normalised message → ``0.9``
  • otherwise ``matched_words / pattern_words × 0.7``, where a pattern
    word matches if any message word contains it or is contained by it.
An entry's confidence is the maximum over its patterns.

Selection
---------
The entry with the globally highest confidence wins (ties go to the
earlier, higher-priority entry) and is accepted only if that confidence
reaches the entry's own ``min_confidence``.  Otherwise a canned fallback
is picked through an injected ``random.Random``.

Usage:
    coach = await BasicCoach.create(knowledge_store, "basic-health", rng=random.Random(7))
    answer = coach.respond("hello there", profile)
"""

from __future__ import annotations

import random
from typing import Protocol, runtime_checkable

from coachbot.config.knowledge_defaults import DEFAULT_FALLBACK_TOPIC, DEFAULT_KNOWLEDGE_ENTRIES, FALLBACK_TOPICS
from coachbot.config.prompt_templates import BASIC_FALLBACK_RESPONSES
from coachbot.src.core.errors import CoachError
from coachbot.src.core.models import KnowledgeEntry, MatchResult, UserProfile
from coachbot.src.utils.logger import get_logger

logger = get_logger(__name__)

EXACT_MATCH_CONFIDENCE = 0.9
WORD_MATCH_WEIGHT = 0.7


@runtime_checkable
class KnowledgeStore(Protocol):
    async def list_entries(self, coach_id: str) -> list[KnowledgeEntry]: ...


def normalize_message(message: str) -> str:
    return message.lower().strip()


def calculate_confidence(message: str, patterns: tuple[str, ...] | list[str]) -> float:
    """Best confidence of *message* (already normalised) against *patterns*."""
    message_words = message.split()
    best = 0.0
    for pattern in patterns:
        pattern = pattern.lower()
        if pattern and pattern in message:
            confidence = EXACT_MATCH_CONFIDENCE
        else:
            pattern_words = pattern.split()
            if not pattern_words:
                continue
            matched = [w for w in pattern_words if any(w in m or m in w for m in message_words)]
            confidence = len(matched) / len(pattern_words) * WORD_MATCH_WEIGHT
        best = max(best, confidence)
    return best


def extract_topic(message: str) -> str:
    lowered = message.lower()
    return next((topic for topic in FALLBACK_TOPICS if topic in lowered), DEFAULT_FALLBACK_TOPIC)


def personalize(template: str, profile: UserProfile | None) -> str:
    """Fill ``[name]`` / ``[goal]`` from *profile* when present."""
    if profile is None:
        return template
    response = template
    if profile.name:
        response = response.replace("[name]", profile.name)
    if profile.goal:
        response = response.replace("[goal]", profile.goal.lower())
    return response


def default_entries() -> list[KnowledgeEntry]:
    return [KnowledgeEntry(**entry) for entry in DEFAULT_KNOWLEDGE_ENTRIES]


async def load_knowledge_base(store: KnowledgeStore | None, coach_id: str) -> list[KnowledgeEntry]:
    """Active entries for *coach_id*; the built-in defaults if loading fails."""
    if store is None:
        return default_entries()
    try:
        entries = await store.list_entries(coach_id)
    except CoachError:
        logger.exception("[MATCH] Could not load knowledge base for coach=%s — using defaults.", coach_id)
        return default_entries()
    return sorted(entries, key=lambda e: e.priority, reverse=True)


class KnowledgeMatcher:
    """
    Parameters
    ----------
    entries
        Knowledge entries, highest priority first.
    rng
        Randomness source for fallback selection.
    fallback_responses
        Canned answers; ``{topic}`` is filled from the message.
    """

    __slots__ = ("_entries", "_rng", "_fallbacks")

    def __init__(self, entries: list[KnowledgeEntry], rng: random.Random | None = None, fallback_responses: tuple[str, ...] = BASIC_FALLBACK_RESPONSES) -> None:
        self._entries = list(entries)
        self._rng = rng or random.Random()
        self._fallbacks = fallback_responses


    @property
    def entries(self) -> list[KnowledgeEntry]:
        return list(self._entries)


    def find_best_match(self, message: str) -> MatchResult | None:
        """Globally best entry, if it clears its own ``min_confidence``."""
        best: MatchResult | None = None
        for entry in self._entries:
            confidence = calculate_confidence(message, entry.trigger_patterns)
            if best is None or confidence > best.confidence:
                best = MatchResult(entry=entry, confidence=confidence)

        if best is None or best.confidence < best.entry.min_confidence:
            return None
        return best


    def fallback_response(self, message: str) -> str:
        return self._rng.choice(self._fallbacks).format(topic=extract_topic(message))


    def respond(self, message: str, profile: UserProfile | None = None) -> str:
        normalized = normalize_message(message)
        match = self.find_best_match(normalized)
        if match is None:
            logger.info("[MATCH] No entry matched — fallback response.")
            return self.fallback_response(normalized)

        logger.info("[MATCH] Matched '%s' (%s) with confidence %.2f", match.entry.entry_id, match.entry.category, match.confidence)
        return personalize(match.entry.answer_template, profile)


class BasicCoach:
    """Knowledge-base coach for a single coach id."""

    __slots__ = ("coach_id", "matcher")

    def __init__(self, coach_id: str, matcher: KnowledgeMatcher) -> None:
        self.coach_id = coach_id
        self.matcher = matcher


    @classmethod
    async def create(cls, store: KnowledgeStore | None, coach_id: str, rng: random.Random | None = None) -> BasicCoach:
        entries = await load_knowledge_base(store, coach_id)
        logger.info("[MATCH] Loaded %d knowledge entries for coach=%s.", len(entries), coach_id)
        return cls(coach_id, KnowledgeMatcher(entries, rng=rng))


    async def process_message(self, message: str, profile: UserProfile | None = None) -> str:
        return self.matcher.respond(message, profile)
