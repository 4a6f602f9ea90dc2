"""
CoachBot - Relevance Extractor
===============================
Extractive keyword-overlap scoring over retrieved chunks.

Algorithm
---------
1. Lower-case the query, strip punctuation, keep words longer than
   three characters.
2. Expand every word through ``SYNONYM_CLUSTERS``: a word in a cluster
   activates all of its members.
3. Split each chunk into sentences and drop those shorter than 20
   characters.
4. Score a sentence by how many expanded keywords it contains
   (case-insensitive substring).  Keep ``score > 0``.
5. Sentences quoting the whole query phrase rank first, then by score.
   Ties keep document order.

Usage:
    from coachbot.src.core.relevance import extract_relevant_sentences
    points = extract_relevant_sentences(results, "how do I start keto")
"""

from __future__ import annotations

import re

from coachbot.config.knowledge_defaults import SYNONYM_CLUSTERS
from coachbot.config.prompt_templates import DIET_GUIDANCE, GENERIC_GUIDANCE
from coachbot.config.settings import settings
from coachbot.src.core.models import RetrievalResult

_RE_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_RE_PUNCTUATION = re.compile(r"[^\w\s]")
_RE_WHITESPACE = re.compile(r"\s+")

MIN_KEYWORD_LENGTH = 4
# The templated answer path also keeps short words such as "fat" or "oil".
ANSWER_MIN_KEYWORD_LENGTH = 3
MIN_SENTENCE_LENGTH = 20
ANSWER_SENTENCES = 2


def expand_keywords(query: str, min_length: int = MIN_KEYWORD_LENGTH) -> list[str]:
    """Query words (``len >= min_length``) plus their synonym clusters, unique and ordered."""
    words = _RE_PUNCTUATION.sub("", query.lower()).split()
    keywords: dict[str, None] = {}
    for word in words:
        if len(word) < min_length:
            continue
        keywords[word] = None
        for cluster in SYNONYM_CLUSTERS:
            if word in cluster:
                keywords.update(dict.fromkeys(sorted(cluster)))
    return list(keywords)


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _RE_SENTENCE_SPLIT.split(text) if len(s.strip()) >= MIN_SENTENCE_LENGTH]


def rank_sentences(texts: list[str], query: str, min_length: int = MIN_KEYWORD_LENGTH) -> list[str]:
    """Every scoring sentence across *texts*, best first."""
    keywords = expand_keywords(query, min_length)
    if not keywords:
        return []

    phrase = _RE_WHITESPACE.sub(" ", query.lower()).strip(" .!?")
    scored: list[tuple[bool, int, str]] = []
    for text in texts:
        for sentence in split_sentences(text):
            lowered = sentence.lower()
            score = sum(1 for keyword in keywords if keyword in lowered)
            if score > 0:
                scored.append((bool(phrase) and phrase in lowered, score, sentence))

    # sort() is stable, so equal keys keep document order.
    scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [sentence for _, _, sentence in scored]


def extract_relevant_sentences(results: list[RetrievalResult], query: str, limit: int | None = None) -> list[str]:
    """Top ``limit`` (default 5) query-relevant sentences from *results*."""
    limit = limit or settings.RELEVANT_SENTENCES_LIMIT
    return rank_sentences([r.content for r in results], query)[:limit]


def extract_relevant_answer(knowledge: str, message: str, coach_type: str) -> str:
    """
    Best two sentences of *knowledge* for *message*, joined with a space.
    Query words of three letters or more count here.

    Falls back to the fixed guidance for *coach_type* when nothing scores.
    """
    best = rank_sentences([knowledge], message, ANSWER_MIN_KEYWORD_LENGTH)[:ANSWER_SENTENCES]
    if best:
        return " ".join(best)
    return DIET_GUIDANCE.get(coach_type, GENERIC_GUIDANCE)
