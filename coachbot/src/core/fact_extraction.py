"""
CoachBot - Fact & Topic Extraction
===================================
Pure, side-effect-free functions that turn a window of chat messages
into durable facts, topic buckets and a templated summary.  Persistence
lives strictly downstream in ``memory.py``.

Fact rules
----------
Applied in order to every user-authored message; each match contributes
its matched text verbatim.  Captures stop at the end of the clause
(``.``, ``,``, ``!``, ``?`` or a line break).

Coach-authored messages are scanned for a confirmation
("… understand that you <clause>.") which becomes ``"User <clause>"``.

Facts are deduplicated by exact string identity, first occurrence wins.
"""

from __future__ import annotations

import re
from typing import Any

from coachbot.config.knowledge_defaults import TOPIC_KEYWORDS
from coachbot.config.prompt_templates import TEMPLATED_SUMMARY
from coachbot.src.core.models import ChatMessage, UserMemory

_CLAUSE = r"[^.,!?\n]+"

FACT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("age", re.compile(r"\bI(?: am|'m) (\d+) years old\b", re.IGNORECASE)),
    ("weight", re.compile(r"\bI weigh (\d+) ?(lbs|kg|pounds|kilos)\b", re.IGNORECASE)),
    ("goal", re.compile(rf"\bmy goal is to ({_CLAUSE})", re.IGNORECASE)),
    ("duration", re.compile(r"\bI(?:'ve| have)? been ([^.,!?\n]*?ing) for (\d+) (days?|weeks?|months?|years?)\b", re.IGNORECASE)),
    ("condition", re.compile(rf"\bI (?:suffer from|(?:was |am |have been )?diagnosed with) ({_CLAUSE})", re.IGNORECASE)),
    ("diet", re.compile(r"\bI (?:eat|follow) (?:a|the) ([^.,!?\n]+?) diet\b", re.IGNORECASE)),
    ("workout_frequency", re.compile(r"\bI (?:workout|work out|exercise|train) (\d+) times? (?:a|per) week\b", re.IGNORECASE)),
    ("occupation", re.compile(rf"\bI (?:am|work as) (?:a|an) ({_CLAUSE})", re.IGNORECASE)),
    ("allergy", re.compile(rf"\ballergic to ({_CLAUSE})", re.IGNORECASE)),
    ("supplement", re.compile(r"\bI (?:take|use) ([^.,!?\n]+?) (?:supplements?|medications?)\b", re.IGNORECASE)),
)

_RE_COACH_CONFIRMATION = re.compile(r"understand that you (.+?)(?:\.|,)", re.IGNORECASE)
# Rules whose whole match is stored as a typed field instead of a statement.
TYPED_FACT_FIELDS = {"age": "age", "weight": "currentWeight"}

SUMMARY_QUESTIONS = 3
STATEMENTS_KEY = "statements"


def extract_key_facts(messages: list[ChatMessage]) -> list[str]:
    """Ordered, deduplicated facts stated by the user or confirmed by the coach."""
    facts: list[str] = []
    confirmations: list[str] = []

    for message in messages:
        if message.role == "user":
            for _, pattern in FACT_PATTERNS:
                match = pattern.search(message.content)
                if match:
                    facts.append(match.group(0).strip())
        elif "understand that you" in message.content.lower():
            match = _RE_COACH_CONFIRMATION.search(message.content)
            if match:
                confirmations.append(f"User {match.group(1).strip()}")

    return list(dict.fromkeys(facts + confirmations))


def extract_topics(messages: list[ChatMessage]) -> list[str]:
    """Topic buckets touched by any message, in first-seen order."""
    topics: dict[str, None] = {}
    for message in messages:
        text = message.content.lower()
        for topic, keywords in TOPIC_KEYWORDS.items():
            if any(keyword in text for keyword in keywords):
                topics[topic] = None
    return list(topics)


def generate_summary_text(messages: list[ChatMessage], topics: list[str] | None = None) -> str:
    """Templated summary: topics plus the first three user questions."""
    topics = extract_topics(messages) if topics is None else topics
    questions = [m.content for m in messages if m.role == "user"][:SUMMARY_QUESTIONS]
    return TEMPLATED_SUMMARY.format(topics=", ".join(topics) or "general topics", questions="; ".join(questions))


def merge_facts(existing: dict[str, Any], new_facts: list[str]) -> dict[str, Any]:
    """
    Fold *new_facts* into a copy of *existing*.

    A fact produced by the age rule ("I am N years old") is upserted as
    ``age: int`` and one produced by the weight rule ("I weigh N lbs") as
    ``currentWeight: int``.  Every other fact, including goals that
    mention a weight, is appended verbatim to ``statements`` unless
    already present.
    """
    merged = dict(existing)
    statements: list[str] = list(merged.get(STATEMENTS_KEY, []))
    rules = dict(FACT_PATTERNS)

    for fact in new_facts:
        typed = False
        for rule, field in TYPED_FACT_FIELDS.items():
            match = rules[rule].fullmatch(fact)
            if match:
                merged[field] = int(match.group(1))
                typed = True
        if not typed and fact not in statements:
            statements.append(fact)

    if statements:
        merged[STATEMENTS_KEY] = statements
    return merged


def facts_from_memory(memory: UserMemory | None) -> list[str]:
    """Render stored facts back into prompt-ready statements."""
    if memory is None:
        return []

    facts: list[str] = []
    if memory.facts.get("age"):
        facts.append(f"User is {memory.facts['age']} years old")
    if memory.facts.get("currentWeight"):
        facts.append(f"User weighs {memory.facts['currentWeight']}")
    facts.extend(str(s) for s in memory.facts.get(STATEMENTS_KEY, []))
    return facts
